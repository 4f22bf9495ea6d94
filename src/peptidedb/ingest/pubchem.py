"""
PubChem adapter.

Resolves the name to a CID, then fetches description, synonyms and
formula/weight. Each secondary call may fail on its own without losing the CID.
"""

from __future__ import annotations

from typing import Sequence
from urllib.parse import quote

from ..mapping.normalize import build_search_term, truncate, unique_strings
from .base import SourceAdapter
from .schemas import (
    PubChemCidResponse,
    PubChemPropertyResponse,
    PubChemSynonymResponse,
    PugViewResponse,
    parse_payload,
)
from .types import PubChemSnapshot

PUG_REST = "https://pubchem.ncbi.nlm.nih.gov/rest/pug"
PUG_VIEW = "https://pubchem.ncbi.nlm.nih.gov/rest/pug_view"
MAX_SYNONYMS = 18
DESCRIPTION_MAX_CHARS = 500


class PubChemAdapter(SourceAdapter):
    name = "pubchem"

    def empty(self, query_url: str = "") -> PubChemSnapshot:
        return PubChemSnapshot(query_url=query_url)

    def cid_url(self, canonical_name: str) -> str:
        term = build_search_term(canonical_name) or canonical_name
        return f"{PUG_REST}/compound/name/{quote(term, safe='')}/cids/JSON"

    def query(self, canonical_name: str, aliases: Sequence[str] = ()) -> PubChemSnapshot:
        lookup_url = self.cid_url(canonical_name)
        lookup = self.fetcher.fetch_json(lookup_url)
        if not lookup.ok:
            return self.empty(lookup_url)
        cid = parse_payload(PubChemCidResponse, lookup.payload).first_cid
        if not cid:
            return self.empty(lookup_url)

        description_url = f"{PUG_VIEW}/data/compound/{cid}/JSON?heading=Record+Description"
        snap = PubChemSnapshot(query_url=description_url, cid=cid)

        described = self.fetcher.fetch_json(description_url)
        if described.ok:
            text = parse_payload(PugViewResponse, described.payload).first_description()
            snap.description = truncate(text, DESCRIPTION_MAX_CHARS)

        synonyms = self.fetcher.fetch_json(f"{PUG_REST}/compound/cid/{cid}/synonyms/JSON")
        if synonyms.ok:
            info = parse_payload(PubChemSynonymResponse, synonyms.payload).information_list.information
            if info:
                snap.synonyms = unique_strings(info[0].synonym[:MAX_SYNONYMS])

        props = self.fetcher.fetch_json(f"{PUG_REST}/compound/cid/{cid}/property/MolecularFormula,MolecularWeight/JSON")
        if props.ok:
            rows = parse_payload(PubChemPropertyResponse, props.payload).property_table.properties
            if rows:
                snap.molecular_formula = rows[0].molecular_formula
                snap.molecular_weight = rows[0].molecular_weight
        return snap
