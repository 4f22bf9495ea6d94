"""
ChEMBL adapter.

Searches molecules by name, picks the best candidate, then loads its detail
record, mechanisms of action and indications.
"""

from __future__ import annotations

from typing import Optional, Sequence
from urllib.parse import quote, urlencode

from ..mapping.normalize import build_search_term, unique_strings
from .base import SourceAdapter
from .schemas import (
    ChemblIndicationResponse,
    ChemblMechanismResponse,
    ChemblMolecule,
    ChemblSearchResponse,
    parse_payload,
)
from .types import ChemblSnapshot

CHEMBL_API = "https://www.ebi.ac.uk/chembl/api/data"
SEARCH_LIMIT = 8
MAX_MECHANISMS = 4
MAX_INDICATIONS = 10


def score_candidate(molecule: ChemblMolecule, query: str) -> float:
    """Exact name beats substring; later phases and biologic types rank higher."""
    pref = molecule.pref_name.lower()
    q = query.lower()
    score = 0.0
    if pref and pref == q:
        score += 100
    if pref and q in pref:
        score += 40
    score += (molecule.max_phase or 0) * 10
    mtype = molecule.molecule_type.lower()
    if "protein" in mtype or "oligonucleotide" in mtype:
        score += 20
    return score


def best_candidate(molecules: Sequence[ChemblMolecule], query: str) -> Optional[ChemblMolecule]:
    ranked = sorted(
        (m for m in molecules if m.molecule_chembl_id),
        key=lambda m: score_candidate(m, query),
        reverse=True,
    )
    return ranked[0] if ranked else None


class ChemblAdapter(SourceAdapter):
    name = "chembl"

    def __init__(self, fetcher, base_url: str = CHEMBL_API) -> None:
        super().__init__(fetcher)
        self.base_url = base_url.rstrip("/")

    def empty(self, query_url: str = "") -> ChemblSnapshot:
        return ChemblSnapshot(query_url=query_url)

    def query(self, canonical_name: str, aliases: Sequence[str] = ()) -> ChemblSnapshot:
        term = build_search_term(canonical_name) or canonical_name
        search_url = f"{self.base_url}/molecule/search.json?{urlencode({'q': term, 'limit': SEARCH_LIMIT})}"
        search = self.fetcher.fetch_json(search_url)
        if not search.ok:
            return self.empty(search_url)

        best = best_candidate(parse_payload(ChemblSearchResponse, search.payload).molecules, term)
        if best is None:
            return self.empty(search_url)

        chembl_id = best.molecule_chembl_id
        detail_url = f"{self.base_url}/molecule/{quote(chembl_id)}.json"
        snap = ChemblSnapshot(
            query_url=detail_url,
            chembl_id=chembl_id,
            pref_name=best.pref_name,
            molecule_type=best.molecule_type,
            max_phase=best.max_phase,
            first_approval=best.first_approval,
        )

        detail = self.fetcher.fetch_json(detail_url)
        if detail.ok:
            record = parse_payload(ChemblMolecule, detail.payload)
            snap.pref_name = record.pref_name or snap.pref_name
            snap.molecule_type = record.molecule_type or snap.molecule_type
            if record.max_phase is not None:
                snap.max_phase = record.max_phase
            if record.first_approval is not None:
                snap.first_approval = record.first_approval

        by_molecule = urlencode({"molecule_chembl_id": chembl_id, "limit": 10})
        mechanisms = self.fetcher.fetch_json(f"{self.base_url}/mechanism.json?{by_molecule}")
        if mechanisms.ok:
            rows = parse_payload(ChemblMechanismResponse, mechanisms.payload).mechanisms
            described = (
                " | ".join(p for p in (m.mechanism_of_action, m.target_pref_name, m.action_type) if p)
                for m in rows
            )
            snap.mechanisms = unique_strings(described)[:MAX_MECHANISMS]

        by_molecule = urlencode({"molecule_chembl_id": chembl_id, "limit": 12})
        indications = self.fetcher.fetch_json(f"{self.base_url}/drug_indication.json?{by_molecule}")
        if indications.ok:
            rows = parse_payload(ChemblIndicationResponse, indications.payload).drug_indications
            snap.indications = unique_strings(r.mesh_heading or r.efo_term for r in rows)[:MAX_INDICATIONS]
        return snap
