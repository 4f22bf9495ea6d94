"""
openFDA drug label adapter.

Tries the canonical name and aliases in turn (at most seven variants) against
generic, brand and substance name fields. The first label returned wins.
"""

from __future__ import annotations

import logging
from typing import List, Sequence
from urllib.parse import urlencode

from ..mapping.normalize import truncate, unique_strings
from ..mapping.terms import name_variants
from ..utils.text import PROTOCOL_DEPENDENT, first_non_empty, infer_frequency, infer_route
from .base import SourceAdapter
from .schemas import OpenFdaLabel, OpenFdaResponse, parse_payload
from .types import OpenFdaSnapshot

logger = logging.getLogger(__name__)

LABEL_URL = "https://api.fda.gov/drug/label.json"
MAX_VARIANTS = 7
FIELD_MAX_CHARS = 600


def _text(values: List[str]) -> str:
    return truncate(" ".join(v for v in values if v), FIELD_MAX_CHARS)


def label_query(term: str) -> str:
    return (
        f'openfda.generic_name:"{term}" OR openfda.brand_name:"{term}" '
        f'OR openfda.substance_name:"{term}"'
    )


def snapshot_from_label(label: OpenFdaLabel, term: str, url: str) -> OpenFdaSnapshot:
    indications = _text(label.indications_and_usage)
    dosage = _text(label.dosage_and_administration)
    warnings = _text(label.warnings_and_cautions)
    pharmacology = _text(label.clinical_pharmacology)

    routes = [infer_route(t) for t in (indications, dosage, pharmacology)]
    freqs = [infer_frequency(t) for t in (dosage, indications)]

    return OpenFdaSnapshot(
        query_url=url,
        found=True,
        matched_term=term,
        indications=indications,
        dosage=dosage,
        contraindications=first_non_empty([_text(label.contraindications), warnings]),
        warnings=warnings,
        adverse_reactions=_text(label.adverse_reactions),
        interactions=_text(label.drug_interactions),
        clinical_pharmacology=pharmacology,
        route_hints=unique_strings(r for r in routes if r != PROTOCOL_DEPENDENT),
        frequency_hints=unique_strings(f for f in freqs if f != PROTOCOL_DEPENDENT),
    )


class OpenFdaAdapter(SourceAdapter):
    name = "openfda"

    def __init__(self, fetcher, base_url: str = LABEL_URL) -> None:
        super().__init__(fetcher)
        self.base_url = base_url

    def empty(self, query_url: str = "") -> OpenFdaSnapshot:
        return OpenFdaSnapshot(query_url=query_url)

    def label_url(self, term: str) -> str:
        return f"{self.base_url}?{urlencode({'search': label_query(term), 'limit': 1})}"

    def query(self, canonical_name: str, aliases: Sequence[str] = ()) -> OpenFdaSnapshot:
        first_url = ""
        for term in name_variants(canonical_name, aliases, limit=MAX_VARIANTS):
            url = self.label_url(term)
            first_url = first_url or url
            result = self.fetcher.fetch_json(url)
            if not result.ok:
                # 404 means no label for this variant
                continue
            labels = parse_payload(OpenFdaResponse, result.payload).results
            if labels:
                logger.debug(f"openFDA label matched {canonical_name!r} via {term!r}")
                return snapshot_from_label(labels[0], term, url)
        return self.empty(first_url)
