"""
ClinicalTrials.gov v2 adapter.

One search call per entity: GET /api/v2/studies?query.term=...&pageSize=100.
Status tallies, posted-results count, latest update date and the most
frequent conditions are computed client-side from the returned page.
"""

from __future__ import annotations

from collections import Counter
from datetime import date, datetime
from typing import Optional, Sequence
from urllib.parse import urlencode

from ..mapping.normalize import build_search_term
from .base import SourceAdapter
from .schemas import CtSearchResponse, CtStudy, parse_payload
from .types import ClinicalTrialsSnapshot

DEFAULT_BASE_URL = "https://clinicaltrials.gov/api/v2"
PAGE_SIZE = 100
TOP_CONDITIONS = 6


def _parse_date(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    for fmt in ("%Y-%m-%d", "%Y-%m"):
        try:
            return datetime.strptime(value, fmt).date()
        except ValueError:
            continue
    return None


def _update_date(study: CtStudy) -> Optional[date]:
    status = study.protocol_section.status_module
    return _parse_date(status.last_update_post.date) or _parse_date(status.last_update_submit.date)


def summarize_studies(response: CtSearchResponse, query_url: str) -> ClinicalTrialsSnapshot:
    snap = ClinicalTrialsSnapshot(query_url=query_url, total=len(response.studies))
    conditions: Counter = Counter()

    for study in response.studies:
        status = study.protocol_section.status_module.overall_status.upper()
        if status == "COMPLETED":
            snap.completed += 1
        elif status == "RECRUITING":
            snap.recruiting += 1
        elif status == "ACTIVE_NOT_RECRUITING":
            snap.active += 1
        elif status == "TERMINATED":
            snap.terminated += 1

        if study.has_results:
            snap.with_results += 1

        updated = _update_date(study)
        if updated and (snap.latest_update is None or updated > snap.latest_update):
            snap.latest_update = updated

        for condition in study.protocol_section.conditions_module.conditions:
            if condition:
                conditions[condition] += 1

    # Counter.most_common keeps first-seen order for ties
    snap.top_conditions = [c for c, _ in conditions.most_common(TOP_CONDITIONS)]
    return snap


class ClinicalTrialsAdapter(SourceAdapter):
    name = "clinical_trials"

    def __init__(self, fetcher, base_url: str = DEFAULT_BASE_URL) -> None:
        super().__init__(fetcher)
        self.base_url = base_url.rstrip("/")

    def empty(self, query_url: str = "") -> ClinicalTrialsSnapshot:
        return ClinicalTrialsSnapshot(query_url=query_url)

    def search_url(self, canonical_name: str) -> str:
        term = build_search_term(canonical_name) or canonical_name
        params = {"query.term": term, "pageSize": PAGE_SIZE, "format": "json"}
        return f"{self.base_url}/studies?{urlencode(params)}"

    def query(self, canonical_name: str, aliases: Sequence[str] = ()) -> ClinicalTrialsSnapshot:
        url = self.search_url(canonical_name)
        result = self.fetcher.fetch_json(url)
        if not result.ok:
            return self.empty(url)
        return summarize_studies(parse_payload(CtSearchResponse, result.payload), url)
