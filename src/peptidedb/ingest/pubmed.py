"""
PubMed adapter (NCBI E-utilities).

Two steps: esearch for the total count and the newest six PMIDs, then
esummary for their titles and publication years. A failed summary call still
keeps the count.
"""

from __future__ import annotations

import re
from typing import Optional, Sequence
from urllib.parse import urlencode

from ..mapping.normalize import build_search_term, truncate
from .base import SourceAdapter
from .schemas import ESearchResponse, ESummaryResponse, parse_payload
from .types import PubMedSnapshot

EUTILS_BASE = "https://eutils.ncbi.nlm.nih.gov/entrez/eutils"
RETMAX = 6
TITLE_MAX_CHARS = 180

_YEAR = re.compile(r"\b(?:19|20)\d{2}\b")


def literature_term(canonical_name: str) -> str:
    name = build_search_term(canonical_name) or canonical_name
    return f'"{name}"[Title/Abstract] AND (clinical OR trial OR randomized OR review)'


class PubMedAdapter(SourceAdapter):
    name = "pubmed"

    def __init__(self, fetcher, api_key: Optional[str] = None, base_url: str = EUTILS_BASE) -> None:
        super().__init__(fetcher)
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")

    def empty(self, query_url: str = "") -> PubMedSnapshot:
        return PubMedSnapshot(query_url=query_url)

    def _url(self, endpoint: str, params: dict) -> str:
        if self.api_key:
            params = {**params, "api_key": self.api_key}
        return f"{self.base_url}/{endpoint}?{urlencode(params)}"

    def search_url(self, canonical_name: str) -> str:
        # the citation URL never carries the API key
        params = {"db": "pubmed", "retmode": "json", "retmax": RETMAX, "sort": "pub+date",
                  "term": literature_term(canonical_name)}
        return f"{self.base_url}/esearch.fcgi?{urlencode(params)}"

    def query(self, canonical_name: str, aliases: Sequence[str] = ()) -> PubMedSnapshot:
        public_url = self.search_url(canonical_name)
        search = self.fetcher.fetch_json(self._url("esearch.fcgi", {
            "db": "pubmed", "retmode": "json", "retmax": RETMAX, "sort": "pub+date",
            "term": literature_term(canonical_name),
        }))
        if not search.ok:
            return self.empty(public_url)

        found = parse_payload(ESearchResponse, search.payload).esearchresult
        pmids = [p for p in found.idlist if p]
        snap = PubMedSnapshot(query_url=public_url, count=max(0, found.count or 0), pmids=pmids)
        if not pmids:
            return snap

        summary = self.fetcher.fetch_json(self._url("esummary.fcgi", {
            "db": "pubmed", "retmode": "json", "id": ",".join(pmids),
        }))
        if not summary.ok:
            return snap

        records = parse_payload(ESummaryResponse, summary.payload)
        for pmid in pmids:
            row = records.record(pmid)
            match = _YEAR.search(row.pubdate)
            if match:
                year = int(match.group(0))
                if snap.newest_year is None or year > snap.newest_year:
                    snap.newest_year = year
            if row.title:
                snap.recent_titles.append(truncate(row.title, TITLE_MAX_CHARS))
        return snap
