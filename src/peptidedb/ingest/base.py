"""Common adapter surface."""

from __future__ import annotations

import logging
from typing import Any, Sequence

from .http import HttpFetcher

logger = logging.getLogger(__name__)


class SourceAdapter:
    """One external source. ``query`` returns that source's snapshot type.

    Adapters hold no per-call state, so one instance can serve concurrent
    queries for the same entity. ``safe_query`` is what the bundle collector
    calls: any unexpected error yields the empty snapshot.
    """

    name: str = "source"

    def __init__(self, fetcher: HttpFetcher) -> None:
        self.fetcher = fetcher

    def empty(self, query_url: str = "") -> Any:
        raise NotImplementedError

    def query(self, canonical_name: str, aliases: Sequence[str] = ()) -> Any:
        raise NotImplementedError

    def safe_query(self, canonical_name: str, aliases: Sequence[str] = ()) -> Any:
        try:
            return self.query(canonical_name, aliases)
        except Exception as e:
            logger.warning(f"{self.name} adapter failed for {canonical_name!r}: {e}")
            return self.empty()
