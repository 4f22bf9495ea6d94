"""
Fan-out/fan-in of the biomedical adapters for one entity.

All adapters for an entity are submitted to a bounded thread pool and
collected into one SourceBundle. The pool size is the per-entity concurrency
cap. Anything that raises or misses the per-entity timeout is recorded as
that source's empty snapshot.
"""

from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, wait
from dataclasses import dataclass, fields
from typing import Dict, Optional, Sequence

from .base import SourceAdapter
from .chembl import ChemblAdapter
from .ctgov import ClinicalTrialsAdapter
from .http import HttpFetcher
from .openfda import OpenFdaAdapter
from .pubchem import PubChemAdapter
from .pubmed import PubMedAdapter
from .types import SourceBundle

logger = logging.getLogger(__name__)


@dataclass
class AdapterSet:
    """One adapter per SourceBundle field, keyed by the field name."""
    clinical_trials: SourceAdapter
    pubmed: SourceAdapter
    openfda: SourceAdapter
    pubchem: SourceAdapter
    chembl: SourceAdapter

    @classmethod
    def default(cls, fetcher: HttpFetcher, ncbi_api_key: Optional[str] = None) -> "AdapterSet":
        return cls(
            clinical_trials=ClinicalTrialsAdapter(fetcher),
            pubmed=PubMedAdapter(fetcher, api_key=ncbi_api_key),
            openfda=OpenFdaAdapter(fetcher),
            pubchem=PubChemAdapter(fetcher),
            chembl=ChemblAdapter(fetcher),
        )

    def as_dict(self) -> Dict[str, SourceAdapter]:
        return {f.name: getattr(self, f.name) for f in fields(self)}


class BundleCollector:
    """Reusable across entities; call ``close`` (or use as a context manager)."""

    def __init__(self, adapters: AdapterSet, max_workers: int = 5, timeout: Optional[float] = 90.0) -> None:
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")
        self.adapters = adapters
        self.max_workers = max_workers
        self.timeout = timeout
        self._pool = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="adapter")

    def collect(self, canonical_name: str, aliases: Sequence[str] = ()) -> SourceBundle:
        futures = {
            field_name: self._pool.submit(adapter.safe_query, canonical_name, tuple(aliases))
            for field_name, adapter in self.adapters.as_dict().items()
        }
        done, _ = wait(futures.values(), timeout=self.timeout)

        parts = {}
        for field_name, future in futures.items():
            adapter = getattr(self.adapters, field_name)
            if future not in done:
                future.cancel()
                logger.warning(f"{adapter.name} timed out for {canonical_name!r}; treating source as absent")
                parts[field_name] = adapter.empty()
                continue
            try:
                parts[field_name] = future.result()
            except Exception as e:
                logger.warning(f"{adapter.name} failed for {canonical_name!r}: {e}")
                parts[field_name] = adapter.empty()
        return SourceBundle(**parts)

    def close(self) -> None:
        self._pool.shutdown(wait=False, cancel_futures=True)

    def __enter__(self) -> "BundleCollector":
        return self

    def __exit__(self, *exc) -> None:
        self.close()


def collect_source_bundle(
    canonical_name: str,
    aliases: Sequence[str],
    adapters: AdapterSet,
    max_workers: int = 5,
    timeout: Optional[float] = 90.0,
) -> SourceBundle:
    """One-shot convenience wrapper around BundleCollector."""
    with BundleCollector(adapters, max_workers=max_workers, timeout=timeout) as collector:
        return collector.collect(canonical_name, aliases)
