"""
Sequential run orchestration.

Each orchestrator loads its entities, processes them one at a time with an
inter-entity delay and a global run deadline, and returns a RunSummary.
A failing entity is rolled back, logged and counted; the run continues.
Every write for an entity is committed on its own so a later failure does
not undo earlier, already valid, writes.
"""

from __future__ import annotations

import logging
import time
from dataclasses import dataclass, field
from datetime import date
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence

from sqlalchemy.orm import Session

from ..config import PipelineConfig
from ..db.models import Peptide, Vendor
from ..ingest.bundle import BundleCollector
from ..ingest.social import ENTITY_PEPTIDE, ENTITY_VENDOR, SocialAdapter, gather_posts
from ..ingest.vendor_site import VendorSeed, VendorSiteScanner
from ..mapping.terms import social_terms_for_peptide, social_terms_for_vendor
from ..persist.cache import LookupCache
from ..persist.store import EnrichmentStore
from ..scoring.grade import explain_grade
from ..scoring.vendor import (
    METHOD_UGC_INGEST,
    METHOD_WEBSITE_INGEST,
    SocialStats,
    build_reason_tags,
    score_vendor,
    strip_social_tags,
)
from ..synth.content import group_by_source, synthesize, synthesize_community_claims
from ..types import ClaimOrigin, UgcSource
from ..utils.run_id import make_run_id

logger = logging.getLogger(__name__)

PEPTIDE_SOURCE_KEYS = ("openfda", "pubchem", "chembl", "clinical_trials", "pubmed")
SOCIAL_SOURCE_KEYS = tuple(s.value for s in UgcSource)


@dataclass
class RunSummary:
    """Aggregate counters for one run."""
    run_id: str
    scanned: int = 0
    updated: int = 0
    failures: int = 0
    skipped: int = 0
    deadline_reached: bool = False
    source_hits: Dict[str, int] = field(default_factory=dict)
    counters: Dict[str, int] = field(default_factory=dict)

    def bump(self, name: str, amount: int = 1) -> None:
        self.counters[name] = self.counters.get(name, 0) + amount

    def add_hits(self, hits: Mapping[str, Any]) -> None:
        for key, value in hits.items():
            self.source_hits[key] = self.source_hits.get(key, 0) + int(value)

    def as_dict(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "scanned": self.scanned,
            "updated": self.updated,
            "failures": self.failures,
            "skipped": self.skipped,
            "deadline_reached": self.deadline_reached,
            "source_hits": dict(self.source_hits),
            **self.counters,
        }


class EntityRunner:
    """Shared sequential loop: deadline, delay, per-entity failure isolation."""

    def __init__(
        self,
        session: Session,
        config: Optional[PipelineConfig] = None,
        cache: Optional[LookupCache] = None,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.session = session
        self.config = config or PipelineConfig()
        self.cache = cache if cache is not None else LookupCache(ttl_seconds=self.config.cache_ttl_seconds)
        self.store = EnrichmentStore(session, cache=self.cache)
        self._sleep = sleep
        self._clock = clock

    def _commit(self) -> None:
        self.session.commit()

    def _run_entities(
        self,
        entities: Sequence[Any],
        summary: RunSummary,
        handle: Callable[[Any], None],
        label: Callable[[Any], str],
        delay: Optional[float] = None,
    ) -> None:
        delay = self.config.inter_entity_delay_seconds if delay is None else delay
        deadline = self.config.run_deadline_seconds
        started = self._clock()

        for position, entity in enumerate(entities):
            if deadline is not None and self._clock() - started >= deadline:
                summary.deadline_reached = True
                summary.skipped += len(entities) - position
                logger.warning(
                    f"Run deadline of {deadline}s reached; skipping {len(entities) - position} remaining entities"
                )
                break
            name = label(entity)
            try:
                handle(entity)
            except Exception as e:
                self.session.rollback()
                summary.failures += 1
                logger.error(f"{summary.run_id}: {name} failed: {e}")
                continue
            if delay > 0:
                self._sleep(delay)


class PeptideEnrichmentOrchestrator(EntityRunner):
    """Collect sources, grade, synthesize and persist content per peptide."""

    def __init__(self, session: Session, collector: BundleCollector, today: Optional[date] = None, **kwargs) -> None:
        super().__init__(session, **kwargs)
        self.collector = collector
        self.today = today

    def run(self, limit: Optional[int] = None, slugs: Sequence[str] = (), only_published: bool = True) -> RunSummary:
        jurisdiction_ids = self.store.jurisdiction_ids(required=True)
        peptides = self.store.list_peptides(
            limit=limit or (None if slugs else self.config.default_limit),
            slugs=slugs,
            only_published=only_published,
        )
        summary = RunSummary(run_id=make_run_id("enrich"), scanned=len(peptides))
        summary.source_hits = {key: 0 for key in PEPTIDE_SOURCE_KEYS}
        for counter in ("profile_updates", "safety_updates", "dosing_updates", "use_case_updates",
                        "regulatory_updates", "claim_updates"):
            summary.counters[counter] = 0
        logger.info(f"{summary.run_id}: enriching {len(peptides)} peptides")

        self._run_entities(
            peptides, summary,
            handle=lambda p: self.enrich_peptide(p, jurisdiction_ids, summary),
            label=lambda p: f"peptide {p.slug}",
        )
        logger.info(f"{summary.run_id}: {summary.updated}/{summary.scanned} peptides updated, "
                    f"{summary.failures} failures")
        return summary

    def enrich_peptide(self, peptide: Peptide, jurisdiction_ids: Dict[str, int], summary: RunSummary) -> None:
        aliases = [a.alias for a in peptide.aliases]
        bundle = self.collector.collect(peptide.canonical_name, aliases)
        summary.add_hits(bundle.source_hits())

        grade, rule = explain_grade(bundle)
        logger.debug(f"{peptide.slug}: grade {grade.value} via {rule}")
        content = synthesize(peptide.canonical_name, peptide.peptide_class, bundle, grade, today=self.today)
        us_id = jurisdiction_ids["US"]

        self.store.upsert_profile(peptide.id, content.profile)
        self._commit()
        summary.bump("profile_updates")

        self.store.upsert_safety(peptide.id, us_id, content.safety)
        self._commit()
        summary.bump("safety_updates")

        self.store.upsert_dosing(peptide.id, us_id, content.dosing)
        self._commit()
        summary.bump("dosing_updates")

        if content.regulatory is not None:
            summary.bump("regulatory_updates",
                         self.store.apply_regulatory_proposal(peptide.id, content.regulatory, jurisdiction_ids))
            self._commit()

        for use_case in content.use_cases:
            self.store.upsert_use_case(peptide.id, us_id, use_case)
            summary.bump("use_case_updates")
        if content.has_specific_use_case:
            self.store.remove_evidence_tracking(peptide.id, us_id)
        self._commit()

        summary.bump("claim_updates", self.store.replace_generated_claims(
            peptide.id, ClaimOrigin.external_sources(), content.claims,
        ))
        self._commit()
        summary.updated += 1


class SocialSignalOrchestrator(EntityRunner):
    """Community claims for peptides; community reviews and re-rating for vendors."""

    def __init__(self, session: Session, adapters: Sequence[SocialAdapter], **kwargs) -> None:
        super().__init__(session, **kwargs)
        self.adapters = list(adapters)

    def _new_summary(self, prefix: str) -> RunSummary:
        summary = RunSummary(run_id=make_run_id(prefix))
        summary.source_hits = {key: 0 for key in SOCIAL_SOURCE_KEYS}
        return summary

    def _gather(self, terms: Iterable[str], entity_type: str, summary: RunSummary):
        posts, hits = gather_posts(
            self.adapters, terms, entity_type,
            max_terms=self.config.max_terms_per_entity, sleep=self._sleep,
        )
        summary.add_hits(hits)
        return posts

    def run(self, peptide_limit: Optional[int] = None, vendor_limit: Optional[int] = None,
            peptide_slugs: Sequence[str] = (), vendor_slugs: Sequence[str] = (),
            only_published: bool = True) -> RunSummary:
        summary = self._new_summary("social")
        self.run_peptides(peptide_limit, peptide_slugs, only_published, summary=summary)
        self.run_vendors(vendor_limit, vendor_slugs, only_published, summary=summary)
        return summary

    # -- peptides ---------------------------------------------------------

    def run_peptides(self, limit: Optional[int] = None, slugs: Sequence[str] = (),
                     only_published: bool = True, summary: Optional[RunSummary] = None) -> RunSummary:
        summary = summary or self._new_summary("social")
        peptides = self.store.list_peptides(limit=limit, slugs=slugs, only_published=only_published)
        summary.scanned += len(peptides)
        summary.counters.setdefault("peptides_updated", 0)
        summary.counters.setdefault("peptide_claims_inserted", 0)
        logger.info(f"{summary.run_id}: social scan of {len(peptides)} peptides")
        self._run_entities(
            peptides, summary,
            handle=lambda p: self.ingest_peptide(p, summary),
            label=lambda p: f"peptide {p.slug}",
        )
        return summary

    def ingest_peptide(self, peptide: Peptide, summary: RunSummary) -> None:
        terms = social_terms_for_peptide(
            peptide.canonical_name, [a.alias for a in peptide.aliases],
            max_terms=self.config.max_terms_per_entity,
        )
        if not terms:
            logger.debug(f"{peptide.slug}: no usable social search terms")
            summary.updated += 1
            summary.bump("peptides_updated")
            return

        posts = self._gather(terms, ENTITY_PEPTIDE, summary)
        claims = synthesize_community_claims(peptide.canonical_name, group_by_source(posts))
        inserted = self.store.replace_generated_claims(peptide.id, ClaimOrigin.community(), claims)
        self._commit()
        summary.updated += 1
        summary.bump("peptides_updated")
        summary.bump("peptide_claims_inserted", inserted)

    # -- vendors ----------------------------------------------------------

    def run_vendors(self, limit: Optional[int] = None, slugs: Sequence[str] = (),
                    only_published: bool = True, summary: Optional[RunSummary] = None) -> RunSummary:
        summary = summary or self._new_summary("rate")
        vendors = self.store.list_vendors(limit=limit, slugs=slugs, only_published=only_published)
        summary.scanned += len(vendors)
        for counter in ("vendors_updated", "vendor_reviews_inserted", "vendor_ratings_updated"):
            summary.counters.setdefault(counter, 0)
        logger.info(f"{summary.run_id}: social scan of {len(vendors)} vendors")
        self._run_entities(
            vendors, summary,
            handle=lambda v: self.ingest_vendor(v, summary),
            label=lambda v: f"vendor {v.slug}",
        )
        return summary

    def ingest_vendor(self, vendor: Vendor, summary: RunSummary) -> None:
        terms = social_terms_for_vendor(vendor.name, vendor.website_url, max_terms=self.config.max_terms_per_entity)
        posts = self._gather(terms, ENTITY_VENDOR, summary)
        ranked = posts[: max(1, self.config.max_quotes_per_vendor)]

        summary.bump("vendor_reviews_inserted", self.store.replace_community_reviews(vendor.id, ranked))
        self._commit()

        declared = strip_social_tags(self.store.current_reason_tags(vendor.id))
        score = score_vendor(declared, self.store.listing_count(vendor.id), SocialStats.from_posts(ranked))
        self.store.record_rating_snapshot(vendor.id, score, METHOD_UGC_INGEST, build_reason_tags(declared, ranked))
        self._commit()

        summary.updated += 1
        summary.bump("vendors_updated")
        summary.bump("vendor_ratings_updated")


class VendorCatalogOrchestrator(EntityRunner):
    """Upsert vendor seeds, detect listed peptides and write a website-ingest rating."""

    def __init__(self, session: Session, scanner: VendorSiteScanner, **kwargs) -> None:
        super().__init__(session, **kwargs)
        self.scanner = scanner

    def run(self, seeds: Sequence[VendorSeed], fetch_pages: bool = True) -> RunSummary:
        jurisdiction_ids = self.store.ensure_jurisdictions()
        self._commit()

        index = self.store.peptide_name_index()
        index.add_common(seeds)

        active = [s for s in seeds if not s.is_blocked]
        if len(active) < len(seeds):
            logger.info(f"Skipping {len(seeds) - len(active)} blocked vendor seeds")

        summary = RunSummary(run_id=make_run_id("vendors"), scanned=len(active))
        for counter in ("vendors_processed", "vendors_created", "listings_upserted", "peptides_created",
                        "source_pages_fetched", "source_pages_failed"):
            summary.counters[counter] = 0

        self._run_entities(
            active, summary,
            handle=lambda seed: self.ingest_seed(seed, index, jurisdiction_ids, fetch_pages, summary),
            label=lambda seed: f"vendor seed {seed.slug}",
            delay=self.config.inter_entity_delay_seconds if fetch_pages else 0.0,
        )
        logger.info(f"{summary.run_id}: {summary.counters['vendors_processed']} vendors, "
                    f"{summary.counters['listings_upserted']} listings")
        return summary

    def ingest_seed(self, seed: VendorSeed, index, jurisdiction_ids: Dict[str, int],
                    fetch_pages: bool, summary: RunSummary) -> None:
        summary.bump("vendors_processed")
        vendor, created = self.store.upsert_vendor(seed)
        self.store.replace_trust_signals(vendor.id, seed.trust_signals)
        self._commit()
        if created:
            summary.bump("vendors_created")

        scan = self.scanner.scan(seed, index, fetch_pages=fetch_pages)
        summary.bump("source_pages_fetched", scan.pages_fetched)
        summary.bump("source_pages_failed", scan.pages_failed)

        peptide_ids: List[int] = []
        for key in scan.detected:
            peptide_id = index.peptide_id(key)
            if peptide_id is None:
                peptide, peptide_created = self.store.ensure_peptide(index.display_name(key), jurisdiction_ids)
                self._commit()
                index.bind(key, peptide.id)
                peptide_id = peptide.id
                if peptide_created:
                    summary.bump("peptides_created")
            if peptide_id not in peptide_ids:
                peptide_ids.append(peptide_id)

        for peptide_id in peptide_ids:
            self.store.upsert_listing(vendor.id, peptide_id, seed.product_url, is_affiliate=seed.is_affiliate)
            summary.bump("listings_upserted")
        self._commit()

        score = score_vendor(seed.trust_signals, len(peptide_ids))
        self.store.record_rating_snapshot(vendor.id, score, METHOD_WEBSITE_INGEST, list(seed.trust_signals))
        self._commit()
        summary.updated += 1
