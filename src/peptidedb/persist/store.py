"""
Idempotent writes for the enrichment pipeline.

EnrichmentStore wraps one SQLAlchemy session. Each public write is an
independent operation that leaves the store valid on its own; callers
commit after each one. Rules enforced here:

* curated text is never overwritten by machine output (placeholder marker,
  ``is_curated`` profiles, ``is_machine_generated`` dosing rows,
  ``is_machine_asserted`` regulatory rows);
* generated claims are replaced by ClaimOrigin, inside a SAVEPOINT, so a
  failure leaves the old set or the new set;
* citations are deduplicated on (url, published date), tolerating a
  unique-constraint race by re-querying;
* a vendor has at most one current rating snapshot.
"""

from __future__ import annotations

import json
import logging
import threading
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from ..db.models import (
    Citation,
    Jurisdiction,
    Peptide,
    PeptideAlias,
    PeptideClaim,
    PeptideDosingEntry,
    PeptideProfile,
    PeptideRegulatoryStatus,
    PeptideSafetyEntry,
    PeptideUseCase,
    UseCase,
    Vendor,
    VendorPeptideListing,
    VendorRatingSnapshot,
    VendorVerification,
)
from ..errors import ConfigurationError, PersistenceError
from ..ingest.types import UgcPost
from ..ingest.vendor_site import PeptideNameIndex, VendorSeed
from ..mapping.normalize import slugify
from ..scoring.vendor import VendorScore
from ..synth.content import (
    EVIDENCE_TRACKING_SLUG,
    ClaimProposal,
    DosingProposal,
    ProfileText,
    RegulatoryProposal,
    SafetyText,
    UseCaseProposal,
    is_placeholder,
    mark_placeholder,
)
from ..types import JURISDICTION_CODES, ClaimOrigin, RegulatoryStatus
from .cache import LookupCache

logger = logging.getLogger(__name__)

JURISDICTION_NAMES = {
    "US": "United States",
    "EU": "European Union",
    "UK": "United Kingdom",
    "CA": "Canada",
    "AU": "Australia",
}

COMMUNITY_REVIEW_PREFIX = "community_review_"
DECLARED_SIGNAL_VALUE = "declared_by_vendor_profile"
LISTING_PEPTIDE_CLASS = "Commercial peptide listing"
LISTING_STATUS_NOTE = "Auto-created from vendor listing ingestion."

PROFILE_FIELDS = ("intro", "mechanism", "effectiveness_summary", "long_description")
SAFETY_FIELDS = ("adverse_effects", "contraindications", "interactions", "monitoring")

class VendorLocks:
    """Per-vendor locks serializing snapshot flips between threads of one run."""

    def __init__(self) -> None:
        self._guard = threading.Lock()
        self._locks: Dict[int, threading.Lock] = {}

    def for_vendor(self, vendor_id: int) -> threading.Lock:
        with self._guard:
            return self._locks.setdefault(vendor_id, threading.Lock())

    def __len__(self) -> int:
        return len(self._locks)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def merge_field(existing: Optional[str], generated: Optional[str]) -> Optional[str]:
    """Placeholder precedence for one text field.

    Empty or placeholder text is replaced by new text; curated text stays.
    Empty generated text never erases anything.
    """
    if not generated:
        return existing
    if not existing or is_placeholder(existing):
        return generated
    return existing


class EnrichmentStore:
    def __init__(self, session: Session, cache: Optional[LookupCache] = None,
                 clock: Callable[[], datetime] = _utcnow,
                 vendor_locks: Optional[VendorLocks] = None) -> None:
        self.session = session
        self.cache = cache if cache is not None else LookupCache()
        self.vendor_locks = vendor_locks if vendor_locks is not None else VendorLocks()
        self._now = clock

    # ------------------------------------------------------------------
    # Reference data
    # ------------------------------------------------------------------

    def ensure_jurisdictions(self) -> Dict[str, int]:
        """Insert any missing jurisdictions; return code -> id."""
        existing = {j.code: j for j in self.session.scalars(select(Jurisdiction))}
        for code in JURISDICTION_CODES:
            if code not in existing:
                row = Jurisdiction(code=code, name=JURISDICTION_NAMES[code])
                self.session.add(row)
                existing[code] = row
        self.session.flush()
        self.cache.invalidate("jurisdiction")
        return self.jurisdiction_ids()

    def jurisdiction_ids(self, required: bool = False) -> Dict[str, int]:
        out: Dict[str, int] = {}
        missing = []
        for code in JURISDICTION_CODES:
            jid = self.cache.get("jurisdiction", code)
            if jid is None:
                jid = self.session.scalar(select(Jurisdiction.id).where(Jurisdiction.code == code))
                if jid is not None:
                    self.cache.set("jurisdiction", code, jid)
            if jid is None:
                missing.append(code)
            else:
                out[code] = jid
        if required and missing:
            raise ConfigurationError(
                f"Jurisdictions not seeded: {', '.join(missing)} (run `peptidedb init-db`)"
            )
        return out

    def use_case_id(self, slug: str, name: str) -> int:
        cached = self.cache.get("use_case", slug)
        if cached is not None:
            return cached
        row = self.session.scalar(select(UseCase).where(UseCase.slug == slug))
        if row is None:
            row = UseCase(slug=slug, name=name)
            self.session.add(row)
            self.session.flush()
        self.cache.set("use_case", slug, row.id)
        return row.id

    # ------------------------------------------------------------------
    # Entity loading
    # ------------------------------------------------------------------

    def list_peptides(self, limit: Optional[int] = None, slugs: Sequence[str] = (),
                      only_published: bool = True) -> List[Peptide]:
        stmt = select(Peptide).options(selectinload(Peptide.aliases)).order_by(Peptide.canonical_name)
        if only_published:
            stmt = stmt.where(Peptide.is_published.is_(True))
        if slugs:
            stmt = stmt.where(Peptide.slug.in_(list(slugs)))
        if limit:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))

    def list_vendors(self, limit: Optional[int] = None, slugs: Sequence[str] = (),
                     only_published: bool = True) -> List[Vendor]:
        stmt = select(Vendor).order_by(Vendor.name)
        if only_published:
            stmt = stmt.where(Vendor.is_published.is_(True))
        if slugs:
            stmt = stmt.where(Vendor.slug.in_(list(slugs)))
        if limit:
            stmt = stmt.limit(limit)
        return list(self.session.scalars(stmt))

    def peptide_name_index(self) -> PeptideNameIndex:
        """Known peptide names and aliases, for catalog detection."""
        index = PeptideNameIndex()
        for peptide in self.session.scalars(select(Peptide)):
            index.add(peptide.canonical_name, peptide.id)
        for alias in self.session.scalars(select(PeptideAlias)):
            index.add(alias.alias, alias.peptide_id)
        return index

    # ------------------------------------------------------------------
    # Peptide content
    # ------------------------------------------------------------------

    def upsert_profile(self, peptide_id: int, profile: ProfileText) -> bool:
        """Returns True when any field changed."""
        row = self.session.get(PeptideProfile, peptide_id)
        if row is None:
            row = PeptideProfile(peptide_id=peptide_id, is_curated=False)
            self.session.add(row)
        changed = False
        for name in PROFILE_FIELDS:
            current = getattr(row, name)
            generated = getattr(profile, name)
            value = merge_field(current, generated) if row.is_curated else (generated or current)
            if value != current:
                setattr(row, name, value)
                changed = True
        self.session.flush()
        return changed

    def upsert_safety(self, peptide_id: int, jurisdiction_id: int, safety: SafetyText) -> bool:
        row = self.session.scalar(
            select(PeptideSafetyEntry).where(
                PeptideSafetyEntry.peptide_id == peptide_id,
                PeptideSafetyEntry.jurisdiction_id == jurisdiction_id,
            )
        )
        if row is None:
            row = PeptideSafetyEntry(peptide_id=peptide_id, jurisdiction_id=jurisdiction_id)
            for name in SAFETY_FIELDS:
                setattr(row, name, "")
            self.session.add(row)
        changed = False
        for name, generated in safety.as_dict().items():
            current = getattr(row, name)
            value = merge_field(current, generated) or ""
            if value != current:
                setattr(row, name, value)
                changed = True
        self.session.flush()
        return changed

    def upsert_dosing(self, peptide_id: int, jurisdiction_id: int, dosing: DosingProposal) -> PeptideDosingEntry:
        """Update the canonical machine entry; manual entries are not touched."""
        machine_rows = list(self.session.scalars(
            select(PeptideDosingEntry)
            .where(
                PeptideDosingEntry.peptide_id == peptide_id,
                PeptideDosingEntry.jurisdiction_id == jurisdiction_id,
                PeptideDosingEntry.is_machine_generated.is_(True),
            )
            .order_by(PeptideDosingEntry.id)
        ))
        target = next((r for r in machine_rows if r.context == dosing.context.value), None)
        if target is None and machine_rows:
            target = machine_rows[0]
        for extra in machine_rows:
            if extra is not target:
                self.session.delete(extra)

        if target is None:
            target = PeptideDosingEntry(
                peptide_id=peptide_id, jurisdiction_id=jurisdiction_id, is_machine_generated=True,
            )
            self.session.add(target)
        target.context = dosing.context.value
        target.population = dosing.population
        target.route = dosing.route
        target.starting_dose = dosing.starting_dose
        target.maintenance_dose = dosing.maintenance_dose
        target.frequency = dosing.frequency
        target.notes = dosing.notes
        self.session.flush()
        return target

    def upsert_use_case(self, peptide_id: int, jurisdiction_id: int, proposal: UseCaseProposal) -> PeptideUseCase:
        use_case_id = self.use_case_id(proposal.slug, proposal.name)
        row = self.session.scalar(
            select(PeptideUseCase).where(
                PeptideUseCase.peptide_id == peptide_id,
                PeptideUseCase.use_case_id == use_case_id,
                PeptideUseCase.jurisdiction_id == jurisdiction_id,
            )
        )
        if row is None:
            row = PeptideUseCase(peptide_id=peptide_id, use_case_id=use_case_id, jurisdiction_id=jurisdiction_id)
            self.session.add(row)
        row.evidence_grade = proposal.evidence_grade.value
        row.consumer_summary = proposal.consumer_summary
        row.clinical_summary = proposal.clinical_summary
        self.session.flush()
        return row

    def remove_evidence_tracking(self, peptide_id: int, jurisdiction_id: int) -> int:
        use_case_id = self.session.scalar(select(UseCase.id).where(UseCase.slug == EVIDENCE_TRACKING_SLUG))
        if use_case_id is None:
            return 0
        result = self.session.execute(
            delete(PeptideUseCase).where(
                PeptideUseCase.peptide_id == peptide_id,
                PeptideUseCase.jurisdiction_id == jurisdiction_id,
                PeptideUseCase.use_case_id == use_case_id,
            )
        )
        return result.rowcount or 0

    def apply_regulatory_proposal(self, peptide_id: int, proposal: RegulatoryProposal,
                                  jurisdiction_ids: Dict[str, int]) -> int:
        """Write machine-asserted statuses; jurisdictions with a curated status are skipped."""
        changes = 0
        for code, status in proposal.statuses.items():
            jid = jurisdiction_ids.get(code)
            if jid is None:
                continue
            rows = list(self.session.scalars(
                select(PeptideRegulatoryStatus).where(
                    PeptideRegulatoryStatus.peptide_id == peptide_id,
                    PeptideRegulatoryStatus.jurisdiction_id == jid,
                )
            ))
            if any(not r.is_machine_asserted for r in rows):
                continue
            note = proposal.notes.get(code)
            keep = None
            for row in rows:
                if row.status == status.value and keep is None:
                    keep = row
                else:
                    self.session.delete(row)
                    changes += 1
            if keep is None:
                self.session.flush()
                self.session.add(PeptideRegulatoryStatus(
                    peptide_id=peptide_id, jurisdiction_id=jid, status=status.value,
                    notes=note, is_machine_asserted=True,
                ))
                changes += 1
            elif keep.notes != note:
                keep.notes = note
                changes += 1
        self.session.flush()
        return changes

    # ------------------------------------------------------------------
    # Claims and citations
    # ------------------------------------------------------------------

    def _find_citation(self, url: str, published_at: date) -> Optional[Citation]:
        return self.session.scalar(
            select(Citation)
            .where(Citation.source_url == url, Citation.published_at == published_at)
            .order_by(Citation.id.desc())
            .limit(1)
        )

    def find_or_create_citation(self, url: str, title: Optional[str], published_at: date) -> Citation:
        existing = self._find_citation(url, published_at)
        if existing is not None:
            return existing
        try:
            with self.session.begin_nested():
                citation = Citation(source_url=url, source_title=title or None, published_at=published_at)
                self.session.add(citation)
                self.session.flush()
        except IntegrityError:
            # another writer inserted the same (url, date) first
            citation = self._find_citation(url, published_at)
            if citation is None:
                raise
            logger.debug(f"Citation race on {url} resolved by re-query")
        return citation

    def replace_generated_claims(self, peptide_id: int, origins: Iterable[ClaimOrigin],
                                 claims: Sequence[ClaimProposal]) -> int:
        """Delete-then-insert the claims of the given machine origins only."""
        origins = tuple(origins)
        if any(not o.is_machine_generated for o in origins):
            raise ValueError("curated claims cannot be replaced by the pipeline")
        stray = [c.origin for c in claims if c.origin not in origins]
        if stray:
            raise ValueError(f"claim origins {sorted(o.value for o in stray)} are outside the replaced set")

        with self.session.begin_nested():
            self.session.execute(
                delete(PeptideClaim).where(
                    PeptideClaim.peptide_id == peptide_id,
                    PeptideClaim.origin.in_([o.value for o in origins]),
                )
            )
            for claim in claims:
                if not claim.source_url or not claim.claim_text:
                    continue
                citation = self.find_or_create_citation(claim.source_url, claim.source_title, claim.published_at)
                self.session.add(PeptideClaim(
                    peptide_id=peptide_id,
                    origin=claim.origin.value,
                    section=claim.section,
                    claim_text=claim.claim_text,
                    evidence_grade=claim.evidence_grade.value,
                    citation_id=citation.id,
                ))
            self.session.flush()
        return sum(1 for c in claims if c.source_url and c.claim_text)

    # ------------------------------------------------------------------
    # Vendors
    # ------------------------------------------------------------------

    def upsert_vendor(self, seed: VendorSeed) -> Tuple[Vendor, bool]:
        vendor = self.session.scalar(select(Vendor).where(Vendor.slug == seed.slug))
        created = vendor is None
        if created:
            vendor = Vendor(slug=seed.slug)
            self.session.add(vendor)
        vendor.name = seed.name
        vendor.website_url = seed.website_url
        vendor.is_published = True
        self.session.flush()
        return vendor, created

    def replace_trust_signals(self, vendor_id: int, trust_signals: Sequence[str]) -> int:
        """Declared signals replace declared signals; community reviews are kept."""
        self.session.execute(
            delete(VendorVerification).where(
                VendorVerification.vendor_id == vendor_id,
                ~VendorVerification.verification_type.like(f"{COMMUNITY_REVIEW_PREFIX}%"),
            )
        )
        now = self._now()
        for signal in trust_signals:
            self.session.add(VendorVerification(
                vendor_id=vendor_id, verification_type=signal, value=DECLARED_SIGNAL_VALUE, verified_at=now,
            ))
        self.session.flush()
        return len(trust_signals)

    def replace_community_reviews(self, vendor_id: int, posts: Sequence[UgcPost]) -> int:
        self.session.execute(
            delete(VendorVerification).where(
                VendorVerification.vendor_id == vendor_id,
                VendorVerification.verification_type.like(f"{COMMUNITY_REVIEW_PREFIX}%"),
            )
        )
        for post in posts:
            value = {
                "source": post.source.value,
                "community": post.community,
                "quote": post.quote,
                "sourceUrl": post.url,
                "createdAt": post.created_at.isoformat(),
                "author": post.author or None,
                "sentimentScore": post.sentiment_value,
                "sentimentLabel": post.sentiment_label.value,
                "upvotes": post.score,
                "commentCount": post.comment_count,
            }
            self.session.add(VendorVerification(
                vendor_id=vendor_id,
                verification_type=f"{COMMUNITY_REVIEW_PREFIX}{post.source.value}",
                value=json.dumps(value),
                verified_at=post.created_at,
            ))
        self.session.flush()
        return len(posts)

    def upsert_listing(self, vendor_id: int, peptide_id: int, product_url: Optional[str],
                       is_affiliate: bool = False) -> bool:
        """Returns True when the listing was created."""
        row = self.session.scalar(
            select(VendorPeptideListing).where(
                VendorPeptideListing.vendor_id == vendor_id,
                VendorPeptideListing.peptide_id == peptide_id,
            )
        )
        created = row is None
        if created:
            row = VendorPeptideListing(vendor_id=vendor_id, peptide_id=peptide_id)
            self.session.add(row)
        row.product_url = product_url
        row.is_affiliate = is_affiliate
        self.session.flush()
        return created

    def listing_count(self, vendor_id: int) -> int:
        return self.session.scalar(
            select(func.count(VendorPeptideListing.id)).where(VendorPeptideListing.vendor_id == vendor_id)
        ) or 0

    def current_snapshot(self, vendor_id: int) -> Optional[VendorRatingSnapshot]:
        return self.session.scalar(
            select(VendorRatingSnapshot)
            .where(VendorRatingSnapshot.vendor_id == vendor_id, VendorRatingSnapshot.is_current.is_(True))
            .order_by(VendorRatingSnapshot.id.desc())
            .limit(1)
        )

    def current_reason_tags(self, vendor_id: int) -> List[str]:
        snapshot = self.current_snapshot(vendor_id)
        return list(snapshot.reason_tags or []) if snapshot is not None else []

    def record_rating_snapshot(self, vendor_id: int, score: VendorScore, method_version: str,
                               reason_tags: Sequence[str]) -> VendorRatingSnapshot:
        """Flip the current snapshot off, then insert the new current one."""
        with self.vendor_locks.for_vendor(vendor_id):
            with self.session.begin_nested():
                # row lock on PostgreSQL; SQLite serializes writers anyway
                self.session.scalar(select(Vendor.id).where(Vendor.id == vendor_id).with_for_update())
                self.session.execute(
                    update(VendorRatingSnapshot)
                    .where(VendorRatingSnapshot.vendor_id == vendor_id, VendorRatingSnapshot.is_current.is_(True))
                    .values(is_current=False)
                    .execution_options(synchronize_session="fetch")
                )
                snapshot = VendorRatingSnapshot(
                    vendor_id=vendor_id,
                    rating=Decimal(str(score.rating)) if score.rating is not None else None,
                    confidence=Decimal(str(score.confidence)) if score.confidence is not None else None,
                    method_version=method_version,
                    reason_tags=list(reason_tags),
                    calculated_at=self._now(),
                    is_current=True,
                )
                self.session.add(snapshot)
                self.session.flush()
        return snapshot

    # ------------------------------------------------------------------
    # Peptides discovered from vendor catalogs
    # ------------------------------------------------------------------

    def ensure_peptide(self, display_name: str, jurisdiction_ids: Dict[str, int]) -> Tuple[Peptide, bool]:
        """Existing peptide by slug, or a published placeholder entry."""
        slug = slugify(display_name)
        if not slug:
            raise PersistenceError(f"Invalid peptide name: {display_name!r}")
        peptide = self.session.scalar(select(Peptide).where(Peptide.slug == slug))
        if peptide is not None:
            return peptide, False

        peptide = Peptide(
            slug=slug, canonical_name=display_name, peptide_class=LISTING_PEPTIDE_CLASS, is_published=True,
        )
        self.session.add(peptide)
        self.session.flush()
        self.session.add(PeptideProfile(
            peptide_id=peptide.id,
            is_curated=False,
            intro=mark_placeholder(
                f"{display_name} is listed by commercial vendors and is currently tracked as an "
                f"evidence-first reference entry."
            ),
            mechanism=mark_placeholder(f"{display_name} mechanism summary requires source-level curation."),
            effectiveness_summary=mark_placeholder(
                "Effectiveness evidence requires curated review before treatment-level interpretation."
            ),
            long_description=mark_placeholder(
                "This peptide page was created from vendor listing ingestion and should be interpreted as "
                "catalog presence, not proof of clinical effectiveness."
            ),
        ))
        for code in JURISDICTION_CODES:
            jid = jurisdiction_ids.get(code)
            if jid is not None:
                self.session.add(PeptideRegulatoryStatus(
                    peptide_id=peptide.id, jurisdiction_id=jid, status=RegulatoryStatus.INVESTIGATIONAL.value,
                    notes=LISTING_STATUS_NOTE, is_machine_asserted=True,
                ))
        self.session.flush()
        logger.info(f"Created peptide {slug!r} from vendor listing")
        return peptide, True
