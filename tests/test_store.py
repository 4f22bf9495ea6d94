"""
Unit tests for EnrichmentStore.

Covers the persistence rules: placeholder precedence, claim replacement by
origin, citation deduplication, single current rating snapshot and
idempotent re-application of the same proposals.
"""

from datetime import date

import pytest
from sqlalchemy import func, select

from peptidedb.db.models import (
    Citation,
    Jurisdiction,
    PeptideClaim,
    PeptideDosingEntry,
    PeptideProfile,
    PeptideRegulatoryStatus,
    PeptideSafetyEntry,
    PeptideUseCase,
    VendorPeptideListing,
    VendorRatingSnapshot,
    VendorVerification,
)
from peptidedb.errors import ConfigurationError, PersistenceError
from peptidedb.ingest.types import OpenFdaSnapshot, SourceBundle
from peptidedb.ingest.vendor_site import VendorSeed
from peptidedb.persist.cache import LookupCache
from peptidedb.persist.store import COMMUNITY_REVIEW_PREFIX, EnrichmentStore, VendorLocks, merge_field
from peptidedb.scoring.vendor import METHOD_UGC_INGEST, METHOD_WEBSITE_INGEST, VendorScore
from peptidedb.synth.content import (
    ClaimProposal,
    DosingProposal,
    ProfileText,
    SafetyText,
    UseCaseProposal,
    mark_placeholder,
    propose_regulatory_status,
)
from peptidedb.types import ClaimOrigin, DosingContext, EvidenceGrade, RegulatoryStatus, UgcSource

from factories import add_peptide, make_post


def _count(session, model, *where):
    stmt = select(func.count()).select_from(model)
    for clause in where:
        stmt = stmt.where(clause)
    return session.scalar(stmt)


def _claim(origin, url="https://pubmed.ncbi.nlm.nih.gov/?term=semaglutide", text="PubMed returns 12 records."):
    return ClaimProposal(origin, text, EvidenceGrade.B, url, "PubMed search results", date(2025, 1, 1))


def _seed(**overrides):
    raw = {
        "slug": "acme-peptides",
        "name": "Acme Peptides",
        "website_url": "https://acmepeptides.com",
        "trust_signals": ["coa_published", "third_party_testing"],
        "source_urls": ["https://acmepeptides.com/shop"],
        "fallback_peptides": ["BPC-157"],
    }
    raw.update(overrides)
    return VendorSeed.from_mapping(raw)


class TestMergeField:
    """Test placeholder precedence for a single field."""

    def test_empty_existing_takes_generated(self):
        assert merge_field(None, "new") == "new"
        assert merge_field("", "new") == "new"

    def test_placeholder_is_replaced(self):
        assert merge_field(mark_placeholder("old"), "new") == "new"
        assert merge_field(" " + mark_placeholder("old").upper(), "new") == "new"

    def test_curated_text_is_kept(self):
        assert merge_field("Editor text", mark_placeholder("machine")) == "Editor text"

    def test_empty_generated_never_erases(self):
        assert merge_field("Editor text", "") == "Editor text"
        assert merge_field(None, None) is None


class TestJurisdictions:
    """Test jurisdiction seeding and lookup."""

    def test_ensure_is_idempotent(self, store, session):
        first = store.ensure_jurisdictions()
        second = store.ensure_jurisdictions()
        session.commit()

        assert set(first) == {"US", "EU", "UK", "CA", "AU"}
        assert first == second
        assert _count(session, Jurisdiction) == 5

    def test_required_lookup_fails_when_unseeded(self, store):
        with pytest.raises(ConfigurationError, match="init-db"):
            store.jurisdiction_ids(required=True)

    def test_optional_lookup_returns_partial_map(self, store):
        assert store.jurisdiction_ids() == {}


class TestProfileAndSafety:
    """Test profile and safety upserts against curated content."""

    def _profile(self, text="Generated"):
        return ProfileText(intro=f"{text} intro", mechanism=f"{text} mechanism",
                           effectiveness_summary=f"{text} effect", long_description=f"{text} long")

    def test_machine_profile_is_replaced(self, store, session):
        peptide = add_peptide(session, "semaglutide", "Semaglutide",
                              profile={"intro": "Old intro", "mechanism": "Old"}, curated=False)

        assert store.upsert_profile(peptide.id, self._profile()) is True
        row = session.get(PeptideProfile, peptide.id)
        assert row.intro == "Generated intro"
        assert row.mechanism == "Generated mechanism"

    def test_curated_profile_only_fills_gaps(self, store, session):
        peptide = add_peptide(
            session, "bpc-157", "BPC-157", curated=True,
            profile={"intro": "Editor intro", "mechanism": mark_placeholder("stub"), "effectiveness_summary": None},
        )

        store.upsert_profile(peptide.id, self._profile())
        row = session.get(PeptideProfile, peptide.id)
        assert row.intro == "Editor intro"
        assert row.mechanism == "Generated mechanism"
        assert row.effectiveness_summary == "Generated effect"

    def test_second_identical_upsert_reports_no_change(self, store, session):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        store.upsert_profile(peptide.id, self._profile())
        assert store.upsert_profile(peptide.id, self._profile()) is False

    def test_safety_keeps_curated_and_replaces_placeholders(self, store, session, jurisdictions):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        us = jurisdictions["US"]
        session.add(PeptideSafetyEntry(
            peptide_id=peptide.id, jurisdiction_id=us,
            adverse_effects="Nausea in most patients (editor).",
            contraindications=mark_placeholder("old placeholder"),
            interactions="", monitoring="",
        ))
        session.commit()

        generated = SafetyText(
            adverse_effects=mark_placeholder("label adverse"),
            contraindications=mark_placeholder("label contraindications"),
            interactions=mark_placeholder("label interactions"),
            monitoring="",
        )
        store.upsert_safety(peptide.id, us, generated)
        session.commit()

        row = session.scalar(select(PeptideSafetyEntry).where(PeptideSafetyEntry.peptide_id == peptide.id))
        assert row.adverse_effects == "Nausea in most patients (editor)."
        assert row.contraindications == mark_placeholder("label contraindications")
        assert row.interactions == mark_placeholder("label interactions")
        assert row.monitoring == ""
        assert _count(session, PeptideSafetyEntry) == 1


class TestDosingAndUseCases:
    """Test canonical machine dosing rows and use-case mappings."""

    def _dosing(self, context=DosingContext.STUDY_REPORTED, route="Subcutaneous"):
        return DosingProposal(context=context, population="Adults", route=route, starting_dose="0.25 mg",
                              maintenance_dose="1 mg", frequency="Weekly", notes="Generated")

    def test_manual_rows_untouched_and_machine_rows_collapsed(self, store, session, jurisdictions):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        us = jurisdictions["US"]
        session.add_all([
            PeptideDosingEntry(peptide_id=peptide.id, jurisdiction_id=us, context="EXPERT_CONSENSUS",
                               population="Editor", is_machine_generated=False),
            PeptideDosingEntry(peptide_id=peptide.id, jurisdiction_id=us, context="STUDY_REPORTED",
                               population="Old A", is_machine_generated=True),
            PeptideDosingEntry(peptide_id=peptide.id, jurisdiction_id=us, context="APPROVED_LABEL",
                               population="Old B", is_machine_generated=True),
        ])
        session.commit()

        store.upsert_dosing(peptide.id, us, self._dosing(DosingContext.APPROVED_LABEL))
        session.commit()

        rows = list(session.scalars(select(PeptideDosingEntry).order_by(PeptideDosingEntry.id)))
        assert len(rows) == 2
        manual = [r for r in rows if not r.is_machine_generated]
        machine = [r for r in rows if r.is_machine_generated]
        assert manual[0].population == "Editor"
        assert machine[0].context == "APPROVED_LABEL"
        assert machine[0].population == "Adults"

    def test_repeat_upsert_keeps_one_row(self, store, session, jurisdictions):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        for _ in range(3):
            store.upsert_dosing(peptide.id, jurisdictions["US"], self._dosing())
            session.commit()
        assert _count(session, PeptideDosingEntry) == 1

    def test_use_case_upsert_and_evidence_tracking_removal(self, store, session, jurisdictions):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        us = jurisdictions["US"]
        tracking = UseCaseProposal("evidence-tracking", "Evidence Tracking", EvidenceGrade.D, "c", "k")
        specific = UseCaseProposal("weight-management", "Weight Management", EvidenceGrade.A, "c", "k")

        store.upsert_use_case(peptide.id, us, tracking)
        store.upsert_use_case(peptide.id, us, specific)
        store.upsert_use_case(peptide.id, us, specific)
        session.commit()
        assert _count(session, PeptideUseCase) == 2

        assert store.remove_evidence_tracking(peptide.id, us) == 1
        session.commit()
        remaining = session.scalar(select(PeptideUseCase))
        assert remaining.evidence_grade == "A"

    def test_remove_evidence_tracking_without_use_case_row(self, store, session, jurisdictions):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        assert store.remove_evidence_tracking(peptide.id, jurisdictions["US"]) == 0


class TestRegulatoryStatus:
    """Test machine-asserted regulatory writes."""

    def test_writes_every_jurisdiction_once(self, store, session, jurisdictions):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        proposal = propose_regulatory_status(SourceBundle(openfda=OpenFdaSnapshot(found=True)))

        assert store.apply_regulatory_proposal(peptide.id, proposal, jurisdictions) == 5
        session.commit()
        assert store.apply_regulatory_proposal(peptide.id, proposal, jurisdictions) == 0
        session.commit()

        us_row = session.scalar(select(PeptideRegulatoryStatus).where(
            PeptideRegulatoryStatus.jurisdiction_id == jurisdictions["US"]))
        assert us_row.status == RegulatoryStatus.US_FDA_APPROVED.value
        assert us_row.is_machine_asserted is True
        assert _count(session, PeptideRegulatoryStatus) == 5

    def test_curated_jurisdiction_is_skipped(self, store, session, jurisdictions):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        session.add(PeptideRegulatoryStatus(
            peptide_id=peptide.id, jurisdiction_id=jurisdictions["US"],
            status=RegulatoryStatus.RESEARCH_ONLY.value, notes="Editor", is_machine_asserted=False,
        ))
        session.commit()

        proposal = propose_regulatory_status(SourceBundle(openfda=OpenFdaSnapshot(found=True)))
        assert store.apply_regulatory_proposal(peptide.id, proposal, jurisdictions) == 4
        session.commit()

        us_rows = list(session.scalars(select(PeptideRegulatoryStatus).where(
            PeptideRegulatoryStatus.jurisdiction_id == jurisdictions["US"])))
        assert [r.status for r in us_rows] == [RegulatoryStatus.RESEARCH_ONLY.value]

    def test_status_change_replaces_machine_row(self, store, session, jurisdictions):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        store.apply_regulatory_proposal(peptide.id, propose_regulatory_status(SourceBundle()), jurisdictions)
        session.commit()

        labelled = propose_regulatory_status(SourceBundle(openfda=OpenFdaSnapshot(found=True)))
        store.apply_regulatory_proposal(peptide.id, labelled, jurisdictions)
        session.commit()

        us_rows = list(session.scalars(select(PeptideRegulatoryStatus).where(
            PeptideRegulatoryStatus.jurisdiction_id == jurisdictions["US"])))
        assert [r.status for r in us_rows] == [RegulatoryStatus.US_FDA_APPROVED.value]


class TestClaimsAndCitations:
    """Test claim replacement scoping and citation deduplication."""

    def test_citation_is_deduplicated_on_url_and_date(self, store, session):
        first = store.find_or_create_citation("https://example.org/a", "A", date(2025, 1, 1))
        again = store.find_or_create_citation("https://example.org/a", "A again", date(2025, 1, 1))
        other_day = store.find_or_create_citation("https://example.org/a", "A", date(2025, 2, 1))
        session.commit()

        assert first.id == again.id
        assert other_day.id != first.id
        assert _count(session, Citation) == 2

    def test_replacement_keeps_curated_and_other_origins(self, store, session):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        session.add(PeptideClaim(peptide_id=peptide.id, origin=ClaimOrigin.CURATED.value,
                                 section="Editorial", claim_text="Editor claim", evidence_grade="A"))
        session.commit()

        store.replace_generated_claims(peptide.id, ClaimOrigin.community(), [
            _claim(ClaimOrigin.COMMUNITY_REDDIT, url="https://www.reddit.com/search/?q=semaglutide"),
        ])
        session.commit()
        inserted = store.replace_generated_claims(peptide.id, ClaimOrigin.external_sources(), [
            _claim(ClaimOrigin.PUBMED),
            _claim(ClaimOrigin.CLINICAL_TRIALS, url="https://clinicaltrials.gov/search?term=semaglutide"),
        ])
        session.commit()

        assert inserted == 2
        origins = sorted(session.scalars(select(PeptideClaim.origin)))
        assert origins == sorted([
            "curated", "community_reddit", "auto_pubmed", "auto_clinicaltrials",
        ])

    def test_rerun_replaces_instead_of_appending(self, store, session):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        claims = [_claim(ClaimOrigin.PUBMED)]
        for _ in range(3):
            store.replace_generated_claims(peptide.id, ClaimOrigin.external_sources(), claims)
            session.commit()

        assert _count(session, PeptideClaim) == 1
        assert _count(session, Citation) == 1
        claim = session.scalar(select(PeptideClaim))
        assert claim.section == "External Sources: PubMed"

    def test_curated_origin_cannot_be_replaced(self, store, session):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        with pytest.raises(ValueError, match="curated"):
            store.replace_generated_claims(peptide.id, [ClaimOrigin.CURATED], [])

    def test_claim_outside_replaced_origins_is_rejected(self, store, session):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        with pytest.raises(ValueError, match="outside"):
            store.replace_generated_claims(peptide.id, ClaimOrigin.community(), [_claim(ClaimOrigin.PUBMED)])
        assert _count(session, PeptideClaim) == 0

    def test_claims_without_url_are_skipped(self, store, session):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        inserted = store.replace_generated_claims(
            peptide.id, ClaimOrigin.external_sources(), [_claim(ClaimOrigin.PUBMED, url="")],
        )
        assert inserted == 0
        assert _count(session, PeptideClaim) == 0

    def test_citation_insert_race_resolves_to_existing_row(self, store, session, monkeypatch):
        existing = store.find_or_create_citation("https://example.org/a", "A", date(2025, 1, 1))
        session.commit()

        real_find = store._find_citation
        misses = []

        def miss_once(url, published_at):
            if not misses:
                misses.append(url)
                return None
            return real_find(url, published_at)

        monkeypatch.setattr(store, "_find_citation", miss_once)
        citation = store.find_or_create_citation("https://example.org/a", "A", date(2025, 1, 1))
        session.commit()

        assert misses == ["https://example.org/a"]
        assert citation.id == existing.id
        assert _count(session, Citation) == 1

    def test_failed_replacement_keeps_old_claims(self, store, session, monkeypatch):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        store.replace_generated_claims(peptide.id, ClaimOrigin.external_sources(), [
            _claim(ClaimOrigin.PUBMED, text="Old PubMed claim."),
        ])
        session.commit()

        real_create = store.find_or_create_citation
        calls = []

        def fail_on_second(url, title, published_at):
            calls.append(url)
            if len(calls) == 2:
                raise RuntimeError("citation write failed")
            return real_create(url, title, published_at)

        monkeypatch.setattr(store, "find_or_create_citation", fail_on_second)
        with pytest.raises(RuntimeError, match="citation write failed"):
            store.replace_generated_claims(peptide.id, ClaimOrigin.external_sources(), [
                _claim(ClaimOrigin.PUBMED, text="New PubMed claim."),
                _claim(ClaimOrigin.CLINICAL_TRIALS, url="https://clinicaltrials.gov/search?term=semaglutide"),
            ])
        session.rollback()

        rows = list(session.scalars(select(PeptideClaim)))
        assert [(r.origin, r.claim_text) for r in rows] == [("auto_pubmed", "Old PubMed claim.")]


class TestVendors:
    """Test vendor upserts, verifications, listings and rating snapshots."""

    def test_upsert_vendor_created_flag(self, store, session):
        vendor, created = store.upsert_vendor(_seed())
        session.commit()
        again, created_again = store.upsert_vendor(_seed(name="Acme Peptides Inc"))
        session.commit()

        assert created is True
        assert created_again is False
        assert again.id == vendor.id
        assert again.name == "Acme Peptides Inc"
        assert again.is_published is True

    def test_trust_signal_replacement_keeps_community_reviews(self, store, session):
        vendor, _ = store.upsert_vendor(_seed())
        store.replace_trust_signals(vendor.id, ["coa_published", "lot_tracking"])
        store.replace_community_reviews(vendor.id, [make_post(source=UgcSource.TRUSTPILOT)])
        session.commit()

        store.replace_trust_signals(vendor.id, ["cold_chain_policy"])
        session.commit()

        types = sorted(session.scalars(select(VendorVerification.verification_type)))
        assert types == ["cold_chain_policy", f"{COMMUNITY_REVIEW_PREFIX}trustpilot"]

    def test_community_review_payload(self, store, session):
        vendor, _ = store.upsert_vendor(_seed())
        store.replace_community_reviews(vendor.id, [make_post(post_id="a"), make_post(post_id="b")])
        store.replace_community_reviews(vendor.id, [make_post(post_id="c")])
        session.commit()

        rows = list(session.scalars(select(VendorVerification)))
        assert len(rows) == 1
        assert rows[0].verification_type == "community_review_reddit"
        assert '"sourceUrl": "https://www.reddit.com/r/Peptides/comments/c/"' in rows[0].value
        assert '"sentimentLabel": "positive"' in rows[0].value

    def test_listing_upsert_is_idempotent(self, store, session):
        vendor, _ = store.upsert_vendor(_seed())
        peptide = add_peptide(session, "bpc-157", "BPC-157")

        assert store.upsert_listing(vendor.id, peptide.id, "https://acmepeptides.com/shop") is True
        assert store.upsert_listing(vendor.id, peptide.id, "https://acmepeptides.com/bpc") is False
        session.commit()

        assert store.listing_count(vendor.id) == 1
        listing = session.scalar(select(VendorPeptideListing))
        assert listing.product_url == "https://acmepeptides.com/bpc"

    def test_single_current_snapshot(self, store, session):
        vendor, _ = store.upsert_vendor(_seed())
        store.record_rating_snapshot(vendor.id, VendorScore(3.4, 0.55), METHOD_WEBSITE_INGEST, ["coa_published"])
        session.commit()
        latest = store.record_rating_snapshot(
            vendor.id, VendorScore(3.6, 0.62), METHOD_UGC_INGEST, ["coa_published", "ugc_reviews_3"],
        )
        session.commit()

        assert _count(session, VendorRatingSnapshot) == 2
        assert _count(session, VendorRatingSnapshot, VendorRatingSnapshot.is_current.is_(True)) == 1
        current = store.current_snapshot(vendor.id)
        assert current.id == latest.id
        assert float(current.rating) == 3.6
        assert current.method_version == METHOD_UGC_INGEST
        assert store.current_reason_tags(vendor.id) == ["coa_published", "ugc_reviews_3"]

    def test_unrated_snapshot_stores_nulls(self, store, session):
        vendor, _ = store.upsert_vendor(_seed(trust_signals=[]))
        snapshot = store.record_rating_snapshot(vendor.id, VendorScore(None, None), METHOD_WEBSITE_INGEST, [])
        session.commit()
        assert snapshot.rating is None
        assert snapshot.confidence is None

    def test_current_reason_tags_without_snapshot(self, store, session):
        vendor, _ = store.upsert_vendor(_seed())
        assert store.current_reason_tags(vendor.id) == []


class TestEnsurePeptide:
    """Test peptides created from vendor listings."""

    def test_creates_placeholder_entry(self, store, session, jurisdictions):
        peptide, created = store.ensure_peptide("Retatrutide", jurisdictions)
        session.commit()

        assert created is True
        assert peptide.slug == "retatrutide"
        assert peptide.is_published is True
        profile = session.get(PeptideProfile, peptide.id)
        assert profile.is_curated is False
        assert profile.intro.startswith("Auto-generated placeholder:")
        statuses = set(session.scalars(select(PeptideRegulatoryStatus.status)))
        assert statuses == {RegulatoryStatus.INVESTIGATIONAL.value}
        assert _count(session, PeptideRegulatoryStatus) == 5

    def test_existing_slug_is_reused(self, store, session, jurisdictions):
        existing = add_peptide(session, "bpc-157", "BPC-157")
        peptide, created = store.ensure_peptide("BPC 157", jurisdictions)
        assert created is False
        assert peptide.id == existing.id

    def test_invalid_name_is_rejected(self, store, jurisdictions):
        with pytest.raises(PersistenceError):
            store.ensure_peptide("---", jurisdictions)


class TestListing:
    """Test entity listing filters."""

    def test_unpublished_excluded_by_default(self, store, session):
        add_peptide(session, "semaglutide", "Semaglutide")
        add_peptide(session, "draft", "Draft Peptide", published=False)

        assert [p.slug for p in store.list_peptides()] == ["semaglutide"]
        assert len(store.list_peptides(only_published=False)) == 2
        assert [p.slug for p in store.list_peptides(slugs=["draft"], only_published=False)] == ["draft"]

    def test_name_index_includes_aliases(self, store, session):
        peptide = add_peptide(session, "semaglutide", "Semaglutide", aliases=["Ozempic"])
        index = store.peptide_name_index()
        assert index.peptide_id("semaglutide") == peptide.id
        assert index.peptide_id("ozempic") == peptide.id


class TestSharedState:
    """Test that caches and locks handed to the store are the ones it uses."""

    def test_store_uses_supplied_empty_cache(self, session):
        cache = LookupCache(ttl_seconds=5)
        store = EnrichmentStore(session, cache=cache)
        assert store.cache is cache

        store.ensure_jurisdictions()
        assert cache.get("jurisdiction", "US") is not None

        cache.invalidate()
        assert store.cache.get("jurisdiction", "US") is None

    def test_store_uses_supplied_vendor_locks(self, session):
        locks = VendorLocks()
        store = EnrichmentStore(session, vendor_locks=locks)
        vendor, _ = store.upsert_vendor(_seed())

        store.record_rating_snapshot(vendor.id, VendorScore(3.0, 0.5), METHOD_WEBSITE_INGEST, [])

        assert store.vendor_locks is locks
        assert len(locks) == 1
        assert locks.for_vendor(vendor.id) is locks.for_vendor(vendor.id)

    def test_each_store_gets_its_own_lock_registry(self, session):
        assert EnrichmentStore(session).vendor_locks is not EnrichmentStore(session).vendor_locks
