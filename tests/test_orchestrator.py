"""
Tests for the run orchestrators.

External sources are replaced by fixed SourceBundles, fake social adapters
and a routed fake fetcher, so every run here is deterministic.
"""

from datetime import date, datetime, timezone

import pytest
from sqlalchemy import func, select

from peptidedb.config import PipelineConfig
from peptidedb.db.models import (
    Citation,
    Peptide,
    PeptideClaim,
    PeptideDosingEntry,
    PeptideProfile,
    PeptideRegulatoryStatus,
    PeptideSafetyEntry,
    PeptideUseCase,
    UseCase,
    VendorPeptideListing,
    VendorRatingSnapshot,
    VendorVerification,
)
from peptidedb.errors import ConfigurationError
from peptidedb.ingest.types import (
    ChemblSnapshot,
    ClinicalTrialsSnapshot,
    OpenFdaSnapshot,
    PubChemSnapshot,
    PubMedSnapshot,
    SourceBundle,
)
from peptidedb.ingest.vendor_site import VendorSeed, VendorSiteScanner
from peptidedb.persist.cache import LookupCache
from peptidedb.pipeline import (
    PeptideEnrichmentOrchestrator,
    SocialSignalOrchestrator,
    VendorCatalogOrchestrator,
)
from peptidedb.scoring.vendor import METHOD_UGC_INGEST, METHOD_WEBSITE_INGEST
from peptidedb.types import ClaimOrigin, SentimentLabel, UgcSource

from factories import FakeFetcher, add_peptide, make_post

TODAY = date(2026, 10, 1)

CONTENT_TABLES = (
    PeptideClaim, Citation, PeptideDosingEntry, PeptideSafetyEntry, PeptideUseCase,
    PeptideRegulatoryStatus, PeptideProfile, UseCase,
)


def _count(session, model):
    return session.scalar(select(func.count()).select_from(model))


def _row_counts(session):
    return {model.__tablename__: _count(session, model) for model in CONTENT_TABLES}


def semaglutide_bundle():
    return SourceBundle(
        clinical_trials=ClinicalTrialsSnapshot(
            query_url="https://clinicaltrials.gov/api/v2/studies?query.term=Semaglutide&pageSize=100",
            total=12, completed=6, recruiting=3, active=1, terminated=1, with_results=4,
            latest_update=date(2025, 11, 3), top_conditions=["Obesity", "Type 2 Diabetes"],
        ),
        pubmed=PubMedSnapshot(
            query_url="https://eutils.ncbi.nlm.nih.gov/entrez/eutils/esearch.fcgi?db=pubmed&term=semaglutide",
            count=85, newest_year=2026, recent_titles=["Semaglutide for chronic weight management"],
        ),
        openfda=OpenFdaSnapshot(
            query_url="https://api.fda.gov/drug/label.json?search=openfda.generic_name%3A%22Semaglutide%22&limit=1",
            found=True,
            matched_term="Semaglutide",
            indications="Indicated for chronic weight management in adults with obesity.",
            dosage="Start 0.25 mg subcutaneous once weekly for 4 weeks, then 0.5 mg once weekly.",
            adverse_reactions="Nausea and diarrhea were the most common adverse reactions.",
            route_hints=["Subcutaneous"],
            frequency_hints=["Weekly"],
        ),
        pubchem=PubChemSnapshot(
            query_url="https://pubchem.ncbi.nlm.nih.gov/rest/pug_view/data/compound/56843331/JSON",
            cid=56843331, molecular_formula="C187H291N45O59",
        ),
        chembl=ChemblSnapshot(
            query_url="https://www.ebi.ac.uk/chembl/api/data/molecule/CHEMBL2108724.json",
            chembl_id="CHEMBL2108724", max_phase=4.0,
            mechanisms=["Glucagon-like peptide 1 receptor agonist"],
        ),
    )


class FakeCollector:
    """Stands in for BundleCollector: one fixed bundle, optional failures by name."""

    def __init__(self, bundle, fail_for=()):
        self.bundle = bundle
        self.fail_for = set(fail_for)
        self.calls = []

    def collect(self, canonical_name, aliases=()):
        self.calls.append((canonical_name, tuple(aliases)))
        if canonical_name in self.fail_for:
            raise RuntimeError("adapter pool exploded")
        return self.bundle


class FakeSocialAdapter:
    def __init__(self, source, posts):
        self.source = source
        self.posts = posts
        self.terms = []

    def fetch_by_term(self, term, entity_type):
        self.terms.append((term, entity_type))
        return list(self.posts)


def _quiet_config(**overrides):
    return PipelineConfig(inter_entity_delay_seconds=0.0, **overrides)


class TestPeptideEnrichment:
    """Test the external-source enrichment run."""

    @pytest.fixture
    def orchestrator(self, session):
        return PeptideEnrichmentOrchestrator(
            session, FakeCollector(semaglutide_bundle()), today=TODAY,
            config=_quiet_config(), sleep=lambda s: None,
        )

    def test_run_writes_all_sections(self, session, jurisdictions, orchestrator):
        add_peptide(session, "semaglutide", "Semaglutide", aliases=["Wegovy"])

        summary = orchestrator.run()

        assert summary.scanned == 1
        assert summary.updated == 1
        assert summary.failures == 0
        assert summary.counters["claim_updates"] == 4
        assert summary.counters["regulatory_updates"] == 5
        assert summary.source_hits == {
            "openfda": 1, "pubchem": 1, "chembl": 1, "clinical_trials": 1, "pubmed": 1,
        }
        assert orchestrator.collector.calls == [("Semaglutide", ("Wegovy",))]

        claims = list(session.scalars(select(PeptideClaim).order_by(PeptideClaim.id)))
        assert {c.origin for c in claims} == {o.value for o in ClaimOrigin.external_sources()}
        assert all(c.evidence_grade in ("A", "B") for c in claims)

        slugs = set(session.scalars(select(UseCase.slug).join(PeptideUseCase)))
        assert slugs == {"weight-management", "type-2-diabetes"}

        dosing = session.scalar(select(PeptideDosingEntry))
        assert dosing.context == "APPROVED_LABEL"
        assert dosing.is_machine_generated is True
        assert dosing.starting_dose.startswith("0.25 mg")

    def test_second_run_changes_no_row_counts(self, session, jurisdictions, orchestrator):
        add_peptide(session, "semaglutide", "Semaglutide")
        add_peptide(session, "liraglutide", "Liraglutide")

        orchestrator.run()
        before = _row_counts(session)
        second = orchestrator.run()

        assert _row_counts(session) == before
        assert second.counters["regulatory_updates"] == 0
        assert before["peptide_claims"] == 8
        # both peptides cite the same source pages on the same dates
        assert before["citations"] == 4

    def test_curated_content_survives(self, session, jurisdictions, orchestrator):
        peptide = add_peptide(
            session, "semaglutide", "Semaglutide", curated=True,
            profile={"intro": "Editor intro", "mechanism": None},
        )
        session.add(PeptideClaim(peptide_id=peptide.id, origin="curated", section="Editorial",
                                 claim_text="Editor claim", evidence_grade="A"))
        session.commit()

        orchestrator.run()

        profile = session.get(PeptideProfile, peptide.id)
        assert profile.intro == "Editor intro"
        assert profile.mechanism
        curated = session.scalars(select(PeptideClaim).where(PeptideClaim.origin == "curated")).all()
        assert [c.claim_text for c in curated] == ["Editor claim"]

    def test_failing_entity_does_not_stop_run(self, session, jurisdictions):
        add_peptide(session, "aaa", "Aaa Peptide")
        add_peptide(session, "semaglutide", "Semaglutide")
        collector = FakeCollector(semaglutide_bundle(), fail_for={"Aaa Peptide"})
        orchestrator = PeptideEnrichmentOrchestrator(
            session, collector, today=TODAY, config=_quiet_config(), sleep=lambda s: None,
        )

        summary = orchestrator.run()

        assert summary.scanned == 2
        assert summary.failures == 1
        assert summary.updated == 1
        assert _count(session, PeptideClaim) == 4

    def test_missing_jurisdictions_abort_before_any_entity(self, session, orchestrator):
        add_peptide(session, "semaglutide", "Semaglutide")
        with pytest.raises(ConfigurationError):
            orchestrator.run()
        assert orchestrator.collector.calls == []

    def test_deadline_skips_remaining_entities(self, session, jurisdictions):
        for slug in ("a-peptide", "b-peptide", "c-peptide"):
            add_peptide(session, slug, slug.replace("-", " ").title())
        ticks = iter([0.0, 0.0, 5.0, 11.0])
        orchestrator = PeptideEnrichmentOrchestrator(
            session, FakeCollector(semaglutide_bundle()), today=TODAY,
            config=_quiet_config(run_deadline_seconds=10), sleep=lambda s: None, clock=lambda: next(ticks),
        )

        summary = orchestrator.run()

        assert summary.deadline_reached is True
        assert summary.updated == 2
        assert summary.skipped == 1
        assert len(orchestrator.collector.calls) == 2

    def test_delay_between_entities(self, session, jurisdictions):
        add_peptide(session, "semaglutide", "Semaglutide")
        add_peptide(session, "liraglutide", "Liraglutide")
        sleeps = []
        orchestrator = PeptideEnrichmentOrchestrator(
            session, FakeCollector(semaglutide_bundle()), today=TODAY,
            config=PipelineConfig(inter_entity_delay_seconds=0.3), sleep=sleeps.append,
        )

        orchestrator.run()
        assert sleeps == [0.3, 0.3]

    def test_slug_filter_and_unpublished(self, session, jurisdictions, orchestrator):
        add_peptide(session, "semaglutide", "Semaglutide")
        add_peptide(session, "draft", "Draft Peptide", published=False)

        assert orchestrator.run(slugs=["draft"]).scanned == 0
        assert orchestrator.run(slugs=["draft"], only_published=False).scanned == 1

    def test_store_shares_the_run_cache(self, session):
        orchestrator = PeptideEnrichmentOrchestrator(
            session, FakeCollector(semaglutide_bundle()), config=PipelineConfig(cache_ttl_seconds=7),
        )
        assert orchestrator.cache.ttl_seconds == 7
        assert orchestrator.store.cache is orchestrator.cache

    def test_supplied_empty_cache_is_used(self, session, jurisdictions):
        cache = LookupCache(ttl_seconds=3)
        orchestrator = PeptideEnrichmentOrchestrator(session, FakeCollector(semaglutide_bundle()), cache=cache)
        assert orchestrator.cache is cache
        assert orchestrator.store.cache is cache

        orchestrator.store.jurisdiction_ids(required=True)
        assert cache.get("jurisdiction", "US") == jurisdictions["US"]

    def test_empty_bundle_falls_back_to_evidence_tracking(self, session, jurisdictions):
        add_peptide(session, "obscure", "Obscure Peptide")
        orchestrator = PeptideEnrichmentOrchestrator(
            session, FakeCollector(SourceBundle()), today=TODAY, config=_quiet_config(), sleep=lambda s: None,
        )

        summary = orchestrator.run()

        assert summary.counters["claim_updates"] == 0
        use_case = session.scalar(select(PeptideUseCase))
        assert use_case.evidence_grade == "I"
        assert session.scalar(select(UseCase.slug)) == "evidence-tracking"


class TestSocialSignals:
    """Test community claims for peptides and re-rating of vendors."""

    def _posts(self, source, count, sentiment=0.4):
        label = SentimentLabel.POSITIVE if sentiment >= 0 else SentimentLabel.NEGATIVE
        search_url = {
            UgcSource.REDDIT: "https://www.reddit.com/search.json?q=Semaglutide",
            UgcSource.HACKER_NEWS: "https://hn.algolia.com/api/v1/search_by_date?query=Semaglutide",
            UgcSource.TRUSTPILOT: "https://www.trustpilot.com/review/acmepeptides.com",
        }[source]
        return [
            make_post(source=source, post_id=f"{source.value}-{i}", score=10 - i, sentiment=sentiment,
                      label=label, search_url=search_url,
                      created_at=datetime(2026, 9, i + 1, tzinfo=timezone.utc))
            for i in range(count)
        ]

    def test_peptide_community_claims(self, session, jurisdictions):
        peptide = add_peptide(session, "semaglutide", "Semaglutide")
        session.add(PeptideClaim(peptide_id=peptide.id, origin="auto_pubmed", section="External Sources: PubMed",
                                 claim_text="PubMed claim", evidence_grade="B"))
        session.commit()
        adapters = [
            FakeSocialAdapter(UgcSource.REDDIT, self._posts(UgcSource.REDDIT, 5)),
            FakeSocialAdapter(UgcSource.HACKER_NEWS, self._posts(UgcSource.HACKER_NEWS, 1)),
        ]
        orchestrator = SocialSignalOrchestrator(session, adapters, config=_quiet_config(), sleep=lambda s: None)

        summary = orchestrator.run_peptides()
        orchestrator.run_peptides()

        assert summary.counters["peptide_claims_inserted"] == 2
        assert summary.source_hits["reddit"] == 1
        claims = {c.origin: c for c in session.scalars(select(PeptideClaim))}
        assert set(claims) == {"auto_pubmed", "community_reddit", "community_hacker_news"}
        assert claims["community_reddit"].evidence_grade == "D"
        assert claims["community_hacker_news"].evidence_grade == "I"
        assert claims["community_reddit"].section == "Community Signals (Reddit)"
        assert "5 posts" in claims["community_reddit"].claim_text

    def test_code_name_only_peptide_is_skipped(self, session, jurisdictions):
        add_peptide(session, "bpc-157", "BPC-157")
        adapter = FakeSocialAdapter(UgcSource.REDDIT, self._posts(UgcSource.REDDIT, 3))
        orchestrator = SocialSignalOrchestrator(session, [adapter], config=_quiet_config(), sleep=lambda s: None)

        summary = orchestrator.run_peptides()

        assert summary.updated == 1
        assert adapter.terms == []
        assert _count(session, PeptideClaim) == 0

    def test_vendor_rerating_keeps_declared_tags(self, session, store):
        seed = VendorSeed.from_mapping({
            "slug": "acme-peptides", "name": "Acme Peptides", "website_url": "https://acmepeptides.com",
            "trust_signals": ["coa_published", "third_party_testing"],
        })
        scanner = VendorSiteScanner(FakeFetcher())
        VendorCatalogOrchestrator(session, scanner, config=_quiet_config(), sleep=lambda s: None).run(
            [seed], fetch_pages=False,
        )
        adapter = FakeSocialAdapter(UgcSource.TRUSTPILOT, self._posts(UgcSource.TRUSTPILOT, 8, sentiment=-0.5))
        orchestrator = SocialSignalOrchestrator(session, [adapter], config=_quiet_config(), sleep=lambda s: None)

        first = orchestrator.run_vendors()
        orchestrator.run_vendors()

        assert first.counters["vendor_reviews_inserted"] == 6
        assert first.counters["vendor_ratings_updated"] == 1
        vendor_id = session.scalar(select(VendorRatingSnapshot.vendor_id))
        current = store.current_snapshot(vendor_id)
        assert current.method_version == METHOD_UGC_INGEST
        assert current.reason_tags == [
            "coa_published", "third_party_testing", "social_sentiment_negative",
            "ugc_reviews_6", "ugc_source_trustpilot",
        ]
        assert _count(session, VendorRatingSnapshot) == 3
        reviews = session.scalars(select(VendorVerification).where(
            VendorVerification.verification_type == "community_review_trustpilot")).all()
        assert len(reviews) == 6

    def test_vendor_without_signals_stays_unrated(self, session, store):
        seed = VendorSeed.from_mapping({
            "slug": "bare-vendor", "name": "Bare Vendor", "website_url": "https://barevendor.com",
        })
        VendorCatalogOrchestrator(session, VendorSiteScanner(FakeFetcher()), config=_quiet_config(),
                                  sleep=lambda s: None).run([seed], fetch_pages=False)
        adapter = FakeSocialAdapter(UgcSource.TRUSTPILOT, self._posts(UgcSource.TRUSTPILOT, 2))

        SocialSignalOrchestrator(session, [adapter], config=_quiet_config(), sleep=lambda s: None).run_vendors()

        current = store.current_snapshot(session.scalar(select(VendorRatingSnapshot.vendor_id)))
        assert current.rating is None
        assert current.confidence is None


class TestVendorCatalog:
    """Test vendor seed upserts and website catalog detection."""

    PAGE = (
        "<html><body><h2>BPC-157 5mg</h2><p>Semaglutide research vial</p>"
        "<script>var featured = 'Tirzepatide';</script></body></html>"
    )

    def _seeds(self):
        return [
            VendorSeed.from_mapping({
                "slug": "acme-peptides", "name": "Acme Peptides", "website_url": "https://acmepeptides.com",
                "trust_signals": ["coa_published", "third_party_testing"],
                "source_urls": ["https://acmepeptides.com/shop"],
                "fallback_peptides": ["BPC-157"],
            }),
            VendorSeed.from_mapping({
                "slug": "unknown-source-vendor", "name": "Unknown Source Vendor",
                "website_url": "https://example.com", "fallback_peptides": ["Semaglutide"],
            }),
        ]

    def test_scan_creates_listings_and_rating(self, session, store):
        semaglutide = add_peptide(session, "semaglutide", "Semaglutide")
        fetcher = FakeFetcher({"acmepeptides.com/shop": self.PAGE})
        orchestrator = VendorCatalogOrchestrator(
            session, VendorSiteScanner(fetcher), config=_quiet_config(), sleep=lambda s: None,
        )

        summary = orchestrator.run(self._seeds())

        assert summary.scanned == 1
        assert summary.counters["vendors_created"] == 1
        assert summary.counters["peptides_created"] == 1
        assert summary.counters["listings_upserted"] == 2
        assert summary.counters["source_pages_fetched"] == 1

        listed = set(session.scalars(
            select(Peptide.slug).join(VendorPeptideListing, VendorPeptideListing.peptide_id == Peptide.id)
        ))
        assert listed == {"bpc-157", "semaglutide"}
        assert session.scalar(select(Peptide).where(Peptide.slug == "bpc-157")).canonical_name == "BPC-157"
        assert session.get(Peptide, semaglutide.id).canonical_name == "Semaglutide"

        snapshot = session.scalar(select(VendorRatingSnapshot))
        assert snapshot.method_version == METHOD_WEBSITE_INGEST
        assert float(snapshot.rating) == 3.2
        assert float(snapshot.confidence) == 0.56
        assert snapshot.reason_tags == ["coa_published", "third_party_testing"]

    def test_second_scan_is_idempotent(self, session):
        fetcher = FakeFetcher({"acmepeptides.com/shop": self.PAGE})
        orchestrator = VendorCatalogOrchestrator(
            session, VendorSiteScanner(fetcher), config=_quiet_config(), sleep=lambda s: None,
        )
        orchestrator.run(self._seeds())
        second = orchestrator.run(self._seeds())

        assert second.counters["vendors_created"] == 0
        assert second.counters["peptides_created"] == 0
        assert _count(session, VendorPeptideListing) == 2
        assert _count(session, VendorRatingSnapshot) == 2
        current = session.scalars(select(VendorRatingSnapshot).where(VendorRatingSnapshot.is_current.is_(True)))
        assert len(current.all()) == 1

    def test_import_without_fetch_uses_fallbacks_only(self, session):
        fetcher = FakeFetcher({"acmepeptides.com/shop": self.PAGE})
        orchestrator = VendorCatalogOrchestrator(
            session, VendorSiteScanner(fetcher), config=_quiet_config(), sleep=lambda s: None,
        )

        summary = orchestrator.run(self._seeds(), fetch_pages=False)

        assert fetcher.calls == []
        assert summary.counters["listings_upserted"] == 1
        assert summary.counters["source_pages_fetched"] == 0

    def test_failed_page_is_counted(self, session):
        orchestrator = VendorCatalogOrchestrator(
            session, VendorSiteScanner(FakeFetcher()), config=_quiet_config(), sleep=lambda s: None,
        )
        summary = orchestrator.run(self._seeds())
        assert summary.counters["source_pages_failed"] == 1
        assert summary.updated == 1
