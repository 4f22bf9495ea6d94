"""Test doubles and row builders shared by the test modules."""

from datetime import datetime, timezone

from peptidedb.db.models import Peptide, PeptideAlias, PeptideProfile
from peptidedb.ingest.http import FetchResult
from peptidedb.ingest.types import UgcPost
from peptidedb.types import SentimentLabel, UgcSource


class FakeFetcher:
    """Routes GETs by URL substring; unmatched URLs fail with HTTP 404."""

    def __init__(self, routes=None):
        self.routes = dict(routes or {})
        self.calls = []

    def _lookup(self, url):
        self.calls.append(url)
        for needle, payload in self.routes.items():
            if needle in url:
                if isinstance(payload, FetchResult):
                    return payload
                return FetchResult(url=url, ok=True, payload=payload, status_code=200, attempts=1)
        return FetchResult.failure(url, "HTTP 404", status_code=404, attempts=1)

    def fetch_json(self, url, max_retries=None, headers=None):
        return self._lookup(url)

    def fetch_text(self, url, max_retries=None, headers=None):
        return self._lookup(url)


def add_peptide(session, slug, name, aliases=(), published=True, peptide_class="GLP-1 receptor agonist",
                profile=None, curated=False):
    peptide = Peptide(slug=slug, canonical_name=name, peptide_class=peptide_class, is_published=published)
    session.add(peptide)
    session.flush()
    for alias in aliases:
        session.add(PeptideAlias(peptide_id=peptide.id, alias=alias))
    if profile is not None:
        session.add(PeptideProfile(peptide_id=peptide.id, is_curated=curated, **profile))
    session.commit()
    return peptide


def make_post(source=UgcSource.REDDIT, post_id="p1", score=10.0, comments=2, sentiment=0.4,
              label=SentimentLabel.POSITIVE, quote="This peptide helped my recovery a lot.",
              created_at=None, search_url="https://www.reddit.com/search.json?q=bpc+157"):
    return UgcPost(
        source=source,
        community="r/Peptides",
        post_id=post_id,
        title="Experience report",
        body=quote,
        quote=quote,
        url=f"https://www.reddit.com/r/Peptides/comments/{post_id}/",
        search_url=search_url,
        author="someone",
        score=score,
        comment_count=comments,
        created_at=created_at or datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc),
        matched_term="BPC-157",
        sentiment_value=sentiment,
        sentiment_label=label,
    )
