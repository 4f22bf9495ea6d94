"""
Social discussion adapters: Reddit, Hacker News and Trustpilot.

Each adapter turns one search term into a list of UgcPost records with a
representative quote and a sentiment score. Failures yield an empty list,
the same as the biomedical adapters.
"""

from __future__ import annotations

import json
import logging
import time
from datetime import datetime, timezone
from typing import Callable, Dict, Iterable, List, Optional, Sequence, Tuple
from urllib.parse import quote, urlencode

from bs4 import BeautifulSoup

from ..mapping.normalize import contains_term, norm_token, unique_strings
from ..signals.sentiment import extract_quote, score_sentiment
from ..types import UgcSource
from .http import HttpFetcher
from .schemas import HackerNewsResponse, RedditListing, RedditPostData, TrustpilotNextData, parse_payload
from .types import UgcPost, dedupe_posts, rank_posts

logger = logging.getLogger(__name__)

ENTITY_PEPTIDE = "peptide"
ENTITY_VENDOR = "vendor"

REDDIT_SUBREDDITS = (
    "Peptides", "Supplements", "Biohacking", "Nootropics", "StackAdvice", "Steroids", "Semaglutide",
)
# subreddits accepted from the site-wide search, lowercased
REDDIT_GLOBAL_ALLOWED = frozenset(
    [s.lower() for s in REDDIT_SUBREDDITS]
    + ["biohackers", "weightloss", "ozempic", "mounjaro", "tirzepatide"]
)

BROWSER_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/122 Safari/537.36"
)
TRUSTPILOT_MAX_REVIEWS = 12
MIN_TERM_LENGTH = 3
TERM_DELAY_SECONDS = 0.07


def parse_timestamp(value: Optional[str]) -> Optional[datetime]:
    """ISO-8601 string (trailing 'Z' allowed) to an aware datetime."""
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    except ValueError:
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class SocialAdapter:
    """One social source. ``fetch_by_term`` never raises."""

    source: UgcSource
    # score title + body instead of title + quote
    score_full_text = False

    def __init__(self, fetcher: HttpFetcher, now: Callable[[], datetime] = _utcnow) -> None:
        self.fetcher = fetcher
        self._now = now

    def fetch_by_term(self, term: str, entity_type: str) -> List[UgcPost]:
        try:
            return self._fetch(term, entity_type)
        except Exception as e:
            logger.warning(f"{self.source.value} search failed for {term!r}: {e}")
            return []

    def _fetch(self, term: str, entity_type: str) -> List[UgcPost]:
        raise NotImplementedError

    def _post(self, *, community: str, post_id: str, title: str, body: str, url: str,
              search_url: str, author: str, score: float, comment_count: int,
              created_at: datetime, term: str) -> UgcPost:
        quote_text = extract_quote(title, body, term)
        scored_text = f"{title} {body}" if self.score_full_text else f"{title} {quote_text}"
        sentiment = score_sentiment(scored_text)
        return UgcPost(
            source=self.source,
            community=community,
            post_id=post_id or f"{community}-{created_at.isoformat()}-{title[:24]}",
            title=title,
            body=body,
            quote=quote_text,
            url=url,
            search_url=search_url,
            author=author,
            score=score,
            comment_count=comment_count,
            created_at=created_at,
            matched_term=term,
            sentiment_value=sentiment.value,
            sentiment_label=sentiment.label,
        )


class RedditAdapter(SocialAdapter):
    source = UgcSource.REDDIT

    def subreddit_url(self, subreddit: str, term: str) -> str:
        params = urlencode({"q": term, "restrict_sr": 1, "sort": "new", "t": "year", "limit": 20})
        return f"https://www.reddit.com/r/{quote(subreddit)}/search.json?{params}"

    def global_url(self, term: str) -> str:
        params = urlencode({"q": term, "sort": "new", "t": "year", "limit": 35})
        return f"https://www.reddit.com/search.json?{params}"

    def _fetch(self, term: str, entity_type: str) -> List[UgcPost]:
        if len(norm_token(term)) < MIN_TERM_LENGTH:
            return []
        posts: List[UgcPost] = []
        for subreddit in REDDIT_SUBREDDITS:
            url = self.subreddit_url(subreddit, term)
            posts.extend(self._listing(url, term, subreddit=subreddit))
        posts.extend(self._listing(self.global_url(term), term, subreddit=None))
        return posts

    def _listing(self, search_url: str, term: str, subreddit: Optional[str]) -> List[UgcPost]:
        result = self.fetcher.fetch_json(search_url)
        if not result.ok:
            return []
        out = []
        for child in parse_payload(RedditListing, result.payload).data.children:
            post = self._to_post(child.data, search_url, term, subreddit)
            if post is not None:
                out.append(post)
        return out

    def _to_post(self, data: RedditPostData, search_url: str, term: str,
                 subreddit: Optional[str]) -> Optional[UgcPost]:
        if subreddit is None:
            subreddit = data.subreddit
            if not subreddit or subreddit.lower() not in REDDIT_GLOBAL_ALLOWED:
                return None
        if not contains_term(f"{data.title} {data.selftext}", term):
            return None
        url = f"https://www.reddit.com{data.permalink}" if data.permalink else data.url
        if not url:
            return None
        created = (
            datetime.fromtimestamp(data.created_utc, tz=timezone.utc)
            if data.created_utc and data.created_utc > 0 else self._now()
        )
        return self._post(
            community=f"r/{subreddit}",
            post_id=data.id,
            title=data.title,
            body=data.selftext,
            url=url,
            search_url=search_url,
            author=data.author or "unknown",
            score=data.score or 0.0,
            comment_count=data.num_comments or 0,
            created_at=created,
            term=term,
        )


class HackerNewsAdapter(SocialAdapter):
    source = UgcSource.HACKER_NEWS

    def search_url(self, term: str) -> str:
        params = urlencode({"query": term, "tags": "story,comment", "hitsPerPage": 25})
        return f"https://hn.algolia.com/api/v1/search_by_date?{params}"

    def _fetch(self, term: str, entity_type: str) -> List[UgcPost]:
        if len(norm_token(term)) < MIN_TERM_LENGTH:
            return []
        search_url = self.search_url(term)
        result = self.fetcher.fetch_json(search_url)
        if not result.ok:
            return []

        posts = []
        for hit in parse_payload(HackerNewsResponse, result.payload).hits:
            title = hit.title or hit.story_title
            body = hit.comment_text or hit.story_text
            if not contains_term(f"{title} {body}", term):
                continue
            url = f"https://news.ycombinator.com/item?id={quote(hit.object_id)}" if hit.object_id else hit.url
            if not url:
                continue
            posts.append(self._post(
                community="news.ycombinator.com",
                post_id=hit.object_id,
                title=title,
                body=body,
                url=url,
                search_url=search_url,
                author=hit.author or "unknown",
                score=hit.points or 0.0,
                comment_count=hit.num_comments or 0,
                created_at=parse_timestamp(hit.created_at) or self._now(),
                term=term,
            ))
        return posts


def trustpilot_domain(term: str) -> str:
    """'https://www.Example.com/shop' -> 'example.com'; empty when not a domain."""
    normalized = (term or "").strip().lower()
    if "." not in normalized or len(normalized) < 4:
        return ""
    for prefix in ("https://", "http://"):
        if normalized.startswith(prefix):
            normalized = normalized[len(prefix):]
    if normalized.startswith("www."):
        normalized = normalized[4:]
    domain = normalized.split("/")[0]
    return domain if "." in domain else ""


def extract_next_data(html: str) -> Optional[dict]:
    """JSON payload of the ``__NEXT_DATA__`` script tag, if any."""
    soup = BeautifulSoup(html or "", "lxml")
    script = soup.find("script", id="__NEXT_DATA__")
    if script is None or not script.string:
        return None
    try:
        payload = json.loads(script.string)
    except ValueError:
        return None
    return payload if isinstance(payload, dict) else None


class TrustpilotAdapter(SocialAdapter):
    """Vendor reviews only; peptide terms are skipped."""

    source = UgcSource.TRUSTPILOT
    score_full_text = True

    def review_url(self, domain: str) -> str:
        return f"https://www.trustpilot.com/review/{quote(domain)}"

    def _fetch(self, term: str, entity_type: str) -> List[UgcPost]:
        if entity_type != ENTITY_VENDOR:
            return []
        domain = trustpilot_domain(term)
        if not domain:
            return []

        review_url = self.review_url(domain)
        result = self.fetcher.fetch_text(review_url, headers={"User-Agent": BROWSER_USER_AGENT})
        if not result.ok:
            return []
        payload = extract_next_data(result.payload)
        if payload is None:
            return []

        posts = []
        reviews = parse_payload(TrustpilotNextData, payload).props.page_props.reviews
        for review in reviews[:TRUSTPILOT_MAX_REVIEWS]:
            if not review.title and not review.text:
                continue
            dates = review.dates
            created = (
                parse_timestamp(dates.published_date)
                or parse_timestamp(dates.experienced_date)
                or parse_timestamp(dates.created_at)
                or self._now()
            )
            posts.append(self._post(
                community="Trustpilot",
                post_id=review.id,
                title=review.title,
                body=review.text,
                url=review_url,
                search_url=review_url,
                author=review.consumer.display_name or review.consumer.name or "anonymous",
                score=review.rating or 0.0,
                comment_count=0,
                created_at=created,
                term=domain,
            ))
        return posts


def default_social_adapters(fetcher: HttpFetcher) -> List[SocialAdapter]:
    return [RedditAdapter(fetcher), HackerNewsAdapter(fetcher), TrustpilotAdapter(fetcher)]


def gather_posts(
    adapters: Sequence[SocialAdapter],
    terms: Iterable[str],
    entity_type: str,
    max_terms: int = 2,
    sleep: Callable[[float], None] = time.sleep,
    delay: float = TERM_DELAY_SECONDS,
) -> Tuple[List[UgcPost], Dict[str, int]]:
    """Every adapter × the first ``max_terms`` terms, deduplicated and ranked.

    Source hits count (adapter, term) pairs that returned at least one post.
    """
    selected = unique_strings(terms)[: max(1, max_terms)]
    hits: Dict[str, int] = {adapter.source.value: 0 for adapter in adapters}
    collected: List[UgcPost] = []
    for adapter in adapters:
        for term in selected:
            rows = adapter.fetch_by_term(term, entity_type)
            if rows:
                hits[adapter.source.value] += 1
            collected.extend(rows)
            if delay > 0:
                sleep(delay)
    posts = rank_posts(dedupe_posts(collected))
    logger.debug(f"Gathered {len(posts)} posts for terms {selected}")
    return posts, hits
