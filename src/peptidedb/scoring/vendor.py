"""
Vendor trust scoring.

A vendor is rated from its declared trust signals and catalog breadth,
optionally nudged by community review statistics. A vendor with no trust
signals is unrated: rating and confidence are both None, which is not the
same thing as a low rating.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Sequence

from ..ingest.types import UgcPost
from ..mapping.normalize import unique_strings
from ..signals.sentiment import average_sentiment, label_for_average

METHOD_WEBSITE_INGEST = "vendor_website_ingest_v1"
METHOD_UGC_INGEST = "vendor_ugc_ingest_v1"

TRUST_SIGNAL_WEIGHT: Dict[str, float] = {
    "coa_published": 0.95,
    "third_party_testing": 1.0,
    "cold_chain_policy": 0.65,
    "lot_tracking": 0.55,
    "transparent_pricing": 0.35,
    "manufacturer_labeling": 0.9,
    "prescription_required": 0.8,
    "licensed_pharmacy_network": 0.95,
    "regulatory_disclosures": 0.7,
    "clinic_medical_screening": 0.7,
    "shipping_policy_disclosed": 0.4,
}
UNKNOWN_SIGNAL_WEIGHT = 0.3

BASE_RATING = 2.2
SIGNAL_RATING_FACTOR = 0.45
LISTING_RATING_STEP = 0.06
LISTING_RATING_CAP = 1.2

BASE_CONFIDENCE = 0.42
SIGNAL_CONFIDENCE_STEP = 0.06
LISTING_CONFIDENCE_STEP = 0.01
LISTING_CONFIDENCE_CAP = 0.25
MAX_CONFIDENCE = 0.98

REVIEW_CONFIDENCE_STEP = 0.01
REVIEW_CONFIDENCE_CAP = 0.12
SOURCE_CONFIDENCE_STEP = 0.02
SOURCE_CONFIDENCE_CAP = 0.06
SENTIMENT_RATING_FACTOR = 0.5
SENTIMENT_RATING_CAP = 0.4
FULL_WEIGHT_REVIEWS = 5

MAX_REVIEW_TAG_COUNT = 25
SOCIAL_TAG_PREFIXES = ("social_", "ugc_")


@dataclass(frozen=True)
class SocialStats:
    review_count: int = 0
    average_sentiment: Optional[float] = None
    source_count: int = 0

    @classmethod
    def from_posts(cls, posts: Sequence[UgcPost]) -> "SocialStats":
        if not posts:
            return cls()
        avg = average_sentiment(p.sentiment_value for p in posts)
        return cls(len(posts), avg, len({p.source for p in posts}))


@dataclass(frozen=True)
class VendorScore:
    rating: Optional[float]
    confidence: Optional[float]

    @property
    def is_rated(self) -> bool:
        return self.rating is not None


UNRATED = VendorScore(None, None)


def _clamp(value: float, low: float, high: float) -> float:
    return max(low, min(high, value))


def signal_points(trust_signals: Iterable[str]) -> float:
    return sum(TRUST_SIGNAL_WEIGHT.get(s, UNKNOWN_SIGNAL_WEIGHT) for s in trust_signals)


def score_vendor(
    trust_signals: Sequence[str],
    listing_count: int,
    social: Optional[SocialStats] = None,
) -> VendorScore:
    signals = unique_strings(trust_signals)
    if not signals:
        return UNRATED

    listings = max(0, listing_count)
    rating = BASE_RATING + signal_points(signals) * SIGNAL_RATING_FACTOR + min(
        LISTING_RATING_CAP, listings * LISTING_RATING_STEP
    )
    confidence = BASE_CONFIDENCE + len(signals) * SIGNAL_CONFIDENCE_STEP + min(
        LISTING_CONFIDENCE_CAP, listings * LISTING_CONFIDENCE_STEP
    )

    if social is not None and social.review_count > 0:
        confidence += min(REVIEW_CONFIDENCE_CAP, social.review_count * REVIEW_CONFIDENCE_STEP)
        confidence += min(SOURCE_CONFIDENCE_CAP, social.source_count * SOURCE_CONFIDENCE_STEP)
        if social.average_sentiment is not None:
            direction = _clamp(social.average_sentiment * SENTIMENT_RATING_FACTOR,
                               -SENTIMENT_RATING_CAP, SENTIMENT_RATING_CAP)
            rating += direction * min(1.0, social.review_count / FULL_WEIGHT_REVIEWS)

    return VendorScore(
        rating=_clamp(round(rating, 1), 0.0, 5.0),
        confidence=round(_clamp(confidence, 0.0, MAX_CONFIDENCE), 2),
    )


def strip_social_tags(tags: Iterable[str]) -> List[str]:
    return [t for t in tags if t and not t.startswith(SOCIAL_TAG_PREFIXES)]


def social_tags(posts: Sequence[UgcPost]) -> List[str]:
    avg = average_sentiment(p.sentiment_value for p in posts)
    tags = [f"social_sentiment_{label_for_average(avg).value}"]
    if posts:
        tags.append(f"ugc_reviews_{min(MAX_REVIEW_TAG_COUNT, len(posts))}")
    for source in unique_strings(p.source.value for p in posts):
        tags.append(f"ugc_source_{source}")
    return tags


def build_reason_tags(trust_signals: Iterable[str], posts: Sequence[UgcPost] = ()) -> List[str]:
    """Declared signals (minus stale social tags) followed by fresh social tags."""
    return unique_strings([*strip_social_tags(trust_signals), *social_tags(posts)])
