"""
Lexicon sentiment scoring and quote extraction for social posts.

Scoring counts whole-word/phrase hits of weighted positive and negative
lexicon entries in normalized text:

    value = (pos - neg) / max(1.25, pos + neg)

clamped to [-1, 1]. Sparse text (total weight under ``sparse_threshold``)
gets a small positive bias: a passing mention is rarely a complaint.
Labels: >= 0.2 positive, <= -0.2 negative, otherwise positive when the value
is non-negative and mixed when it is negative.

Both functions are pure; the same input always gives the same output.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, NamedTuple, Optional

from ..mapping.normalize import contains_term, norm_spaces, norm_token, truncate
from ..types import SentimentLabel
from ..utils.text import split_sentences

POSITIVE_LEXICON: Dict[str, float] = {
    "excellent": 1.0,
    "great": 0.8,
    "good": 0.5,
    "effective": 0.8,
    "helped": 0.7,
    "improved": 0.7,
    "works well": 0.8,
    "legit": 0.9,
    "legitimate": 0.9,
    "reliable": 0.8,
    "quality": 0.4,
    "transparent": 0.6,
    "consistent": 0.5,
    "trusted": 0.8,
    "recommend": 0.8,
    "fast shipping": 0.6,
    "pure": 0.4,
}

NEGATIVE_LEXICON: Dict[str, float] = {
    "scam": 1.2,
    "fake": 1.0,
    "bunk": 0.8,
    "contaminated": 1.0,
    "contamination": 0.9,
    "bad": 0.5,
    "worse": 0.6,
    "ineffective": 0.9,
    "adverse": 0.6,
    "side effect": 0.6,
    "side effects": 0.6,
    "problem": 0.4,
    "avoid": 0.9,
    "unsafe": 1.0,
    "delayed": 0.5,
    "refund issue": 0.8,
    "never again": 1.0,
    "ripped off": 1.1,
    "underdosed": 1.0,
    "waste": 0.6,
}

# sentences carrying these are kept even when short or chatty
SAFETY_PHRASES = (
    "side effect", "side effects", "adverse", "allergic", "reaction", "hospital",
    "nausea", "vomiting", "pancreatitis", "infection", "injection site", "contaminated",
    "heart rate", "palpitations",
)

_BOILERPLATE_START = re.compile(
    r"^(hi|hello|hey|thanks|thank you|thx|ty|edit|update|bump|same|following|lol|yes|no|this)\b"
)
_LINK_ONLY = re.compile(r"^\s*(https?://\S+\s*)+$", re.IGNORECASE)

POSITIVE_THRESHOLD = 0.2
NEGATIVE_THRESHOLD = -0.2
DENOMINATOR_FLOOR = 1.25
SPARSE_THRESHOLD = 0.5
SPARSE_BIAS = 0.05

QUOTE_MAX_CHARS = 210
QUOTE_MIN_CHARS = 25
QUOTE_BAND = (40, 240)


class SentimentScore(NamedTuple):
    value: float
    label: SentimentLabel


def _phrase_pattern(phrase: str) -> re.Pattern:
    return re.compile(rf"(?<!\S){re.escape(phrase)}(?!\S)")


@dataclass
class SentimentScorer:
    positive: Dict[str, float] = field(default_factory=lambda: dict(POSITIVE_LEXICON))
    negative: Dict[str, float] = field(default_factory=lambda: dict(NEGATIVE_LEXICON))
    sparse_threshold: float = SPARSE_THRESHOLD
    sparse_bias: float = SPARSE_BIAS

    def __post_init__(self) -> None:
        self._pos = [(_phrase_pattern(norm_token(p)), w) for p, w in self.positive.items()]
        self._neg = [(_phrase_pattern(norm_token(p)), w) for p, w in self.negative.items()]

    @staticmethod
    def _weight(text: str, patterns) -> float:
        return sum(len(pattern.findall(text)) * weight for pattern, weight in patterns)

    def has_signal(self, text: str) -> bool:
        norm = norm_token(text)
        return any(p.search(norm) for p, _ in self._pos) or any(p.search(norm) for p, _ in self._neg)

    def score(self, text: Optional[str]) -> SentimentScore:
        norm = norm_token(text)
        pos = self._weight(norm, self._pos)
        neg = self._weight(norm, self._neg)
        value = (pos - neg) / max(DENOMINATOR_FLOOR, pos + neg)
        if pos + neg < self.sparse_threshold:
            value += self.sparse_bias
        value = round(max(-1.0, min(1.0, value)), 3)
        return SentimentScore(value, label_for_score(value))


def label_for_score(value: float) -> SentimentLabel:
    if value >= POSITIVE_THRESHOLD:
        return SentimentLabel.POSITIVE
    if value <= NEGATIVE_THRESHOLD:
        return SentimentLabel.NEGATIVE
    return SentimentLabel.POSITIVE if value >= 0 else SentimentLabel.MIXED


DEFAULT_SCORER = SentimentScorer()


def score_sentiment(text: Optional[str]) -> SentimentScore:
    return DEFAULT_SCORER.score(text)


# ---------------------------------------------------------------------------
# Aggregates over posts
# ---------------------------------------------------------------------------

def average_sentiment(values: Iterable[float]) -> Optional[float]:
    values = list(values)
    if not values:
        return None
    return round(sum(values) / len(values), 3)


def label_for_average(avg: Optional[float]) -> SentimentLabel:
    """Label for a group of posts; a near-zero average reads as neutral."""
    if avg is None:
        return SentimentLabel.NEUTRAL
    if avg >= 0.24:
        return SentimentLabel.POSITIVE
    if avg <= -0.24:
        return SentimentLabel.NEGATIVE
    if abs(avg) < 0.1:
        return SentimentLabel.NEUTRAL
    return SentimentLabel.MIXED


# ---------------------------------------------------------------------------
# Quote extraction
# ---------------------------------------------------------------------------

def is_boilerplate(sentence: str) -> bool:
    if _LINK_ONLY.match(sentence):
        return True
    norm = norm_token(sentence)
    if len(norm.split()) <= 1:
        return True
    return bool(_BOILERPLATE_START.match(norm)) and len(norm) < 40


def has_safety_phrase(sentence: str) -> bool:
    return any(contains_term(sentence, p) for p in SAFETY_PHRASES)


def _candidates(title: str, body: str) -> List[str]:
    out: List[str] = []
    for chunk in (title, body):
        for line in (chunk or "").splitlines():
            out.extend(split_sentences(line))
    return out


def extract_quote(
    title: str,
    body: str,
    term: str,
    max_chars: int = QUOTE_MAX_CHARS,
    scorer: SentimentScorer = DEFAULT_SCORER,
) -> str:
    """Single most representative sentence of a post.

    Ranked by: mentions the term, carries sentiment, is not boilerplate,
    length within the substantive band. Ties keep first occurrence.
    """
    ranked = []
    low, high = QUOTE_BAND
    for index, sentence in enumerate(_candidates(title, body)):
        boiler = is_boilerplate(sentence)
        safety = has_safety_phrase(sentence)
        if (boiler or len(sentence) < QUOTE_MIN_CHARS) and not safety:
            continue
        key = (
            contains_term(sentence, term),
            scorer.has_signal(sentence),
            not boiler,
            low <= len(sentence) <= high,
        )
        ranked.append((key, index, sentence))

    if not ranked:
        return truncate(norm_spaces(f"{title} {body}"), max_chars)
    # negated index: the earliest sentence wins a tie
    best = max(ranked, key=lambda item: (item[0], -item[1]))
    return truncate(best[2], max_chars)

