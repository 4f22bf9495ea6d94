"""Small text helpers shared by the adapters and the content synthesizer."""

from __future__ import annotations

import re
from typing import Iterable, List, Optional

from ..mapping.normalize import norm_spaces, truncate, unique_strings

PROTOCOL_DEPENDENT = "Protocol dependent"

_SENTENCE_SPLIT = re.compile(r"(?<=[.?!])\s+")
_DOSE_PHRASE = re.compile(r"\b\d+(?:\.\d+)?\s?(?:mg|mcg|ug|g|unit|units|iu|ml)\b[^.;]{0,70}", re.IGNORECASE)

# order matters: first hit wins
_ROUTES = (
    ("subcutaneous", "Subcutaneous"),
    ("intravenous", "Intravenous"),
    ("intramuscular", "Intramuscular"),
    ("intranasal", "Intranasal"),
    ("nasal", "Intranasal"),
    ("oral", "Oral"),
    ("topical", "Topical"),
    ("injection", "Injection"),
)
_FREQUENCIES = (
    ("twice daily", "Twice daily"),
    ("weekly", "Weekly"),
    ("daily", "Daily"),
    ("monthly", "Monthly"),
)


def split_sentences(text: Optional[str]) -> List[str]:
    cleaned = norm_spaces(text or "")
    if not cleaned:
        return []
    return [s for s in _SENTENCE_SPLIT.split(cleaned) if s]


def pick_sentence(text: Optional[str], max_chars: int = 220) -> str:
    """First sentence of the text, truncated."""
    sentences = split_sentences(text)
    return truncate(sentences[0], max_chars) if sentences else ""


def first_non_empty(values: Iterable[Optional[str]]) -> str:
    for value in values:
        if value and value.strip():
            return value.strip()
    return ""


def infer_route(text: Optional[str]) -> str:
    lower = (text or "").lower()
    for needle, route in _ROUTES:
        if needle in lower:
            return route
    return PROTOCOL_DEPENDENT


def infer_frequency(text: Optional[str]) -> str:
    lower = (text or "").lower()
    for needle, freq in _FREQUENCIES:
        if needle in lower:
            return freq
    return PROTOCOL_DEPENDENT


def extract_dose_phrases(text: Optional[str]) -> List[str]:
    """'0.25 mg once weekly for 4 weeks' style fragments, deduplicated."""
    return unique_strings(truncate(m.group(0), 120) for m in _DOSE_PHRASE.finditer(text or ""))
