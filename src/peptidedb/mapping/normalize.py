# src/peptidedb/mapping/normalize.py
from __future__ import annotations
import re
import unicodedata
from typing import Iterable, List

# --- regexes: preserve hyphens to keep code names like BPC-157 intact ----------
_WS = re.compile(r"\s+")
_PUNCT_TO_SPACE = re.compile(r"[^\w\-]+", flags=re.UNICODE)  # hyphen is preserved
_NON_ALNUM = re.compile(r"[^a-z0-9]+")
_PARENTHETICAL = re.compile(r"\([^)]*\)|\[[^\]]*\]|\{[^}]*\}")
_SEARCH_PUNCT = re.compile(r"[()\[\]{}:;,+/\\]")
# "5mg", "10 mcg", "2.4 mg/ml", "100 IU"
_DOSAGE_TOKEN = re.compile(
    r"\b\d+(?:\.\d+)?\s?(?:mg|mcg|ug|µg|g|iu|units?|ml)\b(?:\s?/\s?(?:ml|vial|dose))?",
    flags=re.IGNORECASE,
)


def ascii_fold(s: str) -> str:
    """ASCII-fold (NFKD) and drop non-ascii."""
    if not s:
        return ""
    nfkd = unicodedata.normalize("NFKD", s)
    return "".join(ch for ch in nfkd if ord(ch) < 128)


def norm_spaces(s: str) -> str:
    return _WS.sub(" ", s).strip()


def _norm_text(s: str) -> str:
    """Lowercase, ASCII-fold, map punctuation (except '-') to spaces, collapse spaces."""
    s = ascii_fold(s)
    s = s.lower()
    s = _PUNCT_TO_SPACE.sub(" ", s)
    return norm_spaces(s)

# --- public API ---------------------------------------------------------------

def norm_name(s: str | None) -> str:
    """
    Normalization for alias storage and comparison.
    'BPC-157 ', 'bpc-157' and 'BPC–157' all map to 'bpc-157'.
    """
    if not s:
        return ""
    return _norm_text(s.replace("–", "-").replace("—", "-"))


def norm_token(s: str | None) -> str:
    """Lowercase alphanumerics only, everything else is a single space.

    Used for whole-word matching in free text, where 'BPC-157' must match
    'bpc 157' as well.
    """
    if not s:
        return ""
    return norm_spaces(_NON_ALNUM.sub(" ", ascii_fold(s).lower()))


def contains_term(text: str | None, term: str | None) -> bool:
    """True when the normalized term occurs as whole words in the text."""
    needle = norm_token(term)
    if not needle:
        return False
    return f" {needle} " in f" {norm_token(text)} "


def build_search_term(name: str | None) -> str:
    """
    Query term for external search APIs.

    Strips parentheticals, dosage-unit tokens and the punctuation that
    confuses registry/literature query parsers:
      'Semaglutide (Ozempic) 2.4 mg' -> 'Semaglutide'
    """
    if not name:
        return ""
    s = _PARENTHETICAL.sub(" ", name)
    s = _DOSAGE_TOKEN.sub(" ", s)
    s = _SEARCH_PUNCT.sub(" ", s)
    return norm_spaces(s)


def slugify(value: str | None) -> str:
    """URL-safe, lowercase, hyphenated slug."""
    if not value:
        return ""
    s = ascii_fold(value).lower()
    return _NON_ALNUM.sub("-", s).strip("-")


def title_case(value: str) -> str:
    return re.sub(r"\b\w", lambda m: m.group(0).upper(), norm_spaces(value))


def unique_strings(values: Iterable[str | None]) -> List[str]:
    """Trimmed, non-empty, first-seen order; case-insensitive dedup."""
    seen = set()
    out: List[str] = []
    for v in values:
        v = norm_spaces(v or "")
        key = v.lower()
        if v and key not in seen:
            seen.add(key)
            out.append(v)
    return out


def truncate(text: str | None, max_chars: int) -> str:
    """Collapse whitespace and cut to max_chars, ending with '...' when cut."""
    cleaned = norm_spaces(text or "")
    if len(cleaned) <= max_chars:
        return cleaned
    return cleaned[: max(0, max_chars - 3)].rstrip() + "..."
