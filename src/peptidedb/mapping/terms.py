"""
Search-term selection for external sources.

Biomedical sources are queried with the canonical name and a handful of
aliases. Social sources get fewer, cleaner terms: internal code names like
'AB-123' match mostly noise in free text.
"""

from __future__ import annotations

import re
from typing import Iterable, List, Optional
from urllib.parse import urlparse

from .normalize import build_search_term, norm_token, unique_strings

_CODE_NAME = re.compile(r"^[A-Z]{1,6}-?\d{2,8}[A-Z0-9-]*$")
_HAS_DIGIT = re.compile(r"\d")

MIN_SOCIAL_TERM_LENGTH = 3
MIN_VENDOR_TERM_LENGTH = 4


def name_variants(name: str, aliases: Iterable[str] = (), limit: int = 7) -> List[str]:
    """Canonical name, its cleaned search form, then aliases; deduplicated."""
    candidates: List[Optional[str]] = [name, build_search_term(name)]
    for alias in aliases:
        candidates.append(alias)
        candidates.append(build_search_term(alias))
    return unique_strings(candidates)[:limit]


def is_likely_code_name(value: str) -> bool:
    trimmed = (value or "").strip()
    if not trimmed:
        return True
    if _CODE_NAME.match(trimmed):
        return True
    if " " not in trimmed and _HAS_DIGIT.search(trimmed) and len(trimmed) <= 14:
        return True
    return False


def social_terms_for_peptide(name: str, aliases: Iterable[str] = (), max_terms: int = 2) -> List[str]:
    terms = [
        t for t in unique_strings([name, *aliases])
        if len(norm_token(t)) >= MIN_SOCIAL_TERM_LENGTH and not is_likely_code_name(t)
    ]
    return terms[: max(1, max_terms)]


def domain_search_term(url: str | None) -> str:
    """'https://www.peptidesciences.com/collections' -> 'peptidesciences.com'"""
    if not url:
        return ""
    try:
        host = urlparse(url if "://" in url else f"https://{url}").hostname or ""
    except ValueError:
        return ""
    host = re.sub(r"^www\.", "", host.lower())
    root = ".".join(host.split(".")[:2])
    return root if len(root) >= MIN_VENDOR_TERM_LENGTH else ""


def social_terms_for_vendor(name: str, website_url: str | None, max_terms: int = 2) -> List[str]:
    terms = [t for t in unique_strings([name, domain_search_term(website_url)]) if len(t) >= MIN_VENDOR_TERM_LENGTH]
    return terms[: max(1, max_terms)]
