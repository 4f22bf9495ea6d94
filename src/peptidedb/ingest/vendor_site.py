"""
Vendor seed catalog and website catalog scan.

Seeds are loaded from YAML. The scan fetches each seed's source pages,
strips them to text with BeautifulSoup and detects listed peptides by
whole-word match of normalized names and aliases.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, Iterable, List, Optional, Sequence

import yaml
from bs4 import BeautifulSoup

from ..errors import ConfigurationError
from ..mapping.normalize import norm_spaces, norm_token, slugify, title_case
from .http import HttpFetcher

logger = logging.getLogger(__name__)

BLOCKED_VENDOR_SLUGS = frozenset({"unknown-source-vendor"})
BLOCKED_VENDOR_NAMES = frozenset({"unknown source vendor"})
MIN_DETECTION_LENGTH = 3

COMMON_PEPTIDE_NAMES = (
    "Semaglutide", "Tirzepatide", "Retatrutide", "Cagrilintide", "Liraglutide", "Dulaglutide",
    "Exenatide", "Lixisenatide", "BPC-157", "TB-500", "GHK-Cu", "MOTS-c", "Ipamorelin",
    "CJC-1295", "Tesamorelin", "Sermorelin", "Hexarelin", "AOD-9604", "Kisspeptin", "PT-141",
    "Selank", "Semax", "Thymosin Alpha-1", "Thymosin Beta-4", "Oxytocin", "Vasopressin",
    "Terlipressin", "Leuprolide", "Triptorelin", "Goserelin", "Calcitonin", "Eptifibatide",
    "Insulin Lispro", "Insulin Aspart", "Insulin Glargine", "Insulin Degludec", "Insulin Detemir",
    "Human Insulin",
)


@dataclass
class VendorSeed:
    slug: str
    name: str
    website_url: str
    trust_signals: List[str] = field(default_factory=list)
    source_urls: List[str] = field(default_factory=list)
    fallback_peptides: List[str] = field(default_factory=list)
    is_affiliate: bool = False

    @property
    def product_url(self) -> str:
        return self.source_urls[0] if self.source_urls else self.website_url

    @property
    def is_blocked(self) -> bool:
        return (
            slugify(self.slug) in BLOCKED_VENDOR_SLUGS
            or norm_spaces(self.name).lower() in BLOCKED_VENDOR_NAMES
        )

    @classmethod
    def from_mapping(cls, raw: dict) -> "VendorSeed":
        missing = [k for k in ("slug", "name", "website_url") if not raw.get(k)]
        if missing:
            raise ConfigurationError(f"Vendor seed {raw.get('slug', '?')!r} is missing {', '.join(missing)}")

        def _strings(key: str) -> List[str]:
            value = raw.get(key) or []
            if not isinstance(value, list):
                raise ConfigurationError(f"Vendor seed {raw['slug']!r}: {key} must be a list")
            return [str(v).strip() for v in value if str(v).strip()]

        return cls(
            slug=slugify(str(raw["slug"])),
            name=norm_spaces(str(raw["name"])),
            website_url=str(raw["website_url"]).strip(),
            trust_signals=_strings("trust_signals"),
            source_urls=_strings("source_urls"),
            fallback_peptides=_strings("fallback_peptides"),
            is_affiliate=bool(raw.get("is_affiliate", False)),
        )


def load_vendor_seeds(path: str | Path) -> List[VendorSeed]:
    """Parse a vendor seed YAML file (top-level ``vendors:`` list)."""
    try:
        with open(path, "r") as f:
            loaded = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read vendor seeds {path}: {e}") from e

    rows = loaded.get("vendors") if isinstance(loaded, dict) else loaded
    if not isinstance(rows, list):
        raise ConfigurationError(f"Vendor seeds {path} must contain a 'vendors' list")

    seeds = []
    for row in rows:
        if not isinstance(row, dict):
            raise ConfigurationError(f"Vendor seeds {path}: each entry must be a mapping")
        seeds.append(VendorSeed.from_mapping(row))
    logger.info(f"Loaded {len(seeds)} vendor seeds from {path}")
    return seeds


def default_seed_path() -> Path:
    return Path(__file__).parent.parent.parent.parent / "config" / "vendors.yaml"


def strip_html(html: str) -> str:
    """Visible text of an HTML page; scripts and styles dropped."""
    soup = BeautifulSoup(html or "", "lxml")
    for tag in soup(["script", "style", "noscript"]):
        tag.decompose()
    return norm_spaces(soup.get_text(" "))


class PeptideNameIndex:
    """Normalized name -> display name, for detection in page text.

    Known peptides (canonical names and aliases) map to their peptide id;
    common names not yet in the catalog map to None until created.
    """

    def __init__(self) -> None:
        self.display: Dict[str, str] = {}
        self.peptide_ids: Dict[str, Optional[int]] = {}

    def add(self, name: str, peptide_id: Optional[int] = None) -> None:
        key = norm_token(name)
        if len(key) < MIN_DETECTION_LENGTH:
            return
        if peptide_id is not None or key not in self.display:
            self.display[key] = norm_spaces(name)
        if peptide_id is not None or key not in self.peptide_ids:
            self.peptide_ids[key] = peptide_id

    def add_common(self, seeds: Sequence[VendorSeed] = ()) -> None:
        for name in COMMON_PEPTIDE_NAMES:
            self.add(name)
        for seed in seeds:
            for name in seed.fallback_peptides:
                self.add(name)

    def peptide_id(self, key: str) -> Optional[int]:
        return self.peptide_ids.get(key)

    def bind(self, key: str, peptide_id: int) -> None:
        self.peptide_ids[key] = peptide_id

    def display_name(self, key: str) -> str:
        return self.display.get(key) or title_case(key)

    def detection_names(self) -> List[str]:
        """Longest first, so multi-word names are tried before their parts."""
        return sorted(self.display, key=len, reverse=True)


def detect_peptide_names(text: str, names: Iterable[str]) -> List[str]:
    """Normalized names occurring as whole words in ``text``."""
    haystack = f" {norm_token(text)} "
    found = []
    for name in names:
        if name and f" {name} " in haystack and name not in found:
            found.append(name)
    return found


@dataclass
class ScanResult:
    detected: List[str] = field(default_factory=list)
    pages_fetched: int = 0
    pages_failed: int = 0


class VendorSiteScanner:
    def __init__(self, fetcher: HttpFetcher) -> None:
        self.fetcher = fetcher

    def scan(self, seed: VendorSeed, index: PeptideNameIndex, fetch_pages: bool = True) -> ScanResult:
        """Fallback peptides plus whatever the source pages list."""
        result = ScanResult()
        for name in seed.fallback_peptides:
            key = norm_token(name)
            if key and key not in result.detected:
                result.detected.append(key)
        if not fetch_pages:
            return result

        names = index.detection_names()
        for url in seed.source_urls:
            page = self.fetcher.fetch_text(url)
            if not page.ok:
                logger.warning(f"Could not fetch {url} for {seed.slug}: {page.error}")
                result.pages_failed += 1
                continue
            result.pages_fetched += 1
            for key in detect_peptide_names(strip_html(page.payload), names):
                if key not in result.detected:
                    result.detected.append(key)
        logger.debug(f"{seed.slug}: {len(result.detected)} peptides detected")
        return result
