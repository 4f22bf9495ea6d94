"""
Normalized per-source records and the merged SourceBundle.

Every adapter returns one of these snapshots. A snapshot built with only its
query URL is the "source absent" record: zero counts, empty text.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

from ..types import SentimentLabel, UgcSource


@dataclass
class ClinicalTrialsSnapshot:
    query_url: str = ""
    total: int = 0
    completed: int = 0
    recruiting: int = 0
    active: int = 0
    terminated: int = 0
    with_results: int = 0
    latest_update: Optional[date] = None
    top_conditions: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.total > 0


@dataclass
class PubMedSnapshot:
    query_url: str = ""
    count: int = 0
    newest_year: Optional[int] = None
    recent_titles: List[str] = field(default_factory=list)
    pmids: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return self.count > 0


@dataclass
class OpenFdaSnapshot:
    query_url: str = ""
    found: bool = False
    matched_term: str = ""
    indications: str = ""
    dosage: str = ""
    contraindications: str = ""
    warnings: str = ""
    adverse_reactions: str = ""
    interactions: str = ""
    clinical_pharmacology: str = ""
    route_hints: List[str] = field(default_factory=list)
    frequency_hints: List[str] = field(default_factory=list)
    # openFDA only publishes US labels
    jurisdiction: str = "US"


@dataclass
class PubChemSnapshot:
    query_url: str = ""
    cid: Optional[int] = None
    description: str = ""
    synonyms: List[str] = field(default_factory=list)
    molecular_formula: str = ""
    molecular_weight: str = ""

    @property
    def found(self) -> bool:
        return self.cid is not None


@dataclass
class ChemblSnapshot:
    query_url: str = ""
    chembl_id: str = ""
    pref_name: str = ""
    molecule_type: str = ""
    max_phase: Optional[float] = None
    first_approval: Optional[int] = None
    mechanisms: List[str] = field(default_factory=list)
    indications: List[str] = field(default_factory=list)

    @property
    def found(self) -> bool:
        return bool(self.chembl_id)


@dataclass
class SourceBundle:
    """Everything the adapters returned for one entity. Never persisted as-is."""
    clinical_trials: ClinicalTrialsSnapshot = field(default_factory=ClinicalTrialsSnapshot)
    pubmed: PubMedSnapshot = field(default_factory=PubMedSnapshot)
    openfda: OpenFdaSnapshot = field(default_factory=OpenFdaSnapshot)
    pubchem: PubChemSnapshot = field(default_factory=PubChemSnapshot)
    chembl: ChemblSnapshot = field(default_factory=ChemblSnapshot)

    # grading inputs
    @property
    def label_found(self) -> bool:
        return self.openfda.found

    @property
    def completed_trials(self) -> int:
        return self.clinical_trials.completed

    @property
    def total_trials(self) -> int:
        return self.clinical_trials.total

    @property
    def literature_count(self) -> int:
        return self.pubmed.count

    @property
    def max_phase(self) -> float:
        return self.chembl.max_phase or 0

    def source_hits(self) -> Dict[str, bool]:
        return {
            "openfda": self.openfda.found,
            "pubchem": self.pubchem.found,
            "chembl": self.chembl.found,
            "clinical_trials": self.clinical_trials.found,
            "pubmed": self.pubmed.found,
        }


@dataclass
class UgcPost:
    """One social post or review matched to an entity term."""
    source: UgcSource
    community: str
    post_id: str
    title: str
    body: str
    quote: str
    url: str
    search_url: str
    author: str
    score: float
    comment_count: int
    created_at: datetime
    matched_term: str
    sentiment_value: float = 0.0
    sentiment_label: SentimentLabel = SentimentLabel.NEUTRAL

    @property
    def dedup_key(self) -> str:
        return f"{self.source.value}:{self.post_id}:{self.url}"

    @property
    def engagement(self) -> float:
        bonus = 0.2 if self.sentiment_label is SentimentLabel.NEGATIVE else 0.0
        return self.score + self.comment_count * 0.9 + bonus


def rank_posts(posts: List[UgcPost]) -> List[UgcPost]:
    """Most engaged first; stable for equal engagement."""
    return sorted(posts, key=lambda p: p.engagement, reverse=True)


def dedupe_posts(posts: List[UgcPost]) -> List[UgcPost]:
    seen: Dict[str, UgcPost] = {}
    for post in posts:
        seen.setdefault(post.dedup_key, post)
    return list(seen.values())
