"""
Shared enumerations for the catalog domain.

These are stored by value in the relational tables and passed between the
grading, synthesis and persistence layers.
"""

from __future__ import annotations

from enum import Enum
from typing import Iterable, Optional


class EvidenceGrade(str, Enum):
    """Ordered evidence grade. A is strongest, I (insufficient) is the default."""
    A = "A"
    B = "B"
    C = "C"
    D = "D"
    I = "I"

    @property
    def rank(self) -> int:
        return _GRADE_RANK[self.value]

    def __lt__(self, other):
        if not isinstance(other, EvidenceGrade):
            return NotImplemented
        return self.rank < other.rank

    def __le__(self, other):
        if not isinstance(other, EvidenceGrade):
            return NotImplemented
        return self.rank <= other.rank

    def __gt__(self, other):
        if not isinstance(other, EvidenceGrade):
            return NotImplemented
        return self.rank > other.rank

    def __ge__(self, other):
        if not isinstance(other, EvidenceGrade):
            return NotImplemented
        return self.rank >= other.rank

    @classmethod
    def best(cls, grades: Iterable["EvidenceGrade"]) -> "EvidenceGrade":
        """Strongest grade of the collection, I when empty."""
        return max(grades, default=cls.I)

    @classmethod
    def parse(cls, value: Optional[str]) -> "EvidenceGrade":
        try:
            return cls((value or "I").strip().upper())
        except ValueError:
            return cls.I


_GRADE_RANK = {"A": 4, "B": 3, "C": 2, "D": 1, "I": 0}


class ClaimOrigin(str, Enum):
    """Provenance of a claim row.

    CURATED claims are entered by editors. Every other member names the
    machine process that owns the row and may replace it on re-ingestion.
    """
    CURATED = "curated"
    CLINICAL_TRIALS = "auto_clinicaltrials"
    PUBMED = "auto_pubmed"
    OPENFDA = "auto_openfda"
    CHEMBL_PUBCHEM = "auto_chembl_pubchem"
    COMMUNITY_REDDIT = "community_reddit"
    COMMUNITY_HACKER_NEWS = "community_hacker_news"
    COMMUNITY_TRUSTPILOT = "community_trustpilot"

    @property
    def is_machine_generated(self) -> bool:
        return self is not ClaimOrigin.CURATED

    @property
    def section_label(self) -> str:
        return _SECTION_LABELS[self]

    @classmethod
    def external_sources(cls) -> tuple["ClaimOrigin", ...]:
        return (cls.CLINICAL_TRIALS, cls.PUBMED, cls.OPENFDA, cls.CHEMBL_PUBCHEM)

    @classmethod
    def community(cls) -> tuple["ClaimOrigin", ...]:
        return (cls.COMMUNITY_REDDIT, cls.COMMUNITY_HACKER_NEWS, cls.COMMUNITY_TRUSTPILOT)


_SECTION_LABELS = {
    ClaimOrigin.CURATED: "Editorial",
    ClaimOrigin.CLINICAL_TRIALS: "External Sources: ClinicalTrials",
    ClaimOrigin.PUBMED: "External Sources: PubMed",
    ClaimOrigin.OPENFDA: "External Sources: openFDA",
    ClaimOrigin.CHEMBL_PUBCHEM: "External Sources: ChEMBL/PubChem",
    ClaimOrigin.COMMUNITY_REDDIT: "Community Signals (Reddit)",
    ClaimOrigin.COMMUNITY_HACKER_NEWS: "Community Signals (Hacker News)",
    ClaimOrigin.COMMUNITY_TRUSTPILOT: "Community Signals (Trustpilot)",
}


class DosingContext(str, Enum):
    APPROVED_LABEL = "APPROVED_LABEL"
    STUDY_REPORTED = "STUDY_REPORTED"
    EXPERT_CONSENSUS = "EXPERT_CONSENSUS"


class RegulatoryStatus(str, Enum):
    US_FDA_APPROVED = "US_FDA_APPROVED"
    NON_US_APPROVED = "NON_US_APPROVED"
    INVESTIGATIONAL = "INVESTIGATIONAL"
    RESEARCH_ONLY = "RESEARCH_ONLY"


class SentimentLabel(str, Enum):
    POSITIVE = "positive"
    MIXED = "mixed"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class UgcSource(str, Enum):
    REDDIT = "reddit"
    HACKER_NEWS = "hacker_news"
    TRUSTPILOT = "trustpilot"

    @property
    def display_name(self) -> str:
        return {
            UgcSource.REDDIT: "Reddit",
            UgcSource.HACKER_NEWS: "Hacker News",
            UgcSource.TRUSTPILOT: "Trustpilot",
        }[self]

    @property
    def claim_origin(self) -> ClaimOrigin:
        return {
            UgcSource.REDDIT: ClaimOrigin.COMMUNITY_REDDIT,
            UgcSource.HACKER_NEWS: ClaimOrigin.COMMUNITY_HACKER_NEWS,
            UgcSource.TRUSTPILOT: ClaimOrigin.COMMUNITY_TRUSTPILOT,
        }[self]


JURISDICTION_CODES = ("US", "EU", "UK", "CA", "AU")
