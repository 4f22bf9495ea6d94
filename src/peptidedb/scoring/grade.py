"""
Evidence grade inference.

A SourceBundle is graded by an ordered tuple of named rules; the first rule
whose predicate holds decides the grade. Thresholds are plain dataclass
fields so they can be tuned against real data without touching the rules.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Sequence, Tuple

from ..ingest.types import SourceBundle
from ..types import EvidenceGrade


@dataclass(frozen=True)
class GradeThresholds:
    label_completed_trials: int = 5
    top_phase: float = 4
    top_phase_total_trials: int = 8
    mid_phase: float = 3
    mid_completed_trials: int = 3
    mid_literature: int = 40
    low_total_trials: int = 5
    low_literature: int = 12
    social_min_posts: int = 5


DEFAULT_THRESHOLDS = GradeThresholds()


@dataclass(frozen=True)
class GradeRule:
    name: str
    grade: EvidenceGrade
    predicate: Callable[[SourceBundle, GradeThresholds], bool]

    def matches(self, bundle: SourceBundle, thresholds: GradeThresholds) -> bool:
        return self.predicate(bundle, thresholds)


DEFAULT_RULES: Tuple[GradeRule, ...] = (
    GradeRule(
        "label_with_completed_trials", EvidenceGrade.A,
        lambda b, t: b.label_found and b.completed_trials >= t.label_completed_trials,
    ),
    GradeRule(
        "top_phase_with_trials", EvidenceGrade.A,
        lambda b, t: b.max_phase >= t.top_phase and b.total_trials >= t.top_phase_total_trials,
    ),
    GradeRule(
        "mid_phase_or_completed_or_literature", EvidenceGrade.B,
        lambda b, t: (
            b.max_phase >= t.mid_phase
            or b.completed_trials >= t.mid_completed_trials
            or b.literature_count >= t.mid_literature
        ),
    ),
    GradeRule(
        "some_trials_or_literature", EvidenceGrade.C,
        lambda b, t: b.total_trials >= t.low_total_trials or b.literature_count >= t.low_literature,
    ),
    GradeRule(
        "any_presence", EvidenceGrade.D,
        lambda b, t: b.total_trials > 0 or b.literature_count > 0,
    ),
)

INSUFFICIENT_RULE = "insufficient"


def explain_grade(
    bundle: SourceBundle,
    rules: Sequence[GradeRule] = DEFAULT_RULES,
    thresholds: GradeThresholds = DEFAULT_THRESHOLDS,
) -> Tuple[EvidenceGrade, str]:
    """Grade plus the name of the rule that produced it."""
    for rule in rules:
        if rule.matches(bundle, thresholds):
            return rule.grade, rule.name
    return EvidenceGrade.I, INSUFFICIENT_RULE


def infer_grade(
    bundle: SourceBundle,
    rules: Sequence[GradeRule] = DEFAULT_RULES,
    thresholds: GradeThresholds = DEFAULT_THRESHOLDS,
) -> EvidenceGrade:
    return explain_grade(bundle, rules, thresholds)[0]


def presence_grade(bundle: SourceBundle) -> EvidenceGrade:
    """Grade for the evidence-tracking fallback mapping."""
    return EvidenceGrade.D if bundle.total_trials > 0 or bundle.literature_count > 0 else EvidenceGrade.I


def grade_from_post_count(count: int, thresholds: GradeThresholds = DEFAULT_THRESHOLDS) -> EvidenceGrade:
    """Community discussion never grades above D."""
    return EvidenceGrade.D if count >= thresholds.social_min_posts else EvidenceGrade.I
