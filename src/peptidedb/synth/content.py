"""
Template-based content synthesis from a SourceBundle.

Everything here is deterministic given (name, class, bundle, grade, today):
no network, no database. Text is composed from fixed templates, filled with
"no data" phrasing when a source is absent and truncated to fixed budgets.
Machine-authored values are tagged so the store can tell them from curated
ones: safety text carries PLACEHOLDER_PREFIX, claims carry a machine
ClaimOrigin and dosing proposals are always machine-generated.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from ..ingest.reference_urls import to_human_readable_url
from ..ingest.types import SourceBundle, UgcPost, rank_posts
from ..mapping.normalize import truncate
from ..scoring.grade import grade_from_post_count, presence_grade
from ..signals.sentiment import average_sentiment, label_for_average
from ..types import JURISDICTION_CODES, ClaimOrigin, DosingContext, EvidenceGrade, RegulatoryStatus, UgcSource
from ..utils.text import (
    PROTOCOL_DEPENDENT,
    extract_dose_phrases,
    first_non_empty,
    infer_frequency,
    infer_route,
    pick_sentence,
)

PLACEHOLDER_PREFIX = "Auto-generated placeholder:"

INTRO_MAX = 260
MECHANISM_SNIPPET_MAX = 240
SENTENCE_MAX = 220
EFFECTIVENESS_MAX = 320
IDENTITY_PARAGRAPH_MAX = 520
PARAGRAPH_MAX = 560
SAFETY_MAX = 320
CONSUMER_SUMMARY_MAX = 300
CLINICAL_SUMMARY_MAX = 320
CLAIM_MAX = 250
IDENTITY_CLAIM_MAX = 240
COMMUNITY_CLAIM_MAX = 280
MAX_USE_CASES = 3
MAX_CLAIMS = 4

EVIDENCE_TRACKING_SLUG = "evidence-tracking"
EVIDENCE_TRACKING_NAME = "Evidence Tracking"


@dataclass(frozen=True)
class UseCaseRule:
    slug: str
    name: str
    keywords: Tuple[str, ...]


USE_CASE_RULES: Tuple[UseCaseRule, ...] = (
    UseCaseRule("type-2-diabetes", "Type 2 Diabetes",
                ("type 2 diabetes", "diabetes mellitus type 2", "glycemic", "hyperglycemia", "a1c")),
    UseCaseRule("weight-management", "Weight Management",
                ("obesity", "overweight", "weight management", "weight loss", "body mass index")),
    UseCaseRule("type-1-diabetes", "Type 1 Diabetes", ("type 1 diabetes", "diabetes mellitus type 1")),
    UseCaseRule("cardiometabolic-risk-reduction", "Cardiometabolic Risk Reduction",
                ("cardiovascular", "heart failure", "cardiorenal", "stroke", "major adverse cardiovascular")),
    UseCaseRule("growth-hormone-deficiency", "Growth Hormone Deficiency",
                ("growth hormone deficiency", "gh deficiency", "pituitary deficiency")),
    UseCaseRule("acromegaly", "Acromegaly", ("acromegaly",)),
    UseCaseRule("reproductive-health", "Reproductive Health",
                ("infertility", "ivf", "ovarian", "reproductive", "fertility", "endometriosis")),
    UseCaseRule("sexual-health", "Sexual Health",
                ("erectile dysfunction", "sexual dysfunction", "hypoactive sexual desire", "libido")),
    UseCaseRule("tissue-repair", "Tissue Repair",
                ("wound", "tendon", "ligament", "muscle injury", "tissue repair", "healing")),
    UseCaseRule("gi-symptoms", "GI Symptoms",
                ("gastrointestinal", "crohn", "ulcerative colitis", "ibd", "ibs", "colitis", "ulcer")),
    UseCaseRule("neurology-cognition", "Neurology & Cognition",
                ("alzheimer", "parkinson", "cognitive", "memory", "neuro", "depression", "anxiety", "migraine")),
    UseCaseRule("inflammatory-immune", "Inflammatory & Immune Modulation",
                ("inflammation", "immune", "autoimmune", "arthritis", "psoriasis", "dermatitis")),
    UseCaseRule("kidney-renal-care", "Kidney & Renal Care",
                ("kidney", "renal", "nephropathy", "albuminuria", "ckd", "chronic kidney disease")),
    UseCaseRule("dermatology-aesthetics", "Dermatology & Aesthetics",
                ("skin", "dermatology", "aesthetic", "wrinkle", "collagen", "photoaging")),
)


def is_placeholder(value: Optional[str]) -> bool:
    return bool(value) and value.strip().lower().startswith(PLACEHOLDER_PREFIX.lower())


def mark_placeholder(text: str) -> str:
    return f"{PLACEHOLDER_PREFIX} {text}" if text else ""


@dataclass
class ProfileText:
    intro: str
    mechanism: str
    effectiveness_summary: str
    long_description: str


@dataclass
class SafetyText:
    adverse_effects: str
    contraindications: str
    interactions: str
    monitoring: str

    def as_dict(self) -> Dict[str, str]:
        return {
            "adverse_effects": self.adverse_effects,
            "contraindications": self.contraindications,
            "interactions": self.interactions,
            "monitoring": self.monitoring,
        }


@dataclass
class DosingProposal:
    context: DosingContext
    population: str
    route: str
    starting_dose: str
    maintenance_dose: str
    frequency: str
    notes: str


@dataclass
class UseCaseProposal:
    slug: str
    name: str
    evidence_grade: EvidenceGrade
    consumer_summary: str
    clinical_summary: str

    @property
    def is_evidence_tracking(self) -> bool:
        return self.slug == EVIDENCE_TRACKING_SLUG


@dataclass
class ClaimProposal:
    origin: ClaimOrigin
    claim_text: str
    evidence_grade: EvidenceGrade
    source_url: str
    source_title: str
    published_at: date

    @property
    def section(self) -> str:
        return self.origin.section_label


@dataclass
class RegulatoryProposal:
    """Proposed status and stored note, per jurisdiction code."""
    statuses: Dict[str, RegulatoryStatus]
    notes: Dict[str, str] = field(default_factory=dict)


@dataclass
class GeneratedContent:
    grade: EvidenceGrade
    profile: ProfileText
    safety: SafetyText
    dosing: DosingProposal
    use_cases: List[UseCaseProposal] = field(default_factory=list)
    claims: List[ClaimProposal] = field(default_factory=list)
    regulatory: Optional[RegulatoryProposal] = None

    @property
    def has_specific_use_case(self) -> bool:
        return any(not u.is_evidence_tracking for u in self.use_cases)


def _known(value: str) -> str:
    return "" if value == PROTOCOL_DEPENDENT else value


def _fmt_phase(value: Optional[float]) -> str:
    if value is None:
        return ""
    return str(int(value)) if float(value).is_integer() else str(value)


# ---------------------------------------------------------------------------
# Profile
# ---------------------------------------------------------------------------

def generate_intro(name: str, class_name: str) -> str:
    return truncate(
        f"{name} is listed as {class_name or 'a peptide reference entry'}, with current consumer and "
        f"clinical summaries synthesized from regulatory records, trial registries, and indexed publications.",
        INTRO_MAX,
    )


def generate_effectiveness(name: str, bundle: SourceBundle, grade: EvidenceGrade) -> str:
    label_part = ", with openFDA label data available." if bundle.label_found else "."
    return truncate(
        f"Current evidence synthesis for {name} is grade {grade.value}, based on "
        f"{bundle.total_trials} indexed ClinicalTrials.gov studies and "
        f"{bundle.literature_count} PubMed records{label_part}",
        EFFECTIVENESS_MAX,
    )


def generate_mechanism(name: str, class_name: str, bundle: SourceBundle) -> str:
    chembl = bundle.chembl.mechanisms[0] if bundle.chembl.mechanisms else ""
    mechanism = truncate(chembl, MECHANISM_SNIPPET_MAX)
    label = pick_sentence(bundle.openfda.clinical_pharmacology, SENTENCE_MAX)
    pubchem = pick_sentence(bundle.pubchem.description, SENTENCE_MAX)
    return first_non_empty([
        " ".join(p for p in (mechanism, label) if p),
        mechanism,
        label,
        pubchem,
        f"{name} is listed as {class_name or 'a peptide'} with mechanism information "
        f"still evolving across public sources.",
    ])


def generate_long_description(name: str, class_name: str, bundle: SourceBundle,
                              grade: EvidenceGrade, today: date) -> str:
    paragraphs = []
    pubchem, chembl, ct, pubmed, fda = bundle.pubchem, bundle.chembl, bundle.clinical_trials, bundle.pubmed, bundle.openfda

    identity = []
    if pubchem.found and pubchem.molecular_formula:
        weight = f" with molecular weight {pubchem.molecular_weight}" if pubchem.molecular_weight else ""
        identity.append(f"PubChem lists molecular formula {pubchem.molecular_formula}{weight}.")
    if chembl.found:
        phase = f" reports max phase {_fmt_phase(chembl.max_phase)}" if chembl.max_phase is not None else ""
        approval = f" and first approval year {chembl.first_approval}" if chembl.first_approval else ""
        identity.append(f"ChEMBL record {chembl.chembl_id}{phase}{approval}.")
    if identity:
        paragraphs.append(truncate(
            f"{name} is categorized as {class_name or 'a peptide'} in this reference. {' '.join(identity)}",
            IDENTITY_PARAGRAPH_MAX,
        ))

    through = f" with recent publication years through {pubmed.newest_year}" if pubmed.newest_year else ""
    paragraphs.append(truncate(
        f"Evidence snapshot ({today.isoformat()}): ClinicalTrials.gov returns {ct.total} studies for {name} "
        f"(completed {ct.completed}, recruiting {ct.recruiting}, active {ct.active}, "
        f"terminated {ct.terminated}, posted results {ct.with_results}). "
        f"PubMed indexes {pubmed.count} related records{through}.",
        PARAGRAPH_MAX,
    ))

    if fda.found:
        label = f"openFDA label records were identified for {fda.matched_term or name}."
    else:
        label = f"No openFDA label match was identified for {name} using primary name and aliases."
    conditions = ", ".join(ct.top_conditions[:4])
    indications = ", ".join(chembl.indications[:4])
    parts = [label]
    if conditions:
        parts.append(f"Most frequent trial-linked conditions include {conditions}.")
    if indications:
        parts.append(f"ChEMBL indication terms include {indications}.")
    parts.append(f"Overall evidence grade is currently {grade.value}.")
    paragraphs.append(truncate(" ".join(parts), PARAGRAPH_MAX))

    return "\n\n".join(paragraphs)


# ---------------------------------------------------------------------------
# Safety and dosing
# ---------------------------------------------------------------------------

def generate_safety(name: str, bundle: SourceBundle, today: date) -> SafetyText:
    fda, ct, pubmed = bundle.openfda, bundle.clinical_trials, bundle.pubmed
    adverse = first_non_empty([
        pick_sentence(fda.adverse_reactions, SAFETY_MAX),
        truncate(
            f"ClinicalTrials snapshot for {name} ({today.isoformat()}): {ct.total} studies indexed with "
            f"{ct.with_results} posted results. Reported adverse-event patterns are study- and dose-specific.",
            SAFETY_MAX,
        ),
    ])
    contraindications = first_non_empty([
        pick_sentence(fda.contraindications, SAFETY_MAX),
        pick_sentence(fda.warnings, SAFETY_MAX),
        f"No consolidated contraindication label text was found in openFDA for {name}; evaluate protocol "
        f"exclusions and specialist guidance before use.",
    ])
    interactions = first_non_empty([
        pick_sentence(fda.interactions, SAFETY_MAX),
        f"Public interaction data for {name} remain limited; review concurrent therapy risk and "
        f"protocol-specific exclusions before use.",
    ])
    through = f" through {pubmed.newest_year}" if pubmed.newest_year else ""
    monitoring = first_non_empty([
        pick_sentence(fda.warnings, SAFETY_MAX),
        truncate(
            f"Monitoring should align to indication and protocol context, using current trial status "
            f"({ct.completed} completed / {ct.recruiting} recruiting) and recent publication activity{through}.",
            SAFETY_MAX,
        ),
    ])
    return SafetyText(
        adverse_effects=mark_placeholder(adverse),
        contraindications=mark_placeholder(contraindications),
        interactions=mark_placeholder(interactions),
        monitoring=mark_placeholder(monitoring),
    )


def generate_dosing(name: str, bundle: SourceBundle) -> DosingProposal:
    fda = bundle.openfda
    route = first_non_empty([
        fda.route_hints[0] if fda.route_hints else "",
        _known(infer_route(fda.dosage)),
        _known(infer_route(fda.indications)),
    ])
    frequency = first_non_empty([
        fda.frequency_hints[0] if fda.frequency_hints else "",
        _known(infer_frequency(fda.dosage)),
        _known(infer_frequency(fda.indications)),
    ])

    if fda.found and fda.dosage:
        phrases = extract_dose_phrases(fda.dosage)
        return DosingProposal(
            context=DosingContext.APPROVED_LABEL,
            population="Adults with label-aligned indication",
            route=route or "Per approved label",
            starting_dose=phrases[0] if phrases else "Use current approved label starting dose.",
            maintenance_dose=phrases[1] if len(phrases) > 1 else "Escalate to labeled maintenance dose as tolerated.",
            frequency=frequency or "Per approved label",
            notes=(
                f"Generated from openFDA dosage and administration text for {fda.matched_term or name}; "
                f"verify exact product-specific titration on the current label."
            ),
        )

    return DosingProposal(
        context=DosingContext.STUDY_REPORTED,
        population="Clinical trial participants",
        route=route or PROTOCOL_DEPENDENT,
        starting_dose="Protocol-specific dosing",
        maintenance_dose="Protocol-specific titration",
        frequency=frequency or PROTOCOL_DEPENDENT,
        notes=(
            f"No openFDA dosing label was matched. Generated from trial/publication evidence snapshot "
            f"({bundle.total_trials} studies; {bundle.literature_count} PubMed records)."
        ),
    )


# ---------------------------------------------------------------------------
# Use cases
# ---------------------------------------------------------------------------

def use_case_haystack(bundle: SourceBundle) -> str:
    return " | ".join([
        bundle.openfda.indications,
        bundle.openfda.matched_term,
        " | ".join(bundle.chembl.indications),
        " | ".join(bundle.clinical_trials.top_conditions),
        " | ".join(bundle.pubmed.recent_titles),
    ]).lower()


def match_use_case_rules(bundle: SourceBundle, rules: Sequence[UseCaseRule] = USE_CASE_RULES) -> List[UseCaseRule]:
    haystack = use_case_haystack(bundle)
    return [r for r in rules if any(k in haystack for k in r.keywords)][:MAX_USE_CASES]


def generate_use_cases(name: str, bundle: SourceBundle, grade: EvidenceGrade, today: date) -> List[UseCaseProposal]:
    ct = bundle.clinical_trials
    matches = match_use_case_rules(bundle)
    if not matches:
        return [UseCaseProposal(
            slug=EVIDENCE_TRACKING_SLUG,
            name=EVIDENCE_TRACKING_NAME,
            evidence_grade=presence_grade(bundle),
            consumer_summary=truncate(
                f"As of {today.isoformat()}, this {name} record is tracked primarily for evidence discovery, "
                f"with {bundle.total_trials} indexed ClinicalTrials.gov studies and "
                f"{bundle.literature_count} PubMed records.",
                CONSUMER_SUMMARY_MAX,
            ),
            clinical_summary=(
                "Current indexed data are not sufficient for indication-specific certainty; this entry "
                "remains evidence-tracking while source-level synthesis matures."
            ),
        )]

    label_flag = "US label evidence is available" if bundle.label_found else "No US approved label was identified"
    out = []
    for rule in matches:
        topic = rule.name.lower()
        out.append(UseCaseProposal(
            slug=rule.slug,
            name=rule.name,
            evidence_grade=grade,
            consumer_summary=truncate(
                f"{name} appears in external datasets for {topic}. {label_flag}, and current indexed evidence "
                f"includes {bundle.total_trials} ClinicalTrials.gov studies plus "
                f"{bundle.literature_count} PubMed records.",
                CONSUMER_SUMMARY_MAX,
            ),
            clinical_summary=truncate(
                f"Mapped from openFDA/ChEMBL/ClinicalTrials terms for {topic}. Trial status snapshot: "
                f"completed {ct.completed}, recruiting {ct.recruiting}, active not recruiting {ct.active}; "
                f"inferred evidence grade {grade.value}.",
                CLINICAL_SUMMARY_MAX,
            ),
        ))
    return out


# ---------------------------------------------------------------------------
# Claims and regulatory status
# ---------------------------------------------------------------------------

def build_claims(name: str, bundle: SourceBundle, grade: EvidenceGrade, today: date) -> List[ClaimProposal]:
    """One claim per source with a hit; citation URLs are human-navigable."""
    ct, pubmed, fda, chembl, pubchem = (
        bundle.clinical_trials, bundle.pubmed, bundle.openfda, bundle.chembl, bundle.pubchem,
    )
    claims: List[ClaimProposal] = []

    def add(origin, text, claim_grade, raw_url, title, published, max_chars=CLAIM_MAX):
        url = to_human_readable_url(raw_url)
        if url:
            claims.append(ClaimProposal(origin, truncate(text, max_chars), claim_grade, url, title, published))

    if ct.total > 0:
        add(
            ClaimOrigin.CLINICAL_TRIALS,
            f"ClinicalTrials.gov search for {name} currently returns {ct.total} studies ({ct.completed} completed, "
            f"{ct.recruiting} recruiting, {ct.active} active not recruiting, {ct.terminated} terminated).",
            grade, ct.query_url, f"ClinicalTrials.gov search results for {name}", ct.latest_update or today,
        )

    if pubmed.count > 0:
        through = f" with publication years through {pubmed.newest_year}" if pubmed.newest_year else ""
        title = f' Recent indexed title: "{pubmed.recent_titles[0]}".' if pubmed.recent_titles else ""
        add(
            ClaimOrigin.PUBMED,
            f"PubMed query for {name} returns {pubmed.count} records{through}.{title}",
            grade, pubmed.query_url, f"PubMed search results for {name}",
            date(pubmed.newest_year, 1, 1) if pubmed.newest_year else today,
        )

    if fda.found:
        term = fda.matched_term or name
        indication = (
            f"; indication text includes: {pick_sentence(fda.indications, 140)}" if fda.indications else "."
        )
        add(
            ClaimOrigin.OPENFDA,
            f"openFDA label records were found for {term}{indication}",
            EvidenceGrade.A if fda.indications else grade,
            fda.query_url, f"openFDA drug label query for {term}", today,
        )

    if chembl.found or pubchem.found:
        parts = []
        if chembl.found:
            phase = f" reports max phase {_fmt_phase(chembl.max_phase)}" if chembl.max_phase is not None else ""
            parts.append(f"ChEMBL {chembl.chembl_id}{phase}.")
        if pubchem.found:
            formula = f" lists molecular formula {pubchem.molecular_formula}" if pubchem.molecular_formula else ""
            parts.append(f"PubChem CID {pubchem.cid}{formula}.")
        use_chembl = chembl.found and bool(chembl.query_url)
        add(
            ClaimOrigin.CHEMBL_PUBCHEM,
            " ".join(parts),
            grade,
            chembl.query_url if use_chembl else pubchem.query_url,
            f"ChEMBL record for {name}" if use_chembl else f"PubChem record for {name}",
            today,
            max_chars=IDENTITY_CLAIM_MAX,
        )

    return claims[:MAX_CLAIMS]


REGULATORY_NOTES = {
    "label": "Derived from openFDA label match during external-source enrichment.",
    "no_label": "No openFDA US label match found during external-source enrichment.",
    "elsewhere": "No approval record for this jurisdiction is consulted during external-source enrichment.",
}


def propose_regulatory_status(bundle: SourceBundle) -> RegulatoryProposal:
    label_jurisdiction = bundle.openfda.jurisdiction
    statuses, notes = {}, {}
    for code in JURISDICTION_CODES:
        if bundle.label_found and code == label_jurisdiction:
            statuses[code], notes[code] = RegulatoryStatus.US_FDA_APPROVED, REGULATORY_NOTES["label"]
        elif code == label_jurisdiction:
            statuses[code], notes[code] = RegulatoryStatus.INVESTIGATIONAL, REGULATORY_NOTES["no_label"]
        else:
            statuses[code], notes[code] = RegulatoryStatus.INVESTIGATIONAL, REGULATORY_NOTES["elsewhere"]
    return RegulatoryProposal(statuses, notes)


def synthesize(
    name: str,
    class_name: Optional[str],
    bundle: SourceBundle,
    grade: EvidenceGrade,
    today: Optional[date] = None,
) -> GeneratedContent:
    today = today or date.today()
    class_name = class_name or ""
    return GeneratedContent(
        grade=grade,
        profile=ProfileText(
            intro=generate_intro(name, class_name),
            mechanism=generate_mechanism(name, class_name, bundle),
            effectiveness_summary=generate_effectiveness(name, bundle, grade),
            long_description=generate_long_description(name, class_name, bundle, grade, today),
        ),
        safety=generate_safety(name, bundle, today),
        dosing=generate_dosing(name, bundle),
        use_cases=generate_use_cases(name, bundle, grade, today),
        claims=build_claims(name, bundle, grade, today),
        regulatory=propose_regulatory_status(bundle),
    )


# ---------------------------------------------------------------------------
# Community claims
# ---------------------------------------------------------------------------

def group_by_source(posts: Sequence[UgcPost]) -> Dict[UgcSource, List[UgcPost]]:
    grouped: Dict[UgcSource, List[UgcPost]] = {}
    for post in posts:
        grouped.setdefault(post.source, []).append(post)
    return grouped


def synthesize_community_claims(name: str, posts_by_source: Mapping[UgcSource, Sequence[UgcPost]]) -> List[ClaimProposal]:
    """One claim per social source: post count, average sentiment, top quote."""
    claims = []
    for source, posts in posts_by_source.items():
        if not posts:
            continue
        top = rank_posts(list(posts))[0]
        avg = average_sentiment(p.sentiment_value for p in posts)
        label = label_for_average(avg)
        avg_text = f" ({avg:.2f})" if avg is not None else ""
        url = to_human_readable_url(top.search_url)
        if not url:
            continue
        newest = max(p.created_at for p in posts)
        claims.append(ClaimProposal(
            origin=source.claim_origin,
            claim_text=truncate(
                f"{source.display_name} discussions mention {name} in {len(posts)} posts. Average community "
                f'sentiment is {label.value}{avg_text}. Representative quote: "{top.quote}"',
                COMMUNITY_CLAIM_MAX,
            ),
            evidence_grade=grade_from_post_count(len(posts)),
            source_url=url,
            source_title=f"{source.display_name} search results for {name}",
            published_at=newest.date(),
        ))
    return claims
