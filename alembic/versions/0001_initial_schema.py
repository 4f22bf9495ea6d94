"""0001 initial catalog schema

Revision ID: 0001_initial_schema
Revises:
Create Date: 2026-10-19 09:00:00.000000

- Reference data: jurisdictions, use_cases.
- Peptides with aliases, profiles, regulatory status, use-case mappings,
  dosing and safety entries.
- Citations (unique per url + published date) and provenance-tagged claims.
- Vendors with aliases, verifications, listings and rating snapshots
  (at most one current snapshot per vendor).
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = '0001_initial_schema'
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

EVIDENCE_GRADES = ("A", "B", "C", "D", "I")
REGULATORY_STATUSES = ("US_FDA_APPROVED", "NON_US_APPROVED", "INVESTIGATIONAL", "RESEARCH_ONLY")
DOSING_CONTEXTS = ("APPROVED_LABEL", "STUDY_REPORTED", "EXPERT_CONSENSUS")
CLAIM_ORIGINS = (
    "curated",
    "auto_clinicaltrials",
    "auto_pubmed",
    "auto_openfda",
    "auto_chembl_pubchem",
    "community_reddit",
    "community_hacker_news",
    "community_trustpilot",
)


def _now():
    return sa.text("CURRENT_TIMESTAMP")


def upgrade() -> None:
    evidence_grade = sa.Enum(*EVIDENCE_GRADES, name="evidence_grade_enum")
    regulatory_status = sa.Enum(*REGULATORY_STATUSES, name="regulatory_status_enum")
    dosing_context = sa.Enum(*DOSING_CONTEXTS, name="dosing_context_enum")
    claim_origin = sa.Enum(*CLAIM_ORIGINS, name="claim_origin_enum")

    # --- reference data ---
    op.create_table(
        "jurisdictions",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("code", sa.String(8), nullable=False, unique=True),
        sa.Column("name", sa.Text, nullable=False),
    )
    op.create_table(
        "use_cases",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("slug", sa.String(120), nullable=False, unique=True),
        sa.Column("name", sa.Text, nullable=False),
    )

    # --- peptides ---
    op.create_table(
        "peptides",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("slug", sa.String(160), nullable=False, unique=True),
        sa.Column("canonical_name", sa.Text, nullable=False),
        sa.Column("sequence", sa.Text),
        sa.Column("peptide_class", sa.Text),
        sa.Column("is_published", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
    )
    op.create_index("idx_peptides_published", "peptides", ["is_published"])

    op.create_table(
        "peptide_aliases",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("peptide_id", sa.Integer, sa.ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False),
        sa.Column("alias", sa.Text, nullable=False),
        sa.Column("alias_norm", sa.Text, nullable=False),
        sa.UniqueConstraint("peptide_id", "alias_norm", name="uq_peptide_alias_norm"),
    )
    op.create_index("idx_peptide_aliases_norm", "peptide_aliases", ["alias_norm"])

    op.create_table(
        "peptide_profiles",
        sa.Column("peptide_id", sa.Integer, sa.ForeignKey("peptides.id", ondelete="CASCADE"), primary_key=True),
        sa.Column("intro", sa.Text),
        sa.Column("mechanism", sa.Text),
        sa.Column("effectiveness_summary", sa.Text),
        sa.Column("long_description", sa.Text),
        sa.Column("is_curated", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
    )

    op.create_table(
        "peptide_regulatory_status",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("peptide_id", sa.Integer, sa.ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False),
        sa.Column("jurisdiction_id", sa.Integer, sa.ForeignKey("jurisdictions.id"), nullable=False),
        sa.Column("status", regulatory_status, nullable=False),
        sa.Column("notes", sa.Text),
        sa.Column("is_machine_asserted", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("peptide_id", "jurisdiction_id", "status", name="uq_peptide_regulatory_status"),
    )

    op.create_table(
        "peptide_use_cases",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("peptide_id", sa.Integer, sa.ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False),
        sa.Column("use_case_id", sa.Integer, sa.ForeignKey("use_cases.id"), nullable=False),
        sa.Column("jurisdiction_id", sa.Integer, sa.ForeignKey("jurisdictions.id"), nullable=False),
        sa.Column("evidence_grade", evidence_grade, nullable=False, server_default="I"),
        sa.Column("consumer_summary", sa.Text, nullable=False, server_default=""),
        sa.Column("clinical_summary", sa.Text, nullable=False, server_default=""),
        sa.UniqueConstraint("peptide_id", "use_case_id", "jurisdiction_id", name="uq_peptide_use_case"),
    )

    op.create_table(
        "peptide_dosing_entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("peptide_id", sa.Integer, sa.ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False),
        sa.Column("jurisdiction_id", sa.Integer, sa.ForeignKey("jurisdictions.id"), nullable=False),
        sa.Column("context", dosing_context, nullable=False),
        sa.Column("population", sa.Text, nullable=False, server_default=""),
        sa.Column("route", sa.Text),
        sa.Column("starting_dose", sa.Text),
        sa.Column("maintenance_dose", sa.Text),
        sa.Column("frequency", sa.Text),
        sa.Column("notes", sa.Text),
        sa.Column("is_machine_generated", sa.Boolean, nullable=False, server_default=sa.false()),
    )
    op.create_index("idx_dosing_peptide_jurisdiction", "peptide_dosing_entries", ["peptide_id", "jurisdiction_id"])

    op.create_table(
        "peptide_safety_entries",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("peptide_id", sa.Integer, sa.ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False),
        sa.Column("jurisdiction_id", sa.Integer, sa.ForeignKey("jurisdictions.id"), nullable=False),
        sa.Column("adverse_effects", sa.Text, nullable=False, server_default=""),
        sa.Column("contraindications", sa.Text, nullable=False, server_default=""),
        sa.Column("interactions", sa.Text, nullable=False, server_default=""),
        sa.Column("monitoring", sa.Text, nullable=False, server_default=""),
        sa.UniqueConstraint("peptide_id", "jurisdiction_id", name="uq_peptide_safety"),
    )

    # --- citations & claims ---
    op.create_table(
        "citations",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("source_url", sa.Text, nullable=False),
        sa.Column("source_title", sa.Text),
        sa.Column("published_at", sa.Date, nullable=False),
        sa.Column("retrieved_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.UniqueConstraint("source_url", "published_at", name="uq_citation_url_date"),
    )

    op.create_table(
        "peptide_claims",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("peptide_id", sa.Integer, sa.ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False),
        sa.Column("origin", claim_origin, nullable=False, server_default="curated"),
        sa.Column("section", sa.Text, nullable=False),
        sa.Column("claim_text", sa.Text, nullable=False),
        sa.Column("evidence_grade", evidence_grade, nullable=False, server_default="I"),
        sa.Column("citation_id", sa.Integer, sa.ForeignKey("citations.id")),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
    )
    op.create_index("idx_peptide_claims_origin", "peptide_claims", ["peptide_id", "origin"])

    # --- vendors ---
    op.create_table(
        "vendors",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("slug", sa.String(160), nullable=False, unique=True),
        sa.Column("name", sa.Text, nullable=False),
        sa.Column("website_url", sa.Text),
        sa.Column("is_published", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.Column("created_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
    )

    op.create_table(
        "vendor_aliases",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("vendor_id", sa.Integer, sa.ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False),
        sa.Column("alias", sa.Text, nullable=False),
        sa.Column("alias_norm", sa.Text, nullable=False),
        sa.UniqueConstraint("vendor_id", "alias_norm", name="uq_vendor_alias_norm"),
    )

    op.create_table(
        "vendor_verifications",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("vendor_id", sa.Integer, sa.ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False),
        sa.Column("verification_type", sa.Text, nullable=False),
        sa.Column("value", sa.Text),
        sa.Column("verified_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
    )
    op.create_index("idx_vendor_verifications_type", "vendor_verifications", ["vendor_id", "verification_type"])

    op.create_table(
        "vendor_peptide_listings",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("vendor_id", sa.Integer, sa.ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False),
        sa.Column("peptide_id", sa.Integer, sa.ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False),
        sa.Column("product_url", sa.Text),
        sa.Column("is_affiliate", sa.Boolean, nullable=False, server_default=sa.false()),
        sa.UniqueConstraint("vendor_id", "peptide_id", name="uq_vendor_peptide_listing"),
    )

    op.create_table(
        "vendor_rating_snapshots",
        sa.Column("id", sa.Integer, primary_key=True, autoincrement=True),
        sa.Column("vendor_id", sa.Integer, sa.ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False),
        sa.Column("rating", sa.Numeric(2, 1)),
        sa.Column("confidence", sa.Numeric(3, 2)),
        sa.Column("method_version", sa.Text, nullable=False),
        sa.Column("reason_tags", sa.JSON, nullable=False),
        sa.Column("calculated_at", sa.DateTime(timezone=True), nullable=False, server_default=_now()),
        sa.Column("is_current", sa.Boolean, nullable=False, server_default=sa.true()),
        sa.CheckConstraint("rating IS NULL OR (rating >= 0 AND rating <= 5)", name="ck_vendor_rating_range"),
        sa.CheckConstraint("confidence IS NULL OR (confidence >= 0 AND confidence <= 1)",
                           name="ck_vendor_confidence_range"),
    )
    # one current snapshot per vendor
    op.create_index(
        "uq_vendor_rating_current", "vendor_rating_snapshots", ["vendor_id"], unique=True,
        postgresql_where=sa.text("is_current"),
        sqlite_where=sa.text("is_current = 1"),
    )


def downgrade() -> None:
    op.drop_index("uq_vendor_rating_current", table_name="vendor_rating_snapshots")
    op.drop_table("vendor_rating_snapshots")
    op.drop_table("vendor_peptide_listings")
    op.drop_index("idx_vendor_verifications_type", table_name="vendor_verifications")
    op.drop_table("vendor_verifications")
    op.drop_table("vendor_aliases")
    op.drop_table("vendors")
    op.drop_index("idx_peptide_claims_origin", table_name="peptide_claims")
    op.drop_table("peptide_claims")
    op.drop_table("citations")
    op.drop_table("peptide_safety_entries")
    op.drop_index("idx_dosing_peptide_jurisdiction", table_name="peptide_dosing_entries")
    op.drop_table("peptide_dosing_entries")
    op.drop_table("peptide_use_cases")
    op.drop_table("peptide_regulatory_status")
    op.drop_table("peptide_profiles")
    op.drop_index("idx_peptide_aliases_norm", table_name="peptide_aliases")
    op.drop_table("peptide_aliases")
    op.drop_index("idx_peptides_published", table_name="peptides")
    op.drop_table("peptides")
    op.drop_table("use_cases")
    op.drop_table("jurisdictions")

    bind = op.get_bind()
    for name in ("claim_origin_enum", "dosing_context_enum", "regulatory_status_enum", "evidence_grade_enum"):
        sa.Enum(name=name).drop(bind, checkfirst=True)
