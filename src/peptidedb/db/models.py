# src/peptidedb/db/models.py
"""
Catalog database models.

Peptides, vendors and everything the enrichment pipeline derives for them:
profiles, regulatory status, use-case mappings, dosing and safety entries,
claims with deduplicated citations, vendor listings and rating snapshots.
Column types are portable so the same metadata runs on PostgreSQL and SQLite.
"""

from __future__ import annotations
from datetime import datetime, date
from decimal import Decimal
from typing import Optional, List

from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship
from sqlalchemy import (
    String, Text, Boolean, Date, DateTime, ForeignKey, Index, JSON,
    UniqueConstraint, Integer, CheckConstraint, Numeric, Enum as SQLEnum,
    event, func, text,
)

from ..mapping.normalize import norm_name
from ..types import ClaimOrigin, DosingContext, EvidenceGrade, RegulatoryStatus

# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------

class Base(DeclarativeBase):
    """SQLAlchemy declarative base for catalog models."""
    pass

# ---------------------------------------------------------------------------
# Enums (stored by value)
# ---------------------------------------------------------------------------

EvidenceGradeEnum = SQLEnum(
    *[g.value for g in EvidenceGrade], name="evidence_grade_enum",
)
RegulatoryStatusEnum = SQLEnum(
    *[s.value for s in RegulatoryStatus], name="regulatory_status_enum",
)
DosingContextEnum = SQLEnum(
    *[c.value for c in DosingContext], name="dosing_context_enum",
)
ClaimOriginEnum = SQLEnum(
    *[o.value for o in ClaimOrigin], name="claim_origin_enum",
)

# ---------------------------------------------------------------------------
# Reference data
# ---------------------------------------------------------------------------

class Jurisdiction(Base):
    __tablename__ = "jurisdictions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    code: Mapped[str] = mapped_column(String(8), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)


class UseCase(Base):
    __tablename__ = "use_cases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(120), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)

# ---------------------------------------------------------------------------
# Peptides
# ---------------------------------------------------------------------------

class Peptide(Base):
    """Catalog compound. Slug is immutable once assigned."""
    __tablename__ = "peptides"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(160), unique=True, nullable=False)
    canonical_name: Mapped[str] = mapped_column(Text, nullable=False)
    sequence: Mapped[Optional[str]] = mapped_column(Text)
    peptide_class: Mapped[Optional[str]] = mapped_column(Text)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    # Relationships
    aliases: Mapped[List["PeptideAlias"]] = relationship(back_populates="peptide", cascade="all, delete-orphan")
    profile: Mapped[Optional["PeptideProfile"]] = relationship(back_populates="peptide", uselist=False)

    __table_args__ = (
        Index("idx_peptides_published", "is_published"),
    )


class PeptideAlias(Base):
    __tablename__ = "peptide_aliases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    peptide_id: Mapped[int] = mapped_column(ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False)
    alias: Mapped[str] = mapped_column(Text, nullable=False)
    alias_norm: Mapped[str] = mapped_column(Text, nullable=False)

    peptide: Mapped["Peptide"] = relationship(back_populates="aliases")

    __table_args__ = (
        UniqueConstraint("peptide_id", "alias_norm", name="uq_peptide_alias_norm"),
        Index("idx_peptide_aliases_norm", "alias_norm"),
    )


class PeptideProfile(Base):
    __tablename__ = "peptide_profiles"

    peptide_id: Mapped[int] = mapped_column(ForeignKey("peptides.id", ondelete="CASCADE"), primary_key=True)
    intro: Mapped[Optional[str]] = mapped_column(Text)
    mechanism: Mapped[Optional[str]] = mapped_column(Text)
    effectiveness_summary: Mapped[Optional[str]] = mapped_column(Text)
    long_description: Mapped[Optional[str]] = mapped_column(Text)
    # curated profiles are only filled in, never rewritten, by the pipeline
    is_curated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)

    peptide: Mapped["Peptide"] = relationship(back_populates="profile")


class PeptideRegulatoryStatus(Base):
    __tablename__ = "peptide_regulatory_status"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    peptide_id: Mapped[int] = mapped_column(ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False)
    jurisdiction_id: Mapped[int] = mapped_column(ForeignKey("jurisdictions.id"), nullable=False)
    status: Mapped[str] = mapped_column(RegulatoryStatusEnum, nullable=False)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    # False for curator-asserted rows, which machine proposals never touch
    is_machine_asserted: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("peptide_id", "jurisdiction_id", "status", name="uq_peptide_regulatory_status"),
    )


class PeptideUseCase(Base):
    """Use-case mapping, unique per (peptide, use case, jurisdiction)."""
    __tablename__ = "peptide_use_cases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    peptide_id: Mapped[int] = mapped_column(ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False)
    use_case_id: Mapped[int] = mapped_column(ForeignKey("use_cases.id"), nullable=False)
    jurisdiction_id: Mapped[int] = mapped_column(ForeignKey("jurisdictions.id"), nullable=False)
    evidence_grade: Mapped[str] = mapped_column(EvidenceGradeEnum, nullable=False, default="I")
    consumer_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")
    clinical_summary: Mapped[str] = mapped_column(Text, nullable=False, default="")

    use_case: Mapped["UseCase"] = relationship()

    __table_args__ = (
        UniqueConstraint("peptide_id", "use_case_id", "jurisdiction_id", name="uq_peptide_use_case"),
    )


class PeptideDosingEntry(Base):
    __tablename__ = "peptide_dosing_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    peptide_id: Mapped[int] = mapped_column(ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False)
    jurisdiction_id: Mapped[int] = mapped_column(ForeignKey("jurisdictions.id"), nullable=False)
    context: Mapped[str] = mapped_column(DosingContextEnum, nullable=False)
    population: Mapped[str] = mapped_column(Text, nullable=False, default="")
    route: Mapped[Optional[str]] = mapped_column(Text)
    starting_dose: Mapped[Optional[str]] = mapped_column(Text)
    maintenance_dose: Mapped[Optional[str]] = mapped_column(Text)
    frequency: Mapped[Optional[str]] = mapped_column(Text)
    notes: Mapped[Optional[str]] = mapped_column(Text)
    is_machine_generated: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        Index("idx_dosing_peptide_jurisdiction", "peptide_id", "jurisdiction_id"),
    )


class PeptideSafetyEntry(Base):
    __tablename__ = "peptide_safety_entries"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    peptide_id: Mapped[int] = mapped_column(ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False)
    jurisdiction_id: Mapped[int] = mapped_column(ForeignKey("jurisdictions.id"), nullable=False)
    adverse_effects: Mapped[str] = mapped_column(Text, nullable=False, default="")
    contraindications: Mapped[str] = mapped_column(Text, nullable=False, default="")
    interactions: Mapped[str] = mapped_column(Text, nullable=False, default="")
    monitoring: Mapped[str] = mapped_column(Text, nullable=False, default="")

    __table_args__ = (
        UniqueConstraint("peptide_id", "jurisdiction_id", name="uq_peptide_safety"),
    )

# ---------------------------------------------------------------------------
# Citations & claims
# ---------------------------------------------------------------------------

class Citation(Base):
    """Source document, deduplicated by (source_url, published_at)."""
    __tablename__ = "citations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    source_title: Mapped[Optional[str]] = mapped_column(Text)
    published_at: Mapped[date] = mapped_column(Date, nullable=False)
    retrieved_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("source_url", "published_at", name="uq_citation_url_date"),
    )


class PeptideClaim(Base):
    __tablename__ = "peptide_claims"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    peptide_id: Mapped[int] = mapped_column(ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False)
    origin: Mapped[str] = mapped_column(ClaimOriginEnum, nullable=False, default=ClaimOrigin.CURATED.value)
    section: Mapped[str] = mapped_column(Text, nullable=False)
    claim_text: Mapped[str] = mapped_column(Text, nullable=False)
    evidence_grade: Mapped[str] = mapped_column(EvidenceGradeEnum, nullable=False, default="I")
    citation_id: Mapped[Optional[int]] = mapped_column(ForeignKey("citations.id"))
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    citation: Mapped[Optional["Citation"]] = relationship()

    __table_args__ = (
        Index("idx_peptide_claims_origin", "peptide_id", "origin"),
    )

# ---------------------------------------------------------------------------
# Vendors
# ---------------------------------------------------------------------------

class Vendor(Base):
    __tablename__ = "vendors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(160), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    website_url: Mapped[Optional[str]] = mapped_column(Text)
    is_published: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    aliases: Mapped[List["VendorAlias"]] = relationship(back_populates="vendor", cascade="all, delete-orphan")


class VendorAlias(Base):
    __tablename__ = "vendor_aliases"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False)
    alias: Mapped[str] = mapped_column(Text, nullable=False)
    alias_norm: Mapped[str] = mapped_column(Text, nullable=False)

    vendor: Mapped["Vendor"] = relationship(back_populates="aliases")

    __table_args__ = (
        UniqueConstraint("vendor_id", "alias_norm", name="uq_vendor_alias_norm"),
    )


class VendorVerification(Base):
    """Declared trust signal or stored community review for a vendor."""
    __tablename__ = "vendor_verifications"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False)
    verification_type: Mapped[str] = mapped_column(Text, nullable=False)
    value: Mapped[Optional[str]] = mapped_column(Text)
    verified_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("idx_vendor_verifications_type", "vendor_id", "verification_type"),
    )


class VendorPeptideListing(Base):
    __tablename__ = "vendor_peptide_listings"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False)
    peptide_id: Mapped[int] = mapped_column(ForeignKey("peptides.id", ondelete="CASCADE"), nullable=False)
    product_url: Mapped[Optional[str]] = mapped_column(Text)
    is_affiliate: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    __table_args__ = (
        UniqueConstraint("vendor_id", "peptide_id", name="uq_vendor_peptide_listing"),
    )


class VendorRatingSnapshot(Base):
    """Rating history. At most one row per vendor carries is_current."""
    __tablename__ = "vendor_rating_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    vendor_id: Mapped[int] = mapped_column(ForeignKey("vendors.id", ondelete="CASCADE"), nullable=False)
    rating: Mapped[Optional[Decimal]] = mapped_column(Numeric(2, 1))
    confidence: Mapped[Optional[Decimal]] = mapped_column(Numeric(3, 2))
    method_version: Mapped[str] = mapped_column(Text, nullable=False)
    reason_tags: Mapped[list] = mapped_column(JSON, nullable=False, default=list)
    calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    is_current: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)

    __table_args__ = (
        CheckConstraint("rating IS NULL OR (rating >= 0 AND rating <= 5)", name="ck_vendor_rating_range"),
        CheckConstraint("confidence IS NULL OR (confidence >= 0 AND confidence <= 1)", name="ck_vendor_confidence_range"),
        Index(
            "uq_vendor_rating_current", "vendor_id", unique=True,
            postgresql_where=text("is_current"),
            sqlite_where=text("is_current = 1"),
        ),
    )

# ---------------------------------------------------------------------------
# Alias normalization
# ---------------------------------------------------------------------------

@event.listens_for(PeptideAlias, "before_insert")
@event.listens_for(PeptideAlias, "before_update")
@event.listens_for(VendorAlias, "before_insert")
@event.listens_for(VendorAlias, "before_update")
def _normalize_alias(mapper, connection, target):
    target.alias_norm = norm_name(target.alias)


__all__ = [
    "Base",
    "Jurisdiction",
    "UseCase",
    "Peptide",
    "PeptideAlias",
    "PeptideProfile",
    "PeptideRegulatoryStatus",
    "PeptideUseCase",
    "PeptideDosingEntry",
    "PeptideSafetyEntry",
    "Citation",
    "PeptideClaim",
    "Vendor",
    "VendorAlias",
    "VendorVerification",
    "VendorPeptideListing",
    "VendorRatingSnapshot",
]
