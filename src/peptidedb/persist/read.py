"""
Read path for page rendering collaborators.

Only published peptides and vendors are visible; an unknown or unpublished
slug returns None.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session, selectinload

from ..db.models import (
    Jurisdiction,
    Peptide,
    PeptideClaim,
    PeptideDosingEntry,
    PeptideProfile,
    PeptideRegulatoryStatus,
    PeptideSafetyEntry,
    PeptideUseCase,
    Vendor,
    VendorPeptideListing,
    VendorRatingSnapshot,
    VendorVerification,
)


@dataclass
class PeptideView:
    peptide: Peptide
    profile: Optional[PeptideProfile]
    regulatory: List[PeptideRegulatoryStatus] = field(default_factory=list)
    use_cases: List[PeptideUseCase] = field(default_factory=list)
    dosing: List[PeptideDosingEntry] = field(default_factory=list)
    safety: List[PeptideSafetyEntry] = field(default_factory=list)
    claims: List[PeptideClaim] = field(default_factory=list)
    jurisdiction_codes: dict = field(default_factory=dict)


@dataclass
class VendorView:
    vendor: Vendor
    listings: List[VendorPeptideListing] = field(default_factory=list)
    verifications: List[VendorVerification] = field(default_factory=list)
    rating: Optional[VendorRatingSnapshot] = None


def get_peptide_view(session: Session, slug: str) -> Optional[PeptideView]:
    peptide = session.scalar(
        select(Peptide)
        .options(selectinload(Peptide.aliases))
        .where(Peptide.slug == slug, Peptide.is_published.is_(True))
    )
    if peptide is None:
        return None

    def rows(model, *order):
        return list(session.scalars(select(model).where(model.peptide_id == peptide.id).order_by(*order)))

    return PeptideView(
        peptide=peptide,
        profile=session.get(PeptideProfile, peptide.id),
        regulatory=rows(PeptideRegulatoryStatus, PeptideRegulatoryStatus.jurisdiction_id),
        use_cases=list(session.scalars(
            select(PeptideUseCase)
            .options(selectinload(PeptideUseCase.use_case))
            .where(PeptideUseCase.peptide_id == peptide.id)
            .order_by(PeptideUseCase.evidence_grade, PeptideUseCase.id)
        )),
        dosing=rows(PeptideDosingEntry, PeptideDosingEntry.id),
        safety=rows(PeptideSafetyEntry, PeptideSafetyEntry.jurisdiction_id),
        claims=list(session.scalars(
            select(PeptideClaim)
            .options(selectinload(PeptideClaim.citation))
            .where(PeptideClaim.peptide_id == peptide.id)
            .order_by(PeptideClaim.section, PeptideClaim.id)
        )),
        jurisdiction_codes={j.id: j.code for j in session.scalars(select(Jurisdiction))},
    )


def get_vendor_view(session: Session, slug: str) -> Optional[VendorView]:
    vendor = session.scalar(select(Vendor).where(Vendor.slug == slug, Vendor.is_published.is_(True)))
    if vendor is None:
        return None
    return VendorView(
        vendor=vendor,
        listings=list(session.scalars(
            select(VendorPeptideListing)
            .join(Peptide, Peptide.id == VendorPeptideListing.peptide_id)
            .where(VendorPeptideListing.vendor_id == vendor.id, Peptide.is_published.is_(True))
            .order_by(Peptide.canonical_name)
        )),
        verifications=list(session.scalars(
            select(VendorVerification)
            .where(VendorVerification.vendor_id == vendor.id)
            .order_by(VendorVerification.verification_type, VendorVerification.id)
        )),
        rating=session.scalar(
            select(VendorRatingSnapshot)
            .where(VendorRatingSnapshot.vendor_id == vendor.id, VendorRatingSnapshot.is_current.is_(True))
        ),
    )
