"""Run orchestration: peptide enrichment, social signals and vendor catalog ingest."""

from .orchestrator import (
    PeptideEnrichmentOrchestrator,
    RunSummary,
    SocialSignalOrchestrator,
    VendorCatalogOrchestrator,
)

__all__ = [
    "PeptideEnrichmentOrchestrator",
    "RunSummary",
    "SocialSignalOrchestrator",
    "VendorCatalogOrchestrator",
]
