"""Exception types shared across the enrichment pipeline."""

from __future__ import annotations


class PeptideDBError(Exception):
    """Base class for pipeline errors."""


class ConfigurationError(PeptideDBError):
    """Raised before any entity is processed when the run cannot be configured.

    Missing store credentials, an unreadable config file or an unseeded
    jurisdiction table all end the run immediately.
    """


class PersistenceError(PeptideDBError):
    """Raised when a write cannot be applied for a single entity."""
