"""
Configuration module for PeptideDB.

Loads pipeline settings from YAML (``config/pipeline.yaml`` or the file named
by ``PEPTIDEDB_CONFIG``) on top of built-in defaults, and resolves the
database URL from the environment.
"""

from __future__ import annotations

import copy
import os
from dataclasses import dataclass, fields
from pathlib import Path
from typing import Any, Dict, Optional

import yaml
from dotenv import load_dotenv

from .errors import ConfigurationError

DEFAULT_CONFIG: Dict[str, Any] = {
    "http": {
        "timeout_seconds": 18.0,
        "max_retries": 2,
        "backoff_base_seconds": 0.45,
        "user_agent": "peptidedb-enrichment/0.1 (+https://peptidedb.example)",
    },
    "pipeline": {
        "adapter_concurrency": 5,
        "entity_timeout_seconds": 90.0,
        "inter_entity_delay_seconds": 0.3,
        "run_deadline_seconds": None,
        "default_limit": 250,
        "statement_timeout_ms": 30000,
    },
    "social": {
        "max_terms_per_entity": 2,
        "max_quotes_per_vendor": 6,
    },
    "cache": {
        "ttl_seconds": 900.0,
    },
    "ncbi": {
        "api_key": None,
    },
}


def _merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    out = copy.deepcopy(base)
    for key, value in (override or {}).items():
        if isinstance(value, dict) and isinstance(out.get(key), dict):
            out[key] = _merge(out[key], value)
        else:
            out[key] = value
    return out


def get_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    Load configuration from YAML file, merged over the defaults.

    Args:
        config_path: Path to config file. If None, ``PEPTIDEDB_CONFIG`` and then
            ``config/pipeline.yaml`` under the project root are tried.

    Returns:
        Configuration dictionary
    """
    load_dotenv()
    if config_path is None:
        config_path = os.getenv("PEPTIDEDB_CONFIG")
    if config_path is None:
        project_root = Path(__file__).parent.parent.parent
        candidate = project_root / "config" / "pipeline.yaml"
        if not candidate.exists():
            return copy.deepcopy(DEFAULT_CONFIG)
        config_path = str(candidate)

    try:
        with open(config_path, "r") as f:
            loaded = yaml.safe_load(f) or {}
    except (OSError, yaml.YAMLError) as e:
        raise ConfigurationError(f"Cannot read config file {config_path}: {e}") from e

    if not isinstance(loaded, dict):
        raise ConfigurationError(f"Config file {config_path} must contain a mapping")
    return _merge(DEFAULT_CONFIG, loaded)


def get_database_url(override: Optional[str] = None) -> str:
    """Resolve the store URL from the argument or environment.

    Raises ConfigurationError when no credentials are available, so the run
    fails before touching any entity.
    """
    load_dotenv()
    url = override or os.getenv("DATABASE_URL") or os.getenv("POSTGRES_DSN")
    if not url:
        raise ConfigurationError("DATABASE_URL is not set")
    return url


@dataclass
class PipelineConfig:
    """Typed view over the ``http``, ``pipeline`` and ``social`` sections."""
    timeout_seconds: float = 18.0
    max_retries: int = 2
    backoff_base_seconds: float = 0.45
    user_agent: str = DEFAULT_CONFIG["http"]["user_agent"]
    adapter_concurrency: int = 5
    entity_timeout_seconds: float = 90.0
    inter_entity_delay_seconds: float = 0.3
    run_deadline_seconds: Optional[float] = None
    default_limit: int = 250
    statement_timeout_ms: int = 30000
    max_terms_per_entity: int = 2
    max_quotes_per_vendor: int = 6
    cache_ttl_seconds: float = 900.0
    ncbi_api_key: Optional[str] = None

    @classmethod
    def from_mapping(cls, config: Dict[str, Any]) -> "PipelineConfig":
        merged = _merge(DEFAULT_CONFIG, config or {})
        flat: Dict[str, Any] = {}
        flat.update(merged["http"])
        flat.update(merged["pipeline"])
        flat.update(merged["social"])
        flat["cache_ttl_seconds"] = merged["cache"]["ttl_seconds"]
        flat["ncbi_api_key"] = merged["ncbi"]["api_key"] or os.getenv("NCBI_API_KEY")

        known = {f.name for f in fields(cls)}
        cfg = cls(**{k: v for k, v in flat.items() if k in known})
        if cfg.adapter_concurrency < 1:
            raise ConfigurationError("pipeline.adapter_concurrency must be at least 1")
        if cfg.max_retries < 0:
            raise ConfigurationError("http.max_retries must not be negative")
        return cfg

    @classmethod
    def load(cls, config_path: Optional[str] = None) -> "PipelineConfig":
        return cls.from_mapping(get_config(config_path))
