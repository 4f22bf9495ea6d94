"""
Tests for configuration loading.
"""

import pytest

from peptidedb.config import DEFAULT_CONFIG, PipelineConfig, get_config, get_database_url
from peptidedb.errors import ConfigurationError


class TestGetConfig:
    """Test YAML loading merged over the defaults."""

    def test_partial_file_is_merged(self, tmp_path):
        path = tmp_path / "pipeline.yaml"
        path.write_text("http:\n  timeout_seconds: 5\npipeline:\n  default_limit: 10\n")

        config = get_config(str(path))

        assert config["http"]["timeout_seconds"] == 5
        assert config["http"]["max_retries"] == DEFAULT_CONFIG["http"]["max_retries"]
        assert config["pipeline"]["default_limit"] == 10

    def test_env_var_names_file(self, tmp_path, monkeypatch):
        path = tmp_path / "custom.yaml"
        path.write_text("social:\n  max_terms_per_entity: 3\n")
        monkeypatch.setenv("PEPTIDEDB_CONFIG", str(path))

        assert get_config()["social"]["max_terms_per_entity"] == 3

    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigurationError):
            get_config(str(tmp_path / "absent.yaml"))

    def test_non_mapping_file(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- a\n- b\n")
        with pytest.raises(ConfigurationError, match="mapping"):
            get_config(str(path))

    def test_defaults_are_not_mutated(self, tmp_path):
        path = tmp_path / "pipeline.yaml"
        path.write_text("http:\n  timeout_seconds: 1\n")
        get_config(str(path))
        assert DEFAULT_CONFIG["http"]["timeout_seconds"] == 18.0


class TestPipelineConfig:
    """Test the typed view and its validation."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("NCBI_API_KEY", raising=False)
        cfg = PipelineConfig.from_mapping({})
        assert cfg == PipelineConfig()

    def test_flattens_sections(self, monkeypatch):
        monkeypatch.setenv("NCBI_API_KEY", "from-env")
        cfg = PipelineConfig.from_mapping({
            "pipeline": {"adapter_concurrency": 2, "unknown_key": 1},
            "cache": {"ttl_seconds": 60},
        })
        assert cfg.adapter_concurrency == 2
        assert cfg.cache_ttl_seconds == 60
        assert cfg.ncbi_api_key == "from-env"

    def test_rejects_zero_concurrency(self):
        with pytest.raises(ConfigurationError):
            PipelineConfig.from_mapping({"pipeline": {"adapter_concurrency": 0}})

    def test_rejects_negative_retries(self):
        with pytest.raises(ConfigurationError):
            PipelineConfig.from_mapping({"http": {"max_retries": -1}})

    def test_load_from_file(self, tmp_path):
        path = tmp_path / "pipeline.yaml"
        path.write_text("http:\n  max_retries: 0\n")
        assert PipelineConfig.load(str(path)).max_retries == 0


class TestDatabaseUrl:
    def test_override_wins(self, monkeypatch):
        monkeypatch.setenv("DATABASE_URL", "postgresql://env")
        assert get_database_url("sqlite://") == "sqlite://"

    def test_falls_back_to_postgres_dsn(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.setenv("POSTGRES_DSN", "postgresql://dsn")
        assert get_database_url() == "postgresql://dsn"

    def test_missing(self, monkeypatch):
        monkeypatch.delenv("DATABASE_URL", raising=False)
        monkeypatch.delenv("POSTGRES_DSN", raising=False)
        with pytest.raises(ConfigurationError):
            get_database_url()
