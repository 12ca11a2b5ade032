"""
Tests for configuration loading and validation.
"""

import pytest
from pathlib import Path

from dataset_exporter.config import (
    ConfigValidator,
    EnvironmentLoader,
    ExporterConfig,
    ExportApiConfig,
    LogLevel,
    OAuthConfig,
    RetryConfig,
    is_valid_dataset_name,
    validate_dataset_name,
)
from dataset_exporter.exceptions import ValidationError


class TestDatasetName:
    """Tests for the dataset naming rule."""

    def test_valid_name(self):
        assert is_valid_dataset_name("my-set_1")
        assert validate_dataset_name("my-set_1") == "my-set_1"

    def test_uppercase_and_space_rejected(self):
        assert not is_valid_dataset_name("My Set")
        with pytest.raises(ValidationError) as exc_info:
            validate_dataset_name("My Set")
        assert exc_info.value.error_code == "DATASET_NAME_INVALID"
        assert not exc_info.value.retryable

    def test_empty_name_rejected(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_dataset_name("   ")
        assert exc_info.value.message == "Please enter a dataset name"

    def test_surrounding_whitespace_stripped(self):
        assert validate_dataset_name("  rna-data  ") == "rna-data"

    def test_dots_and_slashes_rejected(self):
        assert not is_valid_dataset_name("user/data")
        assert not is_valid_dataset_name("data.v2")


class TestOAuthConfig:
    """Tests for derived OAuth settings."""

    def test_endpoints_from_hub(self):
        config = OAuthConfig(hub_endpoint="https://hub.example.org/")
        assert config.authorize_url == "https://hub.example.org/oauth/authorize"
        assert config.token_url == "https://hub.example.org/oauth/token"

    def test_allowed_origins(self):
        config = OAuthConfig(
            redirect_uri="https://app.example.org/oauth/callback",
            caller_origin="https://portal.example.org",
            dev_origins=["http://localhost:8000"],
        )
        assert config.allowed_origins() == [
            "https://app.example.org",
            "https://portal.example.org",
            "http://localhost:8000",
        ]

    def test_caller_origin_defaults_to_redirect_origin(self):
        config = OAuthConfig(redirect_uri="http://localhost:8000/oauth/callback")
        assert config.allowed_origins().count("http://localhost:8000") == 1


class TestExportApiConfig:

    def test_base_url_strips_submit(self):
        config = ExportApiConfig(submit_url="https://export.example.org/api/export/submit")
        assert config.base_url == "https://export.example.org/api/export"

    def test_base_url_without_submit(self):
        config = ExportApiConfig(submit_url="https://export.example.org/api/export/")
        assert config.base_url == "https://export.example.org/api/export"


class TestEnvironmentLoader:
    """Tests for loading configuration from the environment."""

    def test_defaults(self, monkeypatch):
        for name in ("HF_CLIENT_ID", "EXPORT_API_URL", "POLL_INTERVAL_MS", "MAX_RETRIES",
                     "LOG_LEVEL", "DATASET_LICENSE", "OAUTH_DEV_ORIGINS"):
            monkeypatch.delenv(name, raising=False)

        config = EnvironmentLoader.load_config(dotenv=False)

        assert config.export_api.poll_interval_ms == 5000
        assert config.retry.max_retries == 3
        assert config.publish.license == "cc0-1.0"
        assert config.log_level == LogLevel.INFO
        assert "http://127.0.0.1:8000" in config.oauth.dev_origins

    def test_overrides(self, monkeypatch, tmp_path):
        monkeypatch.setenv("HF_CLIENT_ID", "client-123")
        monkeypatch.setenv("EXPORT_API_URL", "https://export.example.org/submit")
        monkeypatch.setenv("POLL_INTERVAL_MS", "250")
        monkeypatch.setenv("MAX_RETRIES", "5")
        monkeypatch.setenv("LOG_LEVEL", "debug")
        monkeypatch.setenv("OAUTH_DEV_ORIGINS", "http://localhost:3000, http://localhost:5000")
        monkeypatch.setenv("EXPORTER_STORAGE_PATH", str(tmp_path))

        config = EnvironmentLoader.load_config(dotenv=False)

        assert config.oauth.client_id == "client-123"
        assert config.export_api.base_url == "https://export.example.org"
        assert config.export_api.poll_interval_ms == 250
        assert config.retry.max_retries == 5
        assert config.log_level == LogLevel.DEBUG
        assert config.oauth.dev_origins == ["http://localhost:3000", "http://localhost:5000"]
        assert config.storage.path == Path(tmp_path)

    def test_unknown_log_level_falls_back(self, monkeypatch):
        monkeypatch.setenv("LOG_LEVEL", "chatty")
        config = EnvironmentLoader.load_config(dotenv=False)
        assert config.log_level == LogLevel.INFO


class TestConfigValidator:
    """Tests for configuration validation."""

    def _valid_config(self) -> ExporterConfig:
        return ExporterConfig(
            oauth=OAuthConfig(client_id="client-123"),
            export_api=ExportApiConfig(submit_url="https://export.example.org/submit"),
        )

    def test_valid_config(self):
        assert ConfigValidator.validate_config(self._valid_config()) == []

    def test_missing_required_fields(self):
        errors = ConfigValidator.validate_config(ExporterConfig())
        assert "HF_CLIENT_ID is required" in errors
        assert "EXPORT_API_URL is required" in errors

    def test_invalid_url(self):
        config = self._valid_config()
        config.export_api.submit_url = "ftp://export.example.org/submit"
        errors = ConfigValidator.validate_config(config)
        assert any("EXPORT_API_URL" in e for e in errors)

    def test_numeric_ranges(self):
        config = self._valid_config()
        config.retry = RetryConfig(max_retries=0)
        config.export_api.poll_interval_ms = 0
        errors = ConfigValidator.validate_config(config)
        assert "MAX_RETRIES must be at least 1" in errors
        assert "POLL_INTERVAL_MS must be positive" in errors


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
