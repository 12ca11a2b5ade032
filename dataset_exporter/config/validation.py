"""
Configuration and input validation for Dataset Exporter.
"""

import re
from typing import List
from urllib.parse import urlsplit

from ..exceptions import ValidationError
from .settings import ExporterConfig

# Hub dataset names: lowercase alphanumeric with hyphens/underscores
DATASET_NAME_PATTERN = re.compile(r'^[a-z0-9-_]+$')


def is_valid_dataset_name(name: str) -> bool:
    """Check a dataset name against the Hub naming rule."""
    return bool(name) and DATASET_NAME_PATTERN.match(name) is not None


def validate_dataset_name(name: str) -> str:
    """Return the stripped dataset name or raise ValidationError."""
    name = (name or "").strip()
    if not name:
        raise ValidationError(
            "Please enter a dataset name",
            error_code="DATASET_NAME_EMPTY",
        )
    if not is_valid_dataset_name(name):
        raise ValidationError(
            "Dataset name must be lowercase alphanumeric with hyphens or underscores",
            error_code="DATASET_NAME_INVALID",
            context={"dataset_name": name},
        )
    return name


class ConfigValidator:
    """Validates configuration settings."""

    @staticmethod
    def validate_config(config: ExporterConfig) -> List[str]:
        """Validate the entire exporter configuration."""
        errors = []

        errors.extend(ConfigValidator._validate_required_fields(config))
        errors.extend(ConfigValidator._validate_urls(config))
        errors.extend(ConfigValidator._validate_numeric_ranges(config))

        return errors

    @staticmethod
    def _validate_required_fields(config: ExporterConfig) -> List[str]:
        """Validate required configuration fields."""
        errors = []

        if not config.oauth.client_id:
            errors.append("HF_CLIENT_ID is required")
        if not config.export_api.submit_url:
            errors.append("EXPORT_API_URL is required")
        if not config.oauth.scopes.strip():
            errors.append("At least one OAuth scope is required")

        return errors

    @staticmethod
    def _validate_urls(config: ExporterConfig) -> List[str]:
        """Validate URL-valued settings."""
        errors = []

        checks = [
            ("HF_ENDPOINT", config.oauth.hub_endpoint),
            ("HF_REDIRECT_URI", config.oauth.redirect_uri),
        ]
        if config.export_api.submit_url:
            checks.append(("EXPORT_API_URL", config.export_api.submit_url))
        if config.export_api.source_api_url:
            checks.append(("SOURCE_API_URL", config.export_api.source_api_url))

        for name, value in checks:
            if not ConfigValidator._is_valid_url(value):
                errors.append(f"{name} is not a valid http(s) URL: {value}")

        for origin in config.oauth.dev_origins:
            if not ConfigValidator._is_valid_url(origin):
                errors.append(f"Invalid development origin: {origin}")

        return errors

    @staticmethod
    def _validate_numeric_ranges(config: ExporterConfig) -> List[str]:
        """Validate numeric configuration ranges."""
        errors = []

        if config.retry.max_retries < 1:
            errors.append("MAX_RETRIES must be at least 1")
        if config.export_api.poll_interval_ms <= 0:
            errors.append("POLL_INTERVAL_MS must be positive")
        if config.oauth.timeout_seconds <= 0:
            errors.append("OAUTH_TIMEOUT_SECONDS must be positive")
        if config.oauth.popup_check_interval_ms <= 0:
            errors.append("OAUTH_POPUP_CHECK_MS must be positive")
        if config.oauth.fallback_grace_ms < 0:
            errors.append("OAUTH_FALLBACK_GRACE_MS cannot be negative")

        return errors

    @staticmethod
    def _is_valid_url(value: str) -> bool:
        parts = urlsplit(value)
        return parts.scheme in ("http", "https") and bool(parts.netloc)
