"""
Environment variable handling for Dataset Exporter configuration.
"""

import os
from pathlib import Path
from typing import List

from dotenv import load_dotenv

from .settings import (
    DEFAULT_DEV_ORIGINS,
    DEFAULT_HUB_ENDPOINT,
    DEFAULT_OAUTH_SCOPES,
    DEFAULT_REDIRECT_URI,
    ExportApiConfig,
    ExporterConfig,
    LogLevel,
    OAuthConfig,
    PublishConfig,
    RetryConfig,
    StorageConfig,
)


class EnvironmentLoader:
    """Loads configuration from environment variables."""

    @staticmethod
    def load_config(dotenv: bool = True) -> ExporterConfig:
        """Load configuration from environment variables."""
        if dotenv:
            # Load .env file if it exists (override=True to prefer .env over shell env)
            load_dotenv(override=True)

        oauth_config = OAuthConfig(
            client_id=os.getenv('HF_CLIENT_ID', ''),
            hub_endpoint=os.getenv('HF_ENDPOINT', DEFAULT_HUB_ENDPOINT),
            redirect_uri=os.getenv('HF_REDIRECT_URI', DEFAULT_REDIRECT_URI),
            scopes=os.getenv('HF_OAUTH_SCOPES', DEFAULT_OAUTH_SCOPES),
            timeout_seconds=float(os.getenv('OAUTH_TIMEOUT_SECONDS', '300')),
            popup_check_interval_ms=int(os.getenv('OAUTH_POPUP_CHECK_MS', '1000')),
            fallback_grace_ms=int(os.getenv('OAUTH_FALLBACK_GRACE_MS', '500')),
            dev_origins=EnvironmentLoader._parse_list(
                os.getenv('OAUTH_DEV_ORIGINS', ','.join(DEFAULT_DEV_ORIGINS))
            ),
            caller_origin=os.getenv('CALLER_ORIGIN', ''),
        )

        export_api_config = ExportApiConfig(
            submit_url=os.getenv('EXPORT_API_URL', ''),
            source_api_url=os.getenv('SOURCE_API_URL', ''),
            poll_interval_ms=int(os.getenv('POLL_INTERVAL_MS', '5000')),
        )

        publish_config = PublishConfig(
            license=os.getenv('DATASET_LICENSE', 'cc0-1.0'),
            description=os.getenv('DATASET_DESCRIPTION', 'Dataset exported from RNAcentral'),
        )

        storage_path = os.getenv('EXPORTER_STORAGE_PATH')
        storage_config = StorageConfig(
            path=Path(storage_path).expanduser() if storage_path else Path.home() / '.dataset-exporter',
            encryption_key=os.getenv('EXPORTER_STORAGE_KEY', ''),
        )

        # Log level
        log_level_str = os.getenv('LOG_LEVEL', 'INFO').upper()
        log_level = LogLevel.INFO  # default
        try:
            log_level = LogLevel(log_level_str)
        except ValueError:
            pass  # Use default

        return ExporterConfig(
            oauth=oauth_config,
            export_api=export_api_config,
            publish=publish_config,
            retry=RetryConfig(max_retries=int(os.getenv('MAX_RETRIES', '3'))),
            storage=storage_config,
            log_level=log_level,
        )

    @staticmethod
    def _parse_list(value: str, delimiter: str = ',') -> List[str]:
        """Parse a comma-separated string into a list."""
        if not value:
            return []
        return [item.strip() for item in value.split(delimiter) if item.strip()]
