"""
Configuration for Dataset Exporter.
"""

from .settings import (
    ExporterConfig,
    OAuthConfig,
    ExportApiConfig,
    PublishConfig,
    RetryConfig,
    StorageConfig,
    LogLevel,
    url_origin,
)
from .environment import EnvironmentLoader
from .validation import (
    ConfigValidator,
    is_valid_dataset_name,
    validate_dataset_name,
)

__all__ = [
    "ExporterConfig",
    "OAuthConfig",
    "ExportApiConfig",
    "PublishConfig",
    "RetryConfig",
    "StorageConfig",
    "LogLevel",
    "url_origin",
    "EnvironmentLoader",
    "ConfigValidator",
    "is_valid_dataset_name",
    "validate_dataset_name",
]
