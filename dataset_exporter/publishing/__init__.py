"""
Publishing of exported datasets to the Hub.
"""

from .hub_client import RepositoryClient, HubRepositoryClient, UploadReference
from .publisher import DatasetPublisher, PublishResult, PARQUET_PATH, MANIFEST_PATH

__all__ = [
    "RepositoryClient",
    "HubRepositoryClient",
    "UploadReference",
    "DatasetPublisher",
    "PublishResult",
    "PARQUET_PATH",
    "MANIFEST_PATH",
]
