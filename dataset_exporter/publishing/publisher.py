"""
Publishes finished exports as a Hub dataset.
"""

import logging
from dataclasses import dataclass
from typing import Callable, Optional

from ..config.settings import PublishConfig
from ..exceptions import ExporterError, PublishError, RepositoryAlreadyExists, WorkflowAborted
from ..jobs.models import JobReferences
from .hub_client import RepositoryClient, UploadReference

logger = logging.getLogger(__name__)

PARQUET_PATH = "data.parquet"
MANIFEST_PATH = "README.md"


@dataclass
class PublishResult:
    """Where the dataset ended up."""
    repo_id: str
    dataset_url: str
    created: bool = True


class DatasetPublisher:
    """Creates the destination repository and uploads both artifacts into it."""

    def __init__(
        self,
        repo_client: RepositoryClient,
        config: PublishConfig,
        hub_endpoint: str,
        on_status: Optional[Callable[[str], None]] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ):
        self.repo_client = repo_client
        self.config = config
        self.hub_endpoint = hub_endpoint.rstrip("/")
        self.on_status = on_status
        self.is_cancelled = is_cancelled

    def _status(self, message: str) -> None:
        logger.info(message)
        if self.on_status is not None:
            self.on_status(message)

    def _check_cancelled(self, repo_id: str) -> None:
        if self.is_cancelled is not None and self.is_cancelled():
            raise WorkflowAborted(f"Publishing to {repo_id} stopped")

    @staticmethod
    def repo_id(username: str, dataset_name: str) -> str:
        return f"{username}/{dataset_name}"

    def dataset_url(self, repo_id: str) -> str:
        return f"{self.hub_endpoint}/datasets/{repo_id}"

    async def publish(
        self,
        username: str,
        dataset_name: str,
        references: JobReferences,
        token: str,
    ) -> PublishResult:
        """
        Create (or reuse) the dataset repository and upload the artifacts.

        The artifacts are handed over by URL; their content is streamed by
        the repository client.

        Raises:
            PublishError: Creation or upload failed
            WorkflowAborted: Cancelled before the upload started
        """
        repo_id = self.repo_id(username, dataset_name)
        created = True

        self._status("Creating dataset on Hugging Face...")
        try:
            await self.repo_client.create_repository(repo_id, self.config.license, token)
            self._status("Dataset repository created")
        except RepositoryAlreadyExists:
            created = False
            self._status("Using existing dataset repository")

        self._check_cancelled(repo_id)
        self._status("Uploading files to Hugging Face...")
        files = [
            UploadReference(path=PARQUET_PATH, source_url=references.parquet_url),
            UploadReference(path=MANIFEST_PATH, source_url=references.manifest_url),
        ]
        try:
            await self.repo_client.upload_by_reference(
                repo_id,
                files,
                token,
                summary=self.config.description,
                is_cancelled=self.is_cancelled,
            )
        except ExporterError:
            raise
        except Exception as e:
            raise PublishError(f"Upload to {repo_id} failed: {e}") from e

        return PublishResult(
            repo_id=repo_id,
            dataset_url=self.dataset_url(repo_id),
            created=created,
        )
