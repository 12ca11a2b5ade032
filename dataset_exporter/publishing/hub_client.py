"""
Hub repository client.

Creates dataset repositories and uploads files to them by reference: each
file's bytes are streamed from its source URL into a temporary file and
committed from there, never held whole in memory.
"""

import asyncio
import logging
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

import httpx
from huggingface_hub import CommitOperationAdd, DatasetCard, HfApi

from ..exceptions import (
    InvalidAccessToken,
    PublishError,
    RepositoryAlreadyExists,
    WorkflowAborted,
)

logger = logging.getLogger(__name__)

CARD_PATH = "README.md"


@dataclass
class UploadReference:
    """A file to upload, identified by where its content can be fetched."""
    path: str
    source_url: str


class RepositoryClient(ABC):
    """Abstract base class for remote dataset repositories."""

    @abstractmethod
    async def whoami(self, token: str) -> str:
        """
        Resolve the user an access token belongs to.

        Returns:
            Username

        Raises:
            InvalidAccessToken: The token was rejected
        """
        pass

    @abstractmethod
    async def create_repository(self, repo_id: str, license: str, token: str) -> None:
        """
        Create a dataset repository.

        Raises:
            RepositoryAlreadyExists: The repository exists already
            PublishError: Creation failed
        """
        pass

    @abstractmethod
    async def upload_by_reference(
        self,
        repo_id: str,
        files: List[UploadReference],
        token: str,
        summary: Optional[str] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> None:
        """
        Upload files whose content is streamed from their source URLs.

        Raises:
            PublishError: A source could not be read or an upload failed
            WorkflowAborted: is_cancelled reported true before a file was fetched
        """
        pass


def _status_code(error: Exception) -> Optional[int]:
    response = getattr(error, "response", None)
    return getattr(response, "status_code", None)


class HubRepositoryClient(RepositoryClient):
    """RepositoryClient backed by huggingface_hub's HfApi."""

    def __init__(
        self,
        endpoint: str,
        http_client: Optional[httpx.AsyncClient] = None,
        api: Optional[HfApi] = None,
    ):
        """
        Initialize the client.

        Args:
            endpoint: Hub base URL
            http_client: Client used to read artifact sources
            api: Hub API (created for the endpoint if omitted)
        """
        self.endpoint = endpoint.rstrip("/")
        self.api = api or HfApi(endpoint=self.endpoint)
        self._http_client = http_client
        self._owns_client = http_client is None
        # Licenses to record in the dataset card of each repository
        self._card_licenses: Dict[str, str] = {}

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self):
        """Close HTTP client if we created it."""
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    async def _call(self, func: Callable[..., Any], *args, **kwargs) -> Any:
        """Run a blocking HfApi call off the event loop."""
        return await asyncio.get_event_loop().run_in_executor(
            None, partial(func, *args, **kwargs)
        )

    async def whoami(self, token: str) -> str:
        try:
            user = await self._call(self.api.whoami, token=token)
        except Exception as e:
            if _status_code(e) == 401:
                raise InvalidAccessToken() from e
            raise PublishError(
                f"whoami failed: {e}",
                context={"status_code": _status_code(e)},
            ) from e

        name = user.get("name") if isinstance(user, dict) else None
        if not name:
            raise InvalidAccessToken("Hub returned no user for this token")
        return name

    async def create_repository(self, repo_id: str, license: str, token: str) -> None:
        # The Hub keeps a dataset's license in its card, not on the repository
        self._card_licenses[repo_id] = license

        try:
            await self._call(
                self.api.create_repo,
                repo_id,
                token=token,
                repo_type="dataset",
                private=False,
                exist_ok=False,
            )
        except Exception as e:
            status_code = _status_code(e)
            if status_code == 409 or "already exists" in str(e):
                raise RepositoryAlreadyExists(repo_id) from e
            raise PublishError(
                f"Failed to create repository {repo_id}: {e}",
                context={"repo_id": repo_id, "status_code": status_code},
            ) from e

        logger.info(f"Created dataset repository {repo_id}")

    async def upload_by_reference(
        self,
        repo_id: str,
        files: List[UploadReference],
        token: str,
        summary: Optional[str] = None,
        is_cancelled: Optional[Callable[[], bool]] = None,
    ) -> None:
        with tempfile.TemporaryDirectory(prefix="dataset-exporter-") as workdir:
            operations = []
            for index, reference in enumerate(files):
                if is_cancelled is not None and is_cancelled():
                    raise WorkflowAborted(f"Upload to {repo_id} stopped before {reference.path}")

                local_path = Path(workdir) / f"{index}-{Path(reference.path).name}"
                await self._download_source(reference, local_path)

                content: Any = str(local_path)
                if reference.path == CARD_PATH and repo_id in self._card_licenses:
                    content = self._with_license(
                        local_path.read_text(encoding="utf-8"),
                        self._card_licenses[repo_id],
                    )
                # Hashes the file, so keep it off the event loop
                operations.append(
                    await self._call(
                        CommitOperationAdd,
                        path_in_repo=reference.path,
                        path_or_fileobj=content,
                    )
                )

            if is_cancelled is not None and is_cancelled():
                raise WorkflowAborted(f"Upload to {repo_id} stopped before commit")

            try:
                await self._call(
                    self.api.create_commit,
                    repo_id,
                    operations=operations,
                    commit_message=summary or f"Upload {len(operations)} files",
                    token=token,
                    repo_type="dataset",
                )
            except Exception as e:
                raise PublishError(
                    f"Failed to upload files to {repo_id}: {e}",
                    context={"repo_id": repo_id, "status_code": _status_code(e)},
                ) from e

        for reference in files:
            logger.info(f"Uploaded {reference.path} to {repo_id}")

    async def _download_source(self, reference: UploadReference, local_path: Path) -> None:
        """Stream a source URL into a local file."""
        client = await self._get_http_client()
        try:
            async with client.stream("GET", reference.source_url) as source:
                if not source.is_success:
                    raise PublishError(
                        f"Could not read {reference.path} from its source "
                        f"({source.status_code})",
                        context={"source_url": reference.source_url},
                    )
                with open(local_path, "wb") as f:
                    async for chunk in source.aiter_bytes():
                        f.write(chunk)
        except httpx.HTTPError as e:
            raise PublishError(f"Failed to fetch {reference.path}: {e}") from e

        logger.debug(f"Fetched {reference.path} into {local_path}")

    @staticmethod
    def _with_license(card_text: str, license: str) -> bytes:
        """Dataset card with the license filled in unless it declares one."""
        card = DatasetCard(card_text)
        if not getattr(card.data, "license", None):
            card.data.license = license
        return str(card).encode("utf-8")
