"""
Workflow orchestrator and retry engine.

Sequences authenticate -> submit -> poll -> publish for one dataset. Any
failure is counted once; while retries remain, the run waits 2^n seconds and
resumes at the first stage whose artifacts are missing.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

from ..auth.handshake import OAuthHandshakeCoordinator
from ..config.settings import ExporterConfig
from ..config.validation import validate_dataset_name
from ..exceptions import (
    ExporterError,
    InvalidAccessToken,
    WorkflowAborted,
    WorkflowBusyError,
    handle_unexpected_error,
)
from ..jobs.models import ExportJob
from ..jobs.poller import DualJobPoller
from ..publishing.hub_client import RepositoryClient
from ..publishing.publisher import DatasetPublisher, PublishResult
from .state import (
    RunArtifacts,
    StatusTag,
    WorkflowStage,
    WorkflowState,
    advance,
    backoff_delay,
    fail,
    failure_message,
    fresh_state,
    record_failure,
    retry_message,
)
from .status import LoggingStatusSink, StatusSink, StatusUpdate

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[Any]]


@dataclass
class WorkflowResult:
    """Outcome of one run."""
    state: WorkflowState
    repo_id: Optional[str] = None
    dataset_url: Optional[str] = None
    error: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.state.stage is WorkflowStage.SUCCEEDED

    def to_dict(self) -> Dict[str, Any]:
        return {
            **self.state.to_dict(),
            "repo_id": self.repo_id,
            "dataset_url": self.dataset_url,
            "error": self.error,
        }


class WorkflowOrchestrator:
    """Drives export runs. Only one run may be active at a time."""

    def __init__(
        self,
        config: ExporterConfig,
        handshake: OAuthHandshakeCoordinator,
        poller: DualJobPoller,
        publisher: DatasetPublisher,
        repo_client: RepositoryClient,
        status_sink: Optional[StatusSink] = None,
        sleep: SleepFunc = asyncio.sleep,
    ):
        """
        Initialize the orchestrator.

        Args:
            config: Exporter configuration
            handshake: OAuth handshake coordinator
            poller: Dual job poller
            publisher: Dataset publisher
            repo_client: Repository client, used to validate tokens
            status_sink: Receives status updates (logs them if omitted)
            sleep: Awaitable used for retry backoff
        """
        self.config = config
        self.handshake = handshake
        self.poller = poller
        self.publisher = publisher
        self.repo_client = repo_client
        self.status_sink = status_sink or LoggingStatusSink()
        self._sleep = sleep

        self.state = fresh_state(config.retry.max_retries)
        self.artifacts = RunArtifacts()
        self._running = False
        self._torn_down = False
        self._backoff: Optional[asyncio.Future] = None

        self.poller.on_progress = self._on_job_progress
        self.publisher.on_status = self._on_publish_status
        self.publisher.is_cancelled = lambda: self._torn_down

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def torn_down(self) -> bool:
        return self._torn_down

    # =========================================================================
    # Status
    # =========================================================================

    def _emit(
        self,
        tag: StatusTag,
        message: str,
        percent: Optional[int] = None,
        kind: Optional[str] = None,
    ) -> None:
        if self._torn_down:
            return
        self.status_sink.update(
            StatusUpdate(
                stage=self.state.stage,
                tag=tag,
                message=message,
                percent=percent,
                kind=kind,
            )
        )

    def _transition(self, stage: WorkflowStage, message: str, percent: Optional[int] = None) -> None:
        if self._torn_down:
            raise WorkflowAborted("Workflow was torn down")
        self.state = advance(self.state, stage)
        self._emit(self.state.tag, message, percent=percent)

    def _on_job_progress(self, job: ExportJob) -> None:
        self._emit(
            StatusTag.EXPORTING,
            f"{job.kind.label} export progress: {job.progress_percent}%",
            percent=job.progress_percent,
            kind=job.kind.value,
        )

    def _on_publish_status(self, message: str) -> None:
        self._emit(StatusTag.UPLOADING, message)

    # =========================================================================
    # Runs
    # =========================================================================

    async def run(
        self,
        dataset_name: str,
        source_url: Optional[str] = None,
        max_retries: Optional[int] = None,
    ) -> WorkflowResult:
        """
        Run a fresh export.

        Args:
            dataset_name: Name of the dataset repository to create
            source_url: Source API URL (defaults to the configured one)
            max_retries: Attempt limit for this run (defaults to config)

        Returns:
            Final result; its state is SUCCEEDED or FAILED

        Raises:
            ValidationError: The dataset name is invalid
            WorkflowBusyError: Another run is active or the workflow was torn down
        """
        name = validate_dataset_name(dataset_name)

        if self._torn_down:
            raise WorkflowBusyError("Workflow has been torn down", error_code="WORKFLOW_TORN_DOWN")
        if self._running:
            raise WorkflowBusyError("An export is already in progress")

        self._running = True
        try:
            self.state = fresh_state(max_retries or self.config.retry.max_retries)
            # A still-valid token is reused; job artifacts never are
            self.artifacts.discard_jobs()
            return await self._run_with_retries(name, source_url or self.config.export_api.source_api_url)
        finally:
            self._running = False

    async def _run_with_retries(self, dataset_name: str, source_url: str) -> WorkflowResult:
        stage = WorkflowStage.AUTHENTICATING

        while True:
            try:
                published = await self._run_from(stage, dataset_name, source_url)
                return WorkflowResult(
                    state=self.state,
                    repo_id=published.repo_id,
                    dataset_url=published.dataset_url,
                )
            except Exception as e:
                error: ExporterError = handle_unexpected_error(e)

            if self._torn_down:
                logger.info("Run torn down, discarding outcome")
                return WorkflowResult(state=self.state, error=error.message)

            logger.error(f"Export attempt failed: {error.to_log_string()}")

            if not error.retryable:
                self.state = fail(self.state, error.message)
                self._emit(StatusTag.ERROR, error.message)
                return WorkflowResult(state=self.state, error=error.message)

            self.state = record_failure(self.state, self.artifacts, error.message)
            if self.state.stage is WorkflowStage.FAILED:
                message = failure_message(self.state)
                self._emit(StatusTag.ERROR, message)
                return WorkflowResult(state=self.state, error=message)

            self._emit(StatusTag.ERROR, retry_message(self.state))
            await self._wait_backoff(backoff_delay(self.state.retry_count))

            if self._torn_down:
                return WorkflowResult(state=self.state, error=error.message)
            stage = self.state.stage
            logger.info(f"Resuming at {stage.value} (attempt {self.state.retry_count + 1})")

    async def _wait_backoff(self, delay: float) -> None:
        """Sleep before the next attempt; teardown cuts the wait short."""
        self._backoff = asyncio.ensure_future(self._sleep(delay))
        try:
            await self._backoff
        except asyncio.CancelledError:
            if not self._torn_down:
                raise
        finally:
            self._backoff = None

    async def _run_from(self, stage: WorkflowStage, dataset_name: str, source_url: str) -> PublishResult:
        if stage is WorkflowStage.AUTHENTICATING:
            self._transition(WorkflowStage.AUTHENTICATING, "Authenticating with Hugging Face...")
            await self._authenticate()
            stage = WorkflowStage.SUBMITTING

        if stage is WorkflowStage.SUBMITTING:
            self._transition(WorkflowStage.SUBMITTING, "Submitting export jobs...")
            jobs = await self.poller.submit_jobs(source_url)
            if self._torn_down:
                raise WorkflowAborted("Workflow was torn down")
            self.artifacts.jobs = jobs
            self._emit(
                StatusTag.EXPORTING,
                "Export jobs submitted ("
                + ", ".join(f"{kind.value}: {job.job_id}" for kind, job in jobs.items())
                + ")",
            )
            stage = WorkflowStage.POLLING

        if stage is WorkflowStage.POLLING:
            self._transition(WorkflowStage.POLLING, "Exporting data...")
            await self.poller.await_jobs(self.artifacts.jobs)
            stage = WorkflowStage.PUBLISHING

        self._transition(WorkflowStage.PUBLISHING, "Export complete, preparing upload...")
        published = await self.publisher.publish(
            self.artifacts.username,
            dataset_name,
            self.artifacts.references(),
            self.artifacts.access_token,
        )

        self._transition(WorkflowStage.SUCCEEDED, f"Dataset created successfully: {published.dataset_url}", percent=100)
        logger.info(f"Export of {dataset_name} finished: {published.dataset_url}")
        return published

    async def _authenticate(self) -> None:
        """Reuse a token the Hub still accepts, otherwise run the handshake."""
        token = self.artifacts.access_token
        if token:
            try:
                self.artifacts.username = await self.repo_client.whoami(token)
                self._emit(StatusTag.AUTHENTICATING, f"Authenticated as {self.artifacts.username}")
                return
            except InvalidAccessToken:
                logger.info("Stored access token rejected, re-authenticating")
                self.artifacts.drop_token()

        self._emit(StatusTag.AUTHENTICATING, "Opening Hugging Face login...")
        session = await self.handshake.authenticate()
        if self._torn_down:
            raise WorkflowAborted("Workflow was torn down")

        self.artifacts.access_token = session.access_token
        try:
            session.username = await self.repo_client.whoami(session.access_token)
        except InvalidAccessToken:
            self.artifacts.drop_token()
            raise
        self.artifacts.username = session.username
        self._emit(StatusTag.AUTHENTICATING, f"Authenticated as {session.username}")

    def teardown(self) -> None:
        """
        Stop the active run immediately.

        Cancels polling and any backoff wait, and closes the authorization
        window; the run reports nothing further and schedules no retry.
        Publishing stops before its next upload.
        """
        if self._torn_down:
            return
        self._torn_down = True
        self.poller.cancel_all()
        self.handshake.close()
        if self._backoff is not None:
            self._backoff.cancel()
        logger.info("Workflow torn down")
