"""
Dual export job submission and polling.

Both jobs are submitted together and polled concurrently. A job is finished
once its status URL stops serving JSON progress and starts serving the
artifact itself; that body is left unread for the repository client to stream.
"""

import asyncio
import logging
from typing import Callable, Dict, Optional, Set

import httpx
from pydantic import ValidationError as PydanticValidationError

from ..config.settings import ExportApiConfig
from ..exceptions import PollError, SubmissionError
from .models import (
    ExportJob,
    JobKind,
    JobReferences,
    JobStatusPayload,
    SubmitResponse,
)

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[ExportJob], None]


class DualJobPoller:
    """Submits the parquet and manifest jobs and waits until both are ready."""

    def __init__(
        self,
        config: ExportApiConfig,
        http_client: Optional[httpx.AsyncClient] = None,
        on_progress: Optional[ProgressCallback] = None,
    ):
        """
        Initialize the poller.

        Args:
            config: Export service settings (submit URL, poll interval)
            http_client: Shared HTTP client (created lazily if omitted)
            on_progress: Called with the job after every progress poll
        """
        self.config = config
        self.on_progress = on_progress
        self._http_client = http_client
        self._owns_client = http_client is None
        self._tasks: Set[asyncio.Task] = set()

    async def _get_http_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client."""
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=30.0)
        return self._http_client

    async def close(self):
        """Cancel polling and close HTTP client if we created it."""
        self.cancel_all()
        if self._http_client and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    @property
    def active_poll_count(self) -> int:
        return sum(1 for task in self._tasks if not task.done())

    def status_url(self, task_id: str, kind: JobKind) -> str:
        """Deterministic status/download URL of a job."""
        return f"{self.config.base_url}/download/{task_id}/{kind.value}"

    def cancel_all(self) -> None:
        """Stop every active poll immediately."""
        for task in list(self._tasks):
            if not task.done():
                task.cancel()
        self._tasks.clear()

    # =========================================================================
    # Submission
    # =========================================================================

    async def submit_jobs(self, source_url: str) -> Dict[JobKind, ExportJob]:
        """
        Submit one job per kind in parallel.

        Args:
            source_url: Source API URL the backend should export from

        Returns:
            Submitted jobs keyed by kind

        Raises:
            SubmissionError: Either submission failed; no job is returned
        """
        client = await self._get_http_client()
        kinds = list(JobKind)

        results = await asyncio.gather(
            *(self._submit(client, source_url, kind) for kind in kinds),
            return_exceptions=True,
        )

        jobs: Dict[JobKind, ExportJob] = {}
        for kind, result in zip(kinds, results):
            if isinstance(result, SubmissionError):
                raise result
            if isinstance(result, BaseException):
                raise SubmissionError(
                    kind.value, f"{kind.label} export submission failed: {result}"
                ) from result
            jobs[kind] = result

        logger.info(
            "Export jobs submitted ("
            + ", ".join(f"{kind.value}: {job.job_id}" for kind, job in jobs.items())
            + ")"
        )
        return jobs

    async def _submit(
        self,
        client: httpx.AsyncClient,
        source_url: str,
        kind: JobKind,
    ) -> ExportJob:
        try:
            response = await client.post(
                self.config.submit_url,
                json={"source_api_url": source_url, "data_type": kind.value},
            )
        except httpx.HTTPError as e:
            raise SubmissionError(kind.value, f"{kind.label} export submission failed: {e}")

        if not response.is_success:
            raise SubmissionError(
                kind.value,
                f"{kind.label} export submission failed: "
                f"{response.status_code} {response.reason_phrase}",
            )

        try:
            submitted = SubmitResponse.model_validate(response.json())
        except (ValueError, PydanticValidationError) as e:
            raise SubmissionError(kind.value, f"{kind.label} export submission returned no task id: {e}")

        return ExportJob(
            job_id=submitted.task_id,
            kind=kind,
            status_url=self.status_url(submitted.task_id, kind),
        )

    # =========================================================================
    # Polling
    # =========================================================================

    async def await_jobs(self, jobs: Dict[JobKind, ExportJob]) -> JobReferences:
        """
        Poll every job that is not ready yet until all are ready.

        If one poll fails, the others are cancelled and the error is raised.

        Raises:
            PollError: A status request failed or polling was cancelled
        """
        client = await self._get_http_client()
        tasks = {
            asyncio.create_task(self._poll_job(client, job)): job
            for job in jobs.values()
            if not job.ready
        }
        self._tasks.update(tasks)

        try:
            remaining = set(tasks)
            while remaining:
                done, remaining = await asyncio.wait(
                    remaining, return_when=asyncio.FIRST_COMPLETED
                )
                for task in done:
                    job = tasks[task]
                    if task.cancelled():
                        raise PollError(job.kind.value, f"Polling for {job.kind.value} was cancelled")
                    error = task.exception()
                    if error is not None:
                        raise error
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()
                self._tasks.discard(task)

        logger.info("Export complete, preparing upload...")
        return JobReferences(
            parquet_url=jobs[JobKind.PARQUET].status_url,
            manifest_url=jobs[JobKind.MANIFEST].status_url,
        )

    async def _poll_job(self, client: httpx.AsyncClient, job: ExportJob) -> ExportJob:
        """Poll one job at the configured interval until it serves its artifact."""
        kind = job.kind.value
        interval = self.config.poll_interval_ms / 1000

        while True:
            await asyncio.sleep(interval)

            try:
                async with client.stream("GET", job.status_url) as response:
                    if not response.is_success:
                        raise PollError(
                            kind,
                            f"Status check failed for {kind}: "
                            f"{response.status_code} {response.reason_phrase}",
                        )

                    content_type = response.headers.get("content-type", "")
                    if "application/json" not in content_type:
                        # Finished: leave the body for the repository client
                        job.mark_ready()
                        logger.info(f"{job.kind.label} export ready ({job.job_id})")
                        return job

                    body = await response.aread()
            except httpx.HTTPError as e:
                raise PollError(kind, f"Status check failed for {kind}: {e}")

            try:
                status = JobStatusPayload.model_validate_json(body)
            except PydanticValidationError as e:
                raise PollError(kind, f"Unreadable status for {kind}: {e}")

            job.record_progress(status.percent)
            logger.debug(f"{job.kind.label} export progress: {job.progress_percent}%")
            if self.on_progress is not None:
                self.on_progress(job)

    async def submit_and_await(self, source_url: str) -> JobReferences:
        """Submit both jobs and wait until both artifacts are ready."""
        jobs = await self.submit_jobs(source_url)
        return await self.await_jobs(jobs)
