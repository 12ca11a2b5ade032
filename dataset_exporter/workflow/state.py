"""
Workflow state and its transitions.

The state is an immutable value; every transition is a pure function so the
retry and resume logic can be exercised without timers or network.
"""

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Any, Dict, Optional

from ..jobs.models import ExportJob, JobKind, JobReferences


class WorkflowStage(str, Enum):
    """Stages of an export run."""
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    SUBMITTING = "submitting"
    POLLING = "polling"
    PUBLISHING = "publishing"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


class StatusTag(str, Enum):
    """Coarse stage tag shown alongside every status message."""
    AUTHENTICATING = "authenticating"
    EXPORTING = "exporting"
    UPLOADING = "uploading"
    SUCCESS = "success"
    ERROR = "error"


STAGE_TAGS: Dict[WorkflowStage, Optional[StatusTag]] = {
    WorkflowStage.IDLE: None,
    WorkflowStage.AUTHENTICATING: StatusTag.AUTHENTICATING,
    WorkflowStage.SUBMITTING: StatusTag.EXPORTING,
    WorkflowStage.POLLING: StatusTag.EXPORTING,
    WorkflowStage.PUBLISHING: StatusTag.UPLOADING,
    WorkflowStage.SUCCEEDED: StatusTag.SUCCESS,
    WorkflowStage.FAILED: StatusTag.ERROR,
}


@dataclass(frozen=True)
class WorkflowState:
    """Snapshot of a run."""
    stage: WorkflowStage = WorkflowStage.IDLE
    retry_count: int = 0
    max_retries: int = 3
    last_error: Optional[str] = None

    @property
    def tag(self) -> Optional[StatusTag]:
        return STAGE_TAGS[self.stage]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "retry_count": self.retry_count,
            "max_retries": self.max_retries,
            "last_error": self.last_error,
        }


@dataclass
class RunArtifacts:
    """What a run has produced so far."""
    access_token: Optional[str] = None
    username: Optional[str] = None
    jobs: Dict[JobKind, ExportJob] = field(default_factory=dict)

    @property
    def has_token(self) -> bool:
        return bool(self.access_token and self.username)

    @property
    def has_job_ids(self) -> bool:
        return all(kind in self.jobs for kind in JobKind)

    @property
    def both_ready(self) -> bool:
        return self.has_job_ids and all(job.ready for job in self.jobs.values())

    def references(self) -> JobReferences:
        return JobReferences(
            parquet_url=self.jobs[JobKind.PARQUET].status_url,
            manifest_url=self.jobs[JobKind.MANIFEST].status_url,
        )

    def drop_token(self) -> None:
        self.access_token = None
        self.username = None

    def discard_jobs(self) -> None:
        self.jobs = {}


def fresh_state(max_retries: int) -> WorkflowState:
    """State of a user-initiated run; the only place retry_count resets."""
    return WorkflowState(stage=WorkflowStage.IDLE, retry_count=0, max_retries=max_retries)


def advance(state: WorkflowState, stage: WorkflowStage) -> WorkflowState:
    return replace(state, stage=stage)


def resume_stage(artifacts: RunArtifacts) -> WorkflowStage:
    """First incomplete stage given the artifacts already produced."""
    if not artifacts.has_token:
        return WorkflowStage.AUTHENTICATING
    if not artifacts.has_job_ids:
        return WorkflowStage.SUBMITTING
    if not artifacts.both_ready:
        return WorkflowStage.POLLING
    return WorkflowStage.PUBLISHING


def record_failure(state: WorkflowState, artifacts: RunArtifacts, error: str) -> WorkflowState:
    """
    Count one failure.

    Returns a FAILED state once the count reaches max_retries, otherwise a
    state positioned at the stage the next attempt resumes from.
    """
    retry_count = min(state.retry_count + 1, state.max_retries)
    if retry_count >= state.max_retries:
        stage = WorkflowStage.FAILED
    else:
        stage = resume_stage(artifacts)
    return replace(state, stage=stage, retry_count=retry_count, last_error=error)


def fail(state: WorkflowState, error: str) -> WorkflowState:
    """Fail without consuming a retry (non-retryable errors)."""
    return replace(state, stage=WorkflowStage.FAILED, last_error=error)


def backoff_delay(retry_count: int) -> float:
    """Seconds to wait before the retry following the given failure count."""
    return float(2 ** retry_count)


def retry_message(state: WorkflowState) -> str:
    return f"Error: {state.last_error}. Retrying ({state.retry_count}/{state.max_retries})..."


def failure_message(state: WorkflowState) -> str:
    return f"Failed after {state.retry_count} attempts: {state.last_error}"
