"""
Export workflow: state, status reporting and orchestration.
"""

from .state import (
    WorkflowStage,
    WorkflowState,
    StatusTag,
    RunArtifacts,
    fresh_state,
    advance,
    resume_stage,
    record_failure,
    fail,
    backoff_delay,
    retry_message,
    failure_message,
)
from .status import StatusUpdate, StatusSink, LoggingStatusSink, RecordingStatusSink
from .orchestrator import WorkflowOrchestrator, WorkflowResult

__all__ = [
    # State
    "WorkflowStage",
    "WorkflowState",
    "StatusTag",
    "RunArtifacts",
    "fresh_state",
    "advance",
    "resume_stage",
    "record_failure",
    "fail",
    "backoff_delay",
    "retry_message",
    "failure_message",
    # Status
    "StatusUpdate",
    "StatusSink",
    "LoggingStatusSink",
    "RecordingStatusSink",
    # Orchestration
    "WorkflowOrchestrator",
    "WorkflowResult",
]
