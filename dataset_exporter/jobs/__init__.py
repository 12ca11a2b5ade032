"""
Backend export jobs.
"""

from .models import (
    JobKind,
    ExportJob,
    JobReferences,
    JobStatusPayload,
    SubmitResponse,
    compute_percent,
)
from .poller import DualJobPoller, ProgressCallback

__all__ = [
    "JobKind",
    "ExportJob",
    "JobReferences",
    "JobStatusPayload",
    "SubmitResponse",
    "compute_percent",
    "DualJobPoller",
    "ProgressCallback",
]
