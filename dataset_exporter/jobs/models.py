"""
Export job models.
"""

import math
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


class JobKind(str, Enum):
    """The two artifacts every run exports."""
    PARQUET = "parquet"
    MANIFEST = "manifest"

    @property
    def label(self) -> str:
        return self.value.capitalize()


def compute_percent(completed: float, total: float) -> int:
    """Completion percentage, rounded half up and clamped to [0, 100]."""
    if total <= 0:
        return 0
    percent = math.floor(100 * completed / total + 0.5)
    return max(0, min(100, percent))


@dataclass
class ExportJob:
    """One backend export task."""
    job_id: str
    kind: JobKind
    status_url: str
    ready: bool = False
    progress_percent: int = 0

    def record_progress(self, percent: int) -> int:
        """Record a poll result; reported progress never goes backwards."""
        percent = max(0, min(100, percent))
        self.progress_percent = max(self.progress_percent, percent)
        return self.progress_percent

    def mark_ready(self) -> None:
        self.ready = True
        self.progress_percent = 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "job_id": self.job_id,
            "kind": self.kind.value,
            "status_url": self.status_url,
            "ready": self.ready,
            "progress_percent": self.progress_percent,
        }


@dataclass
class JobReferences:
    """Download references for the two finished artifacts."""
    parquet_url: str
    manifest_url: str


class SubmitResponse(BaseModel):
    """Response of the job submission endpoint."""
    model_config = ConfigDict(extra="allow", coerce_numbers_to_str=True)

    task_id: str


class JobStatusPayload(BaseModel):
    """
    Progress report served while a job is running.

    The service reports generic counters; only their ratio matters.
    """
    model_config = ConfigDict(extra="allow")

    completed: float = Field(default=0, validation_alias=AliasChoices("completed", "progress_ids"))
    total: float = Field(default=0, validation_alias=AliasChoices("total", "hit_count"))
    state: Optional[str] = None

    @field_validator("completed", "total", mode="before")
    @classmethod
    def _null_counter(cls, value: Any) -> Any:
        return 0 if value is None else value

    @property
    def percent(self) -> int:
        return compute_percent(self.completed, self.total)
