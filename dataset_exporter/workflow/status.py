"""
Status reporting for export runs.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .state import StatusTag, WorkflowStage

logger = logging.getLogger(__name__)


@dataclass
class StatusUpdate:
    """One human-readable status change."""
    stage: WorkflowStage
    tag: StatusTag
    message: str
    percent: Optional[int] = None
    kind: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stage": self.stage.value,
            "tag": self.tag.value,
            "message": self.message,
            "percent": self.percent,
            "kind": self.kind,
        }


class StatusSink(ABC):
    """Receives status updates for display."""

    @abstractmethod
    def update(self, status: StatusUpdate) -> None:
        pass


class LoggingStatusSink(StatusSink):
    """Writes status updates to the log."""

    def update(self, status: StatusUpdate) -> None:
        if status.tag is StatusTag.ERROR:
            logger.warning(f"[{status.tag.value}] {status.message}")
        else:
            logger.info(f"[{status.tag.value}] {status.message}")


class RecordingStatusSink(StatusSink):
    """Keeps every update in memory."""

    def __init__(self):
        self.updates: List[StatusUpdate] = []

    def update(self, status: StatusUpdate) -> None:
        self.updates.append(status)

    def percents(self, kind: str) -> List[int]:
        """Progress values reported for one job kind, in order."""
        return [
            u.percent for u in self.updates
            if u.kind == kind and u.percent is not None
        ]

    @property
    def last(self) -> Optional[StatusUpdate]:
        return self.updates[-1] if self.updates else None
