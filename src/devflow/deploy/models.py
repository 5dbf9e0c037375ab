"""Data models for the deploy module."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field, replace
from enum import IntEnum
from typing import Any, Dict, List, Optional

logger = logging.getLogger(__name__)


class DeployStatus(IntEnum):
    """Pipeline status codes used by the build service."""
    PREPARE = 1
    DOING = 2
    DONE = 3
    ERROR = 4
    ABORT = 5
    JUMP = 9

    @property
    def is_terminal(self) -> bool:
        return self in TERMINAL_STATUSES

    @property
    def label(self) -> str:
        return STATUS_LABELS[self]

    @classmethod
    def parse(cls, value: Any) -> Optional["DeployStatus"]:
        """Map a raw payload value to a status; unknown values become None."""
        if value is None or value == "":
            return None
        try:
            return cls(int(value))
        except (TypeError, ValueError):
            logger.warning("Unknown deploy status value: %r", value)
            return None


TERMINAL_STATUSES = frozenset(
    {DeployStatus.DONE, DeployStatus.ERROR, DeployStatus.ABORT, DeployStatus.JUMP}
)

STATUS_LABELS = {
    DeployStatus.PREPARE: "Preparing",
    DeployStatus.DOING: "Running",
    DeployStatus.DONE: "Done",
    DeployStatus.ERROR: "Failed",
    DeployStatus.ABORT: "Aborted",
    DeployStatus.JUMP: "Skipped",
}


def is_terminal(status: Optional[DeployStatus]) -> bool:
    """None (never polled) counts as pending."""
    return status is not None and status.is_terminal


def status_text(status: Optional[DeployStatus]) -> str:
    return status.label if status is not None else "Unknown"


# detail 接口字段 -> 记录属性
_DETAIL_FIELDS = {
    "creator": "creator",
    "startTime": "start_time",
    "endTime": "end_time",
    "stageList": "stage_list",
}


@dataclass
class DeploymentRecord:
    """One active or historical pipeline run."""

    build_id: int
    application_name: str
    status: Optional[DeployStatus] = None
    creator: Optional[str] = None
    start_time: Optional[str] = None
    end_time: Optional[str] = None
    stage_list: List[Any] = field(default_factory=list)
    extra: Dict[str, Any] = field(default_factory=dict)
    loading: bool = False

    @property
    def is_terminal(self) -> bool:
        return is_terminal(self.status)

    def merge(self, payload: Dict[str, Any]) -> None:
        """Merge a detail payload in place.

        buildId and applicationName are identity and never change here.
        A terminal status is never replaced by a non-terminal one.
        """
        for key, value in payload.items():
            if key in ("buildId", "applicationName"):
                continue
            if key == "status":
                new_status = DeployStatus.parse(value)
                if new_status is None:
                    continue
                if self.is_terminal and not new_status.is_terminal:
                    logger.warning(
                        "Ignoring status %s for build %s: already %s",
                        new_status.name, self.build_id, self.status.name,
                    )
                    continue
                self.status = new_status
            elif key in _DETAIL_FIELDS:
                setattr(self, _DETAIL_FIELDS[key], value)
            else:
                self.extra[key] = value

    def copy(self) -> "DeploymentRecord":
        return replace(self, stage_list=list(self.stage_list or []), extra=dict(self.extra))


@dataclass
class ProjectDescriptor:
    """A business project returned by the project search."""

    business_project_id: str
    business_project_name: str
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def label(self) -> str:
        return self.business_project_name or "Unknown project"

    @property
    def value(self) -> str:
        return self.business_project_name

    @classmethod
    def from_payload(cls, item: Dict[str, Any]) -> "ProjectDescriptor":
        name = item.get("businessProjectName") or item.get("name") or ""
        project_id = item.get("businessProjectId") or item.get("id") or ""
        return cls(
            business_project_id=str(project_id),
            business_project_name=str(name),
            raw=dict(item),
        )
