"""Remote pipeline deployment and status tracking."""

from .build_id import parse_conflict_build_id
from .models import DeployStatus, DeploymentRecord, ProjectDescriptor, TERMINAL_STATUSES
from .orchestrator import DeployOrchestrator
from .poller import PollingLoop
from .registry import DeploymentRegistry

__all__ = [
    "DeployOrchestrator",
    "DeployStatus",
    "DeploymentRecord",
    "DeploymentRegistry",
    "PollingLoop",
    "ProjectDescriptor",
    "TERMINAL_STATUSES",
    "parse_conflict_build_id",
]
