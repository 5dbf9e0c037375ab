"""Git operations helpers."""

from .merge import (
    BranchMergeError,
    BranchMergeOrchestrator,
    MergeConflictError,
    has_conflict_markers,
    parse_branch_listing,
)
from .runner import GitCommandError, GitCommandRunner, GitResult, GitTimeoutError

__all__ = [
    "BranchMergeError",
    "BranchMergeOrchestrator",
    "GitCommandError",
    "GitCommandRunner",
    "GitResult",
    "GitTimeoutError",
    "MergeConflictError",
    "has_conflict_markers",
    "parse_branch_listing",
]
