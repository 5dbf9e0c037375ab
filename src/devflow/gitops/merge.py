"""Merge a feature branch into the integration branches and push them."""

from __future__ import annotations

import re
from typing import List, Optional, Sequence

from ..config import GitConfig
from ..interaction import (
    InputType,
    InteractionRequest,
    ProgressReporter,
    QuestionCategory,
    UserInteractionHandler,
)
from ..utils.logging import get_logger
from .runner import GitCommandError, GitCommandRunner

logger = get_logger(__name__)

CONFLICT_MARKERS = frozenset({"UU", "AA", "DD"})

CHOICE_VIEW_CHANGES = "View changes"
CHOICE_CONTINUE = "Continue anyway"
CHOICE_CANCEL = "Cancel"

NOT_A_REPOSITORY_MESSAGE = "The working directory is not a git repository"


class BranchMergeError(RuntimeError):
    """Raised when the merge workflow cannot continue."""


class MergeConflictError(BranchMergeError):
    """Raised when a merge leaves conflict markers in the working tree."""

    def __init__(self, source: str, target: str) -> None:
        self.source = source
        self.target = target
        super().__init__(
            f"Merging {source} into {target} produced conflicts, resolve them manually"
        )


def parse_branch_listing(output: str, remote: str = "origin") -> List[str]:
    """Turn `git branch -a` output into unique branch names.

    The current-branch star and remote-tracking prefix are stripped, and any
    line mentioning HEAD (symbolic refs, detached HEAD) is dropped.
    """
    remote_prefix = re.compile(rf"^remotes/{re.escape(remote)}/")
    branches: List[str] = []
    for line in output.splitlines():
        name = re.sub(r"^\*?\s+", "", line).strip()
        name = remote_prefix.sub("", name)
        if not name or "HEAD" in name or name in branches:
            continue
        branches.append(name)
    return branches


def has_conflict_markers(status_output: str) -> bool:
    """True if any porcelain status line carries an unmerged XY code."""
    return any(line[:2] in CONFLICT_MARKERS for line in status_output.splitlines())


class BranchMergeOrchestrator:
    """Runs the fixed source -> dev -> sit merge-and-push sequence."""

    def __init__(
        self,
        runner: GitCommandRunner,
        config: GitConfig,
        interaction_handler: UserInteractionHandler,
    ) -> None:
        if len(config.merge_targets) < 1:
            raise ValueError("At least one merge target branch is required")
        self.runner = runner
        self.config = config
        self.interaction_handler = interaction_handler

    @property
    def targets(self) -> Sequence[str]:
        return self.config.merge_targets

    # ------------------------------------------------------------------
    # Repository queries
    # ------------------------------------------------------------------

    def is_git_repository(self) -> bool:
        try:
            self.runner.run("rev-parse", "--git-dir")
            return True
        except GitCommandError:
            return False

    def working_tree_changes(self) -> Optional[List[str]]:
        """Porcelain status lines, or None when the status itself failed."""
        try:
            result = self.runner.run("status", "--porcelain")
        except GitCommandError as exc:
            logger.warning("git status failed: %s", exc)
            return None
        return [line for line in result.stdout.splitlines() if line.strip()]

    def is_working_directory_clean(self) -> bool:
        changes = self.working_tree_changes()
        return changes is not None and not changes

    def get_current_branch(self) -> str:
        return self.runner.run("rev-parse", "--abbrev-ref", "HEAD").stdout.strip()

    def get_all_branches(self) -> List[str]:
        try:
            result = self.runner.run("branch", "-a")
        except GitCommandError as exc:
            self._log(f"❌ Listing branches failed: {exc}")
            return []
        return parse_branch_listing(result.stdout, self.config.remote)

    def check_merge_conflict(self) -> bool:
        try:
            result = self.runner.run("status", "--porcelain")
        except GitCommandError:
            return False
        return has_conflict_markers(result.stdout)

    # ------------------------------------------------------------------
    # Workflow
    # ------------------------------------------------------------------

    def auto_merge_branch(self) -> bool:
        """Interactive entry point; returns True only when every push went through."""
        self._log("🚀 Starting automatic branch merge...")
        try:
            if not self.is_git_repository():
                self._log(f"❌ {NOT_A_REPOSITORY_MESSAGE}")
                self.interaction_handler.notify(NOT_A_REPOSITORY_MESSAGE, "error")
                return False

            if not self._confirm_dirty_tree():
                return False

            current_branch = self.get_current_branch()
            self._log(f"📍 Current branch: {current_branch}")

            branch = self.select_branch_to_merge(current_branch)
            if not branch:
                self._log("❌ Cancelled by user")
                return False

            if not self.confirm_merge_operation(branch):
                self._log("❌ Merge cancelled by user")
                return False

            self.execute_merge_flow(branch, current_branch)
            return True
        except (GitCommandError, BranchMergeError) as exc:
            self._log(f"❌ Merge failed: {exc}")
            self.interaction_handler.notify(_friendly_error(exc), "error")
            return False

    def _confirm_dirty_tree(self) -> bool:
        changes = self.working_tree_changes()
        if changes == []:
            return True

        message = "The working tree has uncommitted changes; commit or stash them before merging"
        self._log(f"⚠️ {message}")
        response = self.interaction_handler.ask(
            InteractionRequest(
                question=message,
                category=QuestionCategory.WARNING,
                options=[CHOICE_VIEW_CHANGES, CHOICE_CONTINUE, CHOICE_CANCEL],
                default=CHOICE_CANCEL,
            )
        )
        if response.value == CHOICE_VIEW_CHANGES:
            for line in changes or []:
                self._log(f"  {line}")
            return False
        if response.value != CHOICE_CONTINUE:
            self._log("❌ Cancelled by user")
            return False
        return True

    def select_branch_to_merge(self, current_branch: str) -> Optional[str]:
        branches = self.get_all_branches()
        if not branches:
            self.interaction_handler.notify("No branches found", "error")
            return None

        response = self.interaction_handler.ask(
            InteractionRequest(
                question="Select the branch to merge",
                title="Automatic branch merge",
                options=branches,
                descriptions=["(current)" if b == current_branch else "" for b in branches],
                default=current_branch if current_branch in branches else None,
            )
        )
        if response.index is None:
            return None
        return branches[response.index]

    def describe_plan(self, branch: str) -> str:
        steps = [f"Check out {branch} and pull the latest changes"]
        source = branch
        for target in self.targets:
            steps.append(f"Merge {source} into {target} and push")
            source = target
        steps.append("Switch back to the original branch")
        lines = [f"Merge {branch} into {' and '.join(self.targets)}?", "", "Steps:"]
        lines.extend(f"{i}. {step}" for i, step in enumerate(steps, 1))
        return "\n".join(lines)

    def confirm_merge_operation(self, branch: str) -> bool:
        response = self.interaction_handler.ask(
            InteractionRequest(
                question=self.describe_plan(branch),
                input_type=InputType.CONFIRM,
                category=QuestionCategory.CONFIRMATION,
            )
        )
        return response.confirmed

    def execute_merge_flow(self, branch: str, original_branch: str) -> None:
        """Run the sequence; raises on the first failure and leaves the repo where it stopped."""
        with self.interaction_handler.progress("Automatic branch merge") as progress:
            progress.report(10, f"Checking out {branch}...")
            self.switch_and_pull_branch(branch)

            self._merge_chain(branch, progress)

            progress.report(20, f"Switching back to {original_branch}...")
            self.switch_to_branch(original_branch)

            progress.report(10, "Merge complete!")

        self._log("✅ Automatic merge complete!")
        self.interaction_handler.notify("🎉 Branches merged successfully!", "success")

    def _merge_chain(self, branch: str, progress: ProgressReporter) -> None:
        # 60% 平均分给各目标分支
        share = 60 // len(self.targets)
        source = branch
        for target in self.targets:
            progress.report(share, f"Merging into {target}...")
            self.merge_to_target_branch(source, target)
            source = target

    def switch_and_pull_branch(self, branch: str) -> None:
        self.switch_to_branch(branch)
        self._log(f"⬇️ Pulling {branch}...")
        self.runner.run("pull", self.config.remote, branch)

    def switch_to_branch(self, branch: str) -> None:
        self._log(f"🔄 Checking out {branch}...")
        self.runner.run("checkout", branch)

    def merge_to_target_branch(self, source: str, target: str) -> None:
        self.switch_to_branch(target)

        self._log(f"⬇️ Pulling {target}...")
        self.runner.run("pull", self.config.remote, target)

        self._log(f"🔀 Merging {source} into {target}...")
        merge = self.runner.run("merge", source, check=False)

        # 冲突时保留现场，交给用户手动解决
        if self.check_merge_conflict():
            raise MergeConflictError(source, target)
        if not merge.ok:
            raise GitCommandError(
                [self.runner.git_binary, "merge", source], merge.exit_code, merge.stderr.strip()
            )

        self._log(f"⬆️ Pushing {target}...")
        self.runner.run("push", self.config.remote, f"{target}:{target}")

    def show_branch_info(self) -> None:
        try:
            current_branch = self.get_current_branch()
        except GitCommandError as exc:
            self._log(f"❌ Reading branch info failed: {exc}")
            self.interaction_handler.notify(_friendly_error(exc), "error")
            return
        branches = self.get_all_branches()

        self._log("📋 Branch info:")
        self._log(f"Current branch: {current_branch}")
        self._log("All branches:")
        for branch in branches:
            marker = " (current)" if branch == current_branch else ""
            self._log(f"  - {branch}{marker}")

    def _log(self, message: str) -> None:
        logger.debug(message)
        self.interaction_handler.log(message)


def _friendly_error(exc: Exception) -> str:
    text = str(exc)
    if "not a git repository" in text:
        return NOT_A_REPOSITORY_MESSAGE
    return f"Merge failed: {text}"

