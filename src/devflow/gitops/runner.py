"""Thin wrapper around the `git` CLI for a fixed working directory."""

from __future__ import annotations

import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Optional, Union


class GitCommandError(RuntimeError):
    """Raised when a git command fails."""

    def __init__(self, command: list[str], exit_code: int, stderr: str) -> None:
        self.command = command
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"Git command {' '.join(command)} failed with code {exit_code}: {stderr}")


class GitTimeoutError(GitCommandError):
    """Raised when a git command does not finish within the timeout."""

    def __init__(self, command: list[str], timeout: float) -> None:
        self.timeout = timeout
        super().__init__(command, -1, f"timed out after {timeout:g}s")


@dataclass
class GitResult:
    """Captured output of a git command."""

    stdout: str
    stderr: str
    exit_code: int = 0

    @property
    def ok(self) -> bool:
        return self.exit_code == 0


class GitCommandRunner:
    """Runs one git command at a time in `working_dir`."""

    def __init__(
        self,
        working_dir: Union[str, Path, None] = None,
        git_binary: str = "git",
        timeout: Optional[float] = None,
    ) -> None:
        self.working_dir = Path(working_dir) if working_dir else None
        self.git_binary = git_binary
        self.timeout = timeout

    def run(self, *args: str, check: bool = True) -> GitResult:
        """Run `git <args>`; raises GitCommandError on non-zero exit when `check`."""
        command = [self.git_binary, *args]
        try:
            process = subprocess.run(
                command,
                cwd=str(self.working_dir) if self.working_dir else None,
                capture_output=True,
                text=True,
                check=False,
                timeout=self.timeout,
            )
        except subprocess.TimeoutExpired:
            raise GitTimeoutError(command, self.timeout or 0)
        except OSError as exc:
            raise GitCommandError(command, -1, str(exc))

        if check and process.returncode != 0:
            raise GitCommandError(command, process.returncode, process.stderr.strip())
        return GitResult(stdout=process.stdout, stderr=process.stderr, exit_code=process.returncode)
