from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class ContextSnapshotError(Exception):
    """Base exception for errors in the context_snapshot package."""


@dataclass(frozen=True)
class GitCommandError(ContextSnapshotError):
    """Raised when a git command cannot be run or exits non-zero."""

    command: str
    returncode: int
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        detail = self.stderr.strip() or f"exit status {self.returncode}"
        return f"`{self.command}` failed: {detail}"


@dataclass(frozen=True)
class NotAGitRepositoryError(ContextSnapshotError):
    """Raised when the specified directory is not a Git repository."""

    folder: Path
    message: str = "The specified directory is not a Git repository."

    def __str__(self) -> str:
        return f"{self.message} ({self.folder})"
