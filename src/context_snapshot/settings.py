from __future__ import annotations

import os
from pathlib import Path

from dotenv import find_dotenv, load_dotenv
from pydantic import BaseModel, ConfigDict, Field

from context_snapshot.change_set import ChangeCriteria

ENV_FILE = find_dotenv(usecwd=True)
load_dotenv(ENV_FILE)

DEFAULT_CONTEXT_ROOT = ".aicontext"
DEFAULT_GIT_TIMEOUT = 30.0


def _env_context_root() -> str:
    return os.environ.get("CONTEXT_SNAPSHOT_ROOT", DEFAULT_CONTEXT_ROOT)


def _env_git_timeout() -> float:
    raw = os.environ.get("CONTEXT_SNAPSHOT_GIT_TIMEOUT", "")
    try:
        return float(raw) if raw else DEFAULT_GIT_TIMEOUT
    except ValueError:
        return DEFAULT_GIT_TIMEOUT


class Settings(BaseModel):
    """Configuration settings for a context_snapshot run."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    repo: Path = Field(default_factory=Path.cwd, description="Repository root.")
    output: Path | None = Field(
        default=None,
        description="Output file (.md or .jsonl); defaults to <context root>/code/context.md.",
    )
    format: str = Field(default="", description="Force format.")
    no_git: bool = Field(default=False, description="Do not use git ls-files.")
    log_file: str = Field(default="", description="Log file path.")
    context_root: str = Field(
        default_factory=_env_context_root,
        description="Context directory, relative to the repository.",
    )
    no_gitignore: bool = Field(default=False, description="Do not patch .gitignore.")
    snap: bool = Field(default=False, description="Also write a timestamped copy to the snapshots folder.")
    clear: bool = Field(default=False, description="Remove generated context files and exit.")
    clear_all: bool = Field(default=False, description="Remove the whole context directory and exit.")

    all: bool = Field(default=False, description="Export all files (after filters).")
    src_only: bool = Field(default=False, description="Export src/ + key files.")
    tests_only: bool = Field(default=False, description="Export tests/ only.")
    include_tests: bool = Field(default=False, description="When src-only, include tests/.")
    tests_first: bool = Field(default=False, description="Order tests before src in md.")
    no_key_first: bool = Field(default=False, description="Do not prioritize key files.")

    include_glob: list[str] = Field(default_factory=list, description="Include glob.")
    exclude_glob: list[str] = Field(default_factory=list, description="Exclude glob.")
    exclude_path: list[str] = Field(default_factory=list, description="Exclude path prefix.")
    drop: str = Field(default="", description="Comma list: api,front,data,docs,tests.")

    since: str | None = Field(default=None, description="Only files changed since 2h, 3d, 1w or an ISO date.")
    git_diff: str | None = Field(default=None, description="Only files changed vs a git ref.")
    changed: bool = Field(default=False, description="Only files changed since the last run.")
    git_timeout: float = Field(
        default_factory=_env_git_timeout,
        gt=0,
        description="Timeout in seconds for each git query.",
    )

    max_bytes: int = Field(default=500_000, description="Text files above are truncated.")
    text_head_lines: int = Field(default=200, description="Head lines for big text files.")
    text_tail_lines: int = Field(default=80, description="Tail lines for big text files.")
    compact: bool = Field(default=False, description="Reduce markdown verbosity.")
    chunk_chars: int = Field(default=24_000, description="Chunk size for jsonl.")
    include_binary_meta: bool = Field(default=False, description="Include binary stubs in jsonl.")
    no_sha: bool = Field(default=False, description="Do not compute sha256 digests.")

    @property
    def context_dir(self) -> Path:
        """Absolute context directory for this run."""
        return Path(self.repo).resolve() / self.context_root

    @property
    def criteria(self) -> ChangeCriteria:
        """Change criteria selected on the command line."""
        return ChangeCriteria(since=self.since, git_diff=self.git_diff, changed=self.changed)
