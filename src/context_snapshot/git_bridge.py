"""Read-only git queries used to find changed files.

Every query goes through a `GitRunner`, so tests can swap the real
subprocess runner for an in-memory one. Failures never escape this module:
`GitBridge._query` is the single place where a `GitCommandError` is turned
into a logged fallback.
"""

from __future__ import annotations

import subprocess  # noqa: S404
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from context_snapshot.exceptions import GitCommandError
from context_snapshot.logging import logger
from context_snapshot.time_expression import as_utc

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence
    from datetime import datetime


class GitRunner(Protocol):
    def __call__(self, args: Sequence[str], cwd: Path) -> str:
        """Run ``git <args>`` in `cwd` and return stdout; raise GitCommandError on failure."""
        ...


class SubprocessGitRunner:
    """Run git as a child process, bounded by `timeout` seconds."""

    def __init__(self, git: str = "git", timeout: float | None = 30.0) -> None:
        self.git = git
        self.timeout = timeout

    def __call__(self, args: Sequence[str], cwd: Path) -> str:
        cmd = [self.git, *args]
        command = " ".join(cmd)
        try:
            out = subprocess.run(  # noqa: S603
                cmd,
                cwd=str(cwd),
                text=True,
                capture_output=True,
                check=False,
                timeout=self.timeout,
            )
        except FileNotFoundError as e:
            raise GitCommandError(command=command, returncode=127, stderr=str(e)) from e
        except subprocess.TimeoutExpired as e:
            raise GitCommandError(command=command, returncode=-1, stderr=f"timed out after {self.timeout}s") from e
        except OSError as e:
            raise GitCommandError(command=command, returncode=-1, stderr=str(e)) from e
        if out.returncode != 0:
            raise GitCommandError(command=command, returncode=out.returncode, stdout=out.stdout, stderr=out.stderr)
        return out.stdout


class GitBridge:
    """Answer "which files changed?" questions from git history.

    Paths are returned absolute and resolved against `repo`; paths that no
    longer exist on disk are dropped, since a deleted or renamed-away file is
    nothing to reprocess.
    """

    def __init__(self, repo: Path, runner: GitRunner | None = None) -> None:
        self.repo = Path(repo).resolve()
        self.runner: GitRunner = runner if runner is not None else SubprocessGitRunner()
        self.warnings: list[str] = []
        self._available: bool | None = None

    def _warn(self, message: str) -> None:
        self.warnings.append(message)
        logger.warning(message)

    def _query(self, *args: str, quiet: bool = False) -> str | None:
        """Run a git query, mapping any failure to None.

        Args:
            *args: git arguments
            quiet: log failures at debug level instead of warning

        Returns:
            str | None: the command's stdout, or None if it failed
        """
        try:
            return self.runner(args, self.repo)
        except GitCommandError as e:
            if quiet:
                logger.debug("git query failed", command=e.command, returncode=e.returncode)
            else:
                logger.warning("git query failed: %s", e)
            return None

    def _existing(self, entries: Iterable[str]) -> set[Path]:
        found: set[Path] = set()
        for entry in entries:
            # `log -z` still ends each commit header with a newline
            rel = entry.strip("\n")
            if not rel:
                continue
            path = (self.repo / rel).resolve()
            if path.exists():
                found.add(path)
        return found

    def is_available(self) -> bool:
        """Check whether `repo` lies inside a git working tree."""
        if self._available is None:
            out = self._query("rev-parse", "--is-inside-work-tree", quiet=True)
            self._available = out is not None and out.strip() == "true"
        return self._available

    def resolve_commit(self, ref: str) -> str | None:
        """Return the commit id `ref` names, or None if it names no commit."""
        out = self._query("rev-parse", "--verify", "--quiet", "--end-of-options", f"{ref}^{{commit}}", quiet=True)
        commit = out.strip() if out else ""
        return commit or None

    def merge_base(self, ref: str) -> str | None:
        """Return the merge-base of HEAD and `ref`, or None if git cannot compute it."""
        out = self._query("merge-base", "--end-of-options", "HEAD", ref, quiet=True)
        base = out.strip() if out else ""
        return base or None

    def changed_since(self, ref: str) -> set[Path] | None:
        """Files that differ from `ref`, plus untracked files not covered by ignore rules.

        `ref` is resolved to a commit first, then reduced to its merge-base with
        HEAD so that a diverged branch only contributes its own changes. When
        no merge-base exists the commit itself is diffed against.

        Returns:
            set[Path] | None: the changed files, an empty set if git could not
                answer for this ref, or None when `repo` is not a git working
                tree and the ref filter does not apply at all
        """
        if not self.is_available():
            self._warn(f"Not a git repository: --git-diff {ref} ignored.")
            return None

        commit = self.resolve_commit(ref)
        if commit is None:
            self._warn(f"Unknown git ref {ref!r}; no files match it.")
            return set()

        base = self.merge_base(commit) or commit
        diff = self._query("diff", "--name-only", "--relative", "-z", "--end-of-options", base, "--")
        untracked = self._query("ls-files", "-z", "--others", "--exclude-standard")
        if diff is None or untracked is None:
            self._warn(f"Could not get git diff for {ref!r}; no files match it.")
            return set()
        return self._existing([*diff.split("\0"), *untracked.split("\0")])

    def changed_since_instant(self, cutoff: datetime) -> set[Path]:
        """Files touched by any commit since `cutoff`.

        An empty set means "no answer from git" as much as "no commits"; the
        caller falls back to filesystem mtimes in both cases.
        """
        if not self.is_available():
            return set()
        out = self._query(
            "log",
            "-z",
            f"--since={as_utc(cutoff).isoformat()}",
            "--name-only",
            "--relative",
            "--pretty=format:",
            quiet=True,
        )
        if out is None:
            return set()
        return self._existing(out.split("\0"))
