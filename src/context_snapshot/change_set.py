"""Decide which candidate files are relevant for an incremental run.

Three optional criteria select files:

- ``changed``: modified since the last successful run (the watermark);
- ``since``: modified since a relative or absolute time expression;
- ``git_diff``: different from a git reference (plus untracked files).

``changed`` and ``since`` both produce a cutoff instant; ``since`` wins when
both are given. ``git_diff`` is an extra filter and narrows the result of the
time-based filter (logical AND). Nothing here ever aborts a run: every failed
dependency degrades to "include everything" or "treat this file as
unchanged".
"""

from __future__ import annotations

from datetime import datetime
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

from pydantic import BaseModel, ConfigDict, Field

from context_snapshot.fs_probe import is_modified_since
from context_snapshot.logging import logger
from context_snapshot.time_expression import format_relative_time, parse_time_expression, utcnow

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from context_snapshot.git_bridge import GitBridge
    from context_snapshot.watermark import WatermarkStore

FIRST_RUN_DESCRIPTION = "first run - all files included"


class ChangeCriterion(StrEnum):
    """The rule that selected the files of a run."""

    NONE = "none"
    SINCE = "since"
    CHANGED = "changed"
    GIT_DIFF = "git-diff"


class ChangeCriteria(BaseModel):
    """Change filters requested for one run. All fields are optional."""

    model_config = ConfigDict(frozen=True)

    since: str | None = Field(default=None, description="Relative (2h, 3d) or ISO time expression")
    git_diff: str | None = Field(default=None, description="Git reference to compare against")
    changed: bool = Field(default=False, description="Only files changed since the last run")

    @property
    def is_empty(self) -> bool:
        """True when no change filter was requested."""
        return not (self.since or self.git_diff or self.changed)

    @property
    def kind(self) -> ChangeCriterion:
        """Label of the criterion; git-diff takes priority over changed, then since."""
        if self.git_diff:
            return ChangeCriterion.GIT_DIFF
        if self.changed:
            return ChangeCriterion.CHANGED
        if self.since:
            return ChangeCriterion.SINCE
        return ChangeCriterion.NONE


class FilterReport(BaseModel):
    """What a change filter did, for display only."""

    model_config = ConfigDict(frozen=True)

    kind: ChangeCriterion
    description: str
    cutoff: datetime | None = None
    git_ref: str | None = None
    total_files: int = Field(..., ge=0)
    filtered_count: int = Field(..., ge=0)
    warnings: list[str] = Field(default_factory=list)

    def summary(self) -> str:
        """One-line summary, e.g. ``since last run (3h ago): 42 of 210 files``."""
        return f"{self.description}: {self.filtered_count} of {self.total_files} files"


class ChangeSetResult(BaseModel):
    """Files kept by the resolver and the report describing the filter, if any."""

    model_config = ConfigDict(frozen=True)

    files: list[Path]
    report: FilterReport | None = None


class _Cutoff(BaseModel):
    """Outcome of the time-based half of the criteria."""

    model_config = ConfigDict(frozen=True)

    instant: datetime | None = None
    description: str = ""
    short_circuit: ChangeSetResult | None = None


class ChangeSetResolver:
    """Filter candidate paths according to `ChangeCriteria`.

    Args:
        watermarks: store holding the last successful run's instant
        git: bridge used for git-based change sets
        probe: mtime check used when git history has no answer
        clock: source of "now" for relative time expressions and descriptions
    """

    def __init__(
        self,
        watermarks: WatermarkStore,
        git: GitBridge,
        probe: Callable[[Path, datetime], bool] = is_modified_since,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self.watermarks = watermarks
        self.git = git
        self.probe = probe
        self.clock = clock

    def _resolve_cutoff(self, files: list[Path], criteria: ChangeCriteria) -> _Cutoff:
        """Apply the precedence rules between `changed` and `since`.

        | changed | watermark | since        | outcome                               |
        |---------|-----------|--------------|---------------------------------------|
        | yes     | absent    | any          | all files, "first run" report         |
        | any     | any       | unparseable  | all files, no report                  |
        | any     | any       | parseable    | cutoff = since                        |
        | yes     | present   | unset        | cutoff = watermark                    |
        | no      |           | unset        | no cutoff                             |
        """
        now = self.clock()
        cutoff = _Cutoff()

        if criteria.changed:
            last_run = self.watermarks.read()
            if last_run is None:
                report = FilterReport(
                    kind=ChangeCriterion.CHANGED,
                    description=FIRST_RUN_DESCRIPTION,
                    total_files=len(files),
                    filtered_count=len(files),
                )
                return _Cutoff(short_circuit=ChangeSetResult(files=files, report=report))
            cutoff = _Cutoff(
                instant=last_run,
                description=f"since last run ({format_relative_time(last_run, now)})",
            )

        if criteria.since:
            since = parse_time_expression(criteria.since, now=now)
            if since is None:
                logger.warning("Could not parse time expression %r. Including all files.", criteria.since)
                return _Cutoff(short_circuit=ChangeSetResult(files=files))
            cutoff = _Cutoff(instant=since, description=f"since {format_relative_time(since, now)}")

        return cutoff

    def _passes_cutoff(self, cutoff: datetime) -> Callable[[Path], bool]:
        history = self.git.changed_since_instant(cutoff)
        if history:
            return lambda path: path.resolve() in history
        return lambda path: self.probe(path, cutoff)

    def resolve(self, candidates: Sequence[Path], criteria: ChangeCriteria) -> ChangeSetResult:
        """Keep the candidates that match `criteria`.

        Args:
            candidates: absolute candidate paths, in output order
            criteria: the requested change filters

        Returns:
            ChangeSetResult: the kept paths (input order preserved) and a report,
                or every candidate and no report when no filter applies
        """
        files = [Path(p) for p in candidates]
        if criteria.is_empty:
            return ChangeSetResult(files=files)

        cutoff = self._resolve_cutoff(files, criteria)
        if cutoff.short_circuit is not None:
            return cutoff.short_circuit

        description = cutoff.description
        seen_warnings = len(self.git.warnings)
        git_changed: set[Path] | None = None
        if criteria.git_diff:
            description = f"changed vs {criteria.git_diff}"
            # None: outside a working tree, the ref filter is skipped
            git_changed = self.git.changed_since(criteria.git_diff)

        kept = files
        if cutoff.instant is not None:
            passes = self._passes_cutoff(cutoff.instant)
            kept = [f for f in kept if passes(f)]
        if git_changed is not None:
            kept = [f for f in kept if f.resolve() in git_changed]

        report = FilterReport(
            kind=criteria.kind,
            description=description,
            cutoff=cutoff.instant,
            git_ref=criteria.git_diff,
            total_files=len(files),
            filtered_count=len(kept),
            warnings=self.git.warnings[seen_warnings:],
        )
        logger.info(
            "Change filter applied",
            kind=str(report.kind),
            kept=report.filtered_count,
            total=report.total_files,
        )
        return ChangeSetResult(files=kept, report=report)
