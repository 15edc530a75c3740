"""context_snapshot: bundle the current project into one file for an LLM.

Writes Markdown (default) or JSONL to ``.aicontext/code/context.md`` unless
``--output`` says otherwise. Incremental runs only bundle what changed:

    context-snapshot --changed            # since the last successful run
    context-snapshot --since 2h           # modified in the last two hours
    context-snapshot --since 2024-01-15   # modified since a date (UTC)
    context-snapshot --git-diff main      # differs from main, plus untracked files

``--git-diff`` combines with ``--since`` / ``--changed``: a file must match both.
Every successful run records its end time so the next ``--changed`` run can
start from it.

``--snap`` keeps a timestamped copy under ``.aicontext/snapshots/``;
``--clear`` empties ``code/`` (and ``snapshots/`` with ``--snap``) and
``--clear-all`` removes the context directory.
"""

from __future__ import annotations

import argparse
import subprocess  # noqa: S404
from pathlib import Path
from typing import TYPE_CHECKING

from context_snapshot import __version__
from context_snapshot.change_set import ChangeSetResolver
from context_snapshot.config import CODE_DIR, DROP_PRESETS, KEY_FILES_PRIORITY
from context_snapshot.context_dir import clear_context_files, ensure_context_dirs, ensure_gitignore, snapshot_path
from context_snapshot.exceptions import NotAGitRepositoryError
from context_snapshot.file_manipulation import apply_filters, git_ls_files, make_recs, relpath, walk_files
from context_snapshot.git_bridge import GitBridge, SubprocessGitRunner
from context_snapshot.logging import logger, setup_logging
from context_snapshot.output_construction import build_jsonl, build_markdown
from context_snapshot.settings import Settings
from context_snapshot.time_expression import utcnow
from context_snapshot.watermark import WatermarkStore

if TYPE_CHECKING:
    from collections.abc import Sequence


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    p = argparse.ArgumentParser(
        prog="context-snapshot",
        description="Bundle a project for LLM consumption (md/jsonl), optionally only what changed.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--repo", type=str, default=".", help="Repository root.")
    p.add_argument("--output", type=str, default=None, help="Output file (.md or .jsonl).")
    p.add_argument("--format", type=str, choices=["md", "jsonl"], default="", help="Force format.")
    p.add_argument("--no-git", action="store_true", help="Do not use git ls-files.")
    p.add_argument("--log-file", type=str, default="", help="Log file path.")
    p.add_argument("--no-gitignore", action="store_true", help="Do not add the context dir to .gitignore.")
    p.add_argument("-s", "--snap", action="store_true", help="Also write a timestamped copy to the snapshots folder.")
    cleanup = p.add_mutually_exclusive_group()
    cleanup.add_argument(
        "--clear",
        action="store_true",
        help="Remove generated context files and exit (with --snap, snapshots too).",
    )
    cleanup.add_argument("--clear-all", action="store_true", help="Remove the whole context directory and exit.")

    scope = p.add_mutually_exclusive_group()
    scope.add_argument("--all", action="store_true", help="Export all files (after filters).")
    scope.add_argument("--src-only", action="store_true", help="Export src/ + key files (default).")
    scope.add_argument("--tests-only", action="store_true", help="Export tests/ only (+ key files).")
    p.add_argument("--include-tests", action="store_true", help="When src-only, include tests/.")
    p.add_argument("--tests-first", action="store_true", help="Order tests before src in md.")
    p.add_argument("--no-key-first", action="store_true", help="Do not prioritize key files.")

    p.add_argument("--include-glob", action="append", default=[], help="Include glob (repeatable).")
    p.add_argument("--exclude-glob", action="append", default=[], help="Exclude glob (repeatable).")
    p.add_argument("--exclude-path", action="append", default=[], help="Exclude path prefix (repeatable).")
    p.add_argument("--drop", type=str, default="", help=f"Comma list: {','.join(DROP_PRESETS)}.")

    changes = p.add_argument_group("incremental runs")
    changes.add_argument("--since", type=str, default=None, help="Only files changed since 30m, 2h, 1d, 1w or a date.")
    changes.add_argument("--git-diff", type=str, default=None, help="Only files changed vs a git ref.")
    changes.add_argument("--changed", action="store_true", help="Only files changed since the last run.")

    p.add_argument("--max-bytes", type=int, default=500_000, help="Text files above are truncated.")
    p.add_argument("--text-head-lines", type=int, default=200, help="Head lines for big text files.")
    p.add_argument("--text-tail-lines", type=int, default=80, help="Tail lines for big text files.")
    p.add_argument("--compact", action="store_true", help="Reduce markdown verbosity.")
    p.add_argument("--chunk-chars", type=int, default=24_000, help="Chunk size for jsonl.")
    p.add_argument("--include-binary-meta", action="store_true", help="Include binary stubs in jsonl.")
    p.add_argument("--no-sha", action="store_true", help="Do not compute sha256 digests.")
    args = p.parse_args(argv)
    return Settings(**{k: v for k, v in vars(args).items() if v is not None})


def select_scope(
    files: Sequence[Path],
    repo: Path,
    settings: Settings,
) -> list[Path]:
    """Narrow the candidates to the requested scope (all, src/ + key files, or tests/)."""
    rels = [(f, relpath(f, repo)) for f in files]

    def is_key(r: str) -> bool:
        return Path(r).name in KEY_FILES_PRIORITY

    if settings.all:
        return [f for f, _ in rels]

    if settings.tests_only:
        base = [f for f, r in rels if r.startswith("tests/")]
        if not settings.no_key_first:
            base.extend(f for f, r in rels if is_key(r))
    else:
        base = [f for f, r in rels if r.startswith("src/") or is_key(r)]
        if settings.include_tests:
            base.extend(f for f, r in rels if r.startswith("tests/"))
    return sorted(set(base), key=lambda p: relpath(p, repo).lower())


def list_candidates(repo: Path, settings: Settings) -> list[Path]:
    """Enumerate files with git when possible, otherwise by walking the filesystem."""
    if not settings.no_git:
        try:
            return git_ls_files(repo)
        except (NotAGitRepositoryError, subprocess.CalledProcessError, OSError) as e:
            logger.info("Falling back to filesystem walk: %s", e)
    return walk_files(repo)


def resolve_output(settings: Settings) -> tuple[Path, str]:
    """Return the output path and format ("md" or "jsonl")."""
    fmt = (settings.format or "").strip().lower()
    if settings.output is None:
        fmt = fmt or "md"
        return settings.context_dir / CODE_DIR / f"context.{fmt}", fmt
    out_path = Path(settings.output)
    if not fmt:
        fmt = "jsonl" if out_path.suffix.lower() == ".jsonl" else "md"
    return out_path, fmt


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    if settings.log_file:
        setup_logging(settings.log_file)

    if settings.clear or settings.clear_all:
        removed = clear_context_files(
            settings.context_dir,
            include_snapshots=settings.snap,
            remove_all=settings.clear_all,
        )
        print(f"Removed {len(removed)} file(s) from {settings.context_dir}")
        return 0

    repo = Path(settings.repo).resolve()
    context_dir = ensure_context_dirs(settings.context_dir)
    if not settings.no_gitignore:
        try:
            ensure_gitignore(repo, settings.context_root)
        except OSError as e:
            logger.warning("Could not update .gitignore: %s", e)

    files = [f for f in list_candidates(repo, settings) if f.is_file()]
    files = select_scope(files, repo, settings)

    drop_globs: list[str] = []
    for d in (x.strip().lower() for x in settings.drop.split(",") if x.strip()):
        drop_globs.extend(DROP_PRESETS.get(d, []))

    out_path, fmt = resolve_output(settings)
    selected = apply_filters(
        files=files,
        repo=repo,
        includes=settings.include_glob,
        excludes=[*settings.exclude_glob, *drop_globs],
        exclude_paths=[*settings.exclude_path, settings.context_root, relpath(out_path.resolve(), repo)],
    )

    watermarks = WatermarkStore(context_dir)
    resolver = ChangeSetResolver(
        watermarks=watermarks,
        git=GitBridge(repo, runner=SubprocessGitRunner(timeout=settings.git_timeout)),
    )
    result = resolver.resolve(selected, settings.criteria)

    recs = make_recs(result.files, repo, max_bytes=settings.max_bytes, no_sha=settings.no_sha)

    out_path.parent.mkdir(parents=True, exist_ok=True)
    if fmt == "md":
        content = build_markdown(repo, recs, settings=settings, report=result.report)
    else:
        content = build_jsonl(repo, recs, settings=settings)
    out_path.write_text(content, encoding="utf-8")

    finished = utcnow()
    snap_path: Path | None = None
    if settings.snap:
        snap_path = snapshot_path(context_dir, fmt, finished)
        snap_path.write_text(content, encoding="utf-8")

    watermarks.write(finished)

    print(f"Wrote {out_path} format={fmt} files={len(recs)}")
    if snap_path is not None:
        print(f"Snapshot {snap_path}")
    if result.report is not None:
        print(f"Filter: {result.report.summary()}")
        for warning in result.report.warnings:
            print(f"Warning: {warning}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
