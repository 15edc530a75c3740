from __future__ import annotations

from typing import TYPE_CHECKING

from context_snapshot.config import CODE_DIR, SNAPSHOTS_DIR
from context_snapshot.logging import logger
from context_snapshot.time_expression import as_utc
from context_snapshot.watermark import LAST_RUN_FILE

if TYPE_CHECKING:
    from datetime import datetime
    from pathlib import Path

GITIGNORE_COMMENT = "# Project context files"


def ensure_context_dirs(root: Path) -> Path:
    """Create the context root and its `code/` and `snapshots/` folders.

    Returns:
        Path: the context root
    """
    for folder in (root, root / CODE_DIR, root / SNAPSHOTS_DIR):
        if not folder.is_dir():
            folder.mkdir(parents=True, exist_ok=True)
            logger.debug("Created directory", path=str(folder))
    return root


def ensure_gitignore(repo: Path, pattern: str) -> bool:
    """Make sure `.gitignore` in `repo` ignores `pattern`.

    The pattern is appended under a comment, or a new `.gitignore` is created.

    Returns:
        bool: True if `.gitignore` was created or modified
    """
    gitignore = repo / ".gitignore"
    entry = pattern.rstrip("/") + "/"

    if gitignore.exists():
        content = gitignore.read_text(encoding="utf-8")
        if any(line.strip() in {entry, entry.rstrip("/")} for line in content.splitlines()):
            return False
        newline = "" if not content or content.endswith("\n") else "\n"
        gitignore.write_text(f"{content}{newline}\n{GITIGNORE_COMMENT}\n{entry}\n", encoding="utf-8")
        logger.info("Added %s to %s", entry, gitignore)
        return True

    gitignore.write_text(f"{GITIGNORE_COMMENT}\n{entry}\n", encoding="utf-8")
    logger.info("Created %s with %s", gitignore, entry)
    return True


def snapshot_path(root: Path, fmt: str, instant: datetime) -> Path:
    """Return an unused `snapshots/context-<UTC stamp>.<fmt>` path under `root`.

    A numeric suffix keeps snapshots taken within the same second apart.
    """
    folder = root / SNAPSHOTS_DIR
    stamp = as_utc(instant).strftime("%Y%m%dT%H%M%SZ")
    path = folder / f"context-{stamp}.{fmt}"
    seq = 2
    while path.exists():
        path = folder / f"context-{stamp}-{seq}.{fmt}"
        seq += 1
    return path


def clear_context_files(root: Path, *, include_snapshots: bool = False, remove_all: bool = False) -> list[Path]:
    """Delete generated files under the context root.

    `code/` is always emptied, `snapshots/` only with `include_snapshots` or
    `remove_all`. `remove_all` also drops the last-run watermark and removes
    the folders once they are empty.

    Returns:
        list[Path]: the removed files
    """
    folders = [root / CODE_DIR]
    if include_snapshots or remove_all:
        folders.append(root / SNAPSHOTS_DIR)

    removed: list[Path] = []
    for folder in folders:
        if not folder.is_dir():
            continue
        for path in sorted(folder.iterdir()):
            if path.is_file():
                path.unlink()
                removed.append(path)
                logger.info("Removed %s", path)

    if remove_all:
        last_run = root / LAST_RUN_FILE
        if last_run.is_file():
            last_run.unlink()
            removed.append(last_run)
        for folder in (root / CODE_DIR, root / SNAPSHOTS_DIR, root):
            if folder.is_dir() and not any(folder.iterdir()):
                folder.rmdir()
                logger.info("Removed empty directory %s", folder)
    return removed
