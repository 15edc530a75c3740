from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from context_snapshot.time_expression import as_utc

if TYPE_CHECKING:
    from pathlib import Path


def is_modified_since(path: Path, cutoff: datetime) -> bool:
    """Check whether a file's mtime is strictly later than `cutoff`.

    Args:
        path (Path): the file to stat
        cutoff (datetime): the lower bound; naive values are read as UTC

    Returns:
        bool: True if modified after `cutoff`, False otherwise or when the stat fails
    """
    try:
        mtime = path.stat().st_mtime
    except OSError:
        return False
    return datetime.fromtimestamp(mtime, tz=UTC) > as_utc(cutoff)
