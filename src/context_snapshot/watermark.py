from __future__ import annotations

from datetime import datetime
from pathlib import Path

from context_snapshot.logging import logger
from context_snapshot.time_expression import as_utc, utcnow

LAST_RUN_FILE = ".last-run"


class WatermarkStore:
    """Persist the instant at which the last successful run ended.

    The watermark is a single ISO 8601 UTC timestamp stored in
    ``<context root>/.last-run``. It is overwritten on every successful run
    and never appended to. Reads never raise: a missing, unreadable or
    corrupt file means "no prior run". Writes are best-effort.

    The file is not locked; two runs against the same directory race on it
    and the last writer wins.
    """

    def __init__(self, context_root: Path) -> None:
        self.context_root = Path(context_root)

    @property
    def path(self) -> Path:
        """Location of the watermark file."""
        return self.context_root / LAST_RUN_FILE

    def read(self) -> datetime | None:
        """Return the last-run instant, or None when there is no usable watermark."""
        try:
            raw = self.path.read_text(encoding="utf-8").strip()
        except (OSError, UnicodeDecodeError):
            return None
        if not raw:
            return None
        try:
            return as_utc(datetime.fromisoformat(raw))
        except ValueError:
            logger.debug("Ignoring unparsable watermark", path=str(self.path))
            return None

    def write(self, instant: datetime | None = None) -> bool:
        """Overwrite the watermark with `instant` (default: now).

        Returns:
            bool: True if the watermark was persisted, False if the write failed
        """
        stamp = as_utc(instant) if instant is not None else utcnow()
        try:
            self.context_root.mkdir(parents=True, exist_ok=True)
            self.path.write_text(stamp.isoformat(), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not save last-run timestamp to %s: %s", self.path, e)
            return False
        return True
