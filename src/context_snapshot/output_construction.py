from __future__ import annotations

import io
import json
from typing import TYPE_CHECKING

from context_snapshot.file_manipulation import build_tree_lines, file_to_text, now_iso, order_recs

if TYPE_CHECKING:
    from collections.abc import Iterator, Sequence
    from pathlib import Path

    from context_snapshot.change_set import FilterReport
    from context_snapshot.config import FileRecord
    from context_snapshot.settings import Settings


def build_markdown(
    repo: Path,
    recs: Sequence[FileRecord],
    *,
    settings: Settings,
    report: FilterReport | None = None,
) -> str:
    """Build the Markdown bundle: a header, the file tree, then one fenced section per file.

    Args:
        repo (Path): the repository root
        recs (Sequence[FileRecord]): the files to include
        settings (Settings): rendering options (truncation, ordering, compact mode)
        report (FilterReport | None): change filter applied to `recs`, recorded in the header

    Returns:
        str: the Markdown document
    """
    out = io.StringIO()
    out.write("# Code Context\n")
    out.write(f"root={repo}\n")
    out.write(f"generated_at={now_iso()}\n")
    if report is not None:
        out.write(f"filter={report.summary()}\n")
    out.write(f"files={len(recs)}\n\n")

    out.write("## Structure\n")
    out.write("```text\n")
    out.write("\n".join(build_tree_lines(repo.name, [r.rel for r in recs])))
    out.write("\n```\n\n")

    separator = "" if settings.compact else "\n"
    for rec in order_recs(recs, tests_first=settings.tests_first, key_first=not settings.no_key_first):
        body, _is_text = file_to_text(
            rec,
            text_head_lines=settings.text_head_lines,
            text_tail_lines=settings.text_tail_lines,
        )
        out.write(f"## {rec.rel}\n")
        out.write(f"```{rec.language or 'text'}\n{body}\n```\n{separator}")

    return out.getvalue().rstrip() + "\n"


def chunk_content(text: str, chunk_chars: int) -> Iterator[tuple[int, int, str]]:
    """Split text on line boundaries into chunks of at most `chunk_chars` characters.

    A single line longer than `chunk_chars` is kept whole.

    Yields:
        tuple[int, int, str]: first line number, last line number, chunk text
    """
    if not text:
        yield (0, 0, "")
        return
    buf: list[str] = []
    cur = 0
    start_line = 1
    for i, ln in enumerate(text.splitlines(), start=1):
        ln2 = ln + "\n"
        if cur + len(ln2) > chunk_chars and buf:
            yield (start_line, i - 1, "".join(buf))
            buf, cur, start_line = [], 0, i
        buf.append(ln2)
        cur += len(ln2)
    if buf:
        yield (start_line, start_line + len(buf) - 1, "".join(buf))


def build_jsonl(
    repo: Path,
    recs: Sequence[FileRecord],
    *,
    settings: Settings,
) -> str:
    """Build the JSONL bundle, one object per chunk of each file."""
    buf = io.StringIO()
    for rec in recs:
        text, is_text = file_to_text(
            rec,
            text_head_lines=settings.text_head_lines,
            text_tail_lines=settings.text_tail_lines,
        )
        if not is_text and not settings.include_binary_meta:
            continue
        for start, end, chunk in chunk_content(text, chunk_chars=settings.chunk_chars):
            item = {
                "repo_root": str(repo),
                "path": rec.rel,
                "language": rec.language,
                "size": rec.size,
                "mtime": rec.mtime,
                "sha256": rec.sha256,
                "start_line": start,
                "end_line": end,
                "text": chunk,
            }
            buf.write(json.dumps(item, ensure_ascii=False) + "\n")
    return buf.getvalue()
