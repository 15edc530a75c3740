from __future__ import annotations

import fnmatch
import hashlib
import os
import stat
import subprocess  # noqa: S404
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml

from context_snapshot.config import DEFAULT_EXCLUDES, KEY_FILES_PRIORITY, FileRecord
from context_snapshot.exceptions import NotAGitRepositoryError
from context_snapshot.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

_SHA_SIZE_LIMIT = 50_000_000


def relpath(path: Path, root: Path) -> str:
    """Return `path` relative to `root` with POSIX separators, or `path` itself if outside `root`."""
    try:
        return path.relative_to(root).as_posix()
    except ValueError:
        return str(path)


def is_regular_file(path: Path) -> bool:
    try:
        return stat.S_ISREG(path.stat().st_mode)
    except OSError:
        return False


def sniff_text_utf8(path: Path, nbytes: int = 4096) -> bool:
    """Check whether the first `nbytes` of a regular file decode as UTF-8."""
    if not is_regular_file(path):
        return False
    try:
        with path.open("rb") as f:
            f.read(nbytes).decode("utf-8")
    except (OSError, UnicodeDecodeError):
        return False
    return True


def sha256_file(path: Path) -> str:
    h = hashlib.sha256()
    with path.open("rb") as f:
        for blk in iter(lambda: f.read(1024 * 1024), b""):
            h.update(blk)
    return h.hexdigest()


def git_ls_files(repo: Path) -> list[Path]:
    """List the files git knows about under `repo`: tracked plus untracked, minus ignored.

    Args:
        repo (Path): the root of the git repository to query

    Raises:
        NotAGitRepositoryError: if `repo` has no `.git` entry.
        subprocess.CalledProcessError: if `git ls-files` fails.

    Returns:
        list[Path]: absolute, resolved paths of the listed files
    """
    if not (repo / ".git").exists():
        raise NotAGitRepositoryError(folder=repo)
    out = subprocess.run(
        ["git", "ls-files", "-z", "--cached", "--others", "--exclude-standard"],  # noqa: S607
        cwd=str(repo),
        text=True,
        capture_output=True,
        check=True,
    )
    return [(repo / name).resolve() for name in out.stdout.split("\0") if name]


def walk_files(repo: Path) -> list[Path]:
    """Walk `repo` and return every file, pruning `DEFAULT_EXCLUDES` directories."""
    results: list[Path] = []
    for root, dirs, files in os.walk(repo):
        dirs[:] = [d for d in dirs if d not in DEFAULT_EXCLUDES]
        for f in files:
            p = (Path(root) / f).resolve()
            if p.is_file():
                results.append(p)
    return results


def in_default_excludes(repo: Path, path: Path) -> bool:
    try:
        parts = path.relative_to(repo).parts
    except ValueError:
        return True
    return any(p in DEFAULT_EXCLUDES for p in parts)


def normalize_globs(globs: Sequence[str]) -> list[str]:
    """Strip blanks and convert backslashes to forward slashes."""
    return [g.strip().replace("\\", "/") for g in globs if g and g.strip()]


def match_any_glob(rel: str, globs: Sequence[str]) -> bool:
    return any(fnmatch.fnmatch(rel, g) for g in globs)


def apply_filters(
    files: Sequence[Path],
    repo: Path,
    includes: Sequence[str],
    excludes: Sequence[str],
    exclude_paths: Sequence[str],
) -> list[Path]:
    """Keep the regular files that pass the default excludes and the user's filters.

    Args:
        files (Sequence[Path]): candidate absolute paths
        repo (Path): root used to relativize paths before matching
        includes (Sequence[str]): a file must match one of these globs, when any are given
        excludes (Sequence[str]): files matching any of these globs are dropped
        exclude_paths (Sequence[str]): relative path prefixes to drop

    Returns:
        list[Path]: the kept files, sorted case-insensitively by relative path
    """
    inc = normalize_globs(includes)
    exc = normalize_globs(excludes)
    prefixes = [p.strip().strip("/").replace("\\", "/") for p in exclude_paths if p.strip()]

    out: set[Path] = set()
    for f in files:
        if not is_regular_file(f) or in_default_excludes(repo, f):
            continue
        r = relpath(f, repo)
        if any(r == ep or r.startswith(ep + "/") for ep in prefixes):
            continue
        if inc and not match_any_glob(r, inc):
            continue
        if exc and match_any_glob(r, exc):
            continue
        out.add(f)
    return sorted(out, key=lambda p: relpath(p, repo).lower())


def build_tree_lines(root_name: str, rel_paths: Sequence[str]) -> list[str]:
    """Render relative paths as an indented tree, directories before files."""
    tree: dict[str, Any] = {}
    for rp in sorted({p.strip("/").replace("\\", "/") for p in rel_paths if p.strip()}, key=str.lower):
        *parents, name = rp.split("/")
        cur = tree
        for part in parents:
            cur = cur.setdefault(part, {})
        cur.setdefault("__files__", set()).add(name)

    lines: list[str] = [root_name]

    def walk(node: dict[str, Any], prefix: str) -> None:
        dirs = sorted((k for k in node if k != "__files__"), key=str.lower)
        files = sorted(node.get("__files__", set()), key=str.lower)
        entries = [(d, node[d]) for d in dirs] + [(f, None) for f in files]
        for idx, (name, child) in enumerate(entries):
            last = idx == len(entries) - 1
            lines.append(prefix + ("└── " if last else "├── ") + name + ("/" if child is not None else ""))
            if child is not None:
                walk(child, prefix + ("    " if last else "│   "))

    walk(tree, "")
    return lines


def now_iso() -> str:
    return datetime.now(UTC).astimezone().isoformat(timespec="seconds")


def make_meta_string(rec: FileRecord) -> str:
    meta = f"size={rec.size} bytes"
    if rec.sha256:
        meta += f" sha256={rec.sha256}"
    return meta


def make_recs(
    files: Sequence[Path],
    repo: Path,
    max_bytes: int,
    *,
    no_sha: bool = True,
) -> list[FileRecord]:
    """Build a `FileRecord` for each file; files that cannot be stat'ed are skipped.

    Args:
        files (Sequence[Path]): absolute file paths
        repo (Path): root used for the `rel` field
        max_bytes (int): size above which contents get truncated in the bundle
        no_sha (bool, optional): skip SHA-256 digests. Defaults to True.

    Returns:
        list[FileRecord]: records sorted by relative path
    """
    recs: list[FileRecord] = []
    for f in files:
        try:
            st = f.stat()
            digest = "" if (no_sha or st.st_size > _SHA_SIZE_LIMIT) else sha256_file(f)
            recs.append(
                FileRecord(
                    path=f,
                    rel=relpath(f, repo),
                    size=st.st_size,
                    mtime=st.st_mtime,
                    sha256=digest,
                    is_text=sniff_text_utf8(f),
                    max_file_size=max_bytes,
                ),
            )
        except OSError as e:
            logger.warning("Skipping %s: %s", f, e)
    return sorted(recs, key=lambda r: r.rel.lower())


def read_text_lines(path: Path) -> list[str]:
    return path.read_text(encoding="utf-8", errors="ignore").splitlines()


def redact_env(path: Path) -> str:
    """List the variable names of a `.env` file, never the values."""
    keys: set[str] = set()
    for ln in read_text_lines(path):
        s = ln.strip()
        if not s or s.startswith("#") or "=" not in s:
            continue
        k = s.split("=", 1)[0].removeprefix("export ").strip()
        if k:
            keys.add(k)
    return "\n".join(sorted(keys, key=str.lower))


def summarize_precommit(path: Path) -> str:
    """Summarize pre-commit hooks as ``id (repo@rev)`` lines."""
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8", errors="ignore")) or {}
    except yaml.YAMLError as e:
        logger.warning("Failed to parse pre-commit config %s: %s", path, e)
        return path.read_text(encoding="utf-8", errors="ignore")
    repos = data.get("repos", []) if isinstance(data, dict) else []
    hooks: set[str] = set()
    for repo in repos if isinstance(repos, list) else []:
        if not isinstance(repo, dict):
            continue
        where = f"{repo.get('repo', 'unknown')}@{repo.get('rev', 'unknown')}"
        for hk in repo.get("hooks", []) or []:
            if isinstance(hk, dict):
                hooks.add(f"{hk.get('id', 'unknown')} ({where})")
    return "\n".join(sorted(hooks, key=str.lower))


def take_head_tail(lines: list[str], head: int, tail: int) -> str:
    """Keep the first `head` and last `tail` lines, joined by an ellipsis line."""
    head_n, tail_n = max(0, head), max(0, tail)
    if head_n == 0 and tail_n == 0:
        return ""
    if head_n + tail_n >= len(lines):
        return "\n".join(lines)
    kept = lines[:head_n] + ["…"] + (lines[-tail_n:] if tail_n else [])
    return "\n".join(kept)


def file_to_text(
    rec: FileRecord,
    *,
    text_head_lines: int,
    text_tail_lines: int,
) -> tuple[str, bool]:
    """Render a file for the bundle.

    Returns:
        tuple[str, bool]: the rendered body and whether it is text
    """
    p = rec.path
    name_low = p.name.lower()

    if name_low == ".env" or name_low.startswith(".env."):
        return redact_env(p), True
    if name_low in {".pre-commit-config.yaml", ".pre-commit-config.yml"}:
        return summarize_precommit(p), True
    if not rec.is_text:
        return make_meta_string(rec), False
    if rec.is_too_big:
        body = take_head_tail(read_text_lines(p), head=text_head_lines, tail=text_tail_lines)
        meta = make_meta_string(rec)
        return (f"{meta}\n{body}" if body else meta), True
    return p.read_text(encoding="utf-8", errors="ignore"), True


def order_recs(
    recs: Sequence[FileRecord],
    *,
    tests_first: bool,
    key_first: bool,
) -> list[FileRecord]:
    """Order records: key files first, then tests (when asked), then by relative path."""

    def key(rec: FileRecord) -> tuple[int, int, str]:
        r = rec.rel
        is_key = Path(r).name in KEY_FILES_PRIORITY
        key_bucket = 0 if (key_first and is_key) else 1
        test_bucket = 0 if (tests_first and r.startswith("tests/")) else 1
        return (key_bucket, test_bucket, r.lower())

    return sorted(recs, key=key)
