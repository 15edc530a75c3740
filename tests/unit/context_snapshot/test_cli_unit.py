from __future__ import annotations

import json
import os
import time
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from context_snapshot import __version__, cli
from context_snapshot.settings import Settings
from context_snapshot.watermark import WatermarkStore

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


def _write(path: Path, text: str, *, age: float = 3600.0) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")
    ts = time.time() - age
    os.utime(path, (ts, ts))
    return path


@pytest.fixture
def no_git(mocker: MockerFixture, fake_git):
    """Make every git query fail, as outside a repository."""
    return mocker.patch.object(cli, "SubprocessGitRunner", return_value=fake_git())


@pytest.mark.unit
def test_parse_args_parses_scope_limits_and_change_flags() -> None:
    settings = cli.parse_args(
        ["--src-only", "--max-bytes", "1234", "--drop", "tests,docs", "--since", "2h", "--git-diff", "main", "--changed"],
    )

    assert settings.src_only is True
    assert settings.max_bytes == 1234  # noqa: PLR2004
    assert settings.drop == "tests,docs"
    assert settings.output is None
    assert settings.since == "2h"
    assert settings.git_diff == "main"
    assert settings.changed is True


@pytest.mark.unit
def test_parse_args_version_flag(capsys: pytest.CaptureFixture[str]) -> None:
    with pytest.raises(SystemExit) as exc_info:
        cli.parse_args(["--version"])

    assert exc_info.value.code == 0
    assert __version__ in capsys.readouterr().out


@pytest.mark.unit
def test_select_scope_default_keeps_src_and_key_files(tmp_path: Path) -> None:
    src_file = _write(tmp_path / "src" / "main.py", "print('ok')")
    key_file = _write(tmp_path / "pyproject.toml", "[project]\nname='x'\n")
    test_file = _write(tmp_path / "tests" / "test_main.py", "def test_ok():\n    pass\n")

    selected = cli.select_scope([src_file, key_file, test_file], tmp_path, Settings())

    assert selected == [key_file, src_file]


@pytest.mark.unit
def test_select_scope_tests_only_without_key_files(tmp_path: Path) -> None:
    test_file = _write(tmp_path / "tests" / "test_app.py", "def test_ok():\n    pass\n")
    key_file = _write(tmp_path / "pyproject.toml", "[project]\nname='x'\n")

    settings = Settings(tests_only=True, no_key_first=True)

    assert cli.select_scope([test_file, key_file], tmp_path, settings) == [test_file]


@pytest.mark.unit
def test_resolve_output_defaults_to_context_dir(tmp_path: Path) -> None:
    settings = Settings(repo=tmp_path, format="jsonl")

    assert cli.resolve_output(settings) == (tmp_path.resolve() / ".aicontext" / "code" / "context.jsonl", "jsonl")
    assert cli.resolve_output(Settings(output=Path("out.jsonl"))) == (Path("out.jsonl"), "jsonl")
    assert cli.resolve_output(Settings(output=Path("out.txt"))) == (Path("out.txt"), "md")


@pytest.mark.unit
def test_main_uses_walk_fallback_and_jsonl_suffix(tmp_path: Path, mocker: MockerFixture, no_git) -> None:
    file_path = _write(tmp_path / "src" / "app.py", "print('hi')\n")
    output = tmp_path / "out.jsonl"

    mocker.patch.object(cli, "git_ls_files", side_effect=OSError("git failed"))
    mocker.patch.object(cli, "walk_files", return_value=[file_path])

    assert cli.main(["--repo", str(tmp_path), "--output", str(output), "--all"]) == 0

    first = json.loads(output.read_text(encoding="utf-8").splitlines()[0])
    assert first["path"] == "src/app.py"


@pytest.mark.unit
def test_main_no_git_writes_default_markdown_and_watermark(
    tmp_path: Path,
    mocker: MockerFixture,
    no_git,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _write(tmp_path / "src" / "app.py", "print('hello')\n")
    git_mock = mocker.patch.object(cli, "git_ls_files")

    assert cli.main(["--repo", str(tmp_path), "--all", "--no-git"]) == 0

    git_mock.assert_not_called()
    output = tmp_path / ".aicontext" / "code" / "context.md"
    content = output.read_text(encoding="utf-8")
    assert "# Code Context" in content
    assert "src/app.py" in content
    assert WatermarkStore(tmp_path / ".aicontext").read() is not None
    assert ".aicontext/" in (tmp_path / ".gitignore").read_text(encoding="utf-8")
    # src/app.py and the freshly created .gitignore
    assert f"Wrote {output} format=md files=2" in capsys.readouterr().out


@pytest.mark.unit
def test_main_changed_first_run_then_incremental(
    tmp_path: Path,
    no_git,
    capsys: pytest.CaptureFixture[str],
) -> None:
    stale = _write(tmp_path / "src" / "stale.py", "STALE = 1\n")
    edited = _write(tmp_path / "src" / "edited.py", "EDITED = 1\n")
    output = tmp_path / "out.md"
    argv = ["--repo", str(tmp_path), "--output", str(output), "--all", "--no-git", "--no-gitignore", "--changed"]

    assert cli.main(argv) == 0
    assert "Filter: first run - all files included: 2 of 2 files" in capsys.readouterr().out
    assert not (tmp_path / ".gitignore").exists()

    ts = time.time() + 60
    os.utime(edited, (ts, ts))
    assert cli.main(argv) == 0

    out = capsys.readouterr().out
    assert "files=1" in out
    assert "1 of 2 files" in out
    content = output.read_text(encoding="utf-8")
    assert "EDITED = 1" in content
    assert "STALE = 1" not in content
    assert stale.exists()


@pytest.mark.unit
def test_main_git_diff_outside_repository_prints_warning(
    tmp_path: Path,
    no_git,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _write(tmp_path / "src" / "app.py", "print('hello')\n")
    output = tmp_path / "out.md"

    argv = ["--repo", str(tmp_path), "--output", str(output), "--all", "--no-git", "--no-gitignore", "--git-diff", "main"]

    assert cli.main(argv) == 0

    out = capsys.readouterr().out
    assert "Filter: changed vs main: 1 of 1 files" in out
    assert "Warning: Not a git repository: --git-diff main ignored." in out


@pytest.mark.unit
def test_main_snap_writes_timestamped_copy(
    tmp_path: Path,
    no_git,
    capsys: pytest.CaptureFixture[str],
) -> None:
    _write(tmp_path / "src" / "app.py", "print('hello')\n")

    assert cli.main(["--repo", str(tmp_path), "--all", "--no-git", "--no-gitignore", "--snap"]) == 0
    assert cli.main(["--repo", str(tmp_path), "--all", "--no-git", "--no-gitignore", "-s"]) == 0

    snapshots = sorted((tmp_path / ".aicontext" / "snapshots").glob("context-*.md"))
    current = (tmp_path / ".aicontext" / "code" / "context.md").read_text(encoding="utf-8")
    assert len(snapshots) == 2  # noqa: PLR2004
    assert current in {snap.read_text(encoding="utf-8") for snap in snapshots}
    assert "src/app.py" in current
    assert f"Snapshot {snapshots[0]}" in capsys.readouterr().out


@pytest.mark.unit
def test_main_clear_keeps_snapshots_unless_asked(tmp_path: Path, no_git) -> None:
    _write(tmp_path / "src" / "app.py", "print('hello')\n")
    root = tmp_path / ".aicontext"
    assert cli.main(["--repo", str(tmp_path), "--all", "--no-git", "--no-gitignore", "--snap"]) == 0

    assert cli.main(["--repo", str(tmp_path), "--clear"]) == 0
    assert not (root / "code" / "context.md").exists()
    assert len(list((root / "snapshots").iterdir())) == 1

    assert cli.main(["--repo", str(tmp_path), "--clear", "--snap"]) == 0
    assert list((root / "snapshots").iterdir()) == []

    assert cli.main(["--repo", str(tmp_path), "--clear-all"]) == 0
    assert not root.exists()


@pytest.mark.unit
def test_parse_args_clear_flags_are_exclusive() -> None:
    with pytest.raises(SystemExit):
        cli.parse_args(["--clear", "--clear-all"])
