from __future__ import annotations

from typing import TYPE_CHECKING

import pytest

from context_snapshot.exceptions import GitCommandError

if TYPE_CHECKING:
    from collections.abc import Mapping, Sequence
    from pathlib import Path

NOT_A_REPO = "fatal: not a git repository (or any of the parent directories): .git"


class FakeGitRunner:
    """In-memory git: answers from canned responses keyed by argument prefix.

    A response is either stdout text or an exception to raise. Commands with no
    matching prefix fail like git does outside a repository.
    """

    def __init__(self, responses: Mapping[tuple[str, ...], str | Exception] | None = None) -> None:
        self.responses = dict(responses or {})
        self.calls: list[tuple[str, ...]] = []

    def __call__(self, args: Sequence[str], cwd: Path) -> str:
        key = tuple(args)
        self.calls.append(key)
        for prefix, response in self.responses.items():
            if key[: len(prefix)] == prefix:
                if isinstance(response, Exception):
                    raise response
                return response
        raise GitCommandError(command="git " + " ".join(key), returncode=128, stderr=NOT_A_REPO)


@pytest.fixture
def fake_git() -> type[FakeGitRunner]:
    return FakeGitRunner


@pytest.fixture
def repo_git(fake_git: type[FakeGitRunner]):
    """Build a runner for a working tree, with extra responses layered on top.

    Listing commands answer NUL-separated text, as they do under `-z`.
    """

    def build(**responses: str | Exception) -> FakeGitRunner:
        table: dict[tuple[str, ...], str | Exception] = {("rev-parse", "--is-inside-work-tree"): "true\n"}
        table[("rev-parse", "--verify")] = responses.pop("commit", "c0ffee\n")
        table[("merge-base",)] = responses.pop(
            "merge_base",
            GitCommandError(command="git merge-base", returncode=1),
        )
        table[("diff",)] = responses.pop("diff", "")
        table[("ls-files",)] = responses.pop("untracked", "")
        table[("log",)] = responses.pop("log", "")
        return fake_git(table)

    return build
