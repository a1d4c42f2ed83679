"""Shared test fixtures: an in-memory repository double and a temporary git repository."""

from __future__ import annotations

import shutil
import subprocess
from pathlib import Path

import pytest

from code_packer.config import ChangeRecord, ObjectInfo
from code_packer.exceptions import GitCommandError


class FakeRepository:
    """In-memory VersionControl: contents keyed by (ref, path), diffs keyed by path."""

    def __init__(
        self,
        changes: list[ChangeRecord] | None = None,
        files: dict[tuple[str, str], str] | None = None,
        diffs: dict[str, str] | None = None,
        sizes: dict[str, int] | None = None,
        broken: set[str] | None = None,
    ) -> None:
        self.changes = changes or []
        self.files = files or {}
        self.diffs = diffs or {}
        self.sizes = sizes or {}
        self.broken = broken or set()
        self.calls: list[tuple[str, ...]] = []

    def list_branches(self) -> list[str]:
        return ["main", "feature"]

    def diff_between(self, base: str, head: str) -> list[ChangeRecord]:
        self.calls.append(("diff_between", base, head))
        return list(self.changes)

    def show(self, ref: str, path: str) -> str:
        self.calls.append(("show", ref, path))
        if path in self.broken:
            raise GitCommandError(command=f"git show {ref}:{path}", returncode=128, message=f"cannot show {path}")
        return self.files[(ref, path)]

    def diff_file(self, base_ref: str, base_path: str, head_ref: str, head_path: str) -> str:
        self.calls.append(("diff_file", base_ref, base_path, head_ref, head_path))
        if head_path in self.broken:
            raise GitCommandError(command="git diff", returncode=128, message=f"cannot diff {head_path}")
        return self.diffs.get(head_path, "")

    def object_info(self, ref: str, path: str) -> ObjectInfo:
        self.calls.append(("object_info", ref, path))
        content = self.files.get((ref, path), "")
        size = self.sizes.get(path, len(content.encode("utf-8")))
        return ObjectInfo(size=size, is_binary="\0" in content)


@pytest.fixture
def fake_repo_factory() -> type[FakeRepository]:
    return FakeRepository


def git(repo: Path, *args: str) -> str:
    """Run git in `repo` with a fixed identity and return stdout."""
    result = subprocess.run(
        ["git", "-c", "user.name=Test", "-c", "user.email=test@test.com", "-c", "commit.gpgsign=false", *args],
        cwd=repo,
        capture_output=True,
        text=True,
        check=True,
    )
    return result.stdout


@pytest.fixture
def tmp_git_repo(tmp_path: Path) -> Path:
    """Create a repository with a `main` branch and a `feature` branch that changes it.

    On `feature`: src/app.py modified, src/new.py added, README.md deleted,
    old_name.txt renamed to new_name.txt, logo.bin (binary) modified,
    .gitignore modified.
    """
    if shutil.which("git") is None:
        pytest.skip("git is not installed")
    repo = tmp_path / "repo"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "checkout", "-q", "-b", "main")

    (repo / "src").mkdir()
    (repo / "src" / "app.py").write_text("print('a')\nx = 1\n", encoding="utf-8")
    (repo / "README.md").write_text("# Demo\nSome text\nMore text\n", encoding="utf-8")
    (repo / "old_name.txt").write_text("unchanged content\nsecond line\n", encoding="utf-8")
    (repo / "logo.bin").write_bytes(b"\x89PNG\x00\x01\x02")
    (repo / ".gitignore").write_text("*.pyc\n", encoding="utf-8")
    git(repo, "add", "-A")
    git(repo, "commit", "-q", "-m", "init")

    git(repo, "checkout", "-q", "-b", "feature")
    (repo / "src" / "app.py").write_text("print('b')\nx = 1\n", encoding="utf-8")
    (repo / "src" / "new.py").write_text("def f():\n    return 1\n", encoding="utf-8")
    (repo / "logo.bin").write_bytes(b"\x89PNG\x00\x03\x04\x05")
    (repo / ".gitignore").write_text("*.pyc\n*.log\n", encoding="utf-8")
    git(repo, "rm", "-q", "README.md")
    git(repo, "mv", "old_name.txt", "new_name.txt")
    git(repo, "add", "-A")
    git(repo, "commit", "-q", "-m", "feature work")
    git(repo, "checkout", "-q", "main")
    return repo
