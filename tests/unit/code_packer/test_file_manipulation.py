from __future__ import annotations

import os
from pathlib import Path
from typing import TYPE_CHECKING

import pytest

from code_packer.config import PatternSet
from code_packer.exceptions import FileReadError, OutputWriteFailedError
from code_packer.file_manipulation import (
    collect,
    delete_if_exists,
    now_iso,
    read_file_text,
    relpath,
    walk_files,
    write_all,
)

if TYPE_CHECKING:
    from pytest_mock import MockerFixture


def make_tree(root: Path) -> None:
    (root / "b").mkdir()
    (root / "a").mkdir()
    (root / ".git").mkdir()
    (root / ".vscode").mkdir()
    (root / "z.txt").write_text("z", encoding="utf-8")
    (root / "c.txt").write_text("c", encoding="utf-8")
    (root / "a" / "2.txt").write_text("2", encoding="utf-8")
    (root / "a" / "1.txt").write_text("1", encoding="utf-8")
    (root / "b" / "x.txt").write_text("x", encoding="utf-8")
    (root / ".git" / "HEAD").write_text("ref: refs/heads/main\n", encoding="utf-8")
    (root / ".vscode" / "code-packer.json").write_text("{}", encoding="utf-8")


@pytest.mark.unit
def test_relpath_uses_forward_slashes(tmp_path: Path) -> None:
    assert relpath(tmp_path / "a" / "b.txt", tmp_path) == "a/b.txt"


@pytest.mark.unit
def test_relpath_outside_root_returns_path(tmp_path: Path) -> None:
    other = Path("/elsewhere/file.txt")

    assert relpath(other, tmp_path) == str(other)


@pytest.mark.unit
def test_now_iso_is_utc_with_milliseconds() -> None:
    stamp = now_iso()

    assert stamp.endswith("Z")
    assert len(stamp.split(".")[-1]) == 4  # "123Z"


@pytest.mark.unit
def test_walk_files_lists_files_before_subdirectories_in_sorted_order(tmp_path: Path) -> None:
    make_tree(tmp_path)

    rels = [relpath(p, tmp_path) for p in walk_files(tmp_path)]

    assert rels == ["c.txt", "z.txt", "a/1.txt", "a/2.txt", "b/x.txt"]


@pytest.mark.unit
def test_walk_files_skips_output_file(tmp_path: Path) -> None:
    make_tree(tmp_path)
    output = tmp_path / "z.txt"

    rels = [relpath(p, tmp_path) for p in walk_files(tmp_path, skip=output)]

    assert "z.txt" not in rels


@pytest.mark.unit
def test_collect_applies_patterns(tmp_path: Path) -> None:
    make_tree(tmp_path)
    patterns = PatternSet(exclusion_patterns=("b",), inclusion_patterns=("*.txt",))

    entries = list(collect(tmp_path, patterns))

    assert [e.rel for e in entries] == ["c.txt", "z.txt", "a/1.txt", "a/2.txt"]
    assert all(e.path.is_absolute() for e in entries)


@pytest.mark.unit
def test_read_file_text_rejects_invalid_utf8(tmp_path: Path) -> None:
    bad = tmp_path / "bad.bin"
    bad.write_bytes(b"\xff\xfe\xfa")

    with pytest.raises(FileReadError) as exc_info:
        read_file_text(bad)
    assert exc_info.value.path == bad


@pytest.mark.unit
def test_read_file_text_missing_file(tmp_path: Path) -> None:
    with pytest.raises(FileReadError):
        read_file_text(tmp_path / "missing.txt")


@pytest.mark.unit
def test_delete_if_exists(tmp_path: Path) -> None:
    target = tmp_path / "out.txt"
    target.write_text("old", encoding="utf-8")

    assert delete_if_exists(target) is True
    assert not target.exists()
    assert delete_if_exists(target) is False


@pytest.mark.unit
def test_delete_if_exists_failure_raises(tmp_path: Path, mocker: MockerFixture) -> None:
    target = tmp_path / "out.txt"
    mocker.patch.object(Path, "unlink", side_effect=PermissionError("denied"))

    with pytest.raises(OutputWriteFailedError, match="Failed to delete existing output file"):
        delete_if_exists(target)


@pytest.mark.unit
def test_write_all_creates_parents(tmp_path: Path) -> None:
    target = tmp_path / "nested" / "dir" / "out.txt"

    write_all(target, "line\n")

    assert target.read_text(encoding="utf-8") == "line\n"


@pytest.mark.unit
def test_write_all_failure_raises(tmp_path: Path) -> None:
    blocker = tmp_path / "file"
    blocker.write_text("x", encoding="utf-8")

    with pytest.raises(OutputWriteFailedError):
        write_all(blocker / "out.txt", "data")


def deny_listing(mocker: MockerFixture, name: str) -> None:
    real_scandir = os.scandir

    def fake_scandir(path: str | os.PathLike[str] = ".") -> object:
        if Path(path).name == name:
            raise PermissionError(13, "Permission denied", os.fspath(path))
        return real_scandir(path)

    mocker.patch("os.scandir", side_effect=fake_scandir)


@pytest.mark.unit
def test_walk_files_reports_unlistable_directory(tmp_path: Path, mocker: MockerFixture) -> None:
    make_tree(tmp_path)
    deny_listing(mocker, "a")
    errors: list[OSError] = []

    rels = [relpath(p, tmp_path) for p in walk_files(tmp_path, on_error=errors.append)]

    assert rels == ["c.txt", "z.txt", "b/x.txt"]
    assert len(errors) == 1
    assert Path(errors[0].filename).name == "a"


@pytest.mark.unit
def test_collect_reports_unlistable_directory_unless_excluded(tmp_path: Path, mocker: MockerFixture) -> None:
    make_tree(tmp_path)
    deny_listing(mocker, "a")
    reported: list[str] = []

    def record(rel: str, _error: OSError) -> None:
        reported.append(rel)

    list(collect(tmp_path, PatternSet(), on_unreadable_dir=record))
    list(collect(tmp_path, PatternSet(exclusion_patterns=("a",)), on_unreadable_dir=record))

    assert reported == ["a"]


@pytest.mark.unit
def test_walk_files_does_not_follow_symlink_cycles(tmp_path: Path) -> None:
    (tmp_path / "sub").mkdir()
    (tmp_path / "a.txt").write_text("a", encoding="utf-8")
    (tmp_path / "sub" / "b.txt").write_text("b", encoding="utf-8")
    try:
        (tmp_path / "sub" / "loop").symlink_to(tmp_path, target_is_directory=True)
        (tmp_path / "link.txt").symlink_to(tmp_path / "a.txt")
    except (OSError, NotImplementedError):
        pytest.skip("symlinks are not supported on this platform")

    rels = [relpath(p, tmp_path) for p in walk_files(tmp_path)]

    assert rels == ["a.txt", "link.txt", "sub/b.txt"]
