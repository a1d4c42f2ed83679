"""Version-control capability used by the diff exporter, and its git implementation."""

from __future__ import annotations

import subprocess  # noqa: S404
from pathlib import Path
from typing import TYPE_CHECKING, Protocol

from code_packer.config import ChangeKind, ChangeRecord, ObjectInfo
from code_packer.diffstat import classify
from code_packer.exceptions import GitCommandError, NoRepositoryFoundError
from code_packer.logging import logger

if TYPE_CHECKING:
    from collections.abc import Sequence

# git itself sniffs this many leading bytes for a NUL to call a blob binary.
BINARY_SNIFF_BYTES = 8000


class VersionControl(Protocol):
    """What the diff exporter needs from a version-control system."""

    def list_branches(self) -> list[str]:
        """Return branch names, local first, then remote ones."""
        ...

    def diff_between(self, base: str, head: str) -> list[ChangeRecord]:
        """Return the changes needed to go from `base` to `head`."""
        ...

    def show(self, ref: str, path: str) -> str:
        """Return the content of `path` at `ref`."""
        ...

    def diff_file(self, base_ref: str, base_path: str, head_ref: str, head_path: str) -> str:
        """Return the unified diff of one file between two refs."""
        ...

    def object_info(self, ref: str, path: str) -> ObjectInfo:
        """Return size and binary classification of `path` at `ref`."""
        ...


def run_git(args: Sequence[str], cwd: Path) -> subprocess.CompletedProcess[str]:
    """Run a git command and return the completed process.

    Output is decoded as UTF-8, undecodable bytes replaced.

    Args:
        args (Sequence[str]): arguments after ``git``
        cwd (Path): working directory

    Raises:
        GitCommandError: if git is missing or exits with a non-zero status

    Returns:
        subprocess.CompletedProcess[str]: the finished process
    """
    command = ["git", *args]
    try:
        result = subprocess.run(  # noqa: S603
            command,
            cwd=str(cwd),
            capture_output=True,
            check=False,
            text=True,
            encoding="utf-8",
            errors="replace",
        )
    except FileNotFoundError as e:
        raise GitCommandError(
            command=" ".join(command),
            returncode=-1,
            message="git is not installed or not on PATH",
        ) from e

    if result.returncode != 0:
        raise GitCommandError(
            command=" ".join(command),
            returncode=result.returncode,
            stdout=result.stdout,
            stderr=result.stderr,
            message=f"git {' '.join(args)} failed: {result.stderr.strip() or result.returncode}",
        )
    return result


def parse_name_status(output: str) -> list[ChangeRecord]:
    """Parse ``git diff --name-status -z`` output into change records.

    Renames and copies carry two paths (old, then new); every other status one.

    Args:
        output (str): NUL-separated name-status output

    Returns:
        list[ChangeRecord]: the changes, in git's order
    """
    fields = output.rstrip("\0").split("\0")
    changes: list[ChangeRecord] = []
    i = 0
    while i < len(fields):
        code = fields[i].strip()
        i += 1
        if not code:
            continue
        kind = classify(code)
        if code[:1] in {"R", "C"}:
            if i + 1 >= len(fields):
                break
            old, new = fields[i], fields[i + 1]
            i += 2
            if kind == ChangeKind.RENAMED:
                changes.append(ChangeRecord(rel=new, kind=kind, original_path=old, status_code=code))
            else:
                changes.append(ChangeRecord(rel=new, kind=kind, status_code=code))
            continue
        if i >= len(fields):
            break
        changes.append(ChangeRecord(rel=fields[i], kind=kind, status_code=code))
        i += 1
    return changes


class GitRepository:
    """VersionControl implementation that shells out to the ``git`` binary."""

    def __init__(self, root: Path) -> None:
        self.root = root

    def __repr__(self) -> str:
        return f"GitRepository(root={self.root!r})"

    def list_branches(self) -> list[str]:
        out = run_git(
            ["branch", "--all", "--format=%(refname:short)"],
            cwd=self.root,
        ).stdout
        names = [ln.strip() for ln in out.splitlines() if ln.strip()]
        return [n for n in names if not n.endswith("/HEAD") and n != "HEAD" and not n.startswith("(")]

    def diff_between(self, base: str, head: str) -> list[ChangeRecord]:
        out = run_git(
            ["diff", "--name-status", "-M", "-z", "--no-color", base, head, "--"],
            cwd=self.root,
        ).stdout
        return parse_name_status(out)

    def show(self, ref: str, path: str) -> str:
        return run_git(["show", f"{ref}:{path}"], cwd=self.root).stdout

    def diff_file(self, base_ref: str, base_path: str, head_ref: str, head_path: str) -> str:
        if base_path == head_path:
            args = ["diff", "--no-color", "--no-ext-diff", base_ref, head_ref, "--", head_path]
        else:
            args = ["diff", "--no-color", "--no-ext-diff", f"{base_ref}:{base_path}", f"{head_ref}:{head_path}"]
        return run_git(args, cwd=self.root).stdout

    def object_info(self, ref: str, path: str) -> ObjectInfo:
        spec = f"{ref}:{path}"
        size = int(run_git(["cat-file", "-s", spec], cwd=self.root).stdout.strip())
        head = self._read_blob_head(spec) if size else b""
        return ObjectInfo(size=size, is_binary=b"\0" in head)

    def _read_blob_head(self, spec: str) -> bytes:
        # Only the leading bytes are read; the rest of a large blob never leaves git.
        with subprocess.Popen(  # noqa: S603
            ["git", "cat-file", "blob", spec],  # noqa: S607
            cwd=str(self.root),
            stdout=subprocess.PIPE,
            stderr=subprocess.DEVNULL,
        ) as proc:
            if proc.stdout is None:
                proc.kill()
                raise GitCommandError(command=f"git cat-file blob {spec}", message=f"No output stream for {spec}")
            head = proc.stdout.read(BINARY_SNIFF_BYTES)
            proc.kill()
        return head


def discover_repository(path: Path) -> GitRepository:
    """Find the git repository containing `path`.

    Args:
        path (Path): a directory inside the working tree

    Raises:
        NoRepositoryFoundError: if `path` is not inside a git working tree

    Returns:
        GitRepository: a repository rooted at the top-level directory
    """
    try:
        out = run_git(["rev-parse", "--show-toplevel"], cwd=path).stdout
    except (GitCommandError, NotADirectoryError, FileNotFoundError) as e:
        logger.warning("No git repository at %s: %s", path, e)
        raise NoRepositoryFoundError(folder=path) from e
    root = Path(out.strip())
    logger.debug("Using git repository at %s", root)
    return GitRepository(root)
