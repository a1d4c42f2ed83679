from __future__ import annotations

import os
import stat
from datetime import UTC, datetime
from pathlib import Path
from typing import TYPE_CHECKING

from code_packer.config import HOUSEKEEPING_DIRS, FileEntry
from code_packer.exceptions import FileReadError, OutputWriteFailedError
from code_packer.logging import logger
from code_packer.patterns import is_excluded, should_include

if TYPE_CHECKING:
    from collections.abc import Callable, Iterator

    from code_packer.config import PatternSet

    DirErrorFn = Callable[[OSError], None]
    UnreadableDirFn = Callable[[str, OSError], None]


def relpath(path: Path, root: Path) -> str:
    """Send the relative path of path from root.

    Args:
        path (Path): the path to "relativise"
        root (Path): the root to relativise from

    Returns:
        str: the relative path from root to path, with POSIX separators.
            If path is not under root, returns the original path as a string.
    """
    try:
        return str(path.relative_to(root)).replace("\\", "/")
    except ValueError:
        return str(path)


def is_regular_file(path: Path) -> bool:
    """Check if a file is regular.

    Args:
        path (Path): path to test.

    Returns:
        bool: True if the file is regular, False otherwise.
    """
    try:
        st = path.stat()
        return stat.S_ISREG(st.st_mode)
    except OSError:
        return False


def now_iso() -> str:
    """Return the current UTC date and time in ISO 8601 format.

    Returns:
        str: e.g. ``2024-05-01T10:20:30.123Z``
    """
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def walk_files(
    root: Path,
    *,
    skip: Path | None = None,
    on_error: DirErrorFn | None = None,
) -> Iterator[Path]:
    """Walk the directory tree rooted at `root` and yield its regular files.

    Housekeeping directories (``.git`` and the editor metadata directory) are pruned.
    Within every directory files come first, sorted by name, then sub-directories,
    also sorted by name, so the order never depends on the filesystem.
    Symlinked directories are not followed, so a link cycle cannot loop the walk.
    A directory that cannot be listed is logged, passed to `on_error`, and skipped.

    Args:
        root (Path): the root directory to walk
        skip (Path | None): a file to leave out, typically the output file
        on_error (DirErrorFn | None): receives the error of each unreadable directory

    Yields:
        Path: absolute path of each file found
    """
    skip_resolved = skip.resolve() if skip is not None else None

    def _onerror(error: OSError) -> None:
        logger.warning("Cannot list directory %s: %s", error.filename, error)
        if on_error is not None:
            on_error(error)

    for current, dirs, files in os.walk(root, onerror=_onerror):
        dirs[:] = sorted(d for d in dirs if d not in HOUSEKEEPING_DIRS)
        for f in sorted(files):
            p = Path(current) / f
            if skip_resolved is not None and p.resolve() == skip_resolved:
                logger.debug("Skipping output file %s", p)
                continue
            if is_regular_file(p):
                yield p


def collect(
    source_directory: Path,
    patterns: PatternSet,
    *,
    output_file: Path | None = None,
    on_unreadable_dir: UnreadableDirFn | None = None,
) -> Iterator[FileEntry]:
    """Enumerate the files under `source_directory` that survive `patterns`.

    Args:
        source_directory (Path): the directory to scan
        patterns (PatternSet): exclusion/inclusion globs applied to relative paths
        output_file (Path | None): the run's own output, never collected
        on_unreadable_dir (UnreadableDirFn | None): receives the relative path and
            error of each directory that cannot be listed and is not excluded

    Yields:
        FileEntry: each surviving file, in the deterministic order of `walk_files`
    """
    root = source_directory.resolve()

    def _dir_error(error: OSError) -> None:
        rel = relpath(Path(error.filename), root) if error.filename else "."
        if on_unreadable_dir is not None and not is_excluded(rel, patterns):
            on_unreadable_dir(rel, error)

    for p in walk_files(root, skip=output_file, on_error=_dir_error):
        rel = relpath(p, root)
        if should_include(rel, patterns):
            logger.debug("Including file %s", rel)
            yield FileEntry(path=p, rel=rel)


def read_file_text(path: Path) -> str:
    """Read a whole file as UTF-8 text.

    Args:
        path (Path): the file to read

    Raises:
        FileReadError: if the file cannot be opened or is not valid UTF-8

    Returns:
        str: the file content
    """
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        raise FileReadError(path=path, message=f"Failed to read file {path}: {e}") from e


def delete_if_exists(path: Path) -> bool:
    """Delete `path` if it exists.

    Raises:
        OutputWriteFailedError: if the file exists but cannot be removed

    Returns:
        bool: True if a file was removed
    """
    try:
        path.unlink()
    except FileNotFoundError:
        return False
    except OSError as e:
        raise OutputWriteFailedError(
            path=path,
            message=f"Failed to delete existing output file: {path} ({e})",
        ) from e
    logger.debug("Existing output file deleted: %s", path)
    return True


def write_all(path: Path, text: str) -> Path:
    """Write `text` to `path` in one go, creating parent directories.

    Raises:
        OutputWriteFailedError: if the file cannot be written

    Returns:
        Path: the written path
    """
    try:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(text, encoding="utf-8", newline="\n")
    except OSError as e:
        raise OutputWriteFailedError(path=path, message=f"Failed to write output file: {path} ({e})") from e
    return path
