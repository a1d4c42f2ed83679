from __future__ import annotations

import io
from pathlib import Path
from typing import TYPE_CHECKING

from code_packer.config import FileFailure, PackResult
from code_packer.exceptions import CodePackerError, FileReadError, NoWorkspaceRootError
from code_packer.file_manipulation import collect, delete_if_exists, read_file_text, write_all
from code_packer.logging import logger
from code_packer.output_construction import build_pack_header, render_file_block

if TYPE_CHECKING:
    from collections.abc import Callable

    from code_packer.config import DirectoryJob

    WarningFn = Callable[[str], None]


def resolve_job_paths(job: DirectoryJob, workspace_root: Path | None) -> tuple[Path, Path]:
    """Resolve the source directory and output file of a job against the workspace.

    Raises:
        NoWorkspaceRootError: if the workspace or the source directory is not a directory

    Returns:
        tuple[Path, Path]: absolute source directory and absolute output file
    """
    if workspace_root is None or not workspace_root.is_dir():
        raise NoWorkspaceRootError(folder=workspace_root)
    root = workspace_root.resolve()
    source = (root / job.source_directory).resolve()
    if not source.is_dir():
        raise NoWorkspaceRootError(folder=source, message=f"Source directory not found: {source}")
    return source, (root / job.output_file).resolve()


def assemble_pack(
    job: DirectoryJob,
    *,
    workspace_root: Path | None,
    on_warning: WarningFn | None = None,
) -> PackResult:
    """Concatenate every file selected by `job` into one annotated text file.

    The previous output file is deleted first. The header is built before any file
    is read, so it never carries totals; included/excluded counts are logged and
    returned. A file or directory that cannot be read is counted as excluded, reported
    through `on_warning`, and skipped. The body is written in a single write at the end.

    Args:
        job (DirectoryJob): source directory, output file and patterns,
            both paths relative to `workspace_root` unless absolute
        workspace_root (Path | None): the workspace root
        on_warning (WarningFn | None): receives one message per unreadable file or directory

    Raises:
        NoWorkspaceRootError: if the workspace or source directory cannot be resolved
        OutputWriteFailedError: if the old output cannot be removed or the new one written

    Returns:
        PackResult: the written text, its path and the per-run counters
    """
    source_dir, output_path = resolve_job_paths(job, workspace_root)
    logger.debug(
        "Packing %s into %s (exclusions=%s inclusions=%s)",
        source_dir,
        output_path,
        list(job.patterns.exclusion_patterns),
        list(job.patterns.inclusion_patterns),
    )

    delete_if_exists(output_path)

    out = io.StringIO()
    out.write(build_pack_header())

    included = 0
    failures: list[FileFailure] = []

    def _unreadable_dir(rel: str, error: OSError) -> None:
        failures.append(FileFailure(rel=rel, reason=f"Failed to read directory: {error}"))
        if on_warning is not None:
            on_warning(f"Failed to read directory: {rel}")

    entries = collect(source_dir, job.patterns, output_file=output_path, on_unreadable_dir=_unreadable_dir)
    for entry in entries:
        try:
            content = read_file_text(entry.path)
        except FileReadError as e:
            logger.warning("Failed to read file %s: %s", entry.rel, e)
            failures.append(FileFailure(rel=entry.rel, reason=str(e)))
            if on_warning is not None:
                on_warning(f"Failed to read file: {entry.rel}")
            continue
        out.write(render_file_block(entry.rel, content))
        included += 1

    logger.info(
        "Packed %d files into %s (%d excluded)",
        included,
        output_path,
        len(failures),
    )

    text = out.getvalue()
    write_all(output_path, text)
    return PackResult(
        text=text,
        output_path=output_path,
        included=included,
        excluded=len(failures),
        failures=tuple(failures),
    )


def pack(
    job: DirectoryJob,
    *,
    workspace_root: Path | None = None,
    on_warning: WarningFn | None = None,
) -> str | None:
    """Run `assemble_pack` and return the packed text, or None on failure.

    Args:
        job (DirectoryJob): the pack job
        workspace_root (Path | None): the workspace root; defaults to the current directory
        on_warning (WarningFn | None): receives one message per unreadable file

    Returns:
        str | None: the full output text, or None if no source root could be
            resolved or the output could not be written
    """
    root = workspace_root if workspace_root is not None else Path.cwd()
    try:
        return assemble_pack(job, workspace_root=root, on_warning=on_warning).text
    except CodePackerError as e:
        logger.error("Failed to pack code: %s", e)  # noqa: TRY400
        return None
