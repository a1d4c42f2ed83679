from __future__ import annotations

import io
from pathlib import Path
from typing import TYPE_CHECKING

from code_packer.config import META_FILE_PATTERNS, ChangeKind, DiffResult, DiffStats, RunStatus
from code_packer.diffstat import content_lines, parse_stats, synthesize_diff
from code_packer.exceptions import (
    CodePackerError,
    DiffRetrievalError,
    GitCommandError,
    NoWorkspaceRootError,
)
from code_packer.file_manipulation import delete_if_exists, write_all
from code_packer.git_operations import discover_repository
from code_packer.logging import logger
from code_packer.output_construction import build_diff_header, build_run_summary, render_diff_stanza
from code_packer.patterns import match_any_glob, should_include

if TYPE_CHECKING:
    from collections.abc import Callable, Sequence

    from code_packer.config import ChangeRecord, DiffJob
    from code_packer.git_operations import VersionControl

    MessageFn = Callable[[str], None]

NOTHING_TO_SHOW = "No differences found between the branches"


def dedupe_changes(changes: Sequence[ChangeRecord]) -> list[ChangeRecord]:
    """Keep the first change reported for each relative path."""
    seen: set[str] = set()
    out: list[ChangeRecord] = []
    for change in changes:
        if change.rel in seen:
            continue
        seen.add(change.rel)
        out.append(change)
    return out


def filter_changes(changes: Sequence[ChangeRecord], job: DiffJob) -> list[ChangeRecord]:
    """Drop changes rejected by the job's patterns, and meta files unless wanted."""
    kept: list[ChangeRecord] = []
    for change in changes:
        if not job.include_meta_files and match_any_glob(change.rel, META_FILE_PATTERNS):
            logger.debug("Skipping meta file %s", change.rel)
            continue
        if should_include(change.rel, job.patterns):
            kept.append(change)
    return kept


def content_ref(change: ChangeRecord, job: DiffJob) -> str:
    """Ref at which a change's content lives: the base for deletions, the head otherwise."""
    return job.source_branch if change.kind == ChangeKind.DELETED else job.target_branch


def fetch_change_diff(change: ChangeRecord, job: DiffJob, repository: VersionControl) -> str:
    """Return the unified diff text of one change.

    Raises:
        DiffRetrievalError: if the repository cannot provide the content or diff

    Returns:
        str: diff text, empty when there is nothing to show for this change kind
    """
    base, head = job.source_branch, job.target_branch
    try:
        if change.kind == ChangeKind.ADDED:
            lines = content_lines(repository.show(head, change.rel))
            return synthesize_diff(ChangeKind.ADDED, change.rel, lines)
        if change.kind == ChangeKind.DELETED:
            lines = content_lines(repository.show(base, change.rel))
            return synthesize_diff(ChangeKind.DELETED, change.rel, lines)
        if change.kind == ChangeKind.RENAMED:
            old = change.original_path or change.rel
            body = repository.diff_file(base, old, head, change.rel)
            return synthesize_diff(ChangeKind.RENAMED, change.rel, original_path=old, body=body)
        return repository.diff_file(base, change.rel, head, change.rel)
    except (GitCommandError, OSError, ValueError) as e:
        raise DiffRetrievalError(path=change.rel, message=str(e)) from e


def render_change(
    change: ChangeRecord,
    job: DiffJob,
    repository: VersionControl,
) -> tuple[str, DiffStats]:
    """Render one change as a report stanza, with the stats it contributes.

    Size and binary gates run before any content is fetched; skipped and failed
    files contribute nothing to the totals.

    Returns:
        tuple[str, DiffStats]: the stanza text and its stats
    """
    empty = DiffStats()
    ref = content_ref(change, job)
    try:
        info = repository.object_info(ref, change.rel)
        if info.size > job.max_file_size_bytes:
            size_kb = info.size / 1024
            note = f"Skipped: too large ({size_kb:.1f} KB exceeds limit of {job.max_file_size_kb:g} KB)"
            logger.info("Skipping %s: too large (%d bytes)", change.rel, info.size)
            return render_diff_stanza(change, note=note), empty
        if info.is_binary and not job.include_binary_files:
            logger.info("Skipping binary file %s", change.rel)
            return render_diff_stanza(change, note="Binary file skipped"), empty
        body = fetch_change_diff(change, job, repository)
    except (DiffRetrievalError, GitCommandError, OSError, ValueError) as e:
        logger.warning("Error getting content for %s: %s", change.rel, e)
        return render_diff_stanza(change, note=f"Error retrieving file content: {e}"), empty

    stats = parse_stats(body)
    return render_diff_stanza(change, body=body, stats=stats), stats


def assemble_diff(
    job: DiffJob,
    *,
    workspace_root: Path | None,
    repository: VersionControl | None = None,
    on_message: MessageFn | None = None,
) -> DiffResult:
    """Write a report of the differences between the job's two branches.

    Changes are listed by the repository, de-duplicated by path and filtered by the
    job's patterns. If nothing remains the run is a no-op: no file is written and the
    result status is NOTHING_TO_SHOW. Otherwise every change becomes a stanza, the
    run summary is computed once all files are processed and prepended, and the
    whole report is written in one write.

    Args:
        job (DiffJob): branches, output file, patterns and gating options
        workspace_root (Path | None): the workspace root; the output file is relative to it
        repository (VersionControl | None): version-control collaborator; discovered
            from `workspace_root` when None
        on_message (MessageFn | None): receives user-facing information messages

    Raises:
        NoWorkspaceRootError: if the workspace root is not a directory
        NoRepositoryFoundError: if no repository is available
        GitCommandError: if the change set cannot be listed
        OutputWriteFailedError: if the report cannot be written

    Returns:
        DiffResult: status, text and totals of the run
    """
    if workspace_root is None or not workspace_root.is_dir():
        raise NoWorkspaceRootError(folder=workspace_root)
    root = workspace_root.resolve()
    if repository is None:
        repository = discover_repository(root)

    logger.debug("Generating diff between %s and %s", job.source_branch, job.target_branch)
    raw = repository.diff_between(job.source_branch, job.target_branch)
    changes = filter_changes(dedupe_changes(raw), job)
    logger.debug("Found %d changed files, %d after filtering", len(raw), len(changes))

    if not changes:
        logger.info(NOTHING_TO_SHOW)
        if on_message is not None:
            on_message(NOTHING_TO_SHOW)
        return DiffResult(status=RunStatus.NOTHING_TO_SHOW)

    body = io.StringIO()
    body.write(build_diff_header(job.source_branch, job.target_branch, len(changes)))
    totals = DiffStats()
    for change in changes:
        stanza, stats = render_change(change, job, repository)
        body.write(stanza)
        totals += stats

    text = build_run_summary(len(changes), totals) + body.getvalue()
    output_path = (root / job.output_file).resolve()
    delete_if_exists(output_path)
    write_all(output_path, text)
    logger.info(
        "Diff written to %s: %d files, +%d -%d",
        output_path,
        len(changes),
        totals.additions,
        totals.deletions,
    )
    return DiffResult(
        status=RunStatus.WRITTEN,
        text=text,
        output_path=output_path,
        files_processed=len(changes),
        totals=totals,
    )


def generate_diff(
    job: DiffJob,
    *,
    workspace_root: Path | None = None,
    repository: VersionControl | None = None,
    on_message: MessageFn | None = None,
) -> str | None:
    """Run `assemble_diff` and return the report text.

    Returns:
        str | None: the report, or None when there was nothing to show or the run failed
    """
    root = workspace_root if workspace_root is not None else Path.cwd()
    try:
        return assemble_diff(job, workspace_root=root, repository=repository, on_message=on_message).text
    except CodePackerError as e:
        logger.error("Failed to generate diff: %s", e)  # noqa: TRY400
        return None
