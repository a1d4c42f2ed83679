from __future__ import annotations

import io
from typing import TYPE_CHECKING

from code_packer.config import DIFF_PURPOSE, GENERATOR, PACK_PURPOSE, ChangeKind
from code_packer.diffstat import status_text
from code_packer.file_manipulation import now_iso

if TYPE_CHECKING:
    from code_packer.config import ChangeRecord, DiffStats

HEADER_START = "--- START OF HEADER ---"
HEADER_END = "--- END OF HEADER ---"
FILE_END = "--- END FILE ---"
DIFF_FILE_END = "=== END FILE ==="


def build_pack_header(generated_at: str | None = None) -> str:
    """Build the fixed header of a pack output.

    The header is written before any file is processed and carries no per-run totals.

    Args:
        generated_at (str | None): timestamp to print; defaults to now

    Returns:
        str: the header block, followed by a blank line
    """
    out = io.StringIO()
    out.write(f"{HEADER_START}\n")
    out.write(f"Generated on: {generated_at or now_iso()}\n")
    out.write(f"Generated by: {GENERATOR}\n")
    out.write(f"Purpose: {PACK_PURPOSE}\n")
    out.write(f"{HEADER_END}\n\n")
    return out.getvalue()


def render_file_block(rel: str, content: str) -> str:
    """Frame one file's raw content for a pack output."""
    return f"--- FILE: {rel} ---\n{content}\n{FILE_END}\n\n"


def build_diff_header(
    source_branch: str,
    target_branch: str,
    changed_files: int,
    generated_at: str | None = None,
) -> str:
    """Build the metadata header of a diff report.

    Args:
        source_branch (str): base branch
        target_branch (str): head branch
        changed_files (int): number of changes kept after filtering
        generated_at (str | None): timestamp to print; defaults to now

    Returns:
        str: the header block, followed by a blank line
    """
    out = io.StringIO()
    out.write(f"{HEADER_START}\n")
    out.write(f"Generated on: {generated_at or now_iso()}\n")
    out.write(f"Generated by: {GENERATOR}\n")
    out.write(f"Purpose: {DIFF_PURPOSE}\n")
    out.write(f"Source Branch: {source_branch}\n")
    out.write(f"Target Branch: {target_branch}\n")
    out.write(f"Number of Changed Files: {changed_files}\n")
    out.write(f"{HEADER_END}\n\n")
    return out.getvalue()


def build_run_summary(files_processed: int, totals: DiffStats) -> str:
    """One-line summary prepended to a diff report once every file is processed."""
    return (
        f"Summary: {files_processed} files processed, "
        f"{totals.additions} additions(+), {totals.deletions} deletions(-)\n\n"
    )


def stanza_title(change: ChangeRecord) -> str:
    """Return the ``=== path ===`` line of a diff stanza."""
    if change.kind == ChangeKind.RENAMED and change.original_path:
        return f"=== {change.rel} (renamed from {change.original_path}) ==="
    return f"=== {change.rel} ==="


def render_diff_stanza(
    change: ChangeRecord,
    *,
    body: str = "",
    stats: DiffStats | None = None,
    note: str = "",
) -> str:
    """Render one file of a diff report.

    Args:
        change (ChangeRecord): the change being reported
        body (str): unified diff text, empty when the file was skipped or failed
        stats (DiffStats | None): counts printed as ``Changes: +A -D`` when there is a body
        note (str): a skip or error line printed instead of a body

    Returns:
        str: the stanza, ending with the end marker and a blank line
    """
    out = io.StringIO()
    out.write(f"{stanza_title(change)}\n")
    out.write(f"Status: {status_text(change)}\n")
    if body and stats is not None:
        out.write(f"Changes: +{stats.additions} -{stats.deletions}\n")
    out.write("\n")
    if note:
        out.write(f"{note}\n")
    if body:
        out.write(body if body.endswith("\n") else body + "\n")
    out.write(f"{DIFF_FILE_END}\n\n")
    return out.getvalue()
