"""Unified-diff statistics and synthesis of whole-file diffs."""

from __future__ import annotations

import io
import re
from typing import TYPE_CHECKING

from code_packer.config import ChangeKind, DiffStats

if TYPE_CHECKING:
    from collections.abc import Sequence

    from code_packer.config import ChangeRecord

_HEADER_PREFIXES = ("diff --git", "index ", "--- ", "+++ ")
_HUNK_HEADER_RE = re.compile(r"^@@ -\d+(?:,(\d+))? \+\d+(?:,(\d+))? @@")

_STATUS_LETTERS: dict[str, ChangeKind] = {
    "A": ChangeKind.ADDED,
    "D": ChangeKind.DELETED,
    "M": ChangeKind.MODIFIED,
    "R": ChangeKind.RENAMED,
    "?": ChangeKind.UNTRACKED,
    "!": ChangeKind.IGNORED,
}


def _hunk_sizes(line: str) -> tuple[int, int] | None:
    m = _HUNK_HEADER_RE.match(line)
    if not m:
        return None
    old_len = int(m.group(1)) if m.group(1) is not None else 1
    new_len = int(m.group(2)) if m.group(2) is not None else 1
    return old_len, new_len


def parse_stats(diff_text: str) -> DiffStats:
    """Count added and deleted lines in unified diff text.

    File headers are skipped and nothing is counted before the first ``@@`` hunk
    marker, so ``--- a/x`` and ``+++ b/x`` never count as changes. When the hunk
    header carries line counts, the hunk body is consumed by count, which keeps a
    removed line such as ``-- comment`` from being mistaken for a header.

    Args:
        diff_text (str): unified diff, possibly covering several files

    Returns:
        DiffStats: the additions and deletions found
    """
    additions = 0
    deletions = 0
    in_hunk = False
    # Lines still expected in the current hunk; None when the header had no counts.
    old_left: int | None = None
    new_left: int | None = None
    for line in diff_text.split("\n"):
        if line.startswith("diff --git"):
            # A new file section ends any hunk, whatever its header declared.
            in_hunk = False
            old_left = new_left = None
            continue
        bounded = in_hunk and old_left is not None and new_left is not None
        if bounded and old_left <= 0 and new_left <= 0:
            in_hunk = False
            bounded = False
        if not bounded:
            if line.startswith("@@"):
                in_hunk = True
                sizes = _hunk_sizes(line)
                old_left, new_left = sizes if sizes else (None, None)
                continue
            if line.startswith(_HEADER_PREFIXES) or not in_hunk:
                continue
        if line.startswith("+"):
            additions += 1
            if new_left is not None:
                new_left -= 1
        elif line.startswith("-"):
            deletions += 1
            if old_left is not None:
                old_left -= 1
        elif line.startswith(" ") or not line:
            if old_left is not None and new_left is not None:
                old_left -= 1
                new_left -= 1
    return DiffStats(additions=additions, deletions=deletions)


def content_lines(text: str) -> list[str]:
    """Split file content into lines the way git counts them.

    Only ``\\n`` ends a line; a final newline does not start an extra empty line.
    """
    lines = text.split("\n")
    if lines and not lines[-1]:
        lines.pop()
    return lines


def _added_diff(rel: str, lines: Sequence[str]) -> str:
    out = io.StringIO()
    out.write("new file mode 100644\n")
    out.write("--- /dev/null\n")
    out.write(f"+++ b/{rel}\n")
    out.write(f"@@ -0,0 +1,{len(lines)} @@\n")
    for ln in lines:
        out.write(f"+{ln}\n")
    return out.getvalue()


def _deleted_diff(rel: str, lines: Sequence[str]) -> str:
    out = io.StringIO()
    out.write("deleted file mode 100644\n")
    out.write(f"--- a/{rel}\n")
    out.write("+++ /dev/null\n")
    out.write(f"@@ -1,{len(lines)} +0,0 @@\n")
    for ln in lines:
        out.write(f"-{ln}\n")
    return out.getvalue()


def synthesize_diff(
    kind: ChangeKind,
    rel: str,
    lines: Sequence[str] = (),
    *,
    original_path: str | None = None,
    body: str = "",
) -> str:
    """Build unified diff text for a change whose diff git does not hand us directly.

    - added: every line of the new content prefixed with ``+``;
    - deleted: every line of the old content prefixed with ``-``;
    - renamed: ``rename from``/``rename to`` lines followed by `body`, the
      modification diff between the two paths (empty for a pure rename).

    Args:
        kind (ChangeKind): ADDED, DELETED or RENAMED
        rel (str): the file path (new path for renames)
        lines (Sequence[str]): file content split into lines, for ADDED/DELETED
        original_path (str | None): previous path, required for RENAMED
        body (str): modification diff appended after the rename lines

    Raises:
        ValueError: for other change kinds, or a rename without `original_path`

    Returns:
        str: the synthesized diff text
    """
    if kind == ChangeKind.ADDED:
        return _added_diff(rel, lines)
    if kind == ChangeKind.DELETED:
        return _deleted_diff(rel, lines)
    if kind == ChangeKind.RENAMED:
        if not original_path:
            msg = f"Rename of {rel} has no original path"
            raise ValueError(msg)
        header = f"rename from {original_path}\nrename to {rel}\n"
        return header + body
    msg = f"Cannot synthesize a diff for change kind {kind!s}"
    raise ValueError(msg)


def classify(status_code: str) -> ChangeKind:
    """Map a git name-status code (``A``, ``M``, ``R087``...) to a ChangeKind."""
    letter = (status_code or "").strip()[:1].upper()
    return _STATUS_LETTERS.get(letter, ChangeKind.OTHER)


def status_text(change: ChangeRecord) -> str:
    """Human-readable status of a change, e.g. ``Modified`` or ``Status T``."""
    if change.kind == ChangeKind.OTHER:
        return f"Status {change.status_code or '?'}"
    return change.kind.value.capitalize()
