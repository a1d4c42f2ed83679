"""Glob matching of relative paths against include/exclude pattern sets.

Each path segment is matched with ``pathspec``'s ``gitwildmatch`` wildcards:

- ``*`` matches anything except ``/``; a ``**`` segment spans any number of directories;
- ``?`` matches one character and ``[...]`` a character class;
- a pattern without ``/`` is a basename pattern, tested against the file name at
  any depth, case-insensitively;
- a pattern with ``/`` (a trailing one included) is anchored and must match the
  whole relative path, case-sensitively;
- in exclusions only, a pattern naming a directory also covers everything below it.
"""

from __future__ import annotations

import warnings
from functools import lru_cache
from typing import TYPE_CHECKING

import pathspec

from code_packer.logging import logger

if TYPE_CHECKING:
    from collections.abc import Iterable, Sequence

    from code_packer.config import PatternSet


def normalize_pattern(pattern: str) -> str:
    """Normalize a single glob pattern.

    Strips whitespace, turns backslashes into forward slashes and drops a leading
    ``./``.

    Args:
        pattern (str): the raw pattern

    Returns:
        str: the normalized pattern, possibly empty
    """
    p = (pattern or "").strip().replace("\\", "/")
    while p.startswith("./"):
        p = p[2:]
    return p


def normalize_globs(globs: Iterable[str]) -> list[str]:
    """Normalize a sequence of glob patterns, dropping blank ones.

    Args:
        globs (Iterable[str]): the glob patterns to normalize

    Returns:
        list[str]: the normalized glob patterns, in their original order
    """
    out: list[str] = []
    for g in globs:
        g2 = normalize_pattern(g)
        if g2:
            out.append(g2)
    return out


def is_basename_pattern(pattern: str) -> bool:
    """Tell whether a normalized pattern matches on basenames at any depth."""
    return "/" not in pattern


@lru_cache(maxsize=1024)
def _compile(segment: str) -> pathspec.PathSpec | None:
    # One path segment, so gitwildmatch's any-depth prefix and directory suffix never apply.
    line = "\\" + segment if segment[:1] in {"!", "#"} else segment
    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", DeprecationWarning)
            return pathspec.PathSpec.from_lines("gitwildmatch", [line])
    except (ValueError, TypeError) as e:
        logger.warning("Ignoring invalid pattern %r: %s", segment, e)
        return None


def _segment_matches(name: str, segment: str) -> bool | None:
    spec = _compile(segment)
    if spec is None:
        return None
    return spec.match_file(name)


def _match_segments(parts: Sequence[str], segments: Sequence[str]) -> bool | None:
    """Match path parts against pattern segments; ``**`` spans zero or more parts.

    Returns None when a segment cannot be compiled.
    """
    if not segments:
        return not parts
    head, rest = segments[0], segments[1:]
    if head == "**":
        for i in range(len(parts) + 1):
            found = _match_segments(parts[i:], rest)
            if found is None or found:
                return found
        return False
    if not parts:
        return False
    found = _segment_matches(parts[0], head)
    if not found:
        return found
    return _match_segments(parts[1:], rest)


def matches(rel: str, pattern: str, *, subtree: bool = False) -> bool:
    """Check whether a relative path matches one glob pattern.

    A basename pattern is tested against the last path segment only; an anchored
    pattern against the whole path. With `subtree`, a pattern matching one of the
    path's parent directories matches the path too, which is how exclusions treat
    directory names. A pattern that cannot be compiled matches nothing.

    Args:
        rel (str): path relative to the scanned root; backslashes are accepted
        pattern (str): the glob pattern
        subtree (bool): also match paths below a matching directory

    Returns:
        bool: True if `rel` matches `pattern`
    """
    pat = normalize_pattern(pattern)
    path = rel.replace("\\", "/").strip("/")
    if not pat or not path:
        return False
    parts = [p for p in path.split("/") if p]

    if is_basename_pattern(pat):
        names = parts if subtree else parts[-1:]
        return any(_segment_matches(name.lower(), pat.lower()) for name in names)

    segments = [s for s in pat.split("/") if s]
    if not segments:
        return False
    ends = range(1, len(parts) + 1) if subtree else (len(parts),)
    return any(_match_segments(parts[:end], segments) for end in ends)


def match_any_glob(rel: str, globs: Sequence[str], *, subtree: bool = False) -> bool:
    """Check if a relative path matches any of the provided glob patterns."""
    return any(matches(rel, g, subtree=subtree) for g in globs)


def is_excluded(rel: str, patterns: PatternSet) -> bool:
    """Tell whether an exclusion pattern matches `rel` or one of its parent directories."""
    for pat in patterns.exclusion_patterns:
        if matches(rel, pat, subtree=True):
            logger.debug("Excluding %s (exclusion pattern %s matched)", rel, pat)
            return True
    return False


def should_include(rel: str, patterns: PatternSet) -> bool:
    """Decide whether a relative path survives a pattern set.

    Exclusions are checked first and always win; an exclusion naming a directory
    also excludes everything below it. With no inclusion patterns every
    non-excluded path is kept; otherwise at least one inclusion must match the
    path itself.

    Args:
        rel (str): path relative to the scanned root
        patterns (PatternSet): exclusion and inclusion patterns

    Returns:
        bool: True if the path should be kept
    """
    if is_excluded(rel, patterns):
        return False

    inclusions = normalize_globs(patterns.inclusion_patterns)
    if not inclusions:
        return True
    if match_any_glob(rel, inclusions):
        return True
    logger.debug("Excluding %s (no inclusion pattern matched)", rel)
    return False
