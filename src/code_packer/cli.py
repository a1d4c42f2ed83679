"""
code_packer: pack a project directory, or a diff between two branches, into one text file.

Overview
--------
1) **pack** walks each configured source directory, keeps the files allowed by
   the exclusion/inclusion globs, and writes them one after another, framed by
   ``--- FILE: <path> ---`` / ``--- END FILE ---`` markers, under a short header.

2) **diff** lists the files that differ between two branches, filters them with
   the same globs, and writes a report with a status line, ``+A -D`` counts and the
   unified diff of every file, preceded by a one-line summary.

Configuration is read from ``.vscode/code-packer.json`` in the workspace (the
built-in defaults apply when it is missing); command-line flags override it.

Usage
-----
    code-packer pack --output packed.txt --exclude "*.lock" --include "src/**"
    code-packer diff main feature/login --max-file-size-kb 256
    code-packer branches
    code-packer save-config --exclude node_modules --exclude "*.log"
"""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import TYPE_CHECKING, Any

from code_packer import __version__
from code_packer.config import RunStatus
from code_packer.differ import assemble_diff
from code_packer.exceptions import CodePackerError
from code_packer.git_operations import discover_repository
from code_packer.logging import logger, setup_logging
from code_packer.packer import assemble_pack
from code_packer.settings import Settings, diff_job, directory_jobs, resolve_config, save_config

if TYPE_CHECKING:
    from collections.abc import Sequence

    from code_packer.config import CodePackerConfig


def _add_pattern_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--include",
        action="append",
        default=None,
        help="Inclusion glob (repeatable). Replaces the configured list.",
    )
    p.add_argument(
        "--exclude",
        action="append",
        default=None,
        help="Exclusion glob (repeatable). Replaces the configured list.",
    )


def _add_pack_args(p: argparse.ArgumentParser) -> None:
    p.add_argument(
        "--source-directory",
        type=str,
        default=None,
        help="Source directory, relative to the workspace.",
    )
    p.add_argument("--output", type=str, default=None, help="Output file, relative to the workspace.")
    _add_pattern_args(p)


def parse_args(argv: Sequence[str] | None = None) -> Settings:
    p = argparse.ArgumentParser(
        prog="code-packer",
        description="Pack a directory, or a diff between two git branches, into one text file.",
    )
    p.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    p.add_argument("--workspace", type=Path, default=Path.cwd(), help="Workspace root.")
    p.add_argument("--debug", action="store_true", help="Log debug events.")
    p.add_argument("--log-file", type=str, default="", help="Log file path.")

    sub = p.add_subparsers(dest="command", required=True)

    _add_pack_args(sub.add_parser("pack", help="Concatenate the configured directories."))

    d = sub.add_parser("diff", help="Report the differences between two branches.")
    d.add_argument("source_branch", help="Base branch.")
    d.add_argument("target_branch", help="Branch compared against the base.")
    d.add_argument("--output", type=str, default=None, help="Output file, relative to the workspace.")
    _add_pattern_args(d)
    d.add_argument(
        "--include-binary",
        action="store_true",
        default=None,
        help="Keep binary files instead of skipping them.",
    )
    d.add_argument(
        "--include-meta",
        action="store_true",
        default=None,
        help="Keep editor/VCS meta files (.vscode, .gitignore, ...).",
    )
    d.add_argument(
        "--max-file-size-kb",
        type=float,
        default=None,
        help="Files larger than this are reported as skipped.",
    )

    sub.add_parser("branches", help="List the branches of the workspace repository.")

    _add_pack_args(sub.add_parser("save-config", help="Persist the merged configuration."))

    args = p.parse_args(argv)
    return Settings(**vars(args))


def build_overrides(settings: Settings) -> dict[str, Any]:
    """Turn explicit command-line values into a configuration layer.

    Returns:
        dict[str, Any]: a camelCase mapping; unset options are None and never override
    """
    if settings.command == "diff":
        return {
            "diff": {
                "outputFile": settings.output,
                "exclusionPatterns": settings.exclude,
                "inclusionPatterns": settings.include,
                "includeBinaryFiles": settings.include_binary,
                "includeMetaFiles": settings.include_meta,
                "maxFileSizeKB": settings.max_file_size_kb,
            },
        }
    return {
        "sourceDirectory": settings.source_directory,
        "outputFile": settings.output,
        "exclusionPatterns": settings.exclude,
        "inclusionPatterns": settings.include,
    }


def warn(message: str) -> None:
    print(f"Warning: {message}", file=sys.stderr)


def run_pack(workspace: Path, config: CodePackerConfig) -> int:
    for job in directory_jobs(config):
        result = assemble_pack(job, workspace_root=workspace, on_warning=warn)
        print(
            f"Code packed successfully. Output file: {result.output_path} "
            f"(included={result.included} excluded={result.excluded})",
        )
    return 0


def run_diff(workspace: Path, config: CodePackerConfig, settings: Settings) -> int:
    job = diff_job(config, settings.source_branch, settings.target_branch)
    result = assemble_diff(job, workspace_root=workspace, on_message=print)
    if result.status == RunStatus.WRITTEN:
        print(
            f"Diff written to {result.output_path} "
            f"(files={result.files_processed} +{result.totals.additions} -{result.totals.deletions})",
        )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    settings = parse_args(argv)
    setup_logging(settings.log_file or None, debug=settings.debug)
    workspace = settings.workspace.resolve()

    try:
        if settings.command == "branches":
            for name in discover_repository(workspace).list_branches():
                print(name)
            return 0

        config = resolve_config(workspace, overrides=build_overrides(settings))
        if config.debug and not settings.debug:
            setup_logging(settings.log_file or None, debug=True)

        if settings.command == "save-config":
            print(f"Configuration saved to {save_config(workspace, config)}")
            return 0
        if settings.command == "diff":
            return run_diff(workspace, config, settings)
        return run_pack(workspace, config)
    except CodePackerError as e:
        logger.error("%s failed: %s", settings.command, e)  # noqa: TRY400
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
