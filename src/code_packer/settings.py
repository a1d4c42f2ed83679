from __future__ import annotations

import json
import os
import re
from pathlib import Path
from typing import TYPE_CHECKING, Any

import yaml
from dotenv import dotenv_values, find_dotenv
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from code_packer.config import (
    CONFIG_DIR,
    CONFIG_FILE_NAME,
    DEFAULT_EXCLUSION_PATTERNS,
    DEFAULT_INCLUSION_PATTERNS,
    DEFAULT_MAX_FILE_SIZE_KB,
    CodePackerConfig,
    DiffJob,
    DirectoryJob,
)
from code_packer.exceptions import ConfigurationMissingError, NoWorkspaceRootError
from code_packer.logging import logger

if TYPE_CHECKING:
    from collections.abc import Mapping

ENV_FILE = find_dotenv(usecwd=True)
DEBUG_ENV_VAR = "CODE_PACKER_DEBUG"
FLAT_DIRECTORY_KEYS = ("sourceDirectory", "outputFile", "exclusionPatterns", "inclusionPatterns")


class Settings(BaseModel):
    """Command-line settings for the code_packer module."""

    model_config = ConfigDict(arbitrary_types_allowed=True)

    command: str = Field(..., description="pack, diff, branches or save-config.")
    workspace: Path = Field(default_factory=Path.cwd, description="Workspace root.")
    debug: bool = Field(default=False, description="Log debug events.")
    log_file: str = Field(default="", description="Log file path.")

    source_directory: str | None = Field(default=None, description="Source directory, relative to the workspace.")
    output: str | None = Field(default=None, description="Output file, relative to the workspace.")
    include: list[str] | None = Field(default=None, description="Inclusion globs.")
    exclude: list[str] | None = Field(default=None, description="Exclusion globs.")

    source_branch: str = Field(default="", description="Base branch of a diff.")
    target_branch: str = Field(default="", description="Head branch of a diff.")
    include_binary: bool | None = Field(default=None, description="Keep binary files in a diff.")
    include_meta: bool | None = Field(default=None, description="Keep editor/VCS meta files in a diff.")
    max_file_size_kb: float | None = Field(default=None, description="Skip diff files above this size.")


def env_debug_enabled() -> bool:
    """Read the debug toggle from the environment or the nearest `.env` file."""
    raw = os.environ.get(DEBUG_ENV_VAR)
    if raw is None and ENV_FILE:
        raw = dotenv_values(ENV_FILE).get(DEBUG_ENV_VAR)
    return (raw or "").strip().lower() in {"1", "true", "yes", "on"}


def sanitize_name(name: str) -> str:
    """Replace every non-alphanumeric character with ``_``."""
    return re.sub(r"[^a-z0-9]", "_", name, flags=re.IGNORECASE)


def safe_project_name(workspace: Path) -> str:
    """Lower-cased, file-name-safe version of the workspace directory name."""
    return sanitize_name(workspace.resolve().name).lower()


def default_diff_output(source_branch: str, target_branch: str) -> str:
    """Default report name for a diff, e.g. ``diff_main_feature_x.txt``."""
    return f"diff_{sanitize_name(source_branch)}_{sanitize_name(target_branch)}.txt"


def config_path(workspace: Path) -> Path:
    """Location of the persisted configuration file of a workspace."""
    return workspace / CONFIG_DIR / CONFIG_FILE_NAME


def default_config(workspace: Path) -> dict[str, Any]:
    """Built-in default configuration for `workspace`, as a camelCase mapping."""
    return {
        "directories": [
            {
                "sourceDirectory": ".",
                "outputFile": f"{safe_project_name(workspace)}_packed_code.txt",
                "exclusionPatterns": list(DEFAULT_EXCLUSION_PATTERNS),
                "inclusionPatterns": list(DEFAULT_INCLUSION_PATTERNS),
            },
        ],
        "diff": {
            "exclusionPatterns": list(DEFAULT_EXCLUSION_PATTERNS),
            "inclusionPatterns": list(DEFAULT_INCLUSION_PATTERNS),
            "includeBinaryFiles": False,
            "includeMetaFiles": False,
            "maxFileSizeKB": DEFAULT_MAX_FILE_SIZE_KB,
        },
        "debug": False,
    }


def _merge_two(base: Mapping[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    out = dict(base)
    for key, value in override.items():
        if value is None:
            continue
        current = out.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            out[key] = _merge_two(current, value)
        else:
            out[key] = value
    return out


def apply_layer(base: Mapping[str, Any], layer: Mapping[str, Any]) -> dict[str, Any]:
    """Lay one configuration mapping over `base`.

    Besides the ``directories`` layout, the flat single-directory layout is accepted:
    top-level ``sourceDirectory``/``outputFile``/patterns are merged into the first
    directory entry of `base`.
    """
    data = dict(layer)
    flat = {k: data.pop(k) for k in FLAT_DIRECTORY_KEYS if k in data}
    out = _merge_two(base, data)
    if flat:
        dirs = list(out.get("directories") or [{}])
        dirs[0] = _merge_two(dirs[0], flat)
        out["directories"] = dirs
    return out


def merge_config(
    default: Mapping[str, Any],
    call_site: Mapping[str, Any] | None = None,
    user: Mapping[str, Any] | None = None,
) -> dict[str, Any]:
    """Merge configuration layers with the precedence user > call-site > default.

    Merging is key by key: a key present with a non-None value in a higher layer
    replaces the lower one; nested mappings are merged recursively; lists (patterns,
    directories) are replaced as a whole, never concatenated.

    Args:
        default (Mapping[str, Any]): built-in defaults
        call_site (Mapping[str, Any] | None): values supplied by the invoking code
        user (Mapping[str, Any] | None): values persisted or typed by the user

    Returns:
        dict[str, Any]: the merged configuration mapping
    """
    merged = dict(default)
    for layer in (call_site, user):
        if layer:
            merged = apply_layer(merged, layer)
    return merged


def load_user_config(workspace: Path) -> dict[str, Any]:
    """Read the persisted configuration of `workspace`.

    The file is parsed with ``yaml.safe_load``, which accepts the JSON written by
    `save_config` as well as hand-written YAML.

    Raises:
        ConfigurationMissingError: if the file exists but cannot be parsed

    Returns:
        dict[str, Any]: the stored mapping, empty when there is no file
    """
    path = config_path(workspace)
    if not path.is_file():
        logger.debug("No config file found at %s, using default settings", path)
        return {}
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as e:
        logger.error("Error reading config file %s: %s", path, e)  # noqa: TRY400
        raise ConfigurationMissingError(message=f"Error reading config file {path}: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationMissingError(message=f"Config file {path} does not contain a mapping")
    logger.debug("Loaded config from %s", path)
    return data


def resolve_config(
    workspace: Path,
    *,
    call_site: Mapping[str, Any] | None = None,
    overrides: Mapping[str, Any] | None = None,
) -> CodePackerConfig:
    """Build the effective configuration of a workspace.

    The user layer is the persisted file; `overrides` (explicit command-line values)
    belong to it too and sit on top of the file.

    Raises:
        NoWorkspaceRootError: if `workspace` is not a directory
        ConfigurationMissingError: if the merged configuration is invalid

    Returns:
        CodePackerConfig: the validated configuration
    """
    if not workspace.is_dir():
        raise NoWorkspaceRootError(folder=workspace)
    merged = merge_config(default_config(workspace), call_site, load_user_config(workspace))
    if overrides:
        merged = apply_layer(merged, overrides)
    try:
        config = CodePackerConfig.model_validate(merged)
    except ValidationError as e:
        raise ConfigurationMissingError(message=f"Invalid configuration: {e}") from e
    if env_debug_enabled():
        config = config.model_copy(update={"debug": True})
    return config


def save_config(workspace: Path, config: CodePackerConfig) -> Path:
    """Persist `config` as JSON under the workspace's editor metadata directory.

    Returns:
        Path: the written configuration file
    """
    path = config_path(workspace)
    path.parent.mkdir(parents=True, exist_ok=True)
    payload = config.model_dump(mode="json", by_alias=True)
    path.write_text(json.dumps(payload, indent=2) + "\n", encoding="utf-8")
    logger.info("Config file written to %s", path)
    return path


def directory_jobs(config: CodePackerConfig) -> list[DirectoryJob]:
    """One DirectoryJob per configured directory.

    Raises:
        ConfigurationMissingError: if no directory is configured
    """
    if not config.directories:
        raise ConfigurationMissingError(message="No directory configured for packing.")
    return [
        DirectoryJob(
            source_directory=Path(d.source_directory),
            output_file=Path(d.output_file),
            patterns=d.pattern_set(),
        )
        for d in config.directories
    ]


def diff_job(config: CodePackerConfig, source_branch: str, target_branch: str) -> DiffJob:
    """Build the DiffJob comparing `source_branch` (base) to `target_branch` (head).

    Raises:
        ConfigurationMissingError: if a branch is missing
    """
    if not source_branch or not target_branch:
        raise ConfigurationMissingError(message="Both a source and a target branch are required.")
    d = config.diff
    return DiffJob(
        source_branch=source_branch,
        target_branch=target_branch,
        output_file=Path(d.output_file or default_diff_output(source_branch, target_branch)),
        patterns=d.pattern_set(),
        include_binary_files=d.include_binary_files,
        include_meta_files=d.include_meta_files,
        max_file_size_kb=d.max_file_size_kb,
    )
