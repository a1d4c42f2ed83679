from __future__ import annotations

from enum import StrEnum, auto
from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator
from pydantic.alias_generators import to_camel

from code_packer import __version__

GENERATOR = f"Code Packer {__version__}"
PACK_PURPOSE = "Code packing for analysis or documentation"
DIFF_PURPOSE = "Git branch diff for analysis"

CONFIG_DIR = ".vscode"
CONFIG_FILE_NAME = "code-packer.json"

# Never walked, whatever the patterns say.
HOUSEKEEPING_DIRS = {
    ".git",
    CONFIG_DIR,
}

DEFAULT_EXCLUSION_PATTERNS = [
    "node_modules",
    ".git",
    "dist",
    "out",
    "build",
    "__pycache__",
    "*.log",
    "*.lock",
    ".DS_Store",
]

DEFAULT_INCLUSION_PATTERNS: list[str] = []

META_FILE_PATTERNS = [
    ".vscode/**",
    ".idea/**",
    ".gitignore",
    ".gitattributes",
    ".gitmodules",
    ".editorconfig",
]

DEFAULT_MAX_FILE_SIZE_KB = 1024


class PatternSet(BaseModel):
    """Ordered exclusion and inclusion glob patterns.

    Exclusion is always evaluated first and always wins; an empty inclusion list
    accepts every path that is not excluded.
    """

    model_config = ConfigDict(frozen=True)

    exclusion_patterns: tuple[str, ...] = Field(default=(), description="Exclusion globs")
    inclusion_patterns: tuple[str, ...] = Field(default=(), description="Inclusion globs")


class FileEntry(BaseModel):
    """A discovered file.

    Attributes:
        path: Absolute path to the file on disk.
        rel: Path relative to the source directory, with forward slashes.
    """

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    path: Path = Field(..., description="Absolute file path")
    rel: str = Field(..., description="File path relative to the source directory")


class DirectoryJob(BaseModel):
    """One pack run: a source directory, where to write, and which files to take."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    source_directory: Path
    output_file: Path
    patterns: PatternSet = Field(default_factory=PatternSet)


class DiffJob(BaseModel):
    """One diff run between `source_branch` (base) and `target_branch` (head)."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    source_branch: str
    target_branch: str
    output_file: Path
    patterns: PatternSet = Field(default_factory=PatternSet)
    include_binary_files: bool = False
    include_meta_files: bool = False
    max_file_size_kb: float = Field(default=DEFAULT_MAX_FILE_SIZE_KB, ge=0)

    @computed_field
    @property
    def max_file_size_bytes(self) -> int:
        """Size limit in bytes; files strictly above it are skipped."""
        return int(self.max_file_size_kb * 1024)


class ChangeKind(StrEnum):
    """How a file changed between two refs."""

    ADDED = auto()
    DELETED = auto()
    MODIFIED = auto()
    RENAMED = auto()
    UNTRACKED = auto()
    IGNORED = auto()
    OTHER = auto()


class ChangeRecord(BaseModel):
    """A single entry of a change set.

    Attributes:
        rel: Path of the file relative to the repository root (new path for renames).
        kind: Classified change kind.
        original_path: Previous path, for renames.
        status_code: Raw status code reported by the version-control system.
    """

    model_config = ConfigDict(frozen=True)

    rel: str
    kind: ChangeKind
    original_path: str | None = None
    status_code: str = ""


class DiffStats(BaseModel):
    """Added and deleted line counts; `+` sums two of them."""

    model_config = ConfigDict(frozen=True)

    additions: int = Field(default=0, ge=0)
    deletions: int = Field(default=0, ge=0)

    def __add__(self, other: DiffStats) -> DiffStats:
        return DiffStats(
            additions=self.additions + other.additions,
            deletions=self.deletions + other.deletions,
        )


class ObjectInfo(BaseModel):
    """Size and binary classification of a file at a given ref."""

    model_config = ConfigDict(frozen=True)

    size: int = Field(..., ge=0)
    is_binary: bool = False


class RunStatus(StrEnum):
    """Outcome of a run that did not fail."""

    WRITTEN = auto()
    NOTHING_TO_SHOW = auto()


class FileFailure(BaseModel):
    """A file that could not be read during a pack run."""

    model_config = ConfigDict(frozen=True)

    rel: str
    reason: str


class PackResult(BaseModel):
    """Outcome of a pack run: the text written plus the per-run counters."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    status: RunStatus = RunStatus.WRITTEN
    text: str
    output_path: Path
    included: int = 0
    excluded: int = 0
    failures: tuple[FileFailure, ...] = ()


class DiffResult(BaseModel):
    """Outcome of a diff run; `text` is None when there was nothing to show."""

    model_config = ConfigDict(arbitrary_types_allowed=True, frozen=True)

    status: RunStatus
    text: str | None = None
    output_path: Path | None = None
    files_processed: int = 0
    totals: DiffStats = Field(default_factory=DiffStats)


# ------------------------------ Persisted configuration ----------------------


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class DirectoryConfig(_CamelModel):
    """One directory entry of the persisted configuration file."""

    source_directory: str = Field(default=".", description="Source directory, relative to the workspace root.")
    output_file: str = Field(..., min_length=1, description="Output file, relative to the workspace root.")
    exclusion_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUSION_PATTERNS))
    inclusion_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_INCLUSION_PATTERNS))

    @field_validator("source_directory")
    @classmethod
    def _no_parent_segments(cls, value: str) -> str:
        if ".." in value:
            msg = 'Path cannot contain ".."'
            raise ValueError(msg)
        return value or "."

    def pattern_set(self) -> PatternSet:
        """Return the patterns of this entry as a PatternSet."""
        return PatternSet(
            exclusion_patterns=tuple(self.exclusion_patterns),
            inclusion_patterns=tuple(self.inclusion_patterns),
        )


class DiffConfig(_CamelModel):
    """The `diff` section of the persisted configuration file."""

    output_file: str | None = Field(default=None, description="Output file; derived from the branches when unset.")
    exclusion_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_EXCLUSION_PATTERNS))
    inclusion_patterns: list[str] = Field(default_factory=lambda: list(DEFAULT_INCLUSION_PATTERNS))
    include_binary_files: bool = False
    include_meta_files: bool = False
    max_file_size_kb: float = Field(default=DEFAULT_MAX_FILE_SIZE_KB, ge=0, alias="maxFileSizeKB")

    def pattern_set(self) -> PatternSet:
        """Return the patterns of this section as a PatternSet."""
        return PatternSet(
            exclusion_patterns=tuple(self.exclusion_patterns),
            inclusion_patterns=tuple(self.inclusion_patterns),
        )


class CodePackerConfig(_CamelModel):
    """The whole persisted configuration: directory jobs, diff options and debug flag."""

    directories: list[DirectoryConfig] = Field(default_factory=list)
    diff: DiffConfig = Field(default_factory=DiffConfig)
    debug: bool = False
