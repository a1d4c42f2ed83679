from dataclasses import dataclass
from pathlib import Path


@dataclass(frozen=True)
class CodePackerError(Exception):
    """Base exception for errors in the code_packer module."""

    message: str = "Code Packer failed."

    def __str__(self) -> str:
        return self.message


@dataclass(frozen=True)
class NoWorkspaceRootError(CodePackerError):
    """Raised when the workspace or source root cannot be resolved."""

    folder: Path | None = None
    message: str = "No workspace folder found."


@dataclass(frozen=True)
class NoRepositoryFoundError(CodePackerError):
    """Raised when the workspace is not inside a git repository."""

    folder: Path | None = None
    message: str = "No Git repository found in the current workspace."


@dataclass(frozen=True)
class ConfigurationMissingError(CodePackerError):
    """Raised when no usable configuration can be resolved."""

    message: str = "Failed to load configuration."


@dataclass(frozen=True)
class OutputWriteFailedError(CodePackerError):
    """Raised when the output file cannot be deleted or written."""

    path: Path | None = None
    message: str = "Failed to write output file."


@dataclass(frozen=True)
class GitCommandError(CodePackerError):
    """Raised when a git command fails."""

    command: str = ""
    returncode: int = 0
    stdout: str = ""
    stderr: str = ""
    message: str = "git command failed."


@dataclass(frozen=True)
class FileReadError(CodePackerError):
    """Raised when a single file cannot be read as UTF-8 text."""

    path: Path | None = None
    message: str = "Failed to read file."


@dataclass(frozen=True)
class DiffRetrievalError(CodePackerError):
    """Raised when the content or diff of a single changed file cannot be retrieved."""

    path: str = ""
    message: str = "Failed to retrieve diff."
