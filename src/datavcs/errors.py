"""Error types for datavcs.

Every failure carries an :class:`ErrorKind` so callers can branch on the kind
while still surfacing a human-readable message and optional hint at the
boundary. Batch operations (add, get, status) convert per-file errors into
result records; only repository-level failures are raised to the caller.
"""

from enum import Enum
from pathlib import Path
from typing import Optional, Union


class ErrorKind(str, Enum):
    """Closed set of failure kinds."""

    NOT_INITIALIZED = "not_initialized"
    NO_FILES_MATCHED = "no_files_matched"
    INVALID_PATTERN = "invalid_pattern"
    FILE_NOT_FOUND = "file_not_found"
    IS_DIRECTORY = "is_directory"
    FILE_OUTSIDE_REPO = "file_outside_repo"
    BROKEN_SYMLINK = "broken_symlink"
    PATH_ERROR = "path_error"
    PATH_TRAVERSAL = "path_traversal"
    IO_ERROR = "io_error"
    HASH_ERROR = "hash_error"
    STORAGE_ERROR = "storage_error"
    METADATA_ERROR = "metadata_error"
    PARSE_ERROR = "parse_error"
    NOT_TRACKED = "not_tracked"
    STORAGE_MISSING = "storage_missing"
    HASH_MISMATCH = "hash_mismatch"
    CONFIG_ERROR = "config_error"
    NOT_FOUND = "not_found"


class DataVCSError(Exception):
    """Structured datavcs error.

    Attributes:
        kind: Failure kind
        message: Human-readable description
        hint: Optional suggestion shown to the user (e.g. "check glob syntax")
        path: Path the error refers to, if any
    """

    default_kind = ErrorKind.IO_ERROR

    def __init__(
        self,
        message: str,
        kind: Optional[ErrorKind] = None,
        hint: Optional[str] = None,
        path: Optional[Union[str, Path]] = None,
    ) -> None:
        super().__init__(message)
        self.kind = kind or self.default_kind
        self.message = message
        self.hint = hint
        self.path = path

    def __str__(self) -> str:
        if self.hint:
            return f"{self.message} ({self.hint})"
        return self.message


class NotInitializedError(DataVCSError):
    """Raised when no datavcs control directory or configuration is found."""

    default_kind = ErrorKind.NOT_INITIALIZED


class NoFilesMatchedError(DataVCSError):
    """Raised when every input pattern expanded to nothing."""

    default_kind = ErrorKind.NO_FILES_MATCHED


class InvalidPatternError(DataVCSError):
    """Raised when a glob pattern is malformed."""

    default_kind = ErrorKind.INVALID_PATTERN


class ConfigError(DataVCSError):
    """Raised when the repository configuration is invalid."""

    default_kind = ErrorKind.CONFIG_ERROR


class ParseError(DataVCSError):
    """Raised when a manifest, sidecar, snapshot or reflog line is corrupt."""

    default_kind = ErrorKind.PARSE_ERROR


class StorageError(DataVCSError):
    """Raised when the storage backend cannot complete an I/O operation."""

    default_kind = ErrorKind.STORAGE_ERROR


class NotFoundError(DataVCSError):
    """Raised when a snapshot or reflog entry does not exist."""

    default_kind = ErrorKind.NOT_FOUND
