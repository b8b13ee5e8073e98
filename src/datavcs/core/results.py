"""Per-file outcomes of batch operations.

Batch operations never raise on partial failure: they return one result per
expanded input path, with errors recorded in the result itself, so callers
can report "N of M succeeded".
"""

from collections import Counter
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Optional

from datavcs.errors import DataVCSError, ErrorKind
from datavcs.storage.hashing import Oid


class Outcome(str, Enum):
    COPIED = "copied"
    PRESENT = "present"
    ERROR = "error"


class FileStatus(str, Enum):
    UNTRACKED = "untracked"  # no sidecar
    ABSENT = "absent"  # sidecar exists, working file missing
    CURRENT = "current"  # working file matches sidecar
    UNSYNCED = "unsynced"  # working file differs from sidecar
    ERROR = "error"  # sidecar unreadable


@dataclass
class FileResult:
    """Result of adding or retrieving one file."""

    input: str
    outcome: Outcome
    relative_path: Optional[str] = None
    absolute_path: Optional[Path] = None
    size: int = 0
    oid: Optional[Oid] = None
    error: Optional[ErrorKind] = None
    error_message: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.outcome is not Outcome.ERROR

    @property
    def checksum(self) -> str:
        return self.oid.hex if self.oid else ""

    @classmethod
    def success(
        cls,
        input: str,
        outcome: Outcome,
        relative_path: str,
        absolute_path: Path,
        size: int,
        oid: Oid,
    ) -> "FileResult":
        return cls(
            input=input,
            outcome=outcome,
            relative_path=relative_path,
            absolute_path=absolute_path,
            size=size,
            oid=oid,
        )

    @classmethod
    def failure(
        cls, input: str, error: DataVCSError, relative_path: Optional[str] = None
    ) -> "FileResult":
        return cls(
            input=input,
            outcome=Outcome.ERROR,
            relative_path=relative_path,
            error=error.kind,
            error_message=str(error),
        )


@dataclass
class StatusResult:
    """Synchronization status of one tracked (or requested) path."""

    relative_path: str
    absolute_path: Path
    status: FileStatus
    size: int = 0
    oid: Optional[Oid] = None
    add_time: Optional[str] = None
    created_by: Optional[str] = None
    message: Optional[str] = None
    error: Optional[ErrorKind] = None
    error_message: Optional[str] = None


def summarize(results: Iterable[FileResult]) -> Dict[str, int]:
    """Count results by outcome, plus a ``total``."""
    counts = Counter(result.outcome.value for result in results)
    summary = {outcome.value: counts.get(outcome.value, 0) for outcome in Outcome}
    summary["total"] = sum(counts.values())
    return summary
