"""Append-only history of state-changing operations.

Each entry links the workspace state before an operation to the state after
it. Entries are JSON Lines in `.datavcs/logs/HEAD`; the id of the current
state is kept in `.datavcs/refs/HEAD`. Entries are never mutated or deleted.
"""

import json
import logging
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from datavcs.errors import DataVCSError, ErrorKind, ParseError
from datavcs.storage.fileutil import atomic_write_text
from datavcs.storage.metadata import current_user

logger = logging.getLogger(__name__)

STATE_PREFIX = "state:"


class ReflogOp(str, Enum):
    """Kind of operation recorded in the reflog."""

    ADD = "add"
    GET = "get"
    ROLLBACK = "rollback"


def format_state_id(state_id: str) -> str:
    return f"{STATE_PREFIX}{state_id}"


def parse_state_id(value: str) -> Optional[str]:
    """Strip the ``state:`` prefix; None if ``value`` is not a state reference."""
    if value.startswith(STATE_PREFIX):
        return value[len(STATE_PREFIX):]
    return None


def current_actor() -> str:
    return current_user()


@dataclass
class ReflogEntry:
    """One recorded transition between two workspace states."""

    actor: str
    op: ReflogOp
    new: str
    old: Optional[str] = None
    message: Optional[str] = None
    paths: List[str] = field(default_factory=list)
    ts: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def new_state_id(self) -> Optional[str]:
        return parse_state_id(self.new)

    @property
    def old_state_id(self) -> Optional[str]:
        return parse_state_id(self.old) if self.old else None

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"ts": self.ts, "actor": self.actor, "op": self.op.value}
        if self.message is not None:
            data["message"] = self.message
        if self.old is not None:
            data["old"] = self.old
        data["new"] = self.new
        if self.paths:
            data["paths"] = list(self.paths)
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ReflogEntry":
        try:
            return cls(
                ts=str(data["ts"]),
                actor=str(data["actor"]),
                op=ReflogOp(data["op"]),
                message=data.get("message"),
                old=data.get("old"),
                new=str(data["new"]),
                paths=[str(p) for p in data.get("paths", [])],
            )
        except (KeyError, TypeError, ValueError) as e:
            raise ParseError(f"Malformed reflog entry: {e}") from e

    def to_jsonl(self) -> str:
        return json.dumps(self.to_dict(), ensure_ascii=False, separators=(",", ":"))

    @classmethod
    def from_jsonl(cls, line: str) -> "ReflogEntry":
        try:
            data = json.loads(line)
        except json.JSONDecodeError as e:
            raise ParseError(f"Corrupted reflog line: {e}") from e
        if not isinstance(data, dict):
            raise ParseError("Reflog line must be a JSON object")
        return cls.from_dict(data)


class Reflog:
    """Reader/writer for the repository reflog.

    Attributes:
        head_ref_path: File holding the current state id
        log_path: JSON Lines file of entries (oldest first)
    """

    def __init__(self, head_ref_path: Union[str, Path], log_path: Union[str, Path]) -> None:
        self.head_ref_path = Path(head_ref_path)
        self.log_path = Path(log_path)

    def read_head(self) -> Optional[str]:
        """Current state id, or None before the first recorded operation."""
        if not self.head_ref_path.exists():
            return None
        state_id = self.head_ref_path.read_text(encoding="utf-8").strip()
        return state_id or None

    def update_head(self, state_id: str) -> None:
        self.head_ref_path.parent.mkdir(parents=True, exist_ok=True)
        atomic_write_text(self.head_ref_path, f"{state_id}\n")

    def append(self, entry: ReflogEntry) -> None:
        self.log_path.parent.mkdir(parents=True, exist_ok=True)
        with open(self.log_path, "a", encoding="utf-8") as f:
            f.write(entry.to_jsonl() + "\n")

    def record(
        self,
        actor: str,
        op: ReflogOp,
        message: Optional[str],
        old_state: Optional[str],
        new_state: str,
        paths: List[str],
    ) -> ReflogEntry:
        """Move HEAD to ``new_state`` and append the transition.

        Raises:
            DataVCSError: (IoError) If HEAD or the log cannot be written
        """
        entry = ReflogEntry(
            actor=actor,
            op=op,
            message=message,
            old=format_state_id(old_state) if old_state else None,
            new=format_state_id(new_state),
            paths=list(paths),
        )
        try:
            self.update_head(new_state)
            self.append(entry)
        except OSError as e:
            raise DataVCSError(
                f"Failed to record reflog entry: {e}", kind=ErrorKind.IO_ERROR
            ) from e
        logger.info(
            "Reflog: %s %s -> %s (%d path(s))",
            op.value,
            (old_state or "(empty)")[:8],
            new_state[:8],
            len(entry.paths),
        )
        return entry

    def read_all(self) -> List[ReflogEntry]:
        """All entries, oldest first.

        Raises:
            ParseError: If a line is corrupt
        """
        if not self.log_path.exists():
            return []
        entries = []
        with open(self.log_path, "r", encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    entries.append(ReflogEntry.from_jsonl(line))
                except ParseError as e:
                    raise ParseError(
                        f"{self.log_path}:{lineno}: {e.message}", path=self.log_path
                    ) from e
        return entries

    def read_recent(self) -> List[ReflogEntry]:
        """All entries, most recent first."""
        return list(reversed(self.read_all()))

    def recent(self, n: int) -> List[ReflogEntry]:
        return self.read_recent()[:n]

    def get_by_index(self, index: int) -> Optional[ReflogEntry]:
        """Entry at ``index`` counting from the most recent (0)."""
        entries = self.read_recent()
        if 0 <= index < len(entries):
            return entries[index]
        return None

    def __len__(self) -> int:
        return len(self.read_all())
