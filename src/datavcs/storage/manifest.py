"""Repository manifest (lock-file).

The manifest maps every tracked relative path to the OID and size of its
current content. It is one JSON file in the control directory:

{
    "version": 1,
    "entries": [
        {"path": "data/raw.csv", "oid": "sha256:4d1981...", "size": 18},
        ...
    ]
}

Insertion order is kept for stable iteration; at most one entry exists per
path and upserts replace in place.
"""

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from datavcs.constants import MANIFEST_VERSION
from datavcs.errors import DataVCSError, ErrorKind, ParseError
from datavcs.storage.fileutil import atomic_write_text
from datavcs.storage.hashing import Oid

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ManifestEntry:
    """One tracked path: POSIX relative path, content OID and byte size."""

    path: str
    oid: Oid
    size: int

    def to_dict(self) -> Dict[str, Any]:
        return {"path": self.path, "oid": str(self.oid), "size": self.size}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ManifestEntry":
        try:
            size = data["size"]
            if isinstance(size, bool) or not isinstance(size, int) or size < 0:
                raise ParseError(f"Invalid size for {data.get('path')}: {size!r}")
            return cls(path=str(data["path"]), oid=Oid.parse(data["oid"]), size=size)
        except ParseError:
            raise
        except (KeyError, TypeError, AttributeError, DataVCSError) as e:
            raise ParseError(f"Malformed manifest entry {data!r}: {e}") from e


class Manifest:
    """Ordered set of :class:`ManifestEntry` records, one per path."""

    def __init__(self, entries: Optional[List[ManifestEntry]] = None) -> None:
        self.version = MANIFEST_VERSION
        self._entries: Dict[str, ManifestEntry] = {}
        for entry in entries or []:
            self.upsert(entry)

    @classmethod
    def new(cls) -> "Manifest":
        """Create an empty manifest."""
        return cls()

    @classmethod
    def load(cls, path: Union[str, Path]) -> "Manifest":
        """Load a manifest file.

        A corrupt or unreadable file is a hard error; callers must never fall
        back to an empty manifest in that case.

        Raises:
            ParseError: If the file is missing, unreadable or corrupt
        """
        path = Path(path)
        try:
            text = path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            raise ParseError(f"Failed to read manifest {path}: {e}", path=path) from e
        try:
            data = json.loads(text)
        except json.JSONDecodeError as e:
            raise ParseError(f"Corrupted manifest {path}: {e}", path=path) from e
        return cls.from_dict(data)

    @classmethod
    def load_or_new(cls, path: Union[str, Path]) -> "Manifest":
        """Load the manifest, or start an empty one only if the file is absent."""
        path = Path(path)
        if not path.exists():
            logger.debug("No manifest at %s, starting empty", path)
            return cls.new()
        return cls.load(path)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "Manifest":
        if not isinstance(data, dict):
            raise ParseError("Manifest must be a mapping")
        version = data.get("version")
        if version != MANIFEST_VERSION:
            raise ParseError(f"Unsupported manifest version: {version}")
        entries = data.get("entries", [])
        if not isinstance(entries, list):
            raise ParseError("Manifest entries must be a list")
        manifest = cls()
        for raw in entries:
            if not isinstance(raw, dict):
                raise ParseError(f"Malformed manifest entry: {raw!r}")
            manifest.upsert(ManifestEntry.from_dict(raw))
        return manifest

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": self.version,
            "entries": [entry.to_dict() for entry in self._entries.values()],
        }

    def upsert(self, entry: ManifestEntry) -> bool:
        """Insert or replace the entry for ``entry.path`` (order preserved).

        Returns:
            True if the manifest changed
        """
        existing = self._entries.get(entry.path)
        if existing == entry:
            return False
        self._entries[entry.path] = entry
        return True

    def get(self, path: str) -> Optional[ManifestEntry]:
        return self._entries.get(path)

    def remove(self, path: str) -> bool:
        """Drop the entry for ``path``; returns True if one existed."""
        return self._entries.pop(path, None) is not None

    def save(self, path: Union[str, Path]) -> None:
        """Atomically rewrite the whole manifest file.

        Raises:
            DataVCSError: (IoError) If the write fails
        """
        path = Path(path)
        text = json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            atomic_write_text(path, text)
        except OSError as e:
            raise DataVCSError(
                f"Failed to write manifest {path}: {e}", kind=ErrorKind.IO_ERROR, path=path
            ) from e
        logger.info("Saved manifest with %d entries to %s", len(self), path)

    @property
    def entries(self) -> List[ManifestEntry]:
        return list(self._entries.values())

    def is_empty(self) -> bool:
        return not self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ManifestEntry]:
        return iter(list(self._entries.values()))

    def __contains__(self, path: object) -> bool:
        return path in self._entries

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Manifest):
            return NotImplemented
        return self.entries == other.entries
