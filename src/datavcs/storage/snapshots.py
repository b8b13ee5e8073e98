"""Workspace snapshots.

A :class:`WorkspaceState` aggregates the repository manifest and every
metadata sidecar found under the repository root at one point in time. It is
content-addressed: its state id is the SHA-256 digest of its canonical JSON
form (sorted keys, no whitespace), so two states are the same iff their ids
match. Snapshots are stored as `.datavcs/state/snapshots/<id>.json` and
referenced from reflog entries.
"""

import json
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Union

from datavcs.constants import SKIPPED_DIRS, WORKSPACE_STATE_VERSION
from datavcs.errors import DataVCSError, ErrorKind, NotFoundError, ParseError
from datavcs.storage.fileutil import atomic_write_text
from datavcs.storage.hashing import HashAlgorithm, hash_bytes
from datavcs.storage.manifest import Manifest
from datavcs.storage.metadata import (
    MetadataFormat,
    MetadataRecord,
    data_path_for,
    format_of,
    is_sidecar,
)

logger = logging.getLogger(__name__)

# Fixed so that state ids stay comparable if the repository default changes
STATE_ID_ALGORITHM = HashAlgorithm.SHA256


@dataclass
class MetadataEntry:
    """A sidecar found in the workspace, keyed by its data file's path."""

    path: str
    format: MetadataFormat
    record: MetadataRecord

    def to_dict(self) -> Dict[str, Any]:
        return {
            "path": self.path,
            "format": self.format.value,
            "meta": self.record.to_dict(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetadataEntry":
        return cls(
            path=str(data["path"]),
            format=MetadataFormat.parse(data.get("format", "json")),
            record=MetadataRecord.from_dict(data["meta"]),
        )


class WorkspaceState:
    """In-memory snapshot of the manifest plus all metadata sidecars."""

    def __init__(
        self,
        manifest: Optional[Manifest] = None,
        metadata: Optional[List[MetadataEntry]] = None,
    ) -> None:
        self.version = WORKSPACE_STATE_VERSION
        self.manifest = manifest
        self.metadata = sorted(metadata or [], key=lambda e: (e.path, e.format.value))

    @classmethod
    def capture(
        cls,
        root: Union[str, Path],
        manifest: Optional[Manifest] = None,
        excluded_dirs: Sequence[Union[str, Path]] = (),
    ) -> "WorkspaceState":
        """Collect every sidecar under ``root``.

        Control directories (``.git``, ``.datavcs``) and ``excluded_dirs`` are
        skipped. Unreadable sidecars are logged and left out of the snapshot.
        """
        root = Path(root)
        excluded = {Path(os.path.abspath(d)) for d in excluded_dirs}
        entries: List[MetadataEntry] = []
        for dirpath, dirnames, filenames in os.walk(root):
            dirnames[:] = sorted(
                d
                for d in dirnames
                if d not in SKIPPED_DIRS
                and Path(os.path.abspath(dirpath)) / d not in excluded
            )
            for filename in sorted(filenames):
                if not is_sidecar(filename):
                    continue
                sidecar = Path(dirpath) / filename
                data_path = data_path_for(sidecar)
                if data_path is None:
                    continue
                try:
                    record = MetadataRecord.load(sidecar)
                except DataVCSError as e:
                    logger.warning("Skipping unreadable sidecar %s: %s", sidecar, e)
                    continue
                relative = data_path.relative_to(root).as_posix()
                entries.append(MetadataEntry(relative, format_of(sidecar), record))
        return cls(manifest=manifest, metadata=entries)

    def is_empty(self) -> bool:
        manifest_empty = self.manifest is None or self.manifest.is_empty()
        return manifest_empty and not self.metadata

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {"version": self.version}
        if self.manifest is not None:
            data["manifest"] = self.manifest.to_dict()
        data["metadata"] = [entry.to_dict() for entry in self.metadata]
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "WorkspaceState":
        try:
            if data.get("version") != WORKSPACE_STATE_VERSION:
                raise ParseError(f"Unsupported snapshot version: {data.get('version')}")
            manifest = None
            if data.get("manifest") is not None:
                manifest = Manifest.from_dict(data["manifest"])
            metadata = [MetadataEntry.from_dict(e) for e in data.get("metadata", [])]
        except ParseError:
            raise
        except (KeyError, TypeError, AttributeError, DataVCSError) as e:
            raise ParseError(f"Malformed snapshot: {e}") from e
        return cls(manifest=manifest, metadata=metadata)

    def canonical_json(self) -> str:
        return json.dumps(
            self.to_dict(),
            sort_keys=True,
            separators=(",", ":"),
            ensure_ascii=False,
        )

    def state_id(self) -> str:
        """Content address of this state."""
        return hash_bytes(self.canonical_json().encode("utf-8"), STATE_ID_ALGORITHM)

    def paths(self) -> List[str]:
        return [entry.path for entry in self.metadata]


class SnapshotStore:
    """Content-addressed store of serialized workspace states."""

    def __init__(self, snapshots_dir: Union[str, Path]) -> None:
        self.snapshots_dir = Path(snapshots_dir)

    def path_for(self, state_id: str) -> Path:
        return self.snapshots_dir / f"{state_id}.json"

    def save(self, state: WorkspaceState) -> str:
        """Persist ``state`` if not already stored.

        Returns:
            The state id

        Raises:
            DataVCSError: (IoError) If the snapshot cannot be written
        """
        state_id = state.state_id()
        path = self.path_for(state_id)
        if path.exists():
            return state_id
        try:
            self.snapshots_dir.mkdir(parents=True, exist_ok=True)
            atomic_write_text(path, json.dumps(state.to_dict(), indent=2, ensure_ascii=False))
        except OSError as e:
            raise DataVCSError(
                f"Failed to write snapshot {state_id}: {e}", kind=ErrorKind.IO_ERROR, path=path
            ) from e
        logger.debug("Saved snapshot %s", state_id)
        return state_id

    def load(self, state_id: str) -> WorkspaceState:
        """Load a stored state.

        Raises:
            NotFoundError: If no snapshot has this id
            ParseError: If the snapshot file is corrupt
        """
        path = self.path_for(state_id)
        if not path.is_file():
            raise NotFoundError(f"Snapshot not found: {state_id}")
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, UnicodeDecodeError, json.JSONDecodeError) as e:
            raise ParseError(f"Corrupted snapshot {state_id}: {e}", path=path) from e
        return WorkspaceState.from_dict(data)

    def exists(self, state_id: str) -> bool:
        return self.path_for(state_id).is_file()

    def list(self) -> List[str]:
        """Ids of all stored snapshots, sorted."""
        if not self.snapshots_dir.is_dir():
            return []
        return sorted(p.stem for p in self.snapshots_dir.glob("*.json"))
