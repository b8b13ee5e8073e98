"""Storage layer for datavcs.

This module provides hashing, the content-addressable storage backend,
metadata sidecars, the repository manifest, workspace snapshots and the
reflog.
"""

from datavcs.storage.hashing import HashAlgorithm, Oid, hash_bytes, hash_file
from datavcs.storage.manifest import Manifest, ManifestEntry
from datavcs.storage.metadata import MetadataFormat, MetadataRecord
from datavcs.storage.object_store import StorageBackend
from datavcs.storage.reflog import Reflog, ReflogEntry, ReflogOp
from datavcs.storage.snapshots import SnapshotStore, WorkspaceState

__all__ = [
    "HashAlgorithm",
    "Oid",
    "hash_bytes",
    "hash_file",
    "Manifest",
    "ManifestEntry",
    "MetadataFormat",
    "MetadataRecord",
    "StorageBackend",
    "Reflog",
    "ReflogEntry",
    "ReflogOp",
    "SnapshotStore",
    "WorkspaceState",
]
