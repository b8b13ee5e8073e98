"""Content-addressable storage backend for datavcs.

File bodies are stored under the storage root at a path derived from their
OID, sharded by digest prefix to bound directory fan-out:

    <storage_root>/<algorithm>/<hex[:2]>/<hex[2:]>

Storage is content-addressed, so writing the same OID twice is idempotent.
Callers check :meth:`StorageBackend.exists` first to avoid redundant copies,
but :meth:`StorageBackend.store` is still correct on an already-present OID.
"""

import logging
import os
import shutil
import tempfile
from pathlib import Path
from typing import BinaryIO, Callable, Iterator, Optional, Union

from datavcs.constants import HASH_CHUNK_SIZE
from datavcs.errors import StorageError
from datavcs.storage.hashing import HashAlgorithm, Oid

logger = logging.getLogger(__name__)


class StorageBackend:
    """Content-addressable byte store keyed by (algorithm, digest).

    Attributes:
        root: Storage root directory
        permissions: Mode applied to newly written objects, if configured
        group: Group ownership applied to newly written objects, if configured

    Example:
        >>> backend = StorageBackend(Path("/shared/storage"))
        >>> backend.store(oid, Path("data.csv"))
        >>> assert backend.exists(oid)
    """

    def __init__(
        self,
        root: Union[str, Path],
        permissions: Optional[int] = None,
        group: Optional[str] = None,
    ) -> None:
        self.root = Path(root)
        self.permissions = permissions
        self.group = group

    def path_for(self, oid: Oid) -> Path:
        """Get the filesystem path of an object."""
        return self.root / oid.storage_subpath()

    def exists(self, oid: Oid) -> bool:
        """Check whether an object is present."""
        return self.path_for(oid).is_file()

    def read(self, oid: Oid) -> Optional[bytes]:
        """Read an object's bytes.

        Returns:
            Object content, or None if the object is missing

        Raises:
            StorageError: If the object exists but cannot be read
        """
        path = self.path_for(oid)
        if not path.is_file():
            return None
        try:
            return path.read_bytes()
        except OSError as e:
            raise StorageError(f"Failed to read object {oid}: {e}", path=path) from e

    def store(self, oid: Oid, source_path: Union[str, Path]) -> Path:
        """Copy a file's content into the backend under ``oid``.

        Args:
            oid: Identifier of the content (computed by the caller)
            source_path: File to copy

        Returns:
            Path of the stored object

        Raises:
            StorageError: On any I/O failure
        """

        def write(dest: BinaryIO) -> None:
            with open(source_path, "rb") as src:
                shutil.copyfileobj(src, dest, HASH_CHUNK_SIZE)

        path = self._write_atomic(oid, write)
        logger.debug("Stored %s from %s", oid, source_path)
        return path

    def store_bytes(self, oid: Oid, data: bytes) -> Path:
        """Write an in-memory buffer into the backend under ``oid``.

        Raises:
            StorageError: On any I/O failure
        """
        path = self._write_atomic(oid, lambda dest: dest.write(data))
        logger.debug("Stored %s from buffer (%d bytes)", oid, len(data))
        return path

    def replace(self, oid: Oid, source_path: Union[str, Path]) -> Path:
        """Atomically overwrite an object, e.g. to repair a corrupt copy."""
        logger.info("Replacing stored object %s", oid)
        return self.store(oid, source_path)

    def copy_to(self, oid: Oid, dest: Union[str, Path]) -> None:
        """Stream an object's content into ``dest``.

        Raises:
            StorageError: If the object is missing or the copy fails
        """
        path = self.path_for(oid)
        if not path.is_file():
            raise StorageError(f"Object not found in storage: {oid}", path=path)
        try:
            with open(path, "rb") as src, open(dest, "wb") as dst:
                shutil.copyfileobj(src, dst, HASH_CHUNK_SIZE)
        except OSError as e:
            raise StorageError(f"Failed to copy {oid} to {dest}: {e}", path=dest) from e

    def remove(self, oid: Oid) -> bool:
        """Best-effort delete of an object.

        Objects may be shared by several tracked paths; callers decide when
        removal is safe.

        Returns:
            True if an object was removed
        """
        path = self.path_for(oid)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            logger.warning("Could not remove stored object %s: %s", oid, e)
            return False
        logger.debug("Removed stored object %s", oid)
        return True

    def list_oids(self) -> Iterator[Oid]:
        """Enumerate stored objects (read-only)."""
        for algorithm in HashAlgorithm:
            algo_dir = self.root / algorithm.value
            if not algo_dir.is_dir():
                continue
            for shard in sorted(algo_dir.iterdir()):
                if not shard.is_dir():
                    continue
                for item in sorted(shard.iterdir()):
                    hex_digest = shard.name + item.name
                    if item.name.startswith(".tmp_"):
                        continue
                    if len(hex_digest) != algorithm.hex_length:
                        continue
                    yield Oid(algorithm, hex_digest)

    def _write_atomic(self, oid: Oid, write: Callable[[BinaryIO], object]) -> Path:
        """Write an object through a temp file and an atomic rename."""
        path = self.path_for(oid)
        try:
            # exist_ok tolerates concurrent creation by another writer
            path.parent.mkdir(parents=True, exist_ok=True)
            tmp_fd, tmp_path = tempfile.mkstemp(
                dir=path.parent,
                prefix=".tmp_",
                suffix=".obj",
            )
        except OSError as e:
            raise StorageError(f"Failed to prepare storage for {oid}: {e}", path=path) from e

        try:
            with os.fdopen(tmp_fd, "wb") as f:
                write(f)
                f.flush()
                os.fsync(f.fileno())
            self._apply_ownership(Path(tmp_path))
            os.replace(tmp_path, path)
        except (OSError, StorageError) as e:
            if os.path.exists(tmp_path):
                os.unlink(tmp_path)
            if isinstance(e, StorageError):
                raise
            raise StorageError(f"Failed to store {oid}: {e}", path=path) from e
        return path

    def _apply_ownership(self, path: Path) -> None:
        if self.permissions is not None:
            os.chmod(path, self.permissions)
        if self.group is not None:
            try:
                shutil.chown(path, group=self.group)
            except LookupError as e:
                raise StorageError(
                    f"Group not found: {self.group}",
                    hint="check the 'group' setting in config.yaml",
                    path=path,
                ) from e
