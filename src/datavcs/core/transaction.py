"""Two-phase commit of one tracked file.

Phase one writes the content object to storage, phase two writes the
metadata sidecar. A sidecar is only ever left behind when its storage object
exists, so "metadata implies storage presence" holds even on failure.
"""

import logging
from pathlib import Path
from typing import Optional, Union

from datavcs.errors import DataVCSError, ErrorKind
from datavcs.storage.fileutil import atomic_write_bytes
from datavcs.storage.hashing import Oid
from datavcs.storage.metadata import MetadataFormat, MetadataRecord, sidecar_path
from datavcs.storage.object_store import StorageBackend

logger = logging.getLogger(__name__)


class TrackTransaction:
    """Stage content in storage, then commit the sidecar.

    Example:
        >>> txn = TrackTransaction(storage, record.oid, resolved, sidecar, fmt)
        >>> txn.stage()
        >>> try:
        ...     txn.commit(record)
        ... except DataVCSError:
        ...     txn.rollback()
        ...     raise

    Attributes:
        wrote_object: True if :meth:`stage` copied content into storage
        committed: True once the sidecar has been written
    """

    def __init__(
        self,
        storage: StorageBackend,
        oid: Oid,
        source: Union[str, Path],
        sidecar: Union[str, Path],
        fmt: MetadataFormat,
    ) -> None:
        self.storage = storage
        self.oid = oid
        self.source = Path(source)
        self.sidecar = Path(sidecar)
        self.fmt = fmt
        self.wrote_object = False
        self.committed = False
        self._sidecar_existed = False
        self._previous: Optional[bytes] = None
        self._save_attempted = False

    def stage(self) -> bool:
        """Copy the source into storage unless the object is already there.

        Returns:
            True if an object was written

        Raises:
            StorageError: If the copy fails
        """
        if self.storage.exists(self.oid):
            logger.debug("Object %s already stored", self.oid)
            return False
        self.storage.store(self.oid, self.source)
        self.wrote_object = True
        return True

    def commit(self, record: MetadataRecord) -> None:
        """Write the sidecar for ``record``.

        A sidecar of the other format for the same file is removed once the
        new one is in place.

        Raises:
            DataVCSError: (MetadataError) If the sidecar cannot be written
        """
        sidecar_existed = self.sidecar.exists()
        previous = None
        if sidecar_existed:
            try:
                previous = self.sidecar.read_bytes()
            except OSError as e:
                raise DataVCSError(
                    f"Failed to read metadata {self.sidecar}: {e}",
                    kind=ErrorKind.METADATA_ERROR,
                    path=self.sidecar,
                ) from e

        self._sidecar_existed = sidecar_existed
        self._previous = previous
        self._save_attempted = True
        record.save(self.sidecar, self.fmt)
        self.committed = True
        logger.debug("Wrote sidecar %s", self.sidecar)

        data_path = self.sidecar.with_name(self.sidecar.name[: -len(self.fmt.suffix)])
        for other in MetadataFormat:
            if other is self.fmt:
                continue
            stale = sidecar_path(data_path, other)
            if stale.exists():
                try:
                    stale.unlink()
                except OSError as e:
                    logger.warning("Could not remove stale sidecar %s: %s", stale, e)

    def rollback(self) -> None:
        """Undo the sidecar write. Storage objects are left in place.

        Nothing is touched unless :meth:`commit` got as far as writing.
        Failures are logged, never raised.
        """
        if not self._save_attempted:
            return
        try:
            if self._sidecar_existed:
                if self._previous is not None:
                    atomic_write_bytes(self.sidecar, self._previous)
                    logger.debug("Restored previous sidecar %s", self.sidecar)
            elif self.sidecar.exists():
                self.sidecar.unlink()
                logger.debug("Removed partial sidecar %s", self.sidecar)
        except OSError as e:
            logger.warning("Rollback of %s failed: %s", self.sidecar, e)
        self.committed = False
