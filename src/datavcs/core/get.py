"""Retrieval of tracked files and working-tree status.

Retrieval is self-verifying: content is copied from storage into a temp file
next to the destination, re-hashed, and only renamed into place when the
digest matches the sidecar.
"""

import logging
import os
import tempfile
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Union

from datavcs.core.paths import expand_tracked, find_tracked
from datavcs.core.results import FileResult, FileStatus, Outcome, StatusResult
from datavcs.errors import DataVCSError, ErrorKind
from datavcs.storage.hashing import hash_file
from datavcs.storage.metadata import MetadataRecord, find_sidecar

if TYPE_CHECKING:
    from datavcs.core.repository import Repository

logger = logging.getLogger(__name__)


def _matches(path: Path, record: MetadataRecord) -> bool:
    """True if the file at ``path`` has the recorded size and digest."""
    current = MetadataRecord.from_file(path, algorithms=[record.hash_algo])
    return current.size == record.size and current.checksum == record.checksum


def _read_umask() -> int:
    # os.umask can only be read by setting it; called once at import time
    umask = os.umask(0o022)
    os.umask(umask)
    return umask


# mkstemp creates files as 0600; restored files get the usual umask mode
DEFAULT_FILE_MODE = 0o666 & ~_read_umask()


def _retrieve(repo: "Repository", record: MetadataRecord, dest: Path) -> None:
    """Copy the object for ``record`` to ``dest`` through a verified temp file.

    Raises:
        DataVCSError: HashMismatch, StorageError or IoError
    """
    try:
        fd, tmp_name = tempfile.mkstemp(dir=dest.parent, prefix=f".tmp_{dest.name}_")
        os.close(fd)
    except OSError as e:
        raise DataVCSError(
            f"Cannot create {dest}: {e}", kind=ErrorKind.IO_ERROR, path=dest
        ) from e

    tmp_path = Path(tmp_name)
    try:
        repo.storage.copy_to(record.oid, tmp_path)
        digest = hash_file(tmp_path, record.hash_algo)
        if digest != record.checksum:
            raise DataVCSError(
                f"Hash mismatch for {dest}: expected {record.checksum}, got {digest}",
                kind=ErrorKind.HASH_MISMATCH,
                hint="the stored object is corrupt",
                path=dest,
            )
        os.chmod(tmp_path, DEFAULT_FILE_MODE)
        os.replace(tmp_path, dest)
    except OSError as e:
        tmp_path.unlink(missing_ok=True)
        raise DataVCSError(
            f"Failed to write {dest}: {e}", kind=ErrorKind.IO_ERROR, path=dest
        ) from e
    except DataVCSError:
        tmp_path.unlink(missing_ok=True)
        raise


def get_file(repo: "Repository", candidate: Union[str, Path]) -> FileResult:
    """Restore one tracked file from storage.

    Returns:
        ``PRESENT`` if the working file already matches, ``COPIED`` after a
        verified retrieval, or ``ERROR`` with the error kind
    """
    input_str = str(candidate)
    try:
        dest = repo.guard.check_destination(candidate)
    except DataVCSError as e:
        return FileResult.failure(input_str, e)

    found = find_sidecar(dest.path)
    if found is None:
        error = DataVCSError(
            f"File is not tracked: {dest.relative}",
            kind=ErrorKind.NOT_TRACKED,
            hint="run 'datavcs add' first",
            path=dest.path,
        )
        return FileResult.failure(input_str, error, dest.relative)

    try:
        record = MetadataRecord.load(*found)
        if not repo.storage.exists(record.oid):
            raise DataVCSError(
                f"Object {record.oid} for {dest.relative} is missing from storage",
                kind=ErrorKind.STORAGE_MISSING,
                path=repo.storage.path_for(record.oid),
            )
        if dest.path.is_file() and _matches(dest.path, record):
            return FileResult.success(
                input_str, Outcome.PRESENT, dest.relative, dest.path, record.size, record.oid
            )
        _retrieve(repo, record, dest.path)
    except DataVCSError as e:
        return FileResult.failure(input_str, e, dest.relative)

    logger.debug("Restored %s (%s)", dest.relative, record.oid)
    return FileResult.success(
        input_str, Outcome.COPIED, dest.relative, dest.path, record.size, record.oid
    )


def get(repo: "Repository", paths: Sequence[Union[str, Path]]) -> List[FileResult]:
    """Materialize tracked files in the working tree.

    The workspace state is not changed (sidecars and the manifest are only
    read), so nothing is recorded in the reflog.

    Raises:
        InvalidPatternError: If a glob pattern is malformed
        NoFilesMatchedError: If the inputs match no tracked file
    """
    files = expand_tracked(repo.root, paths, repo.excluded_dirs)
    results = [get_file(repo, f) for f in files]
    failed = sum(1 for r in results if not r.ok)
    logger.info("get: %d of %d file(s) succeeded", len(results) - failed, len(results))
    return results


def file_status(repo: "Repository", candidate: Union[str, Path]) -> StatusResult:
    """Classify one path; never writes anything."""
    path = repo.guard.absolute(candidate)
    try:
        relative = repo.guard.relative(path)
    except DataVCSError as e:
        return StatusResult(
            str(candidate), path, FileStatus.ERROR, error=e.kind, error_message=str(e)
        )

    found = find_sidecar(path)
    if found is None:
        return StatusResult(relative, path, FileStatus.UNTRACKED)

    try:
        record = MetadataRecord.load(*found)
    except DataVCSError as e:
        return StatusResult(
            relative, path, FileStatus.ERROR, error=e.kind, error_message=str(e)
        )

    result = StatusResult(
        relative,
        path,
        FileStatus.ABSENT,
        size=record.size,
        oid=record.oid,
        add_time=record.add_time,
        created_by=record.created_by,
        message=record.message,
    )
    if not path.exists():
        return result
    try:
        result.status = FileStatus.CURRENT if _matches(path, record) else FileStatus.UNSYNCED
    except DataVCSError as e:
        result.status = FileStatus.ERROR
        result.error = e.kind
        result.error_message = str(e)
    return result


def status(
    repo: "Repository", paths: Optional[Sequence[Union[str, Path]]] = None
) -> List[StatusResult]:
    """Status of the given paths, or of every tracked file when none are given.

    Raises:
        InvalidPatternError: If a glob pattern is malformed
        NoFilesMatchedError: If explicit patterns match nothing
    """
    files = (
        expand_tracked(repo.root, paths, repo.excluded_dirs)
        if paths
        else find_tracked(repo.root, repo.excluded_dirs)
    )
    return [file_status(repo, f) for f in files]
