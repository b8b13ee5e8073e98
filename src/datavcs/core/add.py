"""The add transaction.

Adding is a batch operation: every expanded input path gets its own
:class:`FileResult`, and a failure on one path never aborts the others.
Only repository-level failures (unreadable manifest, malformed patterns,
nothing matched) are raised.

Sequence:
    1. expand inputs to concrete files
    2. capture the pre-transaction workspace state
    3. load (or create) the manifest
    4. add each file independently (see :func:`add_file`)
    5. upsert manifest entries for every tracked file, save once
    6. record a reflog entry if the workspace state changed
"""

import logging
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Sequence, Union

from datavcs.core.paths import expand_paths
from datavcs.core.results import FileResult, Outcome
from datavcs.core.transaction import TrackTransaction
from datavcs.errors import DataVCSError, ErrorKind
from datavcs.storage.hashing import HashAlgorithm
from datavcs.storage.manifest import Manifest, ManifestEntry
from datavcs.storage.metadata import (
    MetadataFormat,
    MetadataRecord,
    find_sidecar,
    sidecar_path,
)
from datavcs.storage.reflog import ReflogOp, current_actor

if TYPE_CHECKING:
    from datavcs.core.repository import Repository

logger = logging.getLogger(__name__)


def _previous_record(data_path: Path):
    """Existing sidecar for ``data_path`` as (record, path, format), or Nones.

    A sidecar that cannot be parsed counts as absent: it is overwritten by
    the new version.
    """
    found = find_sidecar(data_path)
    if found is None:
        return None, None, None
    path, fmt = found
    try:
        return MetadataRecord.load(path, fmt), path, fmt
    except DataVCSError as e:
        logger.warning("Replacing unreadable sidecar %s: %s", path, e)
        return None, path, fmt


def add_file(
    repo: "Repository",
    candidate: Union[str, Path],
    message: Optional[str] = None,
    algorithm: Optional[HashAlgorithm] = None,
    metadata_format: Optional[MetadataFormat] = None,
) -> FileResult:
    """Add a single file.

    Args:
        repo: Repository handle
        candidate: Path to add (absolute or relative to the repository root)
        message: Optional message stored in the sidecar
        algorithm: Hash algorithm override
        metadata_format: Sidecar format override

    Returns:
        ``COPIED`` if a new version was recorded, ``PRESENT`` if the sidecar
        already describes this content, or ``ERROR`` with the error kind
    """
    input_str = str(candidate)
    try:
        guarded = repo.guard.check(candidate)
    except DataVCSError as e:
        return FileResult.failure(input_str, e)

    previous, previous_path, previous_fmt = _previous_record(guarded.path)
    algo = algorithm or (previous.hash_algo if previous else None) or repo.config.hash_algorithm
    fmt = metadata_format or previous_fmt or repo.config.metadata_format

    try:
        record = MetadataRecord.from_file(guarded.resolved, message=message, algorithms=[algo])
    except DataVCSError as e:
        return FileResult.failure(input_str, e, guarded.relative)
    logger.debug("%s: %s (%d bytes)", guarded.relative, record.oid, record.size)

    if (
        previous is not None
        and previous.checksums.get(algo.value) == record.checksum
        and previous.size == record.size
    ):
        if repo.storage.exists(record.oid):
            return FileResult.success(
                input_str, Outcome.PRESENT, guarded.relative, guarded.path, record.size, record.oid
            )
        logger.info("%s: sidecar is current but object %s is missing", guarded.relative, record.oid)

    txn = TrackTransaction(
        repo.storage, record.oid, guarded.resolved, sidecar_path(guarded.path, fmt), fmt
    )
    try:
        txn.stage()
    except DataVCSError as e:
        return FileResult.failure(input_str, e, guarded.relative)

    try:
        txn.commit(record)
    except DataVCSError as e:
        txn.rollback()
        error = DataVCSError(e.message, kind=ErrorKind.METADATA_ERROR, hint=e.hint, path=e.path)
        return FileResult.failure(input_str, error, guarded.relative)

    return FileResult.success(
        input_str, Outcome.COPIED, guarded.relative, guarded.path, record.size, record.oid
    )


def add(
    repo: "Repository",
    paths: Sequence[Union[str, Path]],
    message: Optional[str] = None,
    algorithm: Optional[Union[str, HashAlgorithm]] = None,
    metadata_format: Optional[Union[str, MetadataFormat]] = None,
) -> List[FileResult]:
    """Track files in the repository.

    Args:
        repo: Repository handle
        paths: Files or glob patterns
        message: Optional message recorded in sidecars and the reflog
        algorithm: Hash algorithm override (otherwise the algorithm a file
            was previously tracked with, otherwise the configured default)
        metadata_format: Sidecar format override

    Returns:
        One result per expanded path, in expansion order

    Raises:
        InvalidPatternError: If a glob pattern is malformed
        NoFilesMatchedError: If the inputs expand to nothing
        ParseError: If the manifest exists but is corrupt
        DataVCSError: HashError for an unknown algorithm override
    """
    algo = HashAlgorithm.parse(algorithm) if algorithm is not None else None
    fmt = MetadataFormat.parse(metadata_format) if metadata_format is not None else None

    files = expand_paths(repo.root, paths, repo.ignore_rules, repo.excluded_dirs)

    manifest_existed = repo.manifest_path.exists()
    manifest = Manifest.load(repo.manifest_path) if manifest_existed else Manifest.new()
    old_state = repo.capture_state(manifest if manifest_existed else None)
    old_state_id = None if old_state.is_empty() else old_state.state_id()

    results = [add_file(repo, f, message, algo, fmt) for f in files]

    changed = False
    for result in results:
        if result.ok:
            entry = ManifestEntry(path=result.relative_path, oid=result.oid, size=result.size)
            changed = manifest.upsert(entry) or changed
    if changed:
        manifest.save(repo.manifest_path)

    copied = [r.relative_path for r in results if r.outcome is Outcome.COPIED]
    if copied:
        new_state = repo.capture_state(manifest)
        new_state_id = new_state.state_id()
        if new_state_id != old_state_id:
            repo.snapshots.save(new_state)
            if old_state_id is not None:
                repo.snapshots.save(old_state)
            repo.reflog.record(
                actor=current_actor(),
                op=ReflogOp.ADD,
                message=message,
                old_state=old_state_id,
                new_state=new_state_id,
                paths=copied,
            )

    failed = sum(1 for r in results if not r.ok)
    logger.info("add: %d of %d file(s) succeeded", len(results) - failed, len(results))
    return results
