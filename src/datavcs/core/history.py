"""Reflog browsing and rollback.

A rollback restores the sidecars and manifest captured in an earlier
workspace snapshot. Data files are not touched: run ``get`` afterwards to
materialize the restored versions.
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import TYPE_CHECKING, List, Optional, Union

from datavcs.core.paths import find_tracked
from datavcs.errors import DataVCSError, ErrorKind, NotFoundError
from datavcs.storage.metadata import MetadataFormat, sidecar_path
from datavcs.storage.reflog import ReflogEntry, ReflogOp, current_actor, parse_state_id
from datavcs.storage.snapshots import WorkspaceState

if TYPE_CHECKING:
    from datavcs.core.repository import Repository

logger = logging.getLogger(__name__)


@dataclass
class LogEntry:
    """A reflog entry with its position (0 = most recent)."""

    index: int
    entry: ReflogEntry


def log(repo: "Repository", limit: Optional[int] = None) -> List[LogEntry]:
    """Reflog entries, most recent first.

    Raises:
        ParseError: If the reflog is corrupt
    """
    entries = repo.reflog.read_recent()
    if limit is not None:
        entries = entries[:limit]
    return [LogEntry(index=i, entry=entry) for i, entry in enumerate(entries)]


def resolve_target(repo: "Repository", target: Union[int, str]) -> str:
    """Turn a reflog index, a state id or a unique state id prefix into a state id.

    Raises:
        NotFoundError: If the target does not name a stored snapshot
    """
    if isinstance(target, int) or str(target).isdigit():
        index = int(target)
        entry = repo.reflog.get_by_index(index)
        if entry is None or entry.new_state_id is None:
            raise NotFoundError(
                f"No reflog entry at index {index}", hint="see 'datavcs log'"
            )
        return entry.new_state_id

    value = str(target)
    state_id = parse_state_id(value) or value
    if repo.snapshots.exists(state_id):
        return state_id
    matches = [s for s in repo.snapshots.list() if s.startswith(state_id)]
    if len(matches) == 1:
        return matches[0]
    if len(matches) > 1:
        raise NotFoundError(f"Ambiguous state id prefix: {state_id}")
    raise NotFoundError(f"Snapshot not found: {state_id}", hint="see 'datavcs log'")


def _restore(repo: "Repository", state: WorkspaceState) -> List[str]:
    """Make the sidecars and manifest on disk match ``state``.

    Returns:
        Relative paths whose sidecar was written or removed
    """
    changed = []
    wanted = {}
    for item in state.metadata:
        wanted[(item.path, item.format)] = item.record

    for (relative, fmt), record in wanted.items():
        target = sidecar_path(repo.root / relative, fmt)
        if target.is_file() and target.read_text(encoding="utf-8") == record.dumps(fmt):
            continue
        target.parent.mkdir(parents=True, exist_ok=True)
        record.save(target, fmt)
        changed.append(relative)

    for data_path in find_tracked(repo.root, repo.excluded_dirs):
        relative = data_path.relative_to(repo.root).as_posix()
        for fmt in MetadataFormat:
            sidecar = sidecar_path(data_path, fmt)
            if (relative, fmt) not in wanted and sidecar.exists():
                sidecar.unlink()
                logger.debug("Removed sidecar %s", sidecar)
                if relative not in changed:
                    changed.append(relative)

    if state.manifest is not None:
        state.manifest.save(repo.manifest_path)
    elif repo.manifest_path.exists():
        repo.manifest_path.unlink()
    return sorted(changed)


def rollback(repo: "Repository", target: Union[int, str]) -> Optional[ReflogEntry]:
    """Restore the workspace metadata to an earlier state.

    Args:
        repo: Repository handle
        target: Reflog index (0 = most recent), state id, ``state:<id>`` or a
            unique state id prefix

    Returns:
        The recorded ``rollback`` reflog entry, or None if the workspace was
        already in the target state

    Raises:
        NotFoundError: If the target is unknown
        DataVCSError: (IoError) If sidecars or the manifest cannot be written
    """
    state_id = resolve_target(repo, target)
    state = repo.snapshots.load(state_id)

    current = repo.capture_state()
    current_id = None if current.is_empty() else current.state_id()
    if current_id == state_id:
        logger.info("Already at state %s", state_id[:8])
        return None
    if current_id is not None:
        repo.snapshots.save(current)

    try:
        changed = _restore(repo, state)
    except OSError as e:
        raise DataVCSError(
            f"Rollback to {state_id[:8]} failed: {e}", kind=ErrorKind.IO_ERROR
        ) from e

    new_state = repo.capture_state()
    new_id = repo.snapshots.save(new_state)
    if new_id != state_id:
        logger.warning("Restored state %s differs from target %s", new_id[:8], state_id[:8])
    return repo.reflog.record(
        actor=current_actor(),
        op=ReflogOp.ROLLBACK,
        message=f"rollback to {state_id[:8]}",
        old_state=current_id,
        new_state=new_id,
        paths=changed,
    )
