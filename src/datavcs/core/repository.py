"""Repository handle.

All repository state (configuration, storage backend, manifest, snapshots,
reflog) hangs off an explicit :class:`Repository` object that is passed to
every operation, so several repositories can be used in one process.
"""

import logging
import os
from pathlib import Path
from typing import List, Optional, Sequence, Union

from datavcs.config import RepoConfig
from datavcs.constants import (
    CONFIG_FILE,
    CONTROL_DIR,
    DEFAULT_IGNORE_PATTERNS,
    DEFAULT_STORAGE_DIR,
    HEAD_FILE,
    IGNORE_FILE,
    LOGS_DIR,
    MANIFEST_FILE,
    REFS_DIR,
    SNAPSHOTS_DIR,
    STATE_DIR,
)
from datavcs.core.paths import IgnoreRules, PathGuard
from datavcs.errors import ConfigError, DataVCSError, ErrorKind, NotInitializedError
from datavcs.storage.hashing import HashAlgorithm
from datavcs.storage.manifest import Manifest
from datavcs.storage.metadata import MetadataFormat
from datavcs.storage.object_store import StorageBackend
from datavcs.storage.reflog import Reflog
from datavcs.storage.snapshots import SnapshotStore, WorkspaceState

logger = logging.getLogger(__name__)


class Repository:
    """A datavcs working tree and its control directory.

    Attributes:
        root: Repository root (absolute)
        control_dir: ``<root>/.datavcs``
        config: Loaded configuration
        storage: Content-addressed storage backend
        snapshots: Workspace state snapshots
        reflog: Operation history
        guard: Path validator bound to ``root``
    """

    def __init__(self, root: Union[str, Path], config: RepoConfig) -> None:
        self.root = Path(os.path.abspath(root))
        self.control_dir = self.root / CONTROL_DIR
        self.config = config
        self.storage = StorageBackend(
            config.storage_path(self.root),
            permissions=config.permissions,
            group=config.group,
        )
        self.snapshots = SnapshotStore(self.control_dir / STATE_DIR / SNAPSHOTS_DIR)
        self.reflog = Reflog(
            self.control_dir / REFS_DIR / HEAD_FILE,
            self.control_dir / LOGS_DIR / HEAD_FILE,
        )
        self.guard = PathGuard(self.root, excluded_dirs=self.excluded_dirs)

    def __repr__(self) -> str:
        return f"Repository({str(self.root)!r})"

    @property
    def config_path(self) -> Path:
        return self.control_dir / CONFIG_FILE

    @property
    def manifest_path(self) -> Path:
        return self.control_dir / MANIFEST_FILE

    @property
    def excluded_dirs(self) -> List[Path]:
        """Directories inside the tree that never hold tracked files."""
        return [Path(os.path.abspath(self.storage.root))]

    @property
    def ignore_rules(self) -> IgnoreRules:
        return IgnoreRules.load(self.root)

    @classmethod
    def init(
        cls,
        root: Union[str, Path],
        storage_dir: Optional[Union[str, Path]] = None,
        hash_algorithm: Optional[Union[str, HashAlgorithm]] = None,
        metadata_format: Optional[Union[str, MetadataFormat]] = None,
        permissions: Optional[int] = None,
        group: Optional[str] = None,
    ) -> "Repository":
        """Create (or re-open) a repository at ``root``.

        Options left as None keep the existing configuration, or take the
        defaults for a new repository. Re-initializing with the same settings
        is a no-op.

        Args:
            root: Repository root directory (created if missing)
            storage_dir: Storage backend root
            hash_algorithm: Default hash algorithm
            metadata_format: Default sidecar format
            permissions: Mode bits for stored objects
            group: Group ownership for stored objects

        Returns:
            The repository handle

        Raises:
            ConfigError: If a configuration with different settings exists
        """
        root = Path(os.path.abspath(root))
        control_dir = root / CONTROL_DIR
        config_path = control_dir / CONFIG_FILE

        existing = RepoConfig.load(config_path) if config_path.exists() else None
        base = existing or RepoConfig(storage_dir=DEFAULT_STORAGE_DIR)
        config = RepoConfig.from_dict(
            {
                "storage_dir": str(storage_dir) if storage_dir is not None else base.storage_dir,
                "hash_algorithm": hash_algorithm or base.hash_algorithm,
                "metadata_format": metadata_format or base.metadata_format,
                "permissions": permissions if permissions is not None else base.permissions,
                "group": group if group is not None else base.group,
            }
        )

        if existing is not None:
            if existing.to_dict() != config.to_dict():
                raise ConfigError(
                    f"Repository at {root} is already initialized with different settings",
                    hint=f"edit {CONTROL_DIR}/{CONFIG_FILE} manually",
                )
            logger.info("Repository already initialized at %s", root)
            return cls(root, existing)

        try:
            for directory in (
                control_dir / STATE_DIR / SNAPSHOTS_DIR,
                control_dir / REFS_DIR,
                control_dir / LOGS_DIR,
                config.storage_path(root),
            ):
                directory.mkdir(parents=True, exist_ok=True)
            ignore_file = root / IGNORE_FILE
            if not ignore_file.exists():
                ignore_file.write_text(
                    "# datavcs ignore patterns\n" + "\n".join(DEFAULT_IGNORE_PATTERNS) + "\n",
                    encoding="utf-8",
                )
        except OSError as e:
            raise DataVCSError(
                f"Failed to initialize repository at {root}: {e}",
                kind=ErrorKind.IO_ERROR,
                path=root,
            ) from e
        config.save(config_path)
        logger.info("Initialized repository at %s", root)
        return cls(root, config)

    @classmethod
    def open(cls, root: Union[str, Path]) -> "Repository":
        """Open the repository rooted exactly at ``root``.

        Raises:
            NotInitializedError: If ``root`` has no control directory
            ConfigError: If the configuration is invalid
        """
        root = Path(os.path.abspath(root))
        if not (root / CONTROL_DIR).is_dir():
            raise NotInitializedError(
                f"Not a datavcs repository (no {CONTROL_DIR}/ found in {root})",
                hint="run 'datavcs init' first",
            )
        return cls(root, RepoConfig.load(root / CONTROL_DIR / CONFIG_FILE))

    @classmethod
    def discover(cls, start: Optional[Union[str, Path]] = None) -> "Repository":
        """Open the nearest repository at or above ``start`` (default: cwd).

        Raises:
            NotInitializedError: If no ancestor has a control directory
        """
        current = Path(os.path.abspath(start or Path.cwd()))
        for candidate in (current, *current.parents):
            if (candidate / CONTROL_DIR).is_dir():
                return cls.open(candidate)
        raise NotInitializedError(
            f"Not a datavcs repository (or any parent up to /): {current}",
            hint="run 'datavcs init' first",
        )

    def load_manifest(self) -> Manifest:
        """Load the manifest, or an empty one if none was saved yet.

        Raises:
            ParseError: If the manifest exists but is corrupt
        """
        return Manifest.load_or_new(self.manifest_path)

    def capture_state(self, manifest: Optional[Manifest] = None) -> WorkspaceState:
        """Snapshot the manifest and every sidecar in the working tree.

        The saved manifest is used when none is passed; a repository without a
        manifest file captures a state with no manifest.
        """
        if manifest is None and self.manifest_path.exists():
            manifest = Manifest.load(self.manifest_path)
        return WorkspaceState.capture(
            self.root, manifest=manifest, excluded_dirs=self.excluded_dirs
        )

    def add(
        self,
        paths: Sequence[Union[str, Path]],
        message: Optional[str] = None,
        algorithm: Optional[Union[str, HashAlgorithm]] = None,
        metadata_format: Optional[Union[str, MetadataFormat]] = None,
    ):
        from datavcs.core.add import add

        return add(self, paths, message=message, algorithm=algorithm, metadata_format=metadata_format)

    def get(self, paths: Sequence[Union[str, Path]]):
        from datavcs.core.get import get

        return get(self, paths)

    def status(self, paths: Optional[Sequence[Union[str, Path]]] = None):
        from datavcs.core.get import status

        return status(self, paths)

    def log(self, limit: Optional[int] = None):
        from datavcs.core.history import log

        return log(self, limit=limit)

    def rollback(self, target: Union[int, str]):
        from datavcs.core.history import rollback

        return rollback(self, target)
