"""Repository configuration (`.datavcs/config.yaml`).

Example:
    storage_dir: /shared/datavcs-storage
    hash_algorithm: sha256
    metadata_format: json
    permissions: 0o664
    group: data
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Optional, Union

import yaml

from datavcs.constants import DEFAULT_HASH_ALGORITHM
from datavcs.errors import ConfigError, DataVCSError, NotInitializedError
from datavcs.storage.fileutil import atomic_write_text
from datavcs.storage.hashing import HashAlgorithm
from datavcs.storage.metadata import MetadataFormat

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ["storage_dir"]


@dataclass
class RepoConfig:
    """Settings consumed by the add/get engines.

    Attributes:
        storage_dir: Storage backend root (relative paths are resolved
            against the repository root by :meth:`storage_path`)
        hash_algorithm: Default algorithm for newly tracked files
        metadata_format: Default sidecar format
        permissions: Mode bits applied to stored objects
        group: Group ownership applied to stored objects
    """

    storage_dir: str
    hash_algorithm: HashAlgorithm = HashAlgorithm(DEFAULT_HASH_ALGORITHM)
    metadata_format: MetadataFormat = MetadataFormat.JSON
    permissions: Optional[int] = None
    group: Optional[str] = None

    def storage_path(self, repo_root: Union[str, Path]) -> Path:
        path = Path(self.storage_dir).expanduser()
        if not path.is_absolute():
            path = Path(repo_root) / path
        return path

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "storage_dir": self.storage_dir,
            "hash_algorithm": self.hash_algorithm.value,
            "metadata_format": self.metadata_format.value,
        }
        if self.permissions is not None:
            data["permissions"] = self.permissions
        if self.group is not None:
            data["group"] = self.group
        return data

    @classmethod
    def from_dict(cls, data: Any) -> "RepoConfig":
        """Validate and build a configuration.

        Raises:
            ConfigError: If a required key is missing or a value is invalid
        """
        if not isinstance(data, dict):
            raise ConfigError("Configuration must be a YAML mapping")
        for key in REQUIRED_KEYS:
            if not data.get(key):
                raise ConfigError(
                    f"Missing required configuration key: {key}",
                    hint="edit .datavcs/config.yaml",
                )
        try:
            hash_algorithm = HashAlgorithm.parse(
                data.get("hash_algorithm", DEFAULT_HASH_ALGORITHM)
            )
            metadata_format = MetadataFormat.parse(data.get("metadata_format", "json"))
        except DataVCSError as e:
            raise ConfigError(e.message, hint=e.hint) from e

        permissions = data.get("permissions")
        if permissions is not None:
            if isinstance(permissions, str):
                try:
                    permissions = int(permissions, 8)
                except ValueError as e:
                    raise ConfigError(f"Invalid permissions: {permissions!r}") from e
            if not isinstance(permissions, int) or not 0 <= permissions <= 0o7777:
                raise ConfigError(f"Invalid permissions: {permissions!r}")

        group = data.get("group")
        return cls(
            storage_dir=str(data["storage_dir"]),
            hash_algorithm=hash_algorithm,
            metadata_format=metadata_format,
            permissions=permissions,
            group=str(group) if group is not None else None,
        )

    @classmethod
    def load(cls, path: Union[str, Path]) -> "RepoConfig":
        """Load the configuration file.

        Raises:
            NotInitializedError: If the file does not exist
            ConfigError: If the file is unreadable or invalid
        """
        path = Path(path)
        if not path.exists():
            raise NotInitializedError(
                f"Configuration not found: {path}",
                hint="run 'datavcs init' first",
            )
        try:
            with open(path, "r", encoding="utf-8") as f:
                data = yaml.safe_load(f)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigError(f"Failed to read configuration {path}: {e}") from e
        config = cls.from_dict(data)
        logger.debug("Loaded configuration from %s", path)
        return config

    def save(self, path: Union[str, Path]) -> None:
        text = yaml.safe_dump(self.to_dict(), sort_keys=False)
        try:
            atomic_write_text(path, text)
        except OSError as e:
            raise ConfigError(f"Failed to write configuration {path}: {e}") from e
