"""Unit tests for repository configuration."""

from pathlib import Path

import pytest
import yaml

from datavcs.config import RepoConfig
from datavcs.errors import ConfigError, ErrorKind, NotInitializedError
from datavcs.storage.hashing import HashAlgorithm
from datavcs.storage.metadata import MetadataFormat


class TestRepoConfig:
    """Test loading and validating config.yaml."""

    def test_defaults(self) -> None:
        config = RepoConfig.from_dict({"storage_dir": "/srv/storage"})
        assert config.hash_algorithm is HashAlgorithm.SHA256
        assert config.metadata_format is MetadataFormat.JSON
        assert config.permissions is None
        assert config.group is None

    def test_save_and_load(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        config = RepoConfig(
            storage_dir="/srv/storage",
            hash_algorithm=HashAlgorithm.BLAKE3,
            metadata_format=MetadataFormat.TOML,
            permissions=0o664,
            group="data",
        )
        config.save(path)

        data = yaml.safe_load(path.read_text(encoding="utf-8"))
        assert data["hash_algorithm"] == "blake3"
        assert RepoConfig.load(path) == config

    def test_permissions_as_octal_string(self) -> None:
        config = RepoConfig.from_dict({"storage_dir": "s", "permissions": "664"})
        assert config.permissions == 0o664

    def test_relative_storage_dir_is_resolved_against_root(self, tmp_path: Path) -> None:
        config = RepoConfig.from_dict({"storage_dir": "store"})
        assert config.storage_path(tmp_path) == tmp_path / "store"

    def test_missing_file_is_not_initialized(self, tmp_path: Path) -> None:
        with pytest.raises(NotInitializedError) as exc_info:
            RepoConfig.load(tmp_path / "config.yaml")
        assert exc_info.value.kind is ErrorKind.NOT_INITIALIZED
        assert "datavcs init" in exc_info.value.hint

    @pytest.mark.parametrize(
        "data",
        [
            {},
            {"storage_dir": ""},
            {"storage_dir": "s", "hash_algorithm": "sha1"},
            {"storage_dir": "s", "metadata_format": "xml"},
            {"storage_dir": "s", "permissions": "rwx"},
            {"storage_dir": "s", "permissions": 0o17777},
            ["storage_dir"],
        ],
    )
    def test_invalid_values(self, data) -> None:
        with pytest.raises(ConfigError):
            RepoConfig.from_dict(data)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        path = tmp_path / "config.yaml"
        path.write_text("storage_dir: [unclosed", encoding="utf-8")
        with pytest.raises(ConfigError):
            RepoConfig.load(path)
