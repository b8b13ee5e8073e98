"""Unit tests for the Repository handle."""

from pathlib import Path

import pytest

from datavcs.constants import CONTROL_DIR, DEFAULT_STORAGE_DIR, IGNORE_FILE
from datavcs.core import Repository
from datavcs.errors import ConfigError, NotInitializedError, ParseError
from datavcs.storage.hashing import HashAlgorithm
from datavcs.storage.metadata import MetadataFormat


class TestInit:
    """Test repository initialization."""

    def test_init_creates_layout(self, repo_root: Path) -> None:
        repo = Repository.init(repo_root)

        control = repo_root / CONTROL_DIR
        assert (control / "config.yaml").exists()
        assert (control / "state" / "snapshots").is_dir()
        assert (control / "refs").is_dir()
        assert (control / "logs").is_dir()
        assert repo.storage.root == repo_root / DEFAULT_STORAGE_DIR
        assert repo.storage.root.is_dir()
        assert repo.config.hash_algorithm is HashAlgorithm.SHA256

    def test_init_writes_default_ignore_file(self, repo_root: Path) -> None:
        Repository.init(repo_root)
        content = (repo_root / IGNORE_FILE).read_text(encoding="utf-8")
        assert "*.tmp" in content

    def test_init_keeps_existing_ignore_file(self, repo_root: Path) -> None:
        (repo_root / IGNORE_FILE).write_text("custom\n", encoding="utf-8")
        Repository.init(repo_root)
        assert (repo_root / IGNORE_FILE).read_text(encoding="utf-8") == "custom\n"

    def test_init_with_options(self, repo_root: Path, storage_root: Path) -> None:
        repo = Repository.init(
            repo_root,
            storage_dir=storage_root,
            hash_algorithm="blake3",
            metadata_format="toml",
            permissions=0o664,
        )
        reopened = Repository.open(repo_root)

        assert reopened.config == repo.config
        assert reopened.config.metadata_format is MetadataFormat.TOML
        assert reopened.storage.permissions == 0o664

    def test_reinit_same_settings_is_noop(self, repo_root: Path, storage_root: Path) -> None:
        first = Repository.init(repo_root, storage_dir=storage_root)
        second = Repository.init(repo_root)
        assert second.config == first.config

    def test_reinit_different_settings_fails(self, repo_root: Path) -> None:
        Repository.init(repo_root, hash_algorithm="sha256")
        with pytest.raises(ConfigError) as exc_info:
            Repository.init(repo_root, hash_algorithm="blake3")
        assert "config.yaml" in exc_info.value.hint


class TestOpen:
    """Test opening and discovering repositories."""

    def test_open_uninitialized(self, tmp_path: Path) -> None:
        with pytest.raises(NotInitializedError):
            Repository.open(tmp_path)

    def test_discover_from_subdirectory(self, repo: Repository) -> None:
        sub = repo.root / "a" / "b"
        sub.mkdir(parents=True)
        assert Repository.discover(sub).root == repo.root

    def test_discover_without_repository(self, tmp_path: Path) -> None:
        with pytest.raises(NotInitializedError) as exc_info:
            Repository.discover(tmp_path)
        assert "datavcs init" in exc_info.value.hint

    def test_open_with_broken_config(self, repo: Repository) -> None:
        repo.config_path.write_text("hash_algorithm: sha256\n", encoding="utf-8")
        with pytest.raises(ConfigError):
            Repository.open(repo.root)


class TestState:
    """Test manifest and state access."""

    def test_load_manifest_when_absent(self, repo: Repository) -> None:
        assert repo.load_manifest().is_empty()

    def test_load_manifest_corrupt(self, repo: Repository) -> None:
        repo.manifest_path.write_text("garbage", encoding="utf-8")
        with pytest.raises(ParseError):
            repo.load_manifest()

    def test_capture_state_of_new_repository(self, repo: Repository) -> None:
        state = repo.capture_state()
        assert state.is_empty()
        assert state.manifest is None

    def test_independent_repositories(self, tmp_path: Path) -> None:
        """Test that two repositories in one process do not share state."""
        one = Repository.init(tmp_path / "one")
        two = Repository.init(tmp_path / "two")
        (one.root / "x.txt").write_text("x", encoding="utf-8")
        one.add(["x.txt"])

        assert len(one.load_manifest()) == 1
        assert two.load_manifest().is_empty()
        assert len(two.reflog) == 0
