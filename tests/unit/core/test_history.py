"""Unit tests for log and rollback."""

from pathlib import Path

import pytest

from datavcs.core import Repository
from datavcs.errors import NotFoundError
from datavcs.storage.metadata import MetadataFormat, MetadataRecord, sidecar_path
from datavcs.storage.reflog import ReflogOp


@pytest.fixture
def two_versions(repo: Repository, data_csv: Path) -> Repository:
    """data.csv added twice with different content, then new.csv added."""
    repo.add(["data.csv"], message="v1")
    data_csv.write_text("version two", encoding="utf-8")
    repo.add(["data.csv"], message="v2")
    (repo.root / "new.csv").write_text("new", encoding="utf-8")
    repo.add(["new.csv"], message="new file")
    return repo


class TestLog:
    """Test listing history."""

    def test_empty_log(self, repo: Repository) -> None:
        assert repo.log() == []

    def test_most_recent_first(self, two_versions: Repository) -> None:
        entries = two_versions.log()
        assert [e.index for e in entries] == [0, 1, 2]
        assert [e.entry.message for e in entries] == ["new file", "v2", "v1"]

    def test_limit(self, two_versions: Repository) -> None:
        assert len(two_versions.log(limit=2)) == 2


class TestRollback:
    """Test restoring earlier metadata states."""

    def test_rollback_by_index(self, two_versions: Repository, data_csv: Path) -> None:
        """Test that rolling back restores sidecars and the manifest but not data."""
        repo = two_versions
        v1_state = repo.log()[2].entry.new_state_id
        v1_oid = repo.snapshots.load(v1_state).manifest.get("data.csv").oid

        entry = repo.rollback(2)

        assert entry.op is ReflogOp.ROLLBACK
        assert entry.new_state_id == v1_state
        assert repo.reflog.read_head() == v1_state
        assert MetadataRecord.load(sidecar_path(data_csv, MetadataFormat.JSON)).oid == v1_oid
        assert not sidecar_path(repo.root / "new.csv", MetadataFormat.JSON).exists()
        assert (repo.root / "new.csv").exists()
        assert repo.load_manifest().get("new.csv") is None
        assert data_csv.read_text(encoding="utf-8") == "version two"
        assert sorted(entry.paths) == ["data.csv", "new.csv"]

    def test_rollback_then_get_restores_content(self, two_versions: Repository, data_csv: Path) -> None:
        two_versions.rollback(2)
        two_versions.get(["data.csv"])
        assert data_csv.read_text(encoding="utf-8") == "col1,col2\n1,2\n3,4\n"

    def test_rollback_by_state_id(self, two_versions: Repository) -> None:
        repo = two_versions
        target = repo.log()[1].entry.new_state_id

        assert repo.rollback(f"state:{target}").new_state_id == target
        assert repo.reflog.read_head() == target
        assert repo.rollback(0) is None

    def test_rollback_is_reversible(self, two_versions: Repository) -> None:
        repo = two_versions
        latest = repo.reflog.read_head()
        repo.rollback(2)

        entry = repo.rollback(f"state:{latest[:10]}")

        assert entry.new_state_id == latest
        assert sidecar_path(repo.root / "new.csv", MetadataFormat.JSON).exists()

    def test_rollback_to_current_state_is_noop(self, two_versions: Repository) -> None:
        assert two_versions.rollback(0) is None
        assert len(two_versions.reflog) == 3

    def test_unknown_target(self, two_versions: Repository) -> None:
        with pytest.raises(NotFoundError):
            two_versions.rollback(99)
        with pytest.raises(NotFoundError):
            two_versions.rollback("f" * 64)
