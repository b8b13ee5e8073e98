"""Unit tests for retrieval and status."""

import os
from pathlib import Path

import pytest

from datavcs.core import FileStatus, Outcome, Repository
from datavcs.core.get import DEFAULT_FILE_MODE
from datavcs.errors import ErrorKind, NoFilesMatchedError
from datavcs.storage.metadata import MetadataFormat, sidecar_path

CSV_CONTENT = "col1,col2\n1,2\n3,4\n"


@pytest.fixture
def tracked(repo: Repository, data_csv: Path) -> Path:
    """A file that has been added to the repository."""
    repo.add(["data.csv"])
    return data_csv


class TestGet:
    """Test restoring files from storage."""

    def test_restore_deleted_file(self, repo: Repository, tracked: Path) -> None:
        tracked.unlink()

        result = repo.get(["data.csv"])[0]

        assert result.outcome is Outcome.COPIED
        assert result.size == 18
        assert tracked.read_text(encoding="utf-8") == CSV_CONTENT

    @pytest.mark.skipif(os.name != "posix", reason="POSIX file modes")
    def test_restored_mode_without_touching_umask(self, repo: Repository, tracked: Path, monkeypatch) -> None:
        """Test that restored files get the default mode and the umask stays untouched."""
        tracked.unlink()

        def no_umask(mask):
            raise AssertionError("umask changed during get")

        monkeypatch.setattr(os, "umask", no_umask)
        result = repo.get(["data.csv"])[0]

        assert result.outcome is Outcome.COPIED
        assert tracked.stat().st_mode & 0o777 == DEFAULT_FILE_MODE

    def test_present_when_matching(self, repo: Repository, tracked: Path) -> None:
        assert repo.get(["data.csv"])[0].outcome is Outcome.PRESENT

    def test_overwrites_modified_file(self, repo: Repository, tracked: Path) -> None:
        tracked.write_text("local edits", encoding="utf-8")
        result = repo.get(["data.csv"])[0]
        assert result.outcome is Outcome.COPIED
        assert tracked.read_text(encoding="utf-8") == CSV_CONTENT

    def test_glob_selects_absent_files(self, repo: Repository, sample_files: dict) -> None:
        repo.add(["data/raw/*.csv"])
        for relative in ("data/raw/a.csv", "data/raw/b.csv"):
            sample_files[relative].unlink()

        results = repo.get(["data/raw/*.csv"])

        assert [r.outcome for r in results] == [Outcome.COPIED, Outcome.COPIED]
        assert sample_files["data/raw/a.csv"].read_text(encoding="utf-8") == "x,y\n1,2\n"

    def test_not_tracked(self, repo: Repository, data_csv: Path) -> None:
        result = repo.get(["data.csv"])[0]
        assert result.error is ErrorKind.NOT_TRACKED

    def test_corrupt_sidecar(self, repo: Repository, tracked: Path) -> None:
        sidecar_path(tracked, MetadataFormat.JSON).write_text("{oops", encoding="utf-8")
        assert repo.get(["data.csv"])[0].error is ErrorKind.PARSE_ERROR

    def test_storage_missing(self, repo: Repository, tracked: Path) -> None:
        oid = repo.load_manifest().get("data.csv").oid
        repo.storage.remove(oid)
        tracked.unlink()

        assert repo.get(["data.csv"])[0].error is ErrorKind.STORAGE_MISSING

    def test_hash_mismatch_removes_written_file(self, repo: Repository, tracked: Path) -> None:
        """Test that corrupt storage content is never left in the working tree."""
        oid = repo.load_manifest().get("data.csv").oid
        repo.storage.path_for(oid).write_bytes(b"tampered content")
        tracked.unlink()

        result = repo.get(["data.csv"])[0]

        assert result.error is ErrorKind.HASH_MISMATCH
        assert not tracked.exists()
        assert [p.name for p in repo.root.iterdir() if p.name.startswith(".tmp_")] == []

    def test_get_does_not_record_history(self, repo: Repository, tracked: Path) -> None:
        tracked.unlink()
        repo.get(["data.csv"])
        assert len(repo.reflog) == 1

    def test_no_tracked_match(self, repo: Repository) -> None:
        with pytest.raises(NoFilesMatchedError):
            repo.get(["*.csv"])

    @pytest.mark.skipif(not hasattr(os, "symlink"), reason="symlinks not supported")
    def test_destination_through_symlinked_directory(self, repo: Repository, tmp_path: Path) -> None:
        outside = tmp_path / "outside"
        outside.mkdir()
        (repo.root / "linked").symlink_to(outside, target_is_directory=True)

        result = repo.get(["linked/data.csv"])[0]

        assert result.error is ErrorKind.PATH_TRAVERSAL
        assert list(outside.iterdir()) == []


class TestStatus:
    """Test the four-state classification."""

    def test_current(self, repo: Repository, tracked: Path) -> None:
        result = repo.status(["data.csv"])[0]
        assert result.status is FileStatus.CURRENT
        assert result.size == 18
        assert result.oid == repo.load_manifest().get("data.csv").oid

    def test_unsynced(self, repo: Repository, tracked: Path) -> None:
        tracked.write_text("changed", encoding="utf-8")
        assert repo.status(["data.csv"])[0].status is FileStatus.UNSYNCED

    def test_absent(self, repo: Repository, tracked: Path) -> None:
        tracked.unlink()
        assert repo.status(["data.csv"])[0].status is FileStatus.ABSENT

    def test_untracked(self, repo: Repository, data_csv: Path) -> None:
        assert repo.status(["data.csv"])[0].status is FileStatus.UNTRACKED

    def test_unreadable_sidecar(self, repo: Repository, tracked: Path) -> None:
        sidecar_path(tracked, MetadataFormat.JSON).write_text("[]", encoding="utf-8")
        result = repo.status(["data.csv"])[0]
        assert result.status is FileStatus.ERROR
        assert result.error is ErrorKind.PARSE_ERROR

    def test_all_tracked_files_by_default(self, repo: Repository, sample_files: dict) -> None:
        repo.add(["file1.txt", "data/raw/*.csv"])
        sample_files["file1.txt"].unlink()

        results = {r.relative_path: r.status for r in repo.status()}

        assert results == {
            "data/raw/a.csv": FileStatus.CURRENT,
            "data/raw/b.csv": FileStatus.CURRENT,
            "file1.txt": FileStatus.ABSENT,
        }

    def test_status_is_read_only(self, repo: Repository, tracked: Path) -> None:
        tracked.write_text("changed", encoding="utf-8")
        sidecar = sidecar_path(tracked, MetadataFormat.JSON)
        before = sidecar.read_bytes()

        repo.status()

        assert sidecar.read_bytes() == before
        assert tracked.read_text(encoding="utf-8") == "changed"
        assert len(repo.reflog) == 1
