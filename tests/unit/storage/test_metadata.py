"""Unit tests for metadata sidecars."""

import json
import tomllib
from pathlib import Path

import pytest

from datavcs.errors import DataVCSError, ErrorKind, ParseError
from datavcs.storage.hashing import HashAlgorithm, Oid
from datavcs.storage.metadata import (
    MetadataFormat,
    MetadataRecord,
    data_path_for,
    find_sidecar,
    format_of,
    is_sidecar,
    sidecar_path,
)

HELLO_SHA256 = "b94d27b9934d3e08a52e52d7da7dabfac484efe37a5380ee9088f7ace2efcde9"


@pytest.fixture
def hello_file(tmp_path: Path) -> Path:
    path = tmp_path / "hello.txt"
    path.write_bytes(b"hello world")
    return path


class TestSidecarNames:
    """Test sidecar naming helpers."""

    def test_sidecar_path_per_format(self, tmp_path: Path) -> None:
        data = tmp_path / "data.csv"
        assert sidecar_path(data, MetadataFormat.JSON) == tmp_path / "data.csv.dvs"
        assert sidecar_path(data, MetadataFormat.TOML) == tmp_path / "data.csv.dvs.toml"

    def test_is_sidecar_and_format_of(self) -> None:
        assert is_sidecar("data.csv.dvs")
        assert is_sidecar("data.csv.dvs.toml")
        assert not is_sidecar("data.csv")
        assert format_of("data.csv.dvs.toml") is MetadataFormat.TOML
        assert format_of("data.csv.dvs") is MetadataFormat.JSON

    def test_data_path_for(self, tmp_path: Path) -> None:
        assert data_path_for(tmp_path / "a.csv.dvs") == tmp_path / "a.csv"
        assert data_path_for(tmp_path / "a.csv.dvs.toml") == tmp_path / "a.csv"
        assert data_path_for(tmp_path / "a.csv") is None
        assert data_path_for(tmp_path / ".dvs") is None

    def test_find_sidecar(self, tmp_path: Path) -> None:
        data = tmp_path / "data.csv"
        assert find_sidecar(data) is None

        toml_sidecar = sidecar_path(data, MetadataFormat.TOML)
        toml_sidecar.write_text("", encoding="utf-8")
        assert find_sidecar(data) == (toml_sidecar, MetadataFormat.TOML)

    def test_format_parse(self) -> None:
        assert MetadataFormat.parse("TOML") is MetadataFormat.TOML
        with pytest.raises(DataVCSError) as exc_info:
            MetadataFormat.parse("yaml")
        assert exc_info.value.kind is ErrorKind.CONFIG_ERROR


class TestFromFile:
    """Test building records from files."""

    def test_from_file_computes_size_and_digest(self, hello_file: Path) -> None:
        record = MetadataRecord.from_file(hello_file, message="greeting", created_by="alice")

        assert record.size == 11
        assert record.checksum == HELLO_SHA256
        assert record.oid == Oid(HashAlgorithm.SHA256, HELLO_SHA256)
        assert record.created_by == "alice"
        assert record.message == "greeting"
        assert record.add_time.endswith("+00:00")

    def test_from_file_multiple_algorithms(self, hello_file: Path) -> None:
        """Test that the first algorithm is primary and all digests are kept."""
        record = MetadataRecord.from_file(hello_file, algorithms=["md5", "sha256"])

        assert record.hash_algo is HashAlgorithm.MD5
        assert set(record.checksums) == {"md5", "sha256"}
        assert record.oid.algorithm is HashAlgorithm.MD5

    def test_from_file_missing(self, tmp_path: Path) -> None:
        with pytest.raises(DataVCSError) as exc_info:
            MetadataRecord.from_file(tmp_path / "missing")
        assert exc_info.value.kind is ErrorKind.FILE_NOT_FOUND

    def test_from_file_directory(self, tmp_path: Path) -> None:
        with pytest.raises(DataVCSError) as exc_info:
            MetadataRecord.from_file(tmp_path)
        assert exc_info.value.kind is ErrorKind.IS_DIRECTORY


class TestEquality:
    """Test that equality compares digests and size only."""

    def test_provenance_is_ignored(self) -> None:
        a = MetadataRecord({"sha256": HELLO_SHA256}, 11, "alice", "2026-01-01T00:00:00+00:00", "one")
        b = MetadataRecord({"sha256": HELLO_SHA256}, 11, "bob", "2026-02-01T00:00:00+00:00", "two")
        assert a == b
        assert hash(a) == hash(b)

    def test_size_matters(self) -> None:
        a = MetadataRecord({"sha256": HELLO_SHA256}, 11, "alice", "")
        b = MetadataRecord({"sha256": HELLO_SHA256}, 12, "alice", "")
        assert a != b

    def test_primary_checksum_required(self) -> None:
        with pytest.raises(DataVCSError) as exc_info:
            MetadataRecord({"md5": "0" * 32}, 1, "alice", "", hash_algo="sha256")
        assert exc_info.value.kind is ErrorKind.METADATA_ERROR


class TestSerialization:
    """Test sidecar load/save in both formats."""

    def test_save_and_load_json(self, hello_file: Path) -> None:
        record = MetadataRecord.from_file(hello_file, message="greeting")
        sidecar = sidecar_path(hello_file, MetadataFormat.JSON)
        record.save(sidecar)

        data = json.loads(sidecar.read_text(encoding="utf-8"))
        assert data["checksums"] == {"sha256": HELLO_SHA256}
        assert data["size"] == 11
        assert data["hash_algo"] == "sha256"
        assert data["message"] == "greeting"

        loaded = MetadataRecord.load(sidecar)
        assert loaded == record
        assert loaded.created_by == record.created_by
        assert loaded.message == "greeting"

    def test_save_toml_and_message_omitted(self, hello_file: Path) -> None:
        record = MetadataRecord.from_file(hello_file)
        sidecar = sidecar_path(hello_file, MetadataFormat.TOML)
        record.save(sidecar)

        data = tomllib.loads(sidecar.read_text(encoding="utf-8"))
        assert "message" not in data
        assert data["checksums"]["sha256"] == HELLO_SHA256
        assert MetadataRecord.load(sidecar) == record

    def test_load_legacy_single_checksum(self, tmp_path: Path) -> None:
        """Test that sidecars with a single 'checksum' field are still read."""
        sidecar = tmp_path / "old.bin.dvs"
        sidecar.write_text(
            json.dumps({"checksum": HELLO_SHA256, "size": 11, "saved_by": "carol"}),
            encoding="utf-8",
        )
        record = MetadataRecord.load(sidecar)
        assert record.checksum == HELLO_SHA256
        assert record.created_by == "carol"

    def test_load_legacy_blake3_checksum(self, tmp_path: Path) -> None:
        sidecar = tmp_path / "old.bin.dvs"
        sidecar.write_text(
            json.dumps({"blake3_checksum": "a" * 64, "size": 3}), encoding="utf-8"
        )
        assert MetadataRecord.load(sidecar).hash_algo is HashAlgorithm.BLAKE3

    def test_load_missing_is_metadata_error(self, tmp_path: Path) -> None:
        with pytest.raises(DataVCSError) as exc_info:
            MetadataRecord.load(tmp_path / "missing.dvs")
        assert exc_info.value.kind is ErrorKind.METADATA_ERROR

    def test_load_corrupt_is_parse_error(self, tmp_path: Path) -> None:
        sidecar = tmp_path / "bad.dvs"
        sidecar.write_text("{not json", encoding="utf-8")
        with pytest.raises(ParseError):
            MetadataRecord.load(sidecar)

    def test_load_invalid_size(self, tmp_path: Path) -> None:
        sidecar = tmp_path / "bad.dvs"
        sidecar.write_text(
            json.dumps({"checksums": {"sha256": HELLO_SHA256}, "size": -1}),
            encoding="utf-8",
        )
        with pytest.raises(ParseError, match="Invalid size"):
            MetadataRecord.load(sidecar)
