"""Per-file metadata sidecars.

Every tracked data file has a sidecar next to it describing the file's
currently tracked state. Two interchangeable serialization formats are
supported; the format is a repository setting and is never encoded in the
sidecar content itself, only in its file name:

    data.csv.dvs        JSON (default)
    data.csv.dvs.toml   TOML

Example sidecar (JSON):
{
    "checksums": {"sha256": "4d1981..."},
    "size": 18,
    "created_by": "alice",
    "add_time": "2026-02-09T10:00:00+00:00",
    "message": "raw export",
    "hash_algo": "sha256"
}
"""

import getpass
import json
import logging
import tomllib
from datetime import datetime, timezone
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Iterable, Optional, Tuple, Union

import tomli_w

from datavcs.constants import METADATA_SUFFIX, METADATA_TOML_SUFFIX
from datavcs.errors import DataVCSError, ErrorKind, ParseError
from datavcs.storage.fileutil import atomic_write_text
from datavcs.storage.hashing import HashAlgorithm, Oid, hash_file_multi

logger = logging.getLogger(__name__)


class MetadataFormat(str, Enum):
    """Serialization format of a metadata sidecar."""

    JSON = "json"
    TOML = "toml"

    @property
    def suffix(self) -> str:
        return METADATA_TOML_SUFFIX if self is MetadataFormat.TOML else METADATA_SUFFIX

    @classmethod
    def parse(cls, value: Union[str, "MetadataFormat"]) -> "MetadataFormat":
        if isinstance(value, MetadataFormat):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            raise DataVCSError(
                f"Unknown metadata format: {value}",
                kind=ErrorKind.CONFIG_ERROR,
                hint="supported formats: json, toml",
            ) from e


def current_user() -> str:
    """Identity recorded as the author of sidecars and reflog entries."""
    try:
        return getpass.getuser()
    except (KeyError, OSError):
        return "unknown"


def sidecar_path(data_path: Union[str, Path], fmt: MetadataFormat) -> Path:
    """Path of the sidecar for ``data_path`` in the given format."""
    data_path = Path(data_path)
    return data_path.with_name(data_path.name + fmt.suffix)


def is_sidecar(path: Union[str, Path]) -> bool:
    """True if ``path`` is named like a metadata sidecar."""
    name = Path(path).name
    return name.endswith(METADATA_TOML_SUFFIX) or name.endswith(METADATA_SUFFIX)


def format_of(path: Union[str, Path]) -> MetadataFormat:
    """Infer a sidecar's format from its file name."""
    if Path(path).name.endswith(METADATA_TOML_SUFFIX):
        return MetadataFormat.TOML
    return MetadataFormat.JSON


def data_path_for(path: Union[str, Path]) -> Optional[Path]:
    """Map a sidecar path back to its data file, or None if not a sidecar."""
    path = Path(path)
    name = path.name
    for suffix in (METADATA_TOML_SUFFIX, METADATA_SUFFIX):
        if name.endswith(suffix) and len(name) > len(suffix):
            return path.with_name(name[: -len(suffix)])
    return None


def find_sidecar(data_path: Union[str, Path]) -> Optional[Tuple[Path, MetadataFormat]]:
    """Locate an existing sidecar for ``data_path`` in any supported format."""
    for fmt in (MetadataFormat.JSON, MetadataFormat.TOML):
        candidate = sidecar_path(data_path, fmt)
        if candidate.is_file():
            return candidate, fmt
    return None


class MetadataRecord:
    """Tracked state of one data file.

    Equality compares only the digest set and size: author, time and message
    are provenance, not identity.

    Attributes:
        checksums: Mapping algorithm name -> hex digest
        size: File size in bytes
        created_by: Identity that added this version
        add_time: ISO 8601 UTC timestamp
        message: Optional free-text description
        hash_algo: Primary algorithm (addresses the content in storage)
    """

    def __init__(
        self,
        checksums: Dict[str, str],
        size: int,
        created_by: str,
        add_time: str,
        message: Optional[str] = None,
        hash_algo: Union[str, HashAlgorithm] = HashAlgorithm.SHA256,
    ) -> None:
        self.checksums = dict(checksums)
        self.size = int(size)
        self.created_by = created_by
        self.add_time = add_time
        self.message = message
        self.hash_algo = HashAlgorithm.parse(hash_algo)

        if self.hash_algo.value not in self.checksums:
            raise DataVCSError(
                f"Metadata has no {self.hash_algo.value} checksum",
                kind=ErrorKind.METADATA_ERROR,
            )

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, MetadataRecord):
            return NotImplemented
        return self.checksums == other.checksums and self.size == other.size

    def __hash__(self) -> int:
        return hash((tuple(sorted(self.checksums.items())), self.size))

    def __repr__(self) -> str:
        return f"MetadataRecord({self.oid}, size={self.size})"

    @property
    def checksum(self) -> str:
        """Digest under the primary algorithm."""
        return self.checksums[self.hash_algo.value]

    @property
    def oid(self) -> Oid:
        """Storage identifier of the tracked content."""
        return Oid(self.hash_algo, self.checksum)

    @classmethod
    def from_file(
        cls,
        path: Union[str, Path],
        message: Optional[str] = None,
        algorithms: Iterable[Union[str, HashAlgorithm]] = (HashAlgorithm.SHA256,),
        created_by: Optional[str] = None,
    ) -> "MetadataRecord":
        """Build a record by reading a file once (size and all digests).

        The first algorithm in ``algorithms`` becomes the primary one.

        Raises:
            DataVCSError: FileNotFound / IsDirectory / PathError if ``path`` is
                not a regular file, HashError if it cannot be read
        """
        path = Path(path)
        if not path.exists():
            raise DataVCSError(
                f"File not found: {path}", kind=ErrorKind.FILE_NOT_FOUND, path=path
            )
        if path.is_dir():
            raise DataVCSError(
                f"Path is a directory: {path}", kind=ErrorKind.IS_DIRECTORY, path=path
            )
        if not path.is_file():
            raise DataVCSError(
                f"Not a regular file: {path}", kind=ErrorKind.PATH_ERROR, path=path
            )

        algos = [HashAlgorithm.parse(a) for a in algorithms]
        size, checksums = hash_file_multi(path, algos)
        return cls(
            checksums=checksums,
            size=size,
            created_by=created_by or current_user(),
            add_time=datetime.now(timezone.utc).isoformat(),
            message=message,
            hash_algo=algos[0],
        )

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form; ``message`` is omitted when unset."""
        data: Dict[str, Any] = {
            "checksums": dict(sorted(self.checksums.items())),
            "size": self.size,
            "created_by": self.created_by,
            "add_time": self.add_time,
        }
        if self.message is not None:
            data["message"] = self.message
        data["hash_algo"] = self.hash_algo.value
        return data

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "MetadataRecord":
        """Parse a sidecar dictionary.

        Single-digest sidecars written by older versions (``checksum`` or
        ``blake3_checksum``) are accepted.

        Raises:
            ParseError: If required fields are missing or malformed
        """
        if not isinstance(data, dict):
            raise ParseError("Metadata must be a mapping")
        try:
            if "checksums" in data:
                checksums = {str(k).lower(): str(v) for k, v in data["checksums"].items()}
                hash_algo = data.get("hash_algo", HashAlgorithm.SHA256.value)
            else:
                legacy = data.get("checksum", data.get("blake3_checksum"))
                if legacy is None:
                    raise ParseError("Metadata has no checksum")
                default_algo = "blake3" if "blake3_checksum" in data else "sha256"
                hash_algo = data.get("hash_algo", default_algo)
                checksums = {HashAlgorithm.parse(hash_algo).value: str(legacy)}

            size = data["size"]
            if not isinstance(size, int) or isinstance(size, bool) or size < 0:
                raise ParseError(f"Invalid size in metadata: {size!r}")

            return cls(
                checksums=checksums,
                size=size,
                created_by=str(data.get("created_by", data.get("saved_by", "unknown"))),
                add_time=str(data.get("add_time", "")),
                message=data.get("message") or None,
                hash_algo=hash_algo,
            )
        except ParseError:
            raise
        except (KeyError, TypeError, AttributeError, DataVCSError) as e:
            raise ParseError(f"Malformed metadata: {e}") from e

    def dumps(self, fmt: MetadataFormat) -> str:
        """Serialize in the given sidecar format."""
        if fmt is MetadataFormat.TOML:
            return tomli_w.dumps(self.to_dict())
        return json.dumps(self.to_dict(), indent=2, ensure_ascii=False) + "\n"

    @classmethod
    def loads(cls, text: str, fmt: MetadataFormat) -> "MetadataRecord":
        """Parse sidecar text in the given format.

        Raises:
            ParseError: If the text is not valid for the format
        """
        try:
            if fmt is MetadataFormat.TOML:
                data = tomllib.loads(text)
            else:
                data = json.loads(text)
        except (json.JSONDecodeError, tomllib.TOMLDecodeError) as e:
            raise ParseError(f"Corrupted metadata ({fmt.value}): {e}") from e
        return cls.from_dict(data)

    @classmethod
    def load(
        cls, path: Union[str, Path], fmt: Optional[MetadataFormat] = None
    ) -> "MetadataRecord":
        """Load a sidecar file.

        Raises:
            DataVCSError: (MetadataError) If the sidecar is missing or unreadable
            ParseError: If the sidecar is corrupt
        """
        path = Path(path)
        fmt = fmt or format_of(path)
        try:
            text = path.read_text(encoding="utf-8")
        except FileNotFoundError as e:
            raise DataVCSError(
                f"Metadata not found: {path}", kind=ErrorKind.METADATA_ERROR, path=path
            ) from e
        except (OSError, UnicodeDecodeError) as e:
            raise DataVCSError(
                f"Failed to read metadata {path}: {e}",
                kind=ErrorKind.METADATA_ERROR,
                path=path,
            ) from e
        try:
            return cls.loads(text, fmt)
        except ParseError as e:
            raise ParseError(f"{path}: {e.message}", path=path) from e

    def save(self, path: Union[str, Path], fmt: Optional[MetadataFormat] = None) -> None:
        """Atomically write the sidecar.

        Raises:
            DataVCSError: (MetadataError) If the write fails
        """
        path = Path(path)
        fmt = fmt or format_of(path)
        try:
            atomic_write_text(path, self.dumps(fmt))
        except OSError as e:
            raise DataVCSError(
                f"Failed to write metadata {path}: {e}",
                kind=ErrorKind.METADATA_ERROR,
                path=path,
            ) from e
        logger.debug("Wrote %s sidecar %s", fmt.value, path)
