"""Content hashing for datavcs.

Defines the supported hash algorithms and the object identifier (OID) that
addresses content in the storage backend. An OID is self-describing: it
carries its algorithm tag next to the hex digest, so objects hashed under
different algorithms never collide and remain comparable across repository
versions.

Supported algorithms:
    sha256  Cryptographic 256-bit digest (default).
    blake3  Cryptographic 256-bit digest, faster than SHA-256.
    xxh3    Fast 64-bit non-cryptographic digest. Offers NO collision
            resistance; only use it for trusted data where speed matters.
    md5     Legacy 128-bit digest, kept for repositories tracked with it.
"""

import hashlib
import logging
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, Iterable, Tuple, Union

import blake3
import xxhash

from datavcs.constants import HASH_CHUNK_SIZE, SHARD_WIDTH
from datavcs.errors import DataVCSError, ErrorKind

logger = logging.getLogger(__name__)


class HashAlgorithm(str, Enum):
    """Closed, versioned set of supported hash algorithms."""

    BLAKE3 = "blake3"
    SHA256 = "sha256"
    XXH3 = "xxh3"
    MD5 = "md5"

    @property
    def hex_length(self) -> int:
        """Number of hex characters in a digest produced by this algorithm."""
        return _HEX_LENGTHS[self]

    @classmethod
    def parse(cls, value: Union[str, "HashAlgorithm"]) -> "HashAlgorithm":
        """Parse an algorithm name (case-insensitive).

        Raises:
            DataVCSError: (HashError) If the name is not a supported algorithm
        """
        if isinstance(value, HashAlgorithm):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError as e:
            supported = ", ".join(a.value for a in cls)
            raise DataVCSError(
                f"Unknown hash algorithm: {value}",
                kind=ErrorKind.HASH_ERROR,
                hint=f"supported algorithms: {supported}",
            ) from e


_HEX_LENGTHS = {
    HashAlgorithm.BLAKE3: 64,
    HashAlgorithm.SHA256: 64,
    HashAlgorithm.XXH3: 16,
    HashAlgorithm.MD5: 32,
}


def _new_hasher(algorithm: HashAlgorithm):
    if algorithm is HashAlgorithm.BLAKE3:
        return blake3.blake3()
    if algorithm is HashAlgorithm.SHA256:
        return hashlib.sha256()
    if algorithm is HashAlgorithm.XXH3:
        return xxhash.xxh3_64()
    return hashlib.md5()


@dataclass(frozen=True)
class Oid:
    """Object identifier: algorithm tag plus hex digest.

    Two OIDs are equal only if both the algorithm and the digest match.

    Example:
        >>> oid = Oid.parse("sha256:" + "a" * 64)
        >>> path = oid.storage_subpath()
        >>> # sha256/aa/aaaa...
    """

    algorithm: HashAlgorithm
    hex: str

    def __str__(self) -> str:
        return f"{self.algorithm.value}:{self.hex}"

    @classmethod
    def parse(cls, value: str) -> "Oid":
        """Parse an ``algo:hex`` string.

        Raises:
            DataVCSError: (ParseError) If the string is malformed
        """
        algo_name, sep, hex_digest = value.partition(":")
        if not sep:
            raise DataVCSError(
                f"Invalid OID format (expected algo:hex): {value}",
                kind=ErrorKind.PARSE_ERROR,
            )
        try:
            algorithm = HashAlgorithm.parse(algo_name)
        except DataVCSError as e:
            raise DataVCSError(str(e), kind=ErrorKind.PARSE_ERROR) from e
        oid = cls(algorithm, hex_digest.lower())
        oid.validate()
        return oid

    def validate(self) -> None:
        """Check digest length and characters against the algorithm.

        Raises:
            DataVCSError: (ParseError) If the digest is malformed
        """
        if len(self.hex) != self.algorithm.hex_length:
            raise DataVCSError(
                f"Invalid hex length for {self.algorithm.value}: expected "
                f"{self.algorithm.hex_length}, got {len(self.hex)}",
                kind=ErrorKind.PARSE_ERROR,
            )
        try:
            int(self.hex, 16)
        except ValueError as e:
            raise DataVCSError(
                f"Invalid hex characters in OID: {self.hex}",
                kind=ErrorKind.PARSE_ERROR,
            ) from e

    def storage_subpath(self) -> str:
        """Relative storage location: ``<algo>/<hex[:2]>/<hex[2:]>``."""
        prefix = self.hex[:SHARD_WIDTH]
        suffix = self.hex[SHARD_WIDTH:]
        return f"{self.algorithm.value}/{prefix}/{suffix}"


def hash_bytes(data: bytes, algorithm: Union[str, HashAlgorithm]) -> str:
    """Compute the hex digest of an in-memory buffer."""
    hasher = _new_hasher(HashAlgorithm.parse(algorithm))
    hasher.update(data)
    return hasher.hexdigest()


def hash_file(path: Union[str, Path], algorithm: Union[str, HashAlgorithm]) -> str:
    """Compute the hex digest of a file, streaming it in chunks.

    The result is identical to :func:`hash_bytes` over the whole content.

    Raises:
        DataVCSError: (HashError) If the file cannot be read
    """
    algo = HashAlgorithm.parse(algorithm)
    _, digests = hash_file_multi(path, [algo])
    return digests[algo.value]


def hash_file_multi(
    path: Union[str, Path],
    algorithms: Iterable[Union[str, HashAlgorithm]],
) -> Tuple[int, Dict[str, str]]:
    """Compute the size and several digests of a file in one read pass.

    Args:
        path: File to hash
        algorithms: Algorithms to compute concurrently

    Returns:
        Tuple of (size in bytes, mapping algorithm name -> hex digest)

    Raises:
        DataVCSError: (HashError) If the file cannot be read
    """
    hashers = {}
    for algorithm in algorithms:
        algo = HashAlgorithm.parse(algorithm)
        hashers[algo.value] = _new_hasher(algo)
    if not hashers:
        raise DataVCSError("No hash algorithm requested", kind=ErrorKind.HASH_ERROR)

    size = 0
    try:
        with open(path, "rb") as f:
            while True:
                chunk = f.read(HASH_CHUNK_SIZE)
                if not chunk:
                    break
                size += len(chunk)
                for hasher in hashers.values():
                    hasher.update(chunk)
    except OSError as e:
        raise DataVCSError(
            f"Failed to hash {path}: {e}",
            kind=ErrorKind.HASH_ERROR,
            path=path,
        ) from e

    digests = {name: hasher.hexdigest() for name, hasher in hashers.items()}
    logger.debug("Hashed %s (%d bytes): %s", path, size, digests)
    return size, digests
