"""Content hashing for deduplication and key derivation.

A ``ContentHash`` renders as "<algorithm>:<hex>", e.g. "sha256:9f86d0...",
and can be parsed back from that form.
"""

import hashlib
import re
from dataclasses import dataclass
from typing import Protocol

from .errors import InvariantViolation, require
from .sources import ByteSource

CHUNK_SIZE = 8192

_HEX = re.compile(r"^[0-9a-f]+$")


@dataclass(frozen=True)
class ContentHash:
    """Fixed-size digest of a blob's bytes."""
    algorithm: str
    digest: bytes

    def __post_init__(self):
        require(bool(self.algorithm), "hash algorithm must be named")
        require(isinstance(self.digest, bytes) and len(self.digest) > 0, "digest must be non-empty bytes")

    @property
    def hexdigest(self) -> str:
        return self.digest.hex()

    def __str__(self) -> str:
        return f"{self.algorithm}:{self.hexdigest}"

    @classmethod
    def parse(cls, value: str) -> "ContentHash":
        """Parse "<algorithm>:<hex>".

        Raises:
            InvariantViolation: If the string is not in that form
        """
        algorithm, sep, hex_part = value.partition(":")
        if not sep or not algorithm or not _HEX.fullmatch(hex_part) or len(hex_part) % 2:
            raise InvariantViolation(f"Invalid content hash: {value!r}")
        return cls(algorithm, bytes.fromhex(hex_part))


class Hasher(Protocol):
    """Computes a deterministic hash of a source's content."""

    def compute_hash(self, source: ByteSource) -> ContentHash:
        ...


def compute_digest(
    source: ByteSource, algorithm: str = "sha256", chunk_size: int = CHUNK_SIZE
) -> ContentHash:
    """Hash a source in chunks.

    Simple byte-for-byte hashing - any change invalidates the digest.

    Args:
        source: Source to hash
        algorithm: Any hashlib algorithm name
        chunk_size: Bytes read per chunk

    Returns:
        ContentHash of the full content
    """
    h = hashlib.new(algorithm)
    with source.open() as f:
        for chunk in iter(lambda: f.read(chunk_size), b""):
            h.update(chunk)
    return ContentHash(algorithm, h.digest())


class HashlibHasher:
    """Hasher backed by a hashlib algorithm (sha256 by default)."""

    def __init__(self, algorithm: str = "sha256", chunk_size: int = CHUNK_SIZE):
        # shake_* digests need an explicit length
        if algorithm not in hashlib.algorithms_available or algorithm.startswith("shake_"):
            raise InvariantViolation(f"Unknown hash algorithm: {algorithm}")
        require(chunk_size > 0, "chunk_size must be positive")
        self.algorithm = algorithm
        self.chunk_size = chunk_size

    def compute_hash(self, source: ByteSource) -> ContentHash:
        return compute_digest(source, self.algorithm, self.chunk_size)

    def __repr__(self) -> str:
        return f"HashlibHasher({self.algorithm!r})"
