"""Deterministic key derivation from content hashes."""

from typing import Protocol

from .hashing import ContentHash


class KeyGenerator(Protocol):
    """Pure function from hash to key: same hash, same key, always."""

    def derive_key(self, content_hash: ContentHash) -> str:
        ...


def _join(prefix: str, *parts: str) -> str:
    key_parts = []
    if prefix:
        key_parts.append(prefix)
    key_parts.extend(parts)
    return "/".join(key_parts)


class HexKeyGenerator:
    """Flat layout: prefix/<hex>."""

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.strip("/")

    def derive_key(self, content_hash: ContentHash) -> str:
        return _join(self.prefix, content_hash.hexdigest)


class ShardedKeyGenerator:
    """
    Sharded layout: prefix/ab/cd/<hex>.

    The two leading byte pairs spread keys across listing prefixes.
    """

    def __init__(self, prefix: str = ""):
        self.prefix = prefix.strip("/")

    def derive_key(self, content_hash: ContentHash) -> str:
        hex_part = content_hash.hexdigest
        return _join(self.prefix, hex_part[:2], hex_part[2:4], hex_part)
