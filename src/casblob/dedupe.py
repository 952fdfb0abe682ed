"""Dedupe indexes mapping content hashes to already-stored keys.

Which key wins when two uploads of the same content race is up to the
index: both built-in persistent indexes keep the last registration.
"""

import logging
import sqlite3
import threading
from pathlib import Path
from typing import Dict, Optional, Protocol

from .hashing import ContentHash
from .keys import KeyGenerator
from .sources import ByteSource

logger = logging.getLogger(__name__)


class Deduper(Protocol):
    """Lookup and registration against a dedupe index."""

    def find_existing_key(self, content_hash: ContentHash, source: ByteSource) -> Optional[str]:
        """Return the key already holding this content, if any.

        Implementations may consult the source's bytes or trust the hash alone.
        """
        ...

    def register_key(self, content_hash: ContentHash, key: str) -> None:
        """Record that key now holds content with this hash."""
        ...

    def forget_key(self, key: str) -> int:
        """Drop entries pointing at key; returns how many were removed."""
        ...


class NullDeduper:
    """Never finds anything; every upload goes through."""

    def find_existing_key(self, content_hash: ContentHash, source: ByteSource) -> Optional[str]:
        return None

    def register_key(self, content_hash: ContentHash, key: str) -> None:
        pass

    def forget_key(self, key: str) -> int:
        return 0


class MemoryDeduper:
    """Process-local index. Thread-safe; last registration wins."""

    def __init__(self):
        self._lock = threading.Lock()
        self._keys: Dict[ContentHash, str] = {}

    def find_existing_key(self, content_hash: ContentHash, source: ByteSource) -> Optional[str]:
        with self._lock:
            return self._keys.get(content_hash)

    def register_key(self, content_hash: ContentHash, key: str) -> None:
        with self._lock:
            self._keys[content_hash] = key

    def forget_key(self, key: str) -> int:
        with self._lock:
            stale = [h for h, k in self._keys.items() if k == key]
            for h in stale:
                del self._keys[h]
            return len(stale)

    def __len__(self) -> int:
        with self._lock:
            return len(self._keys)


class SqliteDeduper:
    """Persistent index in a SQLite database.

    Uses (algorithm, digest) as the key, so hashes from different
    algorithms never collide. Thread-safe with proper locking;
    last registration wins (INSERT OR REPLACE).
    """

    def __init__(self, db_path: Path):
        """Initialize index with database path.

        Args:
            db_path: Path to SQLite database file (created if missing)
        """
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._lock = threading.Lock()
        self._init_database()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(str(self.db_path))

    def _init_database(self):
        """Initialize SQLite schema."""
        with self._lock:
            conn = self._connect()
            try:
                conn.execute("""
                    CREATE TABLE IF NOT EXISTS dedupe_index (
                        algorithm TEXT NOT NULL,
                        digest TEXT NOT NULL,
                        blob_key TEXT NOT NULL,
                        PRIMARY KEY (algorithm, digest)
                    )
                """)
                conn.commit()
            finally:
                conn.close()

    def find_existing_key(self, content_hash: ContentHash, source: ByteSource) -> Optional[str]:
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute(
                    "SELECT blob_key FROM dedupe_index WHERE algorithm = ? AND digest = ?",
                    (content_hash.algorithm, content_hash.hexdigest),
                )
                row = cursor.fetchone()
                return row[0] if row else None
            finally:
                conn.close()

    def register_key(self, content_hash: ContentHash, key: str) -> None:
        with self._lock:
            conn = self._connect()
            try:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO dedupe_index (algorithm, digest, blob_key)
                    VALUES (?, ?, ?)
                    """,
                    (content_hash.algorithm, content_hash.hexdigest, key),
                )
                conn.commit()
            finally:
                conn.close()

    def forget_key(self, key: str) -> int:
        """Drop every entry pointing at key (e.g. after deleting the blob).

        Returns:
            Number of entries removed
        """
        with self._lock:
            conn = self._connect()
            try:
                cursor = conn.execute("DELETE FROM dedupe_index WHERE blob_key = ?", (key,))
                conn.commit()
                return cursor.rowcount
            finally:
                conn.close()


class StoreProbeDeduper:
    """Trusts the hash and asks the store whether the derived key exists.

    Needs no index of its own; the cost is one describe call per upload.
    """

    def __init__(self, store, key_generator: KeyGenerator):
        self.store = store
        self.key_generator = key_generator

    def find_existing_key(self, content_hash: ContentHash, source: ByteSource) -> Optional[str]:
        key = self.key_generator.derive_key(content_hash)
        if self.store.describe(key) is not None:
            logger.debug("Probe hit for %s at %s", content_hash, key)
            return key
        return None

    def register_key(self, content_hash: ContentHash, key: str) -> None:
        # The store itself is the index
        pass

    def forget_key(self, key: str) -> int:
        return 0
