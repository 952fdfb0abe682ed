"""Filesystem object transport for local use and testing."""

import contextlib
import json
import logging
import os
import shutil
import tempfile
import urllib.parse
from pathlib import Path
from typing import BinaryIO, Dict, Optional

import portalocker

from ..errors import NotFoundError, TransportError, require
from ..storage_models import CONTENT_TYPE, BlobMetadata, ObjectEntry, ObjectPage, get_property

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000
LOCK_TIMEOUT = 60


def encode_key(key: str) -> str:
    """Map any key to a single safe file name.

    Dots are escaped as well so no encoded name can be "." or ".." or
    collide with the hidden temp files.
    """
    return urllib.parse.quote(key, safe="").replace(".", "%2E")


def decode_key(name: str) -> str:
    return urllib.parse.unquote(name)


class FilesystemTransport:
    """
    Local directory transport (avoids an Azurite dependency in tests).

    Layout:
        base_dir/data/<encoded key>       content
        base_dir/meta/<encoded key>.json  metadata snapshot
        base_dir/locks/<encoded key>.lock per-key write lock

    Listing is sorted by key and paginated with a start-after token, the
    same way remote object stores page their listings.
    """

    def __init__(self, base_dir: Path, page_size: int = DEFAULT_PAGE_SIZE):
        """
        Initialize filesystem transport.

        Args:
            base_dir: Base directory for blob storage
            page_size: Maximum entries per listing page
        """
        require(page_size > 0, "page_size must be positive")
        self.base_dir = Path(base_dir)
        self.page_size = page_size
        self.data_dir = self.base_dir / "data"
        self.meta_dir = self.base_dir / "meta"
        self.lock_dir = self.base_dir / "locks"
        for d in (self.data_dir, self.meta_dir, self.lock_dir):
            d.mkdir(parents=True, exist_ok=True)

    def __repr__(self) -> str:
        return f"FilesystemTransport({str(self.base_dir)!r})"

    def _paths(self, key: str):
        name = encode_key(key)
        return (
            self.data_dir / name,
            self.meta_dir / f"{name}.json",
            self.lock_dir / f"{name}.lock",
        )

    def _lock(self, lock_path: Path):
        return portalocker.Lock(str(lock_path), "w", timeout=LOCK_TIMEOUT)

    def put_object(
        self, key: str, stream: BinaryIO, size_hint: int, properties: Dict[str, str]
    ) -> None:
        data_path, meta_path, lock_path = self._paths(key)

        # Stage both files next to their targets so os.replace is atomic
        fd, tmp_data = tempfile.mkstemp(prefix=".put-", dir=self.data_dir)
        tmp_meta = None
        try:
            with os.fdopen(fd, "wb") as out:
                shutil.copyfileobj(stream, out)
                written = out.tell()
            if size_hint >= 0 and written != size_hint:
                raise TransportError(
                    f"Short write for {key!r}: expected {size_hint} bytes, got {written}",
                    key=key,
                )

            meta = BlobMetadata(
                content_length=written,
                content_type=get_property(properties, CONTENT_TYPE),
                properties=properties,
            )
            fd, tmp_meta = tempfile.mkstemp(prefix=".put-", dir=self.meta_dir)
            with os.fdopen(fd, "w", encoding="utf-8") as out:
                out.write(meta.model_dump_json())

            with self._lock(lock_path):
                os.replace(tmp_meta, meta_path)
                os.replace(tmp_data, data_path)
        except portalocker.LockException as e:
            raise TransportError(f"Timed out locking {key!r}", key=key) from e
        except OSError as e:
            raise TransportError(f"Failed to write {key!r}: {e}", key=key) from e
        finally:
            with contextlib.suppress(OSError):
                os.unlink(tmp_data)
            if tmp_meta:
                with contextlib.suppress(OSError):
                    os.unlink(tmp_meta)

    def _read_meta(self, key: str, meta_path: Path) -> BlobMetadata:
        try:
            raw = json.loads(meta_path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            raise NotFoundError(key)
        except (OSError, ValueError) as e:
            raise TransportError(f"Unreadable metadata for {key!r}: {e}", key=key) from e
        return BlobMetadata(**raw)

    def get_object(self, key: str, sink: BinaryIO) -> BlobMetadata:
        data_path, meta_path, lock_path = self._paths(key)
        try:
            with self._lock(lock_path):
                meta = self._read_meta(key, meta_path)
                with open(data_path, "rb") as f:
                    shutil.copyfileobj(f, sink)
        except FileNotFoundError:
            raise NotFoundError(key)
        except portalocker.LockException as e:
            raise TransportError(f"Timed out locking {key!r}", key=key) from e
        except OSError as e:
            raise TransportError(f"Failed to read {key!r}: {e}", key=key) from e
        return meta

    def head_object(self, key: str) -> BlobMetadata:
        _, meta_path, _ = self._paths(key)
        return self._read_meta(key, meta_path)

    def delete_object(self, key: str) -> None:
        data_path, meta_path, lock_path = self._paths(key)
        removed = False
        try:
            with self._lock(lock_path):
                for path in (data_path, meta_path):
                    try:
                        path.unlink()
                        removed = True
                    except FileNotFoundError:
                        pass
        except portalocker.LockException as e:
            raise TransportError(f"Timed out locking {key!r}", key=key) from e
        except OSError as e:
            raise TransportError(f"Failed to delete {key!r}: {e}", key=key) from e
        if not removed:
            raise NotFoundError(key)

    def list_objects_page(self, continuation_token: Optional[str] = None) -> ObjectPage:
        try:
            names = [p.name for p in self.data_dir.iterdir() if not p.name.startswith(".")]
        except OSError as e:
            raise TransportError(f"Failed to list {self.base_dir}: {e}") from e

        keys = sorted(decode_key(name) for name in names)
        if continuation_token is not None:
            keys = [k for k in keys if k > continuation_token]

        batch = keys[: self.page_size]
        entries = []
        for key in batch:
            data_path, _, _ = self._paths(key)
            try:
                size = data_path.stat().st_size
            except FileNotFoundError:
                # Deleted since iterdir
                continue
            entries.append(ObjectEntry(key=key, size=size))

        next_token = batch[-1] if len(keys) > self.page_size else None
        return ObjectPage(entries=tuple(entries), next_token=next_token)
