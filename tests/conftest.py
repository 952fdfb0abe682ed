"""Shared test fixtures and utilities."""

import io
import threading
from collections import Counter
from typing import Dict, Optional, Tuple

import pytest

from casblob.errors import NotFoundError, TransportError
from casblob.storage.fs import FilesystemTransport
from casblob.storage.transport import RemoteBlobStore
from casblob.storage_models import CONTENT_TYPE, BlobMetadata, ObjectEntry, ObjectPage, get_property


class MemoryTransport:
    """In-memory ObjectTransport with call counting and failure injection."""

    def __init__(self, page_size: int = 2):
        self.page_size = page_size
        self.objects: Dict[str, Tuple[bytes, Dict[str, str]]] = {}
        self.calls = Counter()
        self.failures: Dict[Tuple[str, Optional[str]], Exception] = {}
        self._lock = threading.Lock()

    def fail(self, op: str, key: Optional[str] = None, error: Optional[Exception] = None):
        """Make op fail for key (any key when None). For "list", key is the continuation token."""
        self.failures[(op, key)] = error or TransportError(f"injected {op} failure", key=key)

    def _check(self, op: str, key: Optional[str]):
        with self._lock:
            self.calls[op] += 1
        error = self.failures.get((op, key)) or self.failures.get((op, None))
        if error is not None:
            raise error

    def _meta(self, data: bytes, props: Dict[str, str]) -> BlobMetadata:
        return BlobMetadata(
            content_length=len(data),
            content_type=get_property(props, CONTENT_TYPE),
            properties=props,
        )

    def put_object(self, key, stream, size_hint, properties):
        self._check("put", key)
        data = stream.read()
        with self._lock:
            self.objects[key] = (data, dict(properties))

    def get_object(self, key, sink):
        self._check("get", key)
        with self._lock:
            item = self.objects.get(key)
        if item is None:
            raise NotFoundError(key)
        sink.write(item[0])
        return self._meta(*item)

    def head_object(self, key):
        self._check("head", key)
        with self._lock:
            item = self.objects.get(key)
        if item is None:
            raise NotFoundError(key)
        return self._meta(*item)

    def delete_object(self, key):
        self._check("delete", key)
        with self._lock:
            if self.objects.pop(key, None) is None:
                raise NotFoundError(key)

    def list_objects_page(self, continuation_token=None):
        self._check("list", continuation_token)
        with self._lock:
            keys = sorted(self.objects)
            if continuation_token is not None:
                keys = [k for k in keys if k > continuation_token]
            batch = keys[: self.page_size]
            entries = tuple(ObjectEntry(key=k, size=len(self.objects[k][0])) for k in batch)
        next_token = batch[-1] if len(keys) > self.page_size else None
        return ObjectPage(entries=entries, next_token=next_token)


def put_bytes(store, key: str, data: bytes, **properties):
    """Upload bytes under key with keyword properties."""
    store.upload(key, io.BytesIO(data), properties)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch):
    """Keep CASBLOB_* and Azure settings from the developer's shell out of tests."""
    import os

    for name in list(os.environ):
        if name.startswith("CASBLOB_") or name == "AZURE_STORAGE_CONNECTION_STRING":
            monkeypatch.delenv(name, raising=False)


@pytest.fixture
def memory_transport():
    return MemoryTransport(page_size=2)


@pytest.fixture
def memory_store(memory_transport):
    return RemoteBlobStore(memory_transport)


@pytest.fixture
def fs_store(tmp_path):
    return RemoteBlobStore(FilesystemTransport(tmp_path / "store", page_size=2))


@pytest.fixture(params=["memory", "fs"])
def store(request, tmp_path):
    """Same behavior is expected from every transport."""
    if request.param == "memory":
        return RemoteBlobStore(MemoryTransport(page_size=2))
    return RemoteBlobStore(FilesystemTransport(tmp_path / "store", page_size=2))


@pytest.fixture
def write_file(tmp_path):
    """Factory fixture to write files relative to tmp_path."""
    def _write(path: str, content: bytes = b"test content"):
        file_path = tmp_path / path
        file_path.parent.mkdir(parents=True, exist_ok=True)
        file_path.write_bytes(content)
        return file_path
    return _write
