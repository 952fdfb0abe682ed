"""Generic blob store built on a narrow object-transport contract.

Transports (Azure, local filesystem) only know how to move one object at a
time and how to list one page. ``RemoteBlobStore`` adds everything the
``BlobStore`` protocol promises on top of that: argument checks, local
staging so sinks never see partial content, not-found translation and
lazy paginated enumeration.
"""

import logging
import shutil
import tempfile
from typing import BinaryIO, Dict, Optional, Protocol

from ..errors import CasBlobError, NotFoundError, TransportError, require
from ..paging import LazyPagedSequence
from ..storage_models import BlobMetadata, ObjectEntry, ObjectPage

logger = logging.getLogger(__name__)

# Uploads smaller than this are staged in memory
SPOOL_THRESHOLD = 8 * 1024 * 1024

COPY_CHUNK = 1024 * 1024


class ObjectTransport(Protocol):
    """Backing object-store transport.

    ``get_object``, ``head_object`` and ``delete_object`` raise
    ``NotFoundError`` for a missing key and ``TransportError`` for any other
    failure.
    """

    def put_object(
        self, key: str, stream: BinaryIO, size_hint: int, properties: Dict[str, str]
    ) -> None:
        ...

    def get_object(self, key: str, sink: BinaryIO) -> BlobMetadata:
        ...

    def head_object(self, key: str) -> BlobMetadata:
        ...

    def delete_object(self, key: str) -> None:
        ...

    def list_objects_page(self, continuation_token: Optional[str] = None) -> ObjectPage:
        ...


class RemoteBlobStore:
    """
    BlobStore over any ObjectTransport.

    Uploads are staged in a spooled temporary file so the transport gets an
    exact length; downloads are staged in a temporary file so the caller's
    sink is only written after the transfer is confirmed.
    """

    def __init__(self, transport: ObjectTransport, spool_threshold: int = SPOOL_THRESHOLD):
        """
        Initialize store.

        Args:
            transport: Backing object transport
            spool_threshold: Max upload size staged in memory before spilling to disk
        """
        require(transport is not None, "transport is required")
        self.transport = transport
        self.spool_threshold = spool_threshold

    def __repr__(self) -> str:
        return f"RemoteBlobStore({self.transport!r})"

    def _transport_call(self, what: str, key: Optional[str], fn, *args):
        """Invoke a transport method, wrapping foreign failures in TransportError."""
        try:
            return fn(*args)
        except CasBlobError:
            raise
        except Exception as e:
            raise TransportError(f"{what} failed for {key!r}: {e}", key=key) from e

    def upload(
        self, key: str, stream: BinaryIO, properties: Optional[Dict[str, str]] = None
    ) -> None:
        require(bool(key), "key must be a non-empty string")
        require(stream is not None, "stream is required")
        props = dict(properties or {})

        with tempfile.SpooledTemporaryFile(max_size=self.spool_threshold) as staged:
            shutil.copyfileobj(stream, staged, COPY_CHUNK)
            size = staged.tell()
            staged.seek(0)
            self._transport_call("upload", key, self.transport.put_object, key, staged, size, props)

        logger.debug("Uploaded %s (%d bytes)", key, size)

    def download(self, key: str, sink: BinaryIO) -> Optional[BlobMetadata]:
        require(bool(key), "key must be a non-empty string")
        require(sink is not None, "sink is required")

        with tempfile.TemporaryFile(prefix="casblob-get-") as staged:
            try:
                meta = self._transport_call("download", key, self.transport.get_object, key, staged)
            except NotFoundError:
                logger.debug("Download of missing key %s", key)
                return None
            staged.seek(0)
            shutil.copyfileobj(staged, sink, COPY_CHUNK)

        logger.debug("Downloaded %s (%d bytes)", key, meta.content_length)
        return meta

    def describe(self, key: str) -> Optional[BlobMetadata]:
        require(bool(key), "key must be a non-empty string")
        try:
            return self._transport_call("describe", key, self.transport.head_object, key)
        except NotFoundError:
            return None

    def delete(self, key: str) -> None:
        require(bool(key), "key must be a non-empty string")
        try:
            self._transport_call("delete", key, self.transport.delete_object, key)
        except NotFoundError:
            logger.debug("Delete of missing key %s ignored", key)

    def _list_page(self, token: Optional[str]) -> ObjectPage:
        return self._transport_call("list", token, self.transport.list_objects_page, token)

    def _next_page(self, page: ObjectPage) -> Optional[ObjectPage]:
        if not page.is_truncated:
            return None
        return self._list_page(page.next_token)

    def enumerate_entries(self) -> LazyPagedSequence[ObjectEntry]:
        """Lazily enumerate listing entries (key and size)."""
        return LazyPagedSequence(
            lambda: self._list_page(None),
            self._next_page,
            items_of=lambda page: page.entries,
        )

    def enumerate_keys(self) -> LazyPagedSequence[str]:
        return LazyPagedSequence(
            lambda: self._list_page(None),
            self._next_page,
            items_of=lambda page: (entry.key for entry in page.entries),
        )
