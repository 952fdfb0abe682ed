"""Base protocol for blob storage implementations."""

from typing import BinaryIO, Dict, Iterator, Optional, Protocol, runtime_checkable

from ..storage_models import BlobMetadata


@runtime_checkable
class BlobStore(Protocol):
    """
    Protocol for keyed blob storage.

    Keys are opaque strings; each key is independent and a later upload
    fully replaces the content and properties of an earlier one.
    "Not found" is never an exception here: reads return None and
    deletes succeed.
    """

    def upload(
        self, key: str, stream: BinaryIO, properties: Optional[Dict[str, str]] = None
    ) -> None:
        """
        Create or overwrite key with the bytes read from stream.

        Args:
            key: Blob key
            stream: Readable binary stream; its length is derived by reading it
            properties: Properties to attach (replaces any previous set)

        Raises:
            TransportError: If the backing store fails
        """
        ...

    def download(self, key: str, sink: BinaryIO) -> Optional[BlobMetadata]:
        """
        Write the blob's bytes into sink.

        The sink only receives bytes once the whole transfer has succeeded.

        Args:
            key: Blob key
            sink: Writable binary stream

        Returns:
            Metadata snapshot, or None if the key does not exist
        """
        ...

    def describe(self, key: str) -> Optional[BlobMetadata]:
        """
        Fetch metadata without transferring content.

        Returns:
            Metadata snapshot, or None if the key does not exist
        """
        ...

    def delete(self, key: str) -> None:
        """
        Remove a blob. Succeeds whether or not the key exists.
        """
        ...

    def enumerate_keys(self) -> Iterator:
        """
        Lazily enumerate every key.

        Returns:
            A LazyPagedSequence of Ok(key) / Err(error) items; no network
            call happens until it is first consumed
        """
        ...
