"""Azure blob storage transport."""

import logging
import urllib.parse
from typing import BinaryIO, Dict, Optional

from azure.core.exceptions import AzureError, ResourceNotFoundError
from azure.storage.blob import BlobServiceClient, ContainerClient, ContentSettings

from ..errors import NotFoundError, TransportError, require
from ..storage_models import (
    CONTENT_DISPOSITION,
    CONTENT_ENCODING,
    CONTENT_TYPE,
    BlobMetadata,
    ObjectEntry,
    ObjectPage,
    get_property,
)
from .clients import ClientCache

logger = logging.getLogger(__name__)

DEFAULT_PAGE_SIZE = 1000

# Azure metadata names must be C# identifiers and are case-insensitive,
# so arbitrary property names are stored hex-encoded behind this marker.
_META_PREFIX = "p"


def encode_property_name(name: str) -> str:
    return _META_PREFIX + name.encode("utf-8").hex()


def decode_property_name(name: str) -> Optional[str]:
    """Reverse encode_property_name; None for metadata we did not write."""
    name = name.lower()
    if not name.startswith(_META_PREFIX):
        return None
    try:
        return bytes.fromhex(name[len(_META_PREFIX):]).decode("utf-8")
    except ValueError:
        return None


def encode_properties(properties: Dict[str, str]) -> Dict[str, str]:
    # Header values must be ASCII
    return {
        encode_property_name(k): urllib.parse.quote(v, safe=" /;=,:+-_.")
        for k, v in properties.items()
    }


def decode_properties(metadata: Optional[Dict[str, str]]) -> Dict[str, str]:
    properties = {}
    for k, v in (metadata or {}).items():
        name = decode_property_name(k)
        if name is not None:
            properties[name] = urllib.parse.unquote(v)
    return properties


def make_service_cache() -> ClientCache:
    """Service clients keyed by connection string, created once each."""
    return ClientCache(BlobServiceClient.from_connection_string)


class AzureTransport:
    """
    Azure Blob Storage transport.

    Keys are stored as blob names under an optional prefix:
    prefix/<key>. Listing uses the service's own pagination
    (``results_per_page`` and continuation tokens).
    """

    def __init__(
        self,
        container_client: ContainerClient,
        prefix: str = "",
        page_size: int = DEFAULT_PAGE_SIZE,
    ):
        """
        Initialize Azure transport.

        Args:
            container_client: Client for an existing container
            prefix: Optional key prefix
            page_size: Listing page size requested from the service
        """
        require(container_client is not None, "container_client is required")
        require(page_size > 0, "page_size must be positive")
        self.container = container_client
        self.prefix = prefix.strip("/") if prefix else ""
        self.page_size = page_size

    @classmethod
    def from_connection_string(
        cls,
        connection_string: str,
        container: str,
        prefix: str = "",
        page_size: int = DEFAULT_PAGE_SIZE,
        clients: Optional[ClientCache] = None,
        create_container: bool = True,
    ) -> "AzureTransport":
        """
        Build a transport from a connection string.

        Args:
            connection_string: Azure Storage connection string
            container: Container name
            prefix: Optional key prefix
            page_size: Listing page size
            clients: Shared service-client cache; a private one is used if omitted
            create_container: Create the container when it does not exist
        """
        clients = clients if clients is not None else make_service_cache()
        try:
            service = clients.get(connection_string)
            container_client = service.get_container_client(container)
            if create_container and not container_client.exists():
                container_client.create_container()
        except AzureError as e:
            raise TransportError(f"Cannot open container {container!r}: {e}") from e
        return cls(container_client, prefix=prefix, page_size=page_size)

    def __repr__(self) -> str:
        return f"AzureTransport({self.container.container_name!r}, prefix={self.prefix!r})"

    def _blob_name(self, key: str) -> str:
        return f"{self.prefix}/{key}" if self.prefix else key

    def _key_for(self, blob_name: str) -> str:
        if self.prefix:
            return blob_name[len(self.prefix) + 1:]
        return blob_name

    def _metadata_from(self, props) -> BlobMetadata:
        settings = props.content_settings
        return BlobMetadata(
            content_length=props.size or 0,
            content_type=settings.content_type if settings else None,
            properties=decode_properties(props.metadata),
        )

    def put_object(
        self, key: str, stream: BinaryIO, size_hint: int, properties: Dict[str, str]
    ) -> None:
        settings = ContentSettings(
            content_type=get_property(properties, CONTENT_TYPE),
            content_encoding=get_property(properties, CONTENT_ENCODING),
            content_disposition=get_property(properties, CONTENT_DISPOSITION),
        )
        try:
            self.container.upload_blob(
                name=self._blob_name(key),
                data=stream,
                length=size_hint,
                overwrite=True,
                metadata=encode_properties(properties),
                content_settings=settings,
            )
        except AzureError as e:
            raise TransportError(f"Azure upload failed for {key!r}: {e}", key=key) from e

    def get_object(self, key: str, sink: BinaryIO) -> BlobMetadata:
        try:
            downloader = self.container.download_blob(self._blob_name(key))
            downloader.readinto(sink)
        except ResourceNotFoundError:
            raise NotFoundError(key)
        except AzureError as e:
            raise TransportError(f"Azure download failed for {key!r}: {e}", key=key) from e
        return self._metadata_from(downloader.properties)

    def head_object(self, key: str) -> BlobMetadata:
        blob_client = self.container.get_blob_client(self._blob_name(key))
        try:
            props = blob_client.get_blob_properties()
        except ResourceNotFoundError:
            raise NotFoundError(key)
        except AzureError as e:
            raise TransportError(f"Azure describe failed for {key!r}: {e}", key=key) from e
        return self._metadata_from(props)

    def delete_object(self, key: str) -> None:
        try:
            self.container.delete_blob(self._blob_name(key))
        except ResourceNotFoundError:
            raise NotFoundError(key)
        except AzureError as e:
            raise TransportError(f"Azure delete failed for {key!r}: {e}", key=key) from e

    def list_objects_page(self, continuation_token: Optional[str] = None) -> ObjectPage:
        name_prefix = f"{self.prefix}/" if self.prefix else None
        try:
            pages = self.container.list_blobs(
                name_starts_with=name_prefix,
                results_per_page=self.page_size,
            ).by_page(continuation_token=continuation_token)
            page = next(pages, None)
            blobs = list(page) if page is not None else []
        except AzureError as e:
            raise TransportError(f"Azure listing failed: {e}") from e

        entries = tuple(
            ObjectEntry(key=self._key_for(blob.name), size=blob.size or 0) for blob in blobs
        )
        next_token = getattr(pages, "continuation_token", None) or None
        logger.debug("Listed %d blobs (more=%s)", len(entries), next_token is not None)
        return ObjectPage(entries=entries, next_token=next_token)
