"""Storage package: the BlobStore protocol and its transports."""

from .base import BlobStore
from .clients import ClientCache
from .factory import make_blob_store
from .transport import ObjectTransport, RemoteBlobStore

__all__ = ["BlobStore", "ClientCache", "ObjectTransport", "RemoteBlobStore", "make_blob_store"]
