"""Content-addressed uploads on top of a keyed BlobStore.

Pipeline for ``ContentAddresser.upload(source, properties)``:

1. Hash the source
2. Ask the deduper for an existing key; on a hit return it, nothing else runs
3. Infer a content type unless the caller declared one
4. Derive the key from the hash
5. Upload a fresh stream over the source
6. Register hash -> key, only after the upload succeeded

The source is opened independently by every step, so nothing read during
hashing or sniffing affects the stream that is uploaded.
"""

import logging
from typing import BinaryIO, Dict, Optional

from .content_type import ContentTyper, NullContentTyper
from .dedupe import Deduper
from .errors import InvariantViolation, require
from .hashing import ContentHash, Hasher
from .keys import KeyGenerator
from .sources import ByteSource
from .storage.base import BlobStore
from .storage_models import CONTENT_TYPE, BlobMetadata, get_property

logger = logging.getLogger(__name__)


class ContentAddresser:
    """Key-less uploader: callers hand over content, the store picks the key.

    If the content was uploaded before, the existing key is returned and the
    new properties are ignored.
    """

    def __init__(
        self,
        store: BlobStore,
        hasher: Hasher,
        deduper: Deduper,
        key_generator: KeyGenerator,
        typer: Optional[ContentTyper] = None,
    ):
        require(store is not None, "store is required")
        require(hasher is not None, "hasher is required")
        require(deduper is not None, "deduper is required")
        require(key_generator is not None, "key_generator is required")
        self.store = store
        self.hasher = hasher
        self.deduper = deduper
        self.key_generator = key_generator
        self.typer = typer or NullContentTyper()

    def _hash(self, source: ByteSource) -> ContentHash:
        content_hash = self.hasher.compute_hash(source)
        if not isinstance(content_hash, ContentHash):
            raise InvariantViolation(
                f"{self.hasher!r} returned {type(content_hash).__name__}, expected ContentHash"
            )
        return content_hash

    def _derive_key(self, content_hash: ContentHash) -> str:
        key = self.key_generator.derive_key(content_hash)
        if not isinstance(key, str) or not key:
            raise InvariantViolation(f"{self.key_generator!r} derived an invalid key: {key!r}")
        return key

    def upload(self, source: ByteSource, properties: Optional[Dict[str, str]] = None) -> str:
        """
        Upload content under a key derived from its hash.

        Args:
            source: Re-openable content
            properties: Properties for a new blob; not applied on a dedupe hit

        Returns:
            The key holding the content (existing or new)

        Raises:
            TransportError: If the store fails; nothing is registered
            InvariantViolation: If a plugin returns an invalid result
        """
        require(source is not None, "source is required")
        props = dict(properties or {})

        content_hash = self._hash(source)

        existing = self.deduper.find_existing_key(content_hash, source)
        if existing is not None:
            logger.debug("Dedupe hit for %s -> %s", content_hash, existing)
            return existing

        if get_property(props, CONTENT_TYPE) is None:
            inferred = self.typer.infer_type(source)
            if inferred:
                props[CONTENT_TYPE] = inferred

        key = self._derive_key(content_hash)

        with source.open() as stream:
            self.store.upload(key, stream, props)

        self.deduper.register_key(content_hash, key)
        logger.info("Stored %s as %s", content_hash, key)
        return key

    # Keyed path, delegated unchanged

    def put(self, key: str, stream: BinaryIO, properties: Optional[Dict[str, str]] = None) -> None:
        """Upload to a caller-chosen key (bypasses hashing and dedupe)."""
        self.store.upload(key, stream, properties)

    def download(self, key: str, sink: BinaryIO) -> Optional[BlobMetadata]:
        return self.store.download(key, sink)

    def describe(self, key: str) -> Optional[BlobMetadata]:
        return self.store.describe(key)

    def delete(self, key: str) -> None:
        """Delete key and drop any dedupe entries that point at it."""
        self.store.delete(key)
        forgotten = self.deduper.forget_key(key)
        if forgotten:
            logger.debug("Forgot %d dedupe entries for %s", forgotten, key)

    def enumerate_keys(self):
        return self.store.enumerate_keys()


def build_addresser(settings, store: BlobStore) -> ContentAddresser:
    """
    Wire a ContentAddresser from store settings.

    Args:
        settings: StoreSettings selecting hash algorithm, key layout,
            dedupe index and content-type sniffing
        store: The keyed store to upload into

    Returns:
        Configured ContentAddresser
    """
    from .content_type import SignatureContentTyper
    from .dedupe import MemoryDeduper, NullDeduper, SqliteDeduper, StoreProbeDeduper
    from .hashing import HashlibHasher
    from .keys import HexKeyGenerator, ShardedKeyGenerator

    hasher = HashlibHasher(settings.hash_algorithm)
    if settings.key_layout == "flat":
        key_generator = HexKeyGenerator()
    else:
        key_generator = ShardedKeyGenerator()

    if settings.dedupe == "memory":
        deduper = MemoryDeduper()
    elif settings.dedupe == "sqlite":
        deduper = SqliteDeduper(settings.resolved_dedupe_path)
    elif settings.dedupe == "probe":
        deduper = StoreProbeDeduper(store, key_generator)
    else:
        deduper = NullDeduper()

    typer = SignatureContentTyper() if settings.sniff_content_type else None
    return ContentAddresser(store, hasher, deduper, key_generator, typer)
