"""casblob: content-addressed uploads over paginated remote blob stores."""

from .addresser import ContentAddresser, build_addresser
from .aggregate import compute_statistics, consume_keys, copy_all, copy_one, listing_statistics
from .cancel import CancelToken
from .constants import CASBLOB_VERSION as __version__
from .errors import (
    CasBlobError,
    ConfigError,
    EmptyStatisticsError,
    InvariantViolation,
    NotFoundError,
    OperationCancelled,
    TransportError,
)
from .paging import Err, LazyPagedSequence, Ok
from .sources import BytesSource, FileSource
from .storage import BlobStore, RemoteBlobStore, make_blob_store
from .storage_models import BlobMetadata, StatisticsSummary
from .uri import UriIngestor

__all__ = [
    "BlobMetadata",
    "BlobStore",
    "BytesSource",
    "CancelToken",
    "CasBlobError",
    "ConfigError",
    "ContentAddresser",
    "EmptyStatisticsError",
    "Err",
    "FileSource",
    "InvariantViolation",
    "LazyPagedSequence",
    "NotFoundError",
    "Ok",
    "OperationCancelled",
    "RemoteBlobStore",
    "StatisticsSummary",
    "TransportError",
    "UriIngestor",
    "build_addresser",
    "compute_statistics",
    "consume_keys",
    "copy_all",
    "copy_one",
    "listing_statistics",
    "make_blob_store",
]
