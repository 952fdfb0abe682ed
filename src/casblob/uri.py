"""Content-addressed ingestion of remote content by URI."""

import contextlib
import logging
import os
import shutil
import tempfile
import urllib.error
import urllib.request
from dataclasses import dataclass, field
from pathlib import Path
from typing import BinaryIO, Callable, Dict, Optional, Protocol

from .addresser import ContentAddresser
from .constants import FROM_PROPERTY
from .errors import TransportError, require
from .sources import FileSource

logger = logging.getLogger(__name__)


@dataclass
class FetchResult:
    """Response of an HTTP GET: headers plus a way to open the body."""
    headers: Dict[str, str] = field(default_factory=dict)
    opener: Optional[Callable[[], BinaryIO]] = None

    def open(self) -> BinaryIO:
        require(self.opener is not None, "fetch result has no body")
        return self.opener()


class HttpFetcher(Protocol):
    def fetch(self, uri: str) -> FetchResult:
        """GET uri. Must raise TransportError on non-success status codes."""
        ...


class UrllibFetcher:
    """HttpFetcher on urllib.request."""

    def __init__(self, timeout: float = 30):
        self.timeout = timeout

    def fetch(self, uri: str) -> FetchResult:
        try:
            response = urllib.request.urlopen(uri, timeout=self.timeout)
        except urllib.error.HTTPError as e:
            raise TransportError(f"GET {uri} failed with HTTP {e.code}") from e
        except (urllib.error.URLError, OSError) as e:
            raise TransportError(f"GET {uri} failed: {e}") from e

        headers = {k: v for k, v in response.headers.items()}
        return FetchResult(headers=headers, opener=lambda: response)


def combine_properties(primary: Dict[str, str], secondary: Dict[str, str]) -> Dict[str, str]:
    """Union of both mappings; primary wins where names overlap."""
    combined = dict(secondary)
    combined.update(primary)
    return combined


class UriIngestor:
    """
    Fetch remote content and upload it through a ContentAddresser.

    The body is staged in a local temporary file first, so the pipeline
    gets a re-openable source without fetching twice.

    Property precedence: response headers, then caller properties, then the
    synthetic "from" property holding the URI.
    """

    def __init__(self, addresser: ContentAddresser, fetcher: Optional[HttpFetcher] = None):
        self.addresser = addresser
        self.fetcher = fetcher or UrllibFetcher()

    def upload(self, uri: str, properties: Optional[Dict[str, str]] = None) -> str:
        """
        Ingest uri and return its content-addressed key.

        Raises:
            TransportError: If the fetch or the upload fails
        """
        require(bool(uri), "uri is required")
        result = self.fetcher.fetch(uri)

        user_properties = combine_properties(dict(properties or {}), {FROM_PROPERTY: uri})
        combined = combine_properties(result.headers, user_properties)

        fd, tmp = tempfile.mkstemp(prefix="casblob-fetch-")
        try:
            try:
                with os.fdopen(fd, "wb") as out, result.open() as body:
                    shutil.copyfileobj(body, out)
            except OSError as e:
                raise TransportError(f"Reading body of {uri} failed: {e}") from e
            key = self.addresser.upload(FileSource(Path(tmp)), combined)
        finally:
            with contextlib.suppress(OSError):
                os.unlink(tmp)

        logger.info("Ingested %s as %s", uri, key)
        return key
