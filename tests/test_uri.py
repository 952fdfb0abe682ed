"""Tests for ingesting remote content by URI."""

import hashlib
import io
import tempfile
import urllib.error
from unittest.mock import Mock, patch

import pytest

from casblob.addresser import ContentAddresser
from casblob.dedupe import MemoryDeduper
from casblob.errors import TransportError
from casblob.hashing import HashlibHasher
from casblob.keys import HexKeyGenerator
from casblob.uri import FetchResult, UriIngestor, UrllibFetcher, combine_properties

URI = "https://example.org/data/page.html"


class StubFetcher:
    """Serves one canned response and records requested URIs."""

    def __init__(self, body: bytes, headers=None):
        self.body = body
        self.headers = headers or {}
        self.requested = []

    def fetch(self, uri):
        self.requested.append(uri)
        return FetchResult(headers=dict(self.headers), opener=lambda: io.BytesIO(self.body))


@pytest.fixture
def addresser(memory_store):
    return ContentAddresser(memory_store, HashlibHasher(), MemoryDeduper(), HexKeyGenerator())


@pytest.fixture
def private_tmp(tmp_path, monkeypatch):
    """Route temp files into tmp_path so leftovers can be detected."""
    monkeypatch.setattr(tempfile, "tempdir", str(tmp_path))
    return tmp_path


class TestCombineProperties:

    def test_primary_wins(self):
        assert combine_properties({"a": "1"}, {"a": "2", "b": "3"}) == {"a": "1", "b": "3"}

    def test_inputs_untouched(self):
        primary, secondary = {"a": "1"}, {"b": "2"}
        combine_properties(primary, secondary)
        assert primary == {"a": "1"} and secondary == {"b": "2"}


class TestUriIngestor:

    def test_stores_body_under_content_key(self, addresser, memory_store, private_tmp):
        fetcher = StubFetcher(b"<html></html>")
        key = UriIngestor(addresser, fetcher).upload(URI)

        assert fetcher.requested == [URI]
        assert key == hashlib.sha256(b"<html></html>").hexdigest()
        sink = io.BytesIO()
        meta = memory_store.download(key, sink)
        assert sink.getvalue() == b"<html></html>"
        assert meta.properties["from"] == URI
        assert list(private_tmp.glob("casblob-fetch-*")) == []

    def test_property_precedence(self, addresser, memory_store, private_tmp):
        fetcher = StubFetcher(b"body", headers={"Content-Type": "text/html", "ETag": "abc"})

        key = UriIngestor(addresser, fetcher).upload(
            URI, {"Content-Type": "text/plain", "from": "mirror", "tag": "t"}
        )

        props = memory_store.describe(key).properties
        # Response headers beat caller properties, which beat the synthetic source
        assert props == {"Content-Type": "text/html", "ETag": "abc", "from": "mirror", "tag": "t"}

    def test_fetch_failure_uploads_nothing(self, addresser, memory_store):
        fetcher = Mock()
        fetcher.fetch.side_effect = TransportError("GET failed with HTTP 404")

        with pytest.raises(TransportError):
            UriIngestor(addresser, fetcher).upload(URI)
        assert list(memory_store.enumerate_keys()) == []

    def test_upload_failure_cleans_up(self, memory_transport, addresser, private_tmp):
        memory_transport.fail("put")

        with pytest.raises(TransportError):
            UriIngestor(addresser, StubFetcher(b"x")).upload(URI)
        assert list(private_tmp.glob("casblob-fetch-*")) == []


class TestUrllibFetcher:

    def test_http_error(self):
        error = urllib.error.HTTPError(URI, 404, "Not Found", {}, None)
        with patch("urllib.request.urlopen", side_effect=error):
            with pytest.raises(TransportError, match="404"):
                UrllibFetcher().fetch(URI)

    def test_connection_error(self):
        with patch("urllib.request.urlopen", side_effect=urllib.error.URLError("refused")):
            with pytest.raises(TransportError):
                UrllibFetcher().fetch(URI)

    def test_success(self):
        class FakeResponse(io.BytesIO):
            headers = {"Content-Type": "text/plain"}

        response = FakeResponse(b"data")
        with patch("urllib.request.urlopen", return_value=response) as urlopen:
            result = UrllibFetcher(timeout=5).fetch(URI)

        urlopen.assert_called_once_with(URI, timeout=5)
        assert result.headers == {"Content-Type": "text/plain"}
        with result.open() as body:
            assert body.read() == b"data"
