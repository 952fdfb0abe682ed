"""Tests for RemoteBlobStore over the in-memory and filesystem transports."""

import io

import pytest

from casblob.errors import InvariantViolation, TransportError
from casblob.paging import Err, LazyPagedSequence
from casblob.storage.base import BlobStore
from casblob.storage.fs import FilesystemTransport, decode_key, encode_key
from casblob.storage.transport import RemoteBlobStore
from casblob.storage_models import BlobMetadata

from conftest import MemoryTransport, put_bytes


class TestRoundTrip:
    """Upload, download, describe, delete."""

    def test_is_a_blob_store(self, store):
        assert isinstance(store, BlobStore)

    def test_download_returns_uploaded_bytes_and_properties(self, store):
        put_bytes(store, "docs/a.txt", b"hello world", **{"Content-Type": "text/plain", "owner": "me"})

        sink = io.BytesIO()
        meta = store.download("docs/a.txt", sink)

        assert sink.getvalue() == b"hello world"
        assert meta.content_length == 11
        assert meta.content_type == "text/plain"
        assert meta.properties == {"Content-Type": "text/plain", "owner": "me"}

    def test_describe_matches_download(self, store):
        put_bytes(store, "k", b"12345", tag="x")

        meta = store.describe("k")

        assert meta.content_length == 5
        assert meta.properties == {"tag": "x"}
        assert meta.content_type is None

    def test_upload_replaces_content_and_properties(self, store):
        put_bytes(store, "k", b"first", a="1")
        put_bytes(store, "k", b"second!", b="2")

        sink = io.BytesIO()
        meta = store.download("k", sink)

        assert sink.getvalue() == b"second!"
        assert meta.properties == {"b": "2"}

    def test_empty_blob(self, store):
        put_bytes(store, "empty", b"")
        sink = io.BytesIO()
        meta = store.download("empty", sink)
        assert meta.content_length == 0
        assert sink.getvalue() == b""

    def test_caller_properties_not_aliased(self, store):
        props = {"a": "1"}
        store.upload("k", io.BytesIO(b"x"), props)
        props["a"] = "changed"
        assert store.describe("k").properties == {"a": "1"}


class TestNotFound:
    """Missing keys are never errors."""

    def test_download_missing_returns_none_and_leaves_sink_alone(self, store):
        sink = io.BytesIO(b"keep")
        sink.seek(0, io.SEEK_END)

        assert store.download("missing", sink) is None
        assert sink.getvalue() == b"keep"

    def test_describe_missing_returns_none(self, store):
        assert store.describe("missing") is None

    def test_delete_missing_succeeds(self, store):
        store.delete("missing")

    def test_delete_removes_blob(self, store):
        put_bytes(store, "k", b"x")
        store.delete("k")
        assert store.describe("k") is None
        assert list(store.enumerate_keys()) == []


class TestEnumeration:
    """Paged key listing."""

    def test_enumerates_every_key_across_pages(self, store):
        keys = ["a", "b/c", "d.txt", "e", "f"]
        for key in keys:
            put_bytes(store, key, key.encode())

        seq = store.enumerate_keys()

        assert isinstance(seq, LazyPagedSequence)
        assert sorted(seq.values()) == sorted(keys)

    def test_empty_store(self, store):
        assert list(store.enumerate_keys()) == []

    def test_entries_carry_sizes(self, store):
        put_bytes(store, "a", b"123")
        put_bytes(store, "b", b"1")

        entries = {e.key: e.size for e in store.enumerate_entries().values()}

        assert entries == {"a": 3, "b": 1}

    def test_enumeration_is_lazy(self, memory_transport, memory_store):
        put_bytes(memory_store, "a", b"x")
        seq = memory_store.enumerate_keys()
        assert memory_transport.calls["list"] == 0
        next(seq)
        assert memory_transport.calls["list"] == 1


class TestFailures:
    """Transport failures surface as TransportError."""

    def test_download_failure_leaves_sink_alone(self, memory_transport, memory_store):
        put_bytes(memory_store, "a", b"data")
        memory_transport.fail("get", "a")

        sink = io.BytesIO()
        with pytest.raises(TransportError):
            memory_store.download("a", sink)
        assert sink.getvalue() == b""

    def test_foreign_exceptions_are_wrapped(self, memory_transport, memory_store):
        memory_transport.fail("head", "a", error=OSError("connection reset"))

        with pytest.raises(TransportError) as exc_info:
            memory_store.describe("a")
        assert isinstance(exc_info.value.__cause__, OSError)
        assert exc_info.value.key == "a"

    def test_upload_failure(self, memory_transport, memory_store):
        memory_transport.fail("put")
        with pytest.raises(TransportError):
            put_bytes(memory_store, "a", b"x")

    def test_listing_failure_is_last_item(self, memory_transport, memory_store):
        for key in "abcde":
            put_bytes(memory_store, key, b"x")
        memory_transport.fail("list", "b")

        items = list(memory_store.enumerate_keys())

        assert [i.value for i in items[:2]] == ["a", "b"]
        assert isinstance(items[-1], Err)
        assert len(items) == 3

    def test_values_raise_listing_failure(self, memory_transport, memory_store):
        put_bytes(memory_store, "a", b"x")
        memory_transport.fail("list")
        with pytest.raises(TransportError):
            list(memory_store.enumerate_keys().values())


class TestArguments:
    """Contract violations fail fast."""

    @pytest.mark.parametrize("key", ["", None])
    def test_key_required(self, memory_store, key):
        with pytest.raises(InvariantViolation):
            memory_store.upload(key, io.BytesIO(b"x"))
        with pytest.raises(InvariantViolation):
            memory_store.describe(key)
        with pytest.raises(InvariantViolation):
            memory_store.delete(key)

    def test_stream_and_sink_required(self, memory_store):
        with pytest.raises(InvariantViolation):
            memory_store.upload("k", None)
        with pytest.raises(InvariantViolation):
            memory_store.download("k", None)

    def test_invariant_violation_is_value_error(self, memory_store):
        with pytest.raises(ValueError):
            memory_store.upload("", io.BytesIO(b"x"))

    def test_transport_required(self):
        with pytest.raises(InvariantViolation):
            RemoteBlobStore(None)


class TestFilesystemTransport:
    """Filesystem-specific behavior."""

    @pytest.mark.parametrize("key", ["a/b/c", "..", ".", "a b", "ünïcode", "x%2Ey"])
    def test_key_encoding_is_reversible_and_flat(self, key):
        name = encode_key(key)
        assert "/" not in name
        assert name not in (".", "..")
        assert not name.startswith(".")
        assert decode_key(name) == key

    def test_awkward_keys_round_trip(self, fs_store):
        for key in ["..", "a/../b", ".hidden"]:
            put_bytes(fs_store, key, key.encode())
        assert sorted(fs_store.enumerate_keys().values()) == sorted(["..", "a/../b", ".hidden"])

    def test_short_write_is_rejected(self, tmp_path):
        transport = FilesystemTransport(tmp_path / "store")

        with pytest.raises(TransportError, match="Short write"):
            transport.put_object("k", io.BytesIO(b"abc"), 5, {})

        assert list(transport.data_dir.iterdir()) == []
        assert list(transport.meta_dir.iterdir()) == []

    def test_persists_across_instances(self, tmp_path):
        put_bytes(RemoteBlobStore(FilesystemTransport(tmp_path / "s")), "k", b"data", a="1")

        reopened = RemoteBlobStore(FilesystemTransport(tmp_path / "s"))

        assert reopened.describe("k").properties == {"a": "1"}

    def test_page_size_must_be_positive(self, tmp_path):
        with pytest.raises(InvariantViolation):
            FilesystemTransport(tmp_path, page_size=0)


class TestMemoryTransportPaging:
    """The in-memory test transport pages the same way real ones do."""

    def test_page_tokens(self):
        transport = MemoryTransport(page_size=2)
        for key in "abc":
            transport.put_object(key, io.BytesIO(b"x"), 1, {})

        first = transport.list_objects_page()
        second = transport.list_objects_page(first.next_token)

        assert [e.key for e in first.entries] == ["a", "b"]
        assert first.is_truncated
        assert [e.key for e in second.entries] == ["c"]
        assert not second.is_truncated


class TestMetadataSnapshots:
    """Metadata handed out by a store cannot be changed afterwards."""

    def test_properties_read_only(self):
        meta = BlobMetadata(content_length=1, properties={"owner": "me"})
        with pytest.raises(TypeError):
            meta.properties["owner"] = "you"
        with pytest.raises(TypeError):
            BlobMetadata(content_length=0).properties["x"] = "y"

    def test_source_mapping_not_shared(self):
        props = {"owner": "me"}
        meta = BlobMetadata(content_length=1, properties=props)

        props["owner"] = "you"

        assert meta.properties == {"owner": "me"}

    def test_described_snapshot_read_only(self, store):
        put_bytes(store, "k", b"data", owner="me")
        meta = store.describe("k")

        with pytest.raises(TypeError):
            meta.properties["owner"] = "you"
        assert store.describe("k").properties == {"owner": "me"}

    def test_dumps_as_plain_dict(self):
        meta = BlobMetadata(content_length=2, properties={"a": "1"})
        assert meta.model_dump()["properties"] == {"a": "1"}
        assert BlobMetadata.model_validate_json(meta.model_dump_json()) == meta
