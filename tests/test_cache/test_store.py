"""Tests for the two-part store: pairing, self-healing, and failure behaviour."""

from __future__ import annotations

import io
import tempfile
from unittest.mock import patch

import pytest

from httpstash.cache.codec import encode
from httpstash.cache.engine import MemoryEngine
from httpstash.cache.keys import derive_keys
from httpstash.cache.resource import CachedResource
from httpstash.cache.store import TwoPartStore
from httpstash.exceptions import DecodeError, StorageError
from httpstash.models import MetadataRecord


def _resource(body: bytes = b"hello", status: int = 200, **headers: list[str]) -> CachedResource:
    return CachedResource.from_bytes(status, headers or {"Content-Type": ["text/html"]}, body)


class _OneShotStream(io.RawIOBase):
    """A readable, non-seekable stream."""

    def __init__(self, data: bytes) -> None:
        self._data = io.BytesIO(data)

    def readable(self) -> bool:
        return True

    def seekable(self) -> bool:
        return False

    def readinto(self, buffer) -> int:
        chunk = self._data.read(len(buffer))
        buffer[: len(chunk)] = chunk
        return len(chunk)


@pytest.fixture
def store(engine) -> TwoPartStore:
    return TwoPartStore(engine)


@pytest.fixture
def spools(monkeypatch: pytest.MonkeyPatch) -> list:
    """Record every spool the store creates for non-seekable bodies."""
    created = []
    real_spool = tempfile.SpooledTemporaryFile

    def _spool(*args, **kwargs):
        spool = real_spool(*args, **kwargs)
        created.append(spool)
        return spool

    monkeypatch.setattr("httpstash.cache.store.tempfile.SpooledTemporaryFile", _spool)
    return created


# ------------------------------------------------------------------ #
# Layout
# ------------------------------------------------------------------ #


class TestLayout:
    def test_blobs_live_under_derived_keys(self, memory_engine: MemoryEngine) -> None:
        store = TwoPartStore(memory_engine)
        store.store(_resource(), ["http://example.com/"])
        pair = derive_keys("http://example.com/")
        assert sorted(memory_engine.keys()) == sorted(pair)

    def test_body_blob_is_raw(self, memory_engine: MemoryEngine) -> None:
        store = TwoPartStore(memory_engine)
        store.store(_resource(b"<html>raw</html>"), ["k"])
        assert memory_engine.get(derive_keys("k").body_key).reader.read() == b"<html>raw</html>"

    def test_metadata_blob_is_codec_encoding(self, memory_engine: MemoryEngine) -> None:
        store = TwoPartStore(memory_engine)
        resource = _resource()
        store.store(resource, ["k"])
        stored = memory_engine.get(derive_keys("k").metadata_key).reader.read()
        assert stored == encode(resource.metadata)

    def test_both_halves_share_one_tag(self, memory_engine: MemoryEngine) -> None:
        store = TwoPartStore(memory_engine)
        store.store(_resource(), ["a", "b"])
        tags = {
            memory_engine.get(key).tag
            for name in ("a", "b")
            for key in derive_keys(name)
        }
        assert len(tags) == 1
        assert None not in tags


# ------------------------------------------------------------------ #
# Store / header / retrieve
# ------------------------------------------------------------------ #


class TestStoreAndRetrieve:
    def test_round_trip(self, store: TwoPartStore) -> None:
        store.store(_resource(b"hello"), ["http://example.com/"])
        with store.retrieve("http://example.com/") as resource:
            assert resource.status_code == 200
            assert resource.headers == {"Content-Type": ["text/html"]}
            assert resource.read() == b"hello"

    def test_header_reads_metadata_only(self, memory_engine: MemoryEngine) -> None:
        store = TwoPartStore(memory_engine)
        store.store(_resource(), ["k"])
        with patch.object(memory_engine, "get_file") as get_file:
            record = store.header("k")
        get_file.assert_not_called()
        assert record == MetadataRecord(status_code=200, headers={"Content-Type": ["text/html"]})

    def test_miss_returns_none(self, store: TwoPartStore) -> None:
        assert store.header("never") is None
        assert store.retrieve("never") is None

    def test_store_with_no_keys_is_noop(self, memory_engine: MemoryEngine) -> None:
        store = TwoPartStore(memory_engine)
        store.store(_resource(), [])
        assert memory_engine.keys() == []

    def test_multiple_keys_share_body(self, store: TwoPartStore) -> None:
        store.store(_resource(b"shared body"), ["a", "b", "c"])
        for key in ("a", "b", "c"):
            with store.retrieve(key) as resource:
                assert resource.read() == b"shared body"

    def test_duplicate_keys_written_once(self, memory_engine: MemoryEngine) -> None:
        store = TwoPartStore(memory_engine)
        with patch.object(memory_engine, "put", wraps=memory_engine.put) as put:
            store.store(_resource(), ["k", "k"])
        assert put.call_count == 2

    def test_non_seekable_body_under_many_keys(self, store: TwoPartStore) -> None:
        body = b"x" * 100_000
        resource = CachedResource(200, {}, io.BufferedReader(_OneShotStream(body)))
        store.store(resource, ["a", "b"])
        for key in ("a", "b"):
            with store.retrieve(key) as hit:
                assert hit.read() == body

    def test_body_read_from_current_position(self, store: TwoPartStore) -> None:
        stream = io.BytesIO(b"skip:keep")
        stream.read(5)
        store.store(CachedResource(200, {}, stream), ["a", "b"])
        for key in ("a", "b"):
            with store.retrieve(key) as hit:
                assert hit.read() == b"keep"

    def test_large_body(self, store: TwoPartStore) -> None:
        body = bytes(range(256)) * 8192
        store.store(_resource(body), ["big"])
        with store.retrieve("big") as resource:
            assert resource.read() == body


# ------------------------------------------------------------------ #
# Invalidate / freshen
# ------------------------------------------------------------------ #


class TestInvalidateAndFreshen:
    def test_invalidate_removes_both_halves(self, memory_engine: MemoryEngine) -> None:
        store = TwoPartStore(memory_engine)
        store.store(_resource(), ["k"])
        store.invalidate(["k"])
        assert memory_engine.keys() == []
        assert store.retrieve("k") is None

    def test_invalidate_is_idempotent(self, store: TwoPartStore) -> None:
        store.store(_resource(), ["k"])
        store.invalidate(["k"])
        store.invalidate(["k"])
        store.invalidate(["never-stored"])

    def test_invalidate_leaves_other_keys(self, store: TwoPartStore) -> None:
        store.store(_resource(), ["a", "b"])
        store.invalidate(["a"])
        assert store.retrieve("a") is None
        with store.retrieve("b") as resource:
            assert resource.read() == b"hello"

    def test_freshen_replaces_metadata_and_body(self, store: TwoPartStore) -> None:
        store.store(_resource(b"old", ETag=['"v1"']), ["k"])
        store.freshen(_resource(b"new", ETag=['"v2"']), ["k"])
        with store.retrieve("k") as resource:
            assert resource.headers == {"ETag": ['"v2"']}
            assert resource.read() == b"new"

    def test_freshen_with_body_from_cache(self, store: TwoPartStore) -> None:
        """Revalidation can hand the retrieved body straight back in."""
        store.store(_resource(b"kept body", ETag=['"v1"']), ["k"])
        cached = store.retrieve("k")
        refreshed = CachedResource(200, {"ETag": ['"v2"']}, cached.body)
        store.freshen(refreshed, ["k"])
        cached.close()
        with store.retrieve("k") as resource:
            assert resource.headers == {"ETag": ['"v2"']}
            assert resource.read() == b"kept body"

    def test_freshen_removes_before_storing(self, memory_engine: MemoryEngine) -> None:
        store = TwoPartStore(memory_engine)
        store.store(_resource(), ["k"])
        calls: list[str] = []
        with patch.object(memory_engine, "remove", side_effect=lambda key: calls.append("remove") or True), \
                patch.object(memory_engine, "put", side_effect=lambda *a, **kw: calls.append("put")):
            store.freshen(_resource(), ["k"])
        assert calls == ["remove", "remove", "put", "put"]


# ------------------------------------------------------------------ #
# Partial entries and pairing
# ------------------------------------------------------------------ #


class TestSelfHealing:
    def test_missing_body_is_a_miss_and_removes_metadata(self, store: TwoPartStore) -> None:
        store.store(_resource(), ["http://example.com/"])
        pair = derive_keys("http://example.com/")
        store.engine.remove(pair.body_key)

        assert store.retrieve("http://example.com/") is None
        assert store.engine.get(pair.metadata_key) is None
        assert store.header("http://example.com/") is None

    def test_missing_metadata_is_a_miss_and_removes_body(self, store: TwoPartStore) -> None:
        store.store(_resource(), ["k"])
        pair = derive_keys("k")
        store.engine.remove(pair.metadata_key)

        assert store.retrieve("k") is None
        assert store.engine.get(pair.body_key) is None

    def test_halves_from_different_stores_are_a_miss(self, memory_engine: MemoryEngine) -> None:
        store = TwoPartStore(memory_engine)
        pair = derive_keys("k")
        memory_engine.put(pair.metadata_key, io.BytesIO(encode(_resource().metadata)), tag="first")
        memory_engine.put(pair.body_key, io.BytesIO(b"other body"), tag="second")

        assert store.retrieve("k") is None
        # A writer may still be completing the pair, so nothing is removed.
        assert memory_engine.get(pair.metadata_key) is not None
        assert memory_engine.get(pair.body_key) is not None

    def test_header_still_reads_metadata_of_mismatched_pair(self, memory_engine: MemoryEngine) -> None:
        store = TwoPartStore(memory_engine)
        pair = derive_keys("k")
        memory_engine.put(pair.metadata_key, io.BytesIO(encode(_resource().metadata)), tag="first")
        memory_engine.put(pair.body_key, io.BytesIO(b"other body"), tag="second")

        assert store.header("k") == _resource().metadata
        assert store.retrieve("k") is None

    def test_next_store_repairs_mismatched_pair(self, memory_engine: MemoryEngine) -> None:
        store = TwoPartStore(memory_engine)
        pair = derive_keys("k")
        memory_engine.put(pair.metadata_key, io.BytesIO(encode(_resource().metadata)), tag="first")
        memory_engine.put(pair.body_key, io.BytesIO(b"other body"), tag="second")

        store.store(_resource(b"fresh"), ["k"])
        with store.retrieve("k") as resource:
            assert resource.read() == b"fresh"

    def test_self_healing_is_logged(self, store: TwoPartStore, verbose_output, capsys) -> None:
        store.store(_resource(), ["k"])
        store.engine.remove(derive_keys("k").body_key)
        store.retrieve("k")
        assert "removed orphaned metadata for k" in capsys.readouterr().err


class TestCorruptMetadata:
    def _corrupt(self, store: TwoPartStore, key: str) -> None:
        store.store(_resource(), [key])
        pair = derive_keys(key)
        tag = store.engine.get(pair.metadata_key).tag
        store.engine.put(pair.metadata_key, io.BytesIO(b'{"format": "httpstash.meta'), tag=tag)

    def test_retrieve_raises_and_removes_entry(self, store: TwoPartStore) -> None:
        self._corrupt(store, "k")
        with pytest.raises(DecodeError):
            store.retrieve("k")
        pair = derive_keys("k")
        assert store.engine.get(pair.metadata_key) is None
        assert store.engine.get(pair.body_key) is None
        assert store.retrieve("k") is None

    def test_header_raises_and_removes_entry(self, store: TwoPartStore) -> None:
        self._corrupt(store, "k")
        with pytest.raises(DecodeError):
            store.header("k")
        assert store.header("k") is None

    def test_corruption_warns(self, store: TwoPartStore, capsys) -> None:
        self._corrupt(store, "k")
        with pytest.raises(DecodeError):
            store.header("k")
        assert "Corrupt metadata for k" in capsys.readouterr().err


class TestPartialFailure:
    def test_failed_write_propagates_without_rollback(self, memory_engine: MemoryEngine) -> None:
        store = TwoPartStore(memory_engine)
        original_put = memory_engine.put
        failing_key = derive_keys("b").body_key

        def _put(key, source, tag=None):
            if key == failing_key:
                raise StorageError("disk full")
            original_put(key, source, tag=tag)

        with patch.object(memory_engine, "put", side_effect=_put):
            with pytest.raises(StorageError, match="disk full"):
                store.store(_resource(b"body"), ["a", "b", "c"])

        with store.retrieve("a") as resource:
            assert resource.read() == b"body"
        assert store.retrieve("b") is None
        assert store.retrieve("c") is None

    def test_spooled_body_closed_when_write_fails(self, memory_engine: MemoryEngine, spools: list) -> None:
        store = TwoPartStore(memory_engine)
        original_put = memory_engine.put
        failing_key = derive_keys("b").body_key

        def _put(key, source, tag=None):
            if key == failing_key:
                raise StorageError("disk full")
            original_put(key, source, tag=tag)

        body = io.BufferedReader(_OneShotStream(b"streamed"))
        with patch.object(memory_engine, "put", side_effect=_put):
            with pytest.raises(StorageError):
                store.store(CachedResource(200, {}, body), ["a", "b"])

        assert len(spools) == 1
        assert spools[0].closed
        assert not body.closed

    def test_spooled_body_closed_after_success(self, memory_engine: MemoryEngine, spools: list) -> None:
        store = TwoPartStore(memory_engine)
        store.store(CachedResource(200, {}, io.BufferedReader(_OneShotStream(b"x"))), ["a", "b"])
        assert spools[0].closed
