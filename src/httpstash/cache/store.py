"""Two-part store: one cached resource as a metadata blob plus a body blob.

:class:`TwoPartStore` translates each cache operation into get/put/remove
calls on a :class:`~httpstash.cache.engine.BlobEngine`, using the key pair
from :func:`~httpstash.cache.keys.derive_keys`. Metadata is small and is
read fully; bodies are streamed.

Consistency rules:

- Every store operation draws one random tag and writes it on both blobs of
  every key it touches. :meth:`TwoPartStore.retrieve` only pairs a metadata
  blob with a body blob carrying the same tag, so it never hands back halves
  from two different store operations.
  A mismatched pair is left in place, since a concurrent writer may still be
  completing it. After a crash mid-pair it stays until the next store or
  invalidate for the key: :meth:`TwoPartStore.retrieve` keeps missing,
  while :meth:`TwoPartStore.header` reads only the metadata blob and keeps
  returning it.
- A lone half (the other one evicted by the engine, or lost to a crash) is a
  full miss, and the stray half is removed on the spot.
- Metadata that fails to decode is removed together with its body and the
  :class:`~httpstash.exceptions.DecodeError` propagates.
- Multi-key stores are not transactional. If a write fails the error
  propagates and keys already written in the same call stay written.
  Freshen is remove-then-store with the same caveat: a crash in between
  leaves the entry absent.
"""

from __future__ import annotations

import io
import shutil
import tempfile
import uuid
from typing import IO, Iterable, Optional

from httpstash.cache import codec
from httpstash.cache.engine import Blob, BlobEngine
from httpstash.cache.keys import derive_keys
from httpstash.cache.resource import CachedResource
from httpstash.exceptions import DecodeError
from httpstash.models import MetadataRecord, StorageKeyPair
from httpstash.output import debug, warning

# Non-seekable bodies stored under several keys are spooled; past this size
# the spool moves from memory to a temporary file.
_SPOOL_MAX_BYTES = 1024 * 1024


class TwoPartStore:
    """Pairs metadata and body blobs for logical cache keys.

    Holds no state besides the engine handle and takes no locks; it is as
    safe for concurrent use as the engine is for independent keys.

    Args:
        engine: The blob engine that persists and evicts the blobs.
    """

    def __init__(self, engine: BlobEngine) -> None:
        self._engine = engine

    @property
    def engine(self) -> BlobEngine:
        return self._engine

    def header(self, key: str) -> Optional[MetadataRecord]:
        """Return the metadata stored for *key* without touching its body.

        Neither the presence nor the tag of the body blob is checked, so the
        result can describe an entry that :meth:`retrieve` reports as a miss.

        Returns:
            The decoded record, or ``None`` when no metadata is stored.

        Raises:
            DecodeError: If the stored metadata is corrupt (the entry is
                removed first).
            StorageError: If the engine fails.
        """
        pair = derive_keys(key)
        blob = self._engine.get(pair.metadata_key)
        if blob is None:
            debug(f"Cache miss (no metadata): {key}")
            return None
        return self._decode(key, pair, blob)

    def store(self, resource: CachedResource, keys: Iterable[str]) -> None:
        """Write *resource* under every logical key in *keys*.

        The metadata is encoded once and reused for every key. For each key
        the body is written before the metadata, so metadata never becomes
        visible ahead of its body.

        Raises:
            StorageError: On the first failed write. Earlier keys in the
                batch are not rolled back.
        """
        unique_keys = list(dict.fromkeys(keys))
        if not unique_keys:
            return

        encoded = codec.encode(resource.metadata)
        tag = uuid.uuid4().hex
        body = _replayable(resource.body, len(unique_keys))
        start = body.tell() if len(unique_keys) > 1 else 0

        try:
            for index, key in enumerate(unique_keys):
                pair = derive_keys(key)
                if index > 0:
                    body.seek(start)
                self._engine.put(pair.body_key, body, tag=tag)
                self._engine.put(pair.metadata_key, io.BytesIO(encoded), tag=tag)
                debug(f"Stored {key} ({pair.metadata_key[:12]}/{pair.body_key[:12]})")
        finally:
            if body is not resource.body:
                body.close()

    def retrieve(self, key: str) -> Optional[CachedResource]:
        """Reassemble the resource stored under *key*.

        The returned resource owns an open body stream; close it when done.

        Returns:
            The resource, or ``None`` on a miss (including a lone half or
            halves written by different store operations).

        Raises:
            DecodeError: If the stored metadata is corrupt (the entry is
                removed first).
            StorageError: If the engine fails.
        """
        pair = derive_keys(key)

        meta_blob = self._engine.get(pair.metadata_key)
        if meta_blob is None:
            if self._engine.remove(pair.body_key):
                debug(f"Removed orphaned body for {key}")
            debug(f"Cache miss (no metadata): {key}")
            return None

        body_blob = self._engine.get_file(pair.body_key)
        if body_blob is None:
            self._engine.remove(pair.metadata_key)
            debug(f"Cache miss (no body), removed orphaned metadata for {key}")
            return None

        if meta_blob.tag != body_blob.tag:
            body_blob.reader.close()
            debug(f"Cache miss (metadata and body from different stores): {key}")
            return None

        try:
            metadata = self._decode(key, pair, meta_blob)
        except DecodeError:
            body_blob.reader.close()
            raise
        return CachedResource.from_metadata(metadata, body_blob.reader)

    def invalidate(self, keys: Iterable[str]) -> None:
        """Remove both blobs for every key. Missing blobs are ignored."""
        for key in dict.fromkeys(keys):
            pair = derive_keys(key)
            self._engine.remove(pair.metadata_key)
            self._engine.remove(pair.body_key)
            debug(f"Invalidated {key}")

    def freshen(self, resource: CachedResource, keys: Iterable[str]) -> None:
        """Replace the entries for *keys* with *resource*.

        This is a replace, not a merge: the previous body is discarded, so
        the caller must pass the body to keep even when it is unchanged.
        """
        unique_keys = list(dict.fromkeys(keys))
        self.invalidate(unique_keys)
        self.store(resource, unique_keys)

    def _decode(self, key: str, pair: StorageKeyPair, blob: Blob) -> MetadataRecord:
        with blob.reader as reader:
            data = reader.read()
        try:
            return codec.decode(data)
        except DecodeError as exc:
            warning(f"Corrupt metadata for {key}, removing entry: {exc}")
            self._engine.remove(pair.metadata_key)
            self._engine.remove(pair.body_key)
            raise


def _replayable(body: IO[bytes], times: int) -> IO[bytes]:
    """Return a stream that can be rewound and read *times* times."""
    if times < 2 or body.seekable():
        return body
    spool = tempfile.SpooledTemporaryFile(max_size=_SPOOL_MAX_BYTES)
    shutil.copyfileobj(body, spool)
    spool.seek(0)
    return spool
