"""Blob engines: the key-value-of-blobs stores the cache pairs records on top of.

A :class:`BlobEngine` persists opaque byte blobs by key and knows nothing
about HTTP. Two implementations ship:

- :class:`DiskcacheEngine` -- capacity-bounded persistent storage using
  :mod:`diskcache`. Values are streamed in and out as files, so large
  bodies never need to be held in memory by the cache layer.
- :class:`MemoryEngine` -- a locked dict of bytes, used when disk storage
  is disabled and in tests.

Each stored blob may carry a short string *tag*. The two-part store uses it
to mark which blobs were written by the same store operation.

Eviction, file layout, and capacity enforcement belong to the engine. The
engine must be safe for concurrent get/put/remove on independent keys;
:class:`diskcache.Cache` is both thread- and process-safe.
"""

from __future__ import annotations

import io
import sqlite3
import threading
from pathlib import Path
from typing import IO, Any, NamedTuple, Optional, Protocol, Union

import diskcache

from httpstash.exceptions import StorageError
from httpstash.models import StorageConfig

_ENGINE_ERRORS = (OSError, sqlite3.Error, diskcache.Timeout)


class Blob(NamedTuple):
    """A fetched blob: an open reader plus the tag it was stored with."""

    reader: IO[bytes]
    tag: Optional[str]


class BlobEngine(Protocol):
    """Capability contract the cache consumes from its storage engine."""

    def get(self, key: str) -> Optional[Blob]:
        """Return the blob fully buffered in memory, or ``None`` if absent."""
        ...

    def get_file(self, key: str) -> Optional[Blob]:
        """Return the blob as a seekable file handle, or ``None`` if absent."""
        ...

    def put(self, key: str, source: IO[bytes], tag: Optional[str] = None) -> None:
        """Store everything readable from *source* under *key*, replacing any old blob."""
        ...

    def remove(self, key: str) -> bool:
        """Remove *key*. Returns ``False`` when nothing was stored under it."""
        ...

    def stats(self) -> dict[str, Any]:
        ...

    def clear(self) -> int:
        ...

    def close(self) -> None:
        ...


class DiskcacheEngine:
    """Persistent blob engine backed by a :class:`diskcache.Cache` directory.

    ``target_bytes`` becomes the diskcache ``size_limit``, which diskcache
    evicts towards incrementally on every write. When a write pushes the
    total volume past ``limit_bytes`` the engine forces a full cull back
    under the target.

    Args:
        directory: Directory holding the diskcache database and value files.
        target_bytes: Soft capacity bound.
        limit_bytes: Hard capacity bound.
        eviction_policy: Any diskcache eviction policy name.

    Raises:
        StorageError: If the eviction policy is unknown or the directory or
            database cannot be opened.
    """

    def __init__(
        self,
        directory: Union[str, Path],
        target_bytes: int,
        limit_bytes: int,
        eviction_policy: str = "least-recently-used",
    ) -> None:
        self._directory = Path(directory)
        self._target_bytes = target_bytes
        self._limit_bytes = limit_bytes
        if eviction_policy not in diskcache.EVICTION_POLICY:
            raise StorageError(
                f"Unknown eviction policy {eviction_policy!r}, expected one of: "
                + ", ".join(sorted(diskcache.EVICTION_POLICY))
            )
        try:
            self._cache = diskcache.Cache(
                str(self._directory),
                size_limit=target_bytes,
                eviction_policy=eviction_policy,
            )
        except _ENGINE_ERRORS as exc:
            raise StorageError(f"Cannot open blob store at {self._directory}: {exc}") from exc

    @classmethod
    def from_config(cls, directory: Union[str, Path], config: StorageConfig) -> DiskcacheEngine:
        """Build an engine from the capacity settings in *config*."""
        return cls(
            directory,
            target_bytes=config.target_bytes,
            limit_bytes=config.limit_bytes,
            eviction_policy=config.eviction_policy,
        )

    @property
    def directory(self) -> Path:
        return self._directory

    def get(self, key: str) -> Optional[Blob]:
        blob = self.get_file(key)
        if blob is None:
            return None
        with blob.reader as reader:
            data = reader.read()
        return Blob(io.BytesIO(data), blob.tag)

    def get_file(self, key: str) -> Optional[Blob]:
        try:
            reader, tag = self._cache.get(key, read=True, tag=True)
        except _ENGINE_ERRORS as exc:
            raise StorageError(f"Failed to read blob {key}: {exc}") from exc
        if reader is None:
            return None
        return Blob(reader, tag)

    def put(self, key: str, source: IO[bytes], tag: Optional[str] = None) -> None:
        try:
            self._cache.set(key, source, read=True, tag=tag)
            if self._cache.volume() > self._limit_bytes:
                self._cache.cull()
        except _ENGINE_ERRORS as exc:
            raise StorageError(f"Failed to write blob {key}: {exc}") from exc

    def remove(self, key: str) -> bool:
        try:
            return self._cache.delete(key)
        except _ENGINE_ERRORS as exc:
            raise StorageError(f"Failed to remove blob {key}: {exc}") from exc

    def stats(self) -> dict[str, Any]:
        """Return entry count, on-disk volume, and capacity bounds."""
        return {
            "backend": "disk",
            "directory": str(self._directory),
            "entries": len(self._cache),
            "volume_bytes": self._cache.volume(),
            "target_bytes": self._target_bytes,
            "limit_bytes": self._limit_bytes,
        }

    def clear(self) -> int:
        """Remove every blob. Returns the number of blobs removed."""
        try:
            return self._cache.clear()
        except _ENGINE_ERRORS as exc:
            raise StorageError(f"Failed to clear blob store: {exc}") from exc

    def close(self) -> None:
        """Close the underlying :class:`diskcache.Cache` and release resources."""
        self._cache.close()


class MemoryEngine:
    """In-process blob engine keeping every blob in a dict."""

    def __init__(self) -> None:
        self._blobs: dict[str, tuple[bytes, Optional[str]]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Blob]:
        with self._lock:
            entry = self._blobs.get(key)
        if entry is None:
            return None
        data, tag = entry
        return Blob(io.BytesIO(data), tag)

    def get_file(self, key: str) -> Optional[Blob]:
        return self.get(key)

    def put(self, key: str, source: IO[bytes], tag: Optional[str] = None) -> None:
        data = source.read()
        with self._lock:
            self._blobs[key] = (data, tag)

    def remove(self, key: str) -> bool:
        with self._lock:
            return self._blobs.pop(key, None) is not None

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._blobs)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "backend": "memory",
                "entries": len(self._blobs),
                "volume_bytes": sum(len(data) for data, _ in self._blobs.values()),
            }

    def clear(self) -> int:
        with self._lock:
            count = len(self._blobs)
            self._blobs.clear()
            return count

    def close(self) -> None:
        pass
