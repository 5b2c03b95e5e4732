"""Cache implementations exposed to an HTTP caching policy engine.

The policy engine decides what is cacheable, fresh, or due for
revalidation; it talks to storage only through the :class:`HTTPCache`
contract defined here. Two implementations are provided:

- :class:`DiskCache` -- forwards to a :class:`~httpstash.cache.store.TwoPartStore`
  (normally on top of a :class:`~httpstash.cache.engine.DiskcacheEngine`).
- :class:`MemoryCache` -- keeps whole resources in a dict.

:func:`create_cache` picks between them from a
:class:`~httpstash.models.GlobalConfig`.
"""

from __future__ import annotations

import io
import threading
from pathlib import Path
from typing import Any, Optional, Protocol

from httpstash.cache.engine import DiskcacheEngine
from httpstash.cache.resource import CachedResource
from httpstash.cache.store import TwoPartStore
from httpstash.exceptions import NotFoundInCache, StorageError
from httpstash.models import GlobalConfig, MetadataRecord
from httpstash.output import debug, info


class HTTPCache(Protocol):
    """Capability contract required by the policy engine.

    ``header`` and ``retrieve`` raise :class:`~httpstash.exceptions.NotFoundInCache`
    on a miss, so the engine can fetch upstream instead of failing.
    """

    def header(self, key: str) -> MetadataRecord:
        ...

    def store(self, resource: CachedResource, *keys: str) -> None:
        ...

    def retrieve(self, key: str) -> CachedResource:
        ...

    def invalidate(self, *keys: str) -> None:
        ...

    def freshen(self, resource: CachedResource, *keys: str) -> None:
        ...


class DiskCache:
    """:class:`HTTPCache` backed by a two-part store.

    Adds no state or logic beyond forwarding calls and turning the store's
    ``None`` misses into :class:`~httpstash.exceptions.NotFoundInCache`.

    Args:
        store: The two-part store that pairs metadata and body blobs.

    Example::

        engine = DiskcacheEngine("/var/cache/httpstash", 7 * GIB, 8 * GIB)
        with DiskCache(TwoPartStore(engine)) as cache:
            cache.store(resource, "http://example.com/")
            with cache.retrieve("http://example.com/") as hit:
                body = hit.read()
    """

    def __init__(self, store: TwoPartStore) -> None:
        self._store = store

    def header(self, key: str) -> MetadataRecord:
        record = self._store.header(key)
        if record is None:
            raise NotFoundInCache(key)
        return record

    def store(self, resource: CachedResource, *keys: str) -> None:
        self._store.store(resource, keys)

    def retrieve(self, key: str) -> CachedResource:
        resource = self._store.retrieve(key)
        if resource is None:
            raise NotFoundInCache(key)
        return resource

    def invalidate(self, *keys: str) -> None:
        self._store.invalidate(keys)

    def freshen(self, resource: CachedResource, *keys: str) -> None:
        self._store.freshen(resource, keys)

    def stats(self) -> dict[str, Any]:
        return self._store.engine.stats()

    def clear(self) -> int:
        """Remove every stored blob. Returns the number of blobs removed."""
        return self._store.engine.clear()

    def close(self) -> None:
        self._store.engine.close()

    def __enter__(self) -> DiskCache:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class MemoryCache:
    """:class:`HTTPCache` keeping each resource whole in process memory.

    Bodies are read fully on store. Nothing survives the process.
    """

    def __init__(self) -> None:
        self._entries: dict[str, tuple[MetadataRecord, bytes]] = {}
        self._lock = threading.Lock()

    def header(self, key: str) -> MetadataRecord:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            raise NotFoundInCache(key)
        return entry[0]

    def store(self, resource: CachedResource, *keys: str) -> None:
        body = resource.read()
        with self._lock:
            for key in keys:
                self._entries[key] = (resource.metadata, body)

    def retrieve(self, key: str) -> CachedResource:
        with self._lock:
            entry = self._entries.get(key)
        if entry is None:
            raise NotFoundInCache(key)
        metadata, body = entry
        return CachedResource.from_metadata(metadata, io.BytesIO(body))

    def invalidate(self, *keys: str) -> None:
        with self._lock:
            for key in keys:
                self._entries.pop(key, None)

    def freshen(self, resource: CachedResource, *keys: str) -> None:
        self.invalidate(*keys)
        self.store(resource, *keys)

    def stats(self) -> dict[str, Any]:
        with self._lock:
            return {
                "backend": "memory",
                "entries": len(self._entries),
                "volume_bytes": sum(len(body) for _, body in self._entries.values()),
            }

    def clear(self) -> int:
        with self._lock:
            count = len(self._entries)
            self._entries.clear()
            return count

    def close(self) -> None:
        pass

    def __enter__(self) -> MemoryCache:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def create_cache(config: GlobalConfig, cache_dir: Optional[Path] = None) -> DiskCache | MemoryCache:
    """Instantiate the cache described by *config*.

    Disk storage goes to ``config.storage.directory`` when set, otherwise to
    ``<cache_dir>/blobs`` (``cache_dir`` defaults to
    :func:`~httpstash.config.get_cache_dir`). The directory is created with
    owner-only permissions.

    Args:
        config: Resolved configuration.
        cache_dir: Base directory used when no storage directory is configured.

    Returns:
        A :class:`DiskCache` when disk storage is enabled, else a :class:`MemoryCache`.

    Raises:
        StorageError: If the storage directory cannot be created or opened.
    """
    storage = config.storage
    if not storage.enabled:
        debug("Disk storage disabled, caching in memory")
        return MemoryCache()

    if storage.directory:
        directory = Path(storage.directory).expanduser()
    else:
        if cache_dir is None:
            from httpstash.config import get_cache_dir

            cache_dir = get_cache_dir()
        directory = cache_dir / "blobs"

    try:
        directory.mkdir(mode=0o700, parents=True, exist_ok=True)
    except OSError as exc:
        raise StorageError(f"Cannot create storage directory {directory}: {exc}") from exc

    info(f"Storing cached resources in {directory}")
    engine = DiskcacheEngine.from_config(directory, storage)
    return DiskCache(TwoPartStore(engine))
