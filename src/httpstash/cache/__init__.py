"""Durable storage for an HTTP caching layer.

A cached response is split into a small metadata record (status code and
header fields) and a body blob, stored under two keys derived from one
logical cache key:

- :mod:`~httpstash.cache.keys` -- logical key to storage key pair.
- :mod:`~httpstash.cache.codec` -- metadata record framing.
- :mod:`~httpstash.cache.engine` -- blob engines (:mod:`diskcache`, memory).
- :mod:`~httpstash.cache.store` -- pairs the two blobs per key.
- :mod:`~httpstash.cache.adapter` -- the :class:`HTTPCache` contract and
  its implementations.
"""

from httpstash.cache.adapter import DiskCache, HTTPCache, MemoryCache, create_cache
from httpstash.cache.engine import BlobEngine, DiskcacheEngine, MemoryEngine
from httpstash.cache.keys import derive_keys
from httpstash.cache.resource import CachedResource
from httpstash.cache.store import TwoPartStore

__all__ = [
    "BlobEngine",
    "CachedResource",
    "DiskCache",
    "DiskcacheEngine",
    "HTTPCache",
    "MemoryCache",
    "MemoryEngine",
    "TwoPartStore",
    "create_cache",
    "derive_keys",
]
