"""Storage key derivation.

One logical cache key names one cached resource, but the resource is stored
as two blobs. :func:`derive_keys` maps the logical key onto the pair of
storage keys used for those blobs: the lowercase hex SHA-256 digest of
``key + "#resource"`` for the metadata record and of ``key + "#body"`` for
the body. Digests are always 64 characters, so the disk engine never sees
a key with awkward length or characters no matter what the caller passes.
"""

from __future__ import annotations

import hashlib

from httpstash.models import StorageKeyPair

METADATA_SUFFIX = "#resource"
BODY_SUFFIX = "#body"


def derive_keys(logical_key: str) -> StorageKeyPair:
    """Return the ``(metadata_key, body_key)`` pair for *logical_key*.

    Pure and deterministic: the same logical key always yields the same
    pair, which is what lets later lookups and removals find what a store
    wrote.
    """
    return StorageKeyPair(
        metadata_key=_digest(logical_key + METADATA_SUFFIX),
        body_key=_digest(logical_key + BODY_SUFFIX),
    )


def _digest(raw: str) -> str:
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()
