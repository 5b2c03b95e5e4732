"""Metadata record codec.

A :class:`~httpstash.models.MetadataRecord` is stored as a standalone blob
with no external length field, so the encoding describes itself: a UTF-8
JSON object tagged with a format name and version::

    {"format": "httpstash.metadata", "version": 1,
     "status_code": 200,
     "headers": [["Content-Type", ["text/html"]], ["Set-Cookie", ["a=1", "b=2"]]]}

Headers are written as an array of ``[name, values]`` pairs so field order
and repeated values survive exactly. A truncated write leaves unbalanced
JSON, which fails to parse and is reported as
:class:`~httpstash.exceptions.DecodeError`, as is any record from another
format version.
"""

from __future__ import annotations

import json
from typing import Any

from pydantic import ValidationError

from httpstash.exceptions import DecodeError
from httpstash.models import MetadataRecord

FORMAT_NAME = "httpstash.metadata"
FORMAT_VERSION = 1


def encode(record: MetadataRecord) -> bytes:
    """Serialise *record* to its framed byte representation."""
    envelope = {
        "format": FORMAT_NAME,
        "version": FORMAT_VERSION,
        "status_code": record.status_code,
        "headers": [[name, list(values)] for name, values in record.headers.items()],
    }
    return json.dumps(envelope, ensure_ascii=False, separators=(",", ":")).encode("utf-8")


def decode(data: bytes) -> MetadataRecord:
    """Parse bytes produced by :func:`encode` back into a record.

    Raises:
        DecodeError: If *data* is not valid UTF-8 JSON, is not a metadata
            envelope, carries a different format version, or holds fields
            of the wrong shape.
    """
    try:
        envelope = json.loads(data.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise DecodeError(f"Unreadable metadata record: {exc}") from exc

    if not isinstance(envelope, dict) or envelope.get("format") != FORMAT_NAME:
        raise DecodeError("Not a metadata record")
    version = envelope.get("version")
    if version != FORMAT_VERSION:
        raise DecodeError(
            f"Unsupported metadata format version {version!r} (expected {FORMAT_VERSION})"
        )

    headers = _decode_headers(envelope.get("headers"))
    try:
        return MetadataRecord(status_code=envelope.get("status_code"), headers=headers)
    except ValidationError as exc:
        raise DecodeError(f"Invalid metadata record: {exc}") from exc


def _decode_headers(raw: Any) -> dict[str, list[str]]:
    """Rebuild the ordered header mapping from its ``[name, values]`` pairs."""
    if not isinstance(raw, list):
        raise DecodeError("Metadata headers must be a list of [name, values] pairs")

    headers: dict[str, list[str]] = {}
    for pair in raw:
        if not (isinstance(pair, list) and len(pair) == 2):
            raise DecodeError(f"Malformed header entry: {pair!r}")
        name, values = pair
        if not isinstance(name, str) or not isinstance(values, list):
            raise DecodeError(f"Malformed header entry: {pair!r}")
        if name in headers:
            raise DecodeError(f"Duplicate header entry: {name!r}")
        if not all(isinstance(v, str) for v in values):
            raise DecodeError(f"Non-string value in header {name!r}")
        headers[name] = values
    return headers
