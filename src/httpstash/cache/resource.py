"""The cached resource handed between the policy engine and the cache.

A :class:`CachedResource` pairs one :class:`~httpstash.models.MetadataRecord`
with one body stream. The body is never read eagerly: callers build a
resource around any readable binary stream, and a retrieved resource wraps
the open file handle returned by the disk engine.
"""

from __future__ import annotations

import io
from typing import IO, Optional

import httpx

from httpstash.models import MetadataRecord

_WIRE_HEADERS = frozenset({"content-encoding", "content-length"})


class CachedResource:
    """A cached HTTP response: status code, header fields, and a body stream.

    Args:
        status_code: HTTP status code of the response.
        headers: Header name to list of values, in received order.
        body: Readable binary stream positioned at the start of the body.

    Example::

        resource = CachedResource.from_bytes(200, {"Content-Type": ["text/html"]}, b"hello")
        cache.store(resource, "http://example.com/")
    """

    def __init__(
        self,
        status_code: int,
        headers: dict[str, list[str]],
        body: IO[bytes],
    ) -> None:
        self._metadata = MetadataRecord(status_code=status_code, headers=headers)
        self._body = body

    @classmethod
    def from_metadata(cls, metadata: MetadataRecord, body: IO[bytes]) -> CachedResource:
        """Build a resource from an already decoded metadata record."""
        resource = cls.__new__(cls)
        resource._metadata = metadata
        resource._body = body
        return resource

    @classmethod
    def from_bytes(
        cls,
        status_code: int,
        headers: Optional[dict[str, list[str]]] = None,
        body: bytes = b"",
    ) -> CachedResource:
        """Build a resource around an in-memory body."""
        return cls(status_code, headers or {}, io.BytesIO(body))

    @classmethod
    def from_httpx(cls, response: httpx.Response) -> CachedResource:
        """Build a resource from a fully read :class:`httpx.Response`.

        Header names come out lowercased, as httpx normalises them; repeated
        fields are grouped in the order they were received. The stored body is
        the decoded content, so the wire-level ``Content-Encoding`` and
        ``Content-Length`` fields are dropped.
        """
        headers: dict[str, list[str]] = {}
        for name, value in response.headers.multi_items():
            if name.lower() in _WIRE_HEADERS:
                continue
            headers.setdefault(name, []).append(value)
        return cls(response.status_code, headers, io.BytesIO(response.content))

    # ------------------------------------------------------------------ #
    # Accessors
    # ------------------------------------------------------------------ #

    @property
    def metadata(self) -> MetadataRecord:
        """The status code and headers as an immutable record."""
        return self._metadata

    @property
    def status_code(self) -> int:
        return self._metadata.status_code

    @property
    def headers(self) -> dict[str, list[str]]:
        return self._metadata.headers

    @property
    def body(self) -> IO[bytes]:
        """The underlying body stream."""
        return self._body

    def read(self, size: int = -1) -> bytes:
        """Read from the body stream."""
        return self._body.read(size)

    def to_httpx(self, request: Optional[httpx.Request] = None) -> httpx.Response:
        """Materialise the resource as an :class:`httpx.Response`.

        Reads the remaining body into memory.
        """
        header_items = [
            (name, value) for name, values in self.headers.items() for value in values
        ]
        return httpx.Response(
            status_code=self.status_code,
            headers=header_items,
            content=self.read(),
            request=request,
        )

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    def close(self) -> None:
        """Close the body stream."""
        self._body.close()

    def __enter__(self) -> CachedResource:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"CachedResource(status_code={self.status_code}, headers={self.headers!r})"
