"""Canonical Pydantic models shared across all httpstash modules.

The models fall into two groups:

**Cache record models** -- the shapes the cache layer persists:
    :class:`MetadataRecord` (status code plus header fields of a cached
    response) and :class:`StorageKeyPair` (the two storage keys derived from
    one logical cache key).

**Configuration models** -- serialised as JSON in the user's config directory:
    :class:`StorageConfig`, :class:`OutputConfig`, and :class:`GlobalConfig`.

All models use Pydantic v2. The body of a cached response is deliberately
not modelled here: it is an open stream, see
:class:`~httpstash.cache.resource.CachedResource`.
"""

from __future__ import annotations

from typing import Literal, NamedTuple, Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

GIB = 1024 * 1024 * 1024

EvictionPolicy = Literal[
    "least-recently-stored",
    "least-recently-used",
    "least-frequently-used",
    "none",
]


# --- Cache records ---


class MetadataRecord(BaseModel):
    """Everything about a cached response except its body.

    ``headers`` maps each header name to the list of its values in the order
    they were received. HTTP allows a field name to repeat, so a name maps
    to several values rather than being joined; an empty list is kept as-is.
    """

    model_config = ConfigDict(frozen=True)

    status_code: int = Field(ge=100, le=599, description="HTTP status code")
    headers: dict[str, list[str]] = Field(default_factory=dict)


class StorageKeyPair(NamedTuple):
    """The metadata and body storage keys derived from one logical key."""

    metadata_key: str
    body_key: str


# --- Configuration ---


class StorageConfig(BaseModel):
    """Disk storage settings stored in :class:`GlobalConfig`.

    ``target_bytes`` is the soft bound the engine evicts towards after each
    write; ``limit_bytes`` is the hard ceiling that forces a full cull.
    """

    enabled: bool = Field(default=False, description="Persist cached resources to disk")
    directory: Optional[str] = Field(
        default=None,
        description="Blob directory (defaults to <cache dir>/blobs)",
    )
    target_bytes: int = Field(default=7 * GIB, gt=0, description="Soft capacity bound")
    limit_bytes: int = Field(default=8 * GIB, gt=0, description="Hard capacity bound")
    eviction_policy: EvictionPolicy = Field(
        default="least-recently-used",
        description="diskcache eviction policy name",
    )

    @model_validator(mode="after")
    def _check_bounds(self) -> StorageConfig:
        if self.target_bytes > self.limit_bytes:
            raise ValueError(
                f"target_bytes ({self.target_bytes}) must not exceed "
                f"limit_bytes ({self.limit_bytes})"
            )
        return self


class OutputConfig(BaseModel):
    """Default output format preferences stored in :class:`GlobalConfig`."""

    format: Literal["auto", "json", "plain", "rich"] = Field(
        default="auto", description="Output format: auto, json, plain, rich"
    )


class GlobalConfig(BaseModel):
    """User-wide configuration persisted at ``~/.config/httpstash/config.json``.

    Loaded and saved by :func:`~httpstash.config.load_global_config` and
    :func:`~httpstash.config.save_global_config`, and passed explicitly into
    :func:`~httpstash.cache.adapter.create_cache`. Environment variables and
    CLI flags take precedence; see :func:`~httpstash.config.resolve_config`.
    """

    listen: str = Field(default="0.0.0.0:8080", description="Proxy listen address")
    private: bool = Field(default=False, description="Operate as a private cache")
    dump_http: bool = Field(default=False, description="Dump requests and responses")
    storage: StorageConfig = Field(default_factory=StorageConfig)
    output: OutputConfig = Field(default_factory=OutputConfig)

    @property
    def shared(self) -> bool:
        """Whether the cache is shared between users (the inverse of ``private``)."""
        return not self.private
