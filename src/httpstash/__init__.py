"""httpstash -- durable storage for an HTTP response cache.

An HTTP caching policy engine decides what to cache and when it is fresh;
httpstash persists what it decides to keep. Each cached response is split
into a small metadata record (status code and header fields) and a body
blob, stored under two SHA-256 keys derived from one logical cache key on
top of a capacity-bounded :mod:`diskcache` store.

Typical use::

    from httpstash.cache import CachedResource, create_cache
    from httpstash.config import resolve_config

    cache = create_cache(resolve_config(cli_dir="./cachedata"))
    cache.store(CachedResource.from_bytes(200, {"Content-Type": ["text/html"]}, b"hi"),
                "http://example.com/")

Modules:
    cache: Key derivation, metadata codec, blob engines, and cache adapters.
    models: Pydantic models for cache records and configuration.
    config: XDG-aware configuration loading and precedence resolution.
    exceptions: Exception hierarchy with exit-code mapping.
    exit_codes: Numeric exit codes following clig.dev conventions.
    output: stdout/stderr output and diagnostics with Rich support.
    app: Typer management CLI.
"""

__version__ = "0.1.0"
