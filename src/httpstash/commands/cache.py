"""Cache commands -- inspect and manage the on-disk response store.

Provides the ``httpstash cache`` sub-command group. Every command resolves
the configuration (honouring the root ``--dir`` flag), opens the disk store
described by it, and works on logical cache keys exactly as a policy engine
would: ``put`` and ``fetch`` store, ``header`` and ``get`` look up,
``invalidate`` removes.

The CLI always opens the disk store, even when the config leaves disk
storage off, since an in-memory cache would not outlive the command.
"""

from __future__ import annotations

import shutil
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

import typer

from httpstash.output import error, format_response, get_output, info, print_table, success

cache_app = typer.Typer(no_args_is_help=True)

_CHUNK_SIZE = 64 * 1024


@contextmanager
def _cli_errors() -> Iterator[None]:
    """Report :class:`~httpstash.exceptions.HttpStashError` and exit with its code."""
    from httpstash.exceptions import HttpStashError

    try:
        yield
    except HttpStashError as exc:
        error(str(exc))
        raise typer.Exit(code=exc.exit_code) from None


@contextmanager
def _open_cache(ctx: typer.Context) -> Iterator:
    """Open the disk cache selected by the resolved configuration."""
    from httpstash.cache import create_cache
    from httpstash.config import resolve_config

    cli_dir = ctx.obj.get("dir") if ctx.obj else None
    config = resolve_config(cli_dir=cli_dir)
    if not config.storage.enabled:
        storage = config.storage.model_copy(update={"enabled": True})
        config = config.model_copy(update={"storage": storage})

    cache = create_cache(config)
    try:
        yield cache
    finally:
        cache.close()


def _parse_header(raw: str) -> tuple[str, str]:
    from httpstash.exceptions import InvalidUsageError

    name, sep, value = raw.partition(":")
    if not sep or not name.strip():
        raise InvalidUsageError(f"Invalid header {raw!r}, expected 'Name: value'")
    return name.strip(), value.strip()


@cache_app.command("header")
def cache_header(
    ctx: typer.Context,
    key: str = typer.Argument(help="Logical cache key."),
) -> None:
    """Show the status code and header fields cached under KEY.

    Reads only the metadata record; the body is not touched.

    Example::

        httpstash cache header http://example.com/
        httpstash --json cache header http://example.com/
    """
    from httpstash.output import OutputFormat

    with _cli_errors(), _open_cache(ctx) as cache:
        record = cache.header(key)

    if get_output().format == OutputFormat.JSON:
        format_response(record.model_dump())
        return
    info(f"Status: {record.status_code}")
    rows = [[name, value] for name, values in record.headers.items() for value in values]
    print_table(["Header", "Value"], rows, title=key)


@cache_app.command("get")
def cache_get(
    ctx: typer.Context,
    key: str = typer.Argument(help="Logical cache key."),
    output_path: Optional[Path] = typer.Option(
        None, "--output", "-o", help="Write the body to this file instead of stdout."
    ),
) -> None:
    """Write the body cached under KEY to stdout or a file.

    Example::

        httpstash cache get http://example.com/ -o page.html
    """
    from httpstash.output import write_bytes

    with _cli_errors(), _open_cache(ctx) as cache:
        with cache.retrieve(key) as resource:
            if output_path is not None:
                with open(output_path, "wb") as f:
                    shutil.copyfileobj(resource.body, f, _CHUNK_SIZE)
                success(f"Wrote body of {key} to {output_path}")
            else:
                write_bytes(iter(lambda: resource.read(_CHUNK_SIZE), b""))


@cache_app.command("put")
def cache_put(
    ctx: typer.Context,
    keys: list[str] = typer.Argument(help="One or more logical cache keys."),
    status: int = typer.Option(200, "--status", "-s", help="HTTP status code."),
    header: list[str] = typer.Option(
        [], "--header", "-H", help="Header field as 'Name: value' (repeatable)."
    ),
    body: Path = typer.Option(
        ..., "--body", "-b", help="File holding the body, or '-' for stdin."
    ),
) -> None:
    """Store a response under one or more KEYS.

    Example::

        httpstash cache put http://example.com/ -H "Content-Type: text/html" -b page.html
    """
    from httpstash.cache import CachedResource

    with _cli_errors():
        headers: dict[str, list[str]] = {}
        for raw in header:
            name, value = _parse_header(raw)
            headers.setdefault(name, []).append(value)

        with _open_cache(ctx) as cache:
            if str(body) == "-":
                cache.store(CachedResource(status, headers, sys.stdin.buffer), *keys)
            else:
                with open(body, "rb") as f:
                    cache.store(CachedResource(status, headers, f), *keys)

    success(f"Stored {len(keys)} key(s)")


@cache_app.command("fetch")
def cache_fetch(
    ctx: typer.Context,
    url: str = typer.Argument(help="URL to GET."),
    key: list[str] = typer.Option(
        [], "--key", "-k", help="Logical key to store under (repeatable, default: the URL)."
    ),
    timeout: float = typer.Option(30.0, "--timeout", help="Request timeout in seconds."),
) -> None:
    """GET a URL and store the response as-is.

    No freshness or cacheability rules are applied: whatever the server
    answers is stored.

    Example::

        httpstash cache fetch https://example.com/ --key "GET https://example.com/"
    """
    import httpx

    from httpstash.cache import CachedResource
    from httpstash.exceptions import ConnectionError_

    keys = key or [url]
    with _cli_errors():
        try:
            with httpx.Client(timeout=timeout, follow_redirects=True) as client:
                response = client.get(url)
        except httpx.HTTPError as exc:
            raise ConnectionError_(f"Failed to fetch {url}: {exc}") from exc

        with _open_cache(ctx) as cache:
            cache.store(CachedResource.from_httpx(response), *keys)

    success(f"Stored {response.status_code} response for {url} ({len(response.content)} bytes)")


@cache_app.command("invalidate")
def cache_invalidate(
    ctx: typer.Context,
    keys: list[str] = typer.Argument(help="One or more logical cache keys."),
) -> None:
    """Remove the entries cached under KEYS. Missing keys are ignored."""
    with _cli_errors(), _open_cache(ctx) as cache:
        cache.invalidate(*keys)
    success(f"Invalidated {len(keys)} key(s)")


@cache_app.command("keys")
def cache_keys(
    key: str = typer.Argument(help="Logical cache key."),
) -> None:
    """Show the storage keys derived from KEY."""
    from httpstash.cache import derive_keys

    pair = derive_keys(key)
    format_response({"metadata_key": pair.metadata_key, "body_key": pair.body_key})


@cache_app.command("stats")
def cache_stats(ctx: typer.Context) -> None:
    """Show entry count, volume, and capacity bounds of the store."""
    with _cli_errors(), _open_cache(ctx) as cache:
        format_response(cache.stats())


@cache_app.command("clear")
def cache_clear(ctx: typer.Context) -> None:
    """Remove every cached entry. Asks for confirmation unless ``--force``."""
    force = ctx.obj.get("force", False) if ctx.obj else False
    if not force:
        confirmed = typer.confirm("Remove all cached entries?")
        if not confirmed:
            info("Cancelled.")
            raise typer.Exit()

    with _cli_errors(), _open_cache(ctx) as cache:
        removed = cache.clear()
    success(f"Removed {removed} blob(s)")
