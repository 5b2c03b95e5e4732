"""Exception hierarchy for httpstash.

All exceptions inherit from :class:`HttpStashError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`httpstash.exit_codes`.
The cache layer raises these directly; the CLI entry point in
:func:`httpstash.app.main` catches ``HttpStashError`` and exits with the
matching code.

Subclass hierarchy::

    HttpStashError (exit 1)
    +-- InvalidUsageError   (exit 2)
    +-- NotFoundInCache     (exit 4)
    +-- StorageError        (exit 5)
    +-- ConnectionError_    (exit 6)
    +-- DecodeError         (exit 7)
    +-- ConfigError         (exit 1)
"""

from httpstash.exit_codes import (
    EXIT_CONNECTION_ERROR,
    EXIT_DECODE_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_NOT_FOUND,
    EXIT_STORAGE_ERROR,
)


class HttpStashError(Exception):
    """Base exception for all httpstash errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`httpstash.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(HttpStashError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class NotFoundInCache(HttpStashError):
    """Raised when a logical key has no complete cached resource.

    This is an expected condition: the caller should fetch upstream rather
    than treat it as fatal. Partially evicted entries (metadata without a
    body or the reverse) also surface as this error.

    Args:
        key: The logical cache key that missed.
    """

    exit_code = EXIT_NOT_FOUND

    def __init__(self, key: str):
        super().__init__(f"Not found in cache: {key}")
        self.key = key


class StorageError(HttpStashError):
    """Raised when the underlying disk engine fails to read, write, or remove a blob."""

    exit_code = EXIT_STORAGE_ERROR


class ConnectionError_(HttpStashError):
    """Raised on network-level failures while fetching a resource to cache.

    Named with a trailing underscore to avoid shadowing the built-in
    ``ConnectionError``.
    """

    exit_code = EXIT_CONNECTION_ERROR


class DecodeError(HttpStashError):
    """Raised when a stored metadata record is not a validly framed record.

    Covers truncated writes, corrupted bytes, and records written by an
    incompatible format version.
    """

    exit_code = EXIT_DECODE_ERROR


class ConfigError(HttpStashError):
    """Raised for configuration problems (invalid JSON, bad capacity bounds)."""

    exit_code = EXIT_GENERIC_FAILURE
