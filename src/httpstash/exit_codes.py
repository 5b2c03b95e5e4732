"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~httpstash.exceptions.HttpStashError` subclass.
Shell wrappers can inspect the exit code to tell a cache miss from a
storage failure without parsing stderr.

Example::

    $ httpstash cache get http://example.com/
    $ echo $?
    4   # EXIT_NOT_FOUND -- nothing cached under that key
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_NOT_FOUND = 4
"""No cached resource exists under the requested key."""

EXIT_STORAGE_ERROR = 5
"""The underlying disk engine failed (disk full, permissions, corrupt index)."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred while fetching a resource to cache."""

EXIT_DECODE_ERROR = 7
"""A stored metadata record could not be decoded."""
