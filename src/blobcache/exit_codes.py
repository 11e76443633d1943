"""Numeric process exit codes following `clig.dev <https://clig.dev/>`_ conventions.

Each constant maps to a specific error category and is referenced by the
corresponding :class:`~blobcache.exceptions.BlobcacheError` subclass.
Shell wrappers can inspect the exit code to tell a bad URL from a flaky
server without parsing stderr.

Example::

    $ blobcache get https://example.com/missing.png
    $ echo $?
    4   # EXIT_CLIENT_ERROR -- the server answered 4xx
"""

EXIT_SUCCESS = 0
"""The command completed successfully."""

EXIT_GENERIC_FAILURE = 1
"""An unclassified error occurred."""

EXIT_INVALID_USAGE = 2
"""The command was invoked with invalid arguments or missing required parameters."""

EXIT_CLIENT_ERROR = 4
"""The remote server rejected the request (HTTP 4xx)."""

EXIT_SERVER_ERROR = 5
"""The remote server kept failing with HTTP 5xx until retries ran out."""

EXIT_CONNECTION_ERROR = 6
"""A network-level error occurred (timeout, DNS failure, connection refused)."""

EXIT_STORAGE_ERROR = 7
"""The cache directory could not be read or written."""

EXIT_DESERIALIZATION_ERROR = 8
"""A structured payload could not be decoded."""
