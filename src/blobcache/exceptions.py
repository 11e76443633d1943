"""Exception hierarchy for blobcache.

All exceptions inherit from :class:`BlobcacheError`, which carries an
``exit_code`` attribute mapped to a constant from :mod:`blobcache.exit_codes`.
The top-level error handler in :func:`blobcache.app.main` catches
``BlobcacheError`` and exits with the appropriate code.

Subclass hierarchy::

    BlobcacheError (exit 1)
    +-- InvalidUsageError        (exit 2)
    +-- ConfigError              (exit 1)
    +-- DeserializationError     (exit 8)
    +-- FetchError               (exit 6)
    |   +-- NetworkError         (exit 6, retryable)
    |   +-- FetchTimeoutError    (exit 6, retryable)
    |   +-- ServerError          (exit 5, retryable)
    |   +-- ClientError          (exit 4)
    +-- CacheError               (exit 1)
        +-- FetchFailedError     (exit of the wrapped FetchError)
        +-- StorageReadError     (exit 7)
        +-- StorageWriteError    (exit 7)

Fetch errors describe a single network retrieval.  Whether the fetch layer
may try again is decided by :attr:`FetchError.retryable`; only
:class:`ClientError` is final on the first attempt.
"""

from __future__ import annotations

from typing import Optional

from blobcache.exit_codes import (
    EXIT_CLIENT_ERROR,
    EXIT_CONNECTION_ERROR,
    EXIT_DESERIALIZATION_ERROR,
    EXIT_GENERIC_FAILURE,
    EXIT_INVALID_USAGE,
    EXIT_SERVER_ERROR,
    EXIT_STORAGE_ERROR,
)


class BlobcacheError(Exception):
    """Base exception for all blobcache errors.

    Every subclass sets a class-level ``exit_code`` corresponding to one of
    the constants in :mod:`blobcache.exit_codes`.

    Args:
        message: Human-readable error description printed to stderr.
        exit_code: Optional override for the class-level exit code.
    """

    exit_code: int = EXIT_GENERIC_FAILURE

    def __init__(self, message: str, exit_code: int | None = None):
        super().__init__(message)
        if exit_code is not None:
            self.exit_code = exit_code


class InvalidUsageError(BlobcacheError):
    """Raised for invalid CLI arguments or missing required parameters."""

    exit_code = EXIT_INVALID_USAGE


class ConfigError(BlobcacheError):
    """Raised for configuration problems (invalid JSON, bad values, bad env vars)."""

    exit_code = EXIT_GENERIC_FAILURE


class DeserializationError(BlobcacheError):
    """Raised when a structured payload cannot be decoded into its model."""

    exit_code = EXIT_DESERIALIZATION_ERROR


# --- Fetch errors ---


class FetchError(BlobcacheError):
    """Base class for failures of a single network retrieval.

    Args:
        message: Human-readable error description.
        url: The URL that was being fetched, when known.
    """

    exit_code = EXIT_CONNECTION_ERROR
    retryable: bool = False

    def __init__(self, message: str, url: Optional[str] = None):
        super().__init__(message)
        self.url = url


class NetworkError(FetchError):
    """Raised on connection, DNS or protocol failures below HTTP."""

    retryable = True


class FetchTimeoutError(FetchError):
    """Raised when a request attempt times out."""

    retryable = True


class HTTPStatusError(FetchError):
    """Base for errors carrying an HTTP status code."""

    def __init__(self, message: str, status_code: int, url: Optional[str] = None):
        super().__init__(message, url=url)
        self.status_code = status_code


class ServerError(HTTPStatusError):
    """Raised when the server answers with an HTTP 5xx status."""

    exit_code = EXIT_SERVER_ERROR
    retryable = True


class ClientError(HTTPStatusError):
    """Raised when the server rejects the request (HTTP 4xx). Never retried."""

    exit_code = EXIT_CLIENT_ERROR


# --- Cache errors ---


class CacheError(BlobcacheError):
    """Base class for errors surfaced by the cache layer."""


class FetchFailedError(CacheError):
    """Raised by the coordinator when a miss could not be fetched.

    The terminal :class:`FetchError` is kept on :attr:`cause` (and chained
    as ``__cause__``); the exit code follows it.
    """

    def __init__(self, identifier: str, cause: FetchError):
        super().__init__(f"Could not fetch {identifier}: {cause}", exit_code=cause.exit_code)
        self.identifier = identifier
        self.cause = cause


class StorageReadError(CacheError):
    """Raised when a cache file exists but cannot be read."""

    exit_code = EXIT_STORAGE_ERROR


class StorageWriteError(CacheError):
    """Raised when a cache file cannot be written."""

    exit_code = EXIT_STORAGE_ERROR
