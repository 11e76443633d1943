"""Asynchronous fetch client with bounded retries and exponential backoff.

:class:`FetchClient` wraps :class:`httpx.AsyncClient` and exposes two
layers:

* :meth:`FetchClient.send` -- the raising primitive.  Executes one request
  with retry and maps every failure to a typed
  :class:`~blobcache.exceptions.FetchError`.
* :meth:`FetchClient.fetch` -- the "get a byte blob" contract used by the
  cache.  Never raises for network or HTTP failures; the outcome comes back
  as a :class:`FetchResult`.

Retry policy:

* Retried: connection/DNS/protocol failures (:class:`NetworkError`),
  timeouts (:class:`FetchTimeoutError`), and HTTP 5xx (:class:`ServerError`).
* Never retried: HTTP 4xx (:class:`ClientError`).
* ``max_retries`` is the total number of attempts.  Before attempt ``i + 1``
  the client sleeps ``base_retry_delay * 2 ** (i - 1)`` seconds: 0.2 s,
  0.4 s, 0.8 s, ... with the defaults.  There is no sleep after the final
  attempt.

The backoff wait is a plain :func:`asyncio.sleep`, so cancelling the
calling task stops the retry loop immediately.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Optional

import httpx

from blobcache.exceptions import (
    ClientError,
    FetchError,
    FetchTimeoutError,
    NetworkError,
    ServerError,
)
from blobcache.models import FetchConfig
from blobcache.output import debug, warning


@dataclass
class FetchResult:
    """Outcome of :meth:`FetchClient.fetch`.

    Exactly one of ``content`` and ``error`` is set.

    Attributes:
        identifier: What the caller asked for.
        content: Response body on success.
        error: The terminal error on failure.
        attempts: Number of requests issued.
        status_code: Last HTTP status seen, if any.
    """

    identifier: str
    content: Optional[bytes] = None
    error: Optional[FetchError] = None
    attempts: int = 0
    status_code: Optional[int] = None

    @property
    def ok(self) -> bool:
        """Whether the fetch produced a body."""
        return self.error is None and self.content is not None

    def unwrap(self) -> bytes:
        """Return the body or raise the carried error."""
        if self.error is not None:
            raise self.error
        assert self.content is not None
        return self.content


class FetchClient:
    """Retrying HTTP client for byte blobs.

    Construct once and share; the underlying connection pool is opened
    lazily on first use (or on ``async with``) and released by
    :meth:`aclose`.

    Args:
        config: Base address, timeout, retry and TLS settings.
        transport: Optional httpx transport, e.g. :class:`httpx.MockTransport`
            in tests.

    Example::

        async with FetchClient(FetchConfig(base_address="https://cdn.example.com")) as fc:
            result = await fc.fetch("/img/logo.png")
            if result.ok:
                data = result.content
    """

    def __init__(
        self,
        config: Optional[FetchConfig] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self._config = config or FetchConfig()
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None

    @property
    def config(self) -> FetchConfig:
        """The client's fetch settings."""
        return self._config

    # ------------------------------------------------------------------ #
    # Lifecycle
    # ------------------------------------------------------------------ #

    async def __aenter__(self) -> FetchClient:
        self._get_client()
        return self

    async def __aexit__(self, *args: object) -> None:
        await self.aclose()

    def _get_client(self) -> httpx.AsyncClient:
        """Get or create the underlying HTTP client."""
        if self._client is None:
            self._client = httpx.AsyncClient(
                base_url=self._config.base_address or "",
                timeout=self._config.timeout,
                verify=self._config.verify_ssl,
                follow_redirects=True,
                headers={"User-Agent": self._config.user_agent},
                transport=self._transport,
            )
        return self._client

    async def aclose(self) -> None:
        """Close the HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    # ------------------------------------------------------------------ #
    # Public API
    # ------------------------------------------------------------------ #

    async def fetch(self, identifier: str) -> FetchResult:
        """GET *identifier* and return the outcome without raising.

        Only transport and HTTP failures are folded into the result;
        cancellation propagates.
        """
        result = FetchResult(identifier=identifier)
        try:
            response = await self._send_with_retry(
                "GET", identifier, self._config.max_retries, result
            )
        except FetchError as exc:
            result.error = exc
            warning(f"Fetch of {identifier} failed after {result.attempts} attempt(s): {exc}")
            return result
        result.content = response.content
        return result

    async def send(
        self,
        method: str,
        identifier: str,
        retry: bool = True,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue a request with retry and return the 2xx response.

        Args:
            method: HTTP method.
            identifier: Absolute URL, or a path relative to ``base_address``.
            retry: When ``False`` a single attempt is made (uploads).
            **kwargs: Forwarded to :meth:`httpx.AsyncClient.request`
                (``json``, ``files``, ``params``, ...).

        Returns:
            The successful :class:`httpx.Response` (body already read).

        Raises:
            ClientError: On 4xx, without retrying.
            ServerError: On 5xx once attempts are exhausted.
            FetchTimeoutError: On timeout once attempts are exhausted.
            NetworkError: On transport failure once attempts are exhausted.
        """
        max_attempts = self._config.max_retries if retry else 1
        return await self._send_with_retry(
            method, identifier, max_attempts, FetchResult(identifier=identifier), **kwargs
        )

    def backoff_delay(self, attempt: int) -> float:
        """Delay in seconds before the retry that follows *attempt* (1-indexed)."""
        return self._config.base_retry_delay * 2 ** (attempt - 1)

    async def stream_to(self, identifier: str, sink: Any, chunk_size: int = 64 * 1024) -> int:
        """GET *identifier* and copy the body into the binary file *sink*.

        A single attempt is made; a retry after a partial body would need
        resumable downloads.

        Returns:
            Number of bytes written.
        """
        client = self._get_client()
        written = 0
        try:
            async with client.stream("GET", identifier) as response:
                if response.status_code >= 300:
                    await response.aread()
                self._raise_for_status(response)
                async for chunk in response.aiter_bytes(chunk_size):
                    await asyncio.to_thread(sink.write, chunk)
                    written += len(chunk)
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(f"Timed out downloading {identifier}: {exc}", url=identifier) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"Download of {identifier} failed: {exc}", url=identifier) from exc
        return written

    # ------------------------------------------------------------------ #
    # Private helpers
    # ------------------------------------------------------------------ #

    async def _send_with_retry(
        self,
        method: str,
        identifier: str,
        max_attempts: int,
        result: FetchResult,
        **kwargs: Any,
    ) -> httpx.Response:
        """Run the attempt loop, recording progress on *result*."""
        client = self._get_client()

        while True:
            result.attempts += 1
            attempt = result.attempts
            try:
                response = await self._attempt(client, method, identifier, **kwargs)
                result.status_code = response.status_code
                self._raise_for_status(response)
                debug(f"{method} {response.url} -> {response.status_code} (attempt {attempt})")
                return response
            except FetchError as exc:
                if not exc.retryable or attempt >= max_attempts:
                    raise
                delay = self.backoff_delay(attempt)
                debug(f"{exc}, retrying in {delay:.2f}s (attempt {attempt}/{max_attempts})")
                await asyncio.sleep(delay)

    async def _attempt(
        self,
        client: httpx.AsyncClient,
        method: str,
        identifier: str,
        **kwargs: Any,
    ) -> httpx.Response:
        """Issue one request, mapping transport exceptions to fetch errors."""
        try:
            return await client.request(method, identifier, **kwargs)
        except httpx.TimeoutException as exc:
            raise FetchTimeoutError(f"Request to {identifier} timed out: {exc}", url=identifier) from exc
        except httpx.TransportError as exc:
            raise NetworkError(f"Request to {identifier} failed: {exc}", url=identifier) from exc

    def _raise_for_status(self, response: httpx.Response) -> None:
        """Raise a typed exception for any non-2xx status."""
        status = response.status_code
        if 200 <= status < 300:
            return
        url = str(response.url)
        reason = response.reason_phrase or ""
        msg = f"HTTP {status} {reason}".rstrip() + f" for {url}"
        if status >= 500:
            raise ServerError(msg, status_code=status, url=url)
        raise ClientError(msg, status_code=status, url=url)
