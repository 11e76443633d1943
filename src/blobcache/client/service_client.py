"""Structured calls against the configured base address.

:class:`ServiceClient` sits on top of a :class:`~blobcache.client.fetch_client.FetchClient`
and shares its retry policy and connection pool.  It adds JSON request and
response handling, multipart uploads and streamed downloads.  Successful
GETs can be served from a :class:`~blobcache.cache.response_cache.ResponseCache`.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, Optional, TypeVar

from pydantic import BaseModel

from blobcache.cache.response_cache import ResponseCache
from blobcache.client.fetch_client import FetchClient
from blobcache.client.response import decode_model, encode_payload, extract_response_data
from blobcache.config import atomic_writer
from blobcache.output import debug

ModelT = TypeVar("ModelT", bound=BaseModel)

_JSON_CONTENT_TYPE = "application/json; charset=utf-8"
_BODY_METHODS = frozenset({"POST", "PUT", "PATCH"})


class ServiceClient:
    """JSON, upload and download helpers over a shared :class:`FetchClient`.

    The service client does not own the fetch client; close the fetch
    client (or the coordinator that owns it) when done.

    Args:
        fetcher: The fetch client to send requests through.
        response_cache: Optional cache for GET response bodies.
    """

    def __init__(
        self,
        fetcher: FetchClient,
        response_cache: Optional[ResponseCache] = None,
    ) -> None:
        self._fetcher = fetcher
        self._response_cache = response_cache

    async def request_json(
        self,
        method: str,
        endpoint: str,
        payload: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Any:
        """Send a request and return the decoded body.

        For POST, PUT and PATCH the *payload* is sent as compact UTF-8 JSON.
        The body comes back as parsed JSON, as text when it is not JSON, or
        ``None`` when empty.

        Raises:
            FetchError: Any transport or HTTP failure, after retries.
        """
        method = method.upper()
        cacheable = method == "GET" and self._response_cache is not None
        cache_url = self._cache_url(endpoint)

        if cacheable:
            hit, body = await asyncio.to_thread(self._response_cache.lookup, cache_url, params)
            if hit:
                debug(f"Response cache hit for GET {cache_url}")
                return body

        kwargs: dict[str, Any] = {}
        if params:
            kwargs["params"] = params
        if method in _BODY_METHODS and payload is not None:
            kwargs["content"] = encode_payload(payload).encode("utf-8")
            kwargs["headers"] = {"Content-Type": _JSON_CONTENT_TYPE}

        response = await self._fetcher.send(method, endpoint, **kwargs)
        body = extract_response_data(response)

        if cacheable:
            await asyncio.to_thread(self._response_cache.store, cache_url, params, body)
        return body

    async def request_model(
        self,
        method: str,
        endpoint: str,
        model: type[ModelT],
        payload: Any = None,
        params: Optional[dict[str, Any]] = None,
    ) -> Optional[ModelT]:
        """Like :meth:`request_json` but decode the body into *model*.

        Property names are matched case-insensitively.  A body that cannot
        be decoded is reported as a warning and yields ``None``.
        """
        body = await self.request_json(method, endpoint, payload=payload, params=params)
        if body is None:
            return None
        text = body if isinstance(body, str) else encode_payload(body)
        return decode_model(text, model)

    async def upload_file(
        self,
        endpoint: str,
        file_path: str | Path,
        field_name: str = "file",
        content_type: Optional[str] = None,
    ) -> Any:
        """POST *file_path* as multipart form data and return the decoded body.

        Uploads are sent once; a failed upload is not retried.
        """
        path = Path(file_path)
        with open(path, "rb") as fh:
            if content_type:
                files = {field_name: (path.name, fh, content_type)}
            else:
                files = {field_name: (path.name, fh)}
            response = await self._fetcher.send("POST", endpoint, retry=False, files=files)
        debug(f"Uploaded {path.name} to {endpoint}")
        return extract_response_data(response)

    async def download_file(self, endpoint: str, destination: str | Path) -> Path:
        """Stream *endpoint* into *destination*.

        The body is written to a temp file next to *destination* and renamed
        into place only once complete, so an interrupted download never
        leaves a partial file behind.
        """
        path = Path(destination)
        with atomic_writer(path) as fh:
            written = await self._fetcher.stream_to(endpoint, fh)
        debug(f"Downloaded {endpoint} to {path} ({written} bytes)")
        return path

    def _cache_url(self, endpoint: str) -> str:
        if "://" in endpoint:
            return endpoint
        base = self._fetcher.config.base_address or ""
        if not base:
            return endpoint
        return f"{base.rstrip('/')}/{endpoint.lstrip('/')}"
