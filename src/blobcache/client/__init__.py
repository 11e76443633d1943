"""HTTP clients: the retrying blob fetcher and the structured service client."""

from blobcache.client.fetch_client import FetchClient, FetchResult
from blobcache.client.service_client import ServiceClient

__all__ = ["FetchClient", "FetchResult", "ServiceClient"]
