"""Core primitives for talking to the content server."""

from .batching import chunked, gather_in_batches
from .http_client import HttpClient, HttpClientError, HttpRequest, HttpResponse, build_auth
from .rate_limiter import RateLimiter

__all__ = [
    "chunked",
    "gather_in_batches",
    "HttpClient",
    "HttpClientError",
    "HttpRequest",
    "HttpResponse",
    "RateLimiter",
    "build_auth",
]
