"""Async HTTP client with retry support for the content server APIs."""

from __future__ import annotations

import asyncio
import json
import logging
import random
import time
from dataclasses import dataclass, field
from typing import Any, Mapping

import httpx

from ..settings import HttpSettings
from .rate_limiter import RateLimiter

_LOGGER = logging.getLogger(__name__)
_RETRY_STATUSES = frozenset({429, 502, 503, 504})
_DEFAULT_HEADERS = {
    "accept": "application/json",
    "user-agent": "sitemapper/0.3",
    "connection": "keep-alive",
}


class HttpClientError(RuntimeError):
    """Raised when a request fails after all retry attempts."""

    def __init__(self, message: str, *, url: str, status: int | None = None) -> None:
        super().__init__(message)
        self.url = url
        self.status = status


@dataclass(slots=True)
class HttpRequest:
    path: str
    method: str = "GET"
    params: Mapping[str, Any] | None = None
    headers: Mapping[str, str] | None = None
    max_attempts: int | None = None
    timeout: float | None = None


@dataclass(slots=True)
class HttpResponse:
    url: str
    status: int
    headers: Mapping[str, str]
    body: bytes
    elapsed: float
    text: str = field(default="")

    def json(self) -> Any:
        try:
            return json.loads(self.body or b"null")
        except json.JSONDecodeError as exc:
            raise HttpClientError(
                f"Response is not valid JSON: {exc}", url=self.url, status=self.status
            ) from exc


class HttpClient:
    """Thin wrapper around ``httpx.AsyncClient``.

    Requests share one connection pool. Throttled and gateway responses are
    retried with ``Retry-After`` or linear backoff plus jitter; every other
    non-2xx status raises ``HttpClientError`` immediately.
    """

    def __init__(
        self,
        *,
        base_url: str,
        http_settings: HttpSettings,
        auth: httpx.Auth | None = None,
        headers: Mapping[str, str] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._http_settings = http_settings
        self._rate_limiter = RateLimiter(
            min_delay=http_settings.min_delay,
            max_delay=http_settings.max_delay,
        )
        merged = dict(_DEFAULT_HEADERS)
        if headers:
            merged.update({str(k).lower(): str(v) for k, v in headers.items()})
        self._client = httpx.AsyncClient(
            base_url=base_url.rstrip("/"),
            auth=auth,
            headers=merged,
            timeout=http_settings.timeout,
            transport=transport,
            follow_redirects=True,
            limits=httpx.Limits(max_connections=50),
        )

    @property
    def base_url(self) -> str:
        return str(self._client.base_url)

    async def __aenter__(self) -> "HttpClient":
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._client.aclose()

    async def get_json(self, path: str, params: Mapping[str, Any] | None = None) -> Any:
        response = await self.fetch(HttpRequest(path=path, params=params))
        return response.json()

    async def fetch(self, request: HttpRequest) -> HttpResponse:
        max_attempts = (
            request.max_attempts
            if request.max_attempts is not None
            else self._http_settings.max_attempts
        )
        timeout = request.timeout if request.timeout is not None else self._http_settings.timeout

        attempt = 0
        start_time = time.monotonic()
        while True:
            attempt += 1
            if self._rate_limiter.enabled:
                await self._rate_limiter.wait()
            try:
                resp = await self._client.request(
                    request.method.upper(),
                    request.path,
                    params=request.params,
                    headers=request.headers,
                    timeout=timeout,
                )
            except httpx.TransportError as exc:
                if attempt >= max_attempts:
                    raise HttpClientError(
                        f"Connection error: {exc}", url=self._describe(request)
                    ) from exc
                wait_seconds = self._compute_retry_wait(None, attempt)
                _LOGGER.warning(
                    "Transport error, retrying",
                    extra={
                        "event": "http.retry",
                        "path": request.path,
                        "attempt": attempt,
                        "wait": round(wait_seconds, 2),
                        "error": str(exc),
                    },
                )
                await asyncio.sleep(wait_seconds)
                continue

            if resp.status_code in _RETRY_STATUSES and attempt < max_attempts:
                wait_seconds = self._compute_retry_wait(resp.headers.get("Retry-After"), attempt)
                _LOGGER.warning(
                    "HTTP %s, retrying",
                    resp.status_code,
                    extra={
                        "event": "http.retry",
                        "path": request.path,
                        "attempt": attempt,
                        "wait": round(wait_seconds, 2),
                    },
                )
                await asyncio.sleep(wait_seconds)
                continue

            if resp.is_error:
                raise HttpClientError(
                    f"HTTP {resp.status_code} {resp.reason_phrase}",
                    url=str(resp.url),
                    status=resp.status_code,
                )

            return HttpResponse(
                url=str(resp.url),
                status=resp.status_code,
                headers=dict(resp.headers.items()),
                body=resp.content,
                elapsed=time.monotonic() - start_time,
                text=resp.text,
            )

    def _describe(self, request: HttpRequest) -> str:
        return f"{self.base_url}{request.path}"

    def _compute_retry_wait(self, retry_after: str | None, attempt: int) -> float:
        wait_seconds = 0.0
        if retry_after:
            try:
                wait_seconds = float(retry_after)
            except (TypeError, ValueError):
                wait_seconds = 0.0
        if wait_seconds <= 0:
            wait_seconds = self._http_settings.backoff_factor * attempt
        jitter = random.uniform(0, 0.25 * wait_seconds)
        return wait_seconds + jitter


def build_auth(
    *, username: str | None, password: str | None, token: str | None
) -> httpx.Auth | None:
    """Prefer a bearer token; fall back to basic auth when both parts exist."""

    if token:
        return _BearerAuth(token)
    if username and password:
        return httpx.BasicAuth(username, password)
    return None


class _BearerAuth(httpx.Auth):
    def __init__(self, token: str) -> None:
        self._token = token

    def auth_flow(self, request: httpx.Request):
        request.headers["Authorization"] = f"Bearer {self._token}"
        yield request


__all__ = [
    "HttpClient",
    "HttpClientError",
    "HttpRequest",
    "HttpResponse",
    "build_auth",
]
