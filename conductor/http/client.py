"""
HTTP/API collaborator.

Outbound calls are plain (method, url, headers, body) requests and responses
are (status, body) pairs. The rate limiter wraps calls to an ``ApiClient``;
``HttpxApiClient`` is the stock implementation.
"""

import time
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Optional

import httpx
import structlog

logger = structlog.get_logger()


class ApiError(Exception):
    """Raised when an API call fails or returns an error status."""

    def __init__(self, message: str, status: Optional[int] = None, body: Any = None):
        super().__init__(message)
        self.status = status
        self.body = body


@dataclass(frozen=True)
class ApiRequest:
    """A single outbound request."""

    url: str
    method: str = "GET"
    headers: dict[str, str] = field(default_factory=dict)
    body: Any = None


@dataclass
class ApiResponse:
    """Status and decoded body of a response."""

    status: int
    body: Any = None
    headers: dict[str, str] = field(default_factory=dict)
    elapsed_ms: int = 0

    @property
    def ok(self) -> bool:
        return 200 <= self.status < 300

    def raise_for_status(self) -> "ApiResponse":
        if not self.ok:
            raise ApiError(f"HTTP {self.status}", status=self.status, body=self.body)
        return self


class ApiClient(ABC):
    """Anything that can send an ApiRequest."""

    @abstractmethod
    async def request(self, request: ApiRequest) -> ApiResponse:
        """Send a request and return its response. Error statuses are returned, not raised."""

    async def close(self) -> None:
        """Release connections."""


class HttpxApiClient(ApiClient):
    """ApiClient backed by a shared ``httpx.AsyncClient``.

    Example:
        async with HttpxApiClient("http://localhost:3000") as client:
            response = await client.request(ApiRequest("/api/cities"))
    """

    def __init__(
        self,
        base_url: str = "",
        timeout_s: float = 30.0,
        headers: Optional[dict[str, str]] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url
        self.timeout = httpx.Timeout(timeout_s, connect=10.0)
        self.headers = {"Content-Type": "application/json", **(headers or {})}
        self._transport = transport
        self._client: Optional[httpx.AsyncClient] = None
        self.log = logger.bind(component="http_client")

    async def _get_client(self) -> httpx.AsyncClient:
        """Get or create HTTP client"""
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(
                base_url=self.base_url,
                timeout=self.timeout,
                headers=self.headers,
                transport=self._transport,
            )
        return self._client

    async def request(self, request: ApiRequest) -> ApiResponse:
        client = await self._get_client()
        started = time.monotonic()

        kwargs: dict[str, Any] = {"headers": request.headers}
        if request.body is not None:
            if isinstance(request.body, (str, bytes)):
                kwargs["content"] = request.body
            else:
                kwargs["json"] = request.body

        try:
            response = await client.request(request.method.upper(), request.url, **kwargs)
        except httpx.TimeoutException as e:
            raise ApiError(f"Request timeout: {request.method} {request.url}") from e
        except httpx.HTTPError as e:
            raise ApiError(f"Network error: {request.method} {request.url}: {e}") from e

        elapsed_ms = int((time.monotonic() - started) * 1000)
        content_type = response.headers.get("content-type", "")
        if "application/json" in content_type:
            try:
                body = response.json()
            except ValueError:
                body = response.text
        else:
            body = response.text

        self.log.debug(
            "API call",
            method=request.method,
            url=request.url,
            status=response.status_code,
            elapsed_ms=elapsed_ms,
        )
        return ApiResponse(
            status=response.status_code,
            body=body,
            headers=dict(response.headers),
            elapsed_ms=elapsed_ms,
        )

    async def close(self) -> None:
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    async def __aenter__(self) -> "HttpxApiClient":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.close()
