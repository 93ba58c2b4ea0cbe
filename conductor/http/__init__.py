"""HTTP/API collaborator: request/response types, an httpx client and a route-table mock."""

from .client import ApiClient, ApiError, ApiRequest, ApiResponse, HttpxApiClient
from .mocks import DEFAULT_ROUTES, MockApiClient, MockRoute, MockStats, create_api_client

__all__ = [
    "ApiClient",
    "ApiError",
    "ApiRequest",
    "ApiResponse",
    "HttpxApiClient",
    "MockApiClient",
    "MockRoute",
    "MockStats",
    "DEFAULT_ROUTES",
    "create_api_client",
]
