"""
Canned API responses for test runs.

``MockApiClient`` answers requests from a route table instead of the network,
so suites can exercise the city, health and auth endpoints (and the external
image API) without spending their rate budget. Latency and error injection
follow the environment's ``MockingConfig``.

Endpoints whose policy sets ``mocking_required`` are always answered by
their mock, even when mocking is disabled; with no matching route the call
fails instead of reaching the real service.

Usage:
    client = create_api_client(get_environment_config("ci"), base_url="http://localhost:3000")
    response = await client.request(ApiRequest("/api/cities?search=lis"))
"""

import asyncio
import math
import random
from collections import Counter
from dataclasses import dataclass, field
from datetime import UTC, datetime
from fnmatch import fnmatchcase
from typing import Any, Callable, Optional
from urllib.parse import parse_qsl, urlsplit

import httpx
import structlog

from ..config import EndpointPolicy, EnvironmentConfig, MockingConfig, match_endpoint_policy
from .client import ApiClient, ApiError, ApiRequest, ApiResponse, HttpxApiClient

logger = structlog.get_logger()

RouteHandler = Callable[[ApiRequest, dict[str, str]], ApiResponse]

TEST_LOGIN = {"email": "test@example.com", "password": "password123"}

MOCK_CITIES: list[dict[str, Any]] = [
    {
        "id": "mock-city-bangkok",
        "name": "Bangkok",
        "country": "Thailand",
        "continent": "Asia",
        "costOfLiving": 800,
        "safetyRating": 7.5,
        "internetSpeed": 85,
        "featured": True,
    },
    {
        "id": "mock-city-lisbon",
        "name": "Lisbon",
        "country": "Portugal",
        "continent": "Europe",
        "costOfLiving": 1200,
        "safetyRating": 8.8,
        "internetSpeed": 95,
        "featured": True,
    },
    {
        "id": "mock-city-mexico-city",
        "name": "Mexico City",
        "country": "Mexico",
        "continent": "North America",
        "costOfLiving": 600,
        "safetyRating": 6.5,
        "internetSpeed": 75,
        "featured": False,
    },
]

MOCK_IMAGES: list[dict[str, Any]] = [
    {
        "id": "mock-city-1",
        "alt_description": "Beautiful city skyline at sunset",
        "description": "A stunning view of the city during golden hour",
        "urls": {"regular": "https://images.unsplash.com/photo-1506905925346-21bda4d32df4?w=800&h=600"},
    },
    {
        "id": "mock-city-2",
        "alt_description": "Modern city architecture",
        "description": "Contemporary urban landscape with modern buildings",
        "urls": {"regular": "https://images.unsplash.com/photo-1449824913935-59a10b8d2000?w=800&h=600"},
    },
    {
        "id": "mock-city-3",
        "alt_description": "Historic city center",
        "description": "Charming old town with traditional architecture",
        "urls": {"regular": "https://images.unsplash.com/photo-1480714378408-67cf0d13bc1f?w=800&h=600"},
    },
]

MOCK_USER = {
    "id": "mock-user-1",
    "email": TEST_LOGIN["email"],
    "name": "Test User",
    "role": "USER",
    "verified": True,
}


@dataclass(frozen=True)
class MockRoute:
    """One mocked endpoint.

    ``pattern`` is a glob matched against the URL without its query string.
    An empty ``methods`` accepts every method. ``error_status`` is what a
    simulated failure returns; None exempts the route from error injection.
    """

    name: str
    pattern: str
    handler: RouteHandler
    methods: tuple[str, ...] = ()
    error_status: Optional[int] = 500

    def matches(self, request: ApiRequest) -> bool:
        if self.methods and request.method.upper() not in self.methods:
            return False
        return fnmatchcase(request.url.split("?", 1)[0], self.pattern)


def _json(status: int, body: Any) -> ApiResponse:
    return ApiResponse(status=status, body=body, headers={"content-type": "application/json"})


def _int_param(query: dict[str, str], name: str, default: int) -> int:
    value = int(query.get(name, default))
    if value < 1:
        raise ValueError(f"{name} must be positive")
    return value


def cities_handler(request: ApiRequest, query: dict[str, str]) -> ApiResponse:
    try:
        limit = _int_param(query, "limit", 10)
        page = _int_param(query, "page", 1)
    except ValueError as e:
        return _json(400, {"success": False, "error": str(e)})

    cities = MOCK_CITIES
    search = query.get("search", "").lower()
    if search:
        cities = [c for c in cities if search in c["name"].lower() or search in c["country"].lower()]

    start = (page - 1) * limit
    return _json(
        200,
        {
            "success": True,
            "data": cities[start:start + limit],
            "meta": {
                "total": len(cities),
                "page": page,
                "limit": limit,
                "totalPages": math.ceil(len(cities) / limit),
            },
        },
    )


def health_handler(request: ApiRequest, query: dict[str, str]) -> ApiResponse:
    return _json(
        200,
        {
            "status": "healthy",
            "timestamp": datetime.now(UTC).isoformat(),
            "environment": "test",
            "checks": {"database": "healthy", "externalServices": "healthy"},
        },
    )


def login_handler(request: ApiRequest, query: dict[str, str]) -> ApiResponse:
    body = request.body if isinstance(request.body, dict) else {}
    if body.get("email") == TEST_LOGIN["email"] and body.get("password") == TEST_LOGIN["password"]:
        return _json(200, {"success": True, "user": MOCK_USER, "token": "mock-jwt-token-12345"})
    return _json(401, {"success": False, "error": "Invalid credentials"})


def register_handler(request: ApiRequest, query: dict[str, str]) -> ApiResponse:
    body = request.body if isinstance(request.body, dict) else {}
    user = {
        "id": "mock-user-2",
        "email": body.get("email", "newuser@example.com"),
        "name": body.get("name", "New User"),
        "role": "USER",
        "verified": False,
    }
    return _json(201, {"success": True, "message": "User registered successfully", "user": user})


def profile_handler(request: ApiRequest, query: dict[str, str]) -> ApiResponse:
    return _json(200, {"success": True, "user": {**MOCK_USER, "preferences": {"currency": "USD", "language": "en"}}})


def images_handler(request: ApiRequest, query: dict[str, str]) -> ApiResponse:
    try:
        per_page = _int_param(query, "per_page", 5)
    except ValueError as e:
        return _json(400, {"error": str(e)})

    images = MOCK_IMAGES
    term = query.get("query", "").lower()
    if term:
        images = [i for i in images if term in i["alt_description"].lower() or term in i["description"].lower()]

    return _json(
        200,
        {"results": images[:per_page], "total": len(images), "total_pages": math.ceil(len(images) / per_page)},
    )


DEFAULT_ROUTES: tuple[MockRoute, ...] = (
    MockRoute("unsplash", "https://api.unsplash.com/*", images_handler, error_status=429),
    MockRoute("cities", "*/api/cities*", cities_handler),
    MockRoute("health", "*/api/health*", health_handler, error_status=None),
    MockRoute("auth-login", "*/api/auth/login", login_handler, methods=("POST",), error_status=None),
    MockRoute("auth-register", "*/api/auth/register", register_handler, methods=("POST",), error_status=None),
    MockRoute("auth-profile", "*/api/auth/profile", profile_handler, error_status=None),
)


@dataclass
class MockStats:
    active_mocks: list[str] = field(default_factory=list)
    request_counts: dict[str, int] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {"active_mocks": self.active_mocks, "request_counts": self.request_counts}


class MockApiClient(ApiClient):
    """ApiClient that serves matching requests from a route table.

    Args:
        config: Latency and error injection; ``enabled=False`` passes
            everything except mocking-required endpoints to ``fallback``
        routes: Route table, checked in order
        fallback: Client for requests no route answers
        rng: Random source for latency and injected errors
        endpoint_policies: Policies consulted for ``mocking_required``
    """

    def __init__(
        self,
        config: Optional[MockingConfig] = None,
        routes: Optional[list[MockRoute] | tuple[MockRoute, ...]] = None,
        fallback: Optional[ApiClient] = None,
        rng: Optional[random.Random] = None,
        endpoint_policies: Optional[dict[str, EndpointPolicy]] = None,
    ):
        self.config = config or MockingConfig()
        self.routes = list(DEFAULT_ROUTES if routes is None else routes)
        self.fallback = fallback
        self.rng = rng or random.Random()
        self.endpoint_policies = endpoint_policies
        self._counts: Counter[str] = Counter()
        self.log = logger.bind(component="mock_api")

    async def request(self, request: ApiRequest) -> ApiResponse:
        route = next((r for r in self.routes if r.matches(request)), None)
        policy = match_endpoint_policy(request.url, self.endpoint_policies)
        required = policy is not None and policy[1].mocking_required

        if route is not None and (self.config.enabled or required):
            return await self._serve(route, request)
        if required:
            raise ApiError(f"No mock for {request.method} {request.url}; endpoint must not be called for real")
        if self.fallback is not None:
            return await self.fallback.request(request)
        return _json(404, {"success": False, "error": f"No mock route for {request.method} {request.url}"})

    async def _serve(self, route: MockRoute, request: ApiRequest) -> ApiResponse:
        self._counts[route.name] += 1

        if self.config.simulate_latency:
            low, high = self.config.latency_range_ms
            await asyncio.sleep(self.rng.randint(low, high) / 1000)

        if (
            route.error_status is not None
            and self.config.simulate_errors
            and self.rng.random() < self.config.error_rate
        ):
            self.log.debug("Injected mock error", route=route.name, status=route.error_status)
            return _json(route.error_status, {"success": False, "error": "Simulated failure"})

        query = dict(parse_qsl(urlsplit(request.url).query))
        response = route.handler(request, query)
        self.log.debug("Mock response", route=route.name, method=request.method, status=response.status)
        return response

    def get_stats(self) -> MockStats:
        return MockStats(
            active_mocks=[r.name for r in self.routes],
            request_counts=dict(self._counts),
        )

    def reset(self) -> None:
        self._counts.clear()

    def update_config(self, config: MockingConfig) -> None:
        self.config = config
        self.log.info("Mock configuration updated", **config.model_dump())

    async def close(self) -> None:
        if self.fallback is not None:
            await self.fallback.close()


def create_api_client(
    environment: EnvironmentConfig,
    base_url: str = "",
    routes: Optional[list[MockRoute]] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
    rng: Optional[random.Random] = None,
) -> MockApiClient:
    """Mock client for an environment profile, backed by a real httpx client."""
    return MockApiClient(
        environment.mocking,
        routes=routes,
        fallback=HttpxApiClient(base_url, transport=transport),
        rng=rng,
    )
