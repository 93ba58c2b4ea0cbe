"""Tests for the navigate / api_call / smart_wait helpers."""

from unittest.mock import AsyncMock, patch

import pytest


@pytest.fixture
def limiter():
    from conductor.config import RateLimitConfig
    from conductor.ratelimit import RateLimiter

    return RateLimiter(RateLimitConfig(delay_between_requests_ms=0, retry_attempts=1))


class TestApiCall:
    """Tests for api_call()."""

    @pytest.mark.asyncio
    async def test_get_responses_are_cached(self, limiter):
        from conductor.http import ApiResponse
        from conductor.ratelimit import api_call

        client = AsyncMock()
        client.request.return_value = ApiResponse(status=200, body={"cities": ["Lisbon"]})

        first = await api_call(limiter, client, "/api/cities")
        second = await api_call(limiter, client, "/api/cities")

        assert first == second == {"cities": ["Lisbon"]}
        assert client.request.await_count == 1

    @pytest.mark.asyncio
    async def test_post_is_not_cached(self, limiter):
        from conductor.http import ApiResponse
        from conductor.ratelimit import api_call

        client = AsyncMock()
        client.request.return_value = ApiResponse(status=201, body={"id": "r1"})

        await api_call(limiter, client, "/api/reviews", method="post", body={"rating": 5})
        await api_call(limiter, client, "/api/reviews", method="post", body={"rating": 5})

        assert client.request.await_count == 2
        sent = client.request.await_args.args[0]
        assert sent.method == "POST"
        assert sent.body == {"rating": 5}

    @pytest.mark.asyncio
    async def test_error_status_raises_api_error(self, limiter):
        from conductor.http import ApiError, ApiResponse
        from conductor.ratelimit import api_call

        client = AsyncMock()
        client.request.return_value = ApiResponse(status=500, body="oops")

        with pytest.raises(ApiError) as exc_info:
            await api_call(limiter, client, "/api/cities")

        assert exc_info.value.status == 500

    @pytest.mark.asyncio
    async def test_known_endpoint_supplies_ttl(self, limiter):
        from conductor.http import ApiResponse
        from conductor.ratelimit import api_call

        client = AsyncMock()
        client.request.return_value = ApiResponse(status=200, body={"status": "healthy"})

        await api_call(limiter, client, "http://localhost:3000/api/health")
        await api_call(limiter, client, "http://localhost:3000/api/auth/session")

        # Auth responses carry a zero TTL and are never cached
        assert [entry.ttl_ms for entry in limiter.cache.values()] == [60000]
        assert client.request.await_count == 2

    @pytest.mark.asyncio
    async def test_known_endpoint_supplies_priority(self, limiter):
        from conductor.config import Priority
        from conductor.ratelimit import api_call

        client = AsyncMock()
        with patch.object(limiter, "execute", new=AsyncMock(return_value=None)) as execute:
            await api_call(limiter, client, "https://api.unsplash.com/photos")
            await api_call(limiter, client, "/api/reviews")
            await api_call(limiter, client, "https://api.unsplash.com/photos", priority=Priority.HIGH)

        priorities = [c.kwargs["priority"] for c in execute.await_args_list]
        assert priorities == [Priority.LOW, Priority.MEDIUM, Priority.HIGH]


class TestNavigate:
    """Tests for navigate()."""

    @pytest.mark.asyncio
    async def test_navigation_is_never_cached(self, limiter, fake_page):
        from conductor.ratelimit import navigate

        await navigate(limiter, fake_page, "http://localhost:3000/cities")
        await navigate(limiter, fake_page, "http://localhost:3000/cities")

        assert len(fake_page.called("goto")) == 2
        assert fake_page.called("goto")[0] == ("goto", "http://localhost:3000/cities", "networkidle")
        assert limiter.cache == {}


class TestSmartWait:
    """Tests for smart_wait()."""

    @pytest.mark.asyncio
    async def test_returns_once_condition_holds(self, fake_clock):
        from conductor.ratelimit import smart_wait

        condition = AsyncMock(side_effect=[False, RuntimeError("flaky"), True])

        with patch("asyncio.sleep", new=AsyncMock(side_effect=fake_clock.sleep)):
            await smart_wait(condition, timeout_ms=10_000, clock=fake_clock)

        assert condition.await_count == 3
        assert fake_clock.sleeps == [1000, 1000]

    @pytest.mark.asyncio
    async def test_times_out(self, fake_clock):
        from conductor.ratelimit import smart_wait
        from conductor.timing import WaitTimeoutError

        with patch("asyncio.sleep", new=AsyncMock(side_effect=fake_clock.sleep)):
            with pytest.raises(WaitTimeoutError, match="cities loaded"):
                await smart_wait(
                    AsyncMock(return_value=False),
                    timeout_ms=3000,
                    description="cities loaded",
                    clock=fake_clock,
                )

        assert len(fake_clock.sleeps) == 3
