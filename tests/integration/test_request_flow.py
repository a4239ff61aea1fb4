"""End-to-end request flow through login, retries and the breaker.

These tests drive a full APIClient against a scripted MockTransport
server, using real (short) sleeps.
"""

import asyncio
import time

import httpx
import pytest

from awx_client.config.settings import Settings
from awx_client.exceptions import CircuitBreakerOpenError
from awx_client.utils.http_client import APIClient

BASE_URL = "https://api.test.example"
LOGIN_PATH = "/api/v1/authentication/login"

pytestmark = pytest.mark.integration


class FakeAirwallex:
    """Scripted stand-in for the API: logs in, then replays statuses."""

    def __init__(self, statuses, retry_after=None, delay=0.0):
        self.statuses = list(statuses)
        self.retry_after = retry_after
        self.delay = delay
        self.logins = 0
        self.api_requests = []

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        if request.url.path == LOGIN_PATH:
            self.logins += 1
            return httpx.Response(
                201, json={"token": "live-token", "expires_at": "2099-01-01T00:00:00+0000"}
            )
        self.api_requests.append(request)
        if self.delay:
            await asyncio.sleep(self.delay)
        status = self.statuses.pop(0) if len(self.statuses) > 1 else self.statuses[0]
        headers = {}
        if status == 429 and self.retry_after is not None:
            headers["Retry-After"] = self.retry_after
        if status < 300:
            return httpx.Response(status, headers=headers, json={"id": "t_1"})
        return httpx.Response(
            status, headers=headers, json={"code": "server_error", "message": "oops"}
        )


def make_client(server, **overrides):
    values = {
        "rate_limit_base_delay": 0.01,
        "server_error_retry_delay": 0.01,
        "operation_timeout": 5.0,
    }
    values.update(overrides)
    return APIClient(
        "test-client-id",
        "test-api-key",
        account_id="acct_1",
        base_url=BASE_URL,
        settings=Settings(**values),
        transport=httpx.MockTransport(server),
    )


@pytest.mark.asyncio
async def test_mixed_failures_then_success():
    server = FakeAirwallex([500, 429, 429, 200])
    async with make_client(server) as client:
        result = await client.request_json("GET", "/api/v1/transfers/t_1")

    assert result == {"id": "t_1"}
    assert server.logins == 1
    assert len(server.api_requests) == 4
    assert all(
        r.headers["authorization"] == "Bearer live-token" for r in server.api_requests
    )
    assert client.circuit_breaker.consecutive_failures == 0


@pytest.mark.asyncio
async def test_financial_post_retried_with_same_key_and_body():
    server = FakeAirwallex([429, 429, 201])
    async with make_client(server) as client:
        response = await client.post(
            "/api/v1/transfers/create",
            body={"request_id": "r1", "amount": "10.00", "currency": "USD"},
        )

    assert response.status_code == 201
    keys = {r.headers["x-idempotency-key"] for r in server.api_requests}
    bodies = {r.content for r in server.api_requests}
    assert len(server.api_requests) == 3
    assert len(keys) == 1
    assert len(bodies) == 1


@pytest.mark.asyncio
async def test_cancellation_stops_promptly():
    server = FakeAirwallex([429], retry_after="30")
    client = make_client(server)

    task = asyncio.create_task(client.get("/api/v1/transfers"))
    await asyncio.sleep(0.05)
    start = time.monotonic()
    task.cancel()
    with pytest.raises(asyncio.CancelledError):
        await task
    await asyncio.sleep(0.05)

    assert time.monotonic() - start < 0.5
    assert len(server.api_requests) == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_operation_deadline_covers_retries():
    server = FakeAirwallex([503], delay=0.02)
    client = make_client(server, operation_timeout=0.1, server_error_retry_delay=1.0)

    start = time.monotonic()
    with pytest.raises(asyncio.TimeoutError):
        await client.get("/api/v1/transfers")

    assert time.monotonic() - start < 0.5
    assert len(server.api_requests) == 1
    await client.aclose()


@pytest.mark.asyncio
async def test_breaker_shared_across_concurrent_calls():
    server = FakeAirwallex([502])
    client = make_client(server, circuit_breaker_threshold=3)

    responses = await asyncio.gather(
        *(client.post("/api/v1/transfers/t_1/cancel") for _ in range(3))
    )
    assert [r.status_code for r in responses] == [502, 502, 502]

    with pytest.raises(CircuitBreakerOpenError):
        await client.get("/api/v1/transfers")
    assert len(server.api_requests) == 3
    await client.aclose()


@pytest.mark.asyncio
async def test_login_sends_account_header():
    seen = {}

    async def server(request):
        if request.url.path == LOGIN_PATH:
            seen.update(request.headers)
            return httpx.Response(
                200, json={"token": "t", "expires_at": "2099-01-01T00:00:00Z"}
            )
        return httpx.Response(200, json={})

    async with make_client(server) as client:
        await client.get("/api/v1/balances/current")

    assert seen["x-login-as"] == "acct_1"
    assert seen["x-client-id"] == "test-client-id"
