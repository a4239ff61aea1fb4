"""Tests for the retry policy and Retry-After parsing."""

import asyncio
import time
from datetime import datetime, timedelta, timezone
from email.utils import format_datetime
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from awx_client.utils.http.retry import (
    MAX_RETRY_AFTER_SECONDS,
    RetryAfter,
    RetryAfterKind,
    RetryContext,
    RetryPolicy,
    is_idempotent_method,
)


def make_response(status: int, retry_after: str = None) -> httpx.Response:
    headers = {"Retry-After": retry_after} if retry_after is not None else {}
    return httpx.Response(status, headers=headers)


class TestRetryAfter:
    """Test Retry-After header parsing."""

    def test_delay_seconds(self):
        parsed = RetryAfter.parse("5")
        assert parsed.kind is RetryAfterKind.DELAY_SECONDS
        assert parsed.seconds == 5
        assert parsed.delay() == 5.0

    def test_zero_seconds(self):
        parsed = RetryAfter.parse("0")
        assert parsed.kind is RetryAfterKind.DELAY_SECONDS
        assert parsed.delay() == 0.0

    def test_surrounding_whitespace(self):
        assert RetryAfter.parse(" 7 ").seconds == 7

    def test_http_date(self):
        at = datetime(2015, 10, 21, 7, 28, tzinfo=timezone.utc)
        parsed = RetryAfter.parse("Wed, 21 Oct 2015 07:28:00 GMT")
        assert parsed.kind is RetryAfterKind.HTTP_DATE
        assert parsed.at == at
        assert parsed.delay(now=at - timedelta(seconds=10)) == pytest.approx(10.0)

    def test_http_date_in_past_clamps_to_zero(self):
        parsed = RetryAfter.parse("Wed, 21 Oct 2015 07:28:00 GMT")
        assert parsed.delay() == 0.0

    def test_http_date_in_future(self):
        future = datetime.now(timezone.utc) + timedelta(seconds=120)
        parsed = RetryAfter.parse(format_datetime(future, usegmt=True))
        assert parsed.kind is RetryAfterKind.HTTP_DATE
        assert 100 < parsed.delay() <= 120

    @pytest.mark.parametrize(
        "header", [None, "", "   ", "-1", "soon", "1.5", "Mon, 99 Foo 2015"]
    )
    def test_missing_or_malformed(self, header):
        assert RetryAfter.parse(header) is None

    def test_huge_delay_seconds_is_capped(self):
        parsed = RetryAfter.parse("9" * 400)
        assert parsed.kind is RetryAfterKind.DELAY_SECONDS
        assert parsed.seconds == MAX_RETRY_AFTER_SECONDS
        assert parsed.delay() == float(MAX_RETRY_AFTER_SECONDS)

    def test_huge_delay_seconds_follows_rate_limit_policy(self):
        policy = RetryPolicy()
        context = RetryContext(http_method="GET")
        delay = policy.next_delay(context, make_response(429, "9" * 400))
        assert delay == float(MAX_RETRY_AFTER_SECONDS)
        assert context.rate_limit_retries == 1

    def test_from_response(self):
        response = make_response(429, "3")
        assert RetryAfter.from_response(response).seconds == 3
        assert RetryAfter.from_response(make_response(429)) is None


class TestIdempotentMethods:
    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS", "get"])
    def test_idempotent(self, method):
        assert is_idempotent_method(method)

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    def test_not_idempotent(self, method):
        assert not is_idempotent_method(method)


class TestRetryPolicyDecisions:
    """Test the retry decision table."""

    def test_backoff_bounds(self):
        policy = RetryPolicy(rate_limit_base_delay=1.0)
        for retries, low in ((0, 1.0), (1, 2.0), (2, 4.0)):
            for _ in range(50):
                delay = policy.backoff_delay(retries)
                assert low <= delay <= low * 1.5

    def test_rate_limit_uses_backoff_without_header(self):
        policy = RetryPolicy(rate_limit_base_delay=1.0)
        context = RetryContext(http_method="POST")
        delay = policy.next_delay(context, make_response(429))
        assert 1.0 <= delay <= 1.5
        assert context.rate_limit_retries == 1

    def test_rate_limit_honors_retry_after(self):
        policy = RetryPolicy()
        context = RetryContext(http_method="POST")
        assert policy.next_delay(context, make_response(429, "7")) == 7.0

    def test_rate_limit_retries_capped(self):
        policy = RetryPolicy(max_rate_limit_retries=3)
        context = RetryContext(http_method="GET")
        for _ in range(3):
            assert policy.next_delay(context, make_response(429, "0")) == 0.0
        assert policy.next_delay(context, make_response(429, "0")) is None

    @pytest.mark.parametrize("method", ["GET", "HEAD", "OPTIONS"])
    def test_server_error_retried_once_for_idempotent(self, method):
        policy = RetryPolicy(server_error_retry_delay=1.0)
        context = RetryContext(http_method=method)
        assert policy.next_delay(context, make_response(503)) == 1.0
        assert policy.next_delay(context, make_response(503)) is None

    @pytest.mark.parametrize("method", ["POST", "PUT", "PATCH", "DELETE"])
    def test_server_error_not_retried_for_mutations(self, method):
        policy = RetryPolicy()
        context = RetryContext(http_method=method)
        assert policy.next_delay(context, make_response(500)) is None

    @pytest.mark.parametrize("status", [200, 201, 204, 400, 401, 404, 409])
    def test_other_statuses_not_retried(self, status):
        policy = RetryPolicy()
        context = RetryContext(http_method="GET")
        assert policy.next_delay(context, make_response(status)) is None

    def test_counters_are_independent(self):
        policy = RetryPolicy(max_server_error_retries=1, max_rate_limit_retries=3)
        context = RetryContext(http_method="GET")
        assert policy.next_delay(context, make_response(500)) is not None
        assert policy.next_delay(context, make_response(429, "0")) is not None
        assert policy.next_delay(context, make_response(500)) is None
        assert context.rate_limit_retries == 1
        assert context.server_error_retries == 1


class TestRetryPolicyExecute:
    """Test the retry loop."""

    @pytest.mark.asyncio
    async def test_returns_first_success(self):
        send = AsyncMock(return_value=make_response(200))
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            response = await RetryPolicy().execute("GET", send)
        assert response.status_code == 200
        assert send.await_count == 1
        mock_sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_rate_limit_then_success(self):
        send = AsyncMock(
            side_effect=[make_response(429, "2"), make_response(429, "3"), make_response(200)]
        )
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            response = await RetryPolicy().execute("POST", send)
        assert response.status_code == 200
        assert send.await_count == 3
        assert [c.args[0] for c in mock_sleep.await_args_list] == [2.0, 3.0]

    @pytest.mark.asyncio
    async def test_rate_limit_exhausted_returns_last_response(self):
        send = AsyncMock(side_effect=[make_response(429, "0") for _ in range(4)])
        with patch("asyncio.sleep", new_callable=AsyncMock):
            response = await RetryPolicy().execute("GET", send)
        assert response.status_code == 429
        assert send.await_count == 4

    @pytest.mark.asyncio
    async def test_server_error_get_retried_once(self):
        send = AsyncMock(side_effect=[make_response(502), make_response(503)])
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            response = await RetryPolicy(server_error_retry_delay=1.0).execute("GET", send)
        assert response.status_code == 503
        assert send.await_count == 2
        mock_sleep.assert_awaited_once_with(1.0)

    @pytest.mark.asyncio
    async def test_server_error_post_not_retried(self):
        send = AsyncMock(return_value=make_response(500))
        with patch("asyncio.sleep", new_callable=AsyncMock) as mock_sleep:
            response = await RetryPolicy().execute("POST", send)
        assert response.status_code == 500
        assert send.await_count == 1
        mock_sleep.assert_not_called()

    @pytest.mark.asyncio
    async def test_transport_error_propagates_without_retry(self):
        send = AsyncMock(side_effect=httpx.ConnectError("refused"))
        with pytest.raises(httpx.ConnectError):
            await RetryPolicy().execute("GET", send)
        assert send.await_count == 1

    @pytest.mark.asyncio
    async def test_cancellation_interrupts_wait(self):
        calls = 0

        async def send():
            nonlocal calls
            calls += 1
            return make_response(429, "10")

        task = asyncio.create_task(RetryPolicy().execute("GET", send))
        await asyncio.sleep(0.05)
        start = time.monotonic()
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert time.monotonic() - start < 1.0
        assert calls == 1

    @pytest.mark.asyncio
    async def test_deadline_interrupts_wait(self):
        calls = 0

        async def send():
            nonlocal calls
            calls += 1
            return make_response(503)

        policy = RetryPolicy(server_error_retry_delay=10.0)
        start = time.monotonic()
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(policy.execute("GET", send), timeout=0.05)
        assert time.monotonic() - start < 1.0
        assert calls == 1
