"""
backend/tests/test_http_client.py

Purpose:
    Retry/backoff behaviour of ResilientClient and the circuit breaker,
    over an in-process httpx transport.

Dependencies:
    - matchpick.providers.http_client
    - httpx.MockTransport
"""

from __future__ import annotations

import httpx
import pytest

from matchpick.providers import http_client
from matchpick.providers.http_client import CircuitBreaker, ResilientClient


@pytest.fixture
def sleeps(monkeypatch):
    delays: list[float] = []

    async def _sleep(delay):
        delays.append(delay)

    monkeypatch.setattr(http_client.asyncio, "sleep", _sleep)
    return delays


def _client(handler, max_retries=2, base_delay=1.0) -> ResilientClient:
    client = ResilientClient("test", max_retries=max_retries, base_delay=base_delay)
    client._client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return client


@pytest.mark.asyncio
async def test_retryable_status_is_retried_with_linear_backoff(sleeps):
    answers = iter([503, 502, 200])

    def handler(request):
        return httpx.Response(next(answers), json={"ok": True})

    resp = await _client(handler).get("https://sports.test/record")

    assert resp.status_code == 200
    assert sleeps == [1.0, 2.0]


@pytest.mark.asyncio
async def test_last_retryable_response_is_returned(sleeps):
    calls = []

    def handler(request):
        calls.append(request.url)
        return httpx.Response(500)

    resp = await _client(handler, max_retries=2).get("https://sports.test/record")

    assert resp.status_code == 500
    assert len(calls) == 3


@pytest.mark.asyncio
async def test_client_errors_are_not_retried(sleeps):
    calls = []

    def handler(request):
        calls.append(request.url)
        return httpx.Response(404)

    resp = await _client(handler).get("https://sports.test/record")

    assert resp.status_code == 404
    assert len(calls) == 1
    assert sleeps == []


@pytest.mark.asyncio
async def test_retry_after_header_wins_over_backoff(sleeps):
    answers = iter([httpx.Response(429, headers={"retry-after": "7"}), httpx.Response(200)])

    resp = await _client(lambda request: next(answers)).get("https://sports.test/record")

    assert resp.status_code == 200
    assert sleeps == [7.0]


@pytest.mark.asyncio
async def test_network_errors_are_raised_after_the_last_attempt(sleeps):
    def handler(request):
        raise httpx.ConnectError("refused", request=request)

    with pytest.raises(httpx.ConnectError):
        await _client(handler, max_retries=1, base_delay=0.5).get("https://sports.test/record")

    assert sleeps == [0.5]


def test_circuit_opens_at_threshold_and_closes_on_success():
    breaker = CircuitBreaker(failure_threshold=2, recovery_timeout=60)

    breaker.record_failure()
    assert breaker.can_attempt()
    breaker.record_failure()
    assert not breaker.can_attempt()

    breaker.record_success()
    assert breaker.can_attempt()
    assert breaker.failure_count == 0


def test_open_circuit_allows_calls_after_recovery_timeout(monkeypatch):
    clock = iter([100.0, 100.5, 200.0])
    monkeypatch.setattr(http_client.time, "monotonic", lambda: next(clock))
    breaker = CircuitBreaker(failure_threshold=1, recovery_timeout=30)

    breaker.record_failure()

    assert not breaker.can_attempt()
    assert breaker.can_attempt()
