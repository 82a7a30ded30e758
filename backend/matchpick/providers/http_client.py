"""
backend/matchpick/providers/http_client.py

Purpose:
    Shared httpx transport for the sports-data API and the Gemini oracle:
    bounded retries with linear backoff, and a circuit breaker the oracle
    consults before spending a call.

Dependencies:
    - httpx
    - matchpick.monitoring.analysis_metrics
"""

import asyncio
import logging
import time
from typing import Optional
from urllib.parse import urlsplit

import httpx

from matchpick.monitoring.analysis_metrics import METRIC_UPSTREAM_RETRIES

logger = logging.getLogger("matchpick.http_client")

RETRYABLE_STATUSES = frozenset({429, 500, 502, 503, 504})
_NETWORK_ERRORS = (httpx.TimeoutException, httpx.ConnectError, httpx.RemoteProtocolError)
_MAX_BACKOFF_SECONDS = 30.0


class CircuitBreaker:
    """Opens after ``failure_threshold`` consecutive failures.

    While open, ``can_attempt`` is False until ``recovery_timeout`` seconds
    have passed since the last failure; then calls are allowed again.
    """

    def __init__(self, failure_threshold: int = 3, recovery_timeout: float = 300.0):
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.failure_count = 0
        self._opened_at: Optional[float] = None

    def record_success(self) -> None:
        self.failure_count = 0
        self._opened_at = None

    def record_failure(self) -> None:
        self.failure_count += 1
        if self.failure_count >= self.failure_threshold:
            if self._opened_at is None:
                logger.warning("Circuit breaker open after %d failures", self.failure_count)
            self._opened_at = time.monotonic()

    def can_attempt(self) -> bool:
        if self._opened_at is None:
            return True
        return time.monotonic() - self._opened_at > self.recovery_timeout


def _log_url(url: str) -> str:
    # Query strings carry the Gemini key.
    parts = urlsplit(str(url))
    return f"{parts.scheme}://{parts.netloc}{parts.path}"


def _retry_after(response: httpx.Response) -> Optional[float]:
    try:
        return float(response.headers["retry-after"])
    except (KeyError, TypeError, ValueError):
        return None


class ResilientClient:
    """``httpx.AsyncClient`` that retries network errors and 429/5xx answers.

    ``max_retries`` counts retries after the first attempt; retry ``n`` waits
    ``base_delay * n`` seconds unless the server sent ``Retry-After``. If the
    last attempt still got a retryable status, that response is returned so
    the caller's ``raise_for_status()`` decides; if it failed at the network
    level, the error is raised.
    """

    def __init__(
        self,
        name: str,
        timeout: float = 30.0,
        max_retries: int = 2,
        base_delay: float = 1.0,
        headers: dict[str, str] | None = None,
    ):
        self.name = name
        self.circuit = CircuitBreaker()
        self._client = httpx.AsyncClient(timeout=timeout, headers=headers)
        self._max_retries = max(0, max_retries)
        self._base_delay = base_delay

    async def request(self, method: str, url: str, **kwargs) -> httpx.Response:
        attempts = self._max_retries + 1
        for attempt in range(1, attempts + 1):
            final = attempt == attempts
            try:
                resp = await self._client.request(method, url, **kwargs)
            except _NETWORK_ERRORS as exc:
                if final:
                    logger.error(
                        "[%s] %s %s failed after %d attempts: %s",
                        self.name, method, _log_url(url), attempts, exc,
                    )
                    raise
                logger.warning(
                    "[%s] Network error on %s %s (attempt %d/%d): %s",
                    self.name, method, _log_url(url), attempt, attempts, exc,
                )
                METRIC_UPSTREAM_RETRIES.labels(client=self.name, reason="network").inc()
                await asyncio.sleep(self._base_delay * attempt)
                continue

            if resp.status_code not in RETRYABLE_STATUSES:
                return resp
            if final:
                logger.error(
                    "[%s] %s %s still %d after %d attempts",
                    self.name, method, _log_url(url), resp.status_code, attempts,
                )
                return resp
            logger.warning(
                "[%s] Status %d on %s %s (attempt %d/%d)",
                self.name, resp.status_code, method, _log_url(url), attempt, attempts,
            )
            METRIC_UPSTREAM_RETRIES.labels(client=self.name, reason="status").inc()
            delay = _retry_after(resp)
            await asyncio.sleep(min(delay if delay is not None else self._base_delay * attempt, _MAX_BACKOFF_SECONDS))

    async def get(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def aclose(self) -> None:
        await self._client.aclose()
