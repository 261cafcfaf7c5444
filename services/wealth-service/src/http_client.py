import asyncio
import logging
import random
import time
from collections.abc import Mapping, MutableMapping
from dataclasses import dataclass
from typing import Any

import httpx
from shared.observability.telemetry import CORRELATION_ID_HEADER

logger = logging.getLogger(__name__)
# None disables client-side timeouts; the transport decides when a request fails.
DEFAULT_TIMEOUT: httpx.Timeout | float | None = None
DEFAULT_MAX_ATTEMPTS = 1
DEFAULT_BACKOFF_FACTOR = 0.5
RETRYABLE_STATUS_CODES = {408, 425, 429, 500, 502, 503, 504}


@dataclass
class RequestMetrics:
    attempts: int
    latency_ms: float


class ResilientHttpClient:
    """Async httpx helper with optional retries and structured logging."""

    def __init__(
        self,
        *,
        timeout: httpx.Timeout | float | None = DEFAULT_TIMEOUT,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        backoff_factor: float = DEFAULT_BACKOFF_FACTOR,
        correlation_header: str = CORRELATION_ID_HEADER,
        retry_status_codes: set[int] | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._timeout = timeout
        self._max_attempts = max(1, max_attempts)
        self._backoff_factor = max(0.0, backoff_factor)
        self._correlation_header = correlation_header
        self._retry_status_codes = retry_status_codes or RETRYABLE_STATUS_CODES
        self._transport = transport

    async def post_json(
        self,
        url: str,
        payload: Mapping[str, Any],
        *,
        request_id: str,
        headers: Mapping[str, str] | None = None,
    ) -> tuple[httpx.Response, RequestMetrics]:
        """
        POST a JSON body, retrying retryable failures up to max_attempts.

        Raises httpx.HTTPStatusError / httpx.RequestError once attempts are exhausted.
        """
        attempts = 0
        start_time = time.perf_counter()

        while True:
            attempts += 1
            request_headers = self._build_headers(headers, request_id)

            try:
                async with httpx.AsyncClient(timeout=self._timeout, transport=self._transport) as client:
                    response = await client.post(url, json=dict(payload), headers=request_headers)
                response.raise_for_status()
                metrics = self._metrics(start_time, attempts)
                self._log("info", url, request_id, metrics, outcome="success", status_code=response.status_code)
                return response, metrics
            except (httpx.HTTPStatusError, httpx.RequestError) as exc:
                metrics = self._metrics(start_time, attempts)
                if self._should_retry(exc) and attempts < self._max_attempts:
                    self._log("warning", url, request_id, metrics, outcome="retry", error=str(exc))
                    await asyncio.sleep(self._backoff_seconds(attempts))
                    continue
                self._log("error", url, request_id, metrics, outcome="failure", error=str(exc))
                raise

    def _build_headers(
        self,
        headers: Mapping[str, str] | None,
        request_id: str,
    ) -> MutableMapping[str, str]:
        merged: MutableMapping[str, str] = {"Content-Type": "application/json"}
        if headers:
            merged.update(headers)
        merged.setdefault(self._correlation_header, request_id)
        return merged

    def _metrics(self, start_time: float, attempts: int) -> RequestMetrics:
        latency_ms = (time.perf_counter() - start_time) * 1000
        return RequestMetrics(attempts=attempts, latency_ms=round(latency_ms, 2))

    def _should_retry(self, exc: Exception) -> bool:
        if isinstance(exc, httpx.HTTPStatusError):
            status = exc.response.status_code
            return status >= 500 or status in self._retry_status_codes
        return isinstance(exc, httpx.RequestError)

    def _backoff_seconds(self, attempts: int) -> float:
        base = self._backoff_factor * (2 ** (attempts - 1))
        jitter = random.uniform(0, base / 2 if base else 0)
        return base + jitter

    def _log(
        self,
        level: str,
        url: str,
        request_id: str,
        metrics: RequestMetrics,
        **details: Any,
    ) -> None:
        getattr(logger, level)(
            {
                "event": "http_request",
                "url": url,
                "method": "POST",
                "request_id": request_id,
                "attempts": metrics.attempts,
                "latency_ms": metrics.latency_ms,
                **details,
            }
        )
