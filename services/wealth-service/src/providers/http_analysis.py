"""
Endpoint-backed analysis provider.

Posts the rendered advisor prompt to the configured analysis endpoint using a
messages-style body ({model, max_tokens, messages}) and reads back a response
whose `content` is a list of text fragments. Every transport or parse problem is
reported as a tagged AnalysisOutcome so the dashboard can show the fallback
commentary instead of failing.
"""

from __future__ import annotations

import logging
from typing import Any

import httpx
from shared.observability.privacy import hash_payload
from shared.observability.telemetry import new_request_id
from shared.provider_settings import HttpEndpointConfig

from analysis_provider import (
    AnalysisFailure,
    AnalysisOutcome,
    AnalysisParseError,
    AnalysisProviderRequest,
    _log_analysis_failure,
    _log_analysis_metrics,
    build_analysis_prompt,
    parse_analysis_text,
)
from http_client import ResilientHttpClient

logger = logging.getLogger(__name__)

DEFAULT_MAX_TOKENS = 1000


def extract_response_text(payload: Any) -> str:
    """Concatenate the `text` of every content fragment; missing pieces count as empty."""
    if not isinstance(payload, dict):
        return ""
    content = payload.get("content")
    if not isinstance(content, list):
        return ""
    parts = []
    for fragment in content:
        if isinstance(fragment, dict) and isinstance(fragment.get("text"), str):
            parts.append(fragment["text"])
    return "".join(parts)


class HttpAnalysisProvider:
    """
    Provider that calls the analysis endpoint over HTTP.

    A single attempt is made unless settings allow retries; no client-side
    timeout applies unless one is configured.
    """

    name = "http"

    def __init__(
        self,
        settings: Any | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self._settings = settings
        self._endpoint: HttpEndpointConfig | None = getattr(settings, "http", None) if settings else None
        self._max_tokens = settings.max_output_tokens if settings else DEFAULT_MAX_TOKENS
        self._client = ResilientHttpClient(
            timeout=settings.timeout_seconds if settings else None,
            max_attempts=settings.max_attempts if settings else 1,
            transport=transport,
        )

    def build_request_body(self, prompt: str) -> dict[str, Any]:
        return {
            "model": self._endpoint.model if self._endpoint else "",
            "max_tokens": self._max_tokens,
            "messages": [{"role": "user", "content": prompt}],
        }

    async def analyze(self, request: AnalysisProviderRequest) -> AnalysisOutcome:
        if self._endpoint is None:
            detail = "Analysis endpoint not configured. Check ANALYSIS_API_BASE and ANALYSIS_API_PATH."
            _log_analysis_failure(self.name, request, AnalysisFailure.NOT_CONFIGURED, detail)
            return AnalysisOutcome.failed(self.name, AnalysisFailure.NOT_CONFIGURED, detail)

        request_id = request.request_id or new_request_id()
        prompt = build_analysis_prompt(request.form, request.metrics)
        body = self.build_request_body(prompt)

        logger.info(
            {
                "event": "http_analysis_request",
                "provider": self.name,
                "model": self._endpoint.model,
                "request_id": request_id,
                "prompt_hash": hash_payload(prompt),
            }
        )

        try:
            response, metrics = await self._client.post_json(
                self._endpoint.url,
                body,
                request_id=request_id,
            )
        except (httpx.HTTPStatusError, httpx.RequestError) as exc:
            _log_analysis_failure(self.name, request, AnalysisFailure.TRANSPORT, str(exc))
            return AnalysisOutcome.failed(self.name, AnalysisFailure.TRANSPORT, str(exc))

        try:
            payload = response.json()
        except ValueError as exc:
            _log_analysis_failure(self.name, request, AnalysisFailure.INVALID_JSON, str(exc))
            return AnalysisOutcome.failed(self.name, AnalysisFailure.INVALID_JSON, str(exc))

        try:
            result = parse_analysis_text(extract_response_text(payload))
        except AnalysisParseError as exc:
            _log_analysis_failure(self.name, request, exc.failure, str(exc))
            return AnalysisOutcome.failed(self.name, exc.failure, str(exc))

        logger.info(
            {
                "event": "http_analysis_response",
                "provider": self.name,
                "request_id": request_id,
                "attempts": metrics.attempts,
                "latency_ms": metrics.latency_ms,
            }
        )
        _log_analysis_metrics(self.name, request, result)
        return AnalysisOutcome.success(self.name, result)
