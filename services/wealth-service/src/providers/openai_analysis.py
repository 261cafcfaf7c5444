"""
OpenAI-powered analysis provider.

Sends the same advisor prompt as the endpoint provider through the OpenAI chat
completions API, asking for a JSON object response, and parses the message
content into an AnalysisResult.
"""

from __future__ import annotations

import logging
from typing import Any

from openai import APIError, APITimeoutError, AsyncOpenAI
from shared.observability.privacy import hash_payload

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

logger = logging.getLogger(__name__)

SYSTEM_PROMPT = (
    "You are a personal finance advisor reviewing a simple cash-flow system: "
    "cash stays above a floor, credit stays below a ceiling, the rest is invested. "
    "Never guarantee outcomes or give specific investment advice. "
    "Respond with a single JSON object and nothing else."
)


class OpenAIAnalysisProvider:
    """
    ChatGPT-backed provider that generates dashboard commentary.

    Failures are returned as tagged outcomes; the session decides what to show.
    """

    name = "openai"

    def __init__(self, settings: Any | None = None):
        self._settings = settings
        if settings and settings.openai:
            self._client = AsyncOpenAI(
                api_key=settings.openai.api_key,
                base_url=settings.openai.api_base,
                timeout=settings.timeout_seconds,
            )
            self._model = settings.openai.model
            self._temperature = settings.temperature
            self._max_tokens = settings.max_output_tokens
        else:
            self._client = None
            self._model = None
            self._temperature = 0.7
            self._max_tokens = 1000

    async def analyze(self, request: AnalysisProviderRequest) -> AnalysisOutcome:
        if not self._client:
            detail = "OpenAI client not configured. Check OPENAI_API_KEY, OPENAI_MODEL, OPENAI_API_BASE."
            _log_analysis_failure(self.name, request, AnalysisFailure.NOT_CONFIGURED, detail)
            return AnalysisOutcome.failed(self.name, AnalysisFailure.NOT_CONFIGURED, detail)

        user_prompt = build_analysis_prompt(request.form, request.metrics)
        logger.info(
            {
                "event": "openai_analysis_request",
                "provider": self.name,
                "model": self._model,
                "request_id": request.request_id,
                "prompt_hash": hash_payload({"system": SYSTEM_PROMPT, "user": user_prompt}),
            }
        )

        try:
            response = await self._client.chat.completions.create(
                model=self._model,
                messages=[
                    {"role": "system", "content": SYSTEM_PROMPT},
                    {"role": "user", "content": user_prompt},
                ],
                response_format={"type": "json_object"},
                temperature=self._temperature,
                max_tokens=self._max_tokens,
            )
        except (APIError, APITimeoutError) as exc:
            _log_analysis_failure(self.name, request, AnalysisFailure.TRANSPORT, str(exc))
            return AnalysisOutcome.failed(self.name, AnalysisFailure.TRANSPORT, str(exc))

        content = response.choices[0].message.content if response.choices else None
        try:
            result = parse_analysis_text(content or "")
        except AnalysisParseError as exc:
            _log_analysis_failure(self.name, request, exc.failure, str(exc))
            return AnalysisOutcome.failed(self.name, exc.failure, str(exc))

        _log_analysis_metrics(self.name, request, result)
        return AnalysisOutcome.success(self.name, result)
