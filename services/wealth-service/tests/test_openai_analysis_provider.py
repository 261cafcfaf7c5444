"""
Tests for the OpenAI analysis provider.

These tests mock the OpenAI client to verify prompt construction, response
parsing, and failure tagging without making real API calls.
"""

from __future__ import annotations

import json
from typing import Any, Dict
from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest
from openai import APITimeoutError

from analysis_provider import AnalysisFailure, AnalysisProviderRequest
from compute_metrics import compute_metrics
from providers.openai_analysis import SYSTEM_PROMPT, OpenAIAnalysisProvider
from shared.provider_settings import OpenAIConfig, ProviderSettings


@pytest.fixture
def mock_settings() -> ProviderSettings:
    """Create mock provider settings with OpenAI config."""
    return ProviderSettings(
        provider_name="openai",
        timeout_seconds=15.0,
        temperature=0.3,
        max_output_tokens=800,
        openai=OpenAIConfig(
            api_key="test-api-key",
            model="gpt-4o-mini",
            api_base="https://api.openai.com/v1",
        ),
    )


@pytest.fixture
def analysis_request(sample_form) -> AnalysisProviderRequest:
    return AnalysisProviderRequest(form=sample_form, metrics=compute_metrics(sample_form), request_id="req-1")


@pytest.fixture
def mock_openai_response() -> Dict[str, Any]:
    return {
        "headline": "Good bones, one loose brick",
        "insights": [
            {"title": "Savings rate shines", "body": "Well above 20%.", "type": "celebrate"},
            {"title": "Card over ceiling", "body": "Trim $300.", "type": "warning"},
        ],
        "oneMove": "Pay $300 off the card today.",
    }


def _completion(content: str | None) -> MagicMock:
    mock_choice = MagicMock()
    mock_choice.message.content = content
    mock_completion = MagicMock()
    mock_completion.choices = [mock_choice]
    return mock_completion


class TestOpenAIAnalysisProvider:
    @pytest.mark.anyio
    async def test_provider_parses_json_content(self, mock_settings, analysis_request, mock_openai_response):
        provider = OpenAIAnalysisProvider(settings=mock_settings)
        create = AsyncMock(return_value=_completion(json.dumps(mock_openai_response)))

        with patch.object(provider._client.chat.completions, "create", create):
            outcome = await provider.analyze(analysis_request)

        assert outcome.ok
        assert outcome.provider == "openai"
        assert outcome.result.headline == "Good bones, one loose brick"
        assert len(outcome.result.insights) == 2

        kwargs = create.call_args.kwargs
        assert kwargs["model"] == "gpt-4o-mini"
        assert kwargs["max_tokens"] == 800
        assert kwargs["temperature"] == 0.3
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": SYSTEM_PROMPT}
        assert "Net Worth:" in kwargs["messages"][1]["content"]

    @pytest.mark.anyio
    async def test_provider_tags_api_timeout_as_transport(self, mock_settings, analysis_request):
        provider = OpenAIAnalysisProvider(settings=mock_settings)
        error = APITimeoutError(request=httpx.Request("POST", "https://api.openai.com/v1/chat/completions"))

        with patch.object(provider._client.chat.completions, "create", AsyncMock(side_effect=error)):
            outcome = await provider.analyze(analysis_request)

        assert outcome.failure is AnalysisFailure.TRANSPORT
        assert outcome.result_or_fallback().headline == "Analysis unavailable"

    @pytest.mark.anyio
    async def test_provider_tags_prose_as_invalid_json(self, mock_settings, analysis_request):
        provider = OpenAIAnalysisProvider(settings=mock_settings)

        with patch.object(
            provider._client.chat.completions,
            "create",
            AsyncMock(return_value=_completion("You are doing fine.")),
        ):
            outcome = await provider.analyze(analysis_request)

        assert outcome.failure is AnalysisFailure.INVALID_JSON

    @pytest.mark.anyio
    async def test_provider_handles_empty_content(self, mock_settings, analysis_request):
        provider = OpenAIAnalysisProvider(settings=mock_settings)

        with patch.object(
            provider._client.chat.completions,
            "create",
            AsyncMock(return_value=_completion(None)),
        ):
            outcome = await provider.analyze(analysis_request)

        assert outcome.failure is AnalysisFailure.INVALID_JSON


class TestOpenAIAnalysisProviderWithoutSettings:
    @pytest.mark.anyio
    async def test_provider_reports_not_configured(self, analysis_request):
        provider = OpenAIAnalysisProvider(settings=None)

        outcome = await provider.analyze(analysis_request)

        assert outcome.failure is AnalysisFailure.NOT_CONFIGURED
        assert "OpenAI client not configured" in outcome.detail
