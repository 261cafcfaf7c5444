"""
Tests for the endpoint-backed analysis provider.

httpx.MockTransport stands in for the analysis endpoint so request shape,
response parsing and failure tagging can be checked without network access.
"""

from __future__ import annotations

import json
from typing import Any, Dict

import httpx
import pytest

from analysis_provider import AnalysisFailure, AnalysisProviderRequest
from compute_metrics import compute_metrics
from providers.http_analysis import HttpAnalysisProvider, extract_response_text
from shared.provider_settings import HttpEndpointConfig, ProviderSettings
from wealth_model import FALLBACK_ANALYSIS

ANALYSIS_JSON = {
    "headline": "Steady climb, clear view",
    "insights": [
        {"title": "Strong savings rate", "body": "You save most of your income.", "type": "celebrate"},
        {"title": "Card above ceiling", "body": "Clear the excess.", "type": "warning"},
    ],
    "oneMove": "Pay the card down by $300.",
}


@pytest.fixture
def http_settings() -> ProviderSettings:
    return ProviderSettings(
        provider_name="http",
        timeout_seconds=None,
        temperature=0.7,
        max_output_tokens=1000,
        max_attempts=1,
        http=HttpEndpointConfig(
            api_base="https://wealth.example.org",
            api_path="/api/analyze",
            model="claude-sonnet-4-20250514",
        ),
    )


@pytest.fixture
def analysis_request(sample_form) -> AnalysisProviderRequest:
    return AnalysisProviderRequest(
        form=sample_form,
        metrics=compute_metrics(sample_form),
        request_id="req-analysis-1",
    )


def _content_response(text_parts: list[str]) -> Dict[str, Any]:
    return {"content": [{"type": "text", "text": part} for part in text_parts]}


@pytest.mark.anyio
async def test_posts_messages_body_and_parses_fragments(http_settings, analysis_request):
    captured: Dict[str, Any] = {}

    def handler(request: httpx.Request) -> httpx.Response:
        captured["url"] = str(request.url)
        captured["method"] = request.method
        captured["body"] = json.loads(request.content)
        captured["headers"] = dict(request.headers)
        text = "```json\n" + json.dumps(ANALYSIS_JSON) + "\n```"
        midpoint = len(text) // 2
        return httpx.Response(200, json=_content_response([text[:midpoint], text[midpoint:]]))

    provider = HttpAnalysisProvider(settings=http_settings, transport=httpx.MockTransport(handler))

    outcome = await provider.analyze(analysis_request)

    assert outcome.ok
    assert outcome.result.headline == "Steady climb, clear view"
    assert outcome.result.one_move == "Pay the card down by $300."
    assert captured["url"] == "https://wealth.example.org/api/analyze"
    assert captured["method"] == "POST"
    assert captured["body"]["model"] == "claude-sonnet-4-20250514"
    assert captured["body"]["max_tokens"] == 1000
    assert len(captured["body"]["messages"]) == 1
    assert captured["body"]["messages"][0]["role"] == "user"
    assert "Savings Rate:" in captured["body"]["messages"][0]["content"]
    assert captured["headers"]["x-request-id"] == "req-analysis-1"


@pytest.mark.anyio
async def test_non_json_model_text_yields_invalid_json(http_settings, analysis_request):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_content_response(["I think you're doing great!"]))

    provider = HttpAnalysisProvider(settings=http_settings, transport=httpx.MockTransport(handler))

    outcome = await provider.analyze(analysis_request)

    assert outcome.failure is AnalysisFailure.INVALID_JSON
    fallback = outcome.result_or_fallback()
    assert fallback.headline == "Analysis unavailable"
    assert [insight.type for insight in fallback.insights] == ["warning"]


@pytest.mark.anyio
async def test_non_json_response_body_yields_invalid_json(http_settings, analysis_request):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, text="<html>gateway</html>")

    provider = HttpAnalysisProvider(settings=http_settings, transport=httpx.MockTransport(handler))

    outcome = await provider.analyze(analysis_request)

    assert outcome.failure is AnalysisFailure.INVALID_JSON


@pytest.mark.anyio
async def test_wrong_shape_yields_invalid_structure(http_settings, analysis_request):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, json=_content_response([json.dumps({"headline": "only a headline"})]))

    provider = HttpAnalysisProvider(settings=http_settings, transport=httpx.MockTransport(handler))

    outcome = await provider.analyze(analysis_request)

    assert outcome.failure is AnalysisFailure.INVALID_STRUCTURE
    assert outcome.result is None


@pytest.mark.anyio
async def test_connection_error_yields_transport_failure(http_settings, analysis_request):
    def handler(request: httpx.Request) -> httpx.Response:
        raise httpx.ConnectError("connection refused", request=request)

    provider = HttpAnalysisProvider(settings=http_settings, transport=httpx.MockTransport(handler))

    outcome = await provider.analyze(analysis_request)

    assert outcome.failure is AnalysisFailure.TRANSPORT
    assert outcome.result_or_fallback() == FALLBACK_ANALYSIS


@pytest.mark.anyio
async def test_error_status_yields_transport_failure(http_settings, analysis_request):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        return httpx.Response(502, json={"error": "upstream"})

    provider = HttpAnalysisProvider(settings=http_settings, transport=httpx.MockTransport(handler))

    outcome = await provider.analyze(analysis_request)

    assert outcome.failure is AnalysisFailure.TRANSPORT
    assert calls == 1


@pytest.mark.anyio
async def test_missing_endpoint_config_is_not_configured(analysis_request):
    provider = HttpAnalysisProvider(settings=None)

    outcome = await provider.analyze(analysis_request)

    assert outcome.failure is AnalysisFailure.NOT_CONFIGURED


@pytest.mark.parametrize(
    "payload, expected",
    [
        ({"content": [{"text": "a"}, {"text": "b"}]}, "ab"),
        ({"content": [{"type": "tool_use"}, {"text": "b"}]}, "b"),
        ({"content": "oops"}, ""),
        ({}, ""),
        (["content"], ""),
    ],
)
def test_extract_response_text(payload, expected):
    assert extract_response_text(payload) == expected
