from __future__ import annotations

"""
Provider abstraction for dashboard commentary.

This module defines the request/response contract that the HTTP endpoint,
OpenAI, offline and fixture-backed providers all satisfy. Providers accept the
current input record plus its derived metrics and return a tagged outcome that
carries either a parsed AnalysisResult or the reason none is available; they
never raise for transport or parse failures.
"""

import json
import logging
import os
import re
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Protocol, runtime_checkable

from pydantic import ValidationError
from shared.observability.privacy import hash_payload, redact_fields

from analysis_schema import AnalysisPayloadModel
from compute_metrics import coerce_amount, format_currency, format_percent
from wealth_model import FALLBACK_ANALYSIS, AnalysisResult, DerivedMetrics, InputRecord, Insight

logger = logging.getLogger(__name__)

SAFE_FORM_KEYS = frozenset({"frequency", "currency", "expenseFrequency", "payFrequency", "hasEquity"})

_CODE_FENCE = re.compile(r"```json|```")

PROMPT_INSTRUCTIONS = (
    'Give 3 insights as JSON. Each has "title" (3-5 words), "body" (2 sentences max), '
    '"type" (celebrate/warning/opportunity). Add "oneMove": single most important action. '
    'Add "headline": poetic 4-6 word summary.\n\n'
    'ONLY valid JSON: {"headline":"...","insights":[...],"oneMove":"..."}'
)


class AnalysisFailure(str, Enum):
    """Why an analysis request produced no usable result."""

    TRANSPORT = "transport"
    INVALID_JSON = "invalid_json"
    INVALID_STRUCTURE = "invalid_structure"
    NOT_CONFIGURED = "not_configured"
    IN_FLIGHT = "in_flight"


class AnalysisParseError(ValueError):
    def __init__(self, failure: AnalysisFailure, message: str):
        super().__init__(message)
        self.failure = failure


@dataclass(slots=True)
class AnalysisProviderRequest:
    """
    Contract for analysis inputs.

    Attributes:
        form: InputRecord as entered by the user.
        metrics: DerivedMetrics computed for the same record.
        request_id: Correlation ID forwarded to outbound calls.
        context: Optional metadata (surface, locale) providers may use.
    """

    form: InputRecord
    metrics: DerivedMetrics
    request_id: str = ""
    context: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True, slots=True)
class AnalysisOutcome:
    """Either a parsed AnalysisResult or a tagged failure, never both."""

    provider: str
    result: Optional[AnalysisResult] = None
    failure: Optional[AnalysisFailure] = None
    detail: str = ""

    @property
    def ok(self) -> bool:
        return self.result is not None

    @classmethod
    def success(cls, provider: str, result: AnalysisResult) -> "AnalysisOutcome":
        return cls(provider=provider, result=result)

    @classmethod
    def failed(cls, provider: str, failure: AnalysisFailure, detail: str = "") -> "AnalysisOutcome":
        return cls(provider=provider, failure=failure, detail=detail)

    def result_or_fallback(self) -> AnalysisResult:
        return self.result if self.result is not None else FALLBACK_ANALYSIS


@runtime_checkable
class AnalysisProvider(Protocol):
    """
    Interface for swappable commentary generators.

    Implementations provide a descriptive `name` attribute and an async
    `analyze` method that resolves to an AnalysisOutcome.
    """

    name: str

    async def analyze(self, request: AnalysisProviderRequest) -> AnalysisOutcome:
        """Produce commentary for the provided record and metrics."""
        ...


def build_analysis_prompt(form: InputRecord, metrics: DerivedMetrics) -> str:
    """Render the advisor prompt embedding the current numbers."""
    lines = [
        "You're a thoughtful, direct financial advisor. Analyze this wealth system. "
        "Be genuinely helpful. No fluff.",
        "",
        f"{form.name}, {form.age}",
        f"Income: {format_currency(metrics.monthly_income)}/month",
        f"Expenses: {format_currency(metrics.monthly_expenses)}/month",
        f"Surplus: {format_currency(metrics.surplus)}/month",
        f"Savings Rate: {format_percent(metrics.savings_rate)}",
        f"Cash: {format_currency(coerce_amount(form.cash))} "
        f"(floor: {format_currency(coerce_amount(form.cash_floor))})",
        f"Credit: {format_currency(coerce_amount(form.credit_balance))} "
        f"(target: ≤{format_currency(coerce_amount(form.credit_target))})",
        f"Assets: ETFs {format_currency(coerce_amount(form.etfs))}, "
        f"Crypto {format_currency(coerce_amount(form.crypto))}, "
        f"Super {format_currency(coerce_amount(form.super))}",
    ]
    if form.has_equity:
        lines.append(
            f"Equity: {format_currency(metrics.equity_value)} "
            f"({form.vested_months}/{form.vesting_months} months vested)"
        )
    lines.append(f"Net Worth: {format_currency(metrics.net_worth)}")
    lines.append("")
    lines.append(PROMPT_INSTRUCTIONS)
    return "\n".join(lines)


def parse_analysis_text(text: str) -> AnalysisResult:
    """
    Parse model output into an AnalysisResult.

    Code-fence markers are removed wherever they appear before decoding.

    Raises:
        AnalysisParseError: tagged INVALID_JSON or INVALID_STRUCTURE.
    """
    cleaned = _CODE_FENCE.sub("", text or "").strip()
    try:
        parsed = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise AnalysisParseError(AnalysisFailure.INVALID_JSON, str(exc)) from exc

    try:
        return AnalysisPayloadModel.model_validate(parsed).to_result()
    except ValidationError as exc:
        raise AnalysisParseError(
            AnalysisFailure.INVALID_STRUCTURE,
            f"{exc.error_count()} validation error(s)",
        ) from exc


class DeterministicAnalysisProvider:
    """
    Offline provider that turns the status checks into rule-based commentary.

    Useful when no model endpoint is reachable; it mirrors the response shape
    of the model-backed providers.
    """

    name = "deterministic"

    async def analyze(self, request: AnalysisProviderRequest) -> AnalysisOutcome:
        result = build_rule_based_analysis(request.form, request.metrics)
        _log_analysis_metrics(self.name, request, result)
        return AnalysisOutcome.success(self.name, result)


class MockAnalysisProvider:
    """
    Fixture-driven provider suitable for tests or offline demos.
    """

    name = "mock"

    def __init__(self, fixture_path: str | Path | None = None):
        env_override = os.getenv("ANALYSIS_PROVIDER_FIXTURE")
        candidate = fixture_path or env_override
        if candidate is None:
            candidate = _default_fixture_path()

        self._fixture_path = Path(candidate)
        if not self._fixture_path.exists():
            raise FileNotFoundError(
                f"Mock analysis provider fixture not found at {self._fixture_path}"
            )

    async def analyze(self, request: AnalysisProviderRequest) -> AnalysisOutcome:
        try:
            result = parse_analysis_text(self._fixture_path.read_text())
        except AnalysisParseError as exc:
            logger.error(
                {
                    "event": "mock_fixture_invalid",
                    "provider": self.name,
                    "failure": exc.failure.value,
                    "fixture": str(self._fixture_path),
                }
            )
            return AnalysisOutcome.failed(self.name, exc.failure, str(exc))

        _log_analysis_metrics(self.name, request, result)
        return AnalysisOutcome.success(self.name, result)


def build_rule_based_analysis(form: InputRecord, metrics: DerivedMetrics) -> AnalysisResult:
    insights: list[Insight] = []

    if not metrics.cash_ok:
        shortfall = coerce_amount(form.cash_floor) - coerce_amount(form.cash)
        insights.append(
            Insight(
                title="Cash below your floor",
                body=(
                    f"You're {format_currency(shortfall)} under your buffer. "
                    "Refill it before anything moves to investments."
                ),
                type="warning",
            )
        )

    if not metrics.credit_ok:
        excess = coerce_amount(form.credit_balance) - coerce_amount(form.credit_target)
        insights.append(
            Insight(
                title="Credit above your ceiling",
                body=f"Your card is {format_currency(excess)} over target. Clear the excess this cycle.",
                type="warning",
            )
        )

    if metrics.rate_ok:
        insights.append(
            Insight(
                title="Strong savings rate",
                body=(
                    f"You keep {format_percent(metrics.savings_rate)} of what you earn. "
                    "Consistency from here does the heavy lifting."
                ),
                type="celebrate",
            )
        )
    elif metrics.surplus > 0:
        insights.append(
            Insight(
                title="Room to save more",
                body=(
                    f"Your savings rate is {format_percent(metrics.savings_rate)}. "
                    "Trimming one flexible category gets you closer to 20%."
                ),
                type="opportunity",
            )
        )
    else:
        insights.append(
            Insight(
                title="Spending exceeds income",
                body=(
                    f"You're short {format_currency(-metrics.surplus)} a month. "
                    "Start with the largest flexible expense."
                ),
                type="warning",
            )
        )

    if metrics.surplus > 0 and len(insights) < 3:
        five_year = metrics.projected_value(5)
        insights.append(
            Insight(
                title="Let the surplus work",
                body=(
                    f"Investing most of your {format_currency(metrics.surplus)} monthly surplus "
                    f"projects to about {format_currency(five_year)} in five years."
                ),
                type="opportunity",
            )
        )

    if form.has_equity and metrics.vested_equity_value > 0 and len(insights) < 3:
        insights.append(
            Insight(
                title="Equity is vesting",
                body=(
                    f"{format_currency(metrics.vested_equity_value)} has vested so far. "
                    "Treat it as upside, not as your plan."
                ),
                type="celebrate",
            )
        )

    warnings = [insight for insight in insights if insight.type == "warning"]
    if warnings:
        one_move = f"Fix this first: {warnings[0].title.lower()}."
        headline = "Steady the foundation first"
    elif metrics.surplus > 0:
        one_move = "Automate the transfer of your surplus on payday."
        headline = "The system is working quietly"
    else:
        one_move = "Track every expense for one pay cycle."
        headline = "Every journey starts somewhere"

    return AnalysisResult(headline=headline, insights=tuple(insights[:3]), one_move=one_move)


def _default_fixture_path() -> Path:
    service_root = Path(__file__).resolve().parents[1]
    return service_root / "tests" / "fixtures" / "mock_analysis_provider.json"


def build_analysis_provider(
    name: str | None,
    *,
    settings: Optional[Any] = None,
) -> AnalysisProvider:
    """
    Factory that instantiates the requested analysis provider implementation.
    """

    normalized = (name or "").strip().lower()
    if normalized in ("", "http"):
        from providers.http_analysis import HttpAnalysisProvider

        return HttpAnalysisProvider(settings=settings)
    if normalized == "deterministic":
        return DeterministicAnalysisProvider()
    if normalized == "mock":
        return MockAnalysisProvider()
    if normalized == "openai":
        # Import lazily so the OpenAI SDK is only loaded when selected
        from providers.openai_analysis import OpenAIAnalysisProvider

        return OpenAIAnalysisProvider(settings=settings)

    raise ValueError(f"Unsupported analysis provider '{name}'")


def _log_analysis_metrics(
    provider_name: str,
    request: AnalysisProviderRequest,
    result: AnalysisResult,
) -> None:
    logger.info(
        {
            "event": "analysis_provider_output",
            "provider": provider_name,
            "request_id": request.request_id,
            "insight_count": len(result.insights),
            "insight_types": [insight.type for insight in result.insights],
            "result_hash": hash_payload(result),
            "form_hash": hash_payload(request.form),
            "form_snapshot": redact_fields(request.form.to_mapping(), SAFE_FORM_KEYS),
        }
    )


def _log_analysis_failure(
    provider_name: str,
    request: AnalysisProviderRequest,
    failure: AnalysisFailure,
    detail: str,
) -> None:
    logger.error(
        {
            "event": "analysis_provider_failure",
            "provider": provider_name,
            "request_id": request.request_id,
            "failure": failure.value,
            "error_message": detail,
        }
    )
