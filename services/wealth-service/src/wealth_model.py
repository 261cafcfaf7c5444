from __future__ import annotations

from dataclasses import dataclass, field, fields, replace
from typing import Any, Literal, Mapping

IncomeFrequency = Literal["annual", "monthly", "fortnightly"]
PeriodFrequency = Literal["weekly", "fortnightly", "monthly"]
InsightType = Literal["celebrate", "warning", "opportunity"]

INSIGHT_TYPES: tuple[str, ...] = ("celebrate", "warning", "opportunity")

EXPENSE_FIELDS: tuple[str, ...] = (
    "rent",
    "utilities",
    "groceries",
    "dining",
    "transport",
    "health",
    "subscriptions",
    "personal",
    "savings_invest",
)

# Attribute name -> key used in the persisted snapshot. Fields not listed use
# their attribute name.
SNAPSHOT_KEYS: dict[str, str] = {
    "cash_floor": "cashFloor",
    "credit_balance": "creditBalance",
    "credit_target": "creditTarget",
    "has_equity": "hasEquity",
    "equity_value": "equityValue",
    "vesting_months": "vestingMonths",
    "vested_months": "vestedMonths",
    "company_valuation": "companyVal",
    "next_payday": "nextPayday",
    "pay_frequency": "payFrequency",
    "expense_frequency": "expenseFrequency",
}


TRUTHY_STRINGS = frozenset({"true", "1", "yes", "on"})


class UnknownFieldError(KeyError):
    """Raised when a caller tries to update a field the input record does not have."""


@dataclass(frozen=True)
class InputRecord:
    """
    Everything the user typed into the setup screen.

    Values are kept exactly as entered (strings) and coerced to numbers only
    when metrics are computed, so partially filled forms survive a round trip.
    """

    # Identity and income
    name: str = ""
    age: str = ""
    income: str = ""
    frequency: str = "annual"
    currency: str = "AUD"

    # Cash and credit
    cash: str = ""
    cash_floor: str = ""
    credit_balance: str = ""
    credit_target: str = ""

    # Assets
    etfs: str = ""
    crypto: str = ""
    super: str = ""
    property: str = ""
    other_assets: str = ""

    # Expenses, all entered at expense_frequency
    rent: str = ""
    utilities: str = ""
    groceries: str = ""
    dining: str = ""
    transport: str = ""
    health: str = ""
    subscriptions: str = ""
    personal: str = ""
    savings_invest: str = ""
    expense_frequency: str = "monthly"

    # Equity
    has_equity: bool = False
    equity_value: str = ""
    vesting_months: str = "48"
    vested_months: str = ""
    company_valuation: str = ""

    # Pay schedule (informational only)
    next_payday: str = ""
    pay_frequency: str = "fortnightly"

    @classmethod
    def field_names(cls) -> tuple[str, ...]:
        return tuple(item.name for item in fields(cls))

    def with_field(self, name: str, value: Any) -> "InputRecord":
        if name not in self.field_names():
            raise UnknownFieldError(name)
        return replace(self, **{name: _normalize_value(name, value)})

    def to_mapping(self) -> dict[str, Any]:
        return {SNAPSHOT_KEYS.get(name, name): getattr(self, name) for name in self.field_names()}

    @classmethod
    def from_mapping(cls, payload: Mapping[str, Any]) -> "InputRecord":
        """
        Rebuild a record from snapshot keys (or attribute names).

        Missing keys keep their defaults and unknown keys are ignored, so older
        snapshots keep loading as the form grows.
        """
        values: dict[str, Any] = {}
        for name in cls.field_names():
            snapshot_key = SNAPSHOT_KEYS.get(name, name)
            if snapshot_key in payload:
                values[name] = _normalize_value(name, payload[snapshot_key])
            elif name in payload:
                values[name] = _normalize_value(name, payload[name])
        return cls(**values)


def _normalize_value(name: str, value: Any) -> Any:
    if name == "has_equity":
        if isinstance(value, str):
            return value.strip().lower() in TRUTHY_STRINGS
        return bool(value)
    if value is None:
        return ""
    return value if isinstance(value, str) else str(value)


@dataclass(frozen=True)
class Insight:
    title: str
    body: str
    type: InsightType


@dataclass(frozen=True)
class AnalysisResult:
    headline: str
    insights: tuple[Insight, ...] = ()
    one_move: str = ""

    def to_mapping(self) -> dict[str, Any]:
        return {
            "headline": self.headline,
            "insights": [
                {"title": insight.title, "body": insight.body, "type": insight.type}
                for insight in self.insights
            ],
            "oneMove": self.one_move,
        }


FALLBACK_ANALYSIS = AnalysisResult(
    headline="Analysis unavailable",
    insights=(
        Insight(
            title="Connection lost",
            body="Could not reach the analysis service.",
            type="warning",
        ),
    ),
    one_move="Try again.",
)


@dataclass(frozen=True)
class ProjectionPoint:
    year: int
    value: int


@dataclass(frozen=True)
class DerivedMetrics:
    monthly_income: float
    monthly_expenses: float
    surplus: float
    savings_rate: float
    liquid_total: float
    illiquid_total: float
    net_worth: float
    equity_value: float
    vested_equity_value: float
    vesting_progress: float
    cash_ok: bool
    credit_ok: bool
    rate_ok: bool
    projection: tuple[ProjectionPoint, ...] = ()
    holdings: tuple[tuple[str, float], ...] = field(default_factory=tuple)

    def projected_value(self, year: int) -> int:
        for point in self.projection:
            if point.year == year:
                return point.value
        return 0
