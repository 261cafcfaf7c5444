from __future__ import annotations

import math
import re
from typing import Any

from model_settings import DEFAULT_PROJECTION_SETTINGS, ProjectionSettings
from wealth_model import EXPENSE_FIELDS, DerivedMetrics, InputRecord, ProjectionPoint

# Approximate number of expense periods per month.
EXPENSE_FREQUENCY_FACTORS: dict[str, float] = {
    "weekly": 4.33,
    "fortnightly": 2.17,
    "monthly": 1.0,
}

HOLDING_LABELS: tuple[tuple[str, str], ...] = (
    ("etfs", "ETFs"),
    ("crypto", "Crypto"),
    ("super", "Super"),
    ("property", "Property"),
    ("other_assets", "Other"),
)

_LEADING_FLOAT = re.compile(r"^\s*[+-]?(?:\d+\.?\d*|\.\d+)(?:[eE][+-]?\d+)?")


def coerce_amount(value: Any) -> float:
    """
    Parse a user-entered amount, substituting zero for anything unusable.

    Strings are read up to the first character that cannot continue a number,
    so "1200 per month" is 1200.0 and "abc" is 0.0.
    """
    if isinstance(value, bool) or value is None:
        return 0.0
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        match = _LEADING_FLOAT.match(str(value))
        if match is None:
            return 0.0
        number = float(match.group(0))
    return number if math.isfinite(number) else 0.0


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def format_currency(amount: float) -> str:
    return f"${round_half_up(amount):,}"


def format_percent(value: float) -> str:
    return f"{value:.1f}%"


def monthly_income(record: InputRecord) -> float:
    income = coerce_amount(record.income)
    if record.frequency == "annual":
        return income / 12
    if record.frequency == "fortnightly":
        return income * 26 / 12
    return income


def monthly_expenses(record: InputRecord) -> float:
    total = sum(coerce_amount(getattr(record, name)) for name in EXPENSE_FIELDS)
    return total * EXPENSE_FREQUENCY_FACTORS.get(record.expense_frequency, 1.0)


def savings_rate(income: float, surplus: float) -> float:
    if income <= 0:
        return 0.0
    return surplus / income * 100


def vesting_progress(record: InputRecord) -> float:
    vesting = coerce_amount(record.vesting_months)
    if vesting == 0:
        return 0.0
    return coerce_amount(record.vested_months) / vesting


def project_portfolio(
    principal: float,
    surplus: float,
    settings: ProjectionSettings = DEFAULT_PROJECTION_SETTINGS,
) -> tuple[ProjectionPoint, ...]:
    """
    Future value of the liquid portfolio for years 0..settings.years.

    Each year compounds the starting principal monthly and adds an annuity of
    the invested share of any positive surplus. A negative surplus contributes
    nothing; it never withdraws.

    Args:
        principal: Starting invested balance (ETFs + crypto).
        surplus: Monthly surplus; only the positive part is invested.
        settings: Growth and contribution assumptions.
    Returns:
        One ProjectionPoint per year, values rounded to whole currency units.
    """
    rate = settings.monthly_growth_rate
    contribution = max(0.0, surplus) * settings.contribution_capture_rate

    points: list[ProjectionPoint] = []
    for year in range(settings.years + 1):
        months = year * 12
        growth = (1 + rate) ** months
        annuity_factor = (growth - 1) / rate if rate != 0 else float(months)
        value = principal * growth + contribution * annuity_factor
        points.append(ProjectionPoint(year=year, value=round_half_up(value)))
    return tuple(points)


def compute_holdings(record: InputRecord) -> tuple[tuple[str, float], ...]:
    holdings = []
    for name, label in HOLDING_LABELS:
        amount = coerce_amount(getattr(record, name))
        if amount > 0:
            holdings.append((label, amount))
    return tuple(holdings)


def compute_metrics(
    record: InputRecord,
    settings: ProjectionSettings | None = None,
) -> DerivedMetrics:
    """
    Derive every dashboard figure from the raw input record.

    Args:
        record: InputRecord exactly as entered; each numeric field is coerced independently.
        settings: Projection and status assumptions; defaults to the built-in policy.
    Returns:
        DerivedMetrics for display. Nothing is cached or persisted.
    Assumptions:
        Pure; unset thresholds never raise an alarm and zero denominators yield zero.
    """
    settings = settings or DEFAULT_PROJECTION_SETTINGS

    income = monthly_income(record)
    expenses = monthly_expenses(record)
    surplus = income - expenses
    rate = savings_rate(income, surplus)

    cash = coerce_amount(record.cash)
    etfs = coerce_amount(record.etfs)
    crypto = coerce_amount(record.crypto)
    credit_balance = coerce_amount(record.credit_balance)

    liquid = cash + etfs + crypto
    illiquid = (
        coerce_amount(record.super)
        + coerce_amount(record.property)
        + coerce_amount(record.other_assets)
    )

    cash_floor = coerce_amount(record.cash_floor)
    credit_target = coerce_amount(record.credit_target)

    equity_value = coerce_amount(record.equity_value)
    progress = vesting_progress(record)

    return DerivedMetrics(
        monthly_income=income,
        monthly_expenses=expenses,
        surplus=surplus,
        savings_rate=rate,
        liquid_total=liquid,
        illiquid_total=illiquid,
        net_worth=liquid + illiquid - credit_balance,
        equity_value=equity_value,
        vested_equity_value=equity_value * progress,
        vesting_progress=progress,
        cash_ok=cash_floor == 0 or cash >= cash_floor,
        credit_ok=credit_target == 0 or credit_balance <= credit_target,
        rate_ok=rate >= settings.savings_rate_target,
        projection=project_portfolio(etfs + crypto, surplus, settings),
        holdings=compute_holdings(record),
    )
