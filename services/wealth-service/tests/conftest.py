"""Pytest configuration for wealth-service tests.

Ensures the service's own src directory and the shared package are importable
without installing the project.
"""

import sys
from pathlib import Path

import pytest

SERVICE_SRC = Path(__file__).resolve().parents[1] / "src"
SERVICES_ROOT = Path(__file__).resolve().parents[2]

for path in (SERVICE_SRC, SERVICES_ROOT):
    if str(path) not in sys.path:
        sys.path.insert(0, str(path))

from wealth_model import InputRecord  # noqa: E402


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def sample_form() -> InputRecord:
    """A filled-in record for a salaried user with a healthy surplus."""
    return InputRecord(
        name="Sam",
        age="31",
        income="140000",
        frequency="annual",
        cash="15000",
        cash_floor="7000",
        credit_balance="2500",
        credit_target="2200",
        etfs="40000",
        crypto="5000",
        super="80000",
        property="0",
        other_assets="3000",
        rent="2400",
        utilities="200",
        groceries="600",
        dining="300",
        transport="150",
        health="100",
        subscriptions="50",
        personal="200",
        savings_invest="0",
        expense_frequency="monthly",
        has_equity=True,
        equity_value="60000",
        vesting_months="48",
        vested_months="12",
        company_valuation="20000000",
    )
