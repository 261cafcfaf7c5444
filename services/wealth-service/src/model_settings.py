"""
Policy constants for the financial model, overridable through the environment.

The projection assumes a fixed nominal growth rate and that a fixed share of any
positive monthly surplus gets invested. The savings-rate status check compares
against a fixed target percentage.
"""

from __future__ import annotations

import os
from dataclasses import dataclass

from shared.provider_settings import ProviderSettingsError, parse_float

DEFAULT_ANNUAL_GROWTH_RATE = 0.07
DEFAULT_CONTRIBUTION_CAPTURE_RATE = 0.8
DEFAULT_SAVINGS_RATE_TARGET = 20.0
PROJECTION_YEARS = 5


class ModelSettingsError(ProviderSettingsError):
    """Raised when a financial model override is out of range."""


@dataclass(frozen=True, slots=True)
class ProjectionSettings:
    annual_growth_rate: float = DEFAULT_ANNUAL_GROWTH_RATE
    contribution_capture_rate: float = DEFAULT_CONTRIBUTION_CAPTURE_RATE
    savings_rate_target: float = DEFAULT_SAVINGS_RATE_TARGET
    years: int = PROJECTION_YEARS

    @property
    def monthly_growth_rate(self) -> float:
        return self.annual_growth_rate / 12


DEFAULT_PROJECTION_SETTINGS = ProjectionSettings()


def load_projection_settings(
    *,
    growth_env: str = "WEALTH_GROWTH_RATE",
    contribution_env: str = "WEALTH_CONTRIBUTION_RATE",
    target_env: str = "WEALTH_SAVINGS_RATE_TARGET",
) -> ProjectionSettings:
    growth = parse_float(os.getenv(growth_env), DEFAULT_ANNUAL_GROWTH_RATE, growth_env)
    contribution = parse_float(os.getenv(contribution_env), DEFAULT_CONTRIBUTION_CAPTURE_RATE, contribution_env)
    target = parse_float(os.getenv(target_env), DEFAULT_SAVINGS_RATE_TARGET, target_env)

    if growth <= -1:
        raise ModelSettingsError(f"{growth_env} must be greater than -1 (received {growth})")
    if not 0 <= contribution <= 1:
        raise ModelSettingsError(f"{contribution_env} must be between 0 and 1 (received {contribution})")

    return ProjectionSettings(
        annual_growth_rate=growth,
        contribution_capture_rate=contribution,
        savings_rate_target=target,
    )
