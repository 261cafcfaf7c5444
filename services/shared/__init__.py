
"""
Shared utilities for the wealth dashboard.

This package contains code shared between the domain service and the UI:
- provider_settings: Configuration for pluggable analysis providers
- observability: Telemetry, logging, and privacy utilities
"""

from .provider_settings import (
    SUPPORTED_PROVIDERS,
    REQUIRED_OPENAI_ENV_VARS,
    ProviderSettingsError,
    HttpEndpointConfig,
    OpenAIConfig,
    ProviderSettings,
    load_provider_settings,
)

__all__ = [
    "SUPPORTED_PROVIDERS",
    "REQUIRED_OPENAI_ENV_VARS",
    "ProviderSettingsError",
    "HttpEndpointConfig",
    "OpenAIConfig",
    "ProviderSettings",
    "load_provider_settings",
]
