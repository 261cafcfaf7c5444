from __future__ import annotations

"""
Shared helpers for configuring the pluggable analysis providers.

The dashboard and its tests rely on the same set of environment variables to
determine which provider produces commentary and how outbound calls should be
tuned. Loading and validating those settings in one place ensures that every
provider implementation (HTTP endpoint, OpenAI, offline) receives consistent
timeouts, temperature, and token limits without duplicating parsing logic.
"""

import os
from dataclasses import dataclass
from typing import Optional

SUPPORTED_PROVIDERS = frozenset({"http", "openai", "deterministic", "mock"})
REQUIRED_OPENAI_ENV_VARS = ("OPENAI_API_KEY", "OPENAI_MODEL", "OPENAI_API_BASE")

DEFAULT_ANALYSIS_API_BASE = "http://localhost:8000"
DEFAULT_ANALYSIS_API_PATH = "/api/analyze"
DEFAULT_ANALYSIS_MODEL = "claude-sonnet-4-20250514"


class ProviderSettingsError(RuntimeError):
    """Raised when provider configuration cannot be constructed."""


@dataclass(frozen=True, slots=True)
class OpenAIConfig:
    api_key: str
    model: str
    api_base: str


@dataclass(frozen=True, slots=True)
class HttpEndpointConfig:
    api_base: str
    api_path: str
    model: str

    @property
    def url(self) -> str:
        return f"{self.api_base}{self.api_path}"


@dataclass(frozen=True, slots=True)
class ProviderSettings:
    provider_name: str
    timeout_seconds: Optional[float]
    temperature: float
    max_output_tokens: int
    max_attempts: int = 1
    http: Optional[HttpEndpointConfig] = None
    openai: Optional[OpenAIConfig] = None


def load_provider_settings(
    *,
    provider_env: str = "ANALYSIS_PROVIDER",
    timeout_env: str = "ANALYSIS_PROVIDER_TIMEOUT_SECONDS",
    temperature_env: str = "ANALYSIS_PROVIDER_TEMPERATURE",
    max_tokens_env: str = "ANALYSIS_PROVIDER_MAX_TOKENS",
    max_attempts_env: str = "ANALYSIS_PROVIDER_MAX_ATTEMPTS",
    default_provider: str = "http",
    default_timeout: Optional[float] = None,
    default_temperature: float = 0.7,
    default_max_tokens: int = 1000,
    default_max_attempts: int = 1,
) -> ProviderSettings:
    """
    Construct ProviderSettings for the analysis provider stack.

    A missing timeout means no client-side timeout is enforced; the transport's
    own failure signaling decides when a request gives up.

    Args:
        provider_env: Env var that selects the provider implementation.
        timeout_env: Env var that overrides outbound request timeouts.
        temperature_env: Env var that tunes generation randomness.
        max_tokens_env: Env var that caps model responses.
        max_attempts_env: Env var that allows retrying retryable HTTP failures.
        default_*: Fallback values when the env var is unset/empty.
    """

    provider_name = _normalize_provider(os.getenv(provider_env), default_provider)
    timeout_seconds = parse_float(os.getenv(timeout_env), default_timeout, timeout_env)
    temperature = parse_float(os.getenv(temperature_env), default_temperature, temperature_env)
    max_output_tokens = parse_int(os.getenv(max_tokens_env), default_max_tokens, max_tokens_env)
    max_attempts = parse_int(os.getenv(max_attempts_env), default_max_attempts, max_attempts_env)

    if max_attempts < 1:
        raise ProviderSettingsError(f"{max_attempts_env} must be at least 1 (received {max_attempts})")

    http_config: Optional[HttpEndpointConfig] = None
    openai_config: Optional[OpenAIConfig] = None
    if provider_name == "http":
        http_config = _build_http_config()
    elif provider_name == "openai":
        openai_config = _build_openai_config(provider_env)

    return ProviderSettings(
        provider_name=provider_name,
        timeout_seconds=timeout_seconds,
        temperature=temperature,
        max_output_tokens=max_output_tokens,
        max_attempts=max_attempts,
        http=http_config,
        openai=openai_config,
    )


def parse_float(raw_value: Optional[str], default, env_key: str):
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        return float(raw_value)
    except ValueError as exc:
        raise ProviderSettingsError(f"{env_key} must be numeric (received '{raw_value}')") from exc


def parse_int(raw_value: Optional[str], default: int, env_key: str) -> int:
    if raw_value is None or raw_value.strip() == "":
        return default

    try:
        return int(raw_value)
    except ValueError as exc:
        raise ProviderSettingsError(f"{env_key} must be an integer (received '{raw_value}')") from exc


def _normalize_provider(raw_value: Optional[str], default_provider: str) -> str:
    candidate = (raw_value or "").strip().lower()
    if not candidate:
        candidate = default_provider

    if candidate not in SUPPORTED_PROVIDERS:
        raise ProviderSettingsError(f"Unsupported provider '{candidate}'")
    return candidate


def _build_http_config() -> HttpEndpointConfig:
    api_base = (os.getenv("ANALYSIS_API_BASE") or DEFAULT_ANALYSIS_API_BASE).strip().rstrip("/")
    if not api_base.startswith(("http://", "https://")):
        api_base = f"http://{api_base}"

    api_path = (os.getenv("ANALYSIS_API_PATH") or DEFAULT_ANALYSIS_API_PATH).strip()
    if not api_path.startswith("/"):
        api_path = f"/{api_path}"

    return HttpEndpointConfig(
        api_base=api_base,
        api_path=api_path,
        model=(os.getenv("ANALYSIS_MODEL") or DEFAULT_ANALYSIS_MODEL).strip(),
    )


def _build_openai_config(provider_env: str) -> OpenAIConfig:
    missing = [env_key for env_key in REQUIRED_OPENAI_ENV_VARS if not os.getenv(env_key)]
    if missing:
        formatted_missing = ", ".join(missing)
        raise ProviderSettingsError(
            f"{provider_env}=openai requires the following env vars: {formatted_missing}"
        )

    return OpenAIConfig(
        api_key=os.environ["OPENAI_API_KEY"].strip(),
        model=os.environ["OPENAI_MODEL"].strip(),
        api_base=os.environ["OPENAI_API_BASE"].strip(),
    )
