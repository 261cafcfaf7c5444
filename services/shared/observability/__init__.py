"""
Shared observability helpers (telemetry, privacy utilities, etc.).

The dashboard and the domain service import from this package to enable
consistent instrumentation and logging guardrails.
"""

from .privacy import hash_payload, redact_fields
from .telemetry import (
    CORRELATION_ID_HEADER,
    RequestContextFilter,
    RequestContextToken,
    TelemetrySettings,
    bind_request_context,
    current_request_id,
    load_telemetry_settings,
    new_request_id,
    reset_request_context,
    setup_telemetry,
)

__all__ = [
    "hash_payload",
    "redact_fields",
    "CORRELATION_ID_HEADER",
    "RequestContextFilter",
    "RequestContextToken",
    "TelemetrySettings",
    "bind_request_context",
    "current_request_id",
    "load_telemetry_settings",
    "new_request_id",
    "reset_request_context",
    "setup_telemetry",
]
