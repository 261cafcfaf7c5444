"""
Logging and tracing bootstrap for the dashboard process.

Streamlit re-executes the app script on every interaction, so `setup_telemetry`
is idempotent: the JSON log handler is installed once per process and the
tracer provider once per interpreter. Each analysis request gets a correlation
ID that is attached to every log record emitted while it is bound, and sent as
the `x-request-id` header on outbound calls.
"""

from __future__ import annotations

import logging
import os
from contextvars import ContextVar, Token
from dataclasses import dataclass
from uuid import uuid4

from opentelemetry import trace
from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
from opentelemetry.instrumentation.httpx import HTTPXClientInstrumentor
from opentelemetry.sdk.resources import SERVICE_NAME, Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import BatchSpanProcessor
from pythonjsonlogger import jsonlogger

CORRELATION_ID_HEADER = "x-request-id"
DEFAULT_OTLP_ENDPOINT = "http://localhost:4318/v1/traces"
LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s %(message)s %(service_name)s %(request_id)s %(trace_id)s"

RequestContextToken = Token

_TRUTHY = {"1", "true", "yes", "on"}
_request_id_ctx_var: ContextVar[str | None] = ContextVar("analysis_request_id", default=None)
_handler: logging.Handler | None = None
_tracing_ready = False


@dataclass(frozen=True, slots=True)
class TelemetrySettings:
    service_name: str
    log_level: str = "INFO"
    tracing_enabled: bool = False
    otlp_endpoint: str = DEFAULT_OTLP_ENDPOINT


def load_telemetry_settings(service_name: str) -> TelemetrySettings:
    """Read LOG_LEVEL, ENABLE_TELEMETRY and the OTEL_* overrides."""
    return TelemetrySettings(
        service_name=os.getenv("OTEL_SERVICE_NAME") or service_name,
        log_level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
        tracing_enabled=(os.getenv("ENABLE_TELEMETRY") or "").strip().lower() in _TRUTHY,
        otlp_endpoint=os.getenv("OTEL_EXPORTER_OTLP_ENDPOINT") or DEFAULT_OTLP_ENDPOINT,
    )


def setup_telemetry(service_name: str) -> TelemetrySettings:
    settings = load_telemetry_settings(service_name)
    _install_json_handler(settings)
    if settings.tracing_enabled:
        _enable_tracing(settings)
    return settings


def new_request_id() -> str:
    return str(uuid4())


def bind_request_context(request_id: str | None) -> RequestContextToken:
    return _request_id_ctx_var.set(request_id)


def reset_request_context(token: RequestContextToken | None) -> None:
    if token is not None:
        _request_id_ctx_var.reset(token)


def current_request_id() -> str | None:
    return _request_id_ctx_var.get()


def _install_json_handler(settings: TelemetrySettings) -> None:
    global _handler
    root = logging.getLogger()
    root.setLevel(settings.log_level)
    if _handler is not None:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(jsonlogger.JsonFormatter(LOG_FORMAT))
    handler.addFilter(RequestContextFilter(settings.service_name))
    root.addHandler(handler)
    _handler = handler


def _enable_tracing(settings: TelemetrySettings) -> None:
    global _tracing_ready
    if _tracing_ready:
        return

    provider = TracerProvider(resource=Resource.create({SERVICE_NAME: settings.service_name}))
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=settings.otlp_endpoint)))
    trace.set_tracer_provider(provider)
    # Outbound analysis calls become spans; the active trace ID is added to logs.
    HTTPXClientInstrumentor().instrument()
    _tracing_ready = True


class RequestContextFilter(logging.Filter):
    """Stamp service name, analysis request ID and trace ID onto each record."""

    def __init__(self, service_name: str) -> None:
        super().__init__()
        self._service_name = service_name

    def filter(self, record: logging.LogRecord) -> bool:
        record.service_name = self._service_name
        record.request_id = _request_id_ctx_var.get()
        span_context = trace.get_current_span().get_span_context()
        record.trace_id = format(span_context.trace_id, "032x") if span_context.is_valid else None
        return True
