"""Tracing for generation turns.

``OBSERVABILITY`` selects the backend:

- ``logfire``: Pydantic Logfire, which also instruments FastAPI and every
  pydantic-ai model request (set ``LOGFIRE_TOKEN``);
- ``otel``: an OpenTelemetry tracer provider exporting over OTLP/HTTP;
- ``off``: nothing is traced.

Backends come from the ``observability`` extra and are imported lazily.
:func:`span` is what the rest of the package uses; it is a no-op context
manager until :func:`setup_telemetry` enabled a backend.
"""

from __future__ import annotations

from contextlib import AbstractContextManager, nullcontext

from fastapi import FastAPI
from loguru import logger

from codegen_assistant import __version__
from codegen_assistant.config import Settings

TRACER_NAME = "codegen_assistant"
MODES = ("off", "logfire", "otel")

_active_mode = "off"


def setup_telemetry(app: FastAPI, settings: Settings) -> str:
    """Enable the configured backend and return the mode actually in effect."""
    global _active_mode

    mode = settings.observability.lower()
    if mode not in MODES:
        logger.warning("Unknown observability mode, tracing stays off | mode={}", mode)
        mode = "off"

    if mode == "logfire":
        import logfire

        logfire.configure(service_name=settings.otel_service_name, service_version=__version__)
        logfire.instrument_fastapi(app)
        logfire.instrument_pydantic_ai()
    elif mode == "otel":
        _install_otel_provider(app, settings)

    _active_mode = mode
    logger.info("Tracing configured | mode={} | service={}", mode, settings.otel_service_name)
    return mode


def _install_otel_provider(app: FastAPI, settings: Settings) -> None:
    from opentelemetry import trace
    from opentelemetry.exporter.otlp.proto.http.trace_exporter import OTLPSpanExporter
    from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor
    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter, SimpleSpanProcessor

    provider = TracerProvider(
        resource=Resource.create({"service.name": settings.otel_service_name, "service.version": __version__})
    )
    endpoint = settings.otel_exporter_otlp_endpoint.rstrip("/") + "/v1/traces"
    provider.add_span_processor(BatchSpanProcessor(OTLPSpanExporter(endpoint=endpoint)))
    if settings.otel_console_exporter:
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))

    trace.set_tracer_provider(provider)
    FastAPIInstrumentor.instrument_app(app)


def is_observability_active(settings: Settings) -> bool:
    return settings.observability.lower() in ("logfire", "otel")


def get_instrumentation_settings(settings: Settings):
    """``instrument`` argument for pydantic-ai model requests; ``None`` when tracing is off."""
    if not is_observability_active(settings):
        return None

    from pydantic_ai.models.instrumented import InstrumentationSettings

    return InstrumentationSettings()


def span(name: str, **attributes: str | int) -> AbstractContextManager:
    """A span on the active backend, e.g. ``with span("generation turn", project_id="42"):``."""
    if _active_mode == "logfire":
        import logfire

        return logfire.span(name, **attributes)
    if _active_mode == "otel":
        from opentelemetry import trace

        return trace.get_tracer(TRACER_NAME).start_as_current_span(name, attributes=attributes)
    return nullcontext()
