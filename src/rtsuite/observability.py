"""Lightweight helpers for configuring OpenTelemetry exporters."""

from __future__ import annotations

import importlib
import logging
from functools import lru_cache
from typing import Any, Final

from opentelemetry import trace

_telemetry_configured: Final[dict[str, bool]] = {"configured": False}

SERVICE_NAME = "rtsuite"


@lru_cache(maxsize=1)
def _load_otlp_exporter() -> Any | None:
    try:  # pragma: no cover - optional exporter package
        module = importlib.import_module("opentelemetry.exporter.otlp.proto.http.trace_exporter")
    except ImportError:
        return None
    return module.OTLPSpanExporter


def get_tracer() -> trace.Tracer:
    return trace.get_tracer(SERVICE_NAME)


def configure_telemetry(
    *,
    service_name: str = SERVICE_NAME,
    exporter: str = "console",
    endpoint: str | None = None,
) -> None:
    """Install an SDK tracer provider once per process."""

    if _telemetry_configured["configured"]:
        return

    from opentelemetry.sdk.resources import Resource
    from opentelemetry.sdk.trace import TracerProvider
    from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter

    provider = TracerProvider(resource=Resource.create({"service.name": service_name}))

    span_exporter: Any = None
    if exporter.lower() == "otlp":
        otlp_cls = _load_otlp_exporter()
        if otlp_cls is None:
            logging.getLogger(__name__).warning(
                "OTLP exporter package not installed; using console exporter"
            )
        else:
            span_exporter = otlp_cls(endpoint=endpoint) if endpoint else otlp_cls()
    if span_exporter is None:
        span_exporter = ConsoleSpanExporter()

    provider.add_span_processor(BatchSpanProcessor(span_exporter))
    trace.set_tracer_provider(provider)
    _telemetry_configured["configured"] = True


__all__ = ["SERVICE_NAME", "configure_telemetry", "get_tracer"]
