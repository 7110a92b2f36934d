from __future__ import annotations

from typing import Any

import pytest
from opentelemetry.sdk.trace import TracerProvider

from rtsuite import observability


@pytest.fixture(autouse=True)
def reset_configured() -> None:
    observability._telemetry_configured["configured"] = False


@pytest.fixture
def installed(monkeypatch: pytest.MonkeyPatch) -> list[Any]:
    providers: list[Any] = []
    monkeypatch.setattr(observability.trace, "set_tracer_provider", providers.append)
    yield providers
    for provider in providers:
        provider.shutdown()


def test_configure_telemetry_console(installed: list[Any]) -> None:
    observability.configure_telemetry(service_name="rtsuite-test")

    assert len(installed) == 1
    provider = installed[0]
    assert isinstance(provider, TracerProvider)
    assert provider.resource.attributes["service.name"] == "rtsuite-test"
    assert observability._telemetry_configured["configured"] is True


def test_configure_telemetry_runs_once(installed: list[Any]) -> None:
    observability.configure_telemetry()
    observability.configure_telemetry()
    assert len(installed) == 1


def test_otlp_falls_back_to_console(
    monkeypatch: pytest.MonkeyPatch, installed: list[Any]
) -> None:
    monkeypatch.setattr(observability, "_load_otlp_exporter", lambda: None)
    observability.configure_telemetry(exporter="otlp")
    assert len(installed) == 1


def test_otlp_exporter_receives_endpoint(
    monkeypatch: pytest.MonkeyPatch, installed: list[Any]
) -> None:
    calls: dict[str, Any] = {}

    class DummyOTLPExporter:
        def __init__(self, endpoint: str | None = None) -> None:
            calls["endpoint"] = endpoint

        def export(self, spans: Any) -> Any:  # pragma: no cover - never flushed
            return None

        def shutdown(self) -> None:
            calls["shutdown"] = True

        def force_flush(self, timeout_millis: int = 30000) -> bool:  # pragma: no cover
            return True

    monkeypatch.setattr(observability, "_load_otlp_exporter", lambda: DummyOTLPExporter)
    observability.configure_telemetry(exporter="otlp", endpoint="https://otel")

    assert calls["endpoint"] == "https://otel"


def test_get_tracer_spans_work_without_sdk() -> None:
    tracer = observability.get_tracer()
    with tracer.start_as_current_span("rt.request") as span:
        span.set_attribute("rt.path", "ticket/1/show")
