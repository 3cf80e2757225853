from __future__ import annotations

import os
from typing import Any

from opentelemetry import trace
from opentelemetry.sdk.resources import Resource
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.trace.export import ConsoleSpanExporter, SimpleSpanProcessor
from opentelemetry.sdk.trace.export.in_memory_span_exporter import InMemorySpanExporter

from bizdesk.context import module_from_path


SERVICE_VERSION = os.getenv("APP_VERSION", "0.1.0")

_state: dict[str, Any] = {"provider": None, "console": False}


def tracer_provider(service_name: str) -> TracerProvider:
    """Install the global SDK provider once and return it on later calls.

    The global provider can only be set once per process, so the first
    service name wins.
    """
    provider = _state["provider"]
    if provider is None:
        provider = TracerProvider(
            resource=Resource.create({"service.name": service_name, "service.version": SERVICE_VERSION})
        )
        trace.set_tracer_provider(provider)
        _state["provider"] = provider
    return provider


def setup_otel(service_name: str, enable: bool) -> TracerProvider | None:
    if not enable:
        return None
    provider = tracer_provider(service_name)
    if not _state["console"] and os.getenv("OTEL_CONSOLE_EXPORTER", "false").lower() == "true":
        provider.add_span_processor(SimpleSpanProcessor(ConsoleSpanExporter()))
        _state["console"] = True
    return provider


def setup_inmemory_otel(service_name: str = "bizdesk") -> InMemorySpanExporter:
    exporter = InMemorySpanExporter()
    tracer_provider(service_name).add_span_processor(SimpleSpanProcessor(exporter))
    return exporter


def get_tracer(name: str) -> trace.Tracer:
    # Proxy tracer: spans go to whichever provider is installed when they start.
    return trace.get_tracer(name)


def get_fastapi_server_request_hook():
    def server_request_hook(span, scope: dict[str, Any]) -> None:  # type: ignore[no-untyped-def]
        if span is None or not span.is_recording():
            return
        module = module_from_path(scope.get("path", ""))
        if module:
            span.set_attribute("bizdesk.module", module)
        for name, value in scope.get("headers", []):
            if name == b"x-correlation-id" and value:
                span.set_attribute("correlation_id", value.decode("utf-8"))
                break

    return server_request_hook

