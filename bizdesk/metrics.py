from __future__ import annotations

import re

from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest
from starlette.requests import Request


http_requests_total = Counter(
    "bizdesk_http_requests_total",
    "Total HTTP requests",
    ["method", "path", "status"],
)

http_request_duration_seconds = Histogram(
    "bizdesk_http_request_duration_seconds",
    "HTTP request duration in seconds",
    ["method", "path"],
)

config_mutations_total = Counter(
    "bizdesk_config_mutations_total",
    "Module configuration mutations by outcome",
    ["module", "operation", "status"],
)

config_fallback_total = Counter(
    "bizdesk_config_fallback_total",
    "Configuration loads that fell back to built-in defaults",
    ["module"],
)

exports_total = Counter(
    "bizdesk_exports_total",
    "Exports by format and outcome",
    ["module", "format", "status"],
)

bulk_delete_items_total = Counter(
    "bizdesk_bulk_delete_items_total",
    "Items processed by bulk deletes",
    ["module", "status"],
)


_UUID_RE = re.compile(
    r"\b[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[1-5][0-9a-fA-F]{3}-[89abAB][0-9a-fA-F]{3}-[0-9a-fA-F]{12}\b"
)
_HEX_ID_RE = re.compile(r"/[0-9a-f]{32}\b")
_PATH_PARAM_RE = re.compile(r"\{[^{}]+\}")


def _sanitize_path(path: str) -> str:
    without_uuids = _UUID_RE.sub("{id}", path)
    return _HEX_ID_RE.sub("/{id}", without_uuids)


def resolve_http_path_label(request: Request) -> str:
    route = request.scope.get("route")
    if route is not None:
        path_format = getattr(route, "path_format", None)
        if isinstance(path_format, str) and path_format:
            return path_format
        route_path = getattr(route, "path", None)
        if isinstance(route_path, str) and route_path:
            return route_path
    return _sanitize_path(request.url.path)


def observe_http_request(method: str, path: str, status: int, duration: float) -> None:
    http_requests_total.labels(method=method, path=path, status=str(status)).inc()
    http_request_duration_seconds.labels(method=method, path=path).observe(duration)


def observe_config_mutation(module: str, operation: str, status: str) -> None:
    config_mutations_total.labels(module=module, operation=operation, status=status).inc()


def observe_config_fallback(module: str) -> None:
    config_fallback_total.labels(module=module).inc()


def observe_export(module: str, export_format: str, status: str) -> None:
    exports_total.labels(module=module, format=export_format, status=status).inc()


def observe_bulk_delete(module: str, success_count: int, failure_count: int) -> None:
    if success_count > 0:
        bulk_delete_items_total.labels(module=module, status="deleted").inc(success_count)
    if failure_count > 0:
        bulk_delete_items_total.labels(module=module, status="failed").inc(failure_count)


def generate_metrics_payload() -> bytes:
    return generate_latest()


def metrics_content_type() -> str:
    return CONTENT_TYPE_LATEST
