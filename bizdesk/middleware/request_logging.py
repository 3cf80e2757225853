from __future__ import annotations

import logging
import time

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from bizdesk.metrics import observe_http_request, resolve_http_path_label


logger = logging.getLogger("bizdesk.request")

_QUIET_PATHS = frozenset({"/health", "/metrics"})


def _log_level(raw_path: str, status_code: int) -> int:
    if status_code >= 500:
        return logging.ERROR
    return logging.DEBUG if raw_path in _QUIET_PATHS else logging.INFO


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """Log one line per request and feed the HTTP metrics.

    Health and metrics probes are logged at debug level; unhandled errors are
    counted as 500 and re-raised.
    """

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        started = time.perf_counter()
        try:
            response = await call_next(request)
        except Exception:
            self._finish(request, 500, started, "http.error", exc_info=True)
            raise
        self._finish(request, response.status_code, started, "http.request")
        return response

    @staticmethod
    def _finish(request: Request, status_code: int, started: float, event: str, exc_info: bool = False) -> None:
        # Route templates are only resolvable once routing has run.
        path = resolve_http_path_label(request)
        duration_ms = round((time.perf_counter() - started) * 1000, 2)
        observe_http_request(method=request.method, path=path, status=status_code, duration=duration_ms / 1000)
        logger.log(
            _log_level(request.url.path, status_code),
            event,
            exc_info=exc_info,
            extra={
                "method": request.method,
                "path": path,
                "status_code": status_code,
                "duration_ms": duration_ms,
                "module_name": getattr(request.state, "module", None),
            },
        )
