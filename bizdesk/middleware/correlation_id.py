from __future__ import annotations

import uuid

from opentelemetry import trace
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request

from bizdesk.context import (
    module_from_path,
    reset_correlation_id,
    reset_current_module,
    set_correlation_id,
    set_current_module,
)


CORRELATION_HEADER = "x-correlation-id"
_MAX_CORRELATION_ID_LENGTH = 128


def _incoming_correlation_id(request: Request) -> str:
    supplied = request.headers.get(CORRELATION_HEADER, "").strip()
    return supplied[:_MAX_CORRELATION_ID_LENGTH] if supplied else str(uuid.uuid4())


class CorrelationIdMiddleware(BaseHTTPMiddleware):
    """Bind the correlation id and the addressed module for one request.

    Both values live in context variables for the duration of the request so
    log records and error envelopes can pick them up.
    """

    async def dispatch(self, request: Request, call_next):  # type: ignore[no-untyped-def]
        correlation_id = _incoming_correlation_id(request)
        module = module_from_path(request.url.path)
        request.state.correlation_id = correlation_id
        request.state.module = module

        span = trace.get_current_span()
        if span.is_recording():
            span.set_attribute("correlation_id", correlation_id)

        correlation_token = set_correlation_id(correlation_id)
        module_token = set_current_module(module)
        try:
            response = await call_next(request)
        finally:
            reset_current_module(module_token)
            reset_correlation_id(correlation_token)

        response.headers[CORRELATION_HEADER] = correlation_id
        return response
