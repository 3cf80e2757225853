from contextlib import asynccontextmanager
import logging

from fastapi import FastAPI
from opentelemetry.instrumentation.fastapi import FastAPIInstrumentor

from bizdesk.api.routes import router as api_router
from bizdesk.core.config import get_settings
from bizdesk.core.database import Base, engine
from bizdesk.core.events import InternalEvent, event_bus
from bizdesk.logging import configure_logging
from bizdesk.middleware.correlation_id import CorrelationIdMiddleware
from bizdesk.middleware.request_logging import RequestLoggingMiddleware
from bizdesk.otel import get_fastapi_server_request_hook, setup_otel
from bizdesk.storage import models  # noqa: F401


configure_logging()
logger = logging.getLogger("bizdesk.lifecycle")
_subscriptions_registered = False


def _on_system_started(event: InternalEvent) -> None:
    logger.info("system_event", extra={"operation": event.name})


@asynccontextmanager
async def lifespan(app: FastAPI):
    global _subscriptions_registered
    settings = get_settings()
    if settings.app_env.lower() in {"local", "test"} and settings.document_backend.lower() == "sql":
        Base.metadata.create_all(bind=engine)
    if not _subscriptions_registered:
        event_bus.subscribe("system.started", _on_system_started)
        _subscriptions_registered = True
    event_bus.publish("system.started", {"service": "api"})
    yield


app = FastAPI(title="Bizdesk API", version="0.1.0", lifespan=lifespan)
app.add_middleware(RequestLoggingMiddleware)
app.add_middleware(CorrelationIdMiddleware)
app.include_router(api_router)

settings = get_settings()
if settings.otel_enabled:
    setup_otel("bizdesk-api", True)

if not getattr(app, "_is_instrumented_by_opentelemetry", False):
    FastAPIInstrumentor().instrument_app(app, server_request_hook=get_fastapi_server_request_hook())
