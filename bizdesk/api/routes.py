from fastapi import APIRouter, Depends, HTTPException, status
from fastapi.responses import Response

from bizdesk.api.deps import get_registry
from bizdesk.api.modules import router as modules_router
from bizdesk.configuration.registry import ModuleRegistry
from bizdesk.core.config import get_settings
from bizdesk.metrics import generate_metrics_payload, metrics_content_type

router = APIRouter()
router.include_router(modules_router)


@router.get("/health", tags=["system"])
def health() -> dict[str, str]:
    settings = get_settings()
    return {
        "status": "ok",
        "service": settings.app_name,
        "environment": settings.app_env,
    }


@router.get("/api/modules", tags=["modules"])
def list_modules(registry: ModuleRegistry = Depends(get_registry)) -> dict[str, list[str]]:
    return {"modules": registry.modules}


@router.get("/metrics", tags=["system"])
def metrics() -> Response:
    settings = get_settings()
    if not settings.metrics_enabled:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="not found")
    return Response(content=generate_metrics_payload(), media_type=metrics_content_type())
