from fastapi import APIRouter

from planner.core.config import settings

router = APIRouter()


@router.get("/health", summary="Liveness check")
def health():
    return {"status": "ok", "service": settings.PROJECT_NAME, "environment": settings.ENVIRONMENT}
