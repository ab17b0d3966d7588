"""
Health check and monitoring endpoints.
"""

from fastapi import APIRouter

from ..config import settings
from ..database import check_db_health
from ..domain.entities import isoformat, utcnow
from ..metrics import metrics_endpoint

router = APIRouter(tags=["Health"])


@router.get("/health", summary="Health check")
async def health_check() -> dict:
    """
    Liveness check.

    Always returns 200 while the process is serving; the storage field
    reports whether the SQL backend answers.
    """
    storage = settings.STORAGE_BACKEND.lower()
    if storage == "sql":
        storage = "sql" if check_db_health() else "sql (unreachable)"
    return {
        "status": "ok",
        "message": f"{settings.APP_NAME} is running",
        "timestamp": isoformat(utcnow()),
        "version": settings.APP_VERSION,
        "storage": storage,
    }


@router.get("/metrics", include_in_schema=False)
async def metrics():
    """Prometheus metrics endpoint."""
    return await metrics_endpoint()
