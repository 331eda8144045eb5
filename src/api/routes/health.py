"""Liveness, readiness and component health."""

from fastapi import APIRouter, HTTPException, Request
import structlog

from src.core.config import settings
from src.persistence.database import check_database_health

log = structlog.get_logger(__name__)

router = APIRouter()

VERSION = "0.1.0"


@router.get("/health")
async def health_check(request: Request):
    """Database status, active session count and whether LLM follow-ups are on."""
    db_health = await check_database_health()
    store = getattr(request.app.state, "session_store", None)
    service = getattr(request.app.state, "assessment_service", None)

    return {
        "status": "healthy" if db_health["status"] == "healthy" else "unhealthy",
        "version": VERSION,
        "debug": settings.debug,
        "components": {
            "database": db_health,
            "sessions": {"active": store.count() if store is not None else 0},
            "follow_up_generation": {
                "enabled": service is not None and service.generator is not None
            },
        },
    }


@router.get("/health/live")
async def liveness():
    return {"status": "alive"}


@router.get("/health/ready")
async def readiness(request: Request):
    """503 until the database answers and the assessment service is wired."""
    if getattr(request.app.state, "assessment_service", None) is None:
        raise HTTPException(status_code=503, detail="Assessment service not started")

    db_health = await check_database_health()
    if db_health["status"] != "healthy":
        log.warning("readiness_failed", reason="database", error=db_health.get("error"))
        raise HTTPException(status_code=503, detail="Database not ready")

    return {"status": "ready"}
