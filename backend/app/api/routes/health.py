import structlog
from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import func, select, text

from app.db.models.pending_checkout import PendingCheckoutContext

logger = structlog.get_logger(__name__)

router = APIRouter()


@router.get("/health")
async def health_check(request: Request):
    """Health check endpoint for load balancer.

    Returns 503 during graceful shutdown so the balancer stops routing webhooks here.
    """
    if getattr(request.app.state, "shutting_down", False):
        return JSONResponse(
            status_code=503,
            content={"status": "shutting_down", "service": "billing-sync"},
        )
    return {"status": "healthy", "service": "billing-sync"}


@router.get("/ready")
async def readiness_check():
    """Readiness check - the database is the only dependency.

    Also reports how many checkout contexts are parked waiting for their
    subscription's created event. The count does not affect readiness.
    """
    checks = {"database": False}
    pending_checkouts = None

    try:
        from app.db.base import get_session_factory

        async with get_session_factory()() as session:
            await session.execute(text("SELECT 1"))
            checks["database"] = True
            pending_checkouts = await session.scalar(
                select(func.count()).select_from(PendingCheckoutContext)
            )
    except Exception as e:
        logger.error("database_health_check_failed", error=str(e))

    all_healthy = all(checks.values())
    status_code = 200 if all_healthy else 503

    return JSONResponse(
        status_code=status_code,
        content={
            "status": "ready" if all_healthy else "degraded",
            "checks": checks,
            "pending_checkouts": pending_checkouts,
        },
    )
