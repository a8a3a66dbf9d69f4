"""Health check endpoints for container orchestration."""

from typing import Any

from fastapi import APIRouter, Request, Response, status
from fastapi.responses import JSONResponse

from hockey_sugar.database import check_database_connection

router = APIRouter(tags=["Health"])


def _poller_state(request: Request) -> str:
    poll_scheduler = getattr(request.app.state, "poll_scheduler", None)
    if poll_scheduler is None:
        return "disabled"
    return "running" if poll_scheduler.running else "stopped"


@router.get("/health", response_model=None)
async def health_check(request: Request) -> Response:
    """Overall health: database connectivity plus Dexcom poller state.

    503 with ``"status": "degraded"`` when the database is unreachable.
    """
    db_connected = await check_database_connection()
    content = {
        "status": "healthy" if db_connected else "degraded",
        "database": "connected" if db_connected else "disconnected",
        "dexcom_poller": _poller_state(request),
    }
    return JSONResponse(
        status_code=(
            status.HTTP_200_OK
            if db_connected
            else status.HTTP_503_SERVICE_UNAVAILABLE
        ),
        content=content,
    )


@router.get("/health/live")
async def liveness_probe() -> dict[str, Any]:
    """Liveness probe; never touches external dependencies."""
    return {"status": "alive"}


@router.get("/health/ready", response_model=None)
async def readiness_probe() -> Response:
    """Readiness probe; ready once the database answers."""
    if await check_database_connection():
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "ready", "database": "connected"},
        )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={"status": "not_ready", "database": "disconnected"},
    )
