"""Health check endpoints."""

import asyncio
import logging
import time
from typing import Any

from fastapi import APIRouter, Depends, status
from fastapi.responses import JSONResponse

from roleswitch.api.deps import get_container
from roleswitch.services.container import ServiceContainer

logger = logging.getLogger(__name__)

router = APIRouter()


async def check_database(container: ServiceContainer, timeout: float = 5.0) -> dict[str, Any]:
    """Check database connectivity and response time.

    Returns:
        dict with status, latency_ms, and optional error
    """
    start = time.time()
    try:
        await asyncio.wait_for(container.storage.ping(), timeout=timeout)
        return {
            "status": "healthy",
            "latency_ms": round((time.time() - start) * 1000, 2),
        }
    except TimeoutError:
        return {
            "status": "unhealthy",
            "error": f"Database connection timeout (>{timeout:g}s)",
        }
    except Exception as e:
        logger.error(f"Database health check failed: {e}")
        return {
            "status": "unhealthy",
            "error": "Database connection failed",
        }


def check_scheduler(container: ServiceContainer) -> dict[str, Any]:
    """Timers drive lock expiry and transitions, so a stopped scheduler is unhealthy."""
    if container.timers.running:
        return {"status": "healthy"}
    return {"status": "unhealthy", "error": "Timer scheduler is not running"}


@router.get("/health")
async def health_check(container: ServiceContainer = Depends(get_container)) -> JSONResponse:
    """Health check covering the database, the timer scheduler and the engine.

    Returns 200 if all checks pass, 503 otherwise.
    """
    start_time = time.time()

    db_result = await check_database(container)
    scheduler_result = check_scheduler(container)
    engine = container.engine

    checks = {
        "database": db_result,
        "scheduler": scheduler_result,
    }
    healthy = all(check["status"] == "healthy" for check in checks.values())

    return JSONResponse(
        status_code=status.HTTP_200_OK if healthy else status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "healthy" if healthy else "unhealthy",
            "timestamp": time.time(),
            "response_time_ms": round((time.time() - start_time) * 1000, 2),
            "checks": checks,
            "engine": {
                "active_session": engine.get_current_session() is not None,
                "is_locked": engine.get_state().is_locked,
                "is_in_transition": engine.get_state().is_in_transition,
                "websocket_clients": len(container.connections.active_connections),
            },
        },
    )


@router.get("/ready")
async def readiness_check(container: ServiceContainer = Depends(get_container)) -> JSONResponse:
    """Readiness check: 200 once the database answers, 503 otherwise."""
    result = await check_database(container, timeout=3.0)
    if result["status"] == "healthy":
        return JSONResponse(
            status_code=status.HTTP_200_OK,
            content={"status": "ready", "timestamp": time.time()},
        )
    return JSONResponse(
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
        content={
            "status": "not_ready",
            "reason": result.get("error", "Database unavailable"),
            "timestamp": time.time(),
        },
    )
