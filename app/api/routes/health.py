"""
Health Check Endpoints

Provides health, readiness, and liveness probes for monitoring,
load balancers, and Kubernetes.

Redis only backs the booking locks, which fall back to in-process locks,
so a Redis outage degrades readiness instead of failing it.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from app.config import settings
from app.infra.database import check_db_health
from app.infra.redis import check_redis_health

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["Health"])

# Track application start time for uptime calculation
_start_time: Optional[datetime] = None


def set_start_time() -> None:
    """Set application start time. Called once on startup."""
    global _start_time
    _start_time = datetime.now(timezone.utc)


def get_uptime_seconds() -> Optional[float]:
    """Get application uptime in seconds."""
    if _start_time is None:
        return None
    return (datetime.now(timezone.utc) - _start_time).total_seconds()


class HealthResponse(BaseModel):
    """Basic health check response."""
    status: str
    timestamp: datetime
    version: str
    environment: str
    store_backend: str


class ReadyResponse(BaseModel):
    """Readiness check response with dependency status."""
    status: str
    timestamp: datetime
    checks: dict[str, str]


class LiveResponse(BaseModel):
    """Liveness check response."""
    status: str
    timestamp: datetime
    uptime_seconds: Optional[float] = None


@router.get(
    "",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Basic health check",
    description="Returns 200 if the application is running. Does not check dependencies.",
)
async def health() -> HealthResponse:
    """
    Basic health check.

    Always returns 200 if the application is running.
    Use /health/ready for dependency checks.
    """
    return HealthResponse(
        status="healthy",
        timestamp=datetime.now(timezone.utc),
        version="1.0.0",
        environment=settings.app_env,
        store_backend=settings.store_backend,
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness probe",
    description=(
        "Checks the appointment store and Redis. Returns 503 if the store is "
        "unavailable; a missing Redis only degrades locking."
    ),
    responses={
        200: {"description": "Ready (possibly degraded)"},
        503: {"description": "Appointment store is unavailable"},
    },
)
async def ready() -> ReadyResponse:
    """
    Readiness probe for load balancers and Kubernetes.

    Checks:
    - PostgreSQL connectivity (sql store only)
    - Redis connectivity (booking locks)
    """
    checks = {}
    store_ok = True

    if settings.store_backend == "sql":
        try:
            store_ok = await check_db_health()
            checks["database"] = "ok" if store_ok else "failed"
            if not store_ok:
                logger.warning("Readiness check: Database unhealthy")
        except Exception as e:
            checks["database"] = "error"
            store_ok = False
            logger.error(f"Readiness check: Database error - {e}")
    else:
        checks["database"] = "skipped"

    try:
        redis_ok = await check_redis_health()
        checks["redis"] = "ok" if redis_ok else "degraded"
        if not redis_ok:
            logger.warning("Readiness check: Redis unavailable, using local locks")
    except Exception as e:
        redis_ok = False
        checks["redis"] = "degraded"
        logger.error(f"Readiness check: Redis error - {e}")

    if not store_ok:
        overall = "not_ready"
    elif not redis_ok:
        overall = "degraded"
    else:
        overall = "ready"

    response = ReadyResponse(
        status=overall,
        timestamp=datetime.now(timezone.utc),
        checks=checks,
    )

    if not store_ok:
        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content=response.model_dump(mode="json"),
        )

    return response


@router.get(
    "/live",
    response_model=LiveResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
    description="Returns 200 if the process is alive. Used for container restart decisions.",
)
async def live() -> LiveResponse:
    """
    Liveness probe for Kubernetes.

    Always returns 200 if the process is running.
    """
    return LiveResponse(
        status="alive",
        timestamp=datetime.now(timezone.utc),
        uptime_seconds=get_uptime_seconds(),
    )
