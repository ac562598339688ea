"""Health check endpoints for monitoring and deployment verification."""

import time

from fastapi import APIRouter, Response, status

from src.core.config import get_settings
from src.core.supabase import check_database_connection
from src.schemas.common import CheckResult, HealthResponse, HealthStatus, ReadinessResponse

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Liveness check",
    description="Basic health check to verify the service is running. Used for liveness probes.",
)
async def health_check() -> HealthResponse:
    """Return basic health status without touching dependencies."""
    return HealthResponse(status=HealthStatus.HEALTHY)


@router.get(
    "/health/ready",
    response_model=ReadinessResponse,
    responses={
        200: {"description": "All dependencies healthy"},
        503: {"description": "Database unreachable"},
    },
    summary="Readiness check",
    description="Check if the database is reachable and which payment providers are configured.",
)
async def readiness_check(response: Response) -> ReadinessResponse:
    """Check readiness of dependencies.

    Only the database decides readiness. Payment providers are reported
    but never fail the probe, since cash on delivery works without them.

    Args:
        response: FastAPI response object for setting status code.

    Returns:
        ReadinessResponse: Status of all dependency checks.
    """
    settings = get_settings()

    start_time = time.perf_counter()
    db_result = await check_database_connection()
    latency_ms = (time.perf_counter() - start_time) * 1000

    database = CheckResult(
        name="database",
        healthy=db_result["healthy"],
        latency_ms=round(latency_ms, 2),
        error=db_result.get("error"),
    )

    razorpay_ready = bool(settings.razorpay_key_id and settings.razorpay_key_secret)
    stripe_ready = bool(settings.stripe_secret_key and settings.stripe_webhook_secret)
    checks = [
        database,
        CheckResult(name="razorpay", healthy=razorpay_ready, error=None if razorpay_ready else "not configured"),
        CheckResult(name="stripe", healthy=stripe_ready, error=None if stripe_ready else "not configured"),
    ]

    overall_status = HealthStatus.HEALTHY if database.healthy else HealthStatus.UNHEALTHY
    if not database.healthy:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(status=overall_status, checks=checks)
