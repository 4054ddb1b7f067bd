"""
EngageSphere Backend - Health Check Route
==========================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Checks the database and the PayPal token endpoint, returns aggregate status.
Who:   Called by Docker health checks, load balancers, and monitoring systems.

Status levels:
    - healthy:   Database and PayPal reachable (HTTP 200)
    - degraded:  PayPal unreachable; ledger reads still work (HTTP 200)
    - unhealthy: Database unreachable (HTTP 200, body says unhealthy)
"""

import logging
import time

from fastapi import APIRouter
from sqlalchemy import text

from app import __version__
from app.database import engine
from app.schemas.payment import HealthResponse
from app.services.paypal_client import paypal_client

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Service start time for uptime reporting
_start_time = time.time()


@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Service health check",
    description=(
        "Returns the health status of the backend service and its dependencies. "
        "Used by Docker health checks and load balancers."
    ),
)
async def health_check() -> HealthResponse:
    """
    Probe database and PayPal connectivity.

    Check details:
        Database: SELECT 1
        PayPal:   OAuth2 token exchange (no order is created)
    """
    db_status = "connected"
    gateway_status = "available"
    overall = "healthy"

    # ── Check Database ────────────────────────────────────────────────────
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except Exception as e:
        db_status = "disconnected"
        overall = "unhealthy"
        logger.warning("Health check: database unreachable: %s", str(e))

    # ── Check PayPal ──────────────────────────────────────────────────────
    if not await paypal_client.health_check():
        gateway_status = "unavailable"
        overall = "degraded" if overall != "unhealthy" else overall

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        gateway=gateway_status,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
