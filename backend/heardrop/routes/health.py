"""
HEARDROP Backend — Health Check Route
=======================================

What:  Health check endpoint for monitoring and load balancer probes.
How:   Runs SELECT 1 against the database and reads the circuit-breaker
       state of each external provider. No provider is called, so the
       probe stays cheap and never burns API quota.
Who:   Docker health checks, load balancers and uptime monitors.

Status levels:
    - healthy:   database reachable, every configured provider circuit closed
    - degraded:  database reachable, a provider circuit open or half-open
                 (maps, breach checks or artwork may fail; the rest works)
    - unhealthy: database unreachable (HTTP 503)
"""

import logging
import time
from typing import Dict

from fastapi import APIRouter, Response
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from heardrop import __version__
from heardrop.database import engine
from heardrop.schemas.common import HealthResponse
from heardrop.services.gemini_service import gemini_service
from heardrop.services.mapbox_service import mapbox_service
from heardrop.services.password_service import password_service
from heardrop.services.resilience import CircuitBreaker

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])

# Module-level: set once when the app imports the router
_start_time = time.time()


def _provider_status(breaker: CircuitBreaker, configured: bool) -> str:
    if not configured:
        return "not_configured"
    if breaker.state == CircuitBreaker.OPEN:
        return "circuit_open"
    if breaker.state == CircuitBreaker.HALF_OPEN:
        return "half_open"
    return "available"


def provider_statuses() -> Dict[str, str]:
    return {
        "mapbox": _provider_status(mapbox_service.circuit_breaker, mapbox_service.is_configured),
        "pwned_passwords": _provider_status(
            password_service.circuit_breaker, password_service.breach_check_enabled
        ),
        "gemini": _provider_status(gemini_service.circuit_breaker, gemini_service.is_configured),
    }


@router.get(
    "/health",
    response_model=HealthResponse,
    responses={503: {"description": "Database unreachable", "model": HealthResponse}},
    summary="Service health check",
    description=(
        "Database connectivity plus the circuit-breaker state of Mapbox, Pwned Passwords "
        "and Gemini. Returns 503 only when the database is unreachable."
    ),
)
async def health_check(response: Response) -> HealthResponse:
    db_status = "connected"
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
    except (SQLAlchemyError, OSError) as e:
        db_status = "disconnected"
        logger.warning("Health check: database unreachable: %s", str(e))

    services = provider_statuses()
    if db_status != "connected":
        overall = "unhealthy"
        response.status_code = 503
    elif any(state in ("circuit_open", "half_open") for state in services.values()):
        overall = "degraded"
    else:
        overall = "healthy"

    return HealthResponse(
        status=overall,
        version=__version__,
        database=db_status,
        services=services,
        uptime_seconds=round(time.time() - _start_time, 2),
    )
