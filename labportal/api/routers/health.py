"""
Health and readiness endpoints for operational visibility.

This module provides:
- /health: Liveness check (is the app running?)
- /ready: Readiness check (is the hosted provider reachable?)

No authentication required; both answer JSON.
"""
import logging
import time
from typing import List

from fastapi import APIRouter, Depends, Response
from pydantic import BaseModel

from labportal import __version__
from labportal.clients.supabase_client import SupabaseClient
from labportal.core.datetime_utils import format_iso, utc_now
from labportal.core.dependencies import get_supabase_client
from labportal.core.exceptions import LabPortalError

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


# =============================================================================
# RESPONSE MODELS
# =============================================================================

class HealthResponse(BaseModel):
    """Response model for /health endpoint."""
    status: str  # "healthy"
    version: str
    timestamp: str  # ISO 8601 UTC


class DependencyStatus(BaseModel):
    """Status of a single dependency."""
    name: str
    status: str  # "ok", "unavailable"
    latency_ms: float | None = None
    message: str | None = None


class ReadyResponse(BaseModel):
    """Response model for /ready endpoint."""
    status: str  # "ready", "not_ready"
    dependencies: List[DependencyStatus]
    timestamp: str


def _timestamp() -> str:
    return format_iso(utc_now())


# =============================================================================
# HEALTH ENDPOINT (LIVENESS)
# =============================================================================

@router.get(
    "/health",
    response_model=HealthResponse,
    summary="Liveness check",
)
async def health_check() -> HealthResponse:
    """
    Liveness check - is the application process alive?

    Returns immediately without touching the provider.
    """
    return HealthResponse(status="healthy", version=__version__, timestamp=_timestamp())


# =============================================================================
# READINESS ENDPOINT
# =============================================================================

async def _check_provider(client: SupabaseClient) -> DependencyStatus:
    """Ping the provider's auth health endpoint."""
    start = time.perf_counter()
    try:
        await client.auth.health()
    except LabPortalError as e:
        latency_ms = (time.perf_counter() - start) * 1000
        logger.error("Provider health check failed", extra={"error": e.detail})
        return DependencyStatus(
            name="supabase_auth",
            status="unavailable",
            latency_ms=round(latency_ms, 2),
            message=e.detail,
        )

    latency_ms = (time.perf_counter() - start) * 1000
    return DependencyStatus(
        name="supabase_auth",
        status="ok",
        latency_ms=round(latency_ms, 2),
        message="Auth service healthy",
    )


@router.get(
    "/ready",
    response_model=ReadyResponse,
    summary="Readiness check",
    description="Returns 503 when the hosted provider cannot be reached.",
)
async def readiness_check(
    response: Response,
    client: SupabaseClient = Depends(get_supabase_client),
) -> ReadyResponse:
    provider = await _check_provider(client)
    if provider.status == "ok":
        status = "ready"
    else:
        status = "not_ready"
        response.status_code = 503
    return ReadyResponse(status=status, dependencies=[provider], timestamp=_timestamp())
