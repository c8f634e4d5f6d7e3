"""Health check endpoints."""

from datetime import datetime

import structlog
from fastapi import APIRouter, Depends, Response

from reconciliation import __version__
from reconciliation.config import get_settings
from reconciliation.identity.store import StoreProvider, get_store_provider
from reconciliation.kernel.errors import StoreError
from reconciliation.kernel.time import utc_now

router = APIRouter()
logger = structlog.get_logger()

# Track startup time
_startup_time: datetime = utc_now()


@router.get("/health")
async def health_check():
    """
    Basic health check endpoint.
    Returns 200 if the service is running.
    """
    return {
        "status": "healthy",
        "service": "identity-reconciliation",
        "version": __version__,
        "timestamp": utc_now().isoformat(),
        "uptime_seconds": (utc_now() - _startup_time).total_seconds(),
    }


@router.get("/ready")
async def readiness_check(
    response: Response,
    store_provider: StoreProvider = Depends(get_store_provider),
):
    """
    Readiness check endpoint.
    Verifies the contact store answers.
    """
    backend = get_settings().contact_store_backend
    ready = True

    try:
        async with store_provider() as store:
            await store.ping()
    except StoreError as e:
        logger.warning("Contact store health check failed", backend=backend, error=str(e.__cause__ or e))
        ready = False

    if not ready:
        response.status_code = 503

    return {
        "status": "ready" if ready else "degraded",
        "checks": {"contact_store": ready},
        "backend": backend,
        "timestamp": utc_now().isoformat(),
    }


@router.get("/live")
async def liveness_check():
    """
    Liveness check for Kubernetes.
    Returns 200 if the process is alive.
    """
    return {"status": "alive"}
