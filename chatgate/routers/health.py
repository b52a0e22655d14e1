"""Health check and status endpoints."""

from fastapi import APIRouter, Depends

from chatgate import __version__
from chatgate.auth import Store
from chatgate.config import Settings, get_settings
from chatgate.models import HealthCheck

router = APIRouter(tags=["health"])


@router.get(
    "/health",
    response_model=HealthCheck,
    summary="Health check",
    description="Check the health of the gateway and its account store.",
)
async def health_check(
    store: Store,
    settings: Settings = Depends(get_settings),
) -> HealthCheck:
    """Check health of all services."""
    try:
        store_status = "healthy" if await store.ping() else "unhealthy"
    except Exception:
        store_status = "unhealthy"

    payments_status = "configured" if settings.paypal_configured else "not_configured"

    return HealthCheck(
        status="healthy" if store_status == "healthy" else "degraded",
        version=__version__,
        environment=settings.environment.value,
        store=store_status,
        payments=payments_status,
    )


@router.get(
    "/",
    summary="API information",
    description="Get basic API information.",
)
async def root() -> dict:
    """Root endpoint with API information."""
    return {
        "name": "Chat Gateway API",
        "version": __version__,
        "description": "Quota-gated LLM chat relay",
        "documentation": "/docs",
        "health": "/health",
    }
