"""Main FastAPI application."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator

import structlog
from fastapi import FastAPI, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from prometheus_fastapi_instrumentator import Instrumentator
from redis.asyncio import Redis

from chatgate import __version__, auth
from chatgate.auth.identity import build_identity_verifier
from chatgate.config import StoreBackend, get_settings
from chatgate.errors import GatewayError
from chatgate.middleware import cors_headers, cors_middleware, request_context_middleware
from chatgate.routers import (
    billing_router,
    catalog_router,
    chat_router,
    feedback_router,
    health_router,
    user_router,
)
from chatgate.services.inference import get_inference_client
from chatgate.services.paypal import get_payment_gateway
from chatgate.storage.memory import MemoryAccountStore
from chatgate.storage.redis_store import RedisAccountStore
from chatgate.utils.logging import configure_logging

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    settings = get_settings()
    configure_logging()

    # Initialize account store
    if settings.account_store_backend == StoreBackend.REDIS:
        logger.info("Initializing Redis account store...")
        redis = Redis.from_url(str(settings.redis_url), decode_responses=True)
        auth.dependencies.account_store = RedisAccountStore(
            redis,
            counter_ttl_seconds=settings.daily_usage_retention_days * 24 * 60 * 60,
        )
    else:
        logger.warning("Using in-memory account store; data is lost on restart")
        auth.dependencies.account_store = MemoryAccountStore()

    auth.dependencies.identity_verifier = build_identity_verifier(settings)
    logger.info("Identity verifier ready", backend=settings.identity_backend.value)

    if not settings.paypal_configured:
        logger.warning("PayPal is not configured; billing endpoints will answer 503")

    # Initialize Sentry if configured
    if settings.sentry_dsn:
        import sentry_sdk

        sentry_sdk.init(
            dsn=settings.sentry_dsn,
            environment=settings.environment.value,
            traces_sample_rate=0.1,
        )
        logger.info("Sentry initialized")

    logger.info("Application startup complete")

    yield

    # Cleanup
    logger.info("Shutting down...")
    if auth.dependencies.account_store:
        await auth.dependencies.account_store.close()
        auth.dependencies.account_store = None
    if auth.dependencies.identity_verifier:
        await auth.dependencies.identity_verifier.aclose()
        auth.dependencies.identity_verifier = None
    for factory in (get_inference_client, get_payment_gateway):
        if factory.cache_info().currsize:
            await factory().aclose()
            factory.cache_clear()
    logger.info("Shutdown complete")


def _validation_message(exc: RequestValidationError) -> str:
    for error in exc.errors():
        if "messages" in error.get("loc", ()):
            return "Messages array is required"
    return "Malformed request body"


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Chat Gateway API",
        description="""
## LLM Chat Gateway

Relays chat completions from an upstream model provider to the desktop
client, gated by account tier and a daily free-message quota, and keeps Pro
entitlement in sync with PayPal subscriptions.

### Authentication

Send the identity provider's access token as `Authorization: Bearer <token>`.
`/api/models`, `/api/feedback` and the PayPal webhook do not require it.

### Limits

| Tier | Messages/day | Models | Web search | Deep reasoning |
|------|--------------|--------|------------|----------------|
| Free | 30, then credits | Free list | No | No |
| Pro | Unlimited | Free + Pro list | Yes | Yes |

        """,
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json",
        lifespan=lifespan,
    )

    app.middleware("http")(cors_middleware)
    app.middleware("http")(request_context_middleware)

    # Prometheus metrics
    if settings.prometheus_enabled:
        Instrumentator().instrument(app).expose(app, endpoint="/metrics")

    # Include routers
    app.include_router(health_router)
    app.include_router(chat_router, prefix="/api")
    app.include_router(user_router, prefix="/api")
    app.include_router(catalog_router, prefix="/api")
    app.include_router(feedback_router, prefix="/api")
    app.include_router(billing_router, prefix="/api")

    @app.exception_handler(GatewayError)
    async def gateway_exception_handler(request: Request, exc: GatewayError) -> JSONResponse:
        if exc.status_code >= 500:
            logger.error("Request failed", error=exc.error, message=exc.message, path=request.url.path)
        return JSONResponse(status_code=exc.status_code, content=exc.to_body())

    @app.exception_handler(RequestValidationError)
    async def validation_exception_handler(
        request: Request, exc: RequestValidationError
    ) -> JSONResponse:
        return JSONResponse(
            status_code=status.HTTP_400_BAD_REQUEST,
            content={
                "error": "invalid_request",
                "message": _validation_message(exc),
                "details": {"errors": jsonable_encoder(exc.errors())},
            },
        )

    # Global exception handler
    @app.exception_handler(Exception)
    async def global_exception_handler(
        request: Request, exc: Exception
    ) -> JSONResponse:
        logger.error(
            "Unhandled exception",
            exc_info=exc,
            path=request.url.path,
            method=request.method,
        )

        if settings.debug:
            content = {
                "error": "internal_server_error",
                "message": str(exc),
                "type": type(exc).__name__,
            }
        else:
            content = {
                "error": "internal_server_error",
                "message": "An unexpected error occurred",
            }

        return JSONResponse(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            content=content,
            headers=cors_headers(settings),
        )

    return app


# Create app instance
app = create_app()
