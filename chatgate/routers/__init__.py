"""Routers package."""

from chatgate.routers.billing import router as billing_router
from chatgate.routers.catalog import router as catalog_router
from chatgate.routers.chat import router as chat_router
from chatgate.routers.feedback import router as feedback_router
from chatgate.routers.health import router as health_router
from chatgate.routers.user import router as user_router

__all__ = [
    "billing_router",
    "catalog_router",
    "chat_router",
    "feedback_router",
    "health_router",
    "user_router",
]
