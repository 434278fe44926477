"""API routes for the Voice Matrix API."""

from .analytics import router as analytics_router
from .assistants import router as assistants_router
from .call_logs import router as call_logs_router
from .health import router as health_router
from .phone_numbers import router as phone_numbers_router
from .user import router as user_router
from .webhooks import router as webhooks_router

__all__ = [
    "analytics_router",
    "assistants_router",
    "call_logs_router",
    "health_router",
    "phone_numbers_router",
    "user_router",
    "webhooks_router",
]
