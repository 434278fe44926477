"""
Health check and root endpoints.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict

import sentry_sdk
from fastapi import APIRouter, Request

from voicematrix import __version__

from ..dependencies import get_container

logger = logging.getLogger(__name__)

router = APIRouter(tags=["health"])


@router.get("/")
async def root() -> Dict[str, Any]:
    return {"service": "voice-matrix-api", "version": __version__}


@router.get("/health")
async def health(request: Request) -> Dict[str, Any]:
    """Liveness plus a summary of which backends are configured."""
    container = get_container(request)
    settings = container.settings
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "environment": settings.security.environment,
        "services": {
            "storage": type(container.storage).__name__,
            "identity": type(container.identity).__name__,
            "vapi_configured": settings.is_vapi_configured,
            "sentry_active": sentry_sdk.get_client().is_active(),
        },
    }
