"""
API server for Voice Matrix.

Assembles the FastAPI application from the app package: logging, Sentry,
exception handlers, middleware and routers. Run with

    uvicorn server:create_app --factory

or `python server.py`.
"""

import logging
import re
import sys
from contextlib import asynccontextmanager
from typing import Optional

import sentry_sdk
import uvicorn
from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware
from sentry_sdk.integrations.fastapi import FastApiIntegration
from sentry_sdk.integrations.starlette import StarletteIntegration

# Configure structured logging FIRST, before other imports that use logging
from voicematrix.utils.logging import setup_logging

logger = setup_logging(service_name="voice-matrix-api")

from voicematrix import __version__
from voicematrix.config import Settings, get_settings

from app.dependencies import ServiceContainer, build_container
from app.error_handlers import register_exception_handlers
from app.middleware import RequestLoggingMiddleware
from app.routes import (
    analytics_router,
    assistants_router,
    call_logs_router,
    health_router,
    phone_numbers_router,
    user_router,
    webhooks_router,
)

SENSITIVE_KEYS = (
    "password", "api_key", "apikey", "secret", "token",
    "authorization", "bearer", "credential", "twilio",
)


def filter_sensitive_breadcrumbs(crumb, hint):
    """Strip credentials from Sentry breadcrumbs (HTTP headers, query strings, log lines)."""
    if crumb.get("category") == "http" and isinstance(crumb.get("data"), dict):
        data = crumb["data"]
        if isinstance(data.get("headers"), dict):
            for key in list(data["headers"].keys()):
                if any(s in key.lower() for s in SENSITIVE_KEYS):
                    data["headers"][key] = "[FILTERED]"
        if "url" in data:
            for key in SENSITIVE_KEYS:
                pattern = re.compile(f"({key}=)[^&]*", re.IGNORECASE)
                data["url"] = pattern.sub(r"\1[FILTERED]", data["url"])

    if crumb.get("category") in ("console", "log") and "message" in crumb:
        message = str(crumb["message"]).lower()
        if any(key in message for key in SENSITIVE_KEYS):
            crumb["message"] = "[FILTERED - may contain sensitive data]"

    return crumb


def init_sentry(settings: Settings) -> None:
    if not settings.is_sentry_configured:
        logger.info("Sentry DSN not configured, error tracking disabled")
        return

    sentry_settings = settings.sentry
    sentry_sdk.init(
        dsn=sentry_settings.sentry_dsn,
        environment=sentry_settings.sentry_environment,
        sample_rate=1.0,
        traces_sample_rate=sentry_settings.sentry_traces_sample_rate,
        integrations=[
            StarletteIntegration(transaction_style="endpoint"),
            FastApiIntegration(transaction_style="endpoint"),
        ],
        before_breadcrumb=filter_sensitive_breadcrumbs,
        send_default_pii=False,
        attach_stacktrace=True,
        release=sentry_settings.sentry_release,
    )
    logger.info(f"Sentry initialized for environment: {sentry_settings.sentry_environment}")


def validate_settings(settings: Settings) -> None:
    problems = settings.validate_for_startup()
    if problems:
        for problem in problems:
            logger.critical(f"Configuration error: {problem}")
        logger.critical("Application cannot start due to configuration errors.")
        sys.exit(1)
    logger.info("Configuration loaded", extra={"config": settings.get_config_summary()})


def create_app(
    settings: Optional[Settings] = None,
    container: Optional[ServiceContainer] = None,
) -> FastAPI:
    """
    Build the application.

    A container passed in (tests) is used as-is and not closed on shutdown;
    otherwise one is built from settings during startup.
    """
    settings = settings or get_settings()
    validate_settings(settings)
    init_sentry(settings)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        owns_container = getattr(app.state, "container", None) is None
        if owns_container:
            app.state.container = await build_container(settings)
        yield
        if owns_container:
            try:
                await app.state.container.close()
            except Exception as e:
                logger.warning("Failed to close service container: %s", e)

    app = FastAPI(
        title="Voice Matrix API",
        description="AI phone assistants on Vapi with per-account usage limits.",
        version=__version__,
        lifespan=lifespan,
        openapi_tags=[
            {"name": "health", "description": "Health checks and system status"},
            {"name": "assistants", "description": "AI phone assistants"},
            {"name": "phone-numbers", "description": "Twilio numbers registered with Vapi"},
            {"name": "call-logs", "description": "Call history and usage"},
            {"name": "analytics", "description": "Dashboard and exports"},
            {"name": "user", "description": "Plan limits, usage ledger and demo time"},
            {"name": "webhooks", "description": "Vapi call events"},
        ],
    )
    if container is not None:
        app.state.container = container

    register_exception_handlers(app)

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.security.origins_list,
        allow_credentials=True,
        allow_methods=["GET", "POST", "PATCH", "DELETE", "OPTIONS"],
        allow_headers=[
            "Authorization",
            "Content-Type",
            "X-Request-ID",
            "Accept",
            "Origin",
        ],
        expose_headers=["X-Request-ID", "X-Response-Time"],
        max_age=600,
    )

    # Added last so it wraps every other middleware
    if settings.logging.request_logging_enabled:
        app.add_middleware(RequestLoggingMiddleware)

    app.include_router(health_router)

    api_router = APIRouter()
    api_router.include_router(assistants_router)
    api_router.include_router(phone_numbers_router)
    api_router.include_router(call_logs_router)
    api_router.include_router(analytics_router)
    api_router.include_router(user_router)
    api_router.include_router(webhooks_router)

    app.include_router(api_router, prefix="/api")
    app.include_router(api_router, prefix="/api/v1", include_in_schema=False)

    return app


if __name__ == "__main__":
    uvicorn.run("server:create_app", factory=True, host="0.0.0.0", port=8000)
