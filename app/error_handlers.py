"""
FastAPI exception handlers for the Voice Matrix API.

All error responses follow the format:
{
    "success": false,
    "error": "Human-readable message",
    "error_code": "MACHINE_READABLE_CODE",
    "details": {}  # Optional additional context
}

Messages of VoiceMatrixException subclasses are written to be client-safe and
are passed through. Messages from anywhere else (HTTPException details,
pydantic errors) are sanitised first. 5xx errors are reported to Sentry.
"""

import logging
import re
import uuid
from typing import Any, Dict, List, Optional

import sentry_sdk
from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from pydantic import ValidationError as PydanticValidationError
from starlette.exceptions import HTTPException as StarletteHTTPException

from voicematrix.config import get_settings
from voicematrix.exceptions import ErrorCode, VoiceMatrixException

logger = logging.getLogger(__name__)

SENSITIVE_PATTERNS = [
    r"api[_-]?key",
    r"secret",
    r"password",
    r"token",
    r"credential",
    r"bearer",
    r"twilio",
    r"postgres(ql)?://",
    r"/home/",
    r"/var/",
    r"/etc/",
]

SENSITIVE_REGEX = re.compile("|".join(SENSITIVE_PATTERNS), re.IGNORECASE)

# Only these detail keys reach the client
SAFE_DETAIL_KEYS = {
    "field",
    "errors",
    "resource_type",
    "resource_id",
    "limit_type",
    "current",
    "max",
    "service",
    "provider_status",
    "error_reference",
    "sentry_event_id",
}


def sanitize_error_message(message: str) -> str:
    """Replace messages that look like they carry secrets; trim the rest."""
    if not message:
        return message

    if SENSITIVE_REGEX.search(message):
        return "An error occurred while processing your request"

    message = re.sub(r"\b\d{1,3}\.\d{1,3}\.\d{1,3}\.\d{1,3}\b", "[ip]", message)
    if len(message) > 500:
        message = message[:500] + "..."
    return message


def sanitize_details(details: Dict[str, Any]) -> Dict[str, Any]:
    if not details:
        return {}

    sanitized: Dict[str, Any] = {}
    for key, value in details.items():
        if key not in SAFE_DETAIL_KEYS:
            continue
        if isinstance(value, (str, int, float, bool)) or value is None:
            sanitized[key] = value
        elif isinstance(value, list):
            sanitized[key] = [
                v for v in value if isinstance(v, (str, int, float, bool, dict))
            ][:20]
    return sanitized


def format_pydantic_errors(errors: List[Dict[str, Any]]) -> List[Dict[str, str]]:
    """Flatten pydantic error dicts into {field, message} pairs."""
    formatted = []
    for error in errors:
        field_parts = [str(p) for p in error.get("loc", []) if p != "body"]
        field = ".".join(field_parts) if field_parts else "request"
        error_type = error.get("type", "")

        if error_type == "missing":
            msg = f"Field '{field}' is required"
        elif error_type == "string_type":
            msg = f"Field '{field}' must be a string"
        elif error_type in ("int_type", "int_parsing"):
            msg = f"Field '{field}' must be an integer"
        elif error_type in ("bool_type", "bool_parsing"):
            msg = f"Field '{field}' must be a boolean"
        else:
            msg = sanitize_error_message(error.get("msg", "Invalid value"))

        formatted.append({"field": field, "message": msg})

    return formatted[:10]


def create_error_response(
    status_code: int,
    error: str,
    error_code: str,
    details: Optional[Dict[str, Any]] = None,
) -> JSONResponse:
    content: Dict[str, Any] = {
        "success": False,
        "error": error,
        "error_code": error_code,
    }
    sanitized_details = sanitize_details(details or {})
    if sanitized_details:
        content["details"] = sanitized_details
    return JSONResponse(status_code=status_code, content=content)


def report_to_sentry(
    exc: Exception,
    request: Optional[Request] = None,
    extra_context: Optional[Dict[str, Any]] = None,
) -> Optional[str]:
    """Report an exception to Sentry with request context; no-op when Sentry is off."""
    client = sentry_sdk.get_client()
    if not client.is_active():
        return None

    with sentry_sdk.new_scope() as scope:
        if request is not None:
            scope.set_context("request", {
                "method": request.method,
                "path": request.url.path,
            })
            account_id = getattr(request.state, "account_id", None)
            if account_id:
                scope.set_user({"id": account_id})
            request_id = getattr(request.state, "request_id", None)
            if request_id:
                scope.set_tag("request_id", request_id)
        if extra_context:
            scope.set_context("extra", extra_context)
        return sentry_sdk.capture_exception(exc)


# =============================================================================
# Exception Handlers
# =============================================================================

async def voice_matrix_exception_handler(
    request: Request,
    exc: VoiceMatrixException,
) -> JSONResponse:
    """Handle VoiceMatrixException and subclasses; internal details are only logged."""
    log_message = f"{exc.__class__.__name__}: {exc.message}"
    if exc.internal_message:
        log_message += f" | Internal: {exc.internal_message}"

    if exc.status_code >= 500:
        logger.error(log_message)
        report_to_sentry(exc, request)
    else:
        logger.warning(log_message)

    return create_error_response(
        status_code=exc.status_code,
        error=exc.message,
        error_code=exc.error_code.value,
        details=exc.details,
    )


async def validation_exception_handler(
    request: Request,
    exc: RequestValidationError,
) -> JSONResponse:
    errors = format_pydantic_errors(exc.errors())
    logger.warning(
        f"Validation error on {request.method} {request.url.path}: {len(errors)} error(s)"
    )

    if len(errors) == 1:
        error_message = errors[0]["message"]
    else:
        error_message = f"Validation failed with {len(errors)} error(s)"

    return create_error_response(
        status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
        error=error_message,
        error_code=ErrorCode.VALIDATION_ERROR.value,
        details={"errors": errors},
    )


async def pydantic_validation_handler(
    request: Request,
    exc: PydanticValidationError,
) -> JSONResponse:
    errors = format_pydantic_errors(exc.errors())
    logger.warning(
        f"Pydantic validation error on {request.method} {request.url.path}: {len(errors)} error(s)"
    )
    return create_error_response(
        status_code=status.HTTP_400_BAD_REQUEST,
        error="Validation failed",
        error_code=ErrorCode.VALIDATION_ERROR.value,
        details={"errors": errors},
    )


_STATUS_ERROR_CODES = {
    400: ErrorCode.VALIDATION_ERROR,
    401: ErrorCode.AUTHENTICATION_REQUIRED,
    404: ErrorCode.RESOURCE_NOT_FOUND,
    405: ErrorCode.VALIDATION_ERROR,
    409: ErrorCode.RESOURCE_CONFLICT,
    422: ErrorCode.VALIDATION_ERROR,
    502: ErrorCode.EXTERNAL_PROVIDER_ERROR,
    503: ErrorCode.EXTERNAL_PROVIDER_ERROR,
    504: ErrorCode.EXTERNAL_PROVIDER_ERROR,
}


async def http_exception_handler(
    request: Request,
    exc: StarletteHTTPException,
) -> JSONResponse:
    error_code = _STATUS_ERROR_CODES.get(exc.status_code, ErrorCode.INTERNAL_ERROR)
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)

    if exc.status_code >= 500:
        logger.error(f"HTTP {exc.status_code}: {detail}")
    elif exc.status_code >= 400:
        logger.warning(f"HTTP {exc.status_code}: {detail}")

    return create_error_response(
        status_code=exc.status_code,
        error=sanitize_error_message(detail),
        error_code=error_code.value,
    )


async def unhandled_exception_handler(
    request: Request,
    exc: Exception,
) -> JSONResponse:
    """Catch-all: log with traceback, report, return a reference id only."""
    error_reference = str(uuid.uuid4())[:8]
    logger.error(
        f"Unhandled exception [ref:{error_reference}] on "
        f"{request.method} {request.url.path}: {type(exc).__name__}",
        exc_info=True,
    )
    event_id = report_to_sentry(exc, request, extra_context={"error_reference": error_reference})

    details: Dict[str, Any] = {"error_reference": error_reference}
    if event_id:
        details["sentry_event_id"] = event_id

    if get_settings().is_production:
        message = "An unexpected error occurred. Please try again later."
    else:
        message = f"Internal server error: {type(exc).__name__}"

    return create_error_response(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        error=message,
        error_code=ErrorCode.INTERNAL_ERROR.value,
        details=details,
    )


def register_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(VoiceMatrixException, voice_matrix_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(PydanticValidationError, pydantic_validation_handler)
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
    logger.info("Exception handlers registered")
