"""
Vapi webhook receiver.

When VAPI_WEBHOOK_SECRET is set, requests must carry the same value in the
x-vapi-secret header.
"""

import hmac
import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, Header, Request

from voicematrix.exceptions import AuthenticationError, ErrorCode
from voicematrix.services.call_logs import CallLogService

from ..dependencies import get_call_log_service, get_container

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/webhooks", tags=["webhooks"])


def verify_vapi_secret(request: Request, provided: Optional[str]) -> None:
    settings = get_container(request).settings
    secret = settings.vapi.vapi_webhook_secret
    if secret is None and settings.is_dev_mode:
        return
    if secret is None or not provided or not hmac.compare_digest(provided, secret.get_secret_value()):
        logger.warning("Rejected Vapi webhook with missing or wrong secret")
        raise AuthenticationError(
            "Invalid webhook secret",
            error_code=ErrorCode.INVALID_WEBHOOK_SECRET,
        )


@router.post("/vapi")
async def vapi_webhook(
    request: Request,
    event: Dict[str, Any] = Body(...),
    x_vapi_secret: Optional[str] = Header(None),
    service: CallLogService = Depends(get_call_log_service),
) -> Dict[str, Any]:
    verify_vapi_secret(request, x_vapi_secret)
    return await service.handle_event(event)
