"""
Assistant endpoints.

POST /api/assistants answers {"success": true, "data": null} when the account
is at its assistant limit.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends

from voicematrix.services.assistants import AssistantService
from voicematrix.services.call_logs import CallLogService
from voicematrix.types.assistants import AssistantCreateRequest, AssistantUpdateRequest

from ..auth import require_account
from ..dependencies import get_assistant_service, get_call_log_service
from ..envelope import success, to_client_envelope

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/assistants", tags=["assistants"])


@router.get("")
async def list_assistants(
    account_id: str = Depends(require_account),
    service: AssistantService = Depends(get_assistant_service),
) -> Dict[str, Any]:
    return success(await service.list_assistants(account_id))


# Registered before /{assistant_id} so "usage" is not taken for an id
@router.get("/usage")
async def get_call_usage(
    account_id: str = Depends(require_account),
    call_logs: CallLogService = Depends(get_call_log_service),
) -> Dict[str, Any]:
    return success(await call_logs.get_usage_summary(account_id))


@router.get("/{assistant_id}")
async def get_assistant(
    assistant_id: str,
    account_id: str = Depends(require_account),
    service: AssistantService = Depends(get_assistant_service),
) -> Dict[str, Any]:
    return success(await service.get_assistant(account_id, assistant_id))


@router.post("")
async def create_assistant(
    body: AssistantCreateRequest,
    account_id: str = Depends(require_account),
    service: AssistantService = Depends(get_assistant_service),
) -> Dict[str, Any]:
    return await to_client_envelope(service.create_assistant(account_id, body))


@router.patch("/{assistant_id}")
async def update_assistant(
    assistant_id: str,
    body: AssistantUpdateRequest,
    account_id: str = Depends(require_account),
    service: AssistantService = Depends(get_assistant_service),
) -> Dict[str, Any]:
    return success(await service.update_assistant(account_id, assistant_id, body))


@router.delete("/{assistant_id}")
async def delete_assistant(
    assistant_id: str,
    account_id: str = Depends(require_account),
    service: AssistantService = Depends(get_assistant_service),
) -> Dict[str, Any]:
    await service.delete_assistant(account_id, assistant_id)
    return {"success": True, "message": "Assistant deleted successfully"}
