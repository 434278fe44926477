"""
Call log endpoints.
"""

from typing import Any, Dict, Optional

from fastapi import APIRouter, Depends, Query

from voicematrix.services.call_logs import MAX_PAGE_SIZE, CallLogService

from ..auth import require_account
from ..dependencies import get_call_log_service
from ..envelope import success

router = APIRouter(prefix="/call-logs", tags=["call-logs"])


@router.get("")
async def list_call_logs(
    limit: int = Query(50, ge=1, le=MAX_PAGE_SIZE),
    offset: int = Query(0, ge=0),
    assistant_id: Optional[str] = Query(None),
    account_id: str = Depends(require_account),
    service: CallLogService = Depends(get_call_log_service),
) -> Dict[str, Any]:
    page = await service.list_call_logs(
        account_id, limit=limit, offset=offset, assistant_id=assistant_id
    )
    return success(page)


@router.get("/usage")
async def get_usage_summary(
    account_id: str = Depends(require_account),
    service: CallLogService = Depends(get_call_log_service),
) -> Dict[str, Any]:
    return success(await service.get_usage_summary(account_id))


@router.get("/{call_log_id}")
async def get_call_log(
    call_log_id: str,
    account_id: str = Depends(require_account),
    service: CallLogService = Depends(get_call_log_service),
) -> Dict[str, Any]:
    return success(await service.get_call_log(account_id, call_log_id))
