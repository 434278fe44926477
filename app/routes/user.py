"""
Per-account limits, usage ledger and demo time endpoints.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends, Query

from voicematrix.services.accounts import DemoAccountService
from voicematrix.usage import UsageLimitsService

from ..auth import require_account
from ..dependencies import get_demo_account_service, get_usage_service
from ..envelope import success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/user", tags=["user"])


@router.get("/limits")
async def get_limits(
    account_id: str = Depends(require_account),
    usage: UsageLimitsService = Depends(get_usage_service),
) -> Dict[str, Any]:
    """Limits view. warnings stays empty: nothing warns before a limit is hit."""
    limits = await usage.get_user_limits(account_id)
    response = success(limits)
    response["warnings"] = []
    return response


@router.get("/usage-history")
async def get_usage_history(
    limit: int = Query(50, ge=1, le=500),
    account_id: str = Depends(require_account),
    usage: UsageLimitsService = Depends(get_usage_service),
) -> Dict[str, Any]:
    return success(await usage.get_usage_history(account_id, limit=limit))


@router.get("/demo-time")
async def get_demo_time(
    account_id: str = Depends(require_account),
    demo_accounts: DemoAccountService = Depends(get_demo_account_service),
) -> Dict[str, Any]:
    return success(await demo_accounts.demo_time_remaining(account_id))
