"""
Analytics dashboard and CSV export endpoints.
"""

import logging
from typing import Any, Dict

from fastapi import APIRouter, Depends
from fastapi.responses import Response

from voicematrix.services.analytics import AnalyticsService
from voicematrix.services.call_logs import CallLogService

from ..auth import require_account
from ..dependencies import get_analytics_service, get_call_log_service
from ..envelope import success

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("/dashboard")
async def get_dashboard(
    account_id: str = Depends(require_account),
    service: AnalyticsService = Depends(get_analytics_service),
) -> Dict[str, Any]:
    return success(await service.get_dashboard(account_id))


@router.get("/export/calls")
async def export_calls(
    account_id: str = Depends(require_account),
    service: AnalyticsService = Depends(get_analytics_service),
) -> Response:
    csv_data = await service.export_calls_csv(account_id)
    return Response(
        content=csv_data,
        media_type="text/csv",
        headers={"Content-Disposition": 'attachment; filename="call-history.csv"'},
    )


@router.get("/calls/{call_log_id}")
async def get_call(
    call_log_id: str,
    account_id: str = Depends(require_account),
    call_logs: CallLogService = Depends(get_call_log_service),
) -> Dict[str, Any]:
    return success(await call_logs.get_call_log(account_id, call_log_id))
