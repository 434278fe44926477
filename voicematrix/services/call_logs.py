"""
Call logs and Vapi call events.

Vapi posts three event types for each call:

    call.started        -> insert an in_progress call log
    call.ended          -> set status and duration, then charge the call time
                           to the owning account (may trigger auto-deletion;
                           a demo account left with no assistants is purged)
    end-of-call-report  -> attach transcript, summary and analysis

Call time is charged once per call: the close-out is a conditional update
that only succeeds while ended_at is unset, so a repeated or concurrent
call.ended updates nothing.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from voicematrix.exceptions import ErrorCode, ResourceNotFoundError
from voicematrix.services.accounts import DemoAccountService
from voicematrix.storage.base import Storage
from voicematrix.types.call_logs import (
    CallLog,
    CallLogPage,
    CallStatus,
    CallUsageSummary,
    map_ended_reason,
)
from voicematrix.types.limits import CallTimeResult, is_unlimited
from voicematrix.usage.service import UsageLimitsService
from voicematrix.utils.formatting import format_duration
from voicematrix.utils.logging import mask_account_id, mask_phone_number

logger = logging.getLogger(__name__)

MAX_PAGE_SIZE = 100
_USAGE_SCAN_PAGE = 500


def parse_timestamp(value: Any) -> Optional[datetime]:
    """Vapi sends ISO-8601 strings; older payloads use epoch milliseconds."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        return datetime.fromtimestamp(value / 1000, tz=timezone.utc)
    try:
        parsed = datetime.fromisoformat(str(value).replace("Z", "+00:00"))
    except ValueError:
        logger.warning("Unparseable timestamp in Vapi event: %r", value)
        return None
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)


def call_duration_seconds(started_at: Optional[datetime], ended_at: Optional[datetime]) -> int:
    if started_at is None or ended_at is None:
        return 0
    return max(0, round((ended_at - started_at).total_seconds()))


class CallLogService:
    def __init__(
        self,
        storage: Storage,
        usage: UsageLimitsService,
        demo_accounts: Optional[DemoAccountService] = None,
    ):
        self._storage = storage
        self._usage = usage
        self._demo_accounts = demo_accounts

    async def list_call_logs(
        self,
        account_id: str,
        limit: int = 50,
        offset: int = 0,
        assistant_id: Optional[str] = None,
    ) -> CallLogPage:
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        offset = max(0, offset)
        items, total = await self._storage.list_call_logs(
            account_id, limit=limit, offset=offset, assistant_id=assistant_id
        )
        return CallLogPage(items=items, total=total, limit=limit, offset=offset)

    async def get_call_log(self, account_id: str, call_log_id: str) -> CallLog:
        call_log = await self._storage.get_call_log(account_id, call_log_id)
        if call_log is None:
            raise ResourceNotFoundError(
                "Call log not found",
                resource_type="call_log",
                resource_id=call_log_id,
                error_code=ErrorCode.CALL_LOG_NOT_FOUND,
            )
        return call_log

    async def get_usage_summary(self, account_id: str) -> CallUsageSummary:
        total_seconds = 0
        call_count = 0
        latest_call: Optional[datetime] = None
        offset = 0
        while True:
            page, total = await self._storage.list_call_logs(
                account_id, limit=_USAGE_SCAN_PAGE, offset=offset
            )
            for call_log in page:
                total_seconds += call_log.duration_seconds
                if latest_call is None and call_log.started_at is not None:
                    latest_call = call_log.started_at
            call_count = total
            offset += len(page)
            if not page or offset >= total:
                break

        limits = await self._usage.get_user_limits(account_id)
        remaining_minutes = None
        if not is_unlimited(limits.max_call_time_seconds):
            remaining_minutes = round(limits.remaining_call_time_seconds / 60, 2)

        return CallUsageSummary(
            total_call_seconds=total_seconds,
            total_call_minutes=round(total_seconds / 60, 2),
            call_count=call_count,
            latest_call=latest_call,
            formatted_duration=format_duration(total_seconds),
            remaining_minutes=remaining_minutes,
            percent_used=limits.usage_percentage.call_time,
        )

    # -- Vapi events --------------------------------------------------------

    async def handle_event(self, event: Dict[str, Any]) -> Dict[str, Any]:
        """Dispatch one Vapi webhook event. Unknown types are acknowledged and ignored."""
        event_type = event.get("type") or (event.get("message") or {}).get("type")
        call = event.get("call") or {}
        logger.info("Vapi event %s for call %s", event_type, call.get("id"))

        if event_type == "call.started":
            await self.handle_call_started(call)
        elif event_type == "call.ended":
            await self.handle_call_ended(call)
        elif event_type == "end-of-call-report":
            await self.handle_end_of_call_report(event)
        else:
            logger.debug("Ignoring Vapi event type %s", event_type)
        return {"received": True}

    async def handle_call_started(self, call: Dict[str, Any]) -> Optional[CallLog]:
        vapi_call_id = call.get("id")
        if not vapi_call_id:
            logger.warning("call.started without a call id")
            return None

        existing = await self._storage.get_call_log_by_vapi_id(vapi_call_id)
        if existing is not None:
            return existing

        assistant = await self._storage.get_assistant_by_vapi_id(call.get("assistantId") or "")
        if assistant is None:
            logger.error("No assistant for Vapi assistant %s", call.get("assistantId"))
            return None

        phone_number_id = None
        if call.get("phoneNumberId"):
            phone = await self._storage.get_phone_number_by_vapi_id(call["phoneNumberId"])
            phone_number_id = phone.id if phone else None

        caller_number = (call.get("customer") or {}).get("number")
        call_log = await self._storage.insert_call_log(
            CallLog(
                id="",
                account_id=assistant.account_id,
                assistant_id=assistant.id,
                phone_number_id=phone_number_id,
                vapi_call_id=vapi_call_id,
                caller_number=caller_number,
                status=CallStatus.IN_PROGRESS,
                started_at=parse_timestamp(call.get("startedAt")) or datetime.now(timezone.utc),
            )
        )
        logger.info(
            "Call %s started for %s from %s",
            vapi_call_id,
            mask_account_id(assistant.account_id),
            mask_phone_number(caller_number) if caller_number else "unknown",
        )
        return call_log

    async def handle_call_ended(self, call: Dict[str, Any]) -> Optional[CallTimeResult]:
        vapi_call_id = call.get("id")
        call_log = await self._storage.get_call_log_by_vapi_id(vapi_call_id) if vapi_call_id else None
        if call_log is None:
            logger.warning("call.ended for unknown call %s", vapi_call_id)
            return None
        if call_log.ended_at is not None:
            logger.info("Call %s already ended, ignoring repeat event", vapi_call_id)
            return None

        started_at = parse_timestamp(call.get("startedAt")) or call_log.started_at
        ended_at = parse_timestamp(call.get("endedAt")) or datetime.now(timezone.utc)
        duration = call_duration_seconds(started_at, ended_at)

        closed = await self._storage.close_call_log(call_log.id, {
            "status": map_ended_reason(call.get("endedReason")),
            "duration_seconds": duration,
            "ended_at": ended_at,
        })
        if closed is None:
            logger.info("Call %s closed by a concurrent event, ignoring", vapi_call_id)
            return None

        if duration <= 0:
            return None

        result = await self._usage.add_call_time(call_log.account_id, duration, call_id=call_log.id)
        if result.auto_deletion is not None:
            logger.warning(
                "Call %s pushed %s over its call time limit (auto-deletion success=%s)",
                vapi_call_id,
                mask_account_id(call_log.account_id),
                result.auto_deletion.success,
            )
            if self._demo_accounts is not None:
                result.account_purged = await self._demo_accounts.purge_exhausted_account(
                    call_log.account_id
                )
        return result

    async def handle_end_of_call_report(self, event: Dict[str, Any]) -> Optional[CallLog]:
        call = event.get("call") or {}
        vapi_call_id = call.get("id")
        call_log = await self._storage.get_call_log_by_vapi_id(vapi_call_id) if vapi_call_id else None
        if call_log is None:
            logger.warning("end-of-call-report for unknown call %s", vapi_call_id)
            return None

        analysis = event.get("analysis") or {}
        success_evaluation = analysis.get("successEvaluation")
        return await self._storage.update_call_log(call_log.id, {
            "transcript": event.get("transcript"),
            "summary": event.get("summary"),
            "structured_data": analysis.get("structuredData"),
            "success_evaluation": str(success_evaluation) if success_evaluation is not None else None,
        })
