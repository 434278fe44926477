"""
Analytics dashboard and call history export.

Dashboard results are cached per account for analytics_cache_ttl_seconds
(5 minutes by default), so new calls can take that long to show up.
"""

import csv
import io
import logging
from collections import Counter
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, List, Optional

from voicematrix.storage.base import Storage
from voicematrix.types.call_logs import STATUS_DISPLAY, CallLog, CallStatus
from voicematrix.types.limits import is_unlimited
from voicematrix.usage.service import UsageLimitsService
from voicematrix.utils.cache import TTLCache
from voicematrix.utils.formatting import days_remaining, format_duration

logger = logging.getLogger(__name__)

HISTORY_LIMIT = 50
EXPORT_LIMIT = 1000
CSV_COLUMNS = ["Date", "Time", "Duration", "Status", "From", "To", "Summary"]


def _history_item(call: CallLog) -> Dict[str, Any]:
    status = call.status.value
    return {
        "id": call.id,
        "started_at": call.started_at.isoformat() if call.started_at else None,
        "ended_at": call.ended_at.isoformat() if call.ended_at else None,
        "duration": format_duration(call.duration_seconds),
        "duration_seconds": call.duration_seconds,
        "status": status,
        "status_display": STATUS_DISPLAY.get(status, status),
        "from_number": call.caller_number or "Unknown",
        "summary": call.summary or "No summary available",
    }


def call_statistics(calls: List[CallLog]) -> Dict[str, Any]:
    total = len(calls)
    completed = sum(1 for c in calls if c.status == CallStatus.COMPLETED)
    total_duration = sum(c.duration_seconds for c in calls)
    return {
        "total_calls": total,
        "average_duration": round(total_duration / total) if total else 0,
        "success_rate": round(completed / total * 100) if total else 0,
        "status_distribution": dict(Counter(c.status.value for c in calls)),
    }


def calls_over_time(calls: List[CallLog], now: datetime, days: int = 7) -> List[Dict[str, Any]]:
    """Daily call counts for the last `days` days, oldest first, zero-filled."""
    counts = {(now - timedelta(days=i)).date().isoformat(): 0 for i in range(days)}
    for call in calls:
        if call.started_at is None:
            continue
        day = call.started_at.astimezone(timezone.utc).date().isoformat()
        if day in counts:
            counts[day] += 1
    return [{"x": day, "y": counts[day]} for day in sorted(counts)]


def hourly_distribution(calls: List[CallLog]) -> List[int]:
    hours = [0] * 24
    for call in calls:
        if call.started_at is not None:
            hours[call.started_at.astimezone(timezone.utc).hour] += 1
    return hours


class AnalyticsService:
    def __init__(self, storage: Storage, usage: UsageLimitsService, cache_ttl_seconds: float = 300):
        self._storage = storage
        self._usage = usage
        self._cache: TTLCache[Dict[str, Any]] = TTLCache(ttl_seconds=cache_ttl_seconds, name="dashboard")

    async def _all_calls(self, account_id: str, limit: Optional[int] = None) -> List[CallLog]:
        calls: List[CallLog] = []
        offset = 0
        while True:
            page_size = 500 if limit is None else min(500, limit - len(calls))
            page, total = await self._storage.list_call_logs(account_id, limit=page_size, offset=offset)
            calls.extend(page)
            offset += len(page)
            if not page or offset >= total or (limit is not None and len(calls) >= limit):
                return calls

    async def get_dashboard(self, account_id: str, now: Optional[datetime] = None) -> Dict[str, Any]:
        cache_key = f"dashboard-{account_id}"
        cached = self._cache.get(cache_key)
        if cached is not None:
            return cached

        now = now or datetime.now(timezone.utc)
        calls = await self._all_calls(account_id)
        stats = call_statistics(calls)
        limits = await self._usage.get_user_limits(account_id)
        account = await self._storage.get_account(account_id)

        if is_unlimited(limits.max_call_time_seconds):
            minutes_remaining = None
        else:
            minutes_remaining = round(limits.remaining_call_time_seconds / 60, 1)

        dashboard = {
            "metrics": {
                "total_calls": stats["total_calls"],
                "average_duration": stats["average_duration"],
                "success_rate": stats["success_rate"],
                "minutes_remaining": minutes_remaining,
            },
            "charts": {
                "calls_over_time": calls_over_time(calls, now),
                "call_status_distribution": stats["status_distribution"],
                "hourly_distribution": hourly_distribution(calls),
            },
            "call_history": [_history_item(c) for c in calls[:HISTORY_LIMIT]],
            "user_info": {
                "is_demo": bool(account and account.is_demo_user),
                "demo_expires_at": (
                    account.demo_expires_at.isoformat()
                    if account and account.demo_expires_at else None
                ),
                "days_remaining": days_remaining(account.demo_expires_at if account else None, now),
            },
        }
        self._cache.set(cache_key, dashboard)
        return dashboard

    def clear_account_cache(self, account_id: str) -> None:
        self._cache.invalidate(f"dashboard-{account_id}")

    async def export_calls_csv(self, account_id: str) -> str:
        calls = await self._all_calls(account_id, limit=EXPORT_LIMIT)
        numbers = {p.id: p.phone_number for p in await self._storage.list_phone_numbers(account_id)}
        buffer = io.StringIO()
        writer = csv.writer(buffer)
        writer.writerow(CSV_COLUMNS)
        for call in calls:
            started = call.started_at.astimezone(timezone.utc) if call.started_at else None
            status = call.status.value
            writer.writerow([
                started.strftime("%Y-%m-%d") if started else "",
                started.strftime("%H:%M:%S") if started else "",
                format_duration(call.duration_seconds),
                STATUS_DISPLAY.get(status, status),
                call.caller_number or "Unknown",
                numbers.get(call.phone_number_id, "Unknown"),
                call.summary or "",
            ])
        logger.info("Exported %d calls", len(calls))
        return buffer.getvalue()
