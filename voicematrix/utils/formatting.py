"""Display helpers shared by the call log and analytics services."""

import math
from datetime import datetime, timezone
from typing import Optional


def format_duration(seconds: Optional[int]) -> str:
    """Format seconds as M:SS, or H:MM:SS from one hour up."""
    if not seconds or seconds < 0:
        return "0:00"
    seconds = int(seconds)
    hours, remainder = divmod(seconds, 3600)
    minutes, secs = divmod(remainder, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{secs:02d}"
    return f"{minutes}:{secs:02d}"


def days_remaining(expires_at: Optional[datetime], now: Optional[datetime] = None) -> int:
    """Whole days left until expires_at, rounded up; never negative."""
    if expires_at is None:
        return 0
    now = now or datetime.now(timezone.utc)
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    remaining = (expires_at - now).total_seconds() / 86400
    return max(0, math.ceil(remaining))
