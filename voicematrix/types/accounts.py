"""Account (profile) model and demo expiry helpers."""

from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel

from voicematrix.types.limits import PlanType


class Account(BaseModel):
    id: str
    email: Optional[str] = None
    plan_type: PlanType = PlanType.FREE
    is_demo_user: bool = False
    demo_expires_at: Optional[datetime] = None
    created_at: Optional[datetime] = None

    def is_demo_expired(self, now: Optional[datetime] = None) -> bool:
        """A demo account is expired once demo_expires_at is in the past."""
        if not self.is_demo_user or self.demo_expires_at is None:
            return False
        now = now or datetime.now(timezone.utc)
        expires_at = self.demo_expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return expires_at < now


class DemoTimeRemaining(BaseModel):
    is_demo_user: bool
    days_remaining: Optional[int] = None
    expires_at: Optional[datetime] = None
    expired: bool = False
