"""
Read-side limit evaluation.

compute_limits_view is pure; LimitEvaluator adds the storage reads and the
demo-expiry check.
"""

import logging
from typing import Optional

from voicematrix.accounts import ensure_account_active
from voicematrix.storage.base import Storage
from voicematrix.types.accounts import Account
from voicematrix.types.limits import (
    UNLIMITED,
    AssistantCapacity,
    PlanType,
    QuotaRecord,
    UsagePercentage,
    UserLimits,
    is_unlimited,
)
from voicematrix.usage.quota_store import QuotaStore

logger = logging.getLogger(__name__)


def _percentage(used: int, maximum: int) -> float:
    if is_unlimited(maximum) or maximum <= 0:
        return 0.0
    return round(used / maximum * 100, 1)


def _remaining(used: int, maximum: int) -> int:
    if is_unlimited(maximum):
        return UNLIMITED
    return max(0, maximum - used)


def compute_limits_view(quota: QuotaRecord) -> UserLimits:
    """Derive remaining values and usage percentages from a quota record."""
    return UserLimits(
        account_id=quota.account_id,
        plan_type=quota.plan_type,
        max_assistants=quota.max_assistants,
        max_call_time_seconds=quota.max_call_time_seconds,
        current_assistants=quota.current_assistants,
        used_call_time_seconds=quota.used_call_time_seconds,
        last_deletion_at=quota.last_deletion_at,
        deletion_count=quota.deletion_count,
        remaining_assistants=_remaining(quota.current_assistants, quota.max_assistants),
        remaining_call_time_seconds=_remaining(
            quota.used_call_time_seconds, quota.max_call_time_seconds
        ),
        usage_percentage=UsagePercentage(
            assistants=_percentage(quota.current_assistants, quota.max_assistants),
            call_time=_percentage(quota.used_call_time_seconds, quota.max_call_time_seconds),
        ),
    )


def assistant_capacity(quota: QuotaRecord) -> AssistantCapacity:
    if is_unlimited(quota.max_assistants):
        return AssistantCapacity(
            allowed=True,
            current=quota.current_assistants,
            max=UNLIMITED,
            remaining=UNLIMITED,
        )
    return AssistantCapacity(
        allowed=quota.current_assistants < quota.max_assistants,
        current=quota.current_assistants,
        max=quota.max_assistants,
        remaining=max(0, quota.max_assistants - quota.current_assistants),
    )


class LimitEvaluator:
    def __init__(self, storage: Storage, quota_store: QuotaStore):
        self._storage = storage
        self._quota_store = quota_store

    async def _quota(self, account_id: str, account: Optional[Account]) -> QuotaRecord:
        plan_type = account.plan_type if account else PlanType.FREE
        return await self._quota_store.get_or_init_quota(account_id, plan_type)

    async def can_create_assistant(self, account_id: str) -> AssistantCapacity:
        """Pure read apart from lazily creating the quota record."""
        account = await self._storage.get_account(account_id)
        return assistant_capacity(await self._quota(account_id, account))

    async def get_user_limits(self, account_id: str) -> UserLimits:
        """
        Return the limits view for an account.

        Raises AuthenticationError for an expired demo account, before any
        quota is read or created.
        """
        account = await ensure_account_active(self._storage, account_id)
        return compute_limits_view(await self._quota(account_id, account))
