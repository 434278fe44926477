"""
Per-account quota counters.

This module provides:
- get_or_init_quota: lazily create the quota record with plan defaults
- increment/decrement_assistant_count: +1 / -1 (clamped at zero)
- add_call_time: atomic add that reports whether the call-time limit is exceeded
- reset_call_time_usage: billing-cycle reset (never called by auto-deletion)
- record_deletion: auto-deletion bookkeeping

Every counter change is an atomic storage update followed by exactly one
ledger entry. The quota store never triggers auto-deletion itself; see
UsageLimitsService.add_call_time.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from voicematrix.exceptions import ValidationError
from voicematrix.storage.base import Storage
from voicematrix.types.limits import (
    CallTimeUpdate,
    PlanType,
    QuotaRecord,
    TriggerReason,
    UsageAction,
    is_unlimited,
)
from voicematrix.usage.ledger import UsageLedger
from voicematrix.utils.logging import mask_account_id

logger = logging.getLogger(__name__)


class QuotaStore:
    """Atomic quota mutations, each paired with a ledger entry."""

    def __init__(self, storage: Storage, ledger: UsageLedger):
        self._storage = storage
        self._ledger = ledger

    async def get_or_init_quota(
        self,
        account_id: str,
        plan_type: Optional[PlanType] = None,
    ) -> QuotaRecord:
        """
        Get the account's quota record, creating it with plan defaults.

        plan_type only applies when the record does not exist yet. Without
        one, the plan comes from the account profile, or free when there is
        no profile.
        """
        quota = await self._storage.get_quota(account_id)
        if quota is not None:
            return quota

        if plan_type is None:
            account = await self._storage.get_account(account_id)
            plan_type = account.plan_type if account else PlanType.FREE
        quota = await self._storage.create_quota(QuotaRecord.for_plan(account_id, plan_type))
        logger.info(
            "Initialized %s quota for %s",
            quota.plan_type.value,
            mask_account_id(account_id),
        )
        return quota

    async def increment_assistant_count(
        self,
        account_id: str,
        resource_id: Optional[str] = None,
    ) -> QuotaRecord:
        await self.get_or_init_quota(account_id)
        quota = await self._storage.adjust_quota(account_id, assistant_delta=1)
        await self._ledger.record(
            account_id,
            UsageAction.ASSISTANT_CREATED,
            resource_id=resource_id,
            assistant_count_change=1,
            trigger_reason=TriggerReason.USER_ACTION,
        )
        return quota

    async def decrement_assistant_count(
        self,
        account_id: str,
        resource_id: Optional[str] = None,
        trigger_reason: TriggerReason = TriggerReason.USER_ACTION,
    ) -> QuotaRecord:
        await self.get_or_init_quota(account_id)
        quota = await self._storage.adjust_quota(account_id, assistant_delta=-1)
        await self._ledger.record(
            account_id,
            UsageAction.ASSISTANT_DELETED,
            resource_id=resource_id,
            assistant_count_change=-1,
            trigger_reason=trigger_reason,
        )
        return quota

    async def add_call_time(
        self,
        account_id: str,
        seconds: int,
        call_id: Optional[str] = None,
    ) -> CallTimeUpdate:
        """
        Add completed call seconds and report whether the limit is now exceeded.

        Exceeded means strictly greater than the limit; unlimited plans never
        exceed. A breach also writes a limit_exceeded ledger entry.
        """
        if seconds < 0:
            raise ValidationError("Call duration cannot be negative", field="seconds")

        await self.get_or_init_quota(account_id)
        quota = await self._storage.adjust_quota(account_id, call_time_delta=seconds)

        new_total = quota.used_call_time_seconds
        limit = quota.max_call_time_seconds
        update = CallTimeUpdate(
            old_total=new_total - seconds,
            new_total=new_total,
            limit=limit,
            limit_exceeded=not is_unlimited(limit) and new_total > limit,
        )

        await self._ledger.record(
            account_id,
            UsageAction.CALL_COMPLETED,
            resource_id=call_id,
            call_time_change_seconds=seconds,
            trigger_reason=TriggerReason.USER_ACTION,
        )

        if update.limit_exceeded:
            logger.warning(
                "Call time limit exceeded for %s (%s/%s seconds)",
                mask_account_id(account_id),
                new_total,
                limit,
            )
            details: Dict[str, Any] = {
                "old_total": update.old_total,
                "new_total": update.new_total,
                "limit": limit,
                "overage": update.overage,
            }
            await self._ledger.record(
                account_id,
                UsageAction.LIMIT_EXCEEDED,
                resource_id=call_id,
                trigger_reason=TriggerReason.LIMIT_EXCEEDED,
                details=details,
            )

        return update

    async def reset_call_time_usage(self, account_id: str) -> QuotaRecord:
        """Start a new billing cycle. Auto-deletion never calls this."""
        await self.get_or_init_quota(account_id)
        before = await self._storage.get_quota(account_id)
        quota = await self._storage.reset_call_time(account_id)
        released = before.used_call_time_seconds if before else 0
        await self._ledger.record(
            account_id,
            UsageAction.BILLING_CYCLE_RESET,
            call_time_change_seconds=-released,
            trigger_reason=TriggerReason.AUTO_RESET,
        )
        logger.info("Reset call time for %s", mask_account_id(account_id))
        return quota

    async def record_deletion(self, account_id: str) -> QuotaRecord:
        return await self._storage.record_deletion(account_id, datetime.now(timezone.utc))
