"""
Usage limits facade.

Ties the quota store, ledger, limit evaluator and auto-deletion orchestrator
together. Request handlers and the call webhook only talk to this class.
"""

import logging
from typing import List, Optional

from voicematrix.exceptions import NoResourceToDeleteError
from voicematrix.types.limits import (
    AssistantCapacity,
    AutoDeletionResult,
    CallTimeResult,
    QuotaRecord,
    UsageLogEntry,
    UserLimits,
)
from voicematrix.usage.auto_deletion import AutoDeletionOrchestrator
from voicematrix.usage.evaluator import LimitEvaluator
from voicematrix.usage.ledger import UsageLedger
from voicematrix.usage.quota_store import QuotaStore
from voicematrix.utils.logging import mask_account_id

logger = logging.getLogger(__name__)


class UsageLimitsService:
    def __init__(
        self,
        quota_store: QuotaStore,
        ledger: UsageLedger,
        evaluator: LimitEvaluator,
        orchestrator: AutoDeletionOrchestrator,
    ):
        self.quota_store = quota_store
        self.ledger = ledger
        self.evaluator = evaluator
        self.orchestrator = orchestrator

    async def can_create_assistant(self, account_id: str) -> AssistantCapacity:
        return await self.evaluator.can_create_assistant(account_id)

    async def get_user_limits(self, account_id: str) -> UserLimits:
        return await self.evaluator.get_user_limits(account_id)

    async def get_usage_history(self, account_id: str, limit: int = 50) -> List[UsageLogEntry]:
        return await self.ledger.history(account_id, limit=limit)

    async def increment_assistant_count(self, account_id: str, assistant_id: str) -> QuotaRecord:
        return await self.quota_store.increment_assistant_count(account_id, resource_id=assistant_id)

    async def decrement_assistant_count(self, account_id: str, assistant_id: str) -> QuotaRecord:
        return await self.quota_store.decrement_assistant_count(account_id, resource_id=assistant_id)

    async def add_call_time(
        self, account_id: str, seconds: int, call_id: Optional[str] = None
    ) -> CallTimeResult:
        """
        Record a completed call; on a breach, run auto-deletion before returning.

        An account with nothing left to delete keeps its recorded breach and
        gets an unsuccessful AutoDeletionResult instead of an error.
        """
        update = await self.quota_store.add_call_time(account_id, seconds, call_id=call_id)
        if not update.limit_exceeded:
            return CallTimeResult(update=update)

        try:
            outcome = await self.orchestrator.run(account_id)
        except NoResourceToDeleteError as e:
            logger.warning(
                "Call time exceeded for %s but nothing to delete",
                mask_account_id(account_id),
            )
            outcome = AutoDeletionResult(success=False, call_time_reset=False, error=e.message)

        return CallTimeResult(update=update, auto_deletion=outcome)

    async def reset_call_time_usage(self, account_id: str) -> QuotaRecord:
        return await self.quota_store.reset_call_time_usage(account_id)
