"""
Append-only usage ledger.

Every quota mutation and every auto-deletion step writes exactly one entry
here. Entries are never updated or deleted except by account cascade.
"""

import logging
from typing import Any, Dict, List, Optional

from voicematrix.storage.base import Storage
from voicematrix.types.limits import TriggerReason, UsageAction, UsageLogEntry
from voicematrix.utils.logging import mask_account_id

logger = logging.getLogger(__name__)


class UsageLedger:
    def __init__(self, storage: Storage):
        self._storage = storage

    async def record(
        self,
        account_id: str,
        action_type: UsageAction,
        resource_id: Optional[str] = None,
        assistant_count_change: int = 0,
        call_time_change_seconds: int = 0,
        trigger_reason: Optional[TriggerReason] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> UsageLogEntry:
        entry = await self._storage.append_usage_log(
            UsageLogEntry(
                account_id=account_id,
                action_type=action_type,
                resource_id=resource_id,
                assistant_count_change=assistant_count_change,
                call_time_change_seconds=call_time_change_seconds,
                trigger_reason=trigger_reason,
                details=details or {},
            )
        )
        logger.debug(
            "Ledger %s for %s",
            action_type.value,
            mask_account_id(account_id),
            extra={"resource_id": resource_id},
        )
        return entry

    async def history(self, account_id: str, limit: int = 50) -> List[UsageLogEntry]:
        """Newest entries first."""
        return await self._storage.list_usage_logs(account_id, limit=limit)
