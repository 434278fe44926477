"""
In-memory storage for local development and tests.

Each method finishes without awaiting, so every quota update is atomic with
respect to the event loop. Returned models are copies; mutating them does not
change stored state.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from voicematrix.exceptions import StorageError
from voicematrix.storage.base import Storage
from voicematrix.types.accounts import Account
from voicematrix.types.assistants import Assistant
from voicematrix.types.call_logs import CallLog
from voicematrix.types.limits import QuotaRecord, UsageLogEntry
from voicematrix.types.phone_numbers import PhoneNumber

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _newest_first(items, key: str = "created_at"):
    floor = datetime.min.replace(tzinfo=timezone.utc)
    return sorted(items, key=lambda item: (getattr(item, key) or floor, item.id), reverse=True)


class InMemoryStorage(Storage):
    """Dictionary-backed Storage implementation."""

    def __init__(self) -> None:
        self._accounts: Dict[str, Account] = {}
        self._quotas: Dict[str, QuotaRecord] = {}
        self._usage_logs: List[UsageLogEntry] = []
        self._assistants: Dict[str, Assistant] = {}
        self._phone_numbers: Dict[str, PhoneNumber] = {}
        self._call_logs: Dict[str, CallLog] = {}
        logger.info("Initialized in-memory storage")

    # -- accounts ---------------------------------------------------------

    async def get_account(self, account_id: str) -> Optional[Account]:
        account = self._accounts.get(account_id)
        return account.model_copy() if account else None

    async def save_account(self, account: Account) -> Account:
        stored = account.model_copy(update={"created_at": account.created_at or _now()})
        self._accounts[stored.id] = stored
        return stored.model_copy()

    async def list_expired_demo_accounts(self, now: datetime) -> List[Account]:
        return [
            account.model_copy()
            for account in self._accounts.values()
            if account.is_demo_expired(now)
        ]

    async def delete_account(self, account_id: str) -> bool:
        existed = self._accounts.pop(account_id, None) is not None
        self._quotas.pop(account_id, None)
        self._usage_logs = [e for e in self._usage_logs if e.account_id != account_id]
        for table in (self._assistants, self._phone_numbers, self._call_logs):
            for row_id in [k for k, v in table.items() if v.account_id == account_id]:
                del table[row_id]
        return existed

    # -- quotas -----------------------------------------------------------

    async def get_quota(self, account_id: str) -> Optional[QuotaRecord]:
        quota = self._quotas.get(account_id)
        return quota.model_copy() if quota else None

    async def create_quota(self, record: QuotaRecord) -> QuotaRecord:
        existing = self._quotas.get(record.account_id)
        if existing is None:
            now = _now()
            existing = record.model_copy(update={"created_at": now, "updated_at": now})
            self._quotas[record.account_id] = existing
        return existing.model_copy()

    def _require_quota(self, account_id: str) -> QuotaRecord:
        quota = self._quotas.get(account_id)
        if quota is None:
            raise StorageError(
                operation="adjust_quota",
                internal_message=f"No quota record for account {account_id}",
            )
        return quota

    async def adjust_quota(
        self,
        account_id: str,
        assistant_delta: int = 0,
        call_time_delta: int = 0,
    ) -> QuotaRecord:
        quota = self._require_quota(account_id)
        updated = quota.model_copy(update={
            "current_assistants": max(0, quota.current_assistants + assistant_delta),
            "used_call_time_seconds": max(0, quota.used_call_time_seconds + call_time_delta),
            "updated_at": _now(),
        })
        self._quotas[account_id] = updated
        return updated.model_copy()

    async def reset_call_time(self, account_id: str) -> QuotaRecord:
        quota = self._require_quota(account_id)
        updated = quota.model_copy(update={"used_call_time_seconds": 0, "updated_at": _now()})
        self._quotas[account_id] = updated
        return updated.model_copy()

    async def record_deletion(self, account_id: str, at: datetime) -> QuotaRecord:
        quota = self._require_quota(account_id)
        updated = quota.model_copy(update={
            "last_deletion_at": at,
            "deletion_count": quota.deletion_count + 1,
            "updated_at": _now(),
        })
        self._quotas[account_id] = updated
        return updated.model_copy()

    # -- usage ledger -----------------------------------------------------

    async def append_usage_log(self, entry: UsageLogEntry) -> UsageLogEntry:
        stored = entry.model_copy(update={
            "id": entry.id or str(uuid.uuid4()),
            "created_at": entry.created_at or _now(),
        })
        self._usage_logs.append(stored)
        return stored.model_copy()

    async def list_usage_logs(self, account_id: str, limit: int = 50) -> List[UsageLogEntry]:
        entries = [e for e in self._usage_logs if e.account_id == account_id]
        entries.reverse()
        return [e.model_copy() for e in entries[:limit]]

    # -- assistants -------------------------------------------------------

    async def list_assistants(self, account_id: str) -> List[Assistant]:
        rows = [a for a in self._assistants.values() if a.account_id == account_id]
        return [a.model_copy() for a in _newest_first(rows)]

    async def get_assistant(self, account_id: str, assistant_id: str) -> Optional[Assistant]:
        assistant = self._assistants.get(assistant_id)
        if assistant is None or assistant.account_id != account_id:
            return None
        return assistant.model_copy()

    async def get_assistant_by_vapi_id(self, vapi_assistant_id: str) -> Optional[Assistant]:
        for assistant in self._assistants.values():
            if assistant.vapi_assistant_id == vapi_assistant_id:
                return assistant.model_copy()
        return None

    async def get_oldest_assistant(self, account_id: str) -> Optional[Assistant]:
        rows = [a for a in self._assistants.values() if a.account_id == account_id]
        if not rows:
            return None
        return _newest_first(rows)[-1].model_copy()

    async def count_assistants(self, account_id: str) -> int:
        return sum(1 for a in self._assistants.values() if a.account_id == account_id)

    async def insert_assistant(self, assistant: Assistant) -> Assistant:
        now = _now()
        stored = assistant.model_copy(update={
            "id": assistant.id or str(uuid.uuid4()),
            "created_at": assistant.created_at or now,
            "updated_at": now,
        })
        self._assistants[stored.id] = stored
        return stored.model_copy()

    async def update_assistant(
        self, account_id: str, assistant_id: str, changes: Dict[str, Any]
    ) -> Optional[Assistant]:
        current = self._assistants.get(assistant_id)
        if current is None or current.account_id != account_id:
            return None
        updated = current.model_copy(update={**changes, "updated_at": _now()})
        self._assistants[assistant_id] = updated
        return updated.model_copy()

    async def delete_assistant(self, account_id: str, assistant_id: str) -> bool:
        current = self._assistants.get(assistant_id)
        if current is None or current.account_id != account_id:
            return False
        del self._assistants[assistant_id]
        for phone_id, phone in self._phone_numbers.items():
            if phone.assigned_assistant_id == assistant_id:
                self._phone_numbers[phone_id] = phone.model_copy(
                    update={"assigned_assistant_id": None}
                )
        for call_id, call_log in self._call_logs.items():
            if call_log.assistant_id == assistant_id:
                self._call_logs[call_id] = call_log.model_copy(update={"assistant_id": None})
        return True

    # -- phone numbers ----------------------------------------------------

    async def list_phone_numbers(
        self, account_id: str, assistant_id: Optional[str] = None
    ) -> List[PhoneNumber]:
        rows = [
            p for p in self._phone_numbers.values()
            if p.account_id == account_id
            and (assistant_id is None or p.assigned_assistant_id == assistant_id)
        ]
        return [p.model_copy() for p in _newest_first(rows)]

    async def get_phone_number(self, account_id: str, phone_id: str) -> Optional[PhoneNumber]:
        phone = self._phone_numbers.get(phone_id)
        if phone is None or phone.account_id != account_id:
            return None
        return phone.model_copy()

    async def find_phone_number(self, number: str) -> Optional[PhoneNumber]:
        for phone in self._phone_numbers.values():
            if phone.phone_number == number:
                return phone.model_copy()
        return None

    async def get_phone_number_by_vapi_id(self, vapi_phone_id: str) -> Optional[PhoneNumber]:
        for phone in self._phone_numbers.values():
            if phone.vapi_phone_id == vapi_phone_id:
                return phone.model_copy()
        return None

    async def insert_phone_number(self, phone: PhoneNumber) -> PhoneNumber:
        if any(p.phone_number == phone.phone_number for p in self._phone_numbers.values()):
            raise StorageError(
                operation="insert_phone_number",
                internal_message="duplicate phone_number",
            )
        now = _now()
        stored = phone.model_copy(update={
            "id": phone.id or str(uuid.uuid4()),
            "created_at": phone.created_at or now,
            "updated_at": now,
        })
        self._phone_numbers[stored.id] = stored
        return stored.model_copy()

    async def update_phone_number(
        self, account_id: str, phone_id: str, changes: Dict[str, Any]
    ) -> Optional[PhoneNumber]:
        current = self._phone_numbers.get(phone_id)
        if current is None or current.account_id != account_id:
            return None
        updated = current.model_copy(update={**changes, "updated_at": _now()})
        self._phone_numbers[phone_id] = updated
        return updated.model_copy()

    async def delete_phone_number(self, account_id: str, phone_id: str) -> bool:
        current = self._phone_numbers.get(phone_id)
        if current is None or current.account_id != account_id:
            return False
        del self._phone_numbers[phone_id]
        return True

    # -- call logs --------------------------------------------------------

    async def insert_call_log(self, call_log: CallLog) -> CallLog:
        stored = call_log.model_copy(update={
            "id": call_log.id or str(uuid.uuid4()),
            "started_at": call_log.started_at or _now(),
        })
        self._call_logs[stored.id] = stored
        return stored.model_copy()

    async def get_call_log(self, account_id: str, call_log_id: str) -> Optional[CallLog]:
        call_log = self._call_logs.get(call_log_id)
        if call_log is None or call_log.account_id != account_id:
            return None
        return call_log.model_copy()

    async def get_call_log_by_vapi_id(self, vapi_call_id: str) -> Optional[CallLog]:
        for call_log in self._call_logs.values():
            if call_log.vapi_call_id == vapi_call_id:
                return call_log.model_copy()
        return None

    async def update_call_log(self, call_log_id: str, changes: Dict[str, Any]) -> Optional[CallLog]:
        current = self._call_logs.get(call_log_id)
        if current is None:
            return None
        updated = current.model_copy(update=changes)
        self._call_logs[call_log_id] = updated
        return updated.model_copy()

    async def close_call_log(self, call_log_id: str, changes: Dict[str, Any]) -> Optional[CallLog]:
        current = self._call_logs.get(call_log_id)
        if current is None or current.ended_at is not None:
            return None
        updated = current.model_copy(update=changes)
        self._call_logs[call_log_id] = updated
        return updated.model_copy()

    async def list_call_logs(
        self,
        account_id: str,
        limit: int = 50,
        offset: int = 0,
        assistant_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> Tuple[List[CallLog], int]:
        rows = [
            c for c in self._call_logs.values()
            if c.account_id == account_id
            and (assistant_id is None or c.assistant_id == assistant_id)
            and (since is None or (c.started_at is not None and c.started_at >= since))
        ]
        ordered = _newest_first(rows, key="started_at")
        return [c.model_copy() for c in ordered[offset:offset + limit]], len(ordered)
