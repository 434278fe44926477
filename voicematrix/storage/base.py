"""
Storage interface for Voice Matrix.

Production: Postgres via asyncpg (voicematrix.storage.postgres).
Dev/test: InMemoryStorage (voicematrix.storage.memory).

Quota counters are only ever changed through adjust_quota, reset_call_time
and record_deletion. Implementations must apply each of those as one atomic
update and return the row as it is after the update.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from voicematrix.types.accounts import Account
from voicematrix.types.assistants import Assistant
from voicematrix.types.call_logs import CallLog
from voicematrix.types.limits import QuotaRecord, UsageLogEntry
from voicematrix.types.phone_numbers import PhoneNumber


class Storage(ABC):
    """Abstract base class for storage implementations."""

    # -- accounts ---------------------------------------------------------

    @abstractmethod
    async def get_account(self, account_id: str) -> Optional[Account]:
        """Return the account profile, or None."""

    @abstractmethod
    async def save_account(self, account: Account) -> Account:
        """Insert or replace an account profile."""

    @abstractmethod
    async def list_expired_demo_accounts(self, now: datetime) -> List[Account]:
        """Return demo accounts whose demo_expires_at is before now."""

    @abstractmethod
    async def delete_account(self, account_id: str) -> bool:
        """Delete an account and every row that belongs to it."""

    # -- quotas -----------------------------------------------------------

    @abstractmethod
    async def get_quota(self, account_id: str) -> Optional[QuotaRecord]:
        """Return the quota record, or None if it was never created."""

    @abstractmethod
    async def create_quota(self, record: QuotaRecord) -> QuotaRecord:
        """Insert a quota record unless one exists; return the stored row."""

    @abstractmethod
    async def adjust_quota(
        self,
        account_id: str,
        assistant_delta: int = 0,
        call_time_delta: int = 0,
    ) -> QuotaRecord:
        """
        Atomically add the deltas to the counters, clamping at zero.

        Raises StorageError if the quota record does not exist.
        """

    @abstractmethod
    async def reset_call_time(self, account_id: str) -> QuotaRecord:
        """Atomically set used_call_time_seconds to zero."""

    @abstractmethod
    async def record_deletion(self, account_id: str, at: datetime) -> QuotaRecord:
        """Atomically stamp last_deletion_at and increment deletion_count."""

    # -- usage ledger -----------------------------------------------------

    @abstractmethod
    async def append_usage_log(self, entry: UsageLogEntry) -> UsageLogEntry:
        """Append a ledger entry and return it with id and created_at set."""

    @abstractmethod
    async def list_usage_logs(self, account_id: str, limit: int = 50) -> List[UsageLogEntry]:
        """Return the newest ledger entries first."""

    # -- assistants -------------------------------------------------------

    @abstractmethod
    async def list_assistants(self, account_id: str) -> List[Assistant]:
        """Return assistants newest first."""

    @abstractmethod
    async def get_assistant(self, account_id: str, assistant_id: str) -> Optional[Assistant]:
        ...

    @abstractmethod
    async def get_assistant_by_vapi_id(self, vapi_assistant_id: str) -> Optional[Assistant]:
        ...

    @abstractmethod
    async def get_oldest_assistant(self, account_id: str) -> Optional[Assistant]:
        """Return the assistant with the earliest created_at (ties by id)."""

    @abstractmethod
    async def count_assistants(self, account_id: str) -> int:
        ...

    @abstractmethod
    async def insert_assistant(self, assistant: Assistant) -> Assistant:
        ...

    @abstractmethod
    async def update_assistant(
        self, account_id: str, assistant_id: str, changes: Dict[str, Any]
    ) -> Optional[Assistant]:
        ...

    @abstractmethod
    async def delete_assistant(self, account_id: str, assistant_id: str) -> bool:
        """Returns True if deleted, False if not found."""

    # -- phone numbers ----------------------------------------------------

    @abstractmethod
    async def list_phone_numbers(
        self, account_id: str, assistant_id: Optional[str] = None
    ) -> List[PhoneNumber]:
        """Return phone numbers newest first, optionally only those assigned to an assistant."""

    @abstractmethod
    async def get_phone_number(self, account_id: str, phone_id: str) -> Optional[PhoneNumber]:
        ...

    @abstractmethod
    async def find_phone_number(self, number: str) -> Optional[PhoneNumber]:
        """Look up a number across all accounts (numbers are globally unique)."""

    @abstractmethod
    async def get_phone_number_by_vapi_id(self, vapi_phone_id: str) -> Optional[PhoneNumber]:
        ...

    @abstractmethod
    async def insert_phone_number(self, phone: PhoneNumber) -> PhoneNumber:
        ...

    @abstractmethod
    async def update_phone_number(
        self, account_id: str, phone_id: str, changes: Dict[str, Any]
    ) -> Optional[PhoneNumber]:
        ...

    @abstractmethod
    async def delete_phone_number(self, account_id: str, phone_id: str) -> bool:
        ...

    # -- call logs --------------------------------------------------------

    @abstractmethod
    async def insert_call_log(self, call_log: CallLog) -> CallLog:
        ...

    @abstractmethod
    async def get_call_log(self, account_id: str, call_log_id: str) -> Optional[CallLog]:
        ...

    @abstractmethod
    async def get_call_log_by_vapi_id(self, vapi_call_id: str) -> Optional[CallLog]:
        ...

    @abstractmethod
    async def update_call_log(self, call_log_id: str, changes: Dict[str, Any]) -> Optional[CallLog]:
        ...

    @abstractmethod
    async def close_call_log(self, call_log_id: str, changes: Dict[str, Any]) -> Optional[CallLog]:
        """Apply changes only if the call has not ended yet.

        Returns the updated log, or None when the log is missing or another
        caller closed it first. changes must set ended_at.
        """

    @abstractmethod
    async def list_call_logs(
        self,
        account_id: str,
        limit: int = 50,
        offset: int = 0,
        assistant_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> Tuple[List[CallLog], int]:
        """Return (page newest first, total matching rows)."""

    async def close(self) -> None:
        """Release connections. The default does nothing."""
