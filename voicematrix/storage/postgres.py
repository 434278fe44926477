"""
Postgres storage backed by an asyncpg pool.

Tables use the Supabase convention of a user_id column; rows are mapped to
models with an account_id field. Quota mutations are single
UPDATE ... RETURNING statements so concurrent requests never lose updates.
"""

from __future__ import annotations

import logging
import uuid
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Tuple

import asyncpg

from voicematrix.exceptions import StorageError
from voicematrix.storage.base import Storage
from voicematrix.types.accounts import Account
from voicematrix.types.assistants import Assistant
from voicematrix.types.call_logs import CallLog
from voicematrix.types.limits import QuotaRecord, UsageLogEntry
from voicematrix.types.phone_numbers import PhoneNumber

logger = logging.getLogger(__name__)

_ASSISTANT_COLUMNS = {"name", "vapi_assistant_id", "configuration"}
_PHONE_COLUMNS = {
    "friendly_name", "assigned_assistant_id", "notes", "status",
    "vapi_phone_id", "vapi_credential_id",
}
_CALL_LOG_COLUMNS = {
    "status", "duration_seconds", "ended_at", "transcript", "summary",
    "structured_data", "success_evaluation", "caller_number", "phone_number_id",
}

_QUOTA_COLUMNS = (
    "user_id, plan_type, max_assistants, max_call_time_seconds, current_assistants, "
    "used_call_time_seconds, last_deletion_at, deletion_count, created_at, updated_at"
)


def _coerce_uuid(value: Optional[str]) -> Optional[uuid.UUID]:
    """Parse an id; malformed ids simply match nothing."""
    if value is None:
        return None
    try:
        return uuid.UUID(str(value).strip())
    except ValueError:
        return None


def _row_dict(row: asyncpg.Record) -> Dict[str, Any]:
    data = {}
    for key, value in row.items():
        if isinstance(value, uuid.UUID):
            value = str(value)
        if key == "user_id":
            key = "account_id"
        data[key] = value
    return data


def _set_clause(changes: Dict[str, Any], allowed: Iterable[str], start: int) -> Tuple[str, List[Any]]:
    columns = [c for c in changes if c in allowed]
    if not columns:
        raise StorageError(operation="update", internal_message="no updatable columns given")
    parts = [f"{column} = ${start + i}" for i, column in enumerate(columns)]
    values = []
    for column in columns:
        value = changes[column]
        if column in ("assigned_assistant_id", "phone_number_id"):
            value = _coerce_uuid(value)
        elif hasattr(value, "value"):
            value = value.value
        values.append(value)
    return ", ".join(parts), values


class PostgresStorage(Storage):
    """Storage implementation over the Supabase Postgres database."""

    def __init__(self, pool: asyncpg.Pool) -> None:
        self._pool = pool

    async def _fetchrow(self, operation: str, query: str, *args) -> Optional[asyncpg.Record]:
        try:
            async with self._pool.acquire() as conn:
                return await conn.fetchrow(query, *args)
        except asyncpg.PostgresError as e:
            logger.error("Postgres %s failed: %s", operation, e)
            raise StorageError(operation=operation, original_error=e) from e

    async def _fetch(self, operation: str, query: str, *args) -> List[asyncpg.Record]:
        try:
            async with self._pool.acquire() as conn:
                return await conn.fetch(query, *args)
        except asyncpg.PostgresError as e:
            logger.error("Postgres %s failed: %s", operation, e)
            raise StorageError(operation=operation, original_error=e) from e

    async def _execute(self, operation: str, query: str, *args) -> str:
        try:
            async with self._pool.acquire() as conn:
                return await conn.execute(query, *args)
        except asyncpg.PostgresError as e:
            logger.error("Postgres %s failed: %s", operation, e)
            raise StorageError(operation=operation, original_error=e) from e

    # -- accounts ---------------------------------------------------------

    async def get_account(self, account_id: str) -> Optional[Account]:
        account_uuid = _coerce_uuid(account_id)
        if account_uuid is None:
            return None
        row = await self._fetchrow(
            "get_account",
            "SELECT id, email, plan_type, is_demo_user, demo_expires_at, created_at "
            "FROM profiles WHERE id = $1",
            account_uuid,
        )
        return Account(**_row_dict(row)) if row else None

    async def save_account(self, account: Account) -> Account:
        row = await self._fetchrow(
            "save_account",
            """
            INSERT INTO profiles (id, email, plan_type, is_demo_user, demo_expires_at)
            VALUES ($1, $2, $3, $4, $5)
            ON CONFLICT (id) DO UPDATE SET
                email = EXCLUDED.email,
                plan_type = EXCLUDED.plan_type,
                is_demo_user = EXCLUDED.is_demo_user,
                demo_expires_at = EXCLUDED.demo_expires_at
            RETURNING id, email, plan_type, is_demo_user, demo_expires_at, created_at
            """,
            _coerce_uuid(account.id),
            account.email,
            account.plan_type.value,
            account.is_demo_user,
            account.demo_expires_at,
        )
        return Account(**_row_dict(row))

    async def list_expired_demo_accounts(self, now: datetime) -> List[Account]:
        rows = await self._fetch(
            "list_expired_demo_accounts",
            "SELECT id, email, plan_type, is_demo_user, demo_expires_at, created_at "
            "FROM profiles WHERE is_demo_user AND demo_expires_at < $1 "
            "ORDER BY demo_expires_at",
            now,
        )
        return [Account(**_row_dict(r)) for r in rows]

    async def delete_account(self, account_id: str) -> bool:
        account_uuid = _coerce_uuid(account_id)
        if account_uuid is None:
            return False
        # Child tables cascade from profiles
        status = await self._execute(
            "delete_account", "DELETE FROM profiles WHERE id = $1", account_uuid
        )
        return status.endswith(" 1")

    # -- quotas -----------------------------------------------------------

    async def get_quota(self, account_id: str) -> Optional[QuotaRecord]:
        account_uuid = _coerce_uuid(account_id)
        if account_uuid is None:
            return None
        row = await self._fetchrow(
            "get_quota",
            f"SELECT {_QUOTA_COLUMNS} FROM user_limits WHERE user_id = $1",
            account_uuid,
        )
        return QuotaRecord(**_row_dict(row)) if row else None

    async def create_quota(self, record: QuotaRecord) -> QuotaRecord:
        account_uuid = _coerce_uuid(record.account_id)
        await self._execute(
            "create_quota",
            """
            INSERT INTO user_limits (user_id, plan_type, max_assistants, max_call_time_seconds)
            VALUES ($1, $2, $3, $4)
            ON CONFLICT (user_id) DO NOTHING
            """,
            account_uuid,
            record.plan_type.value,
            record.max_assistants,
            record.max_call_time_seconds,
        )
        stored = await self.get_quota(record.account_id)
        if stored is None:
            raise StorageError(operation="create_quota", internal_message="quota row missing after insert")
        return stored

    async def _update_quota(self, operation: str, account_id: str, set_sql: str, *args) -> QuotaRecord:
        row = await self._fetchrow(
            operation,
            f"UPDATE user_limits SET {set_sql}, updated_at = NOW() "
            f"WHERE user_id = $1 RETURNING {_QUOTA_COLUMNS}",
            _coerce_uuid(account_id),
            *args,
        )
        if row is None:
            raise StorageError(operation=operation, internal_message=f"no quota record for {account_id}")
        return QuotaRecord(**_row_dict(row))

    async def adjust_quota(
        self,
        account_id: str,
        assistant_delta: int = 0,
        call_time_delta: int = 0,
    ) -> QuotaRecord:
        return await self._update_quota(
            "adjust_quota",
            account_id,
            "current_assistants = GREATEST(0, current_assistants + $2), "
            "used_call_time_seconds = GREATEST(0, used_call_time_seconds + $3)",
            assistant_delta,
            call_time_delta,
        )

    async def reset_call_time(self, account_id: str) -> QuotaRecord:
        return await self._update_quota("reset_call_time", account_id, "used_call_time_seconds = 0")

    async def record_deletion(self, account_id: str, at: datetime) -> QuotaRecord:
        return await self._update_quota(
            "record_deletion",
            account_id,
            "last_deletion_at = $2, deletion_count = deletion_count + 1",
            at,
        )

    # -- usage ledger -----------------------------------------------------

    async def append_usage_log(self, entry: UsageLogEntry) -> UsageLogEntry:
        row = await self._fetchrow(
            "append_usage_log",
            """
            INSERT INTO usage_logs (user_id, action_type, resource_id, assistant_count_change,
                                    call_time_change_seconds, trigger_reason, details)
            VALUES ($1, $2, $3, $4, $5, $6, $7)
            RETURNING *
            """,
            _coerce_uuid(entry.account_id),
            entry.action_type.value,
            entry.resource_id,
            entry.assistant_count_change,
            entry.call_time_change_seconds,
            entry.trigger_reason.value if entry.trigger_reason else None,
            entry.details,
        )
        return UsageLogEntry(**_row_dict(row))

    async def list_usage_logs(self, account_id: str, limit: int = 50) -> List[UsageLogEntry]:
        account_uuid = _coerce_uuid(account_id)
        if account_uuid is None:
            return []
        rows = await self._fetch(
            "list_usage_logs",
            "SELECT * FROM usage_logs WHERE user_id = $1 ORDER BY created_at DESC LIMIT $2",
            account_uuid,
            limit,
        )
        return [UsageLogEntry(**_row_dict(r)) for r in rows]

    # -- assistants -------------------------------------------------------

    async def list_assistants(self, account_id: str) -> List[Assistant]:
        account_uuid = _coerce_uuid(account_id)
        if account_uuid is None:
            return []
        rows = await self._fetch(
            "list_assistants",
            "SELECT * FROM assistants WHERE user_id = $1 ORDER BY created_at DESC, id DESC",
            account_uuid,
        )
        return [Assistant(**_row_dict(r)) for r in rows]

    async def get_assistant(self, account_id: str, assistant_id: str) -> Optional[Assistant]:
        account_uuid, assistant_uuid = _coerce_uuid(account_id), _coerce_uuid(assistant_id)
        if account_uuid is None or assistant_uuid is None:
            return None
        row = await self._fetchrow(
            "get_assistant",
            "SELECT * FROM assistants WHERE id = $1 AND user_id = $2",
            assistant_uuid,
            account_uuid,
        )
        return Assistant(**_row_dict(row)) if row else None

    async def get_assistant_by_vapi_id(self, vapi_assistant_id: str) -> Optional[Assistant]:
        row = await self._fetchrow(
            "get_assistant_by_vapi_id",
            "SELECT * FROM assistants WHERE vapi_assistant_id = $1",
            vapi_assistant_id,
        )
        return Assistant(**_row_dict(row)) if row else None

    async def get_oldest_assistant(self, account_id: str) -> Optional[Assistant]:
        account_uuid = _coerce_uuid(account_id)
        if account_uuid is None:
            return None
        row = await self._fetchrow(
            "get_oldest_assistant",
            "SELECT * FROM assistants WHERE user_id = $1 ORDER BY created_at ASC, id ASC LIMIT 1",
            account_uuid,
        )
        return Assistant(**_row_dict(row)) if row else None

    async def count_assistants(self, account_id: str) -> int:
        row = await self._fetchrow(
            "count_assistants",
            "SELECT COUNT(*) AS n FROM assistants WHERE user_id = $1",
            _coerce_uuid(account_id),
        )
        return int(row["n"]) if row else 0

    async def insert_assistant(self, assistant: Assistant) -> Assistant:
        row = await self._fetchrow(
            "insert_assistant",
            """
            INSERT INTO assistants (user_id, name, vapi_assistant_id, configuration)
            VALUES ($1, $2, $3, $4)
            RETURNING *
            """,
            _coerce_uuid(assistant.account_id),
            assistant.name,
            assistant.vapi_assistant_id,
            assistant.configuration,
        )
        return Assistant(**_row_dict(row))

    async def update_assistant(
        self, account_id: str, assistant_id: str, changes: Dict[str, Any]
    ) -> Optional[Assistant]:
        set_sql, values = _set_clause(changes, _ASSISTANT_COLUMNS, start=3)
        row = await self._fetchrow(
            "update_assistant",
            f"UPDATE assistants SET {set_sql}, updated_at = NOW() "
            "WHERE id = $1 AND user_id = $2 RETURNING *",
            _coerce_uuid(assistant_id),
            _coerce_uuid(account_id),
            *values,
        )
        return Assistant(**_row_dict(row)) if row else None

    async def delete_assistant(self, account_id: str, assistant_id: str) -> bool:
        assistant_uuid = _coerce_uuid(assistant_id)
        if assistant_uuid is None:
            return False
        status = await self._execute(
            "delete_assistant",
            "DELETE FROM assistants WHERE id = $1 AND user_id = $2",
            assistant_uuid,
            _coerce_uuid(account_id),
        )
        return status.endswith(" 1")

    # -- phone numbers ----------------------------------------------------

    async def list_phone_numbers(
        self, account_id: str, assistant_id: Optional[str] = None
    ) -> List[PhoneNumber]:
        account_uuid = _coerce_uuid(account_id)
        if account_uuid is None:
            return []
        if assistant_id is None:
            rows = await self._fetch(
                "list_phone_numbers",
                "SELECT * FROM phone_numbers WHERE user_id = $1 ORDER BY created_at DESC",
                account_uuid,
            )
        else:
            rows = await self._fetch(
                "list_phone_numbers",
                "SELECT * FROM phone_numbers WHERE user_id = $1 AND assigned_assistant_id = $2 "
                "ORDER BY created_at DESC",
                account_uuid,
                _coerce_uuid(assistant_id),
            )
        return [PhoneNumber(**_row_dict(r)) for r in rows]

    async def get_phone_number(self, account_id: str, phone_id: str) -> Optional[PhoneNumber]:
        phone_uuid = _coerce_uuid(phone_id)
        if phone_uuid is None:
            return None
        row = await self._fetchrow(
            "get_phone_number",
            "SELECT * FROM phone_numbers WHERE id = $1 AND user_id = $2",
            phone_uuid,
            _coerce_uuid(account_id),
        )
        return PhoneNumber(**_row_dict(row)) if row else None

    async def find_phone_number(self, number: str) -> Optional[PhoneNumber]:
        row = await self._fetchrow(
            "find_phone_number",
            "SELECT * FROM phone_numbers WHERE phone_number = $1",
            number,
        )
        return PhoneNumber(**_row_dict(row)) if row else None

    async def get_phone_number_by_vapi_id(self, vapi_phone_id: str) -> Optional[PhoneNumber]:
        row = await self._fetchrow(
            "get_phone_number_by_vapi_id",
            "SELECT * FROM phone_numbers WHERE vapi_phone_id = $1",
            vapi_phone_id,
        )
        return PhoneNumber(**_row_dict(row)) if row else None

    async def insert_phone_number(self, phone: PhoneNumber) -> PhoneNumber:
        row = await self._fetchrow(
            "insert_phone_number",
            """
            INSERT INTO phone_numbers (user_id, phone_number, friendly_name, provider,
                                       vapi_phone_id, vapi_credential_id, twilio_account_sid,
                                       twilio_auth_token, assigned_assistant_id, notes, status)
            VALUES ($1, $2, $3, $4, $5, $6, $7, $8, $9, $10, $11)
            RETURNING *
            """,
            _coerce_uuid(phone.account_id),
            phone.phone_number,
            phone.friendly_name,
            phone.provider,
            phone.vapi_phone_id,
            phone.vapi_credential_id,
            phone.twilio_account_sid,
            phone.twilio_auth_token,
            _coerce_uuid(phone.assigned_assistant_id),
            phone.notes,
            phone.status,
        )
        return PhoneNumber(**_row_dict(row))

    async def update_phone_number(
        self, account_id: str, phone_id: str, changes: Dict[str, Any]
    ) -> Optional[PhoneNumber]:
        set_sql, values = _set_clause(changes, _PHONE_COLUMNS, start=3)
        row = await self._fetchrow(
            "update_phone_number",
            f"UPDATE phone_numbers SET {set_sql}, updated_at = NOW() "
            "WHERE id = $1 AND user_id = $2 RETURNING *",
            _coerce_uuid(phone_id),
            _coerce_uuid(account_id),
            *values,
        )
        return PhoneNumber(**_row_dict(row)) if row else None

    async def delete_phone_number(self, account_id: str, phone_id: str) -> bool:
        phone_uuid = _coerce_uuid(phone_id)
        if phone_uuid is None:
            return False
        status = await self._execute(
            "delete_phone_number",
            "DELETE FROM phone_numbers WHERE id = $1 AND user_id = $2",
            phone_uuid,
            _coerce_uuid(account_id),
        )
        return status.endswith(" 1")

    # -- call logs --------------------------------------------------------

    async def insert_call_log(self, call_log: CallLog) -> CallLog:
        row = await self._fetchrow(
            "insert_call_log",
            """
            INSERT INTO call_logs (user_id, assistant_id, phone_number_id, vapi_call_id,
                                   caller_number, status, started_at)
            VALUES ($1, $2, $3, $4, $5, $6, COALESCE($7, NOW()))
            ON CONFLICT (vapi_call_id) DO UPDATE SET caller_number = EXCLUDED.caller_number
            RETURNING *
            """,
            _coerce_uuid(call_log.account_id),
            _coerce_uuid(call_log.assistant_id),
            _coerce_uuid(call_log.phone_number_id),
            call_log.vapi_call_id,
            call_log.caller_number,
            call_log.status.value,
            call_log.started_at,
        )
        return CallLog(**_row_dict(row))

    async def get_call_log(self, account_id: str, call_log_id: str) -> Optional[CallLog]:
        call_uuid = _coerce_uuid(call_log_id)
        if call_uuid is None:
            return None
        row = await self._fetchrow(
            "get_call_log",
            "SELECT * FROM call_logs WHERE id = $1 AND user_id = $2",
            call_uuid,
            _coerce_uuid(account_id),
        )
        return CallLog(**_row_dict(row)) if row else None

    async def get_call_log_by_vapi_id(self, vapi_call_id: str) -> Optional[CallLog]:
        row = await self._fetchrow(
            "get_call_log_by_vapi_id",
            "SELECT * FROM call_logs WHERE vapi_call_id = $1",
            vapi_call_id,
        )
        return CallLog(**_row_dict(row)) if row else None

    async def update_call_log(self, call_log_id: str, changes: Dict[str, Any]) -> Optional[CallLog]:
        set_sql, values = _set_clause(changes, _CALL_LOG_COLUMNS, start=2)
        row = await self._fetchrow(
            "update_call_log",
            f"UPDATE call_logs SET {set_sql} WHERE id = $1 RETURNING *",
            _coerce_uuid(call_log_id),
            *values,
        )
        return CallLog(**_row_dict(row)) if row else None

    async def close_call_log(self, call_log_id: str, changes: Dict[str, Any]) -> Optional[CallLog]:
        set_sql, values = _set_clause(changes, _CALL_LOG_COLUMNS, start=2)
        row = await self._fetchrow(
            "close_call_log",
            f"UPDATE call_logs SET {set_sql} WHERE id = $1 AND ended_at IS NULL RETURNING *",
            _coerce_uuid(call_log_id),
            *values,
        )
        return CallLog(**_row_dict(row)) if row else None

    async def list_call_logs(
        self,
        account_id: str,
        limit: int = 50,
        offset: int = 0,
        assistant_id: Optional[str] = None,
        since: Optional[datetime] = None,
    ) -> Tuple[List[CallLog], int]:
        account_uuid = _coerce_uuid(account_id)
        if account_uuid is None:
            return [], 0

        conditions = ["user_id = $1"]
        args: List[Any] = [account_uuid]
        if assistant_id is not None:
            args.append(_coerce_uuid(assistant_id))
            conditions.append(f"assistant_id = ${len(args)}")
        if since is not None:
            args.append(since)
            conditions.append(f"started_at >= ${len(args)}")
        where = " AND ".join(conditions)

        count_row = await self._fetchrow(
            "count_call_logs",
            f"SELECT COUNT(*) AS n FROM call_logs WHERE {where}",
            *args,
        )
        rows = await self._fetch(
            "list_call_logs",
            f"SELECT * FROM call_logs WHERE {where} "
            f"ORDER BY started_at DESC LIMIT ${len(args) + 1} OFFSET ${len(args) + 2}",
            *args,
            limit,
            offset,
        )
        total = int(count_row["n"]) if count_row else 0
        return [CallLog(**_row_dict(r)) for r in rows], total
