"""
Demo account lifecycle: registration, remaining time and purge.

A demo account is permanently deleted when it expires, or when a call-time
breach has left it with no assistants.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from voicematrix.exceptions import VapiError
from voicematrix.storage.base import Storage
from voicematrix.types.accounts import Account, DemoTimeRemaining
from voicematrix.types.limits import PlanType
from voicematrix.usage.quota_store import QuotaStore
from voicematrix.utils.formatting import days_remaining
from voicematrix.utils.logging import mask_account_id
from voicematrix.vapi.client import VoiceProvider

logger = logging.getLogger(__name__)


class DemoAccountService:
    def __init__(
        self,
        storage: Storage,
        voice_provider: VoiceProvider,
        quota_store: QuotaStore,
        demo_duration_days: int = 7,
    ):
        self._storage = storage
        self._voice = voice_provider
        self._quota_store = quota_store
        self._demo_duration = timedelta(days=demo_duration_days)

    async def register_demo_account(
        self, account_id: str, email: Optional[str] = None, now: Optional[datetime] = None
    ) -> Account:
        """Create a free-plan demo profile expiring demo_duration_days from now."""
        now = now or datetime.now(timezone.utc)
        account = await self._storage.save_account(
            Account(
                id=account_id,
                email=email,
                plan_type=PlanType.FREE,
                is_demo_user=True,
                demo_expires_at=now + self._demo_duration,
                created_at=now,
            )
        )
        await self._quota_store.get_or_init_quota(account_id, PlanType.FREE)
        logger.info("Registered demo account %s", mask_account_id(account_id))
        return account

    async def demo_time_remaining(
        self, account_id: str, now: Optional[datetime] = None
    ) -> DemoTimeRemaining:
        now = now or datetime.now(timezone.utc)
        account = await self._storage.get_account(account_id)
        if account is None or not account.is_demo_user:
            return DemoTimeRemaining(is_demo_user=False)
        return DemoTimeRemaining(
            is_demo_user=True,
            days_remaining=days_remaining(account.demo_expires_at, now),
            expires_at=account.demo_expires_at,
            expired=account.is_demo_expired(now),
        )

    async def purge_expired_accounts(self, now: Optional[datetime] = None) -> List[str]:
        """
        Delete every expired demo account.

        Provider-side phone numbers and assistants are removed first; a
        provider failure is logged and the account is still deleted locally.
        Returns the ids of the purged accounts.
        """
        now = now or datetime.now(timezone.utc)
        purged: List[str] = []
        for account in await self._storage.list_expired_demo_accounts(now):
            if await self.purge_account(account.id):
                purged.append(account.id)
                logger.info("Purged expired demo account %s", mask_account_id(account.id))
        logger.info("Expired demo cleanup removed %d accounts", len(purged))
        return purged

    async def purge_exhausted_account(self, account_id: str) -> bool:
        """
        Delete a demo account that has no assistants left after a breach.

        Regular accounts and demo accounts that still have assistants are
        left alone. Returns True when the account was deleted.
        """
        account = await self._storage.get_account(account_id)
        if account is None or not account.is_demo_user:
            return False
        if await self._storage.count_assistants(account_id) > 0:
            return False
        if not await self.purge_account(account_id):
            return False
        logger.warning(
            "Purged demo account %s after exceeding its call time limit",
            mask_account_id(account_id),
        )
        return True

    async def purge_account(self, account_id: str) -> bool:
        """Remove provider resources, then cascade-delete the account."""
        await self._delete_provider_resources(account_id)
        return await self._storage.delete_account(account_id)

    async def _delete_provider_resources(self, account_id: str) -> None:
        for phone in await self._storage.list_phone_numbers(account_id):
            if not phone.vapi_phone_id:
                continue
            try:
                await self._voice.delete_phone_number(phone.vapi_phone_id)
            except VapiError as e:
                logger.warning("Could not delete Vapi phone number %s: %s", phone.vapi_phone_id, e.message)

        for assistant in await self._storage.list_assistants(account_id):
            if not assistant.vapi_assistant_id:
                continue
            try:
                await self._voice.delete_assistant(assistant.vapi_assistant_id)
            except VapiError as e:
                logger.warning(
                    "Could not delete Vapi assistant %s: %s", assistant.vapi_assistant_id, e.message
                )
