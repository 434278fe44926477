"""
Auto-deletion cascade run when an account exceeds its call-time limit.

Order of operations:
1. Pick the oldest assistant (created_at, then id).
2. Delete each phone number assigned to it, provider first, then storage.
   A failed number is recorded and the loop continues.
3. Delete the assistant, provider first, then storage. A failure here
   aborts the run without touching the counters.
4. Decrement current_assistants. Call time is never reset.
5. Write auto_deletion_triggered and stamp the deletion on the quota record.

Nothing is rolled back once step 2 has started.
"""

import logging
from typing import List

from voicematrix.exceptions import NoResourceToDeleteError, StorageError, VoiceMatrixException
from voicematrix.storage.base import Storage
from voicematrix.types.assistants import Assistant
from voicematrix.types.limits import (
    AutoDeletionResult,
    DeletedAssistant,
    PhoneNumberDeletion,
    TriggerReason,
    UsageAction,
)
from voicematrix.types.phone_numbers import PhoneNumber
from voicematrix.usage.ledger import UsageLedger
from voicematrix.usage.quota_store import QuotaStore
from voicematrix.utils.locks import KeyedLocks
from voicematrix.utils.logging import mask_account_id, mask_phone_number
from voicematrix.vapi.client import VoiceProvider

logger = logging.getLogger(__name__)


class AutoDeletionOrchestrator:
    def __init__(
        self,
        storage: Storage,
        voice_provider: VoiceProvider,
        quota_store: QuotaStore,
        ledger: UsageLedger,
    ):
        self._storage = storage
        self._voice = voice_provider
        self._quota_store = quota_store
        self._ledger = ledger
        self._lock_for = KeyedLocks()

    async def run(self, account_id: str) -> AutoDeletionResult:
        """
        Delete the account's oldest assistant and its phone numbers.

        Concurrent runs for one account are serialised, and each run picks
        its victim only after acquiring the lock.

        Raises:
            NoResourceToDeleteError: the account has no assistants.
        """
        async with self._lock_for(account_id):
            victim = await self._storage.get_oldest_assistant(account_id)
            if victim is None:
                logger.warning("Auto-deletion found no assistants for %s", mask_account_id(account_id))
                raise NoResourceToDeleteError(resource_type="assistant")

            logger.info(
                "Auto-deleting assistant %s for %s",
                victim.id,
                mask_account_id(account_id),
            )

            phone_results = await self._delete_phone_numbers(account_id, victim)

            try:
                await self._delete_assistant(account_id, victim)
            except VoiceMatrixException as e:
                logger.error(
                    "Auto-deletion aborted for %s: assistant %s could not be deleted (%s)",
                    mask_account_id(account_id),
                    victim.id,
                    e.internal_message or e.message,
                )
                return AutoDeletionResult(
                    success=False,
                    deleted_phone_numbers=phone_results,
                    call_time_reset=False,
                    error=f"Failed to delete assistant: {e.message}",
                )

            await self._quota_store.decrement_assistant_count(
                account_id,
                resource_id=victim.id,
                trigger_reason=TriggerReason.LIMIT_EXCEEDED,
            )

            deleted = DeletedAssistant(
                id=victim.id,
                name=victim.name,
                vapi_assistant_id=victim.vapi_assistant_id,
                created_at=victim.created_at,
            )
            await self._ledger.record(
                account_id,
                UsageAction.AUTO_DELETION_TRIGGERED,
                resource_id=victim.id,
                trigger_reason=TriggerReason.LIMIT_EXCEEDED,
                details={
                    "deleted_assistant": {"id": victim.id, "name": victim.name},
                    "deleted_phone_numbers": [r.model_dump() for r in phone_results],
                    "call_time_reset": False,
                },
            )
            await self._quota_store.record_deletion(account_id)

            logger.info(
                "Auto-deletion completed for %s (%s phone numbers processed)",
                mask_account_id(account_id),
                len(phone_results),
            )
            return AutoDeletionResult(
                success=True,
                deleted_assistant=deleted,
                deleted_phone_numbers=phone_results,
                call_time_reset=False,
            )

    async def _delete_phone_numbers(
        self, account_id: str, victim: Assistant
    ) -> List[PhoneNumberDeletion]:
        results: List[PhoneNumberDeletion] = []
        phones = await self._storage.list_phone_numbers(account_id, assistant_id=victim.id)
        for phone in phones:
            results.append(await self._delete_phone_number(account_id, phone))
        return results

    async def _delete_phone_number(self, account_id: str, phone: PhoneNumber) -> PhoneNumberDeletion:
        try:
            if phone.vapi_phone_id:
                await self._voice.delete_phone_number(phone.vapi_phone_id)
            removed = await self._storage.delete_phone_number(account_id, phone.id)
        except VoiceMatrixException as e:
            logger.warning(
                "Could not delete phone number %s during auto-deletion: %s",
                mask_phone_number(phone.phone_number),
                e.internal_message or e.message,
            )
            return PhoneNumberDeletion(
                id=phone.id,
                phone_number=phone.phone_number,
                success=False,
                error=e.message,
            )

        if not removed:
            return PhoneNumberDeletion(
                id=phone.id,
                phone_number=phone.phone_number,
                success=False,
                error="Phone number not found",
            )

        await self._ledger.record(
            account_id,
            UsageAction.PHONE_NUMBER_DELETED,
            resource_id=phone.id,
            trigger_reason=TriggerReason.LIMIT_EXCEEDED,
            details={"friendly_name": phone.friendly_name},
        )
        return PhoneNumberDeletion(id=phone.id, phone_number=phone.phone_number, success=True)

    async def _delete_assistant(self, account_id: str, victim: Assistant) -> None:
        if victim.vapi_assistant_id:
            await self._voice.delete_assistant(victim.vapi_assistant_id)
        if not await self._storage.delete_assistant(account_id, victim.id):
            raise StorageError(
                "Assistant no longer exists",
                operation="delete_assistant",
                internal_message=f"assistant {victim.id} vanished during auto-deletion",
            )
