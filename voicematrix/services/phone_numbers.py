"""
Phone number management.

Numbers are Twilio numbers imported into Vapi. The Vapi number is created
first and deleted again if the row cannot be stored. Twilio auth tokens are
stored encrypted and never leave this module in plaintext.
"""

import logging
import re
from typing import Any, Dict, List, Optional

from voicematrix.exceptions import (
    ConflictError,
    ErrorCode,
    ResourceNotFoundError,
    StorageError,
    ValidationError,
    VapiError,
)
from voicematrix.storage.base import Storage
from voicematrix.types.phone_numbers import (
    PhoneNumber,
    PhoneNumberCreateRequest,
    PhoneNumberUpdateRequest,
)
from voicematrix.utils.crypto import CredentialEncryptor
from voicematrix.utils.logging import mask_account_id, mask_phone_number
from voicematrix.vapi.client import VoiceProvider
from voicematrix.vapi.payloads import build_phone_number_payload

logger = logging.getLogger(__name__)

E164_PATTERN = re.compile(r"^\+[1-9]\d{1,14}$")
TWILIO_SID_PATTERN = re.compile(r"^AC[a-fA-F0-9]{32}$")
MIN_TWILIO_TOKEN_LENGTH = 32
MAX_FRIENDLY_NAME_LENGTH = 255


def is_valid_phone_number(phone_number: Optional[str]) -> bool:
    return bool(phone_number) and E164_PATTERN.match(phone_number) is not None


def is_valid_friendly_name(name: Optional[str]) -> bool:
    return bool(name) and bool(name.strip()) and len(name) <= MAX_FRIENDLY_NAME_LENGTH


def validate_phone_number_request(request: PhoneNumberCreateRequest) -> List[str]:
    errors: List[str] = []
    if not is_valid_phone_number(request.phone_number):
        errors.append("Invalid phone number format. Use E.164 format (e.g., +14155551234)")
    if not is_valid_friendly_name(request.friendly_name):
        errors.append("Friendly name is required and must be 1-255 characters")
    if not request.twilio_account_sid or not TWILIO_SID_PATTERN.match(request.twilio_account_sid):
        errors.append("Invalid Twilio Account SID format")
    if not request.twilio_auth_token or len(request.twilio_auth_token) < MIN_TWILIO_TOKEN_LENGTH:
        errors.append("Invalid Twilio Auth Token (must be at least 32 characters)")
    return errors


def _not_found(phone_id: str) -> ResourceNotFoundError:
    return ResourceNotFoundError(
        "Phone number not found",
        resource_type="phone_number",
        resource_id=phone_id,
        error_code=ErrorCode.PHONE_NUMBER_NOT_FOUND,
    )


class PhoneNumberService:
    def __init__(self, storage: Storage, voice_provider: VoiceProvider, encryptor: CredentialEncryptor):
        self._storage = storage
        self._voice = voice_provider
        self._encryptor = encryptor

    async def _resolve_vapi_assistant_id(self, account_id: str, assistant_id: Optional[str]) -> Optional[str]:
        if not assistant_id:
            return None
        assistant = await self._storage.get_assistant(account_id, assistant_id)
        if assistant is None:
            raise ResourceNotFoundError(
                "Assistant not found",
                resource_type="assistant",
                resource_id=assistant_id,
                error_code=ErrorCode.ASSISTANT_NOT_FOUND,
            )
        return assistant.vapi_assistant_id

    async def list_phone_numbers(self, account_id: str) -> List[Dict[str, Any]]:
        """Public views of the account's numbers, with the assigned assistant's name."""
        phones = await self._storage.list_phone_numbers(account_id)
        names = {a.id: a.name for a in await self._storage.list_assistants(account_id)}
        views = []
        for phone in phones:
            view = phone.to_public()
            view["assigned_assistant_name"] = names.get(phone.assigned_assistant_id)
            views.append(view)
        return views

    async def get_phone_number(self, account_id: str, phone_id: str) -> PhoneNumber:
        phone = await self._storage.get_phone_number(account_id, phone_id)
        if phone is None:
            raise _not_found(phone_id)
        return phone

    async def create_phone_number(self, account_id: str, request: PhoneNumberCreateRequest) -> PhoneNumber:
        errors = validate_phone_number_request(request)
        if errors:
            raise ValidationError("Validation failed", details={"errors": errors})

        if await self._storage.find_phone_number(request.phone_number) is not None:
            raise ConflictError("Phone number already exists", error_code=ErrorCode.PHONE_EXISTS)

        vapi_assistant_id = await self._resolve_vapi_assistant_id(
            account_id, request.assigned_assistant_id
        )
        payload = build_phone_number_payload(
            phone_number=request.phone_number,
            friendly_name=request.friendly_name,
            twilio_account_sid=request.twilio_account_sid,
            twilio_auth_token=request.twilio_auth_token,
            vapi_assistant_id=vapi_assistant_id,
        )
        vapi_phone = await self._voice.create_phone_number(payload)
        vapi_phone_id = vapi_phone.get("id")
        if not vapi_phone_id:
            raise VapiError("Voice provider returned no phone number id")

        try:
            phone = await self._storage.insert_phone_number(
                PhoneNumber(
                    id="",
                    account_id=account_id,
                    phone_number=request.phone_number,
                    friendly_name=request.friendly_name,
                    vapi_phone_id=vapi_phone_id,
                    vapi_credential_id=vapi_phone.get("credentialId"),
                    twilio_account_sid=request.twilio_account_sid,
                    twilio_auth_token=self._encryptor.encrypt(request.twilio_auth_token),
                    assigned_assistant_id=request.assigned_assistant_id,
                    notes=request.notes,
                )
            )
        except StorageError:
            try:
                await self._voice.delete_phone_number(vapi_phone_id)
            except VapiError as e:
                logger.error("Rollback of Vapi phone number %s failed: %s", vapi_phone_id, e.message)
            raise

        logger.info(
            "Registered %s for %s",
            mask_phone_number(phone.phone_number),
            mask_account_id(account_id),
        )
        return phone

    async def update_phone_number(
        self, account_id: str, phone_id: str, request: PhoneNumberUpdateRequest
    ) -> PhoneNumber:
        if request.friendly_name is not None and not is_valid_friendly_name(request.friendly_name):
            raise ValidationError(
                "Friendly name is required and must be 1-255 characters",
                field="friendly_name",
            )

        current = await self.get_phone_number(account_id, phone_id)
        changes = request.model_dump(exclude_unset=True)

        vapi_changes: Dict[str, Any] = {}
        if request.friendly_name is not None:
            vapi_changes["name"] = request.friendly_name
        if "assigned_assistant_id" in changes:
            vapi_changes["assistantId"] = await self._resolve_vapi_assistant_id(
                account_id, changes["assigned_assistant_id"]
            )
        if vapi_changes and current.vapi_phone_id:
            await self._voice.update_phone_number(current.vapi_phone_id, vapi_changes)

        if request.friendly_name is None:
            changes.pop("friendly_name", None)
        if not changes:
            return current

        updated = await self._storage.update_phone_number(account_id, phone_id, changes)
        if updated is None:
            raise _not_found(phone_id)
        return updated

    async def delete_phone_number(self, account_id: str, phone_id: str) -> None:
        current = await self.get_phone_number(account_id, phone_id)

        if current.vapi_phone_id:
            try:
                await self._voice.delete_phone_number(current.vapi_phone_id)
            except VapiError as e:
                logger.warning(
                    "Vapi delete of %s failed, removing local row anyway: %s",
                    current.vapi_phone_id,
                    e.message,
                )

        if not await self._storage.delete_phone_number(account_id, phone_id):
            raise _not_found(phone_id)
