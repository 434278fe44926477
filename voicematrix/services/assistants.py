"""
Assistant management.

Create flow: validate -> check assistant capacity -> create at Vapi -> insert
row (rolling back the Vapi assistant if the insert fails) -> increment the
assistant count (rolling back the row and the Vapi assistant if that fails).
Delete flow: Vapi first, then storage, then decrement.
"""

import logging
from typing import List

from voicematrix.config import VapiSettings
from voicematrix.exceptions import (
    ErrorCode,
    LimitReachedError,
    ResourceNotFoundError,
    StorageError,
    ValidationError,
    VapiError,
)
from voicematrix.storage.base import Storage
from voicematrix.types.assistants import (
    BACKGROUND_SOUNDS,
    MAX_CALL_DURATION_SECONDS,
    MAX_PERSONALITY_TRAITS,
    MAX_STRUCTURED_QUESTIONS,
    MIN_CALL_DURATION_SECONDS,
    PERSONALITY_TRAITS,
    Assistant,
    AssistantCreateRequest,
    AssistantUpdateRequest,
    EvaluationMethod,
)
from voicematrix.usage.service import UsageLimitsService
from voicematrix.utils.locks import KeyedLocks
from voicematrix.utils.logging import mask_account_id
from voicematrix.vapi.client import VoiceProvider
from voicematrix.vapi.payloads import build_assistant_payload, build_assistant_update_payload

logger = logging.getLogger(__name__)

_EVALUATION_METHODS = {m.value for m in EvaluationMethod}


def _validate_name(name, errors: List[str]) -> None:
    if not isinstance(name, str) or not name.strip():
        errors.append("Assistant name is required")
    elif len(name) > 100:
        errors.append("Assistant name must be less than 100 characters")


def _validate_first_message(first_message, errors: List[str]) -> None:
    if not isinstance(first_message, str) or not first_message.strip():
        errors.append("First message is required")
    elif len(first_message) > 500:
        errors.append("First message must be less than 500 characters")


def _validate_optional_fields(request, errors: List[str]) -> None:
    duration = request.max_call_duration
    if duration is not None and not MIN_CALL_DURATION_SECONDS <= duration <= MAX_CALL_DURATION_SECONDS:
        errors.append(
            f"Call duration must be between {MIN_CALL_DURATION_SECONDS} "
            f"and {MAX_CALL_DURATION_SECONDS} seconds"
        )
    if request.voice_id is not None and len(request.voice_id) > 50:
        errors.append("Invalid voice ID")


def validate_assistant_request(request: AssistantCreateRequest) -> List[str]:
    """Return every validation problem with a create request (empty if valid)."""
    errors: List[str] = []
    _validate_name(request.name, errors)
    _validate_first_message(request.first_message, errors)
    _validate_optional_fields(request, errors)

    if request.evaluation_method and request.evaluation_method not in _EVALUATION_METHODS:
        errors.append("Invalid evaluation method")

    if request.background_sound and request.background_sound not in BACKGROUND_SOUNDS:
        errors.append("Invalid background sound option")

    traits = request.traits_list()
    for trait in traits:
        if trait not in PERSONALITY_TRAITS:
            errors.append(f"Invalid personality trait: {trait}")
    if len(traits) > MAX_PERSONALITY_TRAITS:
        errors.append(f"Maximum {MAX_PERSONALITY_TRAITS} personality traits allowed")

    questions = request.structured_questions
    if len(questions) > MAX_STRUCTURED_QUESTIONS:
        errors.append(f"Maximum {MAX_STRUCTURED_QUESTIONS} structured questions allowed")
    for index, question in enumerate(questions, start=1):
        if not question.question.strip():
            errors.append(f"Question {index}: Question text is required")
        elif len(question.question) > 200:
            errors.append(f"Question {index}: Question text must be less than 200 characters")
        if question.description and len(question.description) > 300:
            errors.append(f"Question {index}: Description must be less than 300 characters")

    return errors


def validate_assistant_update(request: AssistantUpdateRequest) -> List[str]:
    errors: List[str] = []
    if request.name is not None:
        _validate_name(request.name, errors)
    if request.first_message is not None:
        _validate_first_message(request.first_message, errors)
    _validate_optional_fields(request, errors)
    return errors


class AssistantService:
    def __init__(
        self,
        storage: Storage,
        voice_provider: VoiceProvider,
        usage: UsageLimitsService,
        vapi_settings: VapiSettings,
    ):
        self._storage = storage
        self._voice = voice_provider
        self._usage = usage
        self._vapi_settings = vapi_settings
        self._create_locks = KeyedLocks()

    async def list_assistants(self, account_id: str) -> List[Assistant]:
        return await self._storage.list_assistants(account_id)

    async def get_assistant(self, account_id: str, assistant_id: str) -> Assistant:
        assistant = await self._storage.get_assistant(account_id, assistant_id)
        if assistant is None:
            raise ResourceNotFoundError(
                "Assistant not found",
                resource_type="assistant",
                resource_id=assistant_id,
                error_code=ErrorCode.ASSISTANT_NOT_FOUND,
            )
        return assistant

    async def create_assistant(self, account_id: str, request: AssistantCreateRequest) -> Assistant:
        """
        Raises:
            ValidationError: invalid form, nothing created.
            LimitReachedError: account is at its assistant limit.
            ExternalProviderError: Vapi refused or failed.
            StorageError: the row could not be stored or counted (row and Vapi
                assistant rolled back).
        """
        errors = validate_assistant_request(request)
        if errors:
            raise ValidationError("Validation failed", details={"errors": errors})

        async with self._create_locks(account_id):
            capacity = await self._usage.can_create_assistant(account_id)
            if not capacity.allowed:
                logger.info(
                    "Assistant creation blocked for %s (%s/%s)",
                    mask_account_id(account_id),
                    capacity.current,
                    capacity.max,
                )
                raise LimitReachedError(
                    limit_type="assistants",
                    current=capacity.current,
                    maximum=capacity.max,
                )

            payload = build_assistant_payload(request, self._vapi_settings)
            vapi_assistant = await self._voice.create_assistant(payload)
            vapi_assistant_id = vapi_assistant.get("id")
            if not vapi_assistant_id:
                raise VapiError("Voice provider returned no assistant id")

            try:
                assistant = await self._storage.insert_assistant(
                    Assistant(
                        id="",
                        account_id=account_id,
                        name=request.name,
                        vapi_assistant_id=vapi_assistant_id,
                        configuration=request.model_dump(mode="json"),
                    )
                )
            except StorageError:
                await self._rollback_vapi_assistant(vapi_assistant_id)
                raise

            try:
                await self._usage.increment_assistant_count(account_id, assistant.id)
            except StorageError:
                logger.error(
                    "Could not count assistant %s for %s, rolling back",
                    assistant.id,
                    mask_account_id(account_id),
                )
                await self._rollback_assistant_row(account_id, assistant.id)
                await self._rollback_vapi_assistant(vapi_assistant_id)
                raise

        logger.info("Created assistant %s for %s", assistant.id, mask_account_id(account_id))
        return assistant

    async def _rollback_assistant_row(self, account_id: str, assistant_id: str) -> None:
        try:
            await self._storage.delete_assistant(account_id, assistant_id)
        except StorageError as e:
            logger.error(
                "Rollback of assistant row %s failed, quota needs reconciliation: %s",
                assistant_id,
                e.internal_message or e.message,
            )

    async def _rollback_vapi_assistant(self, vapi_assistant_id: str) -> None:
        try:
            await self._voice.delete_assistant(vapi_assistant_id)
            logger.info("Rolled back Vapi assistant %s", vapi_assistant_id)
        except VapiError as e:
            logger.error(
                "Rollback of Vapi assistant %s failed: %s",
                vapi_assistant_id,
                e.internal_message or e.message,
            )

    async def update_assistant(
        self, account_id: str, assistant_id: str, request: AssistantUpdateRequest
    ) -> Assistant:
        errors = validate_assistant_update(request)
        if errors:
            raise ValidationError("Validation failed", details={"errors": errors})

        current = await self.get_assistant(account_id, assistant_id)
        payload = build_assistant_update_payload(request)
        if not payload:
            return current

        if current.vapi_assistant_id:
            await self._voice.update_assistant(current.vapi_assistant_id, payload)

        changes = request.model_dump(exclude_none=True)
        configuration = {**current.configuration, **changes}
        update = {"configuration": configuration}
        if "name" in changes:
            update["name"] = changes["name"]

        updated = await self._storage.update_assistant(account_id, assistant_id, update)
        if updated is None:
            raise ResourceNotFoundError(
                "Assistant not found",
                resource_type="assistant",
                resource_id=assistant_id,
                error_code=ErrorCode.ASSISTANT_NOT_FOUND,
            )
        return updated

    async def delete_assistant(self, account_id: str, assistant_id: str) -> None:
        assistant = await self.get_assistant(account_id, assistant_id)

        if assistant.vapi_assistant_id:
            await self._voice.delete_assistant(assistant.vapi_assistant_id)

        if not await self._storage.delete_assistant(account_id, assistant_id):
            raise ResourceNotFoundError(
                "Assistant not found",
                resource_type="assistant",
                resource_id=assistant_id,
                error_code=ErrorCode.ASSISTANT_NOT_FOUND,
            )

        await self._usage.decrement_assistant_count(account_id, assistant_id)
        logger.info("Deleted assistant %s for %s", assistant_id, mask_account_id(account_id))
