"""
Tests for assistant validation and the create/update/delete flows.
"""

import unittest
from unittest.mock import AsyncMock

from tests.fakes import FakeVoiceProvider, build_usage
from voicematrix.config import VapiSettings
from voicematrix.exceptions import (
    ErrorCode,
    LimitReachedError,
    ResourceNotFoundError,
    StorageError,
    ValidationError,
    VapiError,
)
from voicematrix.services.assistants import AssistantService, validate_assistant_request
from voicematrix.storage import InMemoryStorage
from voicematrix.types.assistants import (
    AssistantCreateRequest,
    AssistantUpdateRequest,
    StructuredQuestion,
)
from voicematrix.types.limits import UsageAction

ACCOUNT = "acct-assistants"


def make_request(**overrides):
    fields = {"name": "Front Desk", "first_message": "Hello, thanks for calling!"}
    fields.update(overrides)
    return AssistantCreateRequest(**fields)


class TestValidation(unittest.TestCase):
    def test_valid_request(self):
        self.assertEqual(validate_assistant_request(make_request()), [])

    def test_missing_required_fields(self):
        errors = validate_assistant_request(AssistantCreateRequest())
        self.assertEqual(errors, ["Assistant name is required", "First message is required"])

    def test_all_problems_reported_together(self):
        errors = validate_assistant_request(make_request(
            name="x" * 101,
            max_call_duration=5,
            background_sound="stadium",
            evaluation_method="Vibes",
            personality_traits=["Friendly", "Grumpy"],
        ))

        self.assertIn("Assistant name must be less than 100 characters", errors)
        self.assertIn("Call duration must be between 30 and 1800 seconds", errors)
        self.assertIn("Invalid background sound option", errors)
        self.assertIn("Invalid evaluation method", errors)
        self.assertIn("Invalid personality trait: Grumpy", errors)

    def test_trait_and_question_counts(self):
        errors = validate_assistant_request(make_request(
            personality_traits=["Professional", "Friendly", "Energetic", "Calming", "Witty", "Patient"],
            structured_questions=[StructuredQuestion(question=f"Q{i}?") for i in range(11)],
        ))

        self.assertIn("Maximum 5 personality traits allowed", errors)
        self.assertIn("Maximum 10 structured questions allowed", errors)

    def test_blank_question_text(self):
        errors = validate_assistant_request(make_request(
            structured_questions=[StructuredQuestion(question="  ")],
        ))
        self.assertEqual(errors, ["Question 1: Question text is required"])

    def test_single_trait_string_accepted(self):
        self.assertEqual(validate_assistant_request(make_request(personality_traits="Witty")), [])


class AssistantServiceTestCase(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.storage = InMemoryStorage()
        self.voice = FakeVoiceProvider()
        self.usage = build_usage(self.storage, self.voice)
        self.service = AssistantService(self.storage, self.voice, self.usage, VapiSettings())


class TestCreateAssistant(AssistantServiceTestCase):
    async def test_create_stores_row_and_counts_it(self):
        assistant = await self.service.create_assistant(ACCOUNT, make_request())

        self.assertTrue(assistant.id)
        self.assertEqual(assistant.vapi_assistant_id, "vapi-asst-1")
        self.assertEqual(assistant.configuration["first_message"], "Hello, thanks for calling!")

        quota = await self.storage.get_quota(ACCOUNT)
        self.assertEqual(quota.current_assistants, 1)
        [entry] = await self.usage.get_usage_history(ACCOUNT)
        self.assertEqual(entry.action_type, UsageAction.ASSISTANT_CREATED)
        self.assertEqual(entry.resource_id, assistant.id)

    async def test_invalid_request_creates_nothing(self):
        with self.assertRaises(ValidationError) as ctx:
            await self.service.create_assistant(ACCOUNT, make_request(name=""))

        self.assertEqual(ctx.exception.details["errors"], ["Assistant name is required"])
        self.assertEqual(self.voice.calls, [])

    async def test_limit_reached_never_calls_provider(self):
        await self.service.create_assistant(ACCOUNT, make_request(name="One"))
        await self.service.create_assistant(ACCOUNT, make_request(name="Two"))

        with self.assertRaises(LimitReachedError) as ctx:
            await self.service.create_assistant(ACCOUNT, make_request(name="Three"))

        self.assertEqual(ctx.exception.details, {"limit_type": "assistants", "current": 2, "max": 2})
        self.assertEqual(len(self.voice.called("create_assistant")), 2)
        self.assertEqual(await self.storage.count_assistants(ACCOUNT), 2)

    async def test_provider_failure_leaves_no_trace(self):
        self.voice.fail_on.add("create_assistant")

        with self.assertRaises(VapiError):
            await self.service.create_assistant(ACCOUNT, make_request())

        self.assertEqual(await self.storage.count_assistants(ACCOUNT), 0)
        self.assertEqual((await self.storage.get_quota(ACCOUNT)).current_assistants, 0)

    async def test_storage_failure_rolls_back_provider_assistant(self):
        self.storage.insert_assistant = AsyncMock(
            side_effect=StorageError(operation="insert_assistant")
        )

        with self.assertRaises(StorageError):
            await self.service.create_assistant(ACCOUNT, make_request())

        self.assertEqual(self.voice.called("delete_assistant"), ["vapi-asst-1"])
        self.assertEqual((await self.storage.get_quota(ACCOUNT)).current_assistants, 0)

    async def test_count_failure_rolls_back_row_and_provider_assistant(self):
        self.storage.adjust_quota = AsyncMock(side_effect=StorageError(operation="adjust_quota"))

        with self.assertRaises(StorageError):
            await self.service.create_assistant(ACCOUNT, make_request())

        self.assertEqual(await self.storage.count_assistants(ACCOUNT), 0)
        self.assertEqual(self.voice.called("delete_assistant"), ["vapi-asst-1"])
        self.assertEqual((await self.storage.get_quota(ACCOUNT)).current_assistants, 0)


class TestUpdateAndDeleteAssistant(AssistantServiceTestCase):
    async def asyncSetUp(self):
        self.assistant = await self.service.create_assistant(ACCOUNT, make_request())

    async def test_update_patches_provider_and_row(self):
        updated = await self.service.update_assistant(
            ACCOUNT, self.assistant.id, AssistantUpdateRequest(name="Reception")
        )

        self.assertEqual(updated.name, "Reception")
        self.assertEqual(updated.configuration["name"], "Reception")
        self.assertEqual(updated.configuration["first_message"], "Hello, thanks for calling!")
        self.assertEqual(self.voice.called("update_assistant"), ["vapi-asst-1"])

    async def test_empty_update_is_a_no_op(self):
        unchanged = await self.service.update_assistant(
            ACCOUNT, self.assistant.id, AssistantUpdateRequest()
        )
        self.assertEqual(unchanged.name, "Front Desk")
        self.assertEqual(self.voice.called("update_assistant"), [])

    async def test_update_validates(self):
        with self.assertRaises(ValidationError):
            await self.service.update_assistant(
                ACCOUNT, self.assistant.id, AssistantUpdateRequest(max_call_duration=4000)
            )

    async def test_delete_releases_quota(self):
        await self.service.delete_assistant(ACCOUNT, self.assistant.id)

        self.assertEqual(self.voice.called("delete_assistant"), ["vapi-asst-1"])
        self.assertIsNone(await self.storage.get_assistant(ACCOUNT, self.assistant.id))
        self.assertEqual((await self.storage.get_quota(ACCOUNT)).current_assistants, 0)

    async def test_provider_failure_keeps_row(self):
        self.voice.fail_on.add("delete_assistant")

        with self.assertRaises(VapiError):
            await self.service.delete_assistant(ACCOUNT, self.assistant.id)

        self.assertIsNotNone(await self.storage.get_assistant(ACCOUNT, self.assistant.id))
        self.assertEqual((await self.storage.get_quota(ACCOUNT)).current_assistants, 1)

    async def test_other_accounts_cannot_see_assistant(self):
        with self.assertRaises(ResourceNotFoundError) as ctx:
            await self.service.get_assistant("acct-other", self.assistant.id)
        self.assertEqual(ctx.exception.error_code, ErrorCode.ASSISTANT_NOT_FOUND)


if __name__ == "__main__":
    unittest.main()
