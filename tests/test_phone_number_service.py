"""
Tests for phone number validation, registration and credential handling.
"""

import unittest
from unittest.mock import AsyncMock

from cryptography.fernet import Fernet

from tests.fakes import FakeVoiceProvider, build_usage, seed_assistant
from voicematrix.exceptions import (
    ConflictError,
    ErrorCode,
    ResourceNotFoundError,
    StorageError,
    ValidationError,
)
from voicematrix.services.phone_numbers import (
    PhoneNumberService,
    is_valid_phone_number,
    validate_phone_number_request,
)
from voicematrix.storage import InMemoryStorage
from voicematrix.types.phone_numbers import PhoneNumberCreateRequest, PhoneNumberUpdateRequest
from voicematrix.utils.crypto import CredentialEncryptor

ACCOUNT = "acct-phones"
SID = "AC" + "0123456789abcdef" * 2
TOKEN = "f" * 32


def make_request(**overrides):
    fields = {
        "phone_number": "+14155550100",
        "friendly_name": "Main line",
        "twilio_account_sid": SID,
        "twilio_auth_token": TOKEN,
    }
    fields.update(overrides)
    return PhoneNumberCreateRequest(**fields)


class TestPhoneValidation(unittest.TestCase):
    def test_e164(self):
        self.assertTrue(is_valid_phone_number("+14155550100"))
        for number in ("4155550100", "+0415555", "+1 415 555 0100", "", None):
            with self.subTest(number=number):
                self.assertFalse(is_valid_phone_number(number))

    def test_valid_request(self):
        self.assertEqual(validate_phone_number_request(make_request()), [])

    def test_every_field_checked(self):
        errors = validate_phone_number_request(PhoneNumberCreateRequest(
            phone_number="555",
            friendly_name=" ",
            twilio_account_sid="XX123",
            twilio_auth_token="short",
        ))
        self.assertEqual(len(errors), 4)


class PhoneNumberServiceTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.storage = InMemoryStorage()
        self.voice = FakeVoiceProvider()
        self.usage = build_usage(self.storage, self.voice)
        self.key = Fernet.generate_key().decode()
        self.encryptor = CredentialEncryptor(self.key)
        self.service = PhoneNumberService(self.storage, self.voice, self.encryptor)
        self.assistant = await seed_assistant(
            self.storage, self.usage, ACCOUNT, "desk", minutes_old=10, vapi_assistant_id="vapi-desk"
        )


class TestCreatePhoneNumber(PhoneNumberServiceTestCase):
    async def test_token_stored_encrypted(self):
        phone = await self.service.create_phone_number(ACCOUNT, make_request())

        stored = await self.storage.get_phone_number(ACCOUNT, phone.id)
        self.assertNotEqual(stored.twilio_auth_token, TOKEN)
        self.assertEqual(self.encryptor.decrypt(stored.twilio_auth_token), TOKEN)
        self.assertEqual(stored.vapi_phone_id, "vapi-phone-1")
        self.assertEqual(stored.vapi_credential_id, "cred-1")

    async def test_public_view_hides_credentials(self):
        phone = await self.service.create_phone_number(ACCOUNT, make_request())
        public = phone.to_public()

        self.assertNotIn("twilio_auth_token", public)
        self.assertNotIn("twilio_account_sid", public)
        self.assertNotIn("vapi_credential_id", public)
        self.assertEqual(public["phone_number"], "+14155550100")

    async def test_assignment_sends_vapi_assistant_id(self):
        await self.service.create_phone_number(
            ACCOUNT, make_request(assigned_assistant_id=self.assistant.id)
        )
        [payload] = self.voice.called("create_phone_number")
        self.assertEqual(payload["assistantId"], "vapi-desk")

    async def test_unknown_assistant_rejected_before_provider_call(self):
        with self.assertRaises(ResourceNotFoundError):
            await self.service.create_phone_number(
                ACCOUNT, make_request(assigned_assistant_id="nope")
            )
        self.assertEqual(self.voice.called("create_phone_number"), [])

    async def test_duplicate_number_conflicts(self):
        await self.service.create_phone_number(ACCOUNT, make_request())

        with self.assertRaises(ConflictError) as ctx:
            await self.service.create_phone_number("acct-other", make_request())
        self.assertEqual(ctx.exception.error_code, ErrorCode.PHONE_EXISTS)
        self.assertEqual(len(self.voice.called("create_phone_number")), 1)

    async def test_invalid_request(self):
        with self.assertRaises(ValidationError) as ctx:
            await self.service.create_phone_number(ACCOUNT, make_request(twilio_auth_token="x"))
        self.assertEqual(
            ctx.exception.details["errors"],
            ["Invalid Twilio Auth Token (must be at least 32 characters)"],
        )

    async def test_storage_failure_rolls_back_provider_number(self):
        self.storage.insert_phone_number = AsyncMock(
            side_effect=StorageError(operation="insert_phone_number")
        )

        with self.assertRaises(StorageError):
            await self.service.create_phone_number(ACCOUNT, make_request())
        self.assertEqual(self.voice.called("delete_phone_number"), ["vapi-phone-1"])


class TestManagePhoneNumber(PhoneNumberServiceTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.phone = await self.service.create_phone_number(ACCOUNT, make_request())

    async def test_list_includes_assistant_name(self):
        await self.service.update_phone_number(
            ACCOUNT, self.phone.id, PhoneNumberUpdateRequest(assigned_assistant_id=self.assistant.id)
        )
        [view] = await self.service.list_phone_numbers(ACCOUNT)

        self.assertEqual(view["assigned_assistant_name"], "desk")
        self.assertNotIn("twilio_auth_token", view)

    async def test_update_syncs_provider(self):
        updated = await self.service.update_phone_number(
            ACCOUNT,
            self.phone.id,
            PhoneNumberUpdateRequest(friendly_name="Support", assigned_assistant_id=self.assistant.id),
        )

        self.assertEqual(updated.friendly_name, "Support")
        self.assertEqual(updated.assigned_assistant_id, self.assistant.id)
        [(vapi_id, payload)] = self.voice.called("update_phone_number")
        self.assertEqual(vapi_id, "vapi-phone-1")
        self.assertEqual(payload, {"name": "Support", "assistantId": "vapi-desk"})

    async def test_unassign(self):
        await self.service.update_phone_number(
            ACCOUNT, self.phone.id, PhoneNumberUpdateRequest(assigned_assistant_id=self.assistant.id)
        )
        updated = await self.service.update_phone_number(
            ACCOUNT, self.phone.id, PhoneNumberUpdateRequest(assigned_assistant_id=None)
        )
        self.assertIsNone(updated.assigned_assistant_id)

    async def test_blank_friendly_name_rejected(self):
        with self.assertRaises(ValidationError):
            await self.service.update_phone_number(
                ACCOUNT, self.phone.id, PhoneNumberUpdateRequest(friendly_name="")
            )

    async def test_delete_continues_when_provider_fails(self):
        self.voice.fail_on.add("delete_phone_number")

        await self.service.delete_phone_number(ACCOUNT, self.phone.id)
        self.assertIsNone(await self.storage.get_phone_number(ACCOUNT, self.phone.id))

    async def test_missing_number(self):
        with self.assertRaises(ResourceNotFoundError) as ctx:
            await self.service.delete_phone_number(ACCOUNT, "missing")
        self.assertEqual(ctx.exception.error_code, ErrorCode.PHONE_NUMBER_NOT_FOUND)


if __name__ == "__main__":
    unittest.main()
