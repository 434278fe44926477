"""
Tests for the error envelope, sanitisation and exception handlers.
"""

import json
import unittest
from unittest.mock import MagicMock

from fastapi import FastAPI, HTTPException
from fastapi.testclient import TestClient

from app.envelope import success, to_client_envelope
from app.error_handlers import (
    format_pydantic_errors,
    register_exception_handlers,
    sanitize_details,
    sanitize_error_message,
    voice_matrix_exception_handler,
)
from voicematrix.exceptions import (
    AuthenticationError,
    LimitReachedError,
    ResourceNotFoundError,
    StorageError,
    ValidationError,
    VapiError,
)
from voicematrix.types.limits import PlanType, QuotaRecord


class TestSanitization(unittest.TestCase):
    def test_messages_with_secrets_replaced(self):
        for message in (
            "bad api_key sk-123",
            "Twilio rejected the request",
            "connect postgresql://user:pw@db/app failed",
        ):
            with self.subTest(message=message):
                self.assertEqual(
                    sanitize_error_message(message),
                    "An error occurred while processing your request",
                )

    def test_ip_addresses_masked(self):
        self.assertEqual(sanitize_error_message("cannot reach 10.0.0.12"), "cannot reach [ip]")

    def test_long_messages_truncated(self):
        self.assertEqual(len(sanitize_error_message("x" * 600)), 503)

    def test_only_whitelisted_detail_keys(self):
        details = sanitize_details({
            "field": "name",
            "internal_message": "stack trace",
            "errors": ["a", 1, object()],
            "limit_type": "assistants",
        })
        self.assertEqual(details, {"field": "name", "errors": ["a", 1], "limit_type": "assistants"})

    def test_pydantic_errors_flattened(self):
        formatted = format_pydantic_errors([
            {"loc": ("body", "name"), "type": "missing", "msg": "Field required"},
            {"loc": ("query", "limit"), "type": "int_parsing", "msg": "bad int"},
        ])
        self.assertEqual(formatted, [
            {"field": "name", "message": "Field 'name' is required"},
            {"field": "query.limit", "message": "Field 'query.limit' must be an integer"},
        ])


class TestExceptionEnvelope(unittest.TestCase):
    def test_to_dict(self):
        error = ResourceNotFoundError("Assistant not found", resource_type="assistant", resource_id="a1")
        self.assertEqual(error.to_dict(), {
            "success": False,
            "error": "Assistant not found",
            "error_code": "RESOURCE_NOT_FOUND",
            "details": {"resource_type": "assistant", "resource_id": "a1"},
        })

    def test_status_codes(self):
        self.assertEqual(ValidationError().status_code, 400)
        self.assertEqual(AuthenticationError().status_code, 401)
        self.assertEqual(LimitReachedError().status_code, 409)
        self.assertEqual(VapiError().status_code, 502)
        self.assertEqual(StorageError().status_code, 500)


class TestVoiceMatrixHandler(unittest.IsolatedAsyncioTestCase):
    async def test_internal_message_not_exposed(self):
        request = MagicMock()
        error = StorageError(internal_message="relation assistants does not exist")

        response = await voice_matrix_exception_handler(request, error)

        self.assertEqual(response.status_code, 500)
        body = json.loads(response.body)
        self.assertEqual(body["error"], "A storage error occurred")
        self.assertNotIn("relation", response.body.decode())

    async def test_authentication_message_passed_through(self):
        response = await voice_matrix_exception_handler(MagicMock(), AuthenticationError())
        self.assertEqual(json.loads(response.body)["error"], "Authentication required")


class TestEnvelope(unittest.IsolatedAsyncioTestCase):
    def test_success_dumps_models(self):
        quota = QuotaRecord.for_plan("acct", PlanType.FREE)
        body = success([quota])

        self.assertTrue(body["success"])
        self.assertEqual(body["data"][0]["plan_type"], "free")

    async def test_limit_reached_becomes_empty_success(self):
        async def blocked():
            raise LimitReachedError(limit_type="assistants", current=2, maximum=2)

        self.assertEqual(await to_client_envelope(blocked()), {"success": True, "data": None})

    async def test_other_errors_propagate(self):
        async def broken():
            raise VapiError("Voice provider error")

        with self.assertRaises(VapiError):
            await to_client_envelope(broken())


class TestRegisteredHandlers(unittest.TestCase):
    def setUp(self):
        app = FastAPI()
        register_exception_handlers(app)

        @app.get("/missing")
        async def missing():
            raise ResourceNotFoundError("Call log not found")

        @app.get("/http")
        async def http_error():
            raise HTTPException(status_code=403, detail="bearer token abc leaked")

        @app.get("/typed")
        async def typed(limit: int):
            return {"limit": limit}

        self.client = TestClient(app)

    def test_voice_matrix_exception(self):
        response = self.client.get("/missing")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error_code"], "RESOURCE_NOT_FOUND")

    def test_http_exception_sanitized(self):
        response = self.client.get("/http")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["error"], "An error occurred while processing your request")

    def test_request_validation_is_422(self):
        response = self.client.get("/typed?limit=abc")

        self.assertEqual(response.status_code, 422)
        body = response.json()
        self.assertEqual(body["error_code"], "VALIDATION_ERROR")
        self.assertEqual(body["details"]["errors"][0]["field"], "query.limit")

    def test_unknown_route_is_404(self):
        response = self.client.get("/nope")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error_code"], "RESOURCE_NOT_FOUND")


if __name__ == "__main__":
    unittest.main()
