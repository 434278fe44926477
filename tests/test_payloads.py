"""
Tests for Vapi request body builders.
"""

import unittest

from pydantic import SecretStr

from voicematrix.config import VapiSettings
from voicematrix.types.assistants import (
    AssistantCreateRequest,
    AssistantUpdateRequest,
    StructuredQuestion,
)
from voicematrix.vapi.payloads import (
    build_assistant_payload,
    build_assistant_update_payload,
    build_personality_instructions,
    build_phone_number_payload,
    build_structured_data_schema,
    build_system_prompt,
)


def make_request(**overrides):
    fields = {"name": "Front Desk", "first_message": "Hello, thanks for calling!"}
    fields.update(overrides)
    return AssistantCreateRequest(**fields)


class TestSystemPrompt(unittest.TestCase):
    def test_default_traits_used_when_none_given(self):
        prompt = build_system_prompt(make_request())
        self.assertIn("business-like tone", prompt)
        self.assertIn("warm, welcoming", prompt)

    def test_unknown_traits_fall_back_to_generic_instruction(self):
        self.assertEqual(
            build_personality_instructions(["Grumpy"]),
            "Be professional, friendly, and helpful in all interactions.",
        )

    def test_required_questions_listed_before_optional(self):
        request = make_request(structured_questions=[
            StructuredQuestion(question="Any allergies?", required=False),
            StructuredQuestion(question="What is your name?", required=True, description="caller name"),
        ])
        prompt = build_system_prompt(request)

        required_at = prompt.index("REQUIRED INFORMATION")
        optional_at = prompt.index("OPTIONAL INFORMATION")
        self.assertLess(required_at, optional_at)
        self.assertIn('1. "What is your name?" (caller name)', prompt)

    def test_evaluation_rubric_included(self):
        prompt = build_system_prompt(make_request(evaluation_method="Checklist"))
        self.assertIn("Check off each goal", prompt)


class TestStructuredDataSchema(unittest.TestCase):
    def test_no_questions_no_schema(self):
        self.assertIsNone(build_structured_data_schema([]))

    def test_field_names_derived_from_question(self):
        schema = build_structured_data_schema([
            StructuredQuestion(question="Best phone?", required=True),
            StructuredQuestion(question="Email", field_name="email", type="string"),
        ])

        self.assertEqual(set(schema["properties"]), {"best_phone_", "email"})
        self.assertEqual(schema["required"], ["best_phone_"])


class TestAssistantPayload(unittest.TestCase):
    def test_defaults(self):
        payload = build_assistant_payload(make_request())

        self.assertEqual(payload["name"], "Front Desk")
        self.assertEqual(payload["firstMessage"], "Hello, thanks for calling!")
        self.assertEqual(payload["voice"]["voiceId"], "Elliot")
        self.assertEqual(payload["maxDurationSeconds"], 300)
        self.assertEqual(payload["backgroundSound"], "office")
        self.assertEqual(payload["model"]["messages"][0]["role"], "system")
        self.assertNotIn("analysisPlan", payload)
        self.assertNotIn("server", payload)

    def test_no_evaluation_skips_success_plan(self):
        payload = build_assistant_payload(make_request(evaluation_method="NoEvaluation"))
        self.assertNotIn("analysisPlan", payload)

    def test_analysis_plan_with_questions_and_rubric(self):
        payload = build_assistant_payload(make_request(
            evaluation_method="NumericScale",
            structured_questions=[StructuredQuestion(question="Name?", required=True)],
        ))

        plan = payload["analysisPlan"]
        self.assertTrue(plan["structuredDataPlan"]["enabled"])
        self.assertEqual(plan["successEvaluationPlan"]["rubric"], "NumericScale")

    def test_server_webhook_attached_when_configured(self):
        settings = VapiSettings(
            make_webhook_url="https://hook.example.com/vapi",
            make_webhook_secret=SecretStr("s3cret"),
        )
        payload = build_assistant_payload(make_request(), settings)

        self.assertEqual(payload["server"]["url"], "https://hook.example.com/vapi")
        self.assertEqual(payload["server"]["secret"], "s3cret")
        self.assertEqual(payload["serverMessages"], ["end-of-call-report"])


class TestUpdateAndPhonePayloads(unittest.TestCase):
    def test_update_contains_only_changed_fields(self):
        payload = build_assistant_update_payload(AssistantUpdateRequest(first_message="Hi there"))
        self.assertEqual(payload, {"firstMessage": "Hi there"})

    def test_empty_update(self):
        self.assertEqual(build_assistant_update_payload(AssistantUpdateRequest()), {})

    def test_phone_payload(self):
        payload = build_phone_number_payload(
            phone_number="+14155550100",
            friendly_name="Main line",
            twilio_account_sid="AC" + "a" * 32,
            twilio_auth_token="t" * 32,
            vapi_assistant_id="vapi-asst-1",
        )

        self.assertEqual(payload["provider"], "twilio")
        self.assertEqual(payload["number"], "+14155550100")
        self.assertEqual(payload["assistantId"], "vapi-asst-1")

    def test_phone_payload_without_assistant(self):
        payload = build_phone_number_payload("+14155550100", "Main", "AC" + "a" * 32, "t" * 32)
        self.assertNotIn("assistantId", payload)


if __name__ == "__main__":
    unittest.main()
