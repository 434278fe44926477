"""
Tests for limit evaluation and the session gate.
"""

import unittest
from datetime import datetime, timedelta, timezone

from voicematrix.accounts import SessionGate
from voicematrix.exceptions import AuthenticationError
from voicematrix.identity import InMemoryIdentityProvider
from voicematrix.storage import InMemoryStorage
from voicematrix.types.accounts import Account
from voicematrix.types.limits import UNLIMITED, PlanType, QuotaRecord
from voicematrix.usage import LimitEvaluator, QuotaStore, UsageLedger, compute_limits_view
from voicematrix.usage.evaluator import assistant_capacity


class TestComputeLimitsView(unittest.TestCase):
    def test_remaining_and_percentages(self):
        quota = QuotaRecord.for_plan("acct", PlanType.FREE).model_copy(
            update={"current_assistants": 1, "used_call_time_seconds": 150}
        )
        view = compute_limits_view(quota)

        self.assertEqual(view.remaining_assistants, 1)
        self.assertEqual(view.remaining_call_time_seconds, 450)
        self.assertEqual(view.usage_percentage.assistants, 50.0)
        self.assertEqual(view.usage_percentage.call_time, 25.0)

    def test_remaining_clamped_at_zero_after_breach(self):
        quota = QuotaRecord.for_plan("acct", PlanType.FREE).model_copy(
            update={"used_call_time_seconds": 650}
        )
        view = compute_limits_view(quota)

        self.assertEqual(view.remaining_call_time_seconds, 0)
        self.assertGreater(view.usage_percentage.call_time, 100)

    def test_unlimited_plan(self):
        quota = QuotaRecord.for_plan("acct", PlanType.ENTERPRISE).model_copy(
            update={"current_assistants": 40, "used_call_time_seconds": 99_999}
        )
        view = compute_limits_view(quota)

        self.assertEqual(view.max_assistants, UNLIMITED)
        self.assertEqual(view.remaining_assistants, UNLIMITED)
        self.assertEqual(view.remaining_call_time_seconds, UNLIMITED)
        self.assertEqual(view.usage_percentage.assistants, 0)
        self.assertEqual(view.usage_percentage.call_time, 0)


class TestAssistantCapacity(unittest.TestCase):
    def test_under_limit_allowed(self):
        quota = QuotaRecord.for_plan("acct", PlanType.FREE).model_copy(
            update={"current_assistants": 1}
        )
        capacity = assistant_capacity(quota)
        self.assertTrue(capacity.allowed)
        self.assertEqual(capacity.remaining, 1)

    def test_at_limit_blocked(self):
        quota = QuotaRecord.for_plan("acct", PlanType.FREE).model_copy(
            update={"current_assistants": 2}
        )
        capacity = assistant_capacity(quota)
        self.assertFalse(capacity.allowed)
        self.assertEqual(capacity.current, 2)
        self.assertEqual(capacity.max, 2)
        self.assertEqual(capacity.remaining, 0)

    def test_unlimited_always_allowed(self):
        quota = QuotaRecord.for_plan("acct", PlanType.ENTERPRISE).model_copy(
            update={"current_assistants": 500}
        )
        capacity = assistant_capacity(quota)
        self.assertTrue(capacity.allowed)
        self.assertEqual(capacity.max, UNLIMITED)


class TestLimitEvaluator(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.storage = InMemoryStorage()
        self.quota_store = QuotaStore(self.storage, UsageLedger(self.storage))
        self.evaluator = LimitEvaluator(self.storage, self.quota_store)
        self.now = datetime.now(timezone.utc)

    async def test_plan_taken_from_profile(self):
        await self.storage.save_account(Account(id="acct-pro", plan_type=PlanType.PRO))
        limits = await self.evaluator.get_user_limits("acct-pro")

        self.assertEqual(limits.plan_type, PlanType.PRO)
        self.assertEqual(limits.max_assistants, 10)
        self.assertEqual(limits.max_call_time_seconds, 3600)

    async def test_account_without_profile_is_free(self):
        limits = await self.evaluator.get_user_limits("acct-new")
        self.assertEqual(limits.plan_type, PlanType.FREE)

    async def test_can_create_lazily_initializes_quota(self):
        self.assertIsNone(await self.storage.get_quota("acct-lazy"))
        capacity = await self.evaluator.can_create_assistant("acct-lazy")

        self.assertTrue(capacity.allowed)
        self.assertIsNotNone(await self.storage.get_quota("acct-lazy"))

    async def test_expired_demo_rejected_before_quota_read(self):
        await self.storage.save_account(Account(
            id="acct-demo",
            is_demo_user=True,
            demo_expires_at=self.now - timedelta(hours=1),
        ))

        with self.assertRaises(AuthenticationError):
            await self.evaluator.get_user_limits("acct-demo")
        self.assertIsNone(await self.storage.get_quota("acct-demo"))

    async def test_active_demo_allowed(self):
        await self.storage.save_account(Account(
            id="acct-demo",
            is_demo_user=True,
            demo_expires_at=self.now + timedelta(days=3),
        ))
        limits = await self.evaluator.get_user_limits("acct-demo")
        self.assertEqual(limits.max_assistants, 2)


class TestSessionGate(unittest.IsolatedAsyncioTestCase):
    def setUp(self):
        self.storage = InMemoryStorage()
        self.identity = InMemoryIdentityProvider({"good-token": "acct-1", "demo-token": "acct-demo"})
        self.gate = SessionGate(self.identity, self.storage)

    async def test_valid_token_resolves_account(self):
        self.assertEqual(await self.gate.authenticate("good-token"), "acct-1")

    async def test_missing_and_unknown_tokens_rejected(self):
        for token in (None, "", "bad-token"):
            with self.subTest(token=token):
                with self.assertRaises(AuthenticationError):
                    await self.gate.authenticate(token)

    async def test_expired_demo_indistinguishable_from_bad_token(self):
        await self.storage.save_account(Account(
            id="acct-demo",
            is_demo_user=True,
            demo_expires_at=datetime.now(timezone.utc) - timedelta(days=1),
        ))

        with self.assertRaises(AuthenticationError) as expired:
            await self.gate.authenticate("demo-token")
        with self.assertRaises(AuthenticationError) as invalid:
            await self.gate.authenticate("bad-token")

        self.assertEqual(expired.exception.to_dict(), invalid.exception.to_dict())


if __name__ == "__main__":
    unittest.main()
