"""
Tests for Vapi call events and call log queries.
"""

import asyncio
import unittest
from datetime import datetime, timedelta, timezone

from tests.fakes import FakeVoiceProvider, build_usage, seed_assistant, seed_phone_number
from voicematrix.exceptions import ErrorCode, ResourceNotFoundError
from voicematrix.services.accounts import DemoAccountService
from voicematrix.services.call_logs import CallLogService, call_duration_seconds, parse_timestamp
from voicematrix.storage import InMemoryStorage
from voicematrix.types.accounts import Account
from voicematrix.types.call_logs import CallStatus, map_ended_reason
from voicematrix.types.limits import UsageAction

ACCOUNT = "acct-calls"


class SuspendingStorage(InMemoryStorage):
    """Yields to the event loop before each call log read or write, like a database round trip."""

    async def get_call_log_by_vapi_id(self, vapi_call_id):
        await asyncio.sleep(0)
        return await super().get_call_log_by_vapi_id(vapi_call_id)

    async def update_call_log(self, call_log_id, changes):
        await asyncio.sleep(0)
        return await super().update_call_log(call_log_id, changes)

    async def close_call_log(self, call_log_id, changes):
        await asyncio.sleep(0)
        return await super().close_call_log(call_log_id, changes)


def started_event(call_id="call-1", assistant="vapi-desk", started_at="2025-01-01T12:00:00Z", **extra):
    call = {"id": call_id, "assistantId": assistant, "startedAt": started_at}
    call.update(extra)
    return {"type": "call.started", "call": call}


def ended_event(call_id="call-1", started_at="2025-01-01T12:00:00Z",
                ended_at="2025-01-01T12:02:00Z", reason="customer-ended-call"):
    return {
        "type": "call.ended",
        "call": {"id": call_id, "startedAt": started_at, "endedAt": ended_at, "endedReason": reason},
    }


class TestTimestampParsing(unittest.TestCase):
    def test_iso_with_z(self):
        self.assertEqual(
            parse_timestamp("2025-01-01T12:00:00Z"),
            datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc),
        )

    def test_epoch_milliseconds(self):
        self.assertEqual(
            parse_timestamp(1735732800000),
            datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc),
        )

    def test_missing_or_garbage(self):
        self.assertIsNone(parse_timestamp(None))
        self.assertIsNone(parse_timestamp(""))
        self.assertIsNone(parse_timestamp("yesterday"))

    def test_duration_rounds_and_clamps(self):
        start = datetime(2025, 1, 1, 12, 0, tzinfo=timezone.utc)
        self.assertEqual(call_duration_seconds(start, start.replace(second=59)), 59)
        self.assertEqual(call_duration_seconds(start.replace(minute=5), start), 0)
        self.assertEqual(call_duration_seconds(None, start), 0)

    def test_ended_reason_mapping(self):
        self.assertEqual(map_ended_reason("silence-timeout"), CallStatus.COMPLETED)
        self.assertEqual(map_ended_reason("customer-busy"), CallStatus.BUSY)
        self.assertEqual(map_ended_reason("customer-did-not-answer"), CallStatus.NO_ANSWER)
        self.assertEqual(map_ended_reason("something-new"), CallStatus.FAILED)
        self.assertEqual(map_ended_reason(None), CallStatus.FAILED)


class CallLogTestCase(unittest.IsolatedAsyncioTestCase):
    async def asyncSetUp(self):
        self.storage = InMemoryStorage()
        self.voice = FakeVoiceProvider()
        self.usage = build_usage(self.storage, self.voice)
        self.service = CallLogService(self.storage, self.usage)
        self.assistant = await seed_assistant(
            self.storage, self.usage, ACCOUNT, "desk", minutes_old=30, vapi_assistant_id="vapi-desk"
        )

    async def only_log(self):
        logs, total = await self.storage.list_call_logs(ACCOUNT)
        self.assertEqual(total, 1)
        return logs[0]


class TestCallEvents(CallLogTestCase):
    async def test_call_started_creates_in_progress_log(self):
        phone = await seed_phone_number(
            self.storage, ACCOUNT, "+14155550100", self.assistant.id, vapi_phone_id="vapi-ph"
        )
        response = await self.service.handle_event(started_event(
            phoneNumberId="vapi-ph", customer={"number": "+16505550123"}
        ))

        self.assertEqual(response, {"received": True})
        log = await self.only_log()
        self.assertEqual(log.status, CallStatus.IN_PROGRESS)
        self.assertEqual(log.assistant_id, self.assistant.id)
        self.assertEqual(log.phone_number_id, phone.id)
        self.assertEqual(log.caller_number, "+16505550123")
        self.assertEqual(log.vapi_call_id, "call-1")

    async def test_repeated_call_started_is_idempotent(self):
        await self.service.handle_event(started_event())
        await self.service.handle_event(started_event())
        await self.only_log()

    async def test_unknown_assistant_is_ignored(self):
        response = await self.service.handle_event(started_event(assistant="vapi-unknown"))

        self.assertEqual(response, {"received": True})
        self.assertEqual((await self.storage.list_call_logs(ACCOUNT))[1], 0)

    async def test_call_ended_charges_call_time(self):
        await self.service.handle_event(started_event())
        await self.service.handle_event(ended_event())

        log = await self.only_log()
        self.assertEqual(log.status, CallStatus.COMPLETED)
        self.assertEqual(log.duration_seconds, 120)
        self.assertIsNotNone(log.ended_at)

        quota = await self.storage.get_quota(ACCOUNT)
        self.assertEqual(quota.used_call_time_seconds, 120)
        latest = (await self.usage.get_usage_history(ACCOUNT))[0]
        self.assertEqual(latest.action_type, UsageAction.CALL_COMPLETED)
        self.assertEqual(latest.resource_id, log.id)

    async def test_repeated_call_ended_charges_once(self):
        await self.service.handle_event(started_event())
        await self.service.handle_event(ended_event())
        result = await self.service.handle_call_ended(ended_event()["call"])

        self.assertIsNone(result)
        quota = await self.storage.get_quota(ACCOUNT)
        self.assertEqual(quota.used_call_time_seconds, 120)

    async def test_concurrent_call_ended_charges_once(self):
        self.storage = SuspendingStorage()
        self.usage = build_usage(self.storage, self.voice)
        self.service = CallLogService(self.storage, self.usage)
        await seed_assistant(
            self.storage, self.usage, ACCOUNT, "desk", minutes_old=30, vapi_assistant_id="vapi-desk"
        )
        await self.service.handle_event(started_event())

        await asyncio.gather(
            self.service.handle_event(ended_event()),
            self.service.handle_event(ended_event()),
        )

        quota = await self.storage.get_quota(ACCOUNT)
        self.assertEqual(quota.used_call_time_seconds, 120)
        completed = [
            e for e in await self.usage.get_usage_history(ACCOUNT)
            if e.action_type == UsageAction.CALL_COMPLETED
        ]
        self.assertEqual(len(completed), 1)

    async def test_epoch_millisecond_timestamps(self):
        await self.service.handle_event(started_event(started_at=1735732800000))
        await self.service.handle_event(ended_event(
            started_at=1735732800000, ended_at=1735732845000
        ))

        log = await self.only_log()
        self.assertEqual(log.duration_seconds, 45)

    async def test_zero_length_call_not_charged(self):
        await self.service.handle_event(started_event())
        result = await self.service.handle_call_ended(ended_event(
            ended_at="2025-01-01T12:00:00Z", reason="customer-did-not-answer"
        )["call"])

        self.assertIsNone(result)
        log = await self.only_log()
        self.assertEqual(log.status, CallStatus.NO_ANSWER)
        self.assertEqual((await self.storage.get_quota(ACCOUNT)).used_call_time_seconds, 0)

    async def test_call_over_limit_triggers_auto_deletion(self):
        await self.service.handle_event(started_event())
        result = await self.service.handle_call_ended(ended_event(
            ended_at="2025-01-01T12:10:50Z"
        )["call"])

        self.assertTrue(result.update.limit_exceeded)
        self.assertTrue(result.auto_deletion.success)
        self.assertEqual(result.auto_deletion.deleted_assistant.id, self.assistant.id)
        self.assertEqual(self.voice.called("delete_assistant"), ["vapi-desk"])

        log = await self.only_log()
        self.assertIsNone(log.assistant_id)
        self.assertEqual(log.duration_seconds, 650)

    async def test_end_of_call_report(self):
        await self.service.handle_event(started_event())
        await self.service.handle_event({
            "message": {"type": "end-of-call-report"},
            "type": "end-of-call-report",
            "call": {"id": "call-1"},
            "transcript": "AI: Hello\nUser: Hi",
            "summary": "Caller booked a table.",
            "analysis": {"structuredData": {"name": "Sam"}, "successEvaluation": True},
        })

        log = await self.only_log()
        self.assertEqual(log.summary, "Caller booked a table.")
        self.assertEqual(log.structured_data, {"name": "Sam"})
        self.assertEqual(log.success_evaluation, "True")

    async def test_event_type_read_from_message(self):
        await self.service.handle_event({
            "message": {"type": "call.started"},
            "call": {"id": "call-9", "assistantId": "vapi-desk"},
        })
        log = await self.only_log()
        self.assertEqual(log.vapi_call_id, "call-9")

    async def test_unknown_event_type_acknowledged(self):
        self.assertEqual(
            await self.service.handle_event({"type": "speech-update"}),
            {"received": True},
        )


class TestDemoBreach(CallLogTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        self.demo_accounts = DemoAccountService(self.storage, self.voice, self.usage.quota_store)
        self.service = CallLogService(self.storage, self.usage, self.demo_accounts)

    async def breach(self):
        await self.service.handle_event(started_event())
        return await self.service.handle_call_ended(
            ended_event(ended_at="2025-01-01T12:11:00Z")["call"]
        )

    async def test_demo_left_without_assistants_is_purged(self):
        await self.storage.save_account(Account(
            id=ACCOUNT,
            is_demo_user=True,
            demo_expires_at=datetime.now(timezone.utc) + timedelta(days=3),
        ))

        result = await self.breach()

        self.assertTrue(result.auto_deletion.success)
        self.assertTrue(result.account_purged)
        self.assertEqual(self.voice.called("delete_assistant"), ["vapi-desk"])
        self.assertIsNone(await self.storage.get_account(ACCOUNT))
        self.assertIsNone(await self.storage.get_quota(ACCOUNT))

    async def test_demo_with_assistants_left_is_kept(self):
        await self.storage.save_account(Account(
            id=ACCOUNT,
            is_demo_user=True,
            demo_expires_at=datetime.now(timezone.utc) + timedelta(days=3),
        ))
        await seed_assistant(self.storage, self.usage, ACCOUNT, "sales", minutes_old=5)

        result = await self.breach()

        self.assertFalse(result.account_purged)
        self.assertEqual([a.name for a in await self.storage.list_assistants(ACCOUNT)], ["sales"])
        self.assertIsNotNone(await self.storage.get_account(ACCOUNT))

    async def test_regular_account_is_never_purged(self):
        result = await self.breach()

        self.assertTrue(result.auto_deletion.success)
        self.assertFalse(result.account_purged)
        self.assertEqual((await self.storage.get_quota(ACCOUNT)).used_call_time_seconds, 660)


class TestCallLogQueries(CallLogTestCase):
    async def asyncSetUp(self):
        await super().asyncSetUp()
        for i in range(3):
            call_id = f"call-{i}"
            await self.service.handle_event(started_event(
                call_id=call_id, started_at=f"2025-01-0{i + 1}T12:00:00Z"
            ))
            await self.service.handle_event(ended_event(
                call_id=call_id,
                started_at=f"2025-01-0{i + 1}T12:00:00Z",
                ended_at=f"2025-01-0{i + 1}T12:01:30Z",
            ))

    async def test_pagination_newest_first(self):
        page = await self.service.list_call_logs(ACCOUNT, limit=2)

        self.assertEqual(page.total, 3)
        self.assertEqual([c.vapi_call_id for c in page.items], ["call-2", "call-1"])
        second = await self.service.list_call_logs(ACCOUNT, limit=2, offset=2)
        self.assertEqual([c.vapi_call_id for c in second.items], ["call-0"])

    async def test_page_size_clamped(self):
        page = await self.service.list_call_logs(ACCOUNT, limit=1000, offset=-3)
        self.assertEqual(page.limit, 100)
        self.assertEqual(page.offset, 0)

    async def test_usage_summary(self):
        summary = await self.service.get_usage_summary(ACCOUNT)

        self.assertEqual(summary.call_count, 3)
        self.assertEqual(summary.total_call_seconds, 270)
        self.assertEqual(summary.total_call_minutes, 4.5)
        self.assertEqual(summary.formatted_duration, "4:30")
        self.assertEqual(summary.remaining_minutes, 5.5)
        self.assertEqual(summary.percent_used, 45.0)
        self.assertEqual(summary.latest_call, datetime(2025, 1, 3, 12, 0, tzinfo=timezone.utc))

    async def test_get_missing_call_log(self):
        with self.assertRaises(ResourceNotFoundError) as ctx:
            await self.service.get_call_log(ACCOUNT, "missing")
        self.assertEqual(ctx.exception.error_code, ErrorCode.CALL_LOG_NOT_FOUND)


if __name__ == "__main__":
    unittest.main()
