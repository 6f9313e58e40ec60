"""Tests for session creation, closing and grace-period handling."""

from __future__ import annotations

import unittest
from unittest import mock

from dianya.config import ModelChoice
from dianya.errors import InvalidArgument, InvalidCredential, ProtocolError, ServerError
from dianya.stream.session import (
    SESSION_CLOSE_PATH,
    SESSION_PATH,
    SessionService,
    normalize_grace_period,
    parse_model,
)

SESSION_BODY = {
    "status": "ok",
    "data": {"task_id": "task-1", "session_id": "sess-1", "usage_id": "use-1", "max_time": 3600},
}


class GracePeriodTests(unittest.TestCase):
    def test_non_positive_means_none(self) -> None:
        for value in (None, 0, 0.0, -1, -0.5):
            self.assertEqual(normalize_grace_period(value), 0, value)

    def test_positive_never_rounds_to_zero(self) -> None:
        self.assertEqual(normalize_grace_period(0.1), 1)
        self.assertEqual(normalize_grace_period(1), 1)
        self.assertEqual(normalize_grace_period(2.9), 2)
        self.assertEqual(normalize_grace_period(30), 30)


class ParseModelTests(unittest.TestCase):
    def test_accepts_known_models(self) -> None:
        self.assertIs(parse_model("Quality_V2"), ModelChoice.QUALITY_V2)
        self.assertIs(parse_model(" speed "), ModelChoice.SPEED)
        self.assertIs(parse_model(ModelChoice.QUALITY), ModelChoice.QUALITY)

    def test_rejects_unknown_model(self) -> None:
        with self.assertRaises(InvalidArgument):
            parse_model("turbo")


class SessionServiceTests(unittest.IsolatedAsyncioTestCase):
    """Remote create/close calls over a mocked transport."""

    def setUp(self) -> None:
        self.transport = mock.Mock()
        self.transport.request_json = mock.AsyncMock()
        self.service = SessionService(self.transport)

    async def test_create_session(self) -> None:
        self.transport.request_json.return_value = SESSION_BODY

        session = await self.service.create_session("quality", "token-abc")

        self.assertEqual(session.task_id, "task-1")
        self.assertEqual(session.session_id, "sess-1")
        self.assertEqual(session.max_time, 3600)
        args, kwargs = self.transport.request_json.call_args
        self.assertEqual(args, ("POST", SESSION_PATH, "token-abc"))
        self.assertEqual(kwargs["payload"], {"model": "quality"})

    async def test_create_session_rejects_empty_credential(self) -> None:
        with self.assertRaises(InvalidCredential):
            await self.service.create_session("speed", "  ")
        self.transport.request_json.assert_not_called()

    async def test_create_session_rejects_unknown_model_before_request(self) -> None:
        with self.assertRaises(InvalidArgument):
            await self.service.create_session("fast", "token")
        self.transport.request_json.assert_not_called()

    async def test_create_session_failure_status(self) -> None:
        self.transport.request_json.return_value = {"status": "error", "message": "quota exceeded"}
        with self.assertRaises(ServerError):
            await self.service.create_session("speed", "token")

    async def test_create_session_incomplete_payload(self) -> None:
        self.transport.request_json.return_value = {"status": "ok", "data": {"task_id": "t"}}
        with self.assertRaises(ProtocolError):
            await self.service.create_session("speed", "token")

    async def test_close_without_grace_omits_timeout(self) -> None:
        self.transport.request_json.return_value = {"status": "ok", "data": {"status": "ok", "duration": 12}}

        zero = await self.service.close_session("task-1", "token", 0)
        zero_payload = self.transport.request_json.call_args.kwargs["payload"]
        negative = await self.service.close_session("task-1", "token", -5)
        negative_payload = self.transport.request_json.call_args.kwargs["payload"]

        self.assertEqual(zero_payload, {"task_id": "task-1"})
        self.assertEqual(zero_payload, negative_payload)
        self.assertEqual(zero, negative)
        self.assertTrue(zero.succeeded)
        self.assertEqual(zero.duration, 12)

    async def test_close_with_sub_second_grace_sends_one(self) -> None:
        self.transport.request_json.return_value = {"status": "ok"}

        await self.service.close_session("task-1", "token", 0.25)

        args, kwargs = self.transport.request_json.call_args
        self.assertEqual(args[1], SESSION_CLOSE_PATH)
        self.assertEqual(kwargs["payload"], {"task_id": "task-1", "timeout": 1})

    async def test_close_non_success_status_is_a_result(self) -> None:
        self.transport.request_json.return_value = {
            "status": "failed",
            "error_code": 42,
            "message": "audio too short",
        }

        result = await self.service.close_session("task-1", "token")

        self.assertFalse(result.succeeded)
        self.assertEqual(result.error_code, 42)

    async def test_close_rejects_empty_task_id(self) -> None:
        with self.assertRaises(InvalidArgument):
            await self.service.close_session("", "token")
        self.transport.request_json.assert_not_called()


if __name__ == "__main__":
    unittest.main()
