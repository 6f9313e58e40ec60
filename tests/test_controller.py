"""End-to-end orchestration tests for the session controller."""

from __future__ import annotations

import asyncio
import unittest
from unittest import mock

from fakes import FakeConnector, RecordingChannel

from dianya.audio import BytesSource
from dianya.config import StreamConfig
from dianya.errors import (
    InvalidCredential,
    ServerError,
    SessionRunError,
    TransportError,
)
from dianya.stream.controller import SessionController
from dianya.stream.session import Session, SessionCloseResult

SESSION = Session(task_id="task-7", session_id="sess-7", usage_id="use-7", max_time=600)
CLOSED_OK = SessionCloseResult(status="ok", duration=2)


class SessionControllerTests(unittest.IsolatedAsyncioTestCase):
    """Drive the controller with a recording channel and a mocked session service."""

    def setUp(self) -> None:
        self.config = StreamConfig(poll_timeout_seconds=0.02, drain_timeout_seconds=0.02)
        self.sessions = mock.Mock()
        self.sessions.create_session = mock.AsyncMock(return_value=SESSION)
        self.sessions.close_session = mock.AsyncMock(return_value=CLOSED_OK)
        self.channel = RecordingChannel(session_id=SESSION.session_id)
        self.opened = []

        def factory(session_id: str) -> RecordingChannel:
            self.opened.append(session_id)
            return self.channel

        self.controller = SessionController(self.config, self.sessions, channel_factory=factory)

    async def test_streams_file_and_closes_after_last_chunk(self) -> None:
        events = []

        async def close_session(task_id, credential, grace):  # noqa: ANN001
            self.channel.timeline.append(("close_session", task_id))
            return CLOSED_OK

        self.sessions.close_session.side_effect = close_session
        self.channel.replies = ['{"text": "hello"}']

        result = await self.controller.transcribe(
            BytesSource(b"\x00" * 32000), "token-1", model="quality", on_event=events.append
        )

        self.sessions.create_session.assert_awaited_once_with("quality", "token-1")
        self.assertEqual(self.opened, ["sess-7"])
        self.assertEqual(len(self.channel.sends), 5)
        self.assertEqual(result.chunks_sent, 5)
        self.assertEqual(result.bytes_sent, 32000)
        self.assertEqual(result.events_received, 1)
        self.assertEqual(events[0].text, '{"text": "hello"}')
        self.assertIs(result.close_result, CLOSED_OK)
        self.assertFalse(result.cancelled)

        self.sessions.close_session.assert_awaited_once_with("task-7", "token-1", 0.0)
        kinds = [kind for kind, _ in self.channel.timeline]
        last_send = max(i for i, kind in enumerate(kinds) if kind == "send")
        self.assertEqual(kinds.index("close_session"), len(kinds) - 1)
        self.assertLess(last_send, kinds.index("close_session"))
        # the receiver polls between consecutive sends
        sends = [i for i, kind in enumerate(kinds) if kind == "send"]
        for before, after in zip(sends, sends[1:]):
            self.assertIn("receive", kinds[before:after])
        self.assertEqual(self.channel.closed, 1)

    async def test_default_model_comes_from_config(self) -> None:
        await self.controller.transcribe(BytesSource(b""), "token-1")
        self.sessions.create_session.assert_awaited_once_with(self.config.model, "token-1")

    async def test_creation_error_short_circuits(self) -> None:
        self.sessions.create_session.side_effect = InvalidCredential("bad token")

        with self.assertRaises(InvalidCredential):
            await self.controller.transcribe(BytesSource(b"\x00" * 100), "bad")

        self.assertEqual(self.opened, [])
        self.sessions.close_session.assert_not_called()

    async def test_cancellation_stops_feeding_and_still_closes(self) -> None:
        cancel = asyncio.Event()
        controller = SessionController(
            StreamConfig(pace_ratio=2.0, poll_timeout_seconds=0.02),
            self.sessions,
            channel_factory=lambda _sid: self.channel,
        )

        task = asyncio.create_task(
            controller.transcribe(BytesSource(b"\x00" * 64000), "token-1", cancel=cancel)
        )
        await asyncio.sleep(0.05)
        cancel.set()
        result = await asyncio.wait_for(task, timeout=2.0)

        self.assertTrue(result.cancelled)
        self.assertEqual(len(self.channel.sends), 1)
        self.sessions.close_session.assert_awaited_once()
        self.assertEqual(self.channel.closed, 1)

    async def test_task_cancellation_still_closes_remote_session(self) -> None:
        controller = SessionController(
            StreamConfig(pace_ratio=2.0, poll_timeout_seconds=0.02),
            self.sessions,
            channel_factory=lambda _sid: self.channel,
        )
        task = asyncio.create_task(controller.transcribe(BytesSource(b"\x00" * 64000), "token-1"))

        await asyncio.sleep(0.15)
        task.cancel()
        with self.assertRaises(asyncio.CancelledError):
            await task

        self.sessions.close_session.assert_awaited_once_with("task-7", "token-1", 0.0)
        self.assertEqual(self.channel.closed, 1)

    async def test_cancellation_during_drain_ends_promptly(self) -> None:
        class QuietChannel(RecordingChannel):
            async def receive(self, timeout):  # noqa: ANN001
                self.timeline.append(("receive", timeout))
                await asyncio.sleep(timeout)
                return None, False

        channel = QuietChannel(session_id=SESSION.session_id)
        controller = SessionController(
            StreamConfig(poll_timeout_seconds=0.02, drain_max_polls=4, drain_timeout_seconds=1.0),
            self.sessions,
            channel_factory=lambda _sid: channel,
        )
        cancel = asyncio.Event()
        task = asyncio.create_task(controller.transcribe(BytesSource(b""), "token-1", cancel=cancel))

        await asyncio.sleep(0.1)
        self.assertIn(("receive", 1.0), channel.timeline)
        cancel.set()
        result = await asyncio.wait_for(task, timeout=0.5)

        self.assertTrue(result.cancelled)
        self.sessions.close_session.assert_awaited_once()

    async def test_start_failure_reports_stage_and_closes_session(self) -> None:
        self.channel.start_error = TransportError("handshake refused")

        with self.assertRaises(SessionRunError) as ctx:
            await self.controller.transcribe(BytesSource(b"\x00" * 100), "token-1")

        self.assertEqual(ctx.exception.stage, "start")
        self.assertIsInstance(ctx.exception.__cause__, TransportError)
        self.assertEqual(self.channel.sends, [])
        self.sessions.close_session.assert_awaited_once()
        self.assertEqual(self.channel.closed, 1)

    async def test_send_failure_reports_feed_stage(self) -> None:
        self.channel.send_error = (2, TransportError("reset"))

        with self.assertRaises(SessionRunError) as ctx:
            await self.controller.transcribe(BytesSource(b"\x00" * 32000), "token-1")

        self.assertEqual(ctx.exception.stage, "feed")
        self.assertEqual(ctx.exception.result.chunks_sent, 1)
        self.sessions.close_session.assert_awaited_once()

    async def test_receive_failure_stops_feeder(self) -> None:
        self.channel.receive_error = TransportError("listener died")

        with self.assertRaises(SessionRunError) as ctx:
            await self.controller.transcribe(BytesSource(b"\x00" * 64000), "token-1")

        self.assertEqual(ctx.exception.stage, "receive")
        self.assertLess(len(self.channel.sends), 10)
        self.sessions.close_session.assert_awaited_once()

    async def test_close_failure_reports_close_stage(self) -> None:
        self.sessions.close_session.side_effect = ServerError("gone", status=502)

        with self.assertRaises(SessionRunError) as ctx:
            await self.controller.transcribe(BytesSource(b"\x00" * 6400), "token-1")

        self.assertEqual(ctx.exception.stage, "close")
        self.assertEqual(ctx.exception.result.chunks_sent, 1)
        self.assertIsNone(ctx.exception.result.close_result)

    async def test_close_session_uses_configured_grace(self) -> None:
        controller = SessionController(
            StreamConfig(close_grace_seconds=3), self.sessions, channel_factory=lambda _sid: self.channel
        )
        await controller.close_session("task-7", "token-1")
        await controller.close_session("task-7", "token-1", 0)

        calls = self.sessions.close_session.await_args_list
        self.assertEqual(calls[0].args, ("task-7", "token-1", 3))
        self.assertEqual(calls[1].args, ("task-7", "token-1", 0))

    async def test_open_channel_builds_duplex_channel(self) -> None:
        controller = SessionController(self.config, self.sessions, connector=FakeConnector())
        channel = controller.open_channel("sess-9")

        self.assertEqual(channel.session_id, "sess-9")
        self.assertTrue(channel.url.endswith("/sess-9"))


if __name__ == "__main__":
    unittest.main()
