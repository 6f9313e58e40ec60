"""High-level orchestration of a realtime transcription session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Union

from ..audio import AudioSource
from ..config import ModelChoice, StreamConfig
from ..errors import Cancelled, SessionRunError
from .channel import Connector, DuplexChannel
from .feeder import AudioFeeder
from .receiver import EventHandler, EventReceiver
from .session import Session, SessionCloseResult, SessionService


@dataclass
class StreamResult:
    """Summary of one streaming session."""

    session: Session
    close_result: Optional[SessionCloseResult] = None
    chunks_sent: int = 0
    bytes_sent: int = 0
    events_received: int = 0
    cancelled: bool = False


class SessionController:
    """Create a session, run feeder and receiver together, then shut down in order.

    Shutdown always runs: stop feeding, drain pending events, close the
    channel, close the remote session. The first fatal failure is raised as
    :class:`SessionRunError` carrying the failing stage; later cleanup
    failures are only logged.
    """

    def __init__(
        self,
        config: StreamConfig,
        sessions: SessionService,
        connector: Optional[Connector] = None,
        channel_factory: Optional[Callable[[str], DuplexChannel]] = None,
    ) -> None:
        self.config = config
        self._sessions = sessions
        self._connector = connector
        self._channel_factory = channel_factory

    async def create_session(
        self, model: Union[str, ModelChoice, None], credential: str
    ) -> Session:
        return await self._sessions.create_session(model or self.config.model, credential)

    def open_channel(self, session_id: str) -> DuplexChannel:
        """Allocate a channel bound to ``session_id`` without touching the network."""

        if self._channel_factory is not None:
            return self._channel_factory(session_id)
        return DuplexChannel(session_id, self.config, connector=self._connector)

    async def close_session(
        self, task_id: str, credential: str, grace_period_seconds: Optional[float] = None
    ) -> SessionCloseResult:
        grace = self.config.close_grace_seconds if grace_period_seconds is None else grace_period_seconds
        return await self._sessions.close_session(task_id, credential, grace)

    async def transcribe(
        self,
        source: AudioSource,
        credential: str,
        model: Union[str, ModelChoice, None] = None,
        cancel: Optional[asyncio.Event] = None,
        on_event: Optional[EventHandler] = None,
    ) -> StreamResult:
        """Create a session and stream ``source`` through it.

        A session-creation failure is raised unchanged and no channel is opened.
        """

        session = await self.create_session(model, credential)
        channel = self.open_channel(session.session_id)
        return await self.run(channel, source, credential, session, cancel=cancel, on_event=on_event)

    async def run(
        self,
        channel: DuplexChannel,
        source: AudioSource,
        credential: str,
        session: Session,
        cancel: Optional[asyncio.Event] = None,
        on_event: Optional[EventHandler] = None,
    ) -> StreamResult:
        cancel = cancel or asyncio.Event()
        result = StreamResult(session=session)
        feeder = AudioFeeder(self.config)
        receiver = EventReceiver(channel, self.config.poll_timeout_seconds, on_event)
        failure: Optional[SessionRunError] = None

        def record(stage: str, exc: BaseException) -> None:
            nonlocal failure
            if failure is None:
                logging.error("Session %s failed during %s: %s", session.task_id, stage, exc)
                failure = SessionRunError(stage, exc, result)
            else:
                logging.warning("Session %s: additional %s failure: %s", session.task_id, stage, exc)

        try:
            async with channel:
                try:
                    await self._run_channel(channel, source, feeder, receiver, cancel, result, record)
                finally:
                    result.chunks_sent = feeder.progress.chunks_sent
                    result.bytes_sent = feeder.progress.bytes_sent
                    result.events_received = receiver.events_received
        except asyncio.CancelledError:
            logging.info("Session %s interrupted; closing it remotely.", session.task_id)
            result.cancelled = True
            raise
        finally:
            # runs on task cancellation too so the remote session is released
            try:
                result.close_result = await self.close_session(session.task_id, credential)
            except Exception as exc:  # pylint: disable=broad-except
                record("close", exc)

        if failure is not None:
            raise failure from failure.cause
        logging.info(
            "Session %s %s: %d chunks, %d bytes, %d events.",
            session.task_id,
            "cancelled" if result.cancelled else "finished",
            result.chunks_sent,
            result.bytes_sent,
            result.events_received,
        )
        return result

    async def _run_channel(
        self,
        channel: DuplexChannel,
        source: AudioSource,
        feeder: AudioFeeder,
        receiver: EventReceiver,
        cancel: asyncio.Event,
        result: StreamResult,
        record: Callable[[str, BaseException], None],
    ) -> None:
        """Start the channel, stream through it, then drain remaining events."""

        try:
            await channel.start()
        except Exception as exc:  # pylint: disable=broad-except
            record("start", exc)
            return
        feed_error, receive_error = await self._stream(channel, source, feeder, receiver, cancel)
        if isinstance(feed_error, Cancelled):
            result.cancelled = True
        elif feed_error is not None:
            record("feed", feed_error)
        if receive_error is not None:
            record("receive", receive_error)
        if receive_error is None and not result.cancelled:
            try:
                await receiver.drain(
                    self.config.drain_max_polls, self.config.drain_timeout_seconds, cancel
                )
            except Exception as exc:  # pylint: disable=broad-except
                record("drain", exc)
            if cancel.is_set():
                logging.info("Cancellation requested during drain for session %s.", channel.session_id)
                result.cancelled = True

    async def _stream(
        self,
        channel: DuplexChannel,
        source: AudioSource,
        feeder: AudioFeeder,
        receiver: EventReceiver,
        cancel: asyncio.Event,
    ) -> tuple[Optional[BaseException], Optional[BaseException]]:
        """Run feeder and receiver concurrently; return their terminal errors."""

        halt = asyncio.Event()
        feed_finished = asyncio.Event()

        async def relay_cancel() -> None:
            await cancel.wait()
            logging.info("Cancellation requested for session %s.", channel.session_id)
            halt.set()

        relay = asyncio.create_task(relay_cancel(), name="cancel-relay")
        feed_task = asyncio.create_task(
            feeder.run(channel, source, halt), name="audio-feeder"
        )
        feed_task.add_done_callback(lambda _task: feed_finished.set())

        receive_error: Optional[BaseException] = None
        try:
            await receiver.run(feed_finished)
        except Exception as exc:  # pylint: disable=broad-except
            receive_error = exc
        finally:
            if not feed_task.done():
                halt.set()
            feed_error: Optional[BaseException] = None
            try:
                await feed_task
            except Exception as exc:  # pylint: disable=broad-except
                feed_error = exc
            relay.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await relay

        if receive_error is not None and isinstance(feed_error, Cancelled):
            # the feeder only stopped because the receiver failed
            feed_error = None
        return feed_error, receive_error
