"""Delivery of inbound transcription events."""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import json
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Optional, Tuple, Union

from ..errors import ChannelClosed, SerializationError
from .channel import DuplexChannel


@dataclass(frozen=True)
class InboundEvent:
    """One opaque text payload delivered by the service."""

    text: str
    sequence: int
    received_at: float = field(default_factory=time.time)

    def json(self) -> Any:
        try:
            return json.loads(self.text)
        except ValueError as exc:
            raise SerializationError(f"Event #{self.sequence} is not valid JSON: {exc}") from exc


EventHandler = Callable[[InboundEvent], Union[None, Awaitable[None]]]


def log_event(event: InboundEvent) -> None:
    logging.info("Event #%d: %s", event.sequence, event.text)


class EventReceiver:
    """Poll a channel for at most one event per call with a bounded wait."""

    def __init__(
        self,
        channel: DuplexChannel,
        poll_timeout: float = 0.5,
        on_event: Optional[EventHandler] = None,
    ) -> None:
        self._channel = channel
        self.poll_timeout = poll_timeout
        self._on_event = on_event or log_event
        self.events_received = 0
        self.polls = 0

    async def receive(self, timeout: Optional[float] = None) -> Tuple[Optional[InboundEvent], bool]:
        """Return ``(event, True)`` or ``(None, False)`` when nothing arrived in time."""

        self.polls += 1
        payload, present = await self._channel.receive(
            self.poll_timeout if timeout is None else timeout
        )
        if not present or payload is None:
            return None, False
        self.events_received += 1
        return InboundEvent(text=payload, sequence=self.events_received), True

    async def _deliver(self, event: InboundEvent) -> None:
        result = self._on_event(event)
        if inspect.isawaitable(result):
            await result

    async def _poll_or_stop(
        self, stop_waiter: "asyncio.Future[Any]", timeout: Optional[float] = None
    ) -> Tuple[Tuple[Optional[InboundEvent], bool], bool]:
        """Poll once, racing the poll against ``stop_waiter``.

        Returns the poll outcome and whether the stop signal fired first.
        """

        poll = asyncio.ensure_future(self.receive(timeout))
        try:
            done, _ = await asyncio.wait(
                {poll, stop_waiter}, return_when=asyncio.FIRST_COMPLETED
            )
        except BaseException:
            poll.cancel()
            raise
        if poll in done:
            return poll.result(), False
        poll.cancel()
        await asyncio.wait({poll})
        # a message may have been taken just before cancellation
        if not poll.cancelled() and poll.exception() is None:
            return poll.result(), True
        return (None, False), True

    @staticmethod
    async def _release(stop_waiter: "asyncio.Future[Any]") -> None:
        if not stop_waiter.done():
            stop_waiter.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await stop_waiter

    async def run(self, stop: asyncio.Event) -> None:
        """Deliver events until ``stop`` is set.

        Each poll races against ``stop`` so the loop exits as soon as the
        signal fires instead of waiting for the poll timeout. Channel errors
        propagate and end the loop.
        """

        stop_waiter = asyncio.ensure_future(stop.wait())
        try:
            while not stop.is_set():
                (event, present), stopped = await self._poll_or_stop(stop_waiter)
                if present:
                    await self._deliver(event)
                if stopped:
                    break
        finally:
            await self._release(stop_waiter)

    async def drain(
        self, max_polls: int, timeout: float, stop: Optional[asyncio.Event] = None
    ) -> int:
        """Collect events still in flight after feeding stopped.

        Stops at the first empty poll, after ``max_polls`` polls, when the
        remote side hangs up, or as soon as ``stop`` is set. Returns the
        number of events delivered.
        """

        stop = stop or asyncio.Event()
        stop_waiter = asyncio.ensure_future(stop.wait())
        delivered = 0
        try:
            for _ in range(max(0, max_polls)):
                if stop.is_set():
                    break
                try:
                    (event, present), stopped = await self._poll_or_stop(stop_waiter, timeout)
                except ChannelClosed:
                    logging.debug("Channel closed by remote side during drain.")
                    break
                if present:
                    await self._deliver(event)
                    delivered += 1
                if stopped or not present:
                    break
        finally:
            await self._release(stop_waiter)
        return delivered
