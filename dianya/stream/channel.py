"""Duplex websocket channel bound to one realtime session."""

from __future__ import annotations

import asyncio
import contextlib
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, Tuple

import websockets

from ..config import StreamConfig
from ..errors import ChannelClosed, InvalidArgument, StateError, TransportError

Connector = Callable[..., Awaitable[Any]]

_EOF = object()


class ChannelState(str, Enum):
    """Lifecycle of a :class:`DuplexChannel`."""

    CREATED = "created"
    STARTED = "started"
    STOPPED = "stopped"
    CLOSED = "closed"


class DuplexChannel:
    """Bidirectional connection with independent send and receive paths.

    ``start`` opens the websocket and spawns a listener task that moves text
    frames into an unbounded inbox; ``receive`` pops at most one of them with
    a bounded wait. One writer and one reader may use the channel at a time.
    """

    def __init__(
        self,
        session_id: str,
        config: StreamConfig,
        connector: Optional[Connector] = None,
    ) -> None:
        if not (session_id or "").strip():
            raise InvalidArgument("session_id cannot be empty")
        self.session_id = session_id
        self.config = config
        self._connector: Connector = connector or websockets.connect
        self._state = ChannelState.CREATED
        self._websocket: Any = None
        self._listen_task: Optional[asyncio.Task[None]] = None
        self._inbox: asyncio.Queue[Any] = asyncio.Queue()
        self._listener_error: Optional[TransportError] = None

    @property
    def state(self) -> ChannelState:
        return self._state

    @property
    def url(self) -> str:
        return f"{self.config.ws_url.rstrip('/')}/{self.session_id}"

    async def __aenter__(self) -> "DuplexChannel":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    def _require_started(self, operation: str) -> None:
        if self._state is not ChannelState.STARTED:
            raise StateError(f"Cannot {operation} on a {self._state.value} channel.")

    async def start(self) -> None:
        """Open the connection: *Created* -> *Started*."""

        if self._state is not ChannelState.CREATED:
            raise StateError(f"Cannot start a {self._state.value} channel.")
        try:
            self._websocket = await self._connector(
                self.url,
                open_timeout=self.config.open_timeout_seconds,
                ping_interval=self.config.ping_interval_seconds,
                max_size=4 * 1024 * 1024,
                close_timeout=5,
            )
        except Exception as exc:  # pylint: disable=broad-except
            raise TransportError(f"Failed to open channel for session {self.session_id}: {exc}") from exc

        if self._state is ChannelState.CLOSED:
            # closed while connecting
            await self._close_websocket()
            raise StateError("Channel was closed while starting.")

        self._state = ChannelState.STARTED
        self._listen_task = asyncio.create_task(
            self._listen_loop(), name=f"channel-listener-{self.session_id}"
        )
        logging.info("Channel started for session %s.", self.session_id)

    async def send_bytes(self, data: bytes) -> None:
        """Send one binary frame; an empty buffer is a no-op."""

        if self._state is ChannelState.CLOSED:
            raise StateError("Cannot send bytes on a closed channel.")
        if not data:
            return
        self._require_started("send bytes")
        await self._send(bytes(data))

    async def send_text(self, text: str) -> None:
        """Send one text frame, used for control messages."""

        self._require_started("send text")
        await self._send(text)

    async def _send(self, message: Any) -> None:
        if self._listener_error is not None:
            raise self._listener_error
        try:
            await self._websocket.send(message)
        except Exception as exc:  # pylint: disable=broad-except
            raise TransportError(f"Failed to send on channel {self.session_id}: {exc}") from exc

    async def receive(self, timeout: Optional[float]) -> Tuple[Optional[str], bool]:
        """Wait up to ``timeout`` seconds for one inbound text payload.

        Returns ``(payload, True)`` when a message arrived and ``(None, False)``
        when nothing came in time. A timeout of zero or less polls without
        waiting.
        """

        self._require_started("receive")
        try:
            if timeout is None or timeout <= 0:
                item = self._inbox.get_nowait()
            else:
                item = await asyncio.wait_for(self._inbox.get(), timeout=timeout)
        except asyncio.QueueEmpty:
            return None, False
        except asyncio.TimeoutError:
            return None, False

        if item is _EOF:
            # keep the marker so later polls see it too
            self._inbox.put_nowait(_EOF)
            if self._state is not ChannelState.STARTED:
                return None, False
            if self._listener_error is not None:
                raise self._listener_error
            raise ChannelClosed(f"Channel {self.session_id} was closed by the remote side.")
        return item, True

    async def stop(self) -> None:
        """Disable send/receive without releasing the connection."""

        self._require_started("stop")
        self._state = ChannelState.STOPPED
        await self._cancel_listener()
        self._inbox.put_nowait(_EOF)
        logging.info("Channel stopped for session %s.", self.session_id)

    async def close(self) -> None:
        """Release the connection. Safe to call in any state, more than once."""

        if self._state is ChannelState.CLOSED:
            return
        previous = self._state
        self._state = ChannelState.CLOSED
        self._inbox.put_nowait(_EOF)
        await self._cancel_listener()
        await self._close_websocket()
        if previous is not ChannelState.CREATED:
            logging.info("Channel closed for session %s.", self.session_id)

    async def _cancel_listener(self) -> None:
        if self._listen_task:
            self._listen_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._listen_task
            self._listen_task = None

    async def _close_websocket(self) -> None:
        if self._websocket is None:
            return
        try:
            await self._websocket.close()
        except Exception as exc:  # pylint: disable=broad-except
            logging.warning("Error while closing channel %s: %s", self.session_id, exc)
        finally:
            self._websocket = None

    async def _listen_loop(self) -> None:
        """Receive frames and push text payloads into the inbox."""

        assert self._websocket is not None  # nosec B101
        try:
            async for message in self._websocket:
                if isinstance(message, bytes):
                    logging.debug("Received binary %d bytes (ignored)", len(message))
                    continue
                logging.debug("Channel %s event: %s", self.session_id, message)
                self._inbox.put_nowait(message)
        except asyncio.CancelledError:
            raise
        except Exception as exc:  # pylint: disable=broad-except
            logging.error("Error while listening on channel %s: %s", self.session_id, exc)
            self._listener_error = TransportError(f"Channel listener stopped unexpectedly: {exc}")
            self._inbox.put_nowait(_EOF)
        else:
            logging.info("Channel %s closed by remote side.", self.session_id)
            self._inbox.put_nowait(_EOF)
