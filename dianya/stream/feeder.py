"""Paced transmission of fixed-size audio chunks."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from typing import Optional, Tuple

from ..audio import AudioSource
from ..config import StreamConfig
from ..errors import AudioSourceError, Cancelled, DianyaError
from .channel import DuplexChannel

FALLBACK_CHUNK_SIZE = 3200


def compute_chunk_size(
    sample_rate: int,
    channels: int,
    sample_width: int,
    chunk_duration_seconds: float,
) -> int:
    """Bytes of PCM covering ``chunk_duration_seconds`` of audio.

    16 kHz mono 16-bit with 0.2 s windows gives 6400. The size is rounded
    down to whole frames so no sample is split across two sends. A window
    that works out to zero bytes falls back to :data:`FALLBACK_CHUNK_SIZE`.
    """

    frame = max(1, channels * sample_width)
    size = int(round(sample_rate * channels * sample_width * chunk_duration_seconds))
    size -= size % frame
    if size <= 0:
        logging.warning(
            "Chunk size computed as %d bytes; using fallback of %d bytes.", size, FALLBACK_CHUNK_SIZE
        )
        return max(frame, FALLBACK_CHUNK_SIZE - FALLBACK_CHUNK_SIZE % frame)
    return size


@dataclass
class FeedResult:
    """Outcome of a completed feed."""

    chunks_sent: int = 0
    bytes_sent: int = 0


class AudioFeeder:
    """Read a source in fixed windows and send each window as one frame."""

    def __init__(self, config: StreamConfig) -> None:
        self.config = config
        self.chunk_size = compute_chunk_size(
            config.sample_rate,
            config.channels,
            config.sample_width,
            config.chunk_duration_seconds,
        )
        bytes_per_second = config.sample_rate * config.channels * config.sample_width
        self.pace_seconds = (self.chunk_size / bytes_per_second) * config.pace_ratio
        self.progress = FeedResult()

    async def _read_window(self, source: AudioSource) -> Tuple[bytes, bool]:
        buffer = bytearray()
        while len(buffer) < self.chunk_size:
            try:
                piece = await source.read(self.chunk_size - len(buffer))
            except DianyaError:
                raise
            except Exception as exc:  # pylint: disable=broad-except
                raise AudioSourceError(f"Failed to read audio source: {exc}") from exc
            if not piece:
                return bytes(buffer), True
            buffer.extend(piece)
        return bytes(buffer), False

    async def _pace(self, stop: asyncio.Event) -> None:
        if self.pace_seconds <= 0:
            await asyncio.sleep(0)
        else:
            try:
                await asyncio.wait_for(stop.wait(), timeout=self.pace_seconds)
            except asyncio.TimeoutError:
                return
        if stop.is_set():
            raise Cancelled("Audio feeding cancelled during pacing wait.")

    async def run(
        self,
        channel: DuplexChannel,
        source: AudioSource,
        stop: Optional[asyncio.Event] = None,
    ) -> FeedResult:
        """Feed ``source`` into ``channel`` until exhausted.

        Raises :class:`Cancelled` once ``stop`` is set (an in-flight send is
        allowed to finish), :class:`AudioSourceError` on read failure and the
        channel's error on send failure. No send is retried.
        """

        stop = stop or asyncio.Event()
        self.progress = FeedResult()
        logging.info(
            "Feeding audio in %d-byte chunks (pace %.3fs).", self.chunk_size, self.pace_seconds
        )
        while True:
            if stop.is_set():
                raise Cancelled("Audio feeding cancelled.")
            chunk, exhausted = await self._read_window(source)
            if stop.is_set():
                # a read in progress when the stop arrived is not sent
                raise Cancelled("Audio feeding cancelled while reading the source.")
            if chunk:
                await channel.send_bytes(chunk)
                self.progress.chunks_sent += 1
                self.progress.bytes_sent += len(chunk)
                logging.debug(
                    "Sent chunk #%d (%d bytes).", self.progress.chunks_sent, len(chunk)
                )
            if exhausted:
                break
            await self._pace(stop)

        logging.info(
            "Audio source exhausted after %d chunks (%d bytes).",
            self.progress.chunks_sent,
            self.progress.bytes_sent,
        )
        return self.progress
