"""Audio sources feeding raw PCM into a realtime session."""

from __future__ import annotations

import abc
import asyncio
import logging
import queue
import time
import wave
from pathlib import Path
from typing import BinaryIO, Optional, Union

from .config import StreamConfig
from .errors import AudioSourceError, InvalidArgument


class AudioSource(abc.ABC):
    """Byte stream of PCM audio read in caller-sized pieces."""

    @abc.abstractmethod
    async def read(self, size: int) -> bytes:
        """Return up to ``size`` bytes; ``b""`` signals the end of the source."""

    async def close(self) -> None:
        return None

    async def __aenter__(self) -> "AudioSource":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()


class BytesSource(AudioSource):
    """In-memory source, handy for prerecorded buffers."""

    def __init__(self, data: bytes) -> None:
        self._data = memoryview(bytes(data))
        self._offset = 0

    async def read(self, size: int) -> bytes:
        if size <= 0:
            return b""
        chunk = self._data[self._offset : self._offset + size]
        self._offset += len(chunk)
        return chunk.tobytes()


class PcmFileSource(AudioSource):
    """Raw PCM or WAV file read off the event loop.

    WAV headers are checked against the configured sample rate, channel count
    and sample width; a mismatch raises :class:`InvalidArgument`.
    """

    def __init__(self, path: Union[str, Path], config: StreamConfig) -> None:
        self.path = Path(path).expanduser()
        self.config = config
        self._raw: Optional[BinaryIO] = None
        self._wave: Optional[wave.Wave_read] = None
        self._frame_bytes = config.channels * config.sample_width
        self._leftover = bytearray()

    def _open(self) -> None:
        if not self.path.exists():
            raise InvalidArgument(f"Audio file not found: {self.path}")
        if self.path.suffix.lower() == ".wav":
            try:
                reader = wave.open(str(self.path), "rb")
            except (wave.Error, EOFError) as exc:
                raise AudioSourceError(f"Cannot parse WAV file {self.path}: {exc}") from exc
            expected = (self.config.sample_rate, self.config.channels, self.config.sample_width)
            actual = (reader.getframerate(), reader.getnchannels(), reader.getsampwidth())
            if actual != expected:
                reader.close()
                raise InvalidArgument(
                    f"WAV format {actual} (rate, channels, width) does not match configured {expected}."
                )
            self._wave = reader
            logging.info("Streaming WAV file %s (%d frames).", self.path, reader.getnframes())
        else:
            self._raw = self.path.open("rb")
            logging.info("Streaming raw PCM file %s.", self.path)

    def _read_sync(self, size: int) -> bytes:
        if self._wave is None and self._raw is None:
            self._open()
        if self._wave is not None:
            # whole frames only; bytes beyond size wait for the next read
            missing = size - len(self._leftover)
            if missing > 0:
                frames = -(-missing // self._frame_bytes)
                self._leftover.extend(self._wave.readframes(frames))
            data = bytes(self._leftover[:size])
            del self._leftover[:size]
            return data
        assert self._raw is not None  # nosec B101
        return self._raw.read(size)

    async def read(self, size: int) -> bytes:
        if size <= 0:
            return b""
        try:
            return await asyncio.to_thread(self._read_sync, size)
        except (InvalidArgument, AudioSourceError):
            raise
        except (OSError, wave.Error, EOFError) as exc:
            raise AudioSourceError(f"Failed to read {self.path}: {exc}") from exc

    async def close(self) -> None:
        if self._wave is not None:
            self._wave.close()
            self._wave = None
            self._leftover.clear()
        if self._raw is not None:
            self._raw.close()
            self._raw = None


class MicrophoneSource(AudioSource):
    """Live capture from an input device via sounddevice.

    The PortAudio callback runs on its own thread and hands blocks over through
    a bounded queue; when the consumer falls behind the oldest block is dropped.
    """

    def __init__(
        self,
        config: StreamConfig,
        device: Optional[int] = None,
        max_duration_seconds: Optional[float] = None,
        queue_size: int = 50,
    ) -> None:
        self.config = config
        self.device = device
        self.max_duration_seconds = max_duration_seconds
        self._queue: "queue.Queue[bytes]" = queue.Queue(maxsize=queue_size)
        self._stream = None
        self._pending = bytearray()
        self._started_at: Optional[float] = None
        self._stopped = False

    def _callback(self, indata, frames: int, _time, status) -> None:  # noqa: ANN001
        if status:
            logging.warning("Audio stream status: %s", status)
        chunk = bytes(indata)
        try:
            self._queue.put_nowait(chunk)
        except queue.Full:
            try:
                _ = self._queue.get_nowait()
                self._queue.put_nowait(chunk)
                logging.debug("Dropped one audio block to keep up with realtime streaming.")
            except queue.Empty:
                logging.debug("Audio queue overflow handled, but queue empty when trimming.")

    def _dtype(self) -> str:
        dtypes = {1: "int8", 2: "int16", 4: "int32"}
        try:
            return dtypes[self.config.sample_width]
        except KeyError as exc:
            raise InvalidArgument(f"Unsupported sample width {self.config.sample_width}") from exc

    def _start(self) -> None:
        import sounddevice as sd

        dtype = self._dtype()
        blocksize = max(1, int(round(self.config.sample_rate * self.config.chunk_duration_seconds)))
        try:
            stream = sd.RawInputStream(
                samplerate=self.config.sample_rate,
                channels=self.config.channels,
                dtype=dtype,
                callback=self._callback,
                blocksize=blocksize,
                device=self.device,
            )
            stream.start()
        except Exception as exc:  # pylint: disable=broad-except
            raise AudioSourceError(f"Failed to open audio input: {exc}") from exc
        self._stream = stream
        self._started_at = time.monotonic()
        logging.info("Microphone capture started (device=%s).", self.device)

    def stop(self) -> None:
        """End the source; the next read after buffered audio returns ``b""``."""

        self._stopped = True

    def _expired(self) -> bool:
        if self.max_duration_seconds is None or self._started_at is None:
            return False
        return time.monotonic() - self._started_at >= self.max_duration_seconds

    async def read(self, size: int) -> bytes:
        if size <= 0:
            return b""
        if self._stream is None and not self._stopped:
            self._start()
        while not self._pending:
            if self._stopped or self._expired():
                return b""
            try:
                block = await asyncio.to_thread(self._queue.get, True, 0.1)
            except queue.Empty:
                continue
            self._pending.extend(block)
        data = bytes(self._pending[:size])
        del self._pending[:size]
        return data

    async def close(self) -> None:
        self._stopped = True
        if self._stream is not None:
            try:
                self._stream.stop()
                self._stream.close()
            except Exception as exc:  # pylint: disable=broad-except
                logging.debug("Error closing audio stream: %s", exc)
            self._stream = None
            logging.info("Microphone capture stopped.")
