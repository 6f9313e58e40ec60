"""Exception hierarchy shared by the streaming core and the HTTP facade."""

from __future__ import annotations

from typing import Any, Optional


class DianyaError(Exception):
    """Base class for every error raised by this package."""


class TransportError(DianyaError):
    """Raised when the network or the connection itself fails."""


class ChannelClosed(TransportError):
    """Raised when the remote side hung up the duplex channel."""


class ProtocolError(DianyaError):
    """Raised when the remote answer is malformed or has an unexpected shape."""


class ServerError(DianyaError):
    """Raised when the remote service reports a failure."""

    def __init__(
        self,
        message: str,
        status: Optional[int] = None,
        code: Optional[Any] = None,
    ) -> None:
        super().__init__(message)
        self.status = status
        self.code = code


class InvalidArgument(DianyaError, ValueError):
    """Raised for empty identifiers, unknown enum values and empty collections."""


class InvalidCredential(DianyaError):
    """Raised when the credential is missing or rejected by the service."""


class SerializationError(DianyaError):
    """Raised when a payload cannot be encoded or decoded."""


class StateError(DianyaError, RuntimeError):
    """Raised when a channel operation is invoked in the wrong lifecycle state."""


class Cancelled(DianyaError):
    """Raised when an external cancellation signal stopped the operation."""


class AudioSourceError(DianyaError):
    """Raised when the audio source cannot be read."""


class SessionRunError(DianyaError):
    """Wraps the first fatal failure of a streaming session with its stage."""

    def __init__(self, stage: str, cause: BaseException, result: Any = None) -> None:
        super().__init__(f"Streaming session failed during {stage}: {cause}")
        self.stage = stage
        self.cause = cause
        self.result = result
