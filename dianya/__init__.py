"""Client toolkit for the Dianya transcription service."""

from .errors import (
    AudioSourceError,
    Cancelled,
    ChannelClosed,
    DianyaError,
    InvalidArgument,
    InvalidCredential,
    ProtocolError,
    SerializationError,
    ServerError,
    SessionRunError,
    StateError,
    TransportError,
)

__version__ = "0.3.0"

__all__ = [
    "AudioSourceError",
    "Cancelled",
    "ChannelClosed",
    "DianyaError",
    "InvalidArgument",
    "InvalidCredential",
    "ProtocolError",
    "SerializationError",
    "ServerError",
    "SessionRunError",
    "StateError",
    "TransportError",
    "__version__",
]
