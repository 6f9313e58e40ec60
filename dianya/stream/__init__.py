"""Realtime streaming transcription core."""

from .channel import ChannelState, DuplexChannel
from .controller import SessionController, StreamResult
from .feeder import FALLBACK_CHUNK_SIZE, AudioFeeder, FeedResult, compute_chunk_size
from .receiver import EventReceiver, InboundEvent
from .session import (
    Session,
    SessionCloseResult,
    SessionService,
    normalize_grace_period,
    parse_model,
)

__all__ = [
    "AudioFeeder",
    "ChannelState",
    "DuplexChannel",
    "EventReceiver",
    "FALLBACK_CHUNK_SIZE",
    "FeedResult",
    "InboundEvent",
    "Session",
    "SessionCloseResult",
    "SessionController",
    "SessionService",
    "StreamResult",
    "compute_chunk_size",
    "normalize_grace_period",
    "parse_model",
]
