"""Configuration loading utilities for the Dianya client."""

from __future__ import annotations

import os
from enum import Enum
from functools import lru_cache
from typing import Mapping, Optional

from dotenv import load_dotenv
from pydantic import BaseModel, Field, ValidationError


class ModelChoice(str, Enum):
    """Recognition models offered by the service."""

    SPEED = "speed"
    QUALITY = "quality"
    QUALITY_V2 = "quality_v2"


class ApiConfig(BaseModel):
    """Request/response endpoint configuration."""

    base_url: str = Field(default="https://api.dianyaai.com/api", min_length=8)
    token: Optional[str] = Field(
        default=None,
        description="Default credential, sent verbatim in the Authorization header.",
    )
    timeout_seconds: float = Field(default=30.0, gt=0, le=600.0)


class StreamConfig(BaseModel):
    """Realtime transcription session configuration."""

    ws_url: str = Field(default="wss://api.dianyaai.com/ws/transcribe", min_length=6)
    model: ModelChoice = ModelChoice.SPEED
    sample_rate: int = Field(default=16_000, ge=8_000, le=48_000)
    channels: int = Field(default=1, ge=1, le=2)
    sample_width: int = Field(default=2, ge=1, le=4)
    chunk_duration_seconds: float = Field(default=0.2, gt=0, le=5.0)
    pace_ratio: float = Field(
        default=0.5,
        ge=0.0,
        le=2.0,
        description="Fraction of a chunk's nominal duration to wait between sends.",
    )
    poll_timeout_seconds: float = Field(default=0.5, gt=0, le=10.0)
    drain_max_polls: int = Field(default=4, ge=0, le=100)
    drain_timeout_seconds: float = Field(default=0.5, gt=0, le=10.0)
    close_grace_seconds: float = Field(default=0.0, ge=0.0, le=300.0)
    open_timeout_seconds: float = Field(default=10.0, gt=0, le=120.0)
    ping_interval_seconds: Optional[float] = Field(default=20.0, gt=0)


class Settings(BaseModel):
    """Aggregated settings for the client."""

    api: ApiConfig = ApiConfig()
    stream: StreamConfig = StreamConfig()


def _env_float(env: Mapping[str, str], name: str, default: str) -> float:
    return float(env.get(name, default))


@lru_cache(maxsize=1)
def load_settings() -> Settings:
    """Load settings from environment variables and .env files."""

    load_dotenv()

    env = os.environ
    try:
        api_cfg = ApiConfig(
            base_url=env.get("DIANYA_API_BASE_URL", "https://api.dianyaai.com/api"),
            token=env.get("DIANYA_TOKEN") or None,
            timeout_seconds=_env_float(env, "DIANYA_API_TIMEOUT_SECONDS", "30.0"),
        )

        ping = env.get("DIANYA_WS_PING_INTERVAL_SECONDS", "20.0").strip().lower()
        stream_cfg = StreamConfig(
            ws_url=env.get("DIANYA_WS_URL", "wss://api.dianyaai.com/ws/transcribe"),
            model=ModelChoice(env.get("DIANYA_STREAM_MODEL", "speed").lower()),
            sample_rate=int(env.get("AUDIO_SAMPLE_RATE", "16000")),
            channels=int(env.get("AUDIO_CHANNELS", "1")),
            sample_width=int(env.get("AUDIO_SAMPLE_WIDTH", "2")),
            chunk_duration_seconds=_env_float(env, "AUDIO_CHUNK_DURATION_SECONDS", "0.2"),
            pace_ratio=_env_float(env, "DIANYA_STREAM_PACE_RATIO", "0.5"),
            poll_timeout_seconds=_env_float(env, "DIANYA_STREAM_POLL_TIMEOUT_SECONDS", "0.5"),
            drain_max_polls=int(env.get("DIANYA_STREAM_DRAIN_MAX_POLLS", "4")),
            drain_timeout_seconds=_env_float(env, "DIANYA_STREAM_DRAIN_TIMEOUT_SECONDS", "0.5"),
            close_grace_seconds=_env_float(env, "DIANYA_STREAM_CLOSE_GRACE_SECONDS", "0"),
            open_timeout_seconds=_env_float(env, "DIANYA_WS_OPEN_TIMEOUT_SECONDS", "10.0"),
            ping_interval_seconds=None if ping in {"", "0", "none", "off"} else float(ping),
        )
        return Settings(api=api_cfg, stream=stream_cfg)
    except ValidationError as exc:
        raise RuntimeError(f"Configuration invalid: {exc}") from exc
    except ValueError as exc:
        raise RuntimeError(f"Configuration invalid: {exc}") from exc
