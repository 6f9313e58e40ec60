#!/usr/bin/env python3
"""Quick smoke test for the realtime session configuration."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from typing import Iterable

from dotenv import load_dotenv

if __name__ == "__main__":
    # allow running from scripts/ by adding project root
    from pathlib import Path

    ROOT = Path(__file__).resolve().parents[1]
    if str(ROOT) not in sys.path:
        sys.path.insert(0, str(ROOT))

from dianya.audio import BytesSource
from dianya.config import load_settings
from dianya.errors import DianyaError
from dianya.stream import InboundEvent, SessionController, SessionService
from dianya.transport import ApiTransport


async def stream_silence(seconds: float) -> int:
    settings = load_settings()
    cfg = settings.stream
    if not settings.api.token:
        print("DIANYA_TOKEN is not set. Nothing to do.")
        return 1

    silence = b"\x00" * int(cfg.sample_rate * cfg.channels * cfg.sample_width * seconds)

    def show(event: InboundEvent) -> None:
        print(f"← #{event.sequence}: {event.text}")

    async with ApiTransport(settings.api) as transport:
        controller = SessionController(cfg, SessionService(transport))
        try:
            result = await controller.transcribe(BytesSource(silence), settings.api.token, on_event=show)
        except DianyaError as exc:
            print(f"Session failed: {exc}")
            return 1

    print(f"Session {result.session.task_id}: {result.chunks_sent} chunks, {result.events_received} events.")
    if result.close_result is not None:
        print(f"Close status: {result.close_result.status}")
    return 0


def parse_args(argv: Iterable[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Validate realtime settings by streaming a few seconds of silence."
    )
    parser.add_argument(
        "seconds",
        nargs="?",
        type=float,
        default=2.0,
        help="Seconds of silence to stream (default: 2).",
    )
    return parser.parse_args(argv)


def main(argv: Iterable[str]) -> int:
    load_dotenv()
    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(name)s: %(message)s")
    args = parse_args(argv)
    return asyncio.run(stream_silence(args.seconds))


if __name__ == "__main__":
    raise SystemExit(main(sys.argv[1:]))
