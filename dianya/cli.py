"""Command line interface for the Dianya transcription client."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import signal
import sys
from pathlib import Path
from typing import Any, Dict, Optional

from .api import TranscribeApi, UploadOneSentence
from .audio import AudioSource, MicrophoneSource, PcmFileSource
from .config import ModelChoice, Settings, load_settings
from .errors import DianyaError, SessionRunError
from .stream import InboundEvent, SessionController, SessionService


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )


def print_settings(settings: Settings) -> None:
    filtered: Dict[str, Any] = {
        "api": settings.api.model_dump(),
        "stream": settings.stream.model_dump(mode="json"),
    }
    if filtered["api"].get("token"):
        filtered["api"]["token"] = "***redacted***"
    print(json.dumps(filtered, indent=2, ensure_ascii=False))


def _credential(args: argparse.Namespace, settings: Settings) -> str:
    return args.token or settings.api.token or ""


def _print_event(event: InboundEvent) -> None:
    print(event.text, flush=True)


async def run_stream(args: argparse.Namespace, settings: Settings) -> int:
    """Stream a file or the microphone until exhausted or interrupted."""

    config = settings.stream
    source: AudioSource
    if args.file:
        source = PcmFileSource(args.file, config)
    else:
        source = MicrophoneSource(config, device=args.device, max_duration_seconds=args.duration)

    loop = asyncio.get_running_loop()
    cancel = asyncio.Event()

    def handle_stop(*_args):
        logging.info("Received stop signal, shutting down.")
        cancel.set()

    def register_signal(sig: int, handler, label: str) -> None:
        try:
            loop.add_signal_handler(sig, handler)
            logging.debug("Registered %s using loop.add_signal_handler.", label)
        except (NotImplementedError, RuntimeError, ValueError):
            try:
                signal.signal(sig, lambda *_args: loop.call_soon_threadsafe(handler))
                logging.debug("Registered %s using signal.signal fallback.", label)
            except (ValueError, OSError, RuntimeError):
                logging.debug("Signal %s not supported on this platform.", label)

    register_signal(signal.SIGINT, handle_stop, "SIGINT")
    register_signal(signal.SIGTERM, handle_stop, "SIGTERM")

    async with TranscribeApi(settings.api) as api:
        controller = SessionController(config, SessionService(api.transport))
        async with source:
            try:
                result = await controller.transcribe(
                    source,
                    _credential(args, settings),
                    model=args.model,
                    cancel=cancel,
                    on_event=_print_event,
                )
            except SessionRunError as exc:
                logging.error("Streaming failed during %s: %s", exc.stage, exc.cause)
                return 1

    close = result.close_result
    logging.info(
        "Sent %d chunks (%d bytes), received %d events; close status=%s.",
        result.chunks_sent,
        result.bytes_sent,
        result.events_received,
        close.status if close else "n/a",
    )
    return 0


async def run_request(args: argparse.Namespace, settings: Settings) -> int:
    credential = _credential(args, settings)
    async with TranscribeApi(settings.api) as api:
        if args.command == "upload":
            upload = await api.upload(
                credential, args.path, args.transcribe_only, args.short_asr, args.model
            )
            if isinstance(upload, UploadOneSentence):
                print(json.dumps(upload.model_dump(), ensure_ascii=False, indent=2))
            else:
                print(upload.task_id)
        elif args.command == "status":
            status = await api.get_status(credential, args.task_id, args.share_id)
            print(status.model_dump_json(indent=2))
        elif args.command == "share":
            link = await api.get_share_link(credential, args.task_id, args.days)
            print(link.model_dump_json(indent=2))
        elif args.command == "export":
            data = await api.export(credential, args.task_id, args.kind, args.format)
            output = Path(args.output or f"{args.task_id}_{args.kind}.{args.format}")
            output.write_bytes(data)
            print(f"Wrote {len(data)} bytes to {output}")
        elif args.command == "translate-text":
            translated = await api.translate_text(credential, args.text, args.lang)
            print(translated.data)
        elif args.command == "translate-task":
            translation = await api.translate_transcript(credential, args.task_id, args.lang)
            print(translation.model_dump_json(indent=2))
        elif args.command == "summary":
            utterances = json.loads(Path(args.utterances).read_text(encoding="utf-8"))
            print(await api.create_summary(credential, utterances))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Realtime and file transcription against the Dianya service."
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        help="Python logging level (DEBUG, INFO, WARNING, ERROR).",
    )
    parser.add_argument("--token", help="Credential; defaults to DIANYA_TOKEN.")
    sub = parser.add_subparsers(dest="command", required=True)

    models = [choice.value for choice in ModelChoice]
    langs = ["zh", "en", "ja", "ko", "fr", "de"]

    stream = sub.add_parser("stream", help="Stream audio through a realtime session.")
    stream.add_argument("--file", help="Raw PCM or WAV file; omit to capture the microphone.")
    stream.add_argument("--device", type=int, help="Input device index for microphone capture.")
    stream.add_argument("--duration", type=float, help="Stop microphone capture after N seconds.")
    stream.add_argument("--model", choices=models, help="Recognition model.")

    upload = sub.add_parser("upload", help="Upload an audio file for transcription.")
    upload.add_argument("path")
    upload.add_argument("--transcribe-only", action="store_true")
    upload.add_argument("--short-asr", action="store_true", help="One-sentence mode.")
    upload.add_argument("--model", choices=models, default="quality")

    status = sub.add_parser("status", help="Show the status of a task.")
    status.add_argument("--task-id")
    status.add_argument("--share-id")

    share = sub.add_parser("share", help="Create a share link for a task.")
    share.add_argument("task_id")
    share.add_argument("--days", type=int, default=0, help="Expiration in days (0: server default).")

    export = sub.add_parser("export", help="Export a transcript, overview or summary.")
    export.add_argument("task_id")
    export.add_argument("--kind", choices=["transcript", "overview", "summary"], default="transcript")
    export.add_argument("--format", choices=["pdf", "txt", "docx"], default="txt")
    export.add_argument("--output", help="Output file path.")

    translate_text = sub.add_parser("translate-text", help="Translate a piece of text.")
    translate_text.add_argument("text")
    translate_text.add_argument("--lang", choices=langs, default="en")

    translate_task = sub.add_parser("translate-task", help="Translate a finished task.")
    translate_task.add_argument("task_id")
    translate_task.add_argument("--lang", choices=langs, default="en")

    summary = sub.add_parser("summary", help="Create a summary task from an utterance JSON file.")
    summary.add_argument("utterances", help="JSON file holding a list of utterances.")

    sub.add_parser("show-config", help="Print loaded configuration and exit.")
    return parser


def main(argv: Optional[list] = None) -> int:
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)
    settings = load_settings()

    if args.command == "show-config":
        print_settings(settings)
        return 0

    try:
        if args.command == "stream":
            return asyncio.run(run_stream(args, settings))
        return asyncio.run(run_request(args, settings))
    except DianyaError as exc:
        logging.error("%s: %s", type(exc).__name__, exc)
        return 1


if __name__ == "__main__":
    sys.exit(main())
