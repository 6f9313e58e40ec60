"""Request/response operations of the transcription service."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Any, Iterable, List, Optional, Sequence, Type, TypeVar, Union

import aiohttp
from pydantic import BaseModel, Field, TypeAdapter, ValidationError

from ..config import ApiConfig, ModelChoice
from ..errors import InvalidArgument, ProtocolError
from ..stream.session import parse_model
from ..transport import ApiTransport, require_credential, unwrap_data
from .models import (
    CallbackRequest,
    ExportFormat,
    ExportKind,
    Language,
    ShareLink,
    SummaryTranslation,
    TextTranslation,
    TranscribeStatus,
    TranscriptTranslation,
    TranslationResult,
    UploadOneSentence,
    UploadResult,
    UploadTask,
    Utterance,
    UtteranceTranslation,
)

M = TypeVar("M", bound=BaseModel)

_TRANSLATION_ADAPTER: TypeAdapter[TranslationResult] = TypeAdapter(
    Annotated[Union[TranscriptTranslation, SummaryTranslation], Field(discriminator="task_type")]
)


def _parse(model: Type[M], data: Any, operation: str) -> M:
    try:
        return model.model_validate(data)
    except ValidationError as exc:
        raise ProtocolError(f"{operation}: unexpected response shape: {exc}") from exc


def _enum(enum_cls, value, label: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls((value or "").strip().lower())
    except ValueError as exc:
        raise InvalidArgument(f"Invalid {label}: {value!r}") from exc


def _require_id(value: Optional[str], label: str) -> str:
    if not (value or "").strip():
        raise InvalidArgument(f"{label} cannot be empty")
    return value.strip()


def _utterance_payload(utterances: Sequence[Union[Utterance, dict]]) -> List[dict]:
    if not utterances:
        raise InvalidArgument("utterances cannot be empty")
    return [
        (u if isinstance(u, Utterance) else _parse(Utterance, u, "utterances")).model_dump()
        for u in utterances
    ]


class TranscribeApi:
    """Upload, status, share, export, translation and summary calls.

    Every method is a single round-trip; nothing is retried. Local argument
    problems raise :class:`InvalidArgument` before any request is made.
    """

    def __init__(self, config: ApiConfig, transport: Optional[ApiTransport] = None) -> None:
        self.config = config
        self._transport = transport or ApiTransport(config)

    @property
    def transport(self) -> ApiTransport:
        return self._transport

    async def __aenter__(self) -> "TranscribeApi":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    async def close(self) -> None:
        await self._transport.close()

    async def upload(
        self,
        credential: str,
        file_path: Union[str, Path],
        transcribe_only: bool = False,
        short_asr: bool = False,
        model: Union[str, ModelChoice] = ModelChoice.QUALITY,
    ) -> UploadResult:
        model_choice = parse_model(model)
        token = require_credential(credential)
        path = Path(file_path).expanduser()
        if not path.is_file():
            raise InvalidArgument(f"Audio file not found: {path}")

        with path.open("rb") as handle:
            form = aiohttp.FormData()
            form.add_field("file", handle, filename=path.name)
            form.add_field("transcribe_only", "true" if transcribe_only else "false")
            form.add_field("short_asr", "true" if short_asr else "false")
            form.add_field("model", model_choice.value)
            body = await self._transport.request_json(
                "POST", "transcribe/upload", token, operation="upload", data=form
            )

        data = body.get("data") if isinstance(body, dict) else None
        if isinstance(data, dict) and "task_id" in data:
            result: UploadResult = _parse(UploadTask, data, "upload")
        elif short_asr and isinstance(body, dict):
            result = _parse(UploadOneSentence, body, "upload")
        else:
            result = _parse(UploadTask, unwrap_data(body, "upload"), "upload")
        logging.info("Uploaded %s -> %s", path.name, result)
        return result

    async def get_status(
        self,
        credential: str,
        task_id: Optional[str] = None,
        share_id: Optional[str] = None,
    ) -> TranscribeStatus:
        if not (task_id or share_id):
            raise InvalidArgument("Either task_id or share_id is required")
        params = {}
        if task_id:
            params["task_id"] = task_id
        if share_id:
            params["share_id"] = share_id
        body = await self._transport.request_json(
            "GET", "transcribe/status", credential, operation="get_status", params=params
        )
        return _parse(TranscribeStatus, unwrap_data(body, "get_status"), "get_status")

    async def get_share_link(
        self, credential: str, task_id: str, expiration_days: int = 0
    ) -> ShareLink:
        params: dict = {"task_id": _require_id(task_id, "task_id")}
        if expiration_days < 0:
            raise InvalidArgument("expiration_days cannot be negative")
        if expiration_days:
            params["expiration_day"] = expiration_days
        body = await self._transport.request_json(
            "GET", "transcribe/share", credential, operation="get_share_link", params=params
        )
        return _parse(ShareLink, unwrap_data(body, "get_share_link"), "get_share_link")

    async def export(
        self,
        credential: str,
        task_id: str,
        export_kind: Union[str, ExportKind],
        export_format: Union[str, ExportFormat],
    ) -> bytes:
        params = {
            "task_id": _require_id(task_id, "task_id"),
            "type": _enum(ExportKind, export_kind, "export type").value,
            "format": _enum(ExportFormat, export_format, "export format").value,
        }
        data = await self._transport.request_bytes(
            "GET", "transcribe/export", credential, operation="export", params=params
        )
        logging.info("Exported %s (%s/%s): %d bytes", task_id, params["type"], params["format"], len(data))
        return data

    async def translate_transcript(
        self, credential: str, task_id: str, target_lang: Union[str, Language]
    ) -> TranslationResult:
        params = {
            "task_id": _require_id(task_id, "task_id"),
            "lang": _enum(Language, target_lang, "language").value,
        }
        body = await self._transport.request_json(
            "GET", "translate/transcribe", credential, operation="translate_transcript", params=params
        )
        data = unwrap_data(body, "translate_transcript")
        try:
            return _TRANSLATION_ADAPTER.validate_python(data)
        except ValidationError as exc:
            raise ProtocolError(f"translate_transcript: unexpected response shape: {exc}") from exc

    async def translate_text(
        self, credential: str, text: str, target_lang: Union[str, Language]
    ) -> TextTranslation:
        if not (text or "").strip():
            raise InvalidArgument("text cannot be empty")
        payload = {"text": text, "lang": _enum(Language, target_lang, "language").value}
        body = await self._transport.request_json(
            "POST", "translate/text", credential, operation="translate_text", payload=payload
        )
        return _parse(TextTranslation, body, "translate_text")

    async def translate_utterances(
        self,
        credential: str,
        utterances: Sequence[Union[Utterance, dict]],
        target_lang: Union[str, Language],
    ) -> UtteranceTranslation:
        payload = {
            "utterances": _utterance_payload(utterances),
            "lang": _enum(Language, target_lang, "language").value,
        }
        body = await self._transport.request_json(
            "POST", "translate/utterance", credential, operation="translate_utterances", payload=payload
        )
        return _parse(UtteranceTranslation, body, "translate_utterances")

    async def create_summary(
        self, credential: str, utterances: Iterable[Union[Utterance, dict]]
    ) -> str:
        payload = {"utterances": _utterance_payload(list(utterances))}
        body = await self._transport.request_json(
            "POST", "summary", credential, operation="create_summary", payload=payload
        )
        data = unwrap_data(body, "create_summary")
        task_id = data.get("task_id") if isinstance(data, dict) else None
        if not task_id:
            raise ProtocolError("create_summary: response has no task_id.")
        return task_id

    async def send_callback(self, credential: str, request: CallbackRequest) -> str:
        body = await self._transport.request_json(
            "POST",
            "callback",
            credential,
            operation="send_callback",
            payload=request.model_dump(exclude_none=True),
        )
        if not isinstance(body, dict) or "status" not in body:
            raise ProtocolError("send_callback: response has no status.")
        return str(body["status"])
