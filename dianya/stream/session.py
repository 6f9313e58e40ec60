"""Realtime session records and the remote create/close calls."""

from __future__ import annotations

import logging
from typing import Optional, Union

from pydantic import BaseModel, ConfigDict, ValidationError

from ..config import ModelChoice
from ..errors import InvalidArgument, ProtocolError
from ..transport import ApiTransport, require_credential, unwrap_data

SESSION_PATH = "transcribe/session"
SESSION_CLOSE_PATH = "transcribe/session/close"


class Session(BaseModel):
    """Identifiers and time budget of a server-allocated transcription session."""

    model_config = ConfigDict(frozen=True)

    task_id: str
    session_id: str
    usage_id: str
    max_time: int


class SessionCloseResult(BaseModel):
    """Terminal record returned by the explicit close call."""

    model_config = ConfigDict(frozen=True)

    status: str
    duration: Optional[int] = None
    error_code: Optional[int] = None
    message: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.status.lower() in {"ok", "success", "succeeded", "done"}


def parse_model(model: Union[str, ModelChoice]) -> ModelChoice:
    """Resolve a model hint such as ``"Quality_V2"`` to a :class:`ModelChoice`."""

    if isinstance(model, ModelChoice):
        return model
    try:
        return ModelChoice((model or "").strip().lower())
    except ValueError as exc:
        raise InvalidArgument(f"Invalid model type: {model!r}") from exc


def normalize_grace_period(grace_period_seconds: Optional[float]) -> int:
    """Convert a caller supplied grace period to whole seconds.

    Non-positive values mean "no grace period" (0). A positive value never
    rounds down to zero: anything below one second becomes one second.
    """

    if grace_period_seconds is None or grace_period_seconds <= 0:
        return 0
    return max(1, int(grace_period_seconds))


class SessionService:
    """Create and close realtime sessions over the request/response endpoint."""

    def __init__(self, transport: ApiTransport) -> None:
        self._transport = transport

    async def create_session(self, model: Union[str, ModelChoice], credential: str) -> Session:
        model_choice = parse_model(model)
        token = require_credential(credential)
        body = await self._transport.request_json(
            "POST",
            SESSION_PATH,
            token,
            operation="create_session",
            payload={"model": model_choice.value},
        )
        data = unwrap_data(body, "create_session")
        try:
            session = Session.model_validate(data)
        except ValidationError as exc:
            raise ProtocolError(f"create_session: unexpected session payload: {exc}") from exc
        logging.info(
            "Realtime session created (task_id=%s, session_id=%s, max_time=%ss).",
            session.task_id,
            session.session_id,
            session.max_time,
        )
        return session

    async def close_session(
        self,
        task_id: str,
        credential: str,
        grace_period_seconds: Optional[float] = 0,
    ) -> SessionCloseResult:
        if not (task_id or "").strip():
            raise InvalidArgument("task_id cannot be empty")
        token = require_credential(credential)
        payload = {"task_id": task_id}
        grace = normalize_grace_period(grace_period_seconds)
        if grace:
            payload["timeout"] = grace
        body = await self._transport.request_json(
            "POST",
            SESSION_CLOSE_PATH,
            token,
            operation="close_session",
            payload=payload,
        )
        data = body.get("data") if isinstance(body, dict) and isinstance(body.get("data"), dict) else body
        try:
            result = SessionCloseResult.model_validate(data)
        except ValidationError as exc:
            raise ProtocolError(f"close_session: unexpected close payload: {exc}") from exc
        if result.succeeded:
            logging.info("Realtime session %s closed (duration=%s).", task_id, result.duration)
        else:
            logging.warning(
                "Realtime session %s closed with status=%s code=%s: %s",
                task_id,
                result.status,
                result.error_code,
                result.message,
            )
        return result
