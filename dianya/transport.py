"""HTTP plumbing shared by the session service and the request/response API."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import aiohttp

from .config import ApiConfig
from .errors import (
    InvalidCredential,
    ProtocolError,
    SerializationError,
    ServerError,
    TransportError,
)

SUCCESS_STATUSES = {"ok", "success", "succeeded", "done"}
FAILURE_STATUSES = {"error", "failed", "fail", "failure"}


def require_credential(credential: Optional[str]) -> str:
    """Return the stripped credential or raise before touching the network."""

    token = (credential or "").strip()
    if not token:
        raise InvalidCredential("Credential is empty.")
    return token


def unwrap_data(body: Any, operation: str) -> Any:
    """Extract ``data`` from a ``{"status", "message", "data"}`` envelope."""

    if not isinstance(body, dict):
        raise ProtocolError(f"{operation}: expected a JSON object, got {type(body).__name__}.")
    status = str(body.get("status") or "").lower()
    if status in FAILURE_STATUSES:
        raise ServerError(
            f"{operation}: {body.get('message') or 'remote reported failure'}",
            code=body.get("code"),
        )
    if "data" not in body or body["data"] is None:
        raise ProtocolError(f"{operation}: response has no data field.")
    return body["data"]


class ApiTransport:
    """Own one aiohttp session and map its failures onto the error taxonomy."""

    def __init__(self, config: ApiConfig) -> None:
        self.config = config
        self.base_url = config.base_url.rstrip("/")
        self._timeout = aiohttp.ClientTimeout(total=config.timeout_seconds)
        self._session: Optional[aiohttp.ClientSession] = None
        self._lock = asyncio.Lock()

    async def __aenter__(self) -> "ApiTransport":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        await self.close()

    async def _ensure_session(self) -> aiohttp.ClientSession:
        async with self._lock:
            if self._session is None or self._session.closed:
                self._session = aiohttp.ClientSession(timeout=self._timeout)
            return self._session

    async def close(self) -> None:
        if self._session:
            await self._session.close()
            self._session = None

    def url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _headers(self, credential: Optional[str]) -> Dict[str, str]:
        return {"Authorization": require_credential(credential)}

    @staticmethod
    def _encode(payload: Any) -> Optional[str]:
        if payload is None:
            return None
        try:
            return json.dumps(payload, ensure_ascii=False)
        except (TypeError, ValueError) as exc:
            raise SerializationError(f"Failed to encode request payload: {exc}") from exc

    async def _raise_for_status(self, resp: aiohttp.ClientResponse, operation: str) -> None:
        if resp.status < 300:
            return
        body = await resp.text()
        logging.debug("%s failed (%s): %s", operation, resp.status, body)
        message = body.strip() or resp.reason or "no body"
        try:
            decoded = json.loads(body)
        except ValueError:
            decoded = None
        code = None
        if isinstance(decoded, dict):
            message = decoded.get("message") or decoded.get("detail") or message
            code = decoded.get("code")
        if resp.status in (401, 403):
            raise InvalidCredential(f"{operation}: HTTP {resp.status}: {message}")
        raise ServerError(f"{operation}: HTTP {resp.status}: {message}", status=resp.status, code=code)

    async def request_json(
        self,
        method: str,
        path: str,
        credential: Optional[str],
        *,
        operation: str,
        payload: Any = None,
        params: Optional[Dict[str, Any]] = None,
        data: Optional[aiohttp.FormData] = None,
    ) -> Any:
        """Perform one round-trip and return the decoded JSON body."""

        headers = self._headers(credential)
        body = self._encode(payload)
        if body is not None:
            headers["Content-Type"] = "application/json"
        session = await self._ensure_session()
        url = self.url(path)
        logging.debug("%s -> %s %s", operation, method, url)
        try:
            async with session.request(
                method, url, headers=headers, params=params, data=data if data is not None else body
            ) as resp:
                await self._raise_for_status(resp, operation)
                text = await resp.text()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(f"{operation}: request to {url} failed: {exc}") from exc

        try:
            return json.loads(text)
        except ValueError as exc:
            raise ProtocolError(f"{operation}: response is not valid JSON: {exc}") from exc

    async def request_bytes(
        self,
        method: str,
        path: str,
        credential: Optional[str],
        *,
        operation: str,
        params: Optional[Dict[str, Any]] = None,
    ) -> bytes:
        """Perform one round-trip and return the raw, growable response body."""

        headers = self._headers(credential)
        session = await self._ensure_session()
        url = self.url(path)
        logging.debug("%s -> %s %s", operation, method, url)
        try:
            async with session.request(method, url, headers=headers, params=params) as resp:
                await self._raise_for_status(resp, operation)
                return await resp.read()
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            raise TransportError(f"{operation}: request to {url} failed: {exc}") from exc
