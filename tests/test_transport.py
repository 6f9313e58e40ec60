"""Tests for the shared HTTP transport and its error mapping."""

from __future__ import annotations

import asyncio
import json
import unittest
from typing import Any, List, Optional
from unittest import mock

import aiohttp

from dianya.config import ApiConfig
from dianya.errors import (
    InvalidCredential,
    ProtocolError,
    SerializationError,
    ServerError,
    TransportError,
)
from dianya.transport import ApiTransport, require_credential, unwrap_data


class FakeResponse:
    def __init__(self, status: int = 200, body: Any = "", reason: str = "OK") -> None:
        self.status = status
        self.reason = reason
        self._body = body if isinstance(body, (str, bytes)) else json.dumps(body)

    async def text(self) -> str:
        return self._body if isinstance(self._body, str) else self._body.decode("utf-8")

    async def read(self) -> bytes:
        return self._body if isinstance(self._body, bytes) else self._body.encode("utf-8")

    async def __aenter__(self) -> "FakeResponse":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:  # noqa: ANN001
        return None


class FakeSession:
    def __init__(self, response: Optional[FakeResponse] = None, error: Optional[Exception] = None) -> None:
        self.response = response or FakeResponse(body={"status": "ok", "data": {}})
        self.error = error
        self.calls: List[tuple] = []
        self.closed = False

    def request(self, method: str, url: str, **kwargs: Any) -> FakeResponse:
        self.calls.append((method, url, kwargs))
        if self.error is not None:
            raise self.error
        return self.response

    async def close(self) -> None:
        self.closed = True


class HelperTests(unittest.TestCase):
    def test_require_credential(self) -> None:
        self.assertEqual(require_credential("  Bearer x "), "Bearer x")
        for value in (None, "", "   "):
            with self.assertRaises(InvalidCredential):
                require_credential(value)

    def test_unwrap_data(self) -> None:
        self.assertEqual(unwrap_data({"status": "ok", "data": {"a": 1}}, "op"), {"a": 1})
        with self.assertRaises(ServerError) as ctx:
            unwrap_data({"status": "error", "message": "nope", "code": 17}, "op")
        self.assertEqual(ctx.exception.code, 17)
        with self.assertRaises(ProtocolError):
            unwrap_data({"status": "ok"}, "op")
        with self.assertRaises(ProtocolError):
            unwrap_data(["not", "a", "dict"], "op")


class ApiTransportTests(unittest.IsolatedAsyncioTestCase):
    """Round-trips against a fake aiohttp session."""

    async def asyncSetUp(self) -> None:
        self.transport = ApiTransport(ApiConfig(base_url="https://example.test/api/"))

    def use(self, session: FakeSession) -> FakeSession:
        self.transport._ensure_session = mock.AsyncMock(return_value=session)  # type: ignore[method-assign]
        return session

    async def test_json_request_sends_credential_and_body(self) -> None:
        session = self.use(FakeSession())

        body = await self.transport.request_json(
            "POST", "/transcribe/session", "tok", operation="create", payload={"model": "speed"}
        )

        self.assertEqual(body, {"status": "ok", "data": {}})
        method, url, kwargs = session.calls[0]
        self.assertEqual((method, url), ("POST", "https://example.test/api/transcribe/session"))
        self.assertEqual(kwargs["headers"]["Authorization"], "tok")
        self.assertEqual(kwargs["headers"]["Content-Type"], "application/json")
        self.assertEqual(json.loads(kwargs["data"]), {"model": "speed"})

    async def test_empty_credential_never_hits_network(self) -> None:
        session = self.use(FakeSession())
        with self.assertRaises(InvalidCredential):
            await self.transport.request_json("GET", "x", "", operation="op")
        self.assertEqual(session.calls, [])

    async def test_unencodable_payload(self) -> None:
        self.use(FakeSession())
        with self.assertRaises(SerializationError):
            await self.transport.request_json("POST", "x", "tok", operation="op", payload={"b": object()})

    async def test_unauthorized_maps_to_invalid_credential(self) -> None:
        for status in (401, 403):
            self.use(FakeSession(FakeResponse(status=status, body={"message": "denied"})))
            with self.assertRaises(InvalidCredential):
                await self.transport.request_json("GET", "x", "tok", operation="op")

    async def test_server_failure_keeps_status_and_code(self) -> None:
        self.use(FakeSession(FakeResponse(status=500, body={"detail": "boom", "code": 9})))
        with self.assertRaises(ServerError) as ctx:
            await self.transport.request_json("GET", "x", "tok", operation="op")
        self.assertEqual(ctx.exception.status, 500)
        self.assertEqual(ctx.exception.code, 9)
        self.assertIn("boom", str(ctx.exception))

    async def test_connection_failure_maps_to_transport_error(self) -> None:
        for error in (aiohttp.ClientConnectionError("refused"), asyncio.TimeoutError()):
            self.use(FakeSession(error=error))
            with self.assertRaises(TransportError):
                await self.transport.request_json("GET", "x", "tok", operation="op")

    async def test_invalid_json_is_protocol_error(self) -> None:
        self.use(FakeSession(FakeResponse(body="<html>")))
        with self.assertRaises(ProtocolError):
            await self.transport.request_json("GET", "x", "tok", operation="op")

    async def test_request_bytes_returns_raw_body(self) -> None:
        session = self.use(FakeSession(FakeResponse(body=b"%PDF-1.7")))

        data = await self.transport.request_bytes("GET", "export", "tok", operation="export", params={"a": "b"})

        self.assertEqual(data, b"%PDF-1.7")
        self.assertEqual(session.calls[0][2]["params"], {"a": "b"})

    async def test_close_releases_session(self) -> None:
        session = FakeSession()
        self.transport._session = session  # type: ignore[assignment]
        async with self.transport:
            pass
        self.assertTrue(session.closed)
        self.assertIsNone(self.transport._session)


if __name__ == "__main__":
    unittest.main()
