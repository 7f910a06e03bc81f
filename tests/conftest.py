"""Shared fakes for session, dispatcher and tool tests."""
import json
from typing import Optional

import pytest
from starlette.responses import JSONResponse, Response

from shortcut_mcp.config import Settings
from shortcut_mcp.sessions import SessionRegistry
from shortcut_mcp.transport import Transport, TransportFactory, replay_body


class FakeClock:
    def __init__(self, now: float = 1000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeTransport(Transport):
    """
    Minimal transport answering like the MCP streamable transport would.

    Modes:
        ok            - normal behavior
        no_session    - answer the initialize request without establishing a session
        fail          - raise before sending anything
        fail_after    - send a full response, then raise
    """

    def __init__(self, listener, session_id: str, mode: str = "ok"):
        super().__init__(listener)
        self.session_id = session_id
        self.mode = mode
        self.requests: list[dict] = []
        self.close_calls = 0

    async def _read_body(self, receive) -> bytes:
        body = b""
        while True:
            message = await receive()
            body += message.get("body", b"")
            if not message.get("more_body", False):
                return body

    async def handle_request(self, scope, receive, send, body: Optional[bytes] = None) -> None:
        if body is not None:
            receive = replay_body(body, receive)
        method = scope["method"]
        raw = await self._read_body(receive) if method == "POST" else b""
        self.requests.append({
            "method": method,
            "body": raw,
            "headers": {k.decode("latin-1"): v.decode("latin-1") for k, v in scope["headers"]},
        })

        if self.mode == "fail":
            raise RuntimeError("transport exploded")

        if method == "POST":
            message = json.loads(raw) if raw else None
            if isinstance(message, dict) and message.get("method") == "initialize":
                if self.mode == "no_session":
                    response = JSONResponse({"jsonrpc": "2.0", "error": {"code": -32600, "message": "nope"}}, 400)
                else:
                    self._notify_established()
                    response = JSONResponse(
                        {"jsonrpc": "2.0", "id": message.get("id"), "result": {}},
                        headers={"mcp-session-id": self.session_id},
                    )
            else:
                response = Response(status_code=202)
        elif method == "GET":
            response = Response("event: ping\n\n", media_type="text/event-stream")
        else:
            response = Response(status_code=200)
            await response(scope, receive, send)
            await self.close()
            return

        await response(scope, receive, send)
        if self.mode == "fail_after":
            raise RuntimeError("transport exploded mid-stream")

    async def close(self) -> None:
        self.close_calls += 1
        self._notify_closed()


class FakeTransportFactory(TransportFactory):
    def __init__(self, mode: str = "ok"):
        self.mode = mode
        self.created: list[FakeTransport] = []

    async def create(self, credential: str, listener) -> Transport:
        transport = FakeTransport(listener, f"session-{len(self.created) + 1}", self.mode)
        self.created.append(transport)
        return transport


class FakeValidator:
    def __init__(self, valid: tuple = ("good-token",)):
        self.valid = set(valid)
        self.calls: list[str] = []

    async def validate(self, credential: str) -> bool:
        self.calls.append(credential)
        return credential in self.valid


class StubTransport:
    """Registry-only stand-in: just a session id and a close() that may fail."""

    def __init__(self, session_id: str, fail_close: bool = False):
        self.session_id = session_id
        self.fail_close = fail_close
        self.close_calls = 0

    async def close(self) -> None:
        self.close_calls += 1
        if self.fail_close:
            raise RuntimeError(f"cannot close {self.session_id}")


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry(clock):
    return SessionRegistry(timeout_seconds=1800, sweep_interval_seconds=60, clock=clock)


@pytest.fixture
def settings():
    return Settings(SHORTCUT_API_BASE_URL="https://shortcut.test/api/v3", CORS_ORIGINS="*")
