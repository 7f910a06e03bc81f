"""Per-session duplex transports.

A transport owns one MCP conversation: it parses JSON-RPC, runs the session's
MCP server and frames responses (JSON or SSE). The dispatcher only forwards raw
ASGI requests into it. Lifecycle is reported to a listener as two events:

- ``on_session_established``: the bootstrap response is carrying the new session id
- ``on_closed``: the transport has terminated

each delivered at most once, in that order.
"""
import logging
from abc import ABC, abstractmethod
from typing import Optional, Protocol
from uuid import uuid4

import anyio
from anyio.abc import TaskGroup, TaskStatus
from mcp.server.streamable_http import MCP_SESSION_ID_HEADER, StreamableHTTPServerTransport
from starlette.types import Message, Receive, Scope, Send

from .client import ShortcutClient
from .config import Settings
from .server import create_server

logger = logging.getLogger("shortcut-mcp.transport")


class TransportListener(Protocol):
    def on_session_established(self, transport: "Transport") -> None:
        ...

    def on_closed(self, transport: "Transport") -> None:
        ...


class Transport(ABC):
    """Base class holding the lifecycle event plumbing."""

    session_id: Optional[str] = None

    def __init__(self, listener: TransportListener):
        self._listener = listener
        self._established = False
        self._closed = False

    @property
    def is_established(self) -> bool:
        return self._established

    @property
    def is_closed(self) -> bool:
        return self._closed

    def _notify_established(self) -> None:
        if self._established or self._closed:
            return
        self._established = True
        self._listener.on_session_established(self)

    def _notify_closed(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._listener.on_closed(self)

    @abstractmethod
    async def handle_request(
        self, scope: Scope, receive: Receive, send: Send, body: Optional[bytes] = None
    ) -> None:
        """Process one HTTP request. ``body`` replays a request body the caller already consumed."""

    @abstractmethod
    async def close(self) -> None:
        """Terminate the transport. Safe to call more than once."""


class TransportFactory(ABC):
    """Builds one transport per bootstrap request."""

    _task_group: Optional[TaskGroup] = None

    def bind(self, task_group: TaskGroup) -> None:
        """Attach the task group that background session work runs in."""
        self._task_group = task_group

    @abstractmethod
    async def create(self, credential: str, listener: TransportListener) -> Transport:
        ...


def replay_body(body: bytes, receive: Receive) -> Receive:
    """Wrap an ASGI receive so the already-read body is delivered again first."""
    delivered = False

    async def receive_with_body() -> Message:
        nonlocal delivered
        if not delivered:
            delivered = True
            return {"type": "http.request", "body": body, "more_body": False}
        return await receive()

    return receive_with_body


def _carries_session_id(message: Message) -> bool:
    header = MCP_SESSION_ID_HEADER.lower().encode("latin-1")
    return any(name.lower() == header for name, _ in message.get("headers", []))


class StreamableSessionTransport(Transport):
    """
    Streamable HTTP transport running a Shortcut MCP server for one session.

    The session id is minted up front (the MCP transport needs it to validate
    follow-up requests) but only reported once the bootstrap response carries it.
    """

    def __init__(
        self,
        credential: str,
        listener: TransportListener,
        settings: Settings,
    ):
        super().__init__(listener)
        self.session_id = uuid4().hex
        self._credential = credential
        self._settings = settings
        self._http = StreamableHTTPServerTransport(
            mcp_session_id=self.session_id,
            is_json_response_enabled=settings.json_response,
        )

    async def run(self, *, task_status: TaskStatus = anyio.TASK_STATUS_IGNORED) -> None:
        """Serve the session's MCP server until the transport terminates."""
        try:
            async with ShortcutClient(
                self._credential, base_url=self._settings.shortcut_api_base_url
            ) as client:
                server = create_server(
                    client,
                    readonly=self._settings.shortcut_readonly,
                    enabled_tools=self._settings.shortcut_tools,
                )
                async with self._http.connect() as (read_stream, write_stream):
                    task_status.started()
                    try:
                        await server.run(
                            read_stream,
                            write_stream,
                            server.create_initialization_options(),
                        )
                    except Exception:
                        logger.exception(f"MCP server for session {self.session_id} crashed")
        finally:
            self._notify_closed()

    async def handle_request(
        self, scope: Scope, receive: Receive, send: Send, body: Optional[bytes] = None
    ) -> None:
        if body is not None:
            receive = replay_body(body, receive)

        async def send_and_watch(message: Message) -> None:
            if (
                message["type"] == "http.response.start"
                and message.get("status") == 200
                and _carries_session_id(message)
            ):
                self._notify_established()
            await send(message)

        await self._http.handle_request(scope, receive, send_and_watch)

        # DELETE terminates the transport inside handle_request
        if self._http.is_terminated:
            self._notify_closed()

    async def close(self) -> None:
        if not self._http.is_terminated:
            await self._http.terminate()
        self._notify_closed()


class StreamableTransportFactory(TransportFactory):
    """Creates StreamableSessionTransports whose servers run in the bound task group."""

    def __init__(self, settings: Settings):
        self._settings = settings

    async def create(self, credential: str, listener: TransportListener) -> Transport:
        if self._task_group is None:
            raise RuntimeError("Transport factory is not bound to a running task group")

        transport = StreamableSessionTransport(credential, listener, self._settings)
        await self._task_group.start(transport.run)
        logger.debug(f"Created transport {transport.session_id}")
        return transport
