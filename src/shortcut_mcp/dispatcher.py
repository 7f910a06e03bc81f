"""Request dispatcher for the /mcp endpoint.

Routes each request to one outcome, evaluated in order (first match wins):

POST
    1. known session id          -> continuation (credential must match the session)
    2. ``initialize`` request    -> bootstrap (credential validated upstream, new transport)
    3. unknown session id        -> SessionUnknown
    4. anything else             -> MalformedRequest

GET / DELETE
    1. missing or unknown id     -> plain-text 400
    2. no credential             -> AuthMissing
    3. mismatched credential     -> AuthMismatch
    4. forward to the transport (DELETE closes it, which removes the session)
"""
import json
import logging
from typing import Any, Optional

from starlette.datastructures import Headers
from starlette.requests import Request
from starlette.responses import PlainTextResponse
from starlette.types import Message, Receive, Scope, Send

from .auth import CredentialValidator, extract_credential
from .errors import (
    AuthInvalidUpstream,
    AuthMismatch,
    AuthMissing,
    InternalFailure,
    MalformedRequest,
    McpHttpError,
    SessionUnknown,
    invalid_session_response,
)
from .sessions import SessionRegistry
from .transport import Transport, TransportFactory

logger = logging.getLogger("shortcut-mcp.dispatcher")

SESSION_ID_HEADER = "mcp-session-id"
LAST_EVENT_ID_HEADER = "last-event-id"


class SessionBinding:
    """Connects one transport's lifecycle events to the registry."""

    def __init__(self, registry: SessionRegistry, credential: str):
        self._registry = registry
        self._credential = credential

    def on_session_established(self, transport: Transport) -> None:
        self._registry.create(transport, self._credential)

    def on_closed(self, transport: Transport) -> None:
        if transport.is_established and transport.session_id:
            self._registry.remove(transport.session_id)


def without_session_header(scope: Scope) -> Scope:
    """Copy of an ASGI scope with any Mcp-Session-Id header dropped."""
    stripped = dict(scope)
    stripped["headers"] = [
        (name, value) for name, value in scope.get("headers", [])
        if name.lower() != SESSION_ID_HEADER.encode("latin-1")
    ]
    return stripped


def parse_body(body: bytes) -> Optional[Any]:
    if not body:
        return None
    try:
        return json.loads(body)
    except (ValueError, UnicodeDecodeError):
        return None


def is_initialize_request(message: Any) -> bool:
    return isinstance(message, dict) and message.get("method") == "initialize"


def request_id_of(message: Any) -> Any:
    if isinstance(message, dict):
        return message.get("id")
    return None


class McpDispatcher:
    """
    ASGI endpoint multiplexing MCP sessions over POST, GET and DELETE.

    Args:
        registry: Live session table shared with the sweeper
        validator: Upstream credential check, used on bootstrap only
        transport_factory: Builds one transport per bootstrap
    """

    def __init__(
        self,
        registry: SessionRegistry,
        validator: CredentialValidator,
        transport_factory: TransportFactory,
    ):
        self.registry = registry
        self.validator = validator
        self.transport_factory = transport_factory

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        session_id = request.headers.get(SESSION_ID_HEADER)
        started = False
        # Filled in once a POST body has been parsed
        context: dict[str, Any] = {"request_id": None}

        async def tracking_send(message: Message) -> None:
            nonlocal started
            if message["type"] == "http.response.start":
                started = True
            await send(message)

        try:
            if request.method == "POST":
                await self._handle_post(request, scope, receive, tracking_send, context)
            elif request.method in ("GET", "DELETE"):
                await self._handle_stream(request, scope, receive, tracking_send)
            else:
                response = PlainTextResponse("Method not allowed", status_code=405)
                await response(scope, receive, tracking_send)
        except Exception:
            logger.exception(
                f"Error handling MCP request: session={session_id or 'none'} method={request.method}"
            )
            if started:
                return
            await InternalFailure().to_response(context["request_id"])(scope, receive, send)

    async def _reply(self, error: McpHttpError, scope: Scope, receive: Receive, send: Send,
                     request_id: Any = None) -> None:
        await error.to_response(request_id)(scope, receive, send)

    # ------------------------------------------------------------------
    # POST
    # ------------------------------------------------------------------

    async def _handle_post(
        self, request: Request, scope: Scope, receive: Receive, send: Send, context: dict[str, Any]
    ) -> None:
        session_id = request.headers.get(SESSION_ID_HEADER)
        credential = extract_credential(request.headers)
        body = await request.body()
        message = parse_body(body)
        request_id = request_id_of(message)
        context["request_id"] = request_id

        if session_id and self.registry.has(session_id):
            if credential is None:
                logger.debug(f"Rejected continuation without credential: session={session_id}")
                return await self._reply(AuthMissing(), scope, receive, send, request_id)
            if not self.registry.validate_credential(session_id, credential):
                logger.warning(f"Credential mismatch on continuation: session={session_id}")
                return await self._reply(AuthMismatch(), scope, receive, send, request_id)
            session = self.registry.get(session_id)
            await session.transport.handle_request(scope, receive, send, body=body)
            return

        if is_initialize_request(message):
            await self._bootstrap(scope, receive, send, credential, body, request_id, session_id)
            return

        if session_id:
            logger.debug(f"Unknown session on POST: session={session_id}")
            return await self._reply(SessionUnknown(), scope, receive, send, request_id)

        logger.debug("Rejected POST without session id that is not an initialize request")
        await self._reply(MalformedRequest(), scope, receive, send, request_id)

    async def _bootstrap(
        self,
        scope: Scope,
        receive: Receive,
        send: Send,
        credential: Optional[str],
        body: bytes,
        request_id: Any,
        stale_session_id: Optional[str],
    ) -> None:
        if credential is None:
            logger.debug("Rejected initialize without credential")
            return await self._reply(AuthMissing(), scope, receive, send, request_id)

        if not await self.validator.validate(credential):
            logger.warning("Rejected initialize: API token failed upstream validation")
            return await self._reply(AuthInvalidUpstream(), scope, receive, send, request_id)

        if stale_session_id:
            logger.debug(f"Re-initializing over unknown session {stale_session_id}")
            scope = without_session_header(scope)

        transport = await self.transport_factory.create(credential, SessionBinding(self.registry, credential))
        try:
            await transport.handle_request(scope, receive, send, body=body)
        finally:
            if not transport.is_established:
                logger.debug("Initialize did not establish a session; closing transport")
                await transport.close()

    # ------------------------------------------------------------------
    # GET / DELETE
    # ------------------------------------------------------------------

    async def _handle_stream(self, request: Request, scope: Scope, receive: Receive, send: Send) -> None:
        headers: Headers = request.headers
        session_id = headers.get(SESSION_ID_HEADER)
        if not session_id or not self.registry.has(session_id):
            logger.debug(f"{request.method} with invalid or missing session: session={session_id or 'none'}")
            return await invalid_session_response()(scope, receive, send)

        credential = extract_credential(headers)
        if credential is None:
            return await self._reply(AuthMissing(), scope, receive, send)
        if not self.registry.validate_credential(session_id, credential):
            logger.warning(f"Credential mismatch on {request.method}: session={session_id}")
            return await self._reply(AuthMismatch(), scope, receive, send)

        session = self.registry.get(session_id)
        if request.method == "GET" and headers.get(LAST_EVENT_ID_HEADER):
            logger.info(f"Client reconnecting with Last-Event-ID: {headers[LAST_EVENT_ID_HEADER]}")
        elif request.method == "DELETE":
            logger.info(f"Terminating session on client request: {session_id}")

        await session.transport.handle_request(scope, receive, send)
