"""JSON-RPC error taxonomy for the /mcp endpoint.

Every error synthesized by the dispatcher (as opposed to errors produced by a
session transport) is rendered as::

    {"jsonrpc": "2.0", "error": {"code": ..., "message": ...}, "id": ...}

where ``id`` echoes the request body's id when one is available.
"""
from typing import Any, Optional

from fastapi import status
from pydantic import BaseModel, Field
from starlette.responses import JSONResponse, PlainTextResponse

JSONRPC_VERSION = "2.0"

# JSON-RPC error codes
UNAUTHORIZED = -32000
BAD_REQUEST = -32000
SESSION_NOT_FOUND = -32001
INVALID_TOKEN = -32002
INTERNAL_ERROR = -32603

INVALID_SESSION_TEXT = "Invalid or missing session ID"


class JsonRpcErrorBody(BaseModel):
    code: int
    message: str


class JsonRpcErrorResponse(BaseModel):
    """Envelope for errors that never reached a session transport."""

    jsonrpc: str = Field(JSONRPC_VERSION)
    error: JsonRpcErrorBody
    id: Any = None


class McpHttpError(Exception):
    """Base class for client-visible /mcp errors."""

    status_code: int = status.HTTP_500_INTERNAL_SERVER_ERROR
    code: int = INTERNAL_ERROR
    default_message: str = "Internal server error"

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.default_message)
        self.message = message or self.default_message

    def to_payload(self, request_id: Any = None) -> dict:
        return JsonRpcErrorResponse(
            error=JsonRpcErrorBody(code=self.code, message=self.message),
            id=request_id,
        ).model_dump()

    def to_response(self, request_id: Any = None) -> JSONResponse:
        return JSONResponse(self.to_payload(request_id), status_code=self.status_code)


class AuthMissing(McpHttpError):
    """No credential was presented."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = UNAUTHORIZED
    default_message = (
        "API token required. Provide via Authorization: Bearer <token> "
        "or X-Shortcut-API-Token: <token>"
    )


class AuthMismatch(McpHttpError):
    """The credential does not match the one bound to the session."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = UNAUTHORIZED
    default_message = "API token does not match the session"


class AuthInvalidUpstream(McpHttpError):
    """Shortcut rejected the credential (or could not be reached) at bootstrap."""

    status_code = status.HTTP_401_UNAUTHORIZED
    code = INVALID_TOKEN
    default_message = "Invalid or expired API token. Please check your credentials."


class SessionUnknown(McpHttpError):
    """The session id was never issued, or has been evicted. Clients should re-initialize."""

    status_code = status.HTTP_404_NOT_FOUND
    code = SESSION_NOT_FOUND
    default_message = "Session not found or expired. Please re-initialize the connection."


class MalformedRequest(McpHttpError):
    """A POST that is neither an initialize request nor bound to a session."""

    status_code = status.HTTP_400_BAD_REQUEST
    code = BAD_REQUEST
    default_message = "No session ID provided for non-initialization request"


class InternalFailure(McpHttpError):
    """Anything unexpected. Details are logged, never sent to the client."""


def invalid_session_response() -> PlainTextResponse:
    """Plain-text 400 for GET/DELETE without a usable session (no JSON-RPC context to frame)."""
    return PlainTextResponse(INVALID_SESSION_TEXT, status_code=status.HTTP_400_BAD_REQUEST)


__all__ = [
    "JsonRpcErrorResponse",
    "McpHttpError",
    "AuthMissing",
    "AuthMismatch",
    "AuthInvalidUpstream",
    "SessionUnknown",
    "MalformedRequest",
    "InternalFailure",
    "invalid_session_response",
    "INVALID_SESSION_TEXT",
]
