"""Shortcut MCP Server - FastAPI application and process entry point."""
import logging
import sys
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Optional, Sequence

import anyio
import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from starlette.datastructures import Headers
from starlette.types import ASGIApp, Receive, Scope, Send

from . import MCP_PROTOCOL_VERSION, __version__
from .auth import CredentialValidator, ShortcutTokenValidator, extract_credential
from .config import Settings, get_settings, load_settings
from .dispatcher import SESSION_ID_HEADER, McpDispatcher
from .sessions import SessionRegistry
from .transport import StreamableTransportFactory, TransportFactory

logger = logging.getLogger("shortcut-mcp")

SERVICE_NAME = "shortcut-mcp-server"


def setup_logging(level: str = "INFO") -> None:
    """Log to stderr (captured by the container runtime)."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        stream=sys.stderr,
        force=True
    )


class RequestLoggingMiddleware:
    """
    Log each HTTP request at debug level.

    Pure ASGI rather than BaseHTTPMiddleware, which buffers responses and
    breaks SSE streams.
    """

    def __init__(self, app: ASGIApp):
        self.app = app

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        if scope["type"] == "http":
            headers = Headers(scope=scope)
            logger.debug(
                f"{scope['method']} {scope['path']} "
                f"session={headers.get(SESSION_ID_HEADER) or 'none'} "
                f"credential={'yes' if extract_credential(headers) else 'no'}"
            )
        await self.app(scope, receive, send)


def create_app(
    settings: Optional[Settings] = None,
    *,
    registry: Optional[SessionRegistry] = None,
    validator: Optional[CredentialValidator] = None,
    transport_factory: Optional[TransportFactory] = None,
) -> FastAPI:
    """
    Build the application.

    Collaborators default to the production ones built from settings; tests
    inject fakes.
    """
    settings = settings or get_settings()
    if registry is None:
        registry = SessionRegistry(
            timeout_seconds=settings.session_timeout_seconds,
            sweep_interval_seconds=settings.sweep_interval_seconds,
        )
    validator = validator or ShortcutTokenValidator(
        settings.shortcut_api_base_url,
        timeout=settings.validation_timeout_seconds,
    )
    transport_factory = transport_factory or StreamableTransportFactory(settings)
    dispatcher = McpDispatcher(registry, validator, transport_factory)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(
            f"Starting Shortcut MCP server (readonly={settings.shortcut_readonly}, "
            f"tools={settings.shortcut_tools or 'all'})"
        )
        async with anyio.create_task_group() as tg:
            transport_factory.bind(tg)
            tg.start_soon(registry.run_sweeper)
            try:
                yield
            finally:
                await registry.close_all()
                tg.cancel_scope.cancel()
        logger.info("Shortcut MCP server stopped")

    app = FastAPI(
        title="Shortcut MCP Server",
        description="Shortcut project management over the Model Context Protocol (streamable HTTP)",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = registry

    app.add_middleware(RequestLoggingMiddleware)
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["GET", "POST", "DELETE", "OPTIONS"],
        allow_headers=[
            "Content-Type",
            "Authorization",
            "X-Shortcut-API-Token",
            "Mcp-Session-Id",
            "Last-Event-Id",
        ],
        expose_headers=["Mcp-Session-Id"],
    )

    @app.get("/health")
    def health_check():
        """Liveness check."""
        return {
            "status": "ok",
            "service": SERVICE_NAME,
            "transport": "streamable-http",
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "version": MCP_PROTOCOL_VERSION,
        }

    app.add_route("/mcp", dispatcher, methods=["GET", "POST", "DELETE"])
    return app


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Run the server. Accepts ``KEY=value`` overrides, e.g. ``PORT=8080``."""
    settings = load_settings(sys.argv[1:] if argv is None else argv)
    setup_logging(settings.log_level)

    app = create_app(settings)
    logger.info(f"Shortcut MCP server listening on http://{settings.host}:{settings.port}/mcp")
    uvicorn.run(app, host=settings.host, port=settings.port, log_config=None)


if __name__ == "__main__":
    main()
