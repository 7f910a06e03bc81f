"""Shortcut MCP Server - Streamable HTTP integration.

This package exposes Shortcut project management to AI assistants over the
Model Context Protocol, multiplexing many authenticated sessions in one process.

Modules:
- app: FastAPI application and process entry point
- dispatcher: per-verb routing of /mcp requests into session transports
- sessions: in-memory session registry with idle sweeping
- transport: streamable HTTP transport per session
- auth: credential extraction and upstream validation
- errors: JSON-RPC error envelopes
- server: per-session MCP server
- tools / handlers / formatters / search / client: Shortcut tool registry
"""

__version__ = "1.0.0"

MCP_PROTOCOL_VERSION = "2025-06-18"

__all__ = ["__version__", "MCP_PROTOCOL_VERSION"]
