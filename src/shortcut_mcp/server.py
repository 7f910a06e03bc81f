"""Shortcut MCP Server - expose a Shortcut workspace to AI assistants.

One server instance is built per session and bound to that session's client,
so every tool call runs with the session's own API token.
"""
import logging
import traceback
from typing import Any, Iterable, Optional

import httpx
from mcp.server import Server
from mcp.types import TextContent, Tool

from . import __version__
from . import handlers
from . import tools

logger = logging.getLogger("shortcut-mcp")


def create_server(
    client,
    readonly: bool = True,
    enabled_tools: Optional[Iterable[str]] = None,
) -> Server:
    """
    Build an MCP server whose tools call Shortcut through ``client``.

    Args:
        client: ShortcutClient bound to the session's API token
        readonly: Hide and refuse write tools
        enabled_tools: Entity prefixes or tool names to expose (empty for all)

    Returns:
        Configured mcp Server
    """
    app = Server("shortcut-mcp", version=__version__)
    available = tools.get_tools(readonly, enabled_tools)
    available_names = {tool.name for tool in available}

    @app.list_tools()
    async def list_tools() -> list[Tool]:
        return available

    @app.call_tool()
    async def call_tool(name: str, arguments: Any) -> list[TextContent]:
        logger.info(f"Tool call: {name} with arguments: {arguments}")

        handler = handlers.HANDLERS.get(name)
        if handler is None or name not in available_names:
            logger.warning(f"Unknown tool requested: {name}")
            return [TextContent(type="text", text=f"Unknown tool: {name}")]

        try:
            return await handler(arguments or {}, client)

        except httpx.HTTPStatusError as e:
            logger.error(f"HTTP error during {name} call:")
            logger.error(f"  Status: {e.response.status_code}")
            logger.error(f"  URL: {e.request.url}")
            try:
                response_body = e.response.json()
                error_detail = response_body.get("message", str(e)) if isinstance(response_body, dict) else str(e)
            except ValueError:
                error_detail = e.response.text or str(e)
            logger.error(f"  Response: {error_detail}")
            return [TextContent(type="text", text=f"Error: {error_detail}")]

        except httpx.RequestError as e:
            logger.error(f"Request error during {name} call: {type(e).__name__}: {e}")
            return [TextContent(type="text", text=f"Error: Connection failed - {str(e)}")]

        except ValueError as e:
            logger.warning(f"Invalid request for {name}: {e}")
            return [TextContent(type="text", text=f"Error: {str(e)}")]

        except Exception as e:
            logger.error(f"Unexpected error during {name} call:")
            logger.error(f"  Error type: {type(e).__name__}")
            logger.error(f"  Arguments: {arguments}")
            logger.error(f"  Traceback:\n{traceback.format_exc()}")
            return [TextContent(type="text", text=f"Error: {type(e).__name__}: {str(e)}")]

    logger.debug(f"Created MCP server with {len(available)} tools (readonly={readonly})")
    return app
