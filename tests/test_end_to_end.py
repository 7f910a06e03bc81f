"""End-to-end test through the real MCP streamable HTTP transport."""
from starlette.testclient import TestClient

from conftest import FakeValidator
from shortcut_mcp.app import create_app
from shortcut_mcp.config import Settings

ACCEPT = {"Accept": "application/json, text/event-stream"}
AUTH = {"Authorization": "Bearer good-token"}

INITIALIZE = {
    "jsonrpc": "2.0",
    "id": 1,
    "method": "initialize",
    "params": {
        "protocolVersion": "2025-06-18",
        "capabilities": {},
        "clientInfo": {"name": "pytest", "version": "1.0"},
    },
}


class TestStreamableSession:
    """Test a full session lifecycle with JSON responses."""

    def test_initialize_list_tools_and_delete(self):
        settings = Settings(
            MCP_JSON_RESPONSE=True,
            SHORTCUT_READONLY="true",
            SHORTCUT_API_BASE_URL="https://shortcut.test/api/v3",
            _env_file=None,
        )
        app = create_app(settings, validator=FakeValidator())
        registry = app.state.registry

        with TestClient(app) as client:
            response = client.post("/mcp", json=INITIALIZE, headers={**ACCEPT, **AUTH})
            assert response.status_code == 200
            session_id = response.headers["mcp-session-id"]
            assert response.json()["result"]["serverInfo"]["name"] == "shortcut-mcp"
            assert registry.has(session_id)

            session_headers = {**ACCEPT, **AUTH, "Mcp-Session-Id": session_id}
            response = client.post(
                "/mcp",
                json={"jsonrpc": "2.0", "method": "notifications/initialized"},
                headers=session_headers,
            )
            assert response.status_code == 202

            response = client.post(
                "/mcp",
                json={"jsonrpc": "2.0", "id": 2, "method": "tools/list"},
                headers=session_headers,
            )
            assert response.status_code == 200
            names = {tool["name"] for tool in response.json()["result"]["tools"]}
            assert "stories-search" in names
            assert "stories-create" not in names

            response = client.post(
                "/mcp",
                json={"jsonrpc": "2.0", "id": 3, "method": "tools/list"},
                headers={**ACCEPT, "Authorization": "Bearer other-token", "Mcp-Session-Id": session_id},
            )
            assert response.status_code == 401

            response = client.delete("/mcp", headers=session_headers)
            assert response.status_code == 200
            assert not registry.has(session_id)

        assert len(registry) == 0
