"""
Tests for JSON-RPC protocol handling.
"""

import json

import pytest
from mcp.types import JSONRPCNotification, JSONRPCRequest

from vault_bridge.config import MCP_VERSION, SERVER_NAME
from vault_bridge.protocol import TOOL_EXECUTION_FAILED, ProtocolError, parse_message


def request(method, params=None, request_id=1):
    payload = {"jsonrpc": "2.0", "id": request_id, "method": method}
    if params is not None:
        payload["params"] = params
    return payload


def notification(method, params=None):
    payload = {"jsonrpc": "2.0", "method": method}
    if params is not None:
        payload["params"] = params
    return payload


def tool_call(name, arguments, request_id=1):
    return request("tools/call", {"name": name, "arguments": arguments}, request_id)


# ============== Tests for parse_message() ==============

class TestParseMessage:
    """Tests for classifying inbound payloads."""

    def test_request(self):
        """Test that an id makes a request."""
        assert isinstance(parse_message(request("ping")), JSONRPCRequest)

    def test_notification(self):
        """Test that a missing or null id makes a notification."""
        assert isinstance(parse_message(notification("ping")), JSONRPCNotification)
        assert isinstance(parse_message({"jsonrpc": "2.0", "id": None, "method": "ping"}), JSONRPCNotification)

    def test_invalid(self):
        """Test malformed payloads."""
        with pytest.raises(ProtocolError):
            parse_message({"jsonrpc": "2.0", "id": 1})
        with pytest.raises(ProtocolError):
            parse_message(["not", "an", "object"])


# ============== Tests for request handling ==============

class TestRequests:
    """Tests for method dispatch on requests."""

    async def test_initialize(self, handler):
        """Test the initialize handshake."""
        reply = await handler.handle_payload(request("initialize", {"clientInfo": {"name": "test", "version": "1"}}))

        assert reply["jsonrpc"] == "2.0"
        assert reply["id"] == 1
        assert reply["result"]["protocolVersion"] == MCP_VERSION
        assert reply["result"]["serverInfo"]["name"] == SERVER_NAME
        assert reply["result"]["capabilities"] == {"tools": {}}

    async def test_ping(self, handler):
        """Test ping."""
        reply = await handler.handle_payload(request("ping", request_id="abc"))

        assert reply == {"jsonrpc": "2.0", "id": "abc", "result": {"status": "ok"}}

    async def test_tools_list(self, handler):
        """Test the tool catalog."""
        reply = await handler.handle_payload(request("tools/list"))
        tools = reply["result"]["tools"]

        assert len(tools) == 10
        read_note = next(tool for tool in tools if tool["name"] == "read_note")
        assert read_note["inputSchema"]["required"] == ["path"]

    async def test_tools_call(self, handler):
        """Test that tool results are wrapped as pretty JSON text."""
        reply = await handler.handle_payload(tool_call("read_note", {"path": "Plain.md"}))
        content = reply["result"]["content"]

        assert content[0]["type"] == "text"
        assert json.loads(content[0]["text"]) == {"content": "Just text.\n"}
        assert content[0]["text"] == json.dumps({"content": "Just text.\n"}, indent=2)

    async def test_tools_call_failure(self, handler):
        """Test that handler errors become -32000 with the original message."""
        reply = await handler.handle_payload(tool_call("read_note", {"path": "Secrets/keys.md"}))

        assert "result" not in reply
        assert reply["error"]["code"] == TOOL_EXECUTION_FAILED
        assert reply["error"]["message"] == "Tool execution failed: Access forbidden: Secrets/keys.md"

    async def test_tools_call_unknown_tool(self, handler):
        """Test that unknown tools fail through the same code."""
        reply = await handler.handle_payload(tool_call("nope", {}))

        assert reply["error"]["code"] == TOOL_EXECUTION_FAILED
        assert reply["error"]["message"] == "Tool execution failed: Unknown tool: nope"

    async def test_tools_call_missing_name(self, handler):
        """Test that a missing tool name is invalid params."""
        reply = await handler.handle_payload(request("tools/call", {"arguments": {}}))

        assert reply["error"] == {"code": -32602, "message": "Missing tool name in parameters"}

    async def test_tools_call_without_arguments(self, handler):
        """Test that omitted arguments are treated as empty."""
        reply = await handler.handle_payload(request("tools/call", {"name": "search_notes"}))

        assert "Plain.md" in json.loads(reply["result"]["content"][0]["text"])["notes"]

    async def test_method_not_found(self, handler):
        """Test unknown methods on requests."""
        reply = await handler.handle_payload(request("resources/list", request_id=7))

        assert reply["id"] == 7
        assert reply["error"] == {"code": -32601, "message": "Method not found: resources/list"}

    async def test_internal_error(self, handler, monkeypatch):
        """Test that unexpected failures become -32603."""
        async def broken(params):
            raise RuntimeError("boom")

        monkeypatch.setitem(handler.methods, "ping", broken)

        reply = await handler.handle_payload(request("ping"))

        assert reply["error"] == {"code": -32603, "message": "Internal error: boom"}

    async def test_invalid_request_with_id(self, handler):
        """Test that a malformed message carrying an id gets -32600."""
        reply = await handler.handle_payload({"jsonrpc": "2.0", "id": 3, "params": {}})

        assert reply["id"] == 3
        assert reply["error"]["code"] == -32600

    async def test_initialized_as_request(self, handler):
        """Test that notifications/initialized sent with an id gets an empty result."""
        reply = await handler.handle_payload(request("notifications/initialized"))

        assert reply["result"] == {}


# ============== Tests for notifications ==============

class TestNotifications:
    """Tests that notifications never produce replies."""

    async def test_initialized(self, handler):
        """Test the initialized notification."""
        assert await handler.handle_payload(notification("notifications/initialized")) is None

    async def test_unknown_notification(self, handler):
        """Test an unrecognized notification."""
        assert await handler.handle_payload(notification("notifications/cancelled", {"requestId": 1})) is None

    async def test_failing_tool_call_notification(self, handler):
        """Test that a failing tool call without id stays silent."""
        assert await handler.handle_payload(notification("tools/call", {"name": "read_note", "arguments": {}})) is None
        assert await handler.handle_payload(notification("tools/call", {})) is None

    async def test_tool_call_notification_executes(self, handler, temp_vault):
        """Test that a tool call notification still runs."""
        payload = notification("tools/call", {"name": "create_note", "arguments": {"path": "Inbox/n", "content": "x"}})

        assert await handler.handle_payload(payload) is None
        assert (temp_vault / "Inbox" / "n.md").read_text(encoding="utf-8") == "x"

    async def test_internal_error_notification(self, handler, monkeypatch):
        """Test that unexpected failures in notifications are swallowed."""
        async def broken(params):
            raise RuntimeError("boom")

        monkeypatch.setitem(handler.methods, "ping", broken)

        assert await handler.handle_payload(notification("ping")) is None

    async def test_null_id_is_notification(self, handler):
        """Test that an explicit null id never gets a reply."""
        assert await handler.handle_payload({"jsonrpc": "2.0", "id": None, "method": "ping"}) is None

    async def test_malformed_without_id(self, handler):
        """Test that malformed payloads without an id stay silent."""
        assert await handler.handle_payload({"jsonrpc": "1.0", "method": "ping"}) is None
        assert await handler.handle_payload("garbage") is None
