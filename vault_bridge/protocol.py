"""
JSON-RPC protocol handling for Vault Bridge MCP Server.

Parses inbound messages into requests or notifications, dispatches them by
method name and shapes the replies. Notifications never produce a reply.
"""

import json
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from mcp.types import (
    INTERNAL_ERROR,
    INVALID_PARAMS,
    INVALID_REQUEST,
    METHOD_NOT_FOUND,
    ErrorData,
    JSONRPCError,
    JSONRPCNotification,
    JSONRPCRequest,
    JSONRPCResponse,
    TextContent,
)
from pydantic import ValidationError

from .config import MCP_VERSION, SERVER_NAME, SERVER_VERSION
from .tools import ToolRegistry

logger = structlog.get_logger(__name__)

TOOL_EXECUTION_FAILED = -32000

MethodHandler = Callable[[dict[str, Any] | None], Awaitable[dict[str, Any]]]


class ProtocolError(Exception):
    """A failure that maps directly onto a JSON-RPC error code."""

    def __init__(self, code: int, message: str):
        super().__init__(message)
        self.code = code
        self.message = message


def parse_message(payload: Any) -> JSONRPCRequest | JSONRPCNotification:
    """Classify a decoded payload. A non-null ``id`` makes it a request."""
    if not isinstance(payload, dict):
        raise ProtocolError(INVALID_REQUEST, "Invalid request")

    try:
        if payload.get("id") is not None:
            return JSONRPCRequest.model_validate(payload)
        fields = {key: value for key, value in payload.items() if key != "id"}
        return JSONRPCNotification.model_validate(fields)
    except ValidationError as e:
        raise ProtocolError(INVALID_REQUEST, "Invalid request") from e


def _dump(message: JSONRPCResponse | JSONRPCError) -> dict[str, Any]:
    return message.model_dump(mode="json", by_alias=True, exclude_none=True)


def error_response(request_id: str | int, code: int, message: str) -> JSONRPCError:
    return JSONRPCError(jsonrpc="2.0", id=request_id, error=ErrorData(code=code, message=message))


class ProtocolHandler:
    """Stateless JSON-RPC front end over a ToolRegistry.

    Requests get exactly one response or error. Notifications naming a known
    method are executed and their outcome is only logged.
    """

    def __init__(self, registry: ToolRegistry):
        self.registry = registry
        self.methods: dict[str, MethodHandler] = {
            "initialize": self._initialize,
            "notifications/initialized": self._initialized,
            "tools/list": self._tools_list,
            "tools/call": self._tools_call,
            "ping": self._ping,
        }

    async def handle_payload(self, payload: Any) -> dict[str, Any] | None:
        """Handle one decoded JSON payload and return the serialized reply, if any."""
        try:
            message = parse_message(payload)
        except ProtocolError as e:
            request_id = payload.get("id") if isinstance(payload, dict) else None
            logger.warning("invalid_message", error=e.message, request_id=request_id)
            if isinstance(request_id, (str, int)) and not isinstance(request_id, bool):
                return _dump(error_response(request_id, e.code, e.message))
            return None

        reply = await self.handle(message)
        if reply is None:
            return None
        return _dump(reply)

    async def handle(
        self, message: JSONRPCRequest | JSONRPCNotification
    ) -> JSONRPCResponse | JSONRPCError | None:
        if isinstance(message, JSONRPCNotification):
            await self.handle_notification(message)
            return None
        return await self.handle_request(message)

    async def handle_request(self, request: JSONRPCRequest) -> JSONRPCResponse | JSONRPCError:
        logger.debug("request_received", method=request.method, request_id=request.id)
        try:
            handler = self.methods.get(request.method)
            if handler is None:
                raise ProtocolError(METHOD_NOT_FOUND, f"Method not found: {request.method}")
            result = await handler(request.params)
        except ProtocolError as e:
            return error_response(request.id, e.code, e.message)
        except Exception as e:
            logger.exception("request_failed", method=request.method, request_id=request.id)
            return error_response(request.id, INTERNAL_ERROR, f"Internal error: {e}")

        return JSONRPCResponse(jsonrpc="2.0", id=request.id, result=result)

    async def handle_notification(self, notification: JSONRPCNotification) -> None:
        logger.debug("notification_received", method=notification.method)
        handler = self.methods.get(notification.method)
        if handler is None:
            logger.warning("unknown_notification", method=notification.method)
            return

        try:
            await handler(notification.params)
        except ProtocolError as e:
            logger.warning("notification_failed", method=notification.method, code=e.code, error=e.message)
        except Exception:
            logger.exception("notification_failed", method=notification.method)

    # ============== Methods ==============

    async def _initialize(self, params: dict[str, Any] | None) -> dict[str, Any]:
        client = (params or {}).get("clientInfo") or {}
        logger.info("client_initializing", client=client.get("name"), version=client.get("version"))
        return {
            "protocolVersion": MCP_VERSION,
            "serverInfo": {"name": SERVER_NAME, "version": SERVER_VERSION},
            "capabilities": {"tools": {}},
        }

    async def _initialized(self, params: dict[str, Any] | None) -> dict[str, Any]:
        logger.info("client_initialized")
        return {}

    async def _tools_list(self, params: dict[str, Any] | None) -> dict[str, Any]:
        return {
            "tools": [
                tool.model_dump(mode="json", by_alias=True, exclude_none=True)
                for tool in self.registry.definitions()
            ]
        }

    async def _tools_call(self, params: dict[str, Any] | None) -> dict[str, Any]:
        params = params or {}
        name = params.get("name")
        if not name or not isinstance(name, str):
            raise ProtocolError(INVALID_PARAMS, "Missing tool name in parameters")

        try:
            result = await self.registry.execute(name, params.get("arguments"))
        except Exception as e:
            logger.error("tool_failed", tool=name, error=str(e), error_type=type(e).__name__)
            raise ProtocolError(TOOL_EXECUTION_FAILED, f"Tool execution failed: {e}") from e

        text = json.dumps(result, indent=2, ensure_ascii=False)
        return {"content": [TextContent(type="text", text=text).model_dump(mode="json", exclude_none=True)]}

    async def _ping(self, params: dict[str, Any] | None) -> dict[str, Any]:
        return {"status": "ok"}
