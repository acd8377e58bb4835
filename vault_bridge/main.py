"""
Main entry point for Vault Bridge MCP Server.

This module provides the main() function and server initialization.
"""

import argparse
import asyncio
import json
import sys
from io import TextIOWrapper
from typing import Any

import anyio
import structlog

from .acl import PathAccessChecker
from .config import SERVER_VERSION, Settings, settings
from .logging import configure_logging
from .protocol import ProtocolHandler
from .store import FileNoteStore
from .tools import ToolRegistry

logger = structlog.get_logger(__name__)


def build_handler(config: Settings = settings) -> ProtocolHandler:
    """Wire store, ACL checker and tool registry into a protocol handler."""
    if not config.vault_path.is_dir():
        logger.warning("vault_missing", vault_path=str(config.vault_path))

    store = FileNoteStore(
        config.vault_path,
        config.trash_folder,
        config.metadata_cache_size,
        config.index_ttl,
    )
    checker = PathAccessChecker(config.path_acl())
    return ProtocolHandler(ToolRegistry(store, checker))


def _is_response(payload: Any) -> bool:
    return isinstance(payload, dict) and "method" not in payload and ("result" in payload or "error" in payload)


async def _respond(handler: ProtocolHandler, payload: Any, stdout, lock: anyio.Lock) -> None:
    reply = await handler.handle_payload(payload)
    if reply is None:
        return
    async with lock:
        await stdout.write(json.dumps(reply) + "\n")
        await stdout.flush()


async def serve_stdio(handler: ProtocolHandler, stdin=None, stdout=None) -> None:
    """Serve newline-delimited JSON-RPC over stdin/stdout, one task per message.

    Lines are decoded here and handed to the protocol handler unvalidated, so
    a malformed message that still carries an id gets an Invalid Request reply.
    """
    if stdin is None:
        stdin = anyio.wrap_file(TextIOWrapper(sys.stdin.buffer, encoding="utf-8"))
    if stdout is None:
        stdout = anyio.wrap_file(TextIOWrapper(sys.stdout.buffer, encoding="utf-8"))

    lock = anyio.Lock()
    async with anyio.create_task_group() as tg:
        async for line in stdin:
            if not line.strip():
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError as e:
                logger.warning("invalid_json", error=str(e))
                continue
            if _is_response(payload):
                logger.debug("ignored_message", kind="response")
                continue
            tg.start_soon(_respond, handler, payload, stdout, lock)


def check_paths(paths: list[str], config: Settings = settings) -> list[dict[str, Any]]:
    """ACL decisions for ``paths`` under the configured ACL."""
    checker = PathAccessChecker(config.path_acl())
    return [checker.describe(path).model_dump() for path in paths]


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = argparse.ArgumentParser(prog="vault-bridge", description="Expose a markdown vault as MCP tools over stdio.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {SERVER_VERSION}")
    parser.add_argument(
        "--check-path",
        nargs="+",
        metavar="PATH",
        help="Print the read/write decision for each path and exit",
    )
    args = parser.parse_args(argv)

    configure_logging(settings.log_level)

    if args.check_path:
        for decision in check_paths(args.check_path, settings):
            print(json.dumps(decision))
        return 0

    logger.info("server_starting", vault_path=str(settings.vault_path), version=SERVER_VERSION)
    asyncio.run(serve_stdio(build_handler(settings)))
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
