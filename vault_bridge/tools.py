"""
MCP Tools module for Vault Bridge MCP Server.

Contains the static tool table, the tool handlers and the ToolRegistry that
validates arguments and dispatches calls.
"""

import base64
from collections.abc import Awaitable, Callable
from typing import Any, NamedTuple

import structlog
from mcp.types import Tool
from pydantic import BaseModel, ValidationError

from .acl import PathAccessChecker
from .graph import ContentGraphExpander
from .models import (
    AppendNoteInput,
    CreateNoteInput,
    ListNotesByTagInput,
    PathInput,
    ReadWithEmbedsInput,
    SearchNotesInput,
    UpdateNoteInput,
)
from .store import NoteStore
from .templates import render_template
from .utils import (
    InvalidArgumentError,
    NotFoundError,
    UnknownToolError,
    is_markdown,
    normalize_path,
    split_subpath,
)

logger = structlog.get_logger(__name__)

ToolHandler = Callable[["ToolRegistry", Any], Awaitable[dict[str, Any]]]


class RegisteredTool(NamedTuple):
    definition: Tool
    input_model: type[BaseModel]
    handler: ToolHandler


TOOL_TABLE: dict[str, RegisteredTool] = {}


def register_tool(name: str, description: str, input_schema: dict[str, Any], input_model: type[BaseModel]):
    """Add a handler to the tool table under ``name``."""

    def decorator(handler: ToolHandler) -> ToolHandler:
        definition = Tool(name=name, description=description, inputSchema=input_schema)
        TOOL_TABLE[name] = RegisteredTool(definition, input_model, handler)
        return handler

    return decorator


def require_path(value: str, argument: str = "path") -> str:
    """Normalize a path argument that must name something below the vault root."""
    path = normalize_path(value)
    if not path:
        raise InvalidArgumentError(f"Missing required argument: {argument}")
    return path


def _validation_message(error: ValidationError) -> str:
    first = error.errors()[0]
    location = ".".join(str(part) for part in first["loc"]) or "arguments"
    if first["type"] == "missing":
        return f"Missing required argument: {location}"
    return f"Invalid argument '{location}': {first['msg']}"


class ToolRegistry:
    """Executes tools from the static tool table against a store and ACL."""

    def __init__(
        self,
        store: NoteStore,
        checker: PathAccessChecker,
        expander: ContentGraphExpander | None = None,
    ):
        self.store = store
        self.checker = checker
        self.expander = expander or ContentGraphExpander(store, checker)

    def definitions(self) -> list[Tool]:
        return [tool.definition for tool in TOOL_TABLE.values()]

    async def execute(self, name: str, arguments: Any) -> dict[str, Any]:
        """Validate ``arguments`` for tool ``name`` and run its handler.

        Raises:
            UnknownToolError: If no tool is registered under ``name``.
            InvalidArgumentError: If arguments are missing or mistyped.
            VaultError: Whatever the handler raises (ACL, not found, ...).
        """
        tool = TOOL_TABLE.get(name)
        if tool is None:
            raise UnknownToolError(f"Unknown tool: {name}")

        if arguments is None:
            arguments = {}
        if not isinstance(arguments, dict):
            raise InvalidArgumentError("Tool arguments must be an object")

        try:
            parsed = tool.input_model.model_validate(arguments)
        except ValidationError as e:
            raise InvalidArgumentError(_validation_message(e)) from e

        logger.debug("tool_executing", tool=name)
        return await tool.handler(self, parsed)


# ============== Read tools ==============

@register_tool(
    "read_note",
    "Read the full content of a note by its path. Returns the raw markdown content.",
    {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The path to the note within the vault (e.g., 'folder/note.md')",
            },
        },
        "required": ["path"],
    },
    PathInput,
)
async def read_note(registry: ToolRegistry, args: PathInput) -> dict[str, Any]:
    path = require_path(args.path)
    registry.checker.check_read(path)

    try:
        return {"content": await registry.store.read(path)}
    except UnicodeDecodeError:
        data = await registry.store.read_bytes(path)
        return {"content": base64.b64encode(data).decode("ascii"), "encoding": "base64"}


@register_tool(
    "search_notes",
    "Search for notes by tag, folder path, or text content. Returns matching note paths.",
    {
        "type": "object",
        "properties": {
            "tag": {
                "type": "string",
                "description": "Tag to search for (without #, e.g., 'daily' or 'project/work')",
            },
            "folder": {
                "type": "string",
                "description": "Folder path to search within (e.g., 'Daily Notes')",
            },
            "text": {
                "type": "string",
                "description": "Text to search for in note content",
            },
        },
    },
    SearchNotesInput,
)
async def search_notes(registry: ToolRegistry, args: SearchNotesInput) -> dict[str, Any]:
    paths = await registry.store.search(tag=args.tag, folder=args.folder, text=args.text)
    return {"notes": registry.checker.filter_readable(sorted(paths))}


@register_tool(
    "get_linked_notes",
    "Get all notes linked from a specific note (outgoing links and embeds). Returns paths of linked notes.",
    {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The path to the note (e.g., 'folder/note.md')",
            },
        },
        "required": ["path"],
    },
    PathInput,
)
async def get_linked_notes(registry: ToolRegistry, args: PathInput) -> dict[str, Any]:
    path = require_path(args.path)
    registry.checker.check_read(path)

    references = await registry.store.get_links(path) + await registry.store.get_embeds(path)
    linked: set[str] = set()
    for reference in references:
        target, _ = split_subpath(reference.link)
        if not target.strip():
            continue
        resolved = await registry.store.resolve_link(target, path)
        if resolved is not None:
            linked.add(resolved)

    return {"links": registry.checker.filter_readable(sorted(linked))}


@register_tool(
    "list_notes",
    "List the notes and folders directly inside a folder. Returns note and folder paths.",
    {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Folder path to list (e.g., 'Daily Notes'). Use empty string for root.",
            },
        },
        "required": ["path"],
    },
    PathInput,
)
async def list_notes(registry: ToolRegistry, args: PathInput) -> dict[str, Any]:
    path = normalize_path(args.path)
    if path:
        registry.checker.check_read(path)

    listing = await registry.store.list_folder(path)
    return {
        "notes": registry.checker.filter_readable(listing.notes),
        "folders": registry.checker.filter_readable(listing.folders),
    }


@register_tool(
    "list_notes_by_tag",
    "Get all notes that have any of the given tags. Returns matching note paths.",
    {
        "type": "object",
        "properties": {
            "tags": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Array of tags to search for (without #)",
            },
        },
        "required": ["tags"],
    },
    ListNotesByTagInput,
)
async def list_notes_by_tag(registry: ToolRegistry, args: ListNotesByTagInput) -> dict[str, Any]:
    matches: set[str] = set()
    for tag in args.tags:
        if tag.lstrip("#"):
            matches.update(await registry.store.search(tag=tag))
    return {"notes": registry.checker.filter_readable(sorted(matches))}


@register_tool(
    "read_note_with_embeds",
    "Read a note together with the content it embeds (and optionally links to), "
    "following references up to two levels deep. Each referenced file is included once.",
    {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The path to the note (e.g., 'folder/note.md')",
            },
            "includeLinks": {
                "type": "boolean",
                "description": "Also include the content of plain links, not only embeds (default: false)",
                "default": False,
            },
            "excludePatterns": {
                "type": "array",
                "items": {"type": "string"},
                "description": "Regular expressions; references whose '[text](link)' form matches any are skipped",
            },
        },
        "required": ["path"],
    },
    ReadWithEmbedsInput,
)
async def read_note_with_embeds(registry: ToolRegistry, args: ReadWithEmbedsInput) -> dict[str, Any]:
    path = require_path(args.path)
    registry.checker.check_read(path)

    content = await registry.expander.expand(
        path,
        include_links=args.includeLinks,
        exclude_patterns=args.excludePatterns,
    )
    return {"content": content}


# ============== Write tools ==============

@register_tool(
    "create_note",
    "Create a new note, either from content or from a template note. Fails if the path already exists.",
    {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "Path of the new note (e.g., 'folder/note.md'). '.md' is added for text notes.",
            },
            "content": {
                "type": "string",
                "description": "Content of the new note (base64 when binary is true)",
            },
            "template": {
                "type": "string",
                "description": "Path of a template note; {{title}}, {{date}} and {{time}} are filled in",
            },
            "binary": {
                "type": "boolean",
                "description": "Treat content as base64-encoded binary data (default: false)",
                "default": False,
            },
        },
        "required": ["path"],
    },
    CreateNoteInput,
)
async def create_note(registry: ToolRegistry, args: CreateNoteInput) -> dict[str, Any]:
    path = require_path(args.path)
    if not args.binary and not is_markdown(path):
        path = f"{path}.md"
    registry.checker.check_write(path)

    if args.template:
        template_path = require_path(args.template, "template")
        registry.checker.check_read(template_path)
        if not await registry.store.exists(template_path):
            raise NotFoundError(f"Template not found: {template_path}")
        content = render_template(await registry.store.read(template_path), path)
        created = await registry.store.create(path, content)
    elif args.content is not None:
        created = await registry.store.create(path, args.content, binary=args.binary)
    else:
        raise InvalidArgumentError("Either content or template must be provided")

    return {"path": created}


@register_tool(
    "append_to_note",
    "Append content to the end of a note, or to the end of the section under a heading.",
    {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The path to the note (e.g., 'folder/note.md')",
            },
            "content": {
                "type": "string",
                "description": "Content to append",
            },
            "heading": {
                "type": "string",
                "description": "Heading text whose section receives the content (exact match)",
            },
            "separator": {
                "type": "string",
                "description": "Text inserted between the existing content and the new content (default: newline)",
                "default": "\n",
            },
        },
        "required": ["path", "content"],
    },
    AppendNoteInput,
)
async def append_to_note(registry: ToolRegistry, args: AppendNoteInput) -> dict[str, Any]:
    path = require_path(args.path)
    registry.checker.check_write(path)
    appended = await registry.store.append(path, args.content, heading=args.heading, separator=args.separator)
    return {"path": appended}


@register_tool(
    "update_note",
    "Replace the entire content of an existing note.",
    {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The path to the note (e.g., 'folder/note.md')",
            },
            "content": {
                "type": "string",
                "description": "New content of the note",
            },
        },
        "required": ["path", "content"],
    },
    UpdateNoteInput,
)
async def update_note(registry: ToolRegistry, args: UpdateNoteInput) -> dict[str, Any]:
    path = require_path(args.path)
    registry.checker.check_write(path)
    return {"path": await registry.store.update(path, args.content)}


@register_tool(
    "delete_note",
    "Delete a note by moving it to the vault trash folder.",
    {
        "type": "object",
        "properties": {
            "path": {
                "type": "string",
                "description": "The path to the note (e.g., 'folder/note.md')",
            },
        },
        "required": ["path"],
    },
    PathInput,
)
async def delete_note(registry: ToolRegistry, args: PathInput) -> dict[str, Any]:
    path = require_path(args.path)
    registry.checker.check_write(path)
    return {"path": await registry.store.delete(path)}
