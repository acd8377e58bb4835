"""
Utility functions and compiled regex patterns for Vault Bridge MCP Server.

Contains the exception taxonomy, path helpers, frontmatter parsing and pre-compiled patterns.
"""

import re
from urllib.parse import unquote

import yaml

# Pre-compiled regex patterns for performance
FRONTMATTER_PATTERN = re.compile(r'^---[ \t]*\r?\n(.*?)\r?\n---[ \t]*(?:\r?\n|$)', re.DOTALL)
WIKILINK_PATTERN = re.compile(r'(!?)\[\[([^\]|]+)(?:\|([^\]]*))?\]\]')
MARKDOWN_LINK_PATTERN = re.compile(
    r'(!?)\[([^\]]*)\]\((?:<([^>]+)>|([^)\s]+))(?:\s+"[^"]*")?\)'
)
HEADING_PATTERN = re.compile(r'^(#{1,6})[ \t]+(.*?)[ \t]*$')
FENCE_PATTERN = re.compile(r'^[ \t]*(```|~~~)')
INLINE_CODE_PATTERN = re.compile(r'`[^`\n]*`')
BLOCK_ID_PATTERN = re.compile(r'(?:^|\s)\^([A-Za-z0-9-]+)[ \t]*$')
LIST_ITEM_PATTERN = re.compile(r'^[ \t]*(?:[-*+]|\d+[.)])[ \t]')
TAG_PATTERN = re.compile(r'(?<![\w#/&])#([\w/-]*[^\W\d][\w/-]*)')
URL_SCHEME_PATTERN = re.compile(r'^[A-Za-z][A-Za-z0-9+.-]*:')
HEADING_PUNCTUATION_PATTERN = re.compile(r'[^\w\s-]')
HEADING_SEPARATOR_PATTERN = re.compile(r'[\s_]+')


# ============== Exceptions ==============

class VaultError(Exception):
    """Base class for errors surfaced to tool callers."""
    pass


class AccessDeniedError(VaultError):
    """Raised when a path matches a forbidden pattern."""
    pass


class WriteDeniedError(VaultError):
    """Raised when a path is read-only or outside the writable allowlist."""
    pass


class NotFoundError(VaultError):
    """Raised when a note, folder or heading required to exist is missing."""
    pass


class AlreadyExistsError(VaultError):
    """Raised when a create target already exists."""
    pass


class InvalidArgumentError(VaultError):
    """Raised when a tool argument is missing or malformed."""
    pass


class UnknownToolError(VaultError):
    """Raised when a tool name is not in the registry."""
    pass


# ============== Helper Functions ==============

def parse_frontmatter(content: str) -> tuple[dict, int]:
    """Extract YAML frontmatter and the offset where the body starts."""
    frontmatter = {}
    body_start = 0

    match = FRONTMATTER_PATTERN.match(content)
    if match:
        try:
            loaded = yaml.safe_load(match.group(1))
            if isinstance(loaded, dict):
                frontmatter = loaded
        except yaml.YAMLError:
            pass
        body_start = match.end()

    return frontmatter, body_start


def normalize_path(path: str) -> str:
    """Normalize a vault-relative path.

    Backslashes become slashes, empty and ``.`` segments are dropped and
    leading/trailing slashes removed. The vault root normalizes to ``""``.

    Raises:
        InvalidArgumentError: If the path contains a ``..`` segment.
    """
    cleaned = path.strip().replace("\\", "/").replace("\u00a0", " ").replace("\u202f", " ")
    parts = [part for part in cleaned.split("/") if part not in ("", ".")]
    if ".." in parts:
        raise InvalidArgumentError(f"Path traversal is not allowed: {path}")
    return "/".join(parts)


def split_subpath(link: str) -> tuple[str, str | None]:
    """Split ``target#subpath`` into its parts. The subpath excludes the ``#``."""
    target, sep, subpath = link.partition("#")
    if not sep:
        return link, None
    return target, subpath


def normalize_heading_key(value: str) -> str:
    """Normalize heading text for comparison with a link subpath.

    Percent-decodes, lowercases, strips punctuation and collapses runs of
    whitespace or underscores into a single hyphen.
    """
    decoded = unquote(value).lower()
    stripped = HEADING_PUNCTUATION_PATTERN.sub("", decoded).strip()
    return HEADING_SEPARATOR_PATTERN.sub("-", stripped)


def is_markdown(path: str) -> bool:
    """Return True for ``.md`` files."""
    return path.lower().endswith(".md")


def is_hidden(path: str) -> bool:
    """Return True when any segment of ``path`` starts with a dot."""
    return any(part.startswith(".") for part in path.split("/") if part)
