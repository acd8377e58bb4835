"""
Pydantic models for Vault Bridge MCP Server.

Contains data models for note metadata, access control, embed expansion and tool inputs.
"""

from typing import Any

from pydantic import BaseModel, ConfigDict, Field


# ============== Note Metadata ==============

class Heading(BaseModel):
    """A markdown heading with the character offsets of its line."""

    text: str
    level: int
    start: int
    end: int


class BlockSpan(BaseModel):
    """Character span of the block carrying a ``^block-id`` anchor."""

    start: int
    end: int


class Reference(BaseModel):
    """An outgoing link or embed.

    ``link`` is the raw reference (``targetPath[#subpath]``) and
    ``display_text`` is the alias or label shown to the reader.
    """

    link: str
    display_text: str
    original: str

    def formatted(self) -> str:
        return f"[{self.display_text}]({self.link})"


class NoteMetadata(BaseModel):
    """Parsed metadata for a single note. Never holds the note body."""

    path: str
    mtime_ns: int = 0
    size: int = 0
    frontmatter: dict[str, Any] = Field(default_factory=dict)
    links: list[Reference] = Field(default_factory=list)
    embeds: list[Reference] = Field(default_factory=list)
    headings: list[Heading] = Field(default_factory=list)
    blocks: dict[str, BlockSpan] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)


class FolderListing(BaseModel):
    """Immediate children of a vault folder."""

    notes: list[str]
    folders: list[str]


# ============== Access Control ==============

class PathACL(BaseModel):
    """Glob lists controlling read and write access.

    ``forbidden`` overrides the other two lists. An empty ``writable`` list
    means every path that is neither forbidden nor read-only is writable.
    """

    model_config = ConfigDict(populate_by_name=True)

    forbidden: list[str] = Field(default_factory=list)
    read_only: list[str] = Field(default_factory=list, alias="readOnly")
    writable: list[str] = Field(default_factory=list)


class AccessDecision(BaseModel):
    """Outcome of evaluating a path against the ACL."""

    path: str
    can_read: bool
    can_write: bool
    reason: str


# ============== Embed Expansion ==============

class EmbeddedLinkRef(BaseModel):
    """Visited-map entry used during a single embed expansion."""

    file: str | None
    subpaths: list[str] = Field(default_factory=list)
    has_full_reference: bool = False
    depth: int = 0

    def add_subpath(self, subpath: str) -> None:
        if subpath not in self.subpaths:
            self.subpaths.append(subpath)


# ============== Tool Inputs ==============

class ToolInput(BaseModel):
    """Base for tool argument models: strict types, unknown keys ignored."""

    model_config = ConfigDict(strict=True, extra="ignore")


class PathInput(ToolInput):
    path: str


class SearchNotesInput(ToolInput):
    tag: str | None = None
    folder: str | None = None
    text: str | None = None


class ListNotesByTagInput(ToolInput):
    tags: list[str]


class ReadWithEmbedsInput(ToolInput):
    path: str
    includeLinks: bool = False
    excludePatterns: list[str] = Field(default_factory=list)


class CreateNoteInput(ToolInput):
    path: str
    content: str | None = None
    template: str | None = None
    binary: bool = False


class AppendNoteInput(ToolInput):
    path: str
    content: str
    heading: str | None = None
    separator: str = "\n"


class UpdateNoteInput(ToolInput):
    path: str
    content: str
