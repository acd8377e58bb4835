"""
Markdown metadata parser for Vault Bridge MCP Server.

Extracts headings, links, embeds, block anchors and tags from note content.
Frontmatter, fenced code blocks and inline code are not scanned for links.
"""

import re
from urllib.parse import unquote

from .models import BlockSpan, Heading, NoteMetadata, Reference
from .utils import (
    BLOCK_ID_PATTERN,
    FENCE_PATTERN,
    HEADING_PATTERN,
    INLINE_CODE_PATTERN,
    LIST_ITEM_PATTERN,
    MARKDOWN_LINK_PATTERN,
    TAG_PATTERN,
    URL_SCHEME_PATTERN,
    WIKILINK_PATTERN,
    parse_frontmatter,
)

FRONTMATTER_TAG_SPLIT_PATTERN = re.compile(r'[,\s]+')


def _blank(match: re.Match) -> str:
    return " " * len(match.group(0))


def _frontmatter_tags(frontmatter: dict) -> list[str]:
    """Read ``tags`` (or ``tag``) from frontmatter as a list without ``#``."""
    raw = frontmatter.get("tags", frontmatter.get("tag"))
    if raw is None:
        return []
    if isinstance(raw, str):
        items = FRONTMATTER_TAG_SPLIT_PATTERN.split(raw)
    elif isinstance(raw, list):
        items = [str(item) for item in raw if item is not None]
    else:
        items = [str(raw)]

    tags = []
    for item in items:
        tag = item.strip().lstrip("#")
        if tag:
            tags.append(tag)
    return tags


def _scan_references(line: str) -> tuple[list[tuple[int, bool, Reference]], str]:
    """Find wikilinks and markdown links in a line.

    Returns ``(found, masked)`` where ``found`` holds ``(position, is_embed,
    reference)`` tuples and ``masked`` is the line with every link blanked out.
    """
    found: list[tuple[int, bool, Reference]] = []

    for match in WIKILINK_PATTERN.finditer(line):
        target = match.group(2).strip()
        if not target:
            continue
        alias = match.group(3)
        display = alias.strip() if alias else target
        found.append((
            match.start(),
            match.group(1) == "!",
            Reference(link=target, display_text=display, original=match.group(0)),
        ))
    masked = WIKILINK_PATTERN.sub(_blank, line)

    for match in MARKDOWN_LINK_PATTERN.finditer(masked):
        target = match.group(3) or match.group(4)
        if URL_SCHEME_PATTERN.match(target):
            continue
        found.append((
            match.start(),
            match.group(1) == "!",
            Reference(link=unquote(target), display_text=match.group(2), original=match.group(0)),
        ))
    masked = MARKDOWN_LINK_PATTERN.sub(_blank, masked)

    found.sort(key=lambda item: item[0])
    return found, masked


def parse_note(path: str, content: str, mtime_ns: int = 0, size: int = 0) -> NoteMetadata:
    """Parse note content into :class:`NoteMetadata`.

    Block spans follow these rules:
    - a list item carrying ``^id`` spans that line;
    - a line holding only ``^id`` right after a blank line refers to the preceding block;
    - otherwise the span runs from the start of the enclosing paragraph to the end of the line.
    """
    frontmatter, body_start = parse_frontmatter(content)

    headings: list[Heading] = []
    links: list[Reference] = []
    embeds: list[Reference] = []
    blocks: dict[str, BlockSpan] = {}
    tags = _frontmatter_tags(frontmatter)

    in_fence = False
    fence_marker = ""
    block_start: int | None = None
    block_end = 0
    last_block: tuple[int, int] | None = None

    offset = body_start
    for line in content[body_start:].splitlines(keepends=True):
        line_start = offset
        offset += len(line)
        text = line.rstrip("\r\n")
        line_end = line_start + len(text)

        fence = FENCE_PATTERN.match(text)
        if in_fence:
            if fence and fence.group(1) == fence_marker:
                in_fence = False
                last_block = (block_start if block_start is not None else line_start, line_end)
                block_start = None
            continue

        if fence:
            if block_start is not None:
                last_block = (block_start, block_end)
            in_fence = True
            fence_marker = fence.group(1)
            block_start = line_start
            continue

        if not text.strip():
            if block_start is not None:
                last_block = (block_start, block_end)
                block_start = None
            continue

        found, masked = _scan_references(INLINE_CODE_PATTERN.sub(_blank, text))
        for _, is_embed, reference in found:
            (embeds if is_embed else links).append(reference)
        tags.extend(TAG_PATTERN.findall(masked))

        heading = HEADING_PATTERN.match(text)
        if heading:
            if block_start is not None:
                last_block = (block_start, block_end)
            headings.append(Heading(
                text=heading.group(2).strip(),
                level=len(heading.group(1)),
                start=line_start,
                end=offset,
            ))
            last_block = (line_start, line_end)
            block_start = None
            continue

        is_list_item = LIST_ITEM_PATTERN.match(text) is not None
        block_id = BLOCK_ID_PATTERN.search(text)

        if block_id and text.strip() == f"^{block_id.group(1)}" and block_start is None:
            if last_block is not None:
                blocks[block_id.group(1).lower()] = BlockSpan(start=last_block[0], end=last_block[1])
            continue

        if is_list_item and block_start is not None:
            last_block = (block_start, block_end)
            block_start = None
        if block_start is None:
            block_start = line_start
        block_end = line_end

        if block_id:
            start = line_start if is_list_item else block_start
            blocks[block_id.group(1).lower()] = BlockSpan(start=start, end=line_end)

    return NoteMetadata(
        path=path,
        mtime_ns=mtime_ns,
        size=size,
        frontmatter=frontmatter,
        links=links,
        embeds=embeds,
        headings=headings,
        blocks=blocks,
        tags=list(dict.fromkeys(tags)),
    )
