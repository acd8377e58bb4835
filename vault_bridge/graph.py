"""
Content graph expansion for Vault Bridge MCP Server.

Flattens a note together with the notes it embeds (and optionally links)
into a single document using a depth-bounded breadth-first traversal.
"""

import re
from collections import deque

import structlog

from .acl import PathAccessChecker
from .config import EMBED_SEPARATOR, ENTRY_BEGIN, ENTRY_END, MAX_EMBED_DEPTH
from .models import BlockSpan, EmbeddedLinkRef, Heading, Reference
from .store import NoteStore
from .utils import (
    AccessDeniedError,
    InvalidArgumentError,
    is_markdown,
    normalize_heading_key,
    split_subpath,
)

logger = structlog.get_logger(__name__)


def compile_exclude_patterns(patterns: list[str]) -> list[re.Pattern[str]]:
    """Compile exclude regexes, rejecting invalid ones."""
    compiled = []
    for pattern in patterns:
        try:
            compiled.append(re.compile(pattern))
        except re.error as e:
            raise InvalidArgumentError(f"Invalid exclude pattern '{pattern}': {e}") from e
    return compiled


def format_entry(key: str, content: str) -> str:
    return f"{ENTRY_BEGIN.format(key=key)}\n{content}\n{ENTRY_END}"


def extract_subpath(
    content: str, subpath: str, metadata_blocks: dict[str, BlockSpan], headings: list[Heading]
) -> str:
    """Return the trimmed text a subpath points at, or ``""`` if it is unknown.

    ``^id`` selects a block span. Anything else is a heading title, compared
    after normalization; the section runs to the next heading of equal or
    lower level.
    """
    if subpath.startswith("^"):
        span = metadata_blocks.get(subpath[1:].lower())
        if span is None:
            return ""
        return content[span.start:span.end].strip()

    # Heading chains (``H1#H2``) address the last heading.
    key = normalize_heading_key(subpath.split("#")[-1])
    if not key:
        return ""

    for index, heading in enumerate(headings):
        if normalize_heading_key(heading.text) != key:
            continue
        section_end = len(content)
        for subsequent in headings[index + 1:]:
            if subsequent.level <= heading.level:
                section_end = subsequent.start
                break
        return content[heading.end:section_end].strip()

    return ""


class ContentGraphExpander:
    """Builds the ``read_note_with_embeds`` document for a note.

    Discovery and assembly are separate phases: the traversal fills a
    visited map keyed by resolved path, then each distinct target is read
    and emitted once. A target referenced both in full and by subpath is
    emitted in full.
    """

    def __init__(self, store: NoteStore, checker: PathAccessChecker, max_depth: int = MAX_EMBED_DEPTH):
        self.store = store
        self.checker = checker
        self.max_depth = max_depth

    async def expand(self, path: str, include_links: bool = False, exclude_patterns: list[str] | None = None) -> str:
        """Return the note content followed by its embedded/linked content.

        ``path`` must be normalized and already cleared for reading.
        """
        excludes = compile_exclude_patterns(exclude_patterns or [])
        source_content = await self.store.read(path)

        visited = await self.collect(path, include_links, excludes)
        entries = await self.assemble(path, visited)

        logger.debug(
            "embeds_expanded",
            path=path,
            visited=len(visited),
            entries=len(entries),
            include_links=include_links,
        )
        if not entries:
            return source_content
        return source_content + EMBED_SEPARATOR + "\n\n".join(entries)

    async def _references(self, path: str, include_links: bool, excludes: list[re.Pattern[str]]) -> list[Reference]:
        references = list(await self.store.get_embeds(path))
        if include_links:
            references.extend(await self.store.get_links(path))
        return [
            reference for reference in references
            if not any(pattern.search(reference.formatted()) for pattern in excludes)
        ]

    async def collect(
        self,
        path: str,
        include_links: bool = False,
        excludes: list[re.Pattern[str]] | None = None,
    ) -> dict[str, EmbeddedLinkRef]:
        """Breadth-first discovery of everything reachable within ``max_depth`` hops.

        Keys are resolved paths, or the raw link text for references that did
        not resolve or were denied by the ACL (those carry ``file=None``).
        """
        seed = EmbeddedLinkRef(file=path, has_full_reference=True, depth=0)
        visited: dict[str, EmbeddedLinkRef] = {path: seed}
        queue: deque[EmbeddedLinkRef] = deque([seed])

        while queue:
            entry = queue.popleft()
            if entry.file is None or entry.depth >= self.max_depth:
                continue

            for reference in await self._references(entry.file, include_links, excludes or []):
                known = visited.get(reference.link)
                if known is not None and known.file is None:
                    continue

                target_part, subpath = split_subpath(reference.link)
                resolved = await self.store.resolve_link(target_part, entry.file)
                if resolved is None:
                    visited.setdefault(reference.link, EmbeddedLinkRef(file=None, depth=entry.depth + 1))
                    continue

                try:
                    self.checker.check_read(resolved)
                except AccessDeniedError:
                    visited.setdefault(reference.link, EmbeddedLinkRef(file=None, depth=entry.depth + 1))
                    continue

                target = visited.get(resolved)
                if target is None:
                    target = EmbeddedLinkRef(file=resolved, depth=entry.depth + 1)
                    visited[resolved] = target
                    queue.append(target)

                if subpath:
                    target.add_subpath(subpath)
                else:
                    target.has_full_reference = True

        return visited

    async def assemble(self, source_path: str, visited: dict[str, EmbeddedLinkRef]) -> list[str]:
        """Format visited entries, skipping the source, unresolved and non-markdown targets."""
        visited.pop(source_path, None)

        entries: list[str] = []
        for entry in visited.values():
            if entry.file is None or not is_markdown(entry.file):
                continue

            content = await self.store.read(entry.file)
            if entry.has_full_reference:
                entries.append(format_entry(entry.file, content))
                continue

            headings = await self.store.get_headings(entry.file)
            blocks = {}
            for subpath in entry.subpaths:
                if subpath.startswith("^"):
                    span = await self.store.get_block_span(entry.file, subpath[1:])
                    if span is not None:
                        blocks[subpath[1:].lower()] = span
            for subpath in entry.subpaths:
                excerpt = extract_subpath(content, subpath, blocks, headings)
                if excerpt:
                    entries.append(format_entry(f"{entry.file}#{subpath}", excerpt))

        return entries
