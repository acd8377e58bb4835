"""
Note store module for Vault Bridge MCP Server.

Defines the NoteStore interface consumed by the tools and a filesystem
implementation backed by aiofiles.
"""

import base64
import binascii
import posixpath
import time
from pathlib import Path
from typing import Protocol

import aiofiles
import aiofiles.os
import anyio.to_thread
import structlog

from .cache import MetadataCache
from .models import BlockSpan, FolderListing, Heading, NoteMetadata, Reference
from .parser import parse_note
from .utils import (
    AlreadyExistsError,
    InvalidArgumentError,
    NotFoundError,
    is_hidden,
    is_markdown,
    normalize_path,
    split_subpath,
)

logger = structlog.get_logger(__name__)


class NoteStore(Protocol):
    """Operations the tools need from the vault. Paths are normalized vault paths."""

    async def exists(self, path: str) -> bool: ...

    async def read(self, path: str) -> str: ...

    async def read_bytes(self, path: str) -> bytes: ...

    async def create(self, path: str, content: str, binary: bool = False) -> str: ...

    async def append(self, path: str, content: str, heading: str | None = None, separator: str = "\n") -> str: ...

    async def update(self, path: str, content: str) -> str: ...

    async def delete(self, path: str) -> str: ...

    async def list_folder(self, path: str) -> FolderListing: ...

    async def search(self, tag: str | None = None, folder: str | None = None, text: str | None = None) -> list[str]: ...

    async def get_links(self, path: str) -> list[Reference]: ...

    async def get_embeds(self, path: str) -> list[Reference]: ...

    async def get_headings(self, path: str) -> list[Heading]: ...

    async def get_tags(self, path: str) -> list[str]: ...

    async def get_block_span(self, path: str, block_id: str) -> BlockSpan | None: ...

    async def resolve_link(self, link: str, from_path: str) -> str | None: ...


def _section_insert_offset(content: str, headings: list[Heading], heading: str) -> int:
    """Offset at the end of ``heading``'s section, before trailing whitespace.

    The section runs from after the heading line to the next heading of equal
    or lower level, or end of file.
    """
    for index, info in enumerate(headings):
        if info.text != heading:
            continue

        section_end = len(content)
        for subsequent in headings[index + 1:]:
            if subsequent.level <= info.level:
                section_end = subsequent.start
                break

        section = content[info.end:section_end].rstrip()
        if section:
            return info.end + len(section)
        return info.start + len(content[info.start:info.end].rstrip("\r\n"))

    raise NotFoundError(f"Heading not found: {heading}")


class FileIndex:
    """Snapshot of the visible vault files with a case-insensitive lookup."""

    def __init__(self, paths: list[str]):
        self.paths = paths
        self.path_set = set(paths)
        self.by_lower: dict[str, str] = {}
        for file_path in paths:
            self.by_lower.setdefault(file_path.lower(), file_path)


class FileNoteStore:
    """NoteStore over a directory on disk.

    Deleted notes are moved into ``trash_folder`` inside the vault. Hidden
    entries (any path segment starting with a dot) are skipped by listing,
    search and link resolution.
    """

    def __init__(
        self,
        vault_path: Path,
        trash_folder: str = ".trash",
        cache_size: int = 2048,
        index_ttl: float = 5.0,
    ):
        self.vault_path = vault_path
        self.vault_root = vault_path.resolve()
        self.trash_folder = normalize_path(trash_folder)
        self.metadata_cache = MetadataCache(cache_size)
        self.index_ttl = index_ttl
        self._files: FileIndex | None = None
        self._indexed_at = 0.0

    # ============== Path helpers ==============

    def _abs(self, path: str) -> Path:
        """Resolve a vault path, refusing anything that escapes the vault."""
        full_path = (self.vault_root / path).resolve()
        try:
            full_path.relative_to(self.vault_root)
        except ValueError:
            raise InvalidArgumentError(f"Path escapes vault directory: {path}")
        return full_path

    def _require_file(self, path: str) -> Path:
        target = self._abs(path)
        if not target.is_file():
            raise NotFoundError(f"Note not found: {path}")
        return target

    @property
    def index_is_stale(self) -> bool:
        return self._files is None or (time.time() - self._indexed_at) >= self.index_ttl

    def invalidate_index(self) -> None:
        """Force the next lookup to rescan the vault."""
        self._files = None

    def _scan(self) -> FileIndex:
        files: list[str] = []
        for file_path in self.vault_root.rglob("*"):
            rel_path = file_path.relative_to(self.vault_root).as_posix()
            if is_hidden(rel_path) or not file_path.is_file():
                continue
            files.append(rel_path)
        return FileIndex(sorted(files))

    async def _index(self) -> FileIndex:
        """Visible vault files, rescanned off the event loop once the TTL expires."""
        if self.index_is_stale:
            start_time = time.time()
            self._files = await anyio.to_thread.run_sync(self._scan)
            self._indexed_at = time.time()
            logger.debug(
                "file_index_refreshed",
                files=len(self._files.paths),
                duration_ms=round((self._indexed_at - start_time) * 1000, 2),
            )
        return self._files

    async def _all_files(self) -> list[str]:
        """All visible files in the vault as sorted vault paths."""
        return (await self._index()).paths

    async def _read_text(self, target: Path) -> str:
        async with aiofiles.open(target, mode="r", encoding="utf-8", newline="") as f:
            return await f.read()

    async def _write_text(self, target: Path, content: str) -> None:
        async with aiofiles.open(target, mode="w", encoding="utf-8", newline="") as f:
            await f.write(content)

    # ============== Content operations ==============

    async def exists(self, path: str) -> bool:
        return self._abs(path).is_file()

    async def read(self, path: str) -> str:
        return await self._read_text(self._require_file(path))

    async def read_bytes(self, path: str) -> bytes:
        async with aiofiles.open(self._require_file(path), mode="rb") as f:
            return await f.read()

    async def create(self, path: str, content: str, binary: bool = False) -> str:
        """Create a new file, making parent folders as needed.

        Binary content is supplied base64-encoded.

        Raises:
            AlreadyExistsError: If something already exists at ``path``.
            InvalidArgumentError: If binary content is not valid base64.
        """
        target = self._abs(path)
        if target.exists():
            raise AlreadyExistsError(f"File already exists: {path}")

        await aiofiles.os.makedirs(target.parent, exist_ok=True)

        if binary:
            try:
                data = base64.b64decode(content, validate=True)
            except (binascii.Error, ValueError) as e:
                raise InvalidArgumentError(f"Invalid base64 content: {e}") from e
            async with aiofiles.open(target, mode="wb") as f:
                await f.write(data)
        else:
            await self._write_text(target, content)

        self.invalidate_index()
        logger.info("note_created", path=path, binary=binary)
        return path

    async def append(self, path: str, content: str, heading: str | None = None, separator: str = "\n") -> str:
        """Append ``content`` at end of file, or at the end of ``heading``'s section."""
        target = self._require_file(path)
        existing = await self._read_text(target)

        if heading:
            metadata = parse_note(path, existing)
            offset = _section_insert_offset(existing, metadata.headings, heading)
            updated = f"{existing[:offset]}{separator}{content}{existing[offset:]}"
        else:
            updated = f"{existing}{separator}{content}"

        await self._write_text(target, updated)
        self.metadata_cache.invalidate(path)
        logger.info("note_appended", path=path, heading=heading)
        return path

    async def update(self, path: str, content: str) -> str:
        target = self._require_file(path)
        await self._write_text(target, content)
        self.metadata_cache.invalidate(path)
        logger.info("note_updated", path=path)
        return path

    async def delete(self, path: str) -> str:
        """Move a note into the vault trash folder so it can be recovered."""
        target = self._require_file(path)

        original = self._abs(f"{self.trash_folder}/{path}")
        trash_path = original
        counter = 1
        # rename() replaces an existing file, so never target one
        while trash_path.exists():
            trash_path = original.with_name(f"{original.stem}-{counter}{original.suffix}")
            counter += 1

        await aiofiles.os.makedirs(trash_path.parent, exist_ok=True)
        await aiofiles.os.rename(target, trash_path)
        self.metadata_cache.invalidate(path)
        self.invalidate_index()
        logger.info("note_trashed", path=path, trash=trash_path.relative_to(self.vault_root).as_posix())
        return path

    # ============== Enumeration ==============

    async def list_folder(self, path: str) -> FolderListing:
        """Immediate children of a folder. ``""`` is the vault root."""
        folder = self._abs(path) if path else self.vault_root
        if not folder.is_dir():
            raise NotFoundError(f"Folder not found: {path}")

        notes: list[str] = []
        folders: list[str] = []
        for child in sorted(folder.iterdir()):
            if child.name.startswith("."):
                continue
            rel_path = child.relative_to(self.vault_root).as_posix()
            if child.is_dir():
                folders.append(rel_path)
            else:
                notes.append(rel_path)

        return FolderListing(notes=notes, folders=folders)

    async def search(self, tag: str | None = None, folder: str | None = None, text: str | None = None) -> list[str]:
        """Markdown notes matching every given filter.

        - folder: path prefix of the note
        - tag: exact, case-sensitive member of the note's tags (leading ``#`` ignored)
        - text: case-insensitive substring of the full content
        """
        paths = [p for p in await self._all_files() if is_markdown(p)]

        if folder:
            prefix = normalize_path(folder)
            paths = [p for p in paths if p.startswith(prefix)]

        if tag:
            wanted = tag[1:] if tag.startswith("#") else tag
            paths = [p for p in paths if wanted in await self.get_tags(p)]

        if text:
            needle = text.lower()
            matching = []
            for note_path in paths:
                content = await self._read_text(self._abs(note_path))
                if needle in content.lower():
                    matching.append(note_path)
            paths = matching

        return sorted(paths)

    # ============== Metadata ==============

    async def get_metadata(self, path: str) -> NoteMetadata:
        """Parsed metadata for ``path``, served from the cache when unchanged."""
        target = self._require_file(path)
        stat = target.stat()

        cached = self.metadata_cache.get(path, stat.st_mtime_ns, stat.st_size)
        if cached is not None:
            return cached

        if is_markdown(path):
            try:
                content = await self._read_text(target)
            except UnicodeDecodeError as e:
                logger.warning("note_read_failed", path=path, error=str(e))
                content = ""
            metadata = parse_note(path, content, stat.st_mtime_ns, stat.st_size)
        else:
            metadata = NoteMetadata(path=path, mtime_ns=stat.st_mtime_ns, size=stat.st_size)

        self.metadata_cache.put(metadata)
        return metadata

    async def get_links(self, path: str) -> list[Reference]:
        return (await self.get_metadata(path)).links

    async def get_embeds(self, path: str) -> list[Reference]:
        return (await self.get_metadata(path)).embeds

    async def get_headings(self, path: str) -> list[Heading]:
        return (await self.get_metadata(path)).headings

    async def get_tags(self, path: str) -> list[str]:
        return (await self.get_metadata(path)).tags

    async def get_block_span(self, path: str, block_id: str) -> BlockSpan | None:
        return (await self.get_metadata(path)).blocks.get(block_id.lower())

    async def resolve_link(self, link: str, from_path: str) -> str | None:
        """Resolve a link target to a vault path.

        Resolution order:
        1. Empty target (``#heading`` links): the source note itself
        2. Exact vault path, then path relative to the source folder,
           each tried as written and with ``.md`` appended
        3. Case-insensitive match of the same candidates
        4. Suffix match on basename or partial path, preferring the source
           folder, then the shallowest path
        """
        target, _ = split_subpath(link)
        target = target.strip().replace("\\", "/")
        if not target:
            return from_path if await self.exists(from_path) else None

        index = await self._index()

        source_folder = posixpath.dirname(from_path)
        bases = [target.lstrip("/")]
        if source_folder and not target.startswith("/"):
            bases.append(posixpath.join(source_folder, target))

        candidates: list[str] = []
        for base in bases:
            joined = posixpath.normpath(base)
            if joined == "." or joined.startswith(".."):
                continue
            candidates.extend([joined, f"{joined}.md"])

        for candidate in candidates:
            if candidate in index.path_set:
                return candidate
        for candidate in candidates:
            match = index.by_lower.get(candidate.lower())
            if match:
                return match

        suffix = posixpath.normpath(target.lstrip("/")).lower()
        if suffix == "." or suffix.startswith(".."):
            return None
        names = {suffix, f"{suffix}.md"}
        matches = [
            p for p in index.paths
            if p.lower() in names or any(p.lower().endswith(f"/{name}") for name in names)
        ]
        if not matches:
            return None

        same_folder = [p for p in matches if posixpath.dirname(p) == source_folder]
        if same_folder:
            return same_folder[0]
        return min(matches, key=lambda p: (p.count("/"), p))
