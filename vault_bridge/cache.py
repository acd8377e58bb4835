"""
In-memory metadata cache module for Vault Bridge MCP Server.

Contains the MetadataCache class for caching parsed note metadata.
"""

from collections import OrderedDict

import structlog

from .models import NoteMetadata

logger = structlog.get_logger(__name__)


class MetadataCache:
    """In-memory cache of parsed note metadata. Avoids re-parsing unchanged notes.

    Entries are keyed by vault path and validated against the file's mtime and
    size, so a modified note is re-parsed on next access. Note bodies are never
    stored. The least recently used entry is evicted once ``max_entries`` is
    exceeded.
    """

    def __init__(self, max_entries: int = 2048):
        self.max_entries = max_entries
        self._entries: OrderedDict[str, NoteMetadata] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, path: str, mtime_ns: int, size: int) -> NoteMetadata | None:
        """Return cached metadata if it matches the current file stat."""
        entry = self._entries.get(path)
        if entry is None or entry.mtime_ns != mtime_ns or entry.size != size:
            self.misses += 1
            return None

        self._entries.move_to_end(path)
        self.hits += 1
        return entry

    def put(self, metadata: NoteMetadata) -> None:
        """Store metadata, evicting the oldest entries over capacity."""
        self._entries[metadata.path] = metadata
        self._entries.move_to_end(metadata.path)

        evicted = 0
        while len(self._entries) > self.max_entries:
            self._entries.popitem(last=False)
            evicted += 1
        if evicted:
            logger.debug("metadata_cache_evicted", evicted=evicted, size=len(self._entries))

    def invalidate(self, path: str) -> None:
        """Drop the entry for ``path`` if present."""
        self._entries.pop(path, None)

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, path: str) -> bool:
        return path in self._entries
