from __future__ import annotations

import logging

from bucketlens.preview.types import CacheEntry, CacheKey

logger = logging.getLogger(__name__)


class PreviewCache:
    """Session-lifetime store of built previews.

    Append-only: an entry is never replaced once stored. Building the same key
    twice yields the same value, so a racing duplicate write is simply dropped.
    Entries are never evicted.
    """

    def __init__(self) -> None:
        self._entries: dict[CacheKey, CacheEntry] = {}

    def get(self, key: CacheKey) -> CacheEntry | None:
        return self._entries.get(key)

    def put(self, key: CacheKey, entry: CacheEntry) -> CacheEntry:
        """Store ``entry`` unless ``key`` is already present; return the stored entry."""
        existing = self._entries.setdefault(key, entry)
        if existing is entry:
            logger.debug("preview cached", extra={"container": key.container, "object_key": key.key})
        return existing

    def __contains__(self, key: object) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries.clear()
