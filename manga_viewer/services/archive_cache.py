# FILE: manga_viewer/services/archive_cache.py
"""
Short-lived archive cache keyed by collection id

Holds already-fetched archive bytes so sequential page reads of one
collection do not re-download the archive. Bounded by entry count and total
bytes; entries expire after ttl_seconds (matched to the signed URL window).
"""
import logging
import threading
import time
from collections import OrderedDict
from typing import Any, Dict, Optional, Tuple

logger = logging.getLogger(__name__)


class ArchiveCache:
    """LRU + TTL cache of archive bytes"""

    def __init__(self, ttl_seconds: int = 300, max_entries: int = 8, max_bytes: int = 512 * 1024 * 1024):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.max_bytes = max_bytes
        self._lock = threading.Lock()
        self._entries: "OrderedDict[str, Tuple[float, bytes]]" = OrderedDict()
        self._total_bytes = 0
        self.hits = 0
        self.misses = 0

    def get(self, collection_id: str, now: Optional[float] = None) -> Optional[bytes]:
        now = time.monotonic() if now is None else now
        with self._lock:
            entry = self._entries.get(collection_id)
            if entry is None:
                self.misses += 1
                return None

            stored_at, data = entry
            if now - stored_at > self.ttl_seconds:
                logger.debug(f"Archive cache expired: {collection_id}")
                self._remove(collection_id)
                self.misses += 1
                return None

            self._entries.move_to_end(collection_id)
            self.hits += 1
            return data

    def put(self, collection_id: str, data: bytes, now: Optional[float] = None) -> None:
        if len(data) > self.max_bytes:
            logger.debug(f"Archive too large to cache: {collection_id} ({len(data)} bytes)")
            return

        now = time.monotonic() if now is None else now
        with self._lock:
            self._remove(collection_id)
            self._entries[collection_id] = (now, data)
            self._total_bytes += len(data)

            while len(self._entries) > self.max_entries or self._total_bytes > self.max_bytes:
                oldest = next(iter(self._entries))
                self._remove(oldest)

    def invalidate(self, collection_id: str) -> None:
        with self._lock:
            self._remove(collection_id)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()
            self._total_bytes = 0
        logger.info("Cleared archive cache")

    def _remove(self, collection_id: str) -> None:
        entry = self._entries.pop(collection_id, None)
        if entry is not None:
            self._total_bytes -= len(entry[1])

    def get_stats(self) -> Dict[str, Any]:
        with self._lock:
            return {
                "entries": len(self._entries),
                "total_bytes": self._total_bytes,
                "max_entries": self.max_entries,
                "max_bytes": self.max_bytes,
                "ttl_seconds": self.ttl_seconds,
                "hits": self.hits,
                "misses": self.misses,
            }
