"""
Response cache for listsync.

Caches lookup responses (e.g. MAL id -> AniList id) with max-age expiry.
Shared by worker threads; written to a JSON file only when changed.
"""

import json
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Optional, Tuple

from listsync.utils.logging import get_logger

logger = get_logger(__name__)


@dataclass
class CacheEntry:
    """Cached payload with its creation time."""
    data: Any
    timestamp: float

    def age_seconds(self, now: float) -> float:
        return now - self.timestamp


class ResponseCache:
    """
    Thread-safe key/value cache with a JSON file behind it.

    Entries older than max_age_seconds are treated as missing. save() writes
    only when something changed since the last load or save.
    """

    def __init__(
        self,
        path: Optional[str] = None,
        max_age_seconds: float = 7 * 24 * 3600,
        clock: Callable[[], float] = time.time,
    ):
        """
        Args:
            path: JSON file to persist to; None keeps the cache in memory
            max_age_seconds: Entries older than this are ignored
            clock: Time source, seconds since the epoch
        """
        self.path = path
        self.max_age_seconds = max_age_seconds
        self._clock = clock
        self._lock = threading.RLock()
        self._entries: Dict[str, CacheEntry] = {}
        self._dirty = False

        if path and os.path.exists(path):
            self.load()

    @property
    def dirty(self) -> bool:
        with self._lock:
            return self._dirty

    def get(self, key: str) -> Tuple[Any, bool]:
        """
        Look up a key.

        Returns:
            (payload, True) on a fresh hit, (None, False) otherwise
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None, False

            if entry.age_seconds(self._clock()) > self.max_age_seconds:
                logger.debug("Cache entry expired", key=key)
                del self._entries[key]
                self._dirty = True
                return None, False

            return entry.data, True

    def set(self, key: str, data: Any) -> None:
        with self._lock:
            self._entries[key] = CacheEntry(data=data, timestamp=self._clock())
            self._dirty = True

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def load(self) -> None:
        """Replace the in-memory entries with the file's contents."""
        with self._lock:
            with open(self.path, "r", encoding="utf-8") as f:
                raw = json.load(f)

            self._entries = {
                key: CacheEntry(data=value.get("data"), timestamp=float(value.get("timestamp", 0)))
                for key, value in raw.items()
                if isinstance(value, dict)
            }
            self._dirty = False
            logger.debug("Loaded response cache", path=self.path, entries=len(self._entries))

    def save(self) -> bool:
        """
        Write the cache to its file if it changed.

        Returns:
            True if the file was written
        """
        with self._lock:
            if not self._dirty or not self.path:
                return False

            directory = os.path.dirname(self.path)
            if directory:
                os.makedirs(directory, exist_ok=True)

            payload = {
                key: {"data": entry.data, "timestamp": entry.timestamp}
                for key, entry in self._entries.items()
            }
            tmp_path = f"{self.path}.tmp"
            with open(tmp_path, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, sort_keys=True)
            os.replace(tmp_path, self.path)

            self._dirty = False
            logger.debug("Saved response cache", path=self.path, entries=len(payload))
            return True
