import logging
import threading
import time
from typing import Callable, Dict

from jamcraft.domain.entities import DedupEntry


logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 3600
SWEEP_INTERVAL_SECONDS = 300


class DedupCache:
    """Thread-safe record of recently processed keys.

    Entries older than the TTL count as absent and are evicted lazily. Nothing is
    persisted: a fresh process starts empty, and the playlist membership check
    stays the authoritative duplicate guard.
    """

    def __init__(self,
                 ttl_seconds: float = DEFAULT_TTL_SECONDS,
                 clock: Callable[[], float] = time.monotonic,
                 sweep_interval_seconds: float = SWEEP_INTERVAL_SECONDS):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._sweep_interval = sweep_interval_seconds
        self._entries: Dict[str, DedupEntry] = {}
        self._lock = threading.Lock()
        self._last_sweep = clock()

    def _expired(self, entry: DedupEntry, now: float) -> bool:
        return now - entry.inserted_at > self.ttl_seconds

    def check_and_mark(self, key: str) -> bool:
        """Mark key as seen. True if it was not seen within the TTL (caller proceeds)."""
        with self._lock:
            now = self._clock()
            if now - self._last_sweep >= self._sweep_interval:
                self._sweep_locked(now)
            entry = self._entries.get(key)
            if entry is not None and not self._expired(entry, now):
                return False
            self._entries[key] = DedupEntry(key=key, inserted_at=now)
            return True

    def forget(self, key: str) -> None:
        """Drop a mark so the key can be processed again."""
        with self._lock:
            self._entries.pop(key, None)

    def sweep(self) -> int:
        """Evict expired entries now. Returns how many were removed."""
        with self._lock:
            return self._sweep_locked(self._clock())

    def _sweep_locked(self, now: float) -> int:
        expired = [key for key, entry in self._entries.items() if self._expired(entry, now)]
        for key in expired:
            del self._entries[key]
        self._last_sweep = now
        if expired:
            logger.debug(f"Evicted {len(expired)} expired dedup entries")
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
