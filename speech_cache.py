"""Bounded, age-limited store of synthesized audio."""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Optional

from models import CacheEntry

logger = logging.getLogger(__name__)

DEFAULT_CAPACITY = 100
DEFAULT_TTL_S = 3600.0


class SpeechCache:
    def __init__(
        self,
        capacity: int = DEFAULT_CAPACITY,
        ttl_s: float = DEFAULT_TTL_S,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        if capacity < 1:
            raise ValueError("capacity must be >= 1")
        self.capacity = capacity
        self.ttl_s = ttl_s
        self._clock = clock
        self._entries: dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        return len(self._entries)

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def get(self, key: str) -> Optional[bytes]:
        """Return cached audio, or ``None`` when absent or expired.

        Expired entries are left in place; the next ``put`` evicts them.
        """
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            if self._clock() - entry.created_at > self.ttl_s:
                return None
            return entry.audio

    def put(self, key: str, audio: bytes) -> None:
        with self._lock:
            self._entries.pop(key, None)
            self._entries[key] = CacheEntry(key=key, audio=audio, created_at=self._clock())
            self._evict_locked()

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def _evict_locked(self) -> None:
        now = self._clock()
        expired = [k for k, e in self._entries.items() if now - e.created_at > self.ttl_s]
        for key in expired:
            del self._entries[key]
        overflow = len(self._entries) - self.capacity
        if overflow > 0:
            oldest = sorted(self._entries.values(), key=lambda e: e.created_at)[:overflow]
            for entry in oldest:
                del self._entries[entry.key]
        if expired or overflow > 0:
            logger.debug(
                "cache evicted",
                extra={"expired": len(expired), "overflow": max(0, overflow)},
            )
