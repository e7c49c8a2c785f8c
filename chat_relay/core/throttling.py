"""
In-memory throttling primitives used by the notification namespace:
a TTL/LRU deduplication cache and a per-address connection rate limiter.
"""
import logging
import time
from collections import OrderedDict
from typing import Callable, Dict, Hashable

logger = logging.getLogger(__name__)

Clock = Callable[[], float]


class DedupCache:
    """
    Bounded, time-expiring set of fingerprints.

    Entries expire ``ttl`` seconds after insertion. When ``max_size`` is
    reached the least recently used entry is evicted.
    """

    def __init__(self, ttl: float, max_size: int, clock: Clock = time.monotonic):
        if max_size < 1:
            raise ValueError("max_size must be at least 1")
        self.ttl = ttl
        self.max_size = max_size
        self._clock = clock
        self._entries: "OrderedDict[Hashable, float]" = OrderedDict()

    def seen(self, key: Hashable) -> bool:
        """True if ``key`` was added and has not expired. Refreshes recency."""
        expires_at = self._entries.get(key)
        if expires_at is None:
            return False
        if expires_at <= self._clock():
            del self._entries[key]
            return False
        self._entries.move_to_end(key)
        return True

    def add(self, key: Hashable) -> None:
        """Record ``key`` for the next ``ttl`` seconds."""
        self._entries[key] = self._clock() + self.ttl
        self._entries.move_to_end(key)
        while len(self._entries) > self.max_size:
            self._entries.popitem(last=False)

    def purge_expired(self) -> int:
        """Drop expired entries; returns how many were removed."""
        now = self._clock()
        expired = [key for key, expires_at in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def __len__(self) -> int:
        return len(self._entries)


class ConnectionRateLimiter:
    """
    Minimum interval between connections from the same address.

    Bookkeeping older than ``prune_after`` seconds is dropped lazily,
    at most once per ``prune_after`` period.
    """

    def __init__(self, min_interval: float, prune_after: float = 300.0, clock: Clock = time.monotonic):
        self.min_interval = min_interval
        self.prune_after = prune_after
        self._clock = clock
        self._last_seen: Dict[str, float] = {}
        self._last_prune = clock()

    def allow(self, address: str) -> bool:
        """
        Record a connection attempt from ``address``.

        Returns:
            False if the previous attempt was less than ``min_interval`` ago
        """
        now = self._clock()
        self._maybe_prune(now)

        last = self._last_seen.get(address)
        self._last_seen[address] = now
        if last is not None and now - last < self.min_interval:
            return False
        return True

    def _maybe_prune(self, now: float) -> None:
        if now - self._last_prune < self.prune_after:
            return
        self._last_prune = now
        stale = [addr for addr, ts in self._last_seen.items() if now - ts > self.prune_after]
        for addr in stale:
            del self._last_seen[addr]
        if stale:
            logger.debug(f"[rate-limit] Pruned {len(stale)} stale address entries")

    def __len__(self) -> int:
        return len(self._last_seen)
