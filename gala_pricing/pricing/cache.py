"""
Short-TTL memoization with creation-order eviction.

Entries expire lazily: a read at or past ``expires_at`` is a miss and drops
the entry. When the cache is full the oldest-created entry is evicted
(insertion-ordered dict, O(1)), regardless of how recently it was read.
"""
from __future__ import annotations

import logging
import threading
from collections import OrderedDict
from dataclasses import dataclass
from typing import Any, Dict, Generic, Hashable, Optional, TypeVar

from ..timeutils import Clock, default_clock

logger = logging.getLogger(__name__)

V = TypeVar("V")


@dataclass(frozen=True)
class CacheEntry(Generic[V]):
    key: Hashable
    value: V
    created_at: float
    expires_at: float


class TTLCache(Generic[V]):
    """Thread-safe TTL cache: get / set / invalidate / flush_all."""

    def __init__(
        self,
        name: str,
        default_ttl_s: float,
        *,
        max_entries: int = 100,
        clock: Clock = default_clock,
    ) -> None:
        if max_entries < 1:
            raise ValueError("max_entries must be >= 1")
        self.name = name
        self.default_ttl_s = float(default_ttl_s)
        self.max_entries = int(max_entries)
        self._clock = clock
        self._entries: "OrderedDict[Hashable, CacheEntry[V]]" = OrderedDict()
        self._lock = threading.Lock()
        self._hits = 0
        self._misses = 0
        self._sets = 0
        self._evictions = 0

    def get(self, key: Hashable) -> Optional[V]:
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                self._misses += 1
                return None
            if self._clock() >= entry.expires_at:
                del self._entries[key]
                self._misses += 1
                logger.debug("Cache %s expired: %s", self.name, key)
                return None
            self._hits += 1
            return entry.value

    def set(self, key: Hashable, value: V, ttl_s: Optional[float] = None) -> None:
        ttl = self.default_ttl_s if ttl_s is None else float(ttl_s)
        now = self._clock()
        with self._lock:
            # A re-set is a new creation: move it to the young end.
            self._entries.pop(key, None)
            while len(self._entries) >= self.max_entries:
                old_key, _ = self._entries.popitem(last=False)
                self._evictions += 1
                logger.debug("Cache %s evicted oldest: %s", self.name, old_key)
            self._entries[key] = CacheEntry(key=key, value=value, created_at=now, expires_at=now + ttl)
            self._sets += 1

    def invalidate(self, key: Hashable) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def flush_all(self) -> int:
        with self._lock:
            n = len(self._entries)
            self._entries.clear()
        if n:
            logger.info("Cache %s flushed: %d entries removed", self.name, n)
        return n

    def cleanup(self) -> int:
        """Drop every expired entry. Optional; reads already expire lazily."""
        now = self._clock()
        with self._lock:
            expired = [k for k, e in self._entries.items() if now >= e.expires_at]
            for k in expired:
                del self._entries[k]
        return len(expired)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def stats(self) -> Dict[str, Any]:
        with self._lock:
            lookups = self._hits + self._misses
            return {
                "name": self.name,
                "ttl_s": self.default_ttl_s,
                "size": len(self._entries),
                "max_entries": self.max_entries,
                "hits": self._hits,
                "misses": self._misses,
                "sets": self._sets,
                "evictions": self._evictions,
                "hit_rate": round(self._hits / lookups * 100, 2) if lookups else 0.0,
            }


class PricingCaches:
    """Three independent namespaces, each with its own TTL."""

    def __init__(
        self,
        *,
        price_ttl_s: float = 30.0,
        quote_ttl_s: float = 10.0,
        balance_ttl_s: float = 15.0,
        max_entries: int = 100,
        clock: Clock = default_clock,
    ) -> None:
        self.prices: TTLCache[Any] = TTLCache("prices", price_ttl_s, max_entries=max_entries, clock=clock)
        self.quotes: TTLCache[Any] = TTLCache("quotes", quote_ttl_s, max_entries=max_entries, clock=clock)
        self.balances: TTLCache[Any] = TTLCache("balances", balance_ttl_s, max_entries=max_entries, clock=clock)

    def flush_all(self) -> Dict[str, int]:
        return {c.name: c.flush_all() for c in (self.prices, self.quotes, self.balances)}

    def stats(self) -> Dict[str, Dict[str, Any]]:
        return {c.name: c.stats() for c in (self.prices, self.quotes, self.balances)}

    def ttls(self) -> Dict[str, float]:
        return {c.name: c.default_ttl_s for c in (self.prices, self.quotes, self.balances)}
