"""
Per-source sliding-window rate limiter.

Each source keeps the timestamps of its permitted calls within the trailing
window. A call is admitted while that count is below the source's
requests-per-minute quota. Check-and-record happens under a lock owned by
that source only, so unrelated sources never serialize on each other.
"""
from __future__ import annotations

import logging
import threading
from collections import deque
from typing import Deque, Dict, Mapping, Optional

from ..timeutils import Clock, default_clock

logger = logging.getLogger(__name__)


class _Window:
    __slots__ = ("quota", "calls", "lock")

    def __init__(self, quota: int) -> None:
        self.quota = quota
        self.calls: Deque[float] = deque()
        self.lock = threading.Lock()

    def prune(self, now: float, window_s: float) -> None:
        cutoff = now - window_s
        while self.calls and self.calls[0] <= cutoff:
            self.calls.popleft()


class SlidingWindowRateLimiter:
    """allow(source_id) -> bool, thread-safe per source."""

    def __init__(
        self,
        quotas: Optional[Mapping[str, int]] = None,
        *,
        window_s: float = 60.0,
        clock: Clock = default_clock,
    ) -> None:
        self._window_s = float(window_s)
        self._clock = clock
        self._windows: Dict[str, _Window] = {}
        self._registry_lock = threading.Lock()
        for source_id, quota in (quotas or {}).items():
            self.set_quota(source_id, quota)

    def set_quota(self, source_id: str, requests_per_minute: int) -> None:
        """Explicit reconfiguration; recorded calls are kept."""
        quota = max(0, int(requests_per_minute))
        with self._registry_lock:
            window = self._windows.get(source_id)
            if window is None:
                self._windows[source_id] = _Window(quota)
                return
        with window.lock:
            window.quota = quota

    def _window(self, source_id: str) -> Optional[_Window]:
        with self._registry_lock:
            return self._windows.get(source_id)

    def allow(self, source_id: str) -> bool:
        window = self._window(source_id)
        if window is None:
            logger.warning("Rate limiter has no quota for %s; denying", source_id)
            return False
        with window.lock:
            now = self._clock()
            window.prune(now, self._window_s)
            if len(window.calls) >= window.quota:
                logger.debug("Rate limit reached for %s (%d/%d)", source_id, len(window.calls), window.quota)
                return False
            window.calls.append(now)
            return True

    def remaining(self, source_id: str) -> int:
        window = self._window(source_id)
        if window is None:
            return 0
        with window.lock:
            window.prune(self._clock(), self._window_s)
            return max(0, window.quota - len(window.calls))

    def quota(self, source_id: str) -> int:
        window = self._window(source_id)
        return window.quota if window is not None else 0
