"""
Freshness gate: refuses value-moving actions on prices older than a threshold.

Independent of cache TTL. An asset is fresh only while
``now - last successful reconciliation < threshold_s``; the boundary itself
is stale.
"""
from __future__ import annotations

import logging
import threading
from typing import Dict, Iterable, List, Optional

from ..core.errors import StalePriceError
from ..providers.base import AssetId
from ..timeutils import Clock, default_clock

logger = logging.getLogger(__name__)


class FreshnessGate:
    def __init__(self, threshold_s: float = 30.0, *, clock: Clock = default_clock) -> None:
        self.threshold_s = float(threshold_s)
        self._clock = clock
        self._updated_at: Dict[AssetId, float] = {}
        self._lock = threading.Lock()

    def mark_updated(self, asset_id: AssetId, computed_at: float) -> None:
        with self._lock:
            prev = self._updated_at.get(asset_id)
            if prev is None or computed_at > prev:
                self._updated_at[asset_id] = computed_at

    def last_updated(self, asset_id: AssetId) -> Optional[float]:
        with self._lock:
            return self._updated_at.get(asset_id)

    def time_since_last_update(self, asset_id: AssetId) -> Optional[float]:
        """Seconds since the last successful update, or None if never updated."""
        ts = self.last_updated(asset_id)
        if ts is None:
            return None
        return max(0.0, self._clock() - ts)

    def is_fresh(self, asset_id: AssetId) -> bool:
        age = self.time_since_last_update(asset_id)
        return age is not None and age < self.threshold_s

    def stale_assets(self, asset_ids: Iterable[AssetId]) -> List[AssetId]:
        return [a for a in dict.fromkeys(asset_ids) if not self.is_fresh(a)]

    def require_fresh(self, asset_ids: Iterable[AssetId]) -> None:
        stale = self.stale_assets(asset_ids)
        if stale:
            logger.warning("Trade refused, stale price for %s (threshold %.0fs)", ", ".join(stale), self.threshold_s)
            raise StalePriceError(stale)
