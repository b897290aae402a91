"""Bounded in-memory price trail per asset. Display and analysis only."""
from __future__ import annotations

import threading
from collections import deque
from dataclasses import dataclass
from typing import Deque, Dict, List

from ..providers.base import AssetId, ReconciledPrice


@dataclass(frozen=True)
class HistoryPoint:
    computed_at: float
    price_usd: float
    source_id: str
    variance_percent: float


class PriceHistory:
    def __init__(self, max_points: int = 100) -> None:
        self.max_points = max(1, int(max_points))
        self._trails: Dict[AssetId, Deque[HistoryPoint]] = {}
        self._lock = threading.Lock()

    def record(self, price: ReconciledPrice) -> None:
        point = HistoryPoint(
            computed_at=price.computed_at,
            price_usd=price.recommended_price_usd,
            source_id=price.recommended_source_id,
            variance_percent=price.variance_percent,
        )
        with self._lock:
            trail = self._trails.get(price.asset_id)
            if trail is None:
                trail = self._trails[price.asset_id] = deque(maxlen=self.max_points)
            trail.append(point)

    def points(self, asset_id: AssetId) -> List[HistoryPoint]:
        with self._lock:
            return list(self._trails.get(asset_id, ()))

    def latest(self, asset_id: AssetId):
        with self._lock:
            trail = self._trails.get(asset_id)
            return trail[-1] if trail else None
