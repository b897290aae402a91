"""
Price reconciliation: combine per-source prices into one authoritative price per asset.

Per asset:
1. collect (source_id, price) pairs from every source that has it;
2. average, min, max and variance = (max - min) / average * 100;
3. variance below threshold (and averaging enabled) -> the average;
4. otherwise the first enabled source in priority order that has a value;
5. no priority source has a value -> the average.

Assets no source reported are absent from the output. Nothing is defaulted.
"""
from __future__ import annotations

import logging
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Set, Union

import numpy as np

from ..providers.base import AssetId, PricePoint, ReconciledPrice, SourceResult
from ..timeutils import Clock, default_clock

logger = logging.getLogger(__name__)

AVERAGE_SOURCE = "average"

DEFAULT_PRIORITY = ["coinmarketcap", "coingecko", "galachain"]

SourceInput = Union[SourceResult, Mapping[AssetId, PricePoint]]


def _points(item: SourceInput) -> Mapping[AssetId, PricePoint]:
    if isinstance(item, SourceResult):
        return item.prices if item.ok else {}
    return item


class PriceReconciler:
    """Stateless apart from its policy; safe to share across threads."""

    def __init__(
        self,
        *,
        variance_threshold_pct: float = 10.0,
        use_average: bool = True,
        priority: Optional[Sequence[str]] = None,
        enabled_sources: Optional[Iterable[str]] = None,
        clock: Clock = default_clock,
    ) -> None:
        self.variance_threshold_pct = float(variance_threshold_pct)
        self.use_average = bool(use_average)
        self.priority: List[str] = list(priority) if priority is not None else list(DEFAULT_PRIORITY)
        self.enabled_sources: Optional[Set[str]] = set(enabled_sources) if enabled_sources is not None else None
        self._clock = clock

    def _is_enabled(self, source_id: str) -> bool:
        return self.enabled_sources is None or source_id in self.enabled_sources

    def select(self, prices: Mapping[str, float], average: float, variance_pct: float) -> tuple[str, float]:
        """Return (source_id, price) for one asset's per-source prices."""
        if self.use_average and variance_pct < self.variance_threshold_pct:
            return AVERAGE_SOURCE, average
        for source_id in self.priority:
            if source_id in prices and self._is_enabled(source_id):
                return source_id, prices[source_id]
        return AVERAGE_SOURCE, average

    def reconcile(self, per_source_results: Iterable[SourceInput]) -> Dict[AssetId, ReconciledPrice]:
        by_asset: Dict[AssetId, Dict[str, float]] = {}
        for item in per_source_results:
            for asset_id, point in _points(item).items():
                if point is None or not point.price_usd > 0:
                    continue
                by_asset.setdefault(asset_id, {})[point.source_id] = float(point.price_usd)

        now = self._clock()
        out: Dict[AssetId, ReconciledPrice] = {}
        for asset_id, prices in by_asset.items():
            values = np.fromiter(prices.values(), dtype=float)
            average = float(values.mean())
            lo = float(values.min())
            hi = float(values.max())
            variance_pct = (hi - lo) / average * 100.0
            source_id, price = self.select(prices, average, variance_pct)
            out[asset_id] = ReconciledPrice(
                asset_id=asset_id,
                recommended_price_usd=price,
                recommended_source_id=source_id,
                per_source_prices=dict(prices),
                average=average,
                min_price=lo,
                max_price=hi,
                variance_percent=variance_pct,
                computed_at=now,
            )
            if variance_pct >= self.variance_threshold_pct:
                logger.info(
                    "%s sources disagree by %.2f%%; using %s (%.6f)", asset_id, variance_pct, source_id, price
                )
        return out


def summarize(reconciled: Mapping[AssetId, ReconciledPrice]) -> Dict[str, float]:
    n = len(reconciled)
    avg_var = float(np.mean([r.variance_percent for r in reconciled.values()])) if n else 0.0
    return {"total_assets": n, "average_variance_percent": avg_var}
