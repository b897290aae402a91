"""
Multi-source price aggregation.

A price request first asks the prices cache. On a miss the missing assets are
fetched from every enabled source in parallel (one task per source); all
tasks are joined before reconciliation, and a source that misses the fetch
deadline is abandoned and counted as unavailable. Each newly reconciled
price is cached, stamped on the freshness gate, and appended to the history
trail. Source failures stop here: callers only ever see "no price for X".
"""
from __future__ import annotations

import logging
import threading
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Any, Dict, Iterable, List, Optional, Sequence

from ..providers.base import (
    AssetId,
    PriceSource,
    ReconciledPrice,
    SourceErrorKind,
    SourceHealth,
    SourceResult,
)
from ..providers.ratelimit import SlidingWindowRateLimiter
from ..providers.resilience import CircuitBreakerRegistry
from ..timeutils import Clock, default_clock, to_utc_iso
from .cache import PricingCaches
from .freshness import FreshnessGate
from .history import PriceHistory
from .reconcile import PriceReconciler, summarize

logger = logging.getLogger(__name__)

_FAILURE_KINDS = (SourceErrorKind.UNAVAILABLE, SourceErrorKind.CIRCUIT_OPEN)


class PriceAggregator:
    def __init__(
        self,
        sources: Sequence[PriceSource],
        reconciler: PriceReconciler,
        caches: PricingCaches,
        freshness: FreshnessGate,
        *,
        universe: Optional[Sequence[AssetId]] = None,
        breakers: Optional[CircuitBreakerRegistry] = None,
        rate_limiter: Optional[SlidingWindowRateLimiter] = None,
        history: Optional[PriceHistory] = None,
        fetch_deadline_s: float = 10.0,
        clock: Clock = default_clock,
    ) -> None:
        self._sources = list(sources)
        self._reconciler = reconciler
        self._caches = caches
        self._freshness = freshness
        self._universe = list(universe or [])
        self._breakers = breakers
        self._rate_limiter = rate_limiter
        self._history = history or PriceHistory()
        self._deadline_s = float(fetch_deadline_s)
        self._clock = clock
        self._health: Dict[str, SourceHealth] = {s.source_id: SourceHealth(source_id=s.source_id) for s in self._sources}
        self._last_results: List[SourceResult] = []
        self._lock = threading.Lock()

    @property
    def sources(self) -> List[PriceSource]:
        return list(self._sources)

    @property
    def universe(self) -> List[AssetId]:
        return list(self._universe)

    @property
    def fetch_deadline_s(self) -> float:
        return self._deadline_s

    @property
    def freshness(self) -> FreshnessGate:
        return self._freshness

    @property
    def history(self) -> PriceHistory:
        return self._history

    # ------------------------------------------------------------------
    # Fetching
    # ------------------------------------------------------------------

    def _fetch_all(self, asset_ids: Sequence[AssetId]) -> List[SourceResult]:
        enabled = [s for s in self._sources if s.enabled]
        if not enabled:
            logger.warning("No enabled price sources")
            return []

        executor = ThreadPoolExecutor(max_workers=len(enabled), thread_name_prefix="price-fetch")
        try:
            futures = {executor.submit(s.fetch_prices, asset_ids): s for s in enabled}
            _, not_done = wait(futures, timeout=self._deadline_s)
            results: List[SourceResult] = []
            for fut, source in futures.items():
                if fut in not_done:
                    fut.cancel()
                    logger.warning("%s exceeded %.1fs fetch deadline; abandoned", source.source_id, self._deadline_s)
                    results.append(SourceResult.failure(
                        source.source_id, SourceErrorKind.UNAVAILABLE,
                        f"Fetch deadline {self._deadline_s:.1f}s exceeded", self._clock(),
                    ))
                    continue
                exc = fut.exception()
                if exc is not None:
                    logger.error("%s fetch_prices raised %s: %s", source.source_id, type(exc).__name__, exc)
                    results.append(SourceResult.failure(
                        source.source_id, SourceErrorKind.UNAVAILABLE, f"{type(exc).__name__}: {exc}", self._clock(),
                    ))
                    continue
                results.append(fut.result())
        finally:
            # Do not wait on abandoned tasks.
            executor.shutdown(wait=False, cancel_futures=True)

        for result in results:
            self._record_health(result)
        return results

    def _record_health(self, result: SourceResult) -> None:
        with self._lock:
            health = self._health.setdefault(result.source_id, SourceHealth(source_id=result.source_id))
            if result.ok:
                health.record_success(result.fetched_at if result.fetched_at is not None else self._clock())
            elif result.error.kind in _FAILURE_KINDS:
                health.record_failure(f"{result.error.kind.value}: {result.error.message}")
            elif result.error.kind is SourceErrorKind.RATE_LIMITED:
                health.last_error = f"{result.error.kind.value}: {result.error.message}"[:500]

    def refresh(self, asset_ids: Iterable[AssetId]) -> Dict[AssetId, ReconciledPrice]:
        """Fetch from every enabled source, reconcile, and publish. Bypasses the cache read."""
        wanted = list(dict.fromkeys(a for a in asset_ids if a))
        if not wanted:
            return {}
        results = self._fetch_all(wanted)
        reconciled = self._reconciler.reconcile(results)
        reconciled = {a: r for a, r in reconciled.items() if a in wanted}
        for asset_id, price in reconciled.items():
            self._caches.prices.set(asset_id, price)
            self._freshness.mark_updated(asset_id, price.computed_at)
            self._history.record(price)
        with self._lock:
            self._last_results = results
        ok = sum(1 for r in results if r.ok and r.prices)
        logger.info("Reconciled %d/%d assets from %d/%d sources", len(reconciled), len(wanted), ok, len(results))
        missing = [a for a in wanted if a not in reconciled]
        if missing:
            logger.warning("No source priced: %s", ", ".join(missing))
        return reconciled

    # ------------------------------------------------------------------
    # Consumer surface
    # ------------------------------------------------------------------

    def get_reconciled(self, asset_ids: Optional[Iterable[AssetId]] = None) -> Dict[AssetId, ReconciledPrice]:
        wanted = list(dict.fromkeys(a for a in (asset_ids if asset_ids is not None else self._universe) if a))
        out: Dict[AssetId, ReconciledPrice] = {}
        missing: List[AssetId] = []
        for asset_id in wanted:
            cached = self._caches.prices.get(asset_id)
            if cached is not None:
                out[asset_id] = cached
            # A cached entry past the freshness threshold still needs a refetch;
            # it is only kept as the fallback if that refetch prices nothing.
            if cached is None or not self._freshness.is_fresh(asset_id):
                missing.append(asset_id)
        if missing:
            out.update(self.refresh(missing))
        return {a: out[a] for a in wanted if a in out}

    def get_prices(self, asset_ids: Optional[Iterable[AssetId]] = None) -> Dict[AssetId, Optional[float]]:
        """asset -> USD price, or None when no fresh price exists. Never a default."""
        wanted = list(dict.fromkeys(asset_ids if asset_ids is not None else self._universe))
        reconciled = self.get_reconciled(wanted)
        out: Dict[AssetId, Optional[float]] = {}
        for asset_id in wanted:
            price = reconciled.get(asset_id)
            if price is not None and self._freshness.is_fresh(asset_id):
                out[asset_id] = price.recommended_price_usd
            else:
                out[asset_id] = None
        return out

    def is_tradeable(self, asset_ids: Iterable[AssetId]) -> bool:
        wanted = list(asset_ids)
        if not wanted:
            return False
        self.get_reconciled(wanted)
        return not self._freshness.stale_assets(wanted)

    def require_tradeable(self, asset_ids: Iterable[AssetId]) -> None:
        """Raise StalePriceError unless every asset has a fresh reconciled price."""
        wanted = list(asset_ids)
        self.get_reconciled(wanted)
        self._freshness.require_fresh(wanted)

    def comprehensive(self, asset_ids: Optional[Iterable[AssetId]] = None) -> Dict[str, Any]:
        reconciled = self.get_reconciled(asset_ids)
        with self._lock:
            results = list(self._last_results)
        return {
            "sources": [r.to_dict() for r in results],
            "comparison": {a: r.to_dict() for a, r in reconciled.items()},
            "finalPrices": {a: r.recommended_price_usd for a, r in reconciled.items()},
            "timestamp": to_utc_iso(self._clock()),
            "summary": {
                **summarize(reconciled),
                "sources_used": sum(1 for r in results if r.ok and r.prices),
            },
        }

    def health(self) -> Dict[str, Dict[str, Any]]:
        """Per source: enabled, last success, breaker state, and failure bookkeeping."""
        out: Dict[str, Dict[str, Any]] = {}
        with self._lock:
            snapshot = {k: (h.status, h.last_success_at, h.fail_count, h.last_error) for k, h in self._health.items()}
        for source in self._sources:
            status, last_ok, fail_count, last_error = snapshot.get(
                source.source_id, (None, None, 0, None)
            )
            entry: Dict[str, Any] = {
                "enabled": source.enabled,
                "last_success_at": to_utc_iso(last_ok),
                "circuit_state": self._breakers.state(source.source_id).value if self._breakers else None,
                "status": (status.value if status else None) if source.enabled else "DISABLED",
                "fail_count": fail_count,
                "last_error": last_error,
                "requests_per_minute": source.config.requests_per_minute,
            }
            if self._rate_limiter is not None:
                entry["remaining_requests"] = self._rate_limiter.remaining(source.source_id)
            out[source.source_id] = entry
        return out
