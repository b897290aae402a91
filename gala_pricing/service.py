"""
Composition root and facade for the HTTP/UI layer.

build_service() reads config once, constructs every component, and injects
clients explicitly. PricingService is what the API and CLI talk to.
"""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional

from . import config as settings
from ._version import __version__
from .pricing.aggregator import PriceAggregator
from .pricing.cache import PricingCaches
from .pricing.freshness import FreshnessGate
from .pricing.history import PriceHistory
from .pricing.reconcile import PriceReconciler
from .providers.assets import AssetCatalog
from .providers.defaults import (
    create_default_registry,
    fetch_deadline_s,
    ordered_source_ids,
    retry_config,
    source_configs,
)
from .providers.dex.client import DexClient, GSwapHttpClient, SwapSubmitter
from .providers.ratelimit import SlidingWindowRateLimiter
from .providers.resilience import CircuitBreakerRegistry, Sleep
from .timeutils import Clock, default_clock, to_utc_iso
from .trading.executor import SwapRequest, TradeExecutor
from .trading.quotes import BalanceService, QuoteService

logger = logging.getLogger(__name__)


@dataclass
class PricingService:
    catalog: AssetCatalog
    aggregator: PriceAggregator
    caches: PricingCaches
    breakers: CircuitBreakerRegistry
    quotes: QuoteService
    balances: BalanceService
    trader: TradeExecutor
    clock: Clock = default_clock

    def get_reconciled_prices(self, asset_ids: Optional[Iterable[str]] = None) -> Dict[str, Optional[float]]:
        return self.aggregator.get_prices(asset_ids)

    def is_tradeable(self, asset_ids: Iterable[str]) -> bool:
        return self.aggregator.is_tradeable(asset_ids)

    def stale_assets(self, asset_ids: Iterable[str]) -> list:
        return self.aggregator.freshness.stale_assets(asset_ids)

    def execute_swap(self, request: SwapRequest):
        return self.trader.execute_swap(request)

    def flush_caches(self) -> Dict[str, int]:
        return self.caches.flush_all()

    def status(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "version": __version__,
            "timestamp": to_utc_iso(self.clock()),
            "priceSources": self.aggregator.health(),
            "circuitBreakers": self.breakers.states(),
            "cache": {"ttl_s": self.caches.ttls(), "stats": self.caches.stats()},
            "freshnessThreshold_s": self.aggregator.freshness.threshold_s,
            "trading": {
                "simulationMode": self.trader.simulation_mode,
                "liveEnabled": self.trader.live_enabled,
            },
        }


def build_service(
    cfg: Optional[dict] = None,
    *,
    client: Optional[DexClient] = None,
    submitter: Optional[SwapSubmitter] = None,
    clock: Clock = default_clock,
    sleep: Sleep = time.sleep,
) -> PricingService:
    """Wire every component from config. Clients are constructed once here and injected."""
    cfg = cfg if cfg is not None else settings.get_config()

    if client is None:
        gala = settings.source_settings("galachain", cfg)
        client = GSwapHttpClient(
            gala.get("base_url") or "https://dex-backend-prod1.defi.gala.com",
            http_timeout_s=settings.http_timeout_s(cfg),
        )

    catalog = AssetCatalog.from_config(settings.asset_entries(cfg))
    configs = source_configs(cfg)
    r = settings.resilience_settings(cfg)
    breakers = CircuitBreakerRegistry(
        failure_threshold=int(r["failure_threshold"]),
        recovery_timeout_s=float(r["recovery_timeout_s"]),
        retry_config=retry_config(cfg),
        clock=clock,
        sleep=sleep,
    )
    rate_limiter = SlidingWindowRateLimiter(
        {sid: c.requests_per_minute for sid, c in configs.items()}, clock=clock
    )
    ttls = settings.cache_ttls(cfg)
    caches = PricingCaches(
        price_ttl_s=ttls["prices"],
        quote_ttl_s=ttls["quotes"],
        balance_ttl_s=ttls["balances"],
        max_entries=settings.cache_max_entries(cfg),
        clock=clock,
    )

    priority = settings.source_priority(cfg)
    registry = create_default_registry(client, cfg)
    sources = registry.build(
        configs,
        ordered_source_ids(configs, priority),
        catalog=catalog,
        rate_limiter=rate_limiter,
        breakers=breakers,
        clock=clock,
    )
    reconciler = PriceReconciler(
        variance_threshold_pct=settings.variance_threshold_pct(cfg),
        use_average=settings.use_average(cfg),
        priority=priority,
        enabled_sources=[s.source_id for s in sources if s.enabled],
        clock=clock,
    )
    freshness = FreshnessGate(settings.freshness_threshold_s(cfg), clock=clock)
    aggregator = PriceAggregator(
        sources,
        reconciler,
        caches,
        freshness,
        universe=catalog.asset_ids,
        breakers=breakers,
        rate_limiter=rate_limiter,
        history=PriceHistory(settings.history_max_points(cfg)),
        fetch_deadline_s=fetch_deadline_s(cfg, catalog),
        clock=clock,
    )
    quotes = QuoteService(client, caches.quotes, breakers)
    trader = TradeExecutor(
        aggregator,
        quotes,
        breakers,
        submitter=submitter,
        simulation_mode=settings.simulation_mode(cfg),
        default_wallet=settings.wallet_address(cfg),
    )
    logger.info(
        "Pricing service ready: sources=%s priority=%s simulation=%s",
        [s.source_id for s in sources if s.enabled], priority, trader.simulation_mode,
    )
    return PricingService(
        catalog=catalog,
        aggregator=aggregator,
        caches=caches,
        breakers=breakers,
        quotes=quotes,
        balances=BalanceService(client, caches.balances, breakers),
        trader=trader,
        clock=clock,
    )
