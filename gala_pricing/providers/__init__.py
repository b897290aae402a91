"""
Price source architecture.

Sources (CoinGecko, CoinMarketCap, GalaChain DEX quotes) share one contract:
fetch_prices(asset_ids) -> SourceResult. Each call is rate limited per
source and runs through a per-dependency circuit breaker with retry/backoff.
"""

from __future__ import annotations

from .assets import AssetCatalog, AssetSpec
from .base import (
    AssetId,
    PricePoint,
    PriceSource,
    ReconciledPrice,
    SourceConfig,
    SourceError,
    SourceErrorKind,
    SourceHealth,
    SourceResult,
    SourceStatus,
)
from .ratelimit import SlidingWindowRateLimiter
from .registry import SourceRegistry
from .resilience import CircuitBreaker, CircuitBreakerRegistry, CircuitState, RetryConfig, resilient_call

__all__ = [
    "AssetCatalog",
    "AssetId",
    "AssetSpec",
    "CircuitBreaker",
    "CircuitBreakerRegistry",
    "CircuitState",
    "PricePoint",
    "PriceSource",
    "ReconciledPrice",
    "RetryConfig",
    "SlidingWindowRateLimiter",
    "SourceConfig",
    "SourceError",
    "SourceErrorKind",
    "SourceHealth",
    "SourceRegistry",
    "SourceResult",
    "SourceStatus",
    "resilient_call",
]
