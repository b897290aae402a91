"""
Shared fetch template for price sources.

Subclasses implement ``_fetch_raw`` returning ``{asset_id: price_or_None}``;
the template handles enable flags, rate limiting, breaker/retry, and
normalization into PricePoints, and converts every failure into a
SourceResult error so nothing raises past ``fetch_prices``.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, Iterable, Mapping, Optional

from ..core.errors import CircuitOpenError, RateLimitedError
from ..timeutils import Clock, default_clock
from .assets import AssetCatalog
from .base import AssetId, PricePoint, SourceConfig, SourceErrorKind, SourceResult, as_asset_set
from .ratelimit import SlidingWindowRateLimiter
from .resilience import CircuitBreakerRegistry

logger = logging.getLogger(__name__)


def to_price(x: Any) -> Optional[float]:
    """Positive finite float or None. Explicit 'unavailable' values become None."""
    if x is None or isinstance(x, bool):
        return None
    try:
        value = float(x)
    except (TypeError, ValueError):
        return None
    if not math.isfinite(value) or value <= 0:
        return None
    return value


class BaseSource:
    """Template for PriceSource implementations."""

    def __init__(
        self,
        config: SourceConfig,
        *,
        catalog: AssetCatalog,
        rate_limiter: SlidingWindowRateLimiter,
        breakers: CircuitBreakerRegistry,
        clock: Clock = default_clock,
    ) -> None:
        self._config = config
        self._catalog = catalog
        self._rate_limiter = rate_limiter
        self._breakers = breakers
        self._clock = clock

    @property
    def source_id(self) -> str:
        return self._config.source_id

    @property
    def config(self) -> SourceConfig:
        return self._config

    @property
    def enabled(self) -> bool:
        return self._config.enabled

    def supports(self, asset_id: AssetId) -> bool:
        """Whether this source can price the asset at all. Unsupported assets never cost a request."""
        return True

    def _fetch_raw(self, asset_ids: frozenset) -> Mapping[AssetId, Any]:
        raise NotImplementedError

    def fetch_prices(self, asset_ids: Iterable[AssetId]) -> SourceResult:
        name = self.source_id
        if not self.enabled:
            return SourceResult.failure(name, SourceErrorKind.DISABLED, f"{name} disabled")

        wanted = frozenset(a for a in as_asset_set(asset_ids) if self.supports(a))
        if not wanted:
            return SourceResult(source_id=name, prices={}, fetched_at=self._clock())

        if not self._rate_limiter.allow(name):
            return SourceResult.failure(name, SourceErrorKind.RATE_LIMITED, "Rate limited", self._clock())

        try:
            raw = self._breakers.execute(name, self._fetch_raw, wanted)
        except CircuitOpenError as exc:
            logger.debug("%s skipped: %s", name, exc)
            return SourceResult.failure(name, SourceErrorKind.CIRCUIT_OPEN, str(exc), self._clock())
        except RateLimitedError as exc:
            logger.warning("%s rate limited upstream: %s", name, exc)
            return SourceResult.failure(name, SourceErrorKind.RATE_LIMITED, str(exc), self._clock())
        except Exception as exc:
            logger.warning("%s fetch failed: %s: %s", name, type(exc).__name__, exc)
            return SourceResult.failure(
                name, SourceErrorKind.UNAVAILABLE, f"{type(exc).__name__}: {exc}", self._clock()
            )

        now = self._clock()
        prices: Dict[AssetId, PricePoint] = {}
        for asset_id, value in raw.items():
            if asset_id not in wanted:
                continue
            price = to_price(value)
            if price is None:
                continue
            prices[asset_id] = PricePoint(asset_id=asset_id, price_usd=price, source_id=name, observed_at=now)

        logger.debug("%s returned %d/%d prices", name, len(prices), len(wanted))
        return SourceResult(source_id=name, prices=prices, fetched_at=now)
