"""
Shared exception types for gala_pricing.

Taxonomy:
- RateLimitedError: local quota or upstream 429; retry later, never retried inline.
- SourceUnavailableError: transient network/HTTP failure; retried, then circuit-broken.
- CircuitOpenError: dependency deliberately skipped while its breaker is open.
- StalePriceError: freshness gate rejection; blocks any value-moving action.

"No data for an asset" is not an error anywhere: the asset is simply absent.
"""

from __future__ import annotations

from typing import Iterable, Optional


class GalaPricingError(Exception):
    """Base exception for gala_pricing; catch this for any package-raised error."""

    pass


class RateLimitedError(GalaPricingError):
    """A source refused the call (local quota exhausted or HTTP 429)."""

    pass


class SourceUnavailableError(GalaPricingError):
    """Transient network, HTTP, or decode failure talking to a dependency."""

    pass


class CircuitOpenError(GalaPricingError):
    """The dependency's circuit breaker is open; the call was not attempted."""

    def __init__(self, dependency_id: str, retry_after_s: Optional[float] = None) -> None:
        self.dependency_id = dependency_id
        self.retry_after_s = retry_after_s
        msg = f"Circuit breaker OPEN for {dependency_id}"
        if retry_after_s is not None:
            msg += f" (retry in {retry_after_s:.1f}s)"
        super().__init__(msg)


class StalePriceError(GalaPricingError):
    """One or more assets have no price fresh enough to trade on."""

    def __init__(self, asset_ids: Iterable[str]) -> None:
        self.asset_ids = list(asset_ids)
        super().__init__(f"Stale or missing price for: {', '.join(self.asset_ids)}")


class InvalidRequestError(GalaPricingError):
    """Caller supplied arguments that cannot be served (bad amount, missing address)."""

    pass


class TradingDisabledError(GalaPricingError):
    """No swap submitter is configured and simulation mode is off."""

    pass


__all__ = [
    "GalaPricingError",
    "RateLimitedError",
    "SourceUnavailableError",
    "CircuitOpenError",
    "StalePriceError",
    "InvalidRequestError",
    "TradingDisabledError",
]
