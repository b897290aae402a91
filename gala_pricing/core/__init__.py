"""
Stable facade: shared exception types. Do not add exports without updating __all__.
"""

from __future__ import annotations

from .errors import (
    CircuitOpenError,
    GalaPricingError,
    InvalidRequestError,
    RateLimitedError,
    SourceUnavailableError,
    StalePriceError,
    TradingDisabledError,
)

__all__ = [
    "GalaPricingError",
    "RateLimitedError",
    "SourceUnavailableError",
    "CircuitOpenError",
    "StalePriceError",
    "InvalidRequestError",
    "TradingDisabledError",
]
