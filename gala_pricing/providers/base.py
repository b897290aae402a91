"""
Price source interfaces and data contracts.

Every source implements PriceSource: given a set of asset ids it returns a
SourceResult holding a (asset id -> PricePoint) mapping in USD, or a
SourceError. Sources never raise across that boundary; an asset the source
cannot price is simply absent from the mapping.

Data is returned via frozen dataclasses for immutability and type safety.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass, field
from typing import Any, Dict, FrozenSet, Iterable, Mapping, Optional, Protocol, runtime_checkable

from ..timeutils import to_utc_iso

# Composite GalaChain token key, e.g. "GALA|Unit|none|none".
AssetId = str


class SourceStatus(enum.Enum):
    """Health status of a price source."""

    OK = "OK"
    DEGRADED = "DEGRADED"
    DOWN = "DOWN"


class SourceErrorKind(enum.Enum):
    RATE_LIMITED = "RATE_LIMITED"
    UNAVAILABLE = "UNAVAILABLE"
    CIRCUIT_OPEN = "CIRCUIT_OPEN"
    DISABLED = "DISABLED"


@dataclass(frozen=True)
class PricePoint:
    """One USD price observation from one source. Superseded, never updated."""

    asset_id: AssetId
    price_usd: float
    source_id: str
    observed_at: float

    def __post_init__(self) -> None:
        if not self.price_usd > 0:
            raise ValueError(f"price_usd must be positive, got {self.price_usd!r} for {self.asset_id}")


@dataclass(frozen=True)
class SourceConfig:
    """Per-source settings, loaded once at startup."""

    source_id: str
    enabled: bool = True
    requests_per_minute: int = 60
    priority: int = 100


@dataclass(frozen=True)
class SourceError:
    kind: SourceErrorKind
    message: str = ""


@dataclass(frozen=True)
class SourceResult:
    """Outcome of one fetch_prices call: prices on success, error otherwise."""

    source_id: str
    prices: Mapping[AssetId, PricePoint] = field(default_factory=dict)
    error: Optional[SourceError] = None
    fetched_at: Optional[float] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def failure(
        cls, source_id: str, kind: SourceErrorKind, message: str = "", fetched_at: Optional[float] = None
    ) -> SourceResult:
        return cls(source_id=source_id, error=SourceError(kind, message[:500]), fetched_at=fetched_at)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "source": self.source_id,
            "prices": {a: p.price_usd for a, p in self.prices.items()},
            "error": None if self.error is None else {"kind": self.error.kind.value, "message": self.error.message},
            "fetched_at_utc": to_utc_iso(self.fetched_at),
        }


@dataclass(frozen=True)
class ReconciledPrice:
    """Authoritative price for one asset, derived from every source that had it."""

    asset_id: AssetId
    recommended_price_usd: float
    recommended_source_id: str
    per_source_prices: Mapping[str, float]
    average: float
    min_price: float
    max_price: float
    variance_percent: float
    computed_at: float

    def to_dict(self) -> Dict[str, Any]:
        return {
            "asset_id": self.asset_id,
            "recommended": {"source": self.recommended_source_id, "price": self.recommended_price_usd},
            "prices": dict(self.per_source_prices),
            "average": self.average,
            "min": self.min_price,
            "max": self.max_price,
            "variance": self.variance_percent,
            "computed_at_utc": to_utc_iso(self.computed_at),
        }


@dataclass
class SourceHealth:
    """Mutable health state for a single source instance."""

    source_id: str
    status: SourceStatus = SourceStatus.OK
    last_success_at: Optional[float] = None
    fail_count: int = 0
    last_error: Optional[str] = None

    def record_success(self, at: float) -> None:
        self.status = SourceStatus.OK
        self.fail_count = 0
        self.last_success_at = at
        self.last_error = None

    def record_failure(self, error: str) -> None:
        self.fail_count += 1
        self.last_error = error[:500]
        if self.fail_count >= 5:
            self.status = SourceStatus.DOWN
        elif self.fail_count >= 2:
            self.status = SourceStatus.DEGRADED


@runtime_checkable
class PriceSource(Protocol):
    """Protocol for price sources (on-chain quoting or off-chain market data)."""

    @property
    def source_id(self) -> str: ...

    @property
    def config(self) -> SourceConfig: ...

    @property
    def enabled(self) -> bool: ...

    def fetch_prices(self, asset_ids: Iterable[AssetId]) -> SourceResult:
        """Fetch USD prices for the given assets. Must not raise."""
        ...


def as_asset_set(asset_ids: Iterable[AssetId]) -> FrozenSet[AssetId]:
    return frozenset(a for a in asset_ids if a)
