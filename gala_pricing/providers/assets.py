"""
Token catalog: maps the shared GalaChain AssetId onto each source's vocabulary.

Stablecoin pricing is driven by the explicit ``stablecoin`` flag only; no
symbol-name guessing. Bridged tokens carry no off-chain ids and can only be
priced on-chain.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Iterable, Iterator, List, Mapping, Optional

from .base import AssetId

GALA = "GALA|Unit|none|none"
GUSDC = "GUSDC|Unit|none|none"
GUSDT = "GUSDT|Unit|none|none"


@dataclass(frozen=True)
class AssetSpec:
    asset_id: AssetId
    symbol: str
    coingecko_id: Optional[str] = None
    coinmarketcap_symbol: Optional[str] = None
    stablecoin: bool = False
    bridged: bool = False

    @classmethod
    def from_dict(cls, raw: Mapping[str, Any]) -> AssetSpec:
        asset_id = str(raw["asset_id"])
        return cls(
            asset_id=asset_id,
            symbol=str(raw.get("symbol") or asset_id.split("|", 1)[0]),
            coingecko_id=raw.get("coingecko_id") or None,
            coinmarketcap_symbol=raw.get("coinmarketcap_symbol") or None,
            stablecoin=bool(raw.get("stablecoin", False)),
            bridged=bool(raw.get("bridged", False)),
        )


DEFAULT_ASSETS: List[AssetSpec] = [
    AssetSpec(GALA, "GALA", coingecko_id="gala", coinmarketcap_symbol="GALA"),
    AssetSpec(GUSDC, "GUSDC", coingecko_id="usd-coin", coinmarketcap_symbol="USDC", stablecoin=True),
    AssetSpec(GUSDT, "GUSDT", coingecko_id="tether", coinmarketcap_symbol="USDT", stablecoin=True),
    AssetSpec("ETIME|Unit|none|none", "ETIME", bridged=True),
    AssetSpec("GTON|Unit|none|none", "GTON", bridged=True),
    AssetSpec("GOSMI|Unit|none|none", "GOSMI", bridged=True),
    AssetSpec("FILM|Unit|none|none", "FILM", coingecko_id="gala-film", coinmarketcap_symbol="FILM"),
    AssetSpec("GMUSIC|Unit|none|none", "GMUSIC", coingecko_id="gala-music"),
]


class AssetCatalog:
    """Ordered, read-only lookup of AssetSpec by asset id."""

    def __init__(self, specs: Iterable[AssetSpec]) -> None:
        self._specs: Dict[AssetId, AssetSpec] = {}
        for spec in specs:
            self._specs[spec.asset_id] = spec

    @classmethod
    def default(cls) -> AssetCatalog:
        return cls(DEFAULT_ASSETS)

    @classmethod
    def from_config(cls, entries: Optional[List[Mapping[str, Any]]]) -> AssetCatalog:
        if not entries:
            return cls.default()
        return cls(AssetSpec.from_dict(e) for e in entries)

    def __iter__(self) -> Iterator[AssetSpec]:
        return iter(self._specs.values())

    def __len__(self) -> int:
        return len(self._specs)

    def __contains__(self, asset_id: object) -> bool:
        return asset_id in self._specs

    def get(self, asset_id: AssetId) -> Optional[AssetSpec]:
        return self._specs.get(asset_id)

    @property
    def asset_ids(self) -> List[AssetId]:
        return list(self._specs)

    def symbol(self, asset_id: AssetId) -> str:
        spec = self._specs.get(asset_id)
        return spec.symbol if spec else asset_id.split("|", 1)[0]

    def is_stablecoin(self, asset_id: AssetId) -> bool:
        spec = self._specs.get(asset_id)
        return bool(spec and spec.stablecoin)
