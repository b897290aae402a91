"""
CoinMarketCap price source.

Uses the CoinMarketCap Pro API (API key required):
  GET https://pro-api.coinmarketcap.com/v1/cryptocurrency/quotes/latest?symbol={symbols}
  Header: X-CMC_PRO_API_KEY
"""
from __future__ import annotations

from dataclasses import replace
from typing import Any, Dict, Mapping, Optional

import requests

from ...core.errors import RateLimitedError, SourceUnavailableError
from ..adapter import BaseSource
from ..base import AssetId

CMC_BASE_URL = "https://pro-api.coinmarketcap.com/v1"
HTTP_TIMEOUT_S = 5.0


def _usd_price(entry: Any) -> Any:
    # v1 returns one object per symbol, v2 a list of candidates.
    if isinstance(entry, list):
        entry = entry[0] if entry else None
    if not isinstance(entry, dict):
        return None
    return (((entry.get("quote") or {}).get("USD")) or {}).get("price")


class CoinMarketCapSource(BaseSource):
    """Fetch USD prices from CoinMarketCap. Disabled when no API key is configured."""

    def __init__(self, config, *, api_key: Optional[str] = None, base_url: str = CMC_BASE_URL,
                 http_timeout_s: float = HTTP_TIMEOUT_S, **kwargs: Any) -> None:
        if not api_key and config.enabled:
            config = replace(config, enabled=False)
        super().__init__(config, **kwargs)
        self._api_key = api_key
        self._base_url = base_url.rstrip("/")
        self._timeout = http_timeout_s

    @property
    def has_api_key(self) -> bool:
        return bool(self._api_key)

    def supports(self, asset_id: AssetId) -> bool:
        spec = self._catalog.get(asset_id)
        return spec is not None and bool(spec.coinmarketcap_symbol)

    def _fetch_raw(self, asset_ids: frozenset) -> Mapping[AssetId, Any]:
        symbols_by_asset: Dict[AssetId, str] = {}
        for asset_id in asset_ids:
            spec = self._catalog.get(asset_id)
            if spec is not None and spec.coinmarketcap_symbol:
                symbols_by_asset[asset_id] = spec.coinmarketcap_symbol
        if not symbols_by_asset:
            return {}

        url = f"{self._base_url}/cryptocurrency/quotes/latest"
        resp = requests.get(
            url,
            params={"symbol": ",".join(sorted(set(symbols_by_asset.values())))},
            headers={"X-CMC_PRO_API_KEY": self._api_key or "", "Accept": "application/json"},
            timeout=self._timeout,
        )
        if resp.status_code == 429:
            raise RateLimitedError("CoinMarketCap rate limit (HTTP 429)")
        resp.raise_for_status()

        payload = resp.json()
        data = payload.get("data") if isinstance(payload, dict) else None
        if not isinstance(data, dict):
            raise SourceUnavailableError("CoinMarketCap response missing data")

        return {asset_id: _usd_price(data.get(sym)) for asset_id, sym in symbols_by_asset.items()}
