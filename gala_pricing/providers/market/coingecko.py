"""
CoinGecko price source.

Uses the public CoinGecko API (no authentication required):
  GET https://api.coingecko.com/api/v3/simple/price?ids={ids}&vs_currencies=usd
"""
from __future__ import annotations

from typing import Any, Dict, Mapping

import requests

from ...core.errors import RateLimitedError, SourceUnavailableError
from ..adapter import BaseSource
from ..base import AssetId

COINGECKO_BASE_URL = "https://api.coingecko.com/api/v3"
HTTP_TIMEOUT_S = 5.0


class CoinGeckoSource(BaseSource):
    """Fetch USD prices from CoinGecko's simple/price endpoint."""

    def __init__(self, config, *, base_url: str = COINGECKO_BASE_URL,
                 http_timeout_s: float = HTTP_TIMEOUT_S, **kwargs: Any) -> None:
        super().__init__(config, **kwargs)
        self._base_url = base_url.rstrip("/")
        self._timeout = http_timeout_s

    def supports(self, asset_id: AssetId) -> bool:
        spec = self._catalog.get(asset_id)
        return spec is not None and bool(spec.coingecko_id)

    def _fetch_raw(self, asset_ids: frozenset) -> Mapping[AssetId, Any]:
        ids_by_asset: Dict[AssetId, str] = {}
        for asset_id in asset_ids:
            spec = self._catalog.get(asset_id)
            if spec is not None and spec.coingecko_id:
                ids_by_asset[asset_id] = spec.coingecko_id
        if not ids_by_asset:
            return {}

        url = f"{self._base_url}/simple/price"
        params = {"ids": ",".join(sorted(set(ids_by_asset.values()))), "vs_currencies": "usd"}
        resp = requests.get(url, params=params, timeout=self._timeout)
        if resp.status_code == 429:
            raise RateLimitedError("CoinGecko rate limit (HTTP 429)")
        resp.raise_for_status()

        data = resp.json()
        if not isinstance(data, dict):
            raise SourceUnavailableError(f"Unexpected CoinGecko response type: {type(data).__name__}")

        out: Dict[AssetId, Any] = {}
        for asset_id, cg_id in ids_by_asset.items():
            entry = data.get(cg_id)
            if isinstance(entry, dict):
                out[asset_id] = entry.get("usd")
        return out
