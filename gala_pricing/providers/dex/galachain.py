"""
GalaChain on-chain price source.

Prices come from DEX quotes through an injected DexClient:
- the reference asset (GALA) is quoted 1 unit into the USD anchor (GUSDC);
- every other asset is quoted 1 unit into GALA and converted with the
  GALA USD price from the same pass;
- assets flagged ``stablecoin`` in the catalog are 1.0 without a quote.

A failed quote leaves that asset absent. If the GALA reference quote fails,
every GALA-denominated asset is absent for this pass. Only when every
attempted quote fails and nothing was priced is the whole fetch reported
unavailable.
"""
from __future__ import annotations

import logging
from typing import Any, Dict, List, Mapping, Optional

from ...core.errors import RateLimitedError, SourceUnavailableError
from ..adapter import BaseSource
from ..assets import GALA, GUSDC
from ..base import AssetId
from .client import DexClient

logger = logging.getLogger(__name__)

STABLECOIN_PRICE_USD = 1.0


class GalaChainSource(BaseSource):
    """Price assets from GalaSwap pool quotes."""

    def __init__(
        self,
        config,
        *,
        client: DexClient,
        reference_asset: AssetId = GALA,
        usd_anchor: AssetId = GUSDC,
        **kwargs: Any,
    ) -> None:
        super().__init__(config, **kwargs)
        self._client = client
        self._reference = reference_asset
        self._anchor = usd_anchor

    def _quote_out(self, asset_in: AssetId, asset_out: AssetId) -> float:
        return self._client.quote_exact_input(asset_in, asset_out, 1).out_amount

    def _fetch_raw(self, asset_ids: frozenset) -> Mapping[AssetId, Any]:
        out: Dict[AssetId, Any] = {}
        quoted: List[AssetId] = []
        for asset_id in sorted(asset_ids):
            if self._catalog.is_stablecoin(asset_id):
                out[asset_id] = STABLECOIN_PRICE_USD
            elif asset_id != self._reference:
                quoted.append(asset_id)

        if self._reference not in asset_ids and not quoted:
            return out

        attempted = 1
        failures: List[str] = []
        reference_usd: Optional[float] = None
        try:
            reference_usd = self._quote_out(self._reference, self._anchor)
        except RateLimitedError:
            raise
        except Exception as exc:
            failures.append(f"{self._reference}: {type(exc).__name__}: {exc}")
            logger.info("GalaChain reference quote failed, %d dependent assets absent: %s", len(quoted), exc)

        if reference_usd is not None:
            if self._reference in asset_ids:
                out[self._reference] = reference_usd
            for asset_id in quoted:
                attempted += 1
                try:
                    out[asset_id] = self._quote_out(asset_id, self._reference) * reference_usd
                except RateLimitedError:
                    raise
                except Exception as exc:
                    failures.append(f"{asset_id}: {type(exc).__name__}: {exc}")
                    logger.debug("GalaChain quote failed for %s: %s", asset_id, exc)

        if len(failures) == attempted and not out:
            raise SourceUnavailableError(f"All GalaChain quotes failed: {failures[0]}")
        return out
