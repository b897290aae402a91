"""
GalaSwap client contract.

The vendor SDK is an external collaborator. Everything in this package talks
to it through the DexClient / SwapSubmitter protocols; concrete clients are
built once at startup and injected, never reached through module globals.

GSwapHttpClient is the default DexClient: a thin ``requests`` wrapper over
the GalaSwap gateway's read-only quote and asset endpoints:
  GET {base}/v1/trade/quote?tokenIn=..&tokenOut=..&amountIn=..
  GET {base}/user/assets?address=..&page=1&limit=20
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Protocol, runtime_checkable

import requests

from ...core.errors import RateLimitedError, SourceUnavailableError
from ..adapter import to_price

GSWAP_BASE_URL = "https://dex-backend-prod1.defi.gala.com"
HTTP_TIMEOUT_S = 5.0


@dataclass(frozen=True)
class SwapQuote:
    asset_in: str
    asset_out: str
    amount_in: float
    out_amount: float
    price_impact: Optional[float] = None
    fee_tier: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokenIn": self.asset_in,
            "tokenOut": self.asset_out,
            "amountIn": self.amount_in,
            "amountOut": self.out_amount,
            "priceImpact": self.price_impact,
            "fee": self.fee_tier,
        }


@dataclass(frozen=True)
class UserAsset:
    symbol: str
    quantity: float
    decimals: Optional[int] = None
    verified: bool = True
    name: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"symbol": self.symbol, "balance": self.quantity, "decimals": self.decimals, "verified": self.verified}


@dataclass(frozen=True)
class SwapReceipt:
    asset_in: str
    asset_out: str
    amount_in: float
    amount_out: Optional[float]
    transaction_id: Optional[str]
    simulated: bool = False
    status: str = "submitted"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "tokenIn": self.asset_in,
            "tokenOut": self.asset_out,
            "amountIn": self.amount_in,
            "amountOut": self.amount_out,
            "transactionId": self.transaction_id,
            "simulated": self.simulated,
            "status": self.status,
        }


@runtime_checkable
class DexClient(Protocol):
    """Read-only SDK surface: quoting and wallet balances."""

    def quote_exact_input(self, asset_in: str, asset_out: str, amount: float) -> SwapQuote: ...

    def get_user_assets(self, address: str) -> List[UserAsset]: ...


@runtime_checkable
class SwapSubmitter(Protocol):
    """Signing SDK surface. Construction (and key handling) lives outside this package."""

    def swap(
        self,
        asset_in: str,
        asset_out: str,
        amount_in: float,
        min_amount_out: Optional[float],
        wallet_address: str,
    ) -> SwapReceipt: ...


def _first(d: Dict[str, Any], *keys: str) -> Any:
    for k in keys:
        if d.get(k) is not None:
            return d[k]
    return None


class GSwapHttpClient:
    """DexClient over the GalaSwap HTTP gateway."""

    def __init__(self, base_url: str = GSWAP_BASE_URL, *, http_timeout_s: float = HTTP_TIMEOUT_S) -> None:
        self._base_url = base_url.rstrip("/")
        self._timeout = http_timeout_s

    def _get_json(self, path: str, params: Dict[str, Any]) -> Any:
        resp = requests.get(f"{self._base_url}{path}", params=params, timeout=self._timeout)
        if resp.status_code == 429:
            raise RateLimitedError(f"GalaSwap rate limit (HTTP 429) on {path}")
        resp.raise_for_status()
        payload = resp.json()
        if isinstance(payload, dict) and isinstance(payload.get("data"), (dict, list)):
            return payload["data"]
        return payload

    def quote_exact_input(self, asset_in: str, asset_out: str, amount: float) -> SwapQuote:
        data = self._get_json(
            "/v1/trade/quote",
            {"tokenIn": asset_in, "tokenOut": asset_out, "amountIn": str(amount)},
        )
        if not isinstance(data, dict):
            raise SourceUnavailableError(f"Unexpected quote response type: {type(data).__name__}")
        out_amount = to_price(_first(data, "outTokenAmount", "amountOut"))
        if out_amount is None:
            raise SourceUnavailableError(f"Quote {asset_in}->{asset_out} returned no output amount")
        impact = _first(data, "priceImpact")
        fee = _first(data, "feeTier", "currentFee", "fee")
        return SwapQuote(
            asset_in=asset_in,
            asset_out=asset_out,
            amount_in=float(amount),
            out_amount=out_amount,
            price_impact=float(impact) if impact is not None else None,
            fee_tier=int(fee) if fee is not None else None,
        )

    def get_user_assets(self, address: str) -> List[UserAsset]:
        data = self._get_json("/user/assets", {"address": address, "page": 1, "limit": 20})
        tokens = data.get("tokens") if isinstance(data, dict) else data
        if not isinstance(tokens, list):
            raise SourceUnavailableError(f"Unexpected assets response type: {type(tokens).__name__}")
        assets: List[UserAsset] = []
        for item in tokens:
            if not isinstance(item, dict) or not item.get("symbol"):
                continue
            quantity = _first(item, "quantity", "balance")
            decimals = item.get("decimals")
            assets.append(
                UserAsset(
                    symbol=str(item["symbol"]),
                    quantity=float(quantity) if quantity is not None else 0.0,
                    decimals=int(decimals) if decimals is not None else None,
                    verified=bool(_first(item, "verify", "verified")),
                    name=item.get("name"),
                )
            )
        return assets
