"""
Cached, breaker-guarded SDK lookups: swap quotes and wallet balances.

Quotes are the most execution-sensitive data and get the shortest TTL.
"""
from __future__ import annotations

import logging
import math
from typing import Any, Dict, List

from ..core.errors import InvalidRequestError
from ..pricing.cache import TTLCache
from ..providers.dex.client import DexClient, SwapQuote, UserAsset
from ..providers.resilience import CircuitBreakerRegistry

logger = logging.getLogger(__name__)

QUOTE_DEPENDENCY = "sdk.quote"
BALANCE_DEPENDENCY = "sdk.balances"

_TEST_TOKEN_MARKERS = ("TEST", "DEXT")


def positive_amount(amount: Any) -> float:
    """Parse a trade amount; anything but a positive finite number is an InvalidRequestError."""
    try:
        value = float(amount)
    except (TypeError, ValueError):
        raise InvalidRequestError(f"Invalid amountIn: {amount!r}") from None
    if not (math.isfinite(value) and value > 0):
        raise InvalidRequestError(f"Invalid amountIn: must be positive and finite, got {amount!r}")
    return value


def quote_cache_key(asset_in: str, asset_out: str, amount: float) -> str:
    return f"quote:{asset_in}:{asset_out}:{amount}"


def normalize_address(address: str) -> str:
    address = (address or "").strip()
    if not address:
        raise InvalidRequestError("Wallet address required")
    return address if address.startswith("eth|") else f"eth|{address}"


class QuoteService:
    def __init__(self, client: DexClient, cache: TTLCache, breakers: CircuitBreakerRegistry) -> None:
        self._client = client
        self._cache = cache
        self._breakers = breakers

    def get_quote(self, asset_in: str, asset_out: str, amount: Any) -> SwapQuote:
        value = positive_amount(amount)
        if not asset_in or not asset_out or asset_in == asset_out:
            raise InvalidRequestError("tokenIn and tokenOut must be two different assets")

        key = quote_cache_key(asset_in, asset_out, value)
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        quote = self._breakers.execute(QUOTE_DEPENDENCY, self._client.quote_exact_input, asset_in, asset_out, value)
        self._cache.set(key, quote)
        return quote

    def fresh_quote(self, asset_in: str, asset_out: str, amount: float) -> SwapQuote:
        """Uncached quote for execution paths."""
        return self._breakers.execute(QUOTE_DEPENDENCY, self._client.quote_exact_input, asset_in, asset_out, amount)


class BalanceService:
    def __init__(self, client: DexClient, cache: TTLCache, breakers: CircuitBreakerRegistry) -> None:
        self._client = client
        self._cache = cache
        self._breakers = breakers

    def get_balances(self, address: str) -> List[UserAsset]:
        formatted = normalize_address(address)
        key = f"balance:{formatted}"
        cached = self._cache.get(key)
        if cached is not None:
            return cached
        assets = self._breakers.execute(BALANCE_DEPENDENCY, self._client.get_user_assets, formatted)
        balances = [a for a in assets if not _is_test_token(a)]
        logger.debug("Balances for %s: %d tokens (%d filtered)", formatted, len(balances), len(assets) - len(balances))
        self._cache.set(key, balances)
        return balances

    def as_payload(self, address: str) -> Dict[str, Any]:
        balances = self.get_balances(address)
        return {"balances": [b.to_dict() for b in balances], "count": len(balances)}


def _is_test_token(asset: UserAsset) -> bool:
    symbol = asset.symbol.upper()
    if any(marker in symbol for marker in _TEST_TOKEN_MARKERS):
        return True
    if asset.name and "test" in asset.name.lower():
        return True
    return not asset.verified
