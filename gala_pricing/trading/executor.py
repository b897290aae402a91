"""
Guarded swap path.

Every swap passes the freshness gate for both assets first; a stale price
raises StalePriceError and nothing is sent. Simulation is an explicit
setting: missing credentials never turn a swap into a simulated success.
"""
from __future__ import annotations

import logging
import math
import uuid
from dataclasses import dataclass
from typing import Optional

from ..core.errors import InvalidRequestError, TradingDisabledError
from ..pricing.aggregator import PriceAggregator
from ..providers.dex.client import SwapReceipt, SwapSubmitter
from ..providers.resilience import NO_RETRY, CircuitBreakerRegistry
from .quotes import QuoteService, normalize_address, positive_amount

logger = logging.getLogger(__name__)

SWAP_DEPENDENCY = "sdk.swap"


@dataclass(frozen=True)
class SwapRequest:
    asset_in: str
    asset_out: str
    amount_in: float
    min_amount_out: Optional[float] = None
    wallet_address: Optional[str] = None


class TradeExecutor:
    def __init__(
        self,
        aggregator: PriceAggregator,
        quotes: QuoteService,
        breakers: CircuitBreakerRegistry,
        *,
        submitter: Optional[SwapSubmitter] = None,
        simulation_mode: bool = False,
        default_wallet: Optional[str] = None,
    ) -> None:
        self._aggregator = aggregator
        self._quotes = quotes
        self._breakers = breakers
        self._submitter = submitter
        self.simulation_mode = bool(simulation_mode)
        self._default_wallet = default_wallet

    @property
    def live_enabled(self) -> bool:
        return self._submitter is not None and not self.simulation_mode

    def execute_swap(self, request: SwapRequest) -> SwapReceipt:
        wallet = normalize_address(request.wallet_address or self._default_wallet or "")
        amount = positive_amount(request.amount_in)
        min_out = request.min_amount_out
        if min_out is not None and not (math.isfinite(min_out) and min_out >= 0):
            raise InvalidRequestError(f"Invalid minAmountOut: {min_out!r}")
        if request.asset_in == request.asset_out:
            raise InvalidRequestError("tokenIn and tokenOut must be two different assets")

        self._aggregator.require_tradeable([request.asset_in, request.asset_out])

        if self.simulation_mode:
            quote = self._quotes.fresh_quote(request.asset_in, request.asset_out, amount)
            logger.info(
                "Simulated swap %s %s -> %s %s",
                amount, request.asset_in, quote.out_amount, request.asset_out,
            )
            return SwapReceipt(
                asset_in=request.asset_in,
                asset_out=request.asset_out,
                amount_in=amount,
                amount_out=quote.out_amount,
                transaction_id=f"SIMULATED_{uuid.uuid4().hex[:16]}",
                simulated=True,
                status="simulated",
            )

        if self._submitter is None:
            raise TradingDisabledError("No swap submitter configured and simulation mode is off")

        logger.info("Submitting swap %s %s -> %s for %s", amount, request.asset_in, request.asset_out, wallet)
        return self._breakers.execute(
            SWAP_DEPENDENCY,
            self._submitter.swap,
            request.asset_in,
            request.asset_out,
            amount,
            min_out,
            wallet,
            retry_config=NO_RETRY,
        )
