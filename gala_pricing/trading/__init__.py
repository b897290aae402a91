"""Quotes, balances, and the freshness-guarded swap path."""
from __future__ import annotations

from .executor import SwapRequest, TradeExecutor
from .quotes import BalanceService, QuoteService

__all__ = ["BalanceService", "QuoteService", "SwapRequest", "TradeExecutor"]
