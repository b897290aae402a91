"""Off-chain market-data price sources."""
from __future__ import annotations

from .coingecko import CoinGeckoSource
from .coinmarketcap import CoinMarketCapSource

__all__ = ["CoinGeckoSource", "CoinMarketCapSource"]
