"""
gala_pricing: multi-source price aggregation and resilience for a GalaChain DEX bot.

Prices from CoinGecko, CoinMarketCap and GalaChain DEX quotes are fetched in
parallel, reconciled, cached, and gated on freshness before any trade.
"""

from __future__ import annotations

from ._version import __version__

__all__ = ["__version__"]
