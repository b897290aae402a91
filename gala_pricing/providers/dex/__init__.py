"""On-chain (GalaSwap DEX) pricing: client contract and the quoting price source."""
from __future__ import annotations

from .client import DexClient, GSwapHttpClient, SwapQuote, SwapReceipt, SwapSubmitter, UserAsset
from .galachain import GalaChainSource

__all__ = [
    "DexClient",
    "GSwapHttpClient",
    "SwapQuote",
    "SwapReceipt",
    "SwapSubmitter",
    "UserAsset",
    "GalaChainSource",
]
