"""
Reconciliation, caching, freshness, and the aggregator that ties them together.
"""
from __future__ import annotations

from .aggregator import PriceAggregator
from .cache import PricingCaches, TTLCache
from .freshness import FreshnessGate
from .history import PriceHistory
from .reconcile import AVERAGE_SOURCE, PriceReconciler

__all__ = [
    "AVERAGE_SOURCE",
    "FreshnessGate",
    "PriceAggregator",
    "PriceHistory",
    "PriceReconciler",
    "PricingCaches",
    "TTLCache",
]
