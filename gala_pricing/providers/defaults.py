"""
Default source registry configuration.

Registers built-in sources and builds SourceConfig objects from config.yaml.
To add a new source, register it here and give it a ``sources.<id>`` section.
"""
from __future__ import annotations

import logging
from typing import Dict, List, Optional

from .. import config as settings
from .dex.client import DexClient
from .dex.galachain import GalaChainSource
from .market.coingecko import CoinGeckoSource
from .market.coinmarketcap import CoinMarketCapSource
from .registry import SourceRegistry
from .assets import AssetCatalog
from .resilience import RetryConfig
from .base import SourceConfig

logger = logging.getLogger(__name__)


def source_configs(cfg: Optional[dict] = None) -> Dict[str, SourceConfig]:
    """SourceConfig per configured source id, in config declaration order."""
    out: Dict[str, SourceConfig] = {}
    for source_id in settings.source_ids(cfg):
        raw = settings.source_settings(source_id, cfg)
        out[source_id] = SourceConfig(
            source_id=source_id,
            enabled=bool(raw.get("enabled", True)),
            requests_per_minute=int(raw.get("requests_per_minute", 60)),
            priority=int(raw.get("priority", 100)),
        )
    return out


def retry_config(cfg: Optional[dict] = None) -> RetryConfig:
    r = settings.resilience_settings(cfg)
    return RetryConfig(
        max_retries=int(r["max_retries"]),
        base_delay_s=float(r["base_delay_s"]),
        backoff_multiplier=float(r["backoff_multiplier"]),
        max_delay_s=float(r["max_delay_s"]),
    )


def fetch_deadline_s(cfg: Optional[dict] = None, catalog: Optional[AssetCatalog] = None) -> float:
    """
    Fetch deadline: the configured value raised to the slowest source's worst-case
    retry budget, or that budget itself when none is configured.

    Market sources make one HTTP request per attempt. The on-chain source makes
    one quote per non-stablecoin asset, so its attempt can take that many timeouts.
    """
    configured = settings.fetch_deadline_s(cfg)
    timeout = settings.http_timeout_s(cfg)
    calls = 1
    if catalog is not None and settings.source_settings("galachain", cfg).get("enabled", True):
        calls = max(calls, sum(1 for a in catalog.asset_ids if not catalog.is_stablecoin(a)))
    budget = retry_config(cfg).budget_s(timeout * calls)
    if configured is None:
        return budget
    if configured < budget:
        logger.warning(
            "fetch.deadline_s=%.1f is below the %.1fs retry budget (%d call(s) x %.1fs per attempt); using %.1fs",
            configured, budget, calls, timeout, budget,
        )
        return budget
    return configured


def create_default_registry(client: Optional[DexClient], cfg: Optional[dict] = None) -> SourceRegistry:
    """Create a registry with all built-in sources. GalaChain needs a DEX client."""
    timeout = settings.http_timeout_s(cfg)
    cg = settings.source_settings("coingecko", cfg)
    cmc = settings.source_settings("coinmarketcap", cfg)

    registry = SourceRegistry()
    registry.register(
        "coingecko", CoinGeckoSource,
        base_url=cg.get("base_url") or "https://api.coingecko.com/api/v3", http_timeout_s=timeout,
    )
    registry.register(
        "coinmarketcap", CoinMarketCapSource,
        api_key=cmc.get("api_key"),
        base_url=cmc.get("base_url") or "https://pro-api.coinmarketcap.com/v1", http_timeout_s=timeout,
    )
    if client is not None:
        registry.register("galachain", GalaChainSource, client=client)
    else:
        logger.warning("No DEX client supplied; galachain source not registered")
    return registry


def ordered_source_ids(configs: Dict[str, SourceConfig], priority: List[str]) -> List[str]:
    """Priority list first, then remaining sources by their configured priority number."""
    rest = sorted((c for c in configs.values() if c.source_id not in priority), key=lambda c: c.priority)
    return [s for s in priority if s in configs] + [c.source_id for c in rest]
