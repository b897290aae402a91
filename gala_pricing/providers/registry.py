"""
Source registry: central catalog of available price sources.

Sources register a factory under their source id. The registry is
config-driven: SourceConfig objects decide which sources are enabled and
their quotas, and the build order follows the reconcile priority list.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional

from .base import PriceSource, SourceConfig

logger = logging.getLogger(__name__)

SourceFactory = Callable[..., PriceSource]


class SourceRegistry:
    """
    Registry mapping source ids to factories/instances.

    Usage:
        registry = SourceRegistry()
        registry.register("coingecko", CoinGeckoSource)
        registry.register("galachain", GalaChainSource, client=dex_client)

        sources = registry.build(configs, catalog=..., rate_limiter=..., breakers=...)
    """

    def __init__(self) -> None:
        self._factories: Dict[str, SourceFactory] = {}
        self._extra_kwargs: Dict[str, Dict[str, Any]] = {}
        self._instances: Dict[str, PriceSource] = {}

    def register(self, source_id: str, factory: SourceFactory, **factory_kwargs: Any) -> None:
        """Register a source factory by id; kwargs are passed on construction."""
        self._factories[source_id] = factory
        self._extra_kwargs[source_id] = dict(factory_kwargs)
        self._instances.pop(source_id, None)
        logger.debug("Registered price source: %s", source_id)

    def register_instance(self, source: PriceSource) -> None:
        """Register an already-built source (tests, custom wiring)."""
        self._instances[source.source_id] = source
        self._factories.setdefault(source.source_id, lambda *a, **k: source)

    @property
    def names(self) -> List[str]:
        return list(self._factories)

    def get(self, source_id: str, config: Optional[SourceConfig] = None, **shared: Any) -> PriceSource:
        """Get or instantiate a source by id."""
        if source_id not in self._instances:
            factory = self._factories.get(source_id)
            if factory is None:
                raise KeyError(f"Unknown price source '{source_id}'. Available: {list(self._factories)}")
            cfg = config or SourceConfig(source_id=source_id)
            self._instances[source_id] = factory(cfg, **shared, **self._extra_kwargs[source_id])
        return self._instances[source_id]

    def build(
        self,
        configs: Dict[str, SourceConfig],
        priority: Optional[List[str]] = None,
        **shared: Any,
    ) -> List[PriceSource]:
        """Build every configured source, ordered by priority list then declaration order."""
        order = list(priority or [])
        order += [name for name in configs if name not in order]
        sources: List[PriceSource] = []
        for name in order:
            if name not in configs:
                continue
            if name not in self._factories:
                logger.warning("No price source registered for configured id %s", name)
                continue
            sources.append(self.get(name, configs[name], **shared))
        return sources
