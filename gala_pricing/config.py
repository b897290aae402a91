"""
Load config from config.yaml with optional env overrides.
Single source of truth for source quotas, cache TTLs, thresholds, and trading flags.
Read once at startup; reconfiguration means building a new service.
"""
from __future__ import annotations

import copy
import os
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

# Defaults if no YAML or env
_DEFAULTS: Dict[str, Any] = {
    "sources": {
        "coingecko": {
            "enabled": True,
            "requests_per_minute": 50,
            "priority": 2,
            "base_url": "https://api.coingecko.com/api/v3",
        },
        "coinmarketcap": {
            "enabled": True,
            "requests_per_minute": 30,
            "priority": 1,
            "base_url": "https://pro-api.coinmarketcap.com/v1",
            "api_key": None,
        },
        "galachain": {
            "enabled": True,
            "requests_per_minute": 100,
            "priority": 3,
            "base_url": "https://dex-backend-prod1.defi.gala.com",
        },
    },
    "reconcile": {
        "variance_threshold_pct": 10.0,
        "use_average": True,
        "prefer_external_sources": True,
        "priority": None,
    },
    "cache": {
        "price_ttl_s": 30.0,
        "quote_ttl_s": 10.0,
        "balance_ttl_s": 15.0,
        "max_entries": 100,
    },
    "resilience": {
        "max_retries": 3,
        "base_delay_s": 1.0,
        "backoff_multiplier": 2.0,
        "max_delay_s": 10.0,
        "failure_threshold": 5,
        "recovery_timeout_s": 30.0,
    },
    "freshness": {"threshold_s": 30.0},
    "fetch": {"deadline_s": None, "http_timeout_s": 5.0},
    "history": {"max_points": 100},
    "trading": {"simulation_mode": False, "wallet_address": None},
    "assets": None,
}

EXTERNAL_PRIORITY = ["coinmarketcap", "coingecko", "galachain"]
ONCHAIN_PRIORITY = ["galachain", "coinmarketcap", "coingecko"]

_TRUTHY = {"1", "true", "yes", "on"}


def _config_yaml_path() -> Path:
    """GALA_PRICING_CONFIG wins; otherwise config.yaml at repo root (parent of package dir)."""
    override = os.environ.get("GALA_PRICING_CONFIG", "").strip()
    if override:
        return Path(override)
    return Path(__file__).resolve().parent.parent / "config.yaml"


def _load_yaml() -> dict:
    config_path = _config_yaml_path()
    if not config_path.exists():
        return {}
    with open(config_path, encoding="utf-8") as f:
        data = yaml.safe_load(f)
    return data if isinstance(data, dict) else {}


def _deep_merge(base: dict, override: dict) -> dict:
    out = dict(base)
    for k, v in override.items():
        if k in out and isinstance(out[k], dict) and isinstance(v, dict):
            out[k] = _deep_merge(out[k], v)
        else:
            out[k] = v
    return out


def _env_overrides() -> dict:
    overrides: dict = {}
    cmc_key = os.environ.get("CMC_API_KEY")
    if cmc_key:
        overrides.setdefault("sources", {}).setdefault("coinmarketcap", {})["api_key"] = cmc_key
    gateway = os.environ.get("GALA_PRICING_GATEWAY_URL")
    if gateway:
        overrides.setdefault("sources", {}).setdefault("galachain", {})["base_url"] = gateway
    sim = os.environ.get("GALA_PRICING_SIMULATION_MODE")
    if sim is not None and sim.strip():
        overrides.setdefault("trading", {})["simulation_mode"] = sim.strip().lower() in _TRUTHY
    wallet = os.environ.get("GALA_PRICING_WALLET_ADDRESS")
    if wallet:
        overrides.setdefault("trading", {})["wallet_address"] = wallet
    return overrides


def get_config() -> dict:
    """Return merged config: defaults <- config.yaml <- env."""
    merged = _deep_merge(copy.deepcopy(_DEFAULTS), _load_yaml())
    merged = _deep_merge(merged, _env_overrides())
    return merged


# Convenience accessors. Each takes an optional pre-merged config so a
# composition root can read the file once and hand the dict around.
def _cfg(cfg: Optional[dict]) -> dict:
    return cfg if cfg is not None else get_config()


def source_settings(source_id: str, cfg: Optional[dict] = None) -> Dict[str, Any]:
    return dict(_cfg(cfg)["sources"].get(source_id) or {})


def source_ids(cfg: Optional[dict] = None) -> List[str]:
    return list(_cfg(cfg)["sources"])


def source_priority(cfg: Optional[dict] = None) -> List[str]:
    """Explicit reconcile.priority if set, else derived from prefer_external_sources."""
    rc = _cfg(cfg)["reconcile"]
    explicit = rc.get("priority")
    if explicit:
        return [str(s) for s in explicit]
    return list(EXTERNAL_PRIORITY if rc.get("prefer_external_sources", True) else ONCHAIN_PRIORITY)


def variance_threshold_pct(cfg: Optional[dict] = None) -> float:
    return float(_cfg(cfg)["reconcile"]["variance_threshold_pct"])


def use_average(cfg: Optional[dict] = None) -> bool:
    return bool(_cfg(cfg)["reconcile"]["use_average"])


def cache_ttls(cfg: Optional[dict] = None) -> Dict[str, float]:
    c = _cfg(cfg)["cache"]
    return {
        "prices": float(c["price_ttl_s"]),
        "quotes": float(c["quote_ttl_s"]),
        "balances": float(c["balance_ttl_s"]),
    }


def cache_max_entries(cfg: Optional[dict] = None) -> int:
    return int(_cfg(cfg)["cache"]["max_entries"])


def resilience_settings(cfg: Optional[dict] = None) -> Dict[str, Any]:
    return dict(_cfg(cfg)["resilience"])


def freshness_threshold_s(cfg: Optional[dict] = None) -> float:
    return float(_cfg(cfg)["freshness"]["threshold_s"])


def fetch_deadline_s(cfg: Optional[dict] = None) -> Optional[float]:
    """Explicit fetch deadline, or None to derive it from the retry budget."""
    value = _cfg(cfg)["fetch"].get("deadline_s")
    return float(value) if value is not None else None


def http_timeout_s(cfg: Optional[dict] = None) -> float:
    return float(_cfg(cfg)["fetch"]["http_timeout_s"])


def history_max_points(cfg: Optional[dict] = None) -> int:
    return int(_cfg(cfg)["history"]["max_points"])


def simulation_mode(cfg: Optional[dict] = None) -> bool:
    return bool(_cfg(cfg)["trading"]["simulation_mode"])


def wallet_address(cfg: Optional[dict] = None) -> Optional[str]:
    return _cfg(cfg)["trading"].get("wallet_address") or None


def asset_entries(cfg: Optional[dict] = None) -> Optional[List[Dict[str, Any]]]:
    """Raw asset list from config, or None to use the built-in catalog."""
    entries = _cfg(cfg).get("assets")
    return list(entries) if entries else None
