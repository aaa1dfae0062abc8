"""Configuration loader: reads an engine YAML file, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping

import yaml

from .core import CollateralToken, ConfigMismatch, DebtToken, PriceFeed, ORACLE_TIMEOUT
from .liquidation import LiquidationEngine

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetConfig:
    address: str = ""
    price_feed: str = ""


@dataclass(frozen=True)
class OracleConfig:
    timeout_seconds: int = int(ORACLE_TIMEOUT.total_seconds())

    @property
    def timeout(self) -> timedelta:
        return timedelta(seconds=self.timeout_seconds)


@dataclass(frozen=True)
class EngineConfig:
    engine_address: str = "engine"
    debt_token: str = ""
    collateral: tuple[AssetConfig, ...] = ()
    oracle: OracleConfig = field(default_factory=OracleConfig)

    @property
    def collateral_addresses(self) -> tuple[str, ...]:
        return tuple(a.address for a in self.collateral)

    @property
    def price_feed_refs(self) -> tuple[str, ...]:
        return tuple(a.price_feed for a in self.collateral)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_collateral(raw: list[dict[str, Any]]) -> tuple[AssetConfig, ...]:
    assets: list[AssetConfig] = []
    for a in raw:
        assets.append(
            AssetConfig(
                address=str(a.get("address", "")),
                price_feed=str(a.get("price_feed", "")),
            )
        )
    return tuple(assets)


def _build_oracle(raw: dict[str, Any]) -> OracleConfig:
    return OracleConfig(
        timeout_seconds=int(raw.get("timeout_seconds", OracleConfig.timeout_seconds)),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path) -> EngineConfig:
    """Load and validate engine configuration from YAML.

    Expected layout::

        engine_address: engine
        debt_token: DSC
        collateral:
          - address: WETH
            price_feed: ETH/USD
        oracle:
          timeout_seconds: 10800
    """
    config_path = Path(config_path)
    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = EngineConfig(
        engine_address=str(raw.get("engine_address", "engine")),
        debt_token=str(raw.get("debt_token", "")),
        collateral=_build_collateral(raw.get("collateral", [])),
        oracle=_build_oracle(raw.get("oracle", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: EngineConfig) -> None:
    """Raise on invalid configuration."""
    if not cfg.debt_token:
        raise ValueError("A debt token must be configured")
    if not cfg.engine_address:
        raise ValueError("engine_address cannot be empty")
    if cfg.oracle.timeout_seconds <= 0:
        raise ValueError(f"Oracle timeout must be positive, got {cfg.oracle.timeout_seconds}")

    seen: set[str] = set()
    for asset in cfg.collateral:
        if not asset.address:
            raise ValueError("Collateral entry has no address")
        if not asset.price_feed:
            raise ConfigMismatch(f"Collateral '{asset.address}' has no price feed")
        if asset.address in seen:
            raise ConfigMismatch(f"Collateral '{asset.address}' listed twice")
        seen.add(asset.address)


def build_engine(
    cfg: EngineConfig,
    tokens: Mapping[str, CollateralToken],
    feeds: Mapping[str, PriceFeed],
    debt_token: DebtToken,
    **kwargs: Any,
) -> LiquidationEngine:
    """Resolve config references against live collaborators and build the engine.

    Args:
        cfg: Loaded configuration.
        tokens: Collateral token collaborators keyed by address.
        feeds: Price feeds keyed by the references used in ``cfg``.
        debt_token: Debt token collaborator; its address must match ``cfg.debt_token``.
        **kwargs: Passed through to ``LiquidationEngine`` (e.g. ``initial_time``).
    """
    if debt_token.address != cfg.debt_token:
        raise ConfigMismatch(
            f"Debt token '{debt_token.address}' does not match configured '{cfg.debt_token}'"
        )
    missing_tokens = [a for a in cfg.collateral_addresses if a not in tokens]
    if missing_tokens:
        raise ConfigMismatch(f"No token collaborator for {missing_tokens}")
    missing_feeds = [f for f in cfg.price_feed_refs if f not in feeds]
    if missing_feeds:
        raise ConfigMismatch(f"No price feed for {missing_feeds}")

    return LiquidationEngine(
        [tokens[a] for a in cfg.collateral_addresses],
        [feeds[f] for f in cfg.price_feed_refs],
        debt_token,
        address=cfg.engine_address,
        oracle_timeout=cfg.oracle.timeout,
        **kwargs,
    )
