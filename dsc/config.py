"""Configuration loader: reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path
from typing import Any, Mapping, Optional

import yaml
from dotenv import load_dotenv

from .core import Asset, CollateralCustody, ConfigurationError, DebtToken, PriceFeed
from .engine import DSCEngine

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class EngineConfig:
    name: str = "main"
    holder: str = "dsc_engine"
    staleness_timeout_seconds: int = 3600

    @property
    def staleness_timeout(self) -> timedelta:
        return timedelta(seconds=self.staleness_timeout_seconds)


@dataclass(frozen=True)
class CollateralConfig:
    assets: tuple[str, ...] = ()
    price_feeds: tuple[str, ...] = ()


@dataclass(frozen=True)
class AppConfig:
    engine: EngineConfig = field(default_factory=EngineConfig)
    collateral: CollateralConfig = field(default_factory=CollateralConfig)


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


def _build_engine_config(raw: dict[str, Any]) -> EngineConfig:
    try:
        timeout = int(raw.get("staleness_timeout_seconds", 3600))
    except (TypeError, ValueError) as e:
        raise ConfigurationError(f"staleness_timeout_seconds must be an integer: {e}") from e
    return EngineConfig(
        name=str(raw.get("name", "main")),
        holder=str(raw.get("holder", "dsc_engine")),
        staleness_timeout_seconds=timeout,
    )


def _build_collateral_config(raw: dict[str, Any]) -> CollateralConfig:
    return CollateralConfig(
        assets=tuple(str(a) for a in raw.get("assets") or []),
        price_feeds=tuple(str(f) for f in raw.get("price_feeds") or []),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def parse_config(raw: Optional[dict[str, Any]]) -> AppConfig:
    """Build and validate an AppConfig from an already-parsed mapping."""
    raw = _interpolate_env(raw or {})
    cfg = AppConfig(
        engine=_build_engine_config(raw.get("engine") or {}),
        collateral=_build_collateral_config(raw.get("collateral") or {}),
    )
    _validate(cfg)
    return cfg


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate engine configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (one level up from this package).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f)

    cfg = parse_config(raw)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def build_engine(
    cfg: AppConfig,
    feeds: Mapping[str, PriceFeed],
    custody: CollateralCustody,
    debt_token: DebtToken,
    **kwargs: Any,
) -> DSCEngine:
    """Construct a DSCEngine, resolving each configured feed id in ``feeds``."""
    assets = []
    for asset_id, feed_id in zip(cfg.collateral.assets, cfg.collateral.price_feeds):
        if feed_id not in feeds:
            raise ConfigurationError(f"Asset '{asset_id}' references unknown price feed '{feed_id}'")
        assets.append(Asset(asset_id=asset_id, feed=feeds[feed_id], feed_id=feed_id))
    return DSCEngine(
        assets,
        custody,
        debt_token,
        name=cfg.engine.name,
        holder=cfg.engine.holder,
        staleness_timeout=cfg.engine.staleness_timeout,
        **kwargs,
    )


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    collateral = cfg.collateral
    if not collateral.assets:
        raise ConfigurationError("At least one collateral asset must be configured")
    if len(collateral.assets) != len(collateral.price_feeds):
        raise ConfigurationError(
            "Assets and price feeds must be the same length: "
            f"{len(collateral.assets)} != {len(collateral.price_feeds)}"
        )
    if len(set(collateral.assets)) != len(collateral.assets):
        raise ConfigurationError(f"Duplicate collateral asset in {list(collateral.assets)}")
    for asset_id, feed_id in zip(collateral.assets, collateral.price_feeds):
        if not asset_id:
            raise ConfigurationError("Collateral asset id cannot be empty")
        if not feed_id:
            raise ConfigurationError(f"Asset '{asset_id}' has no price feed")
    if cfg.engine.staleness_timeout_seconds <= 0:
        raise ConfigurationError(
            f"staleness_timeout_seconds must be positive, got {cfg.engine.staleness_timeout_seconds}"
        )
    if not cfg.engine.holder:
        raise ConfigurationError("Engine holder cannot be empty")
