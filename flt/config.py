"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class AssetConfig:
    symbol: str = ""
    decimals: int = 18


@dataclass(frozen=True)
class TokenConfig:
    name: str = "ETH 2x Leverage Risedle"
    symbol: str = "ETHRISE"
    owner: str = "owner"
    fee_recipient: str = "treasury"
    collateral: AssetConfig = field(default_factory=lambda: AssetConfig("WETH", 18))
    debt: AssetConfig = field(default_factory=lambda: AssetConfig("USDC", 6))


@dataclass(frozen=True)
class LeverageConfig:
    target_leverage_ratio: float = 2.0
    min_leverage_ratio: float | None = 1.7
    max_leverage_ratio: float | None = 2.3
    max_drift_ratio: float = 0.2
    max_incentive_ratio: float = 0.05
    fee_rate_bps: int = 10
    max_shares: float = 1_000_000.0

    @property
    def has_band(self) -> bool:
        return self.min_leverage_ratio is not None and self.max_leverage_ratio is not None


@dataclass(frozen=True)
class MarketConfig:
    collateral_factor: float = 0.8
    liquidity: float = 10_000_000.0


@dataclass(frozen=True)
class PairConfig:
    collateral_reserve: float = 10_000.0


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feeds: dict[str, str] = field(default_factory=dict)
    timeout: int = 10


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "static"
    eth_symbol: str = "WETH"
    static: dict[str, float] = field(default_factory=dict)
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class AppConfig:
    token: TokenConfig = field(default_factory=TokenConfig)
    leverage: LeverageConfig = field(default_factory=LeverageConfig)
    market: MarketConfig = field(default_factory=MarketConfig)
    pair: PairConfig = field(default_factory=PairConfig)
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)


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


def _build_asset(raw: dict[str, Any], default: AssetConfig) -> AssetConfig:
    return AssetConfig(
        symbol=raw.get("symbol", default.symbol),
        decimals=int(raw.get("decimals", default.decimals)),
    )


def _build_token(raw: dict[str, Any]) -> TokenConfig:
    defaults = TokenConfig()
    return TokenConfig(
        name=raw.get("name", defaults.name),
        symbol=raw.get("symbol", defaults.symbol),
        owner=raw.get("owner", defaults.owner),
        fee_recipient=raw.get("fee_recipient", defaults.fee_recipient),
        collateral=_build_asset(raw.get("collateral", {}), defaults.collateral),
        debt=_build_asset(raw.get("debt", {}), defaults.debt),
    )


def _optional_float(raw: dict[str, Any], key: str, default: float | None) -> float | None:
    if key not in raw:
        return default
    value = raw[key]
    return None if value is None else float(value)


def _build_leverage(raw: dict[str, Any]) -> LeverageConfig:
    defaults = LeverageConfig()
    band = raw.get("band", True)
    return LeverageConfig(
        target_leverage_ratio=float(raw.get("target_leverage_ratio", defaults.target_leverage_ratio)),
        min_leverage_ratio=(
            _optional_float(raw, "min_leverage_ratio", defaults.min_leverage_ratio) if band else None
        ),
        max_leverage_ratio=(
            _optional_float(raw, "max_leverage_ratio", defaults.max_leverage_ratio) if band else None
        ),
        max_drift_ratio=float(raw.get("max_drift_ratio", defaults.max_drift_ratio)),
        max_incentive_ratio=float(raw.get("max_incentive_ratio", defaults.max_incentive_ratio)),
        fee_rate_bps=int(raw.get("fee_rate_bps", defaults.fee_rate_bps)),
        max_shares=float(raw.get("max_shares", defaults.max_shares)),
    )


def _build_market(raw: dict[str, Any]) -> MarketConfig:
    return MarketConfig(
        collateral_factor=float(raw.get("collateral_factor", 0.8)),
        liquidity=float(raw.get("liquidity", 10_000_000.0)),
    )


def _build_pair(raw: dict[str, Any]) -> PairConfig:
    return PairConfig(collateral_reserve=float(raw.get("collateral_reserve", 10_000.0)))


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "static"),
        eth_symbol=raw.get("eth_symbol", PriceOracleConfig.eth_symbol),
        static={k: float(v) for k, v in raw.get("static", {}).items()},
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feeds=dict(pyth_raw.get("feeds", {})),
            timeout=int(pyth_raw.get("timeout", PythConfig.timeout)),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate application configuration from YAML + .env.

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
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        token=_build_token(raw.get("token", {})),
        leverage=_build_leverage(raw.get("leverage", {})),
        market=_build_market(raw.get("market", {})),
        pair=_build_pair(raw.get("pair", {})),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
    )

    _validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    token = cfg.token
    if not token.owner:
        raise ValueError("token.owner must be set")
    if not token.fee_recipient:
        raise ValueError("token.fee_recipient must be set")
    if token.collateral.symbol == token.debt.symbol:
        raise ValueError("collateral and debt must be different assets")

    lev = cfg.leverage
    if lev.target_leverage_ratio <= 1.0:
        raise ValueError("target_leverage_ratio must be greater than 1")
    if lev.has_band:
        if not 1.0 < lev.min_leverage_ratio <= lev.target_leverage_ratio <= lev.max_leverage_ratio:
            raise ValueError(
                "leverage band must satisfy 1 < min <= target <= max, got "
                f"{lev.min_leverage_ratio} / {lev.target_leverage_ratio} / {lev.max_leverage_ratio}"
            )
    if lev.max_drift_ratio <= 0:
        raise ValueError("max_drift_ratio must be positive")
    if not 0 <= lev.max_incentive_ratio < 1:
        raise ValueError("max_incentive_ratio must be in [0, 1)")
    if not 0 <= lev.fee_rate_bps < 10_000:
        raise ValueError("fee_rate_bps must be in [0, 10000)")
    if lev.max_shares <= 0:
        raise ValueError("max_shares must be positive")

    if not 0 < cfg.market.collateral_factor < 1:
        raise ValueError("collateral_factor must be in (0, 1)")

    oracle = cfg.price_oracle
    if oracle.provider not in ("static", "pyth"):
        raise ValueError(f"Unknown price oracle provider '{oracle.provider}'")
    if oracle.provider == "static":
        required = {token.collateral.symbol, token.debt.symbol, oracle.eth_symbol}
        missing = sorted(required - set(oracle.static))
        if missing:
            raise ValueError(f"Static price oracle is missing prices for {missing}")
    elif not oracle.pyth.feeds:
        raise ValueError("Pyth price oracle has no feeds configured")
