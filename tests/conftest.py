"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from flt.config import (
    AppConfig,
    AssetConfig,
    LeverageConfig,
    MarketConfig,
    PairConfig,
    PriceOracleConfig,
    PythConfig,
    TokenConfig,
)
from flt.services.deployment import Deployment, deploy

WETH = 10**18
USDC = 10**6
SHARE = 10**18


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_token_config() -> TokenConfig:
    return TokenConfig(
        name="ETH 2x Leverage Risedle",
        symbol="ETHRISE",
        owner="owner",
        fee_recipient="treasury",
        collateral=AssetConfig("WETH", 18),
        debt=AssetConfig("USDC", 6),
    )


@pytest.fixture()
def sample_leverage_config() -> LeverageConfig:
    return LeverageConfig(
        target_leverage_ratio=2.0,
        min_leverage_ratio=1.7,
        max_leverage_ratio=2.3,
        max_drift_ratio=0.2,
        max_incentive_ratio=0.05,
        fee_rate_bps=10,
        max_shares=1_000_000.0,
    )


@pytest.fixture()
def sample_pyth_config() -> PythConfig:
    return PythConfig(
        hermes_url="https://hermes.example.com/v2/updates/price/latest",
        feeds={"WETH": "aaa111", "USDC": "ccc333"},
    )


@pytest.fixture()
def sample_app_config(
    sample_token_config: TokenConfig,
    sample_leverage_config: LeverageConfig,
    sample_pyth_config: PythConfig,
) -> AppConfig:
    return AppConfig(
        token=sample_token_config,
        leverage=sample_leverage_config,
        market=MarketConfig(collateral_factor=0.8, liquidity=10_000_000.0),
        pair=PairConfig(collateral_reserve=10_000.0),
        price_oracle=PriceOracleConfig(
            provider="static",
            eth_symbol="WETH",
            static={"WETH": 400.0, "USDC": 1.0},
            pyth=sample_pyth_config,
        ),
    )


# ---------------------------------------------------------------------------
# Deployment fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def deployment(sample_app_config: AppConfig) -> Deployment:
    """WETH/USDC deployment priced at 400 USDC per WETH, not yet initialized."""
    return deploy(sample_app_config)


@pytest.fixture()
def open_at() -> Callable[[Deployment, int, int, int], None]:
    """Initialize a deployment with explicit amounts, pre-funding the shortfall."""

    def _open(dep: Deployment, collateral_amount: int, debt_amount: int, shares: int) -> None:
        engine = dep.engine
        repay = dep.pair.quote_amount_in(dep.debt.symbol, dep.collateral.symbol, collateral_amount)
        prefund = max(0, repay - debt_amount)
        dep.faucet(engine.owner, dep.debt.symbol, prefund)
        dep.transfer_in(engine.owner, dep.debt.symbol, prefund)
        engine.initialize(engine.owner, collateral_amount, debt_amount, shares)

    return _open


@pytest.fixture()
def opened(deployment: Deployment, open_at) -> Deployment:
    """10 WETH against 2000 USDC (2x), 20 shares held by the owner."""
    open_at(deployment, 10 * WETH, 2000 * USDC, 20 * SHARE)
    return deployment


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    token:
      name: ETH 2x Leverage Risedle
      symbol: ETHRISE
      owner: owner
      fee_recipient: treasury
      collateral: {symbol: WETH, decimals: 18}
      debt: {symbol: USDC, decimals: 6}
    leverage:
      target_leverage_ratio: 2.0
      min_leverage_ratio: 1.7
      max_leverage_ratio: 2.3
      max_drift_ratio: 0.2
      max_incentive_ratio: 0.05
      fee_rate_bps: 10
      max_shares: 1000000
    market:
      collateral_factor: 0.8
      liquidity: 10000000
    pair:
      collateral_reserve: 10000
    price_oracle:
      provider: static
      eth_symbol: WETH
      static: {WETH: 400.0, USDC: 1.0}
      pyth:
        hermes_url: "https://hermes.example.com"
        feeds: {WETH: "aaa", USDC: "ccc"}
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file


@pytest.fixture()
def sample_prices() -> dict[str, float]:
    return {"WETH": 400.0, "USDC": 1.0}
