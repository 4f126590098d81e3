"""Wire a leveraged position and its simulated venues from configuration."""
from __future__ import annotations

import logging
from dataclasses import dataclass

from ..config import AppConfig, LeverageConfig
from ..engine import LeverageEngine
from ..engine.ledger import SHARE_DECIMALS
from ..models import LeverageBand, Position
from ..oracles import OracleAdapter, PythPriceFeed
from ..units import to_units, to_wad
from ..venues import FlashSwapPair, MoneyMarket, Token

logger = logging.getLogger(__name__)

LIQUIDITY_PROVIDER = "liquidity-provider"


@dataclass
class Deployment:
    """Everything one leveraged instrument needs, addressable by symbol."""

    config: AppConfig
    share: Token
    collateral: Token
    debt: Token
    oracle: OracleAdapter
    pair: FlashSwapPair
    market: MoneyMarket
    engine: LeverageEngine

    def token(self, symbol: str) -> Token:
        for token in (self.share, self.collateral, self.debt):
            if token.symbol == symbol:
                return token
        raise KeyError(symbol)

    def faucet(self, account: str, symbol: str, amount: int) -> None:
        """Mint test funds to ``account``."""
        self.token(symbol).mint(account, amount)

    def transfer_in(self, account: str, symbol: str, amount: int) -> None:
        """Move funds into the engine ahead of a transfer-then-call operation."""
        self.token(symbol).transfer(account, self.engine.address, amount)


def build_position(cfg: LeverageConfig) -> Position:
    band = None
    if cfg.has_band:
        band = LeverageBand(
            min_leverage_ratio=to_wad(cfg.min_leverage_ratio),
            max_leverage_ratio=to_wad(cfg.max_leverage_ratio),
            max_drift_ratio=to_wad(cfg.max_drift_ratio),
        )
    return Position(
        target_leverage_ratio=to_wad(cfg.target_leverage_ratio),
        max_incentive_ratio=to_wad(cfg.max_incentive_ratio),
        fee_rate_bps=cfg.fee_rate_bps,
        max_shares=to_units(cfg.max_shares, SHARE_DECIMALS),
        band=band,
    )


def build_oracle(config: AppConfig) -> OracleAdapter:
    """Oracle adapter seeded with the static prices, if any are configured."""
    token = config.token
    decimals = {
        token.collateral.symbol: token.collateral.decimals,
        token.debt.symbol: token.debt.decimals,
    }
    eth_symbol = config.price_oracle.eth_symbol
    decimals.setdefault(eth_symbol, 18)
    oracle = OracleAdapter(decimals, eth_symbol=eth_symbol)
    if config.price_oracle.provider == "static":
        oracle.update_from_usd(config.price_oracle.static)
    return oracle


async def load_prices(oracle: OracleAdapter, config: AppConfig) -> None:
    """Refresh ``oracle`` from Pyth when that provider is configured."""
    if config.price_oracle.provider != "pyth":
        return
    await oracle.refresh(PythPriceFeed(config.price_oracle.pyth))


def deploy(config: AppConfig, oracle: OracleAdapter | None = None) -> Deployment:
    """Create tokens, seed the pair and the market, and construct the engine."""
    token_cfg = config.token
    collateral = Token(token_cfg.collateral.symbol, token_cfg.collateral.decimals)
    debt = Token(token_cfg.debt.symbol, token_cfg.debt.decimals)
    share = Token(token_cfg.symbol, SHARE_DECIMALS, name=token_cfg.name)
    oracle = oracle or build_oracle(config)

    market = MoneyMarket(
        collateral, debt, oracle, to_wad(config.market.collateral_factor)
    )
    cash = to_units(config.market.liquidity, debt.decimals)
    debt.mint(LIQUIDITY_PROVIDER, cash)
    market.fund(LIQUIDITY_PROVIDER, cash)

    pair = FlashSwapPair(collateral, debt)
    collateral_reserve = to_units(config.pair.collateral_reserve, collateral.decimals)
    debt_reserve = oracle.value(collateral.symbol, debt.symbol, collateral_reserve)
    collateral.mint(LIQUIDITY_PROVIDER, collateral_reserve)
    debt.mint(LIQUIDITY_PROVIDER, debt_reserve)
    pair.add_liquidity(LIQUIDITY_PROVIDER, collateral_reserve, debt_reserve)

    engine = LeverageEngine(
        address=token_cfg.symbol.lower(),
        owner=token_cfg.owner,
        fee_recipient=token_cfg.fee_recipient,
        position=build_position(config.leverage),
        share=share,
        collateral=collateral,
        debt=debt,
        oracle=oracle,
        gateway=pair,
        market=market,
    )
    logger.info(
        "Deployed %s (%s/%s) at %s",
        token_cfg.symbol, collateral.symbol, debt.symbol, engine.address,
    )
    return Deployment(
        config=config,
        share=share,
        collateral=collateral,
        debt=debt,
        oracle=oracle,
        pair=pair,
        market=market,
        engine=engine,
    )
