"""Scripted walkthrough of a position's lifecycle against simulated venues."""
from __future__ import annotations

import logging
from typing import Any

from ..engine import ONE_SHARE
from ..units import WAD, bps, mul_wad
from .deployment import Deployment

logger = logging.getLogger(__name__)

USER = "alice"
REBALANCER = "keeper"


def open_position(deployment: Deployment, collateral_amount: int, nav: int) -> None:
    """Initialize the position at its target leverage with share price ``nav``."""
    engine = deployment.engine
    debt_amount, shares = engine.ledger.plan_initialize(collateral_amount, nav)
    repay = deployment.pair.quote_amount_in(
        deployment.debt.symbol, deployment.collateral.symbol, collateral_amount
    )
    prefund = max(0, repay - debt_amount)
    owner = engine.owner
    deployment.faucet(owner, deployment.debt.symbol, prefund)
    deployment.transfer_in(owner, deployment.debt.symbol, prefund)
    engine.initialize(owner, collateral_amount, debt_amount, shares)


def mint_cost_via_debt(deployment: Deployment, shares: int) -> int:
    """Debt tokens a minter must transfer in to mint ``shares``."""
    engine = deployment.engine
    collateral_amount, debt_amount = engine.ledger.mint_requirements(shares)
    repay = deployment.pair.quote_amount_in(
        deployment.debt.symbol, deployment.collateral.symbol, collateral_amount
    )
    used = repay - debt_amount
    return used + bps(used, engine.position.fee_rate_bps)


def run_scenario(deployment: Deployment, collateral_amount: int, nav: int) -> list[Any]:
    """Open, mint, burn, shock the price down and rebalance once."""
    engine = deployment.engine
    debt = deployment.debt.symbol
    collateral = deployment.collateral.symbol

    open_position(deployment, collateral_amount, nav)

    shares = engine.position.total_shares // 10
    cost = mint_cost_via_debt(deployment, shares)
    deployment.faucet(USER, debt, cost)
    deployment.transfer_in(USER, debt, cost)
    engine.mint_via_debt(shares, USER)

    deployment.share.transfer(USER, engine.address, shares // 2)
    engine.burn_via_debt(USER)

    # A 15% drop in the collateral price pushes leverage above the band.
    shocked = deployment.oracle.price(collateral) * 85 // 100
    deployment.oracle.set_price(collateral, shocked)
    leverage_ratio = engine.leverage_ratio()
    logger.info("Leverage ratio after price shock: %.4f", leverage_ratio / WAD)

    if leverage_ratio > engine.position.max_leverage_ratio:
        step = (leverage_ratio - engine.position.target_leverage_ratio) // 2
        amount_in = mul_wad(step, engine.ledger.equity()) // 2
        deployment.faucet(REBALANCER, debt, amount_in)
        deployment.transfer_in(REBALANCER, debt, amount_in)
        engine.leverage_down(REBALANCER)
    elif leverage_ratio < engine.position.min_leverage_ratio:
        step = (engine.position.target_leverage_ratio - leverage_ratio) // 2
        value_in = mul_wad(step, engine.ledger.equity()) // 2
        amount_in = deployment.oracle.value(debt, collateral, value_in)
        deployment.faucet(REBALANCER, collateral, amount_in)
        deployment.transfer_in(REBALANCER, collateral, amount_in)
        engine.leverage_up(REBALANCER)

    return list(engine.events)


def describe(deployment: Deployment) -> dict[str, float]:
    """Human-readable snapshot of the ledger views."""
    engine = deployment.engine
    pos = engine.position
    col_unit = deployment.collateral.unit
    debt_unit = deployment.debt.unit
    return {
        "total_shares": pos.total_shares / ONE_SHARE,
        "total_collateral": pos.total_collateral / col_unit,
        "total_debt": pos.total_debt / debt_unit,
        "collateral_per_share": engine.collateral_per_share() / col_unit,
        "debt_per_share": engine.debt_per_share() / debt_unit,
        "price": engine.price() / debt_unit,
        "leverage_ratio": engine.leverage_ratio() / WAD,
    }
