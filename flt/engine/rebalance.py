"""Sizing of leverage-up and leverage-down trades.

A rebalancer hands the position one asset and receives the other at fair
value plus an incentive that grows with the distance outside the band:

    incentive_ratio = min(max_incentive, drift * max_incentive / max_drift)

Each trade may move the leverage ratio at most half-way to the target, so
no single call can overshoot it:

    step          = |target - leverage_ratio| / 2
    max_amount_in = step * equity          (debt units)

The rebalance fee is carved out of the incentive (discount model), so the
rebalancer never receives less than fair value.
"""
from __future__ import annotations

from ..errors import AmountInTooHigh, AmountInTooLow, NoNeedToRebalance, SlippageTooHigh
from ..models import Operation, OperationKind, Position
from ..units import bps, mul_wad
from .ledger import PositionLedger


def incentive_ratio(drift: int, max_incentive: int, max_drift: int) -> int:
    if max_drift <= 0:
        return max_incentive
    return min(max_incentive, drift * max_incentive // max_drift)


def split_incentive(fair_value: int, ratio: int, fee_rate_bps: int) -> tuple[int, int]:
    """Return ``(incentive, fee)`` with the fee taken out of the incentive."""
    incentive = mul_wad(fair_value, ratio)
    fee = min(incentive, bps(fair_value, fee_rate_bps))
    return incentive, fee


def plan_leverage_up(
    ledger: PositionLedger,
    rebalancer: str,
    recipient: str,
    amount_in: int,
    min_incentive: int = 0,
) -> Operation:
    """Rebalancer sells collateral; the position borrows debt to pay for it."""
    pos: Position = ledger.position
    leverage_ratio = ledger.leverage_ratio()
    if leverage_ratio >= pos.min_leverage_ratio:
        raise NoNeedToRebalance(
            f"leverage ratio {leverage_ratio} is not below {pos.min_leverage_ratio}"
        )
    if amount_in <= 0:
        raise AmountInTooLow("no collateral was transferred in")

    step = (pos.target_leverage_ratio - leverage_ratio) // 2
    max_in_value = mul_wad(step, ledger.equity())
    max_amount_in = ledger.oracle.value(ledger.debt, ledger.collateral, max_in_value)
    if amount_in > max_amount_in:
        raise AmountInTooHigh(f"amount in {amount_in} exceeds cap {max_amount_in}")

    fair_value = ledger.oracle.value(ledger.collateral, ledger.debt, amount_in)
    ratio = incentive_ratio(
        pos.min_leverage_ratio - leverage_ratio, pos.max_incentive_ratio, pos.max_drift_ratio
    )
    incentive, fee = split_incentive(fair_value, ratio, pos.fee_rate_bps)
    if incentive - fee < min_incentive:
        raise SlippageTooHigh(f"incentive {incentive - fee} below minimum {min_incentive}")

    borrow_amount = fair_value + incentive
    return Operation(
        kind=OperationKind.LEVERAGE_UP,
        sender=rebalancer,
        recipient=recipient,
        token_in=ledger.collateral,
        token_out=ledger.debt,
        amount_in=amount_in,
        amount_out=borrow_amount - fee,
        fee_amount=fee,
        borrow_amount=borrow_amount,
        collateral_amount=amount_in,
        debt_amount=borrow_amount,
    )


def plan_leverage_down(
    ledger: PositionLedger,
    rebalancer: str,
    recipient: str,
    amount_in: int,
    min_incentive: int = 0,
) -> Operation:
    """Rebalancer repays debt; the position redeems collateral to pay for it."""
    pos: Position = ledger.position
    leverage_ratio = ledger.leverage_ratio()
    if leverage_ratio <= pos.max_leverage_ratio:
        raise NoNeedToRebalance(
            f"leverage ratio {leverage_ratio} is not above {pos.max_leverage_ratio}"
        )
    if amount_in <= 0:
        raise AmountInTooLow("no debt was transferred in")

    step = (leverage_ratio - pos.target_leverage_ratio) // 2
    max_amount_in = min(mul_wad(step, ledger.equity()), pos.total_debt)
    if amount_in > max_amount_in:
        raise AmountInTooHigh(f"amount in {amount_in} exceeds cap {max_amount_in}")

    fair_value = ledger.oracle.value(ledger.debt, ledger.collateral, amount_in)
    ratio = incentive_ratio(
        leverage_ratio - pos.max_leverage_ratio, pos.max_incentive_ratio, pos.max_drift_ratio
    )
    incentive, fee = split_incentive(fair_value, ratio, pos.fee_rate_bps)
    if incentive - fee < min_incentive:
        raise SlippageTooHigh(f"incentive {incentive - fee} below minimum {min_incentive}")

    redeem_amount = fair_value + incentive
    if redeem_amount >= pos.total_collateral:
        raise AmountInTooHigh("trade would redeem the whole collateral balance")
    return Operation(
        kind=OperationKind.LEVERAGE_DOWN,
        sender=rebalancer,
        recipient=recipient,
        token_in=ledger.debt,
        token_out=ledger.collateral,
        amount_in=amount_in,
        amount_out=redeem_amount - fee,
        fee_amount=fee,
        repay_amount=amount_in,
        collateral_amount=redeem_amount,
        debt_amount=amount_in,
    )
