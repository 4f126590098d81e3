"""Leverage engine: mints, burns and rebalances one leveraged position.

Mint and burn build or unwind leverage inside a flash swap: the engine
computes an ``Operation`` from the ledger and gateway quotes, asks the
gateway for the flash amount, and finishes the trade in
``on_swap_callback`` once the funds have arrived. Rebalances settle the same
way without a flash swap. Every public mutating call runs in a
``UnitOfWork`` so a failure anywhere leaves the position and all venue
balances exactly as they were.
"""
from __future__ import annotations

import logging
import threading
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import replace
from typing import Any

from ..errors import (
    AlreadyInitialized,
    AmountInTooHigh,
    AmountInTooLow,
    AmountOutTooHigh,
    AmountOutTooLow,
    InvalidFlashSwapAmount,
    InvalidFlashSwapType,
    LendingMarketError,
    SlippageTooHigh,
    Unauthorized,
    Uninitialized,
)
from ..interfaces.flash_gateway import FlashSwapGateway
from ..interfaces.lending_market import LendingMarket
from ..interfaces.price_oracle import Oracle
from ..journal import UnitOfWork
from ..models import (
    FLASHABLE_KINDS,
    Burned,
    Initialized,
    MaxSharesUpdated,
    Minted,
    Operation,
    OperationKind,
    Position,
    Rebalanced,
)
from ..units import bps
from ..venues.token import Token
from .ledger import PositionLedger
from .rebalance import plan_leverage_down, plan_leverage_up

logger = logging.getLogger(__name__)


class LeverageEngine:
    """Owner and sole mutator of one leveraged position."""

    def __init__(
        self,
        *,
        address: str,
        owner: str,
        fee_recipient: str,
        position: Position,
        share: Token,
        collateral: Token,
        debt: Token,
        oracle: Oracle,
        gateway: FlashSwapGateway,
        market: LendingMarket,
    ) -> None:
        self.address = address
        self.owner = owner
        self.fee_recipient = fee_recipient
        self.share = share
        self.collateral = collateral
        self.debt = debt
        self.oracle = oracle
        self.gateway = gateway
        self.market = market
        self.ledger = PositionLedger(position, collateral.symbol, debt.symbol, oracle)
        self.events: list[Any] = []

        self._lock = threading.RLock()
        self._busy = False
        self._in_flight: Operation | None = None
        self._handlers: dict[OperationKind, Callable[[Operation], None]] = {
            OperationKind.INITIALIZE: self._settle_initialize,
            OperationKind.MINT: self._settle_mint,
            OperationKind.BURN: self._settle_burn,
            OperationKind.LEVERAGE_UP: self._settle_leverage_up,
            OperationKind.LEVERAGE_DOWN: self._settle_leverage_down,
        }

    @property
    def position(self) -> Position:
        with self._lock:
            return self.ledger.position

    # ------------------------------------------------------------------
    # Views
    # ------------------------------------------------------------------
    # Readers take the operation lock so they block until any operation in
    # flight has committed or rolled back.

    def shares_to_underlying(self, shares: int) -> tuple[int, int]:
        with self._lock:
            return self.ledger.shares_to_underlying(shares)

    def collateral_per_share(self) -> int:
        with self._lock:
            return self.ledger.collateral_per_share()

    def debt_per_share(self) -> int:
        with self._lock:
            return self.ledger.debt_per_share()

    def value(self, shares: int) -> int:
        with self._lock:
            return self.ledger.value(shares)

    def price(self) -> int:
        with self._lock:
            return self.ledger.price()

    def leverage_ratio(self) -> int:
        with self._lock:
            return self.ledger.leverage_ratio()

    # ------------------------------------------------------------------
    # Atomicity
    # ------------------------------------------------------------------

    def _participants(self) -> list[Any]:
        return [
            self.ledger,
            self,
            self.share,
            self.collateral,
            self.debt,
            self.gateway,
            self.market,
        ]

    @contextmanager
    def _atomic(self, label: str) -> Iterator[None]:
        with self._lock:
            if self._busy:
                raise Unauthorized(f"{label} started while another operation is in flight")
            self._busy = True
            try:
                with UnitOfWork(self._participants(), label):
                    yield
            finally:
                self._busy = False
                self._in_flight = None

    def snapshot(self) -> int:
        return len(self.events)

    def restore(self, state: int) -> None:
        del self.events[state:]

    def _emit(self, event: Any) -> None:
        self.events.append(event)
        logger.info("%s", event)

    def _require_initialized(self) -> Position:
        if not self.position.initialized:
            raise Uninitialized()
        return self.position

    # ------------------------------------------------------------------
    # Venue helpers
    # ------------------------------------------------------------------

    @property
    def gateway_address(self) -> str:
        return getattr(self.gateway, "address", str(self.gateway))

    def _check(self, action: str, code: int) -> None:
        if code != 0:
            raise LendingMarketError(action, int(code))

    def _token(self, symbol: str) -> Token:
        for token in (self.collateral, self.debt, self.share):
            if token.symbol == symbol:
                return token
        raise ValueError(f"unknown token {symbol}")

    def _pay(self, symbol: str, recipient: str, amount: int) -> None:
        if amount > 0:
            self._token(symbol).transfer(self.address, recipient, amount)

    def _flash_token(self, kind: OperationKind) -> str:
        if kind is OperationKind.BURN:
            return self.debt.symbol
        return self.collateral.symbol

    def _flash(self, op: Operation) -> None:
        token = self._flash_token(op.kind)
        if token == self.gateway.token0:
            amount0_out, amount1_out = op.borrow_amount, 0
        else:
            amount0_out, amount1_out = 0, op.borrow_amount
        self._in_flight = op
        try:
            self.gateway.swap(self.address, amount0_out, amount1_out, self, op.encode())
        finally:
            self._in_flight = None

    def _synced(self, shares_delta: int = 0, **changes: Any) -> Position:
        """The current position with totals read back from the market."""
        pos = self.position
        return replace(
            pos,
            total_collateral=self.market.balance_of_underlying(self.address),
            total_debt=self.market.borrow_balance_current(self.address),
            total_shares=pos.total_shares + shares_delta,
            **changes,
        )

    def _commit(self, shares_delta: int = 0, **changes: Any) -> None:
        self.ledger.commit(self._synced(shares_delta, **changes))

    # ------------------------------------------------------------------
    # Flash swap callback
    # ------------------------------------------------------------------

    def on_swap_callback(
        self,
        gateway: FlashSwapGateway,
        sender: str,
        amount0: int,
        amount1: int,
        data: bytes,
    ) -> None:
        if gateway is not self.gateway:
            raise Unauthorized("flash swap callback from an unknown gateway")
        if sender != self.address:
            raise Unauthorized(f"flash swap initiated by {sender}, not {self.address}")

        op = Operation.decode(data)
        if op.kind not in FLASHABLE_KINDS:
            raise InvalidFlashSwapType(f"{op.kind.value} does not settle through a flash swap")

        received = amount0 if self._flash_token(op.kind) == gateway.token0 else amount1
        if received != op.borrow_amount:
            raise InvalidFlashSwapAmount(op.borrow_amount, received)
        if op != self._in_flight:
            raise Unauthorized("flash swap payload does not match the operation in flight")

        self._handlers[op.kind](op)

    # ------------------------------------------------------------------
    # Initialize
    # ------------------------------------------------------------------

    def initialize(
        self,
        caller: str,
        collateral_amount: int,
        debt_amount: int,
        share_amount: int,
        recipient: str | None = None,
    ) -> None:
        """Open the position; the caller pre-funds the debt-token shortfall."""
        with self._atomic("initialize"):
            if self.position.initialized:
                raise AlreadyInitialized()
            if caller != self.owner:
                raise Unauthorized(f"{caller} is not the owner")
            if collateral_amount <= 0 or share_amount <= 0 or debt_amount < 0:
                raise AmountInTooLow("initial collateral and shares must be positive")
            if share_amount > self.position.max_shares:
                raise AmountOutTooHigh(f"{share_amount} exceeds max shares")

            for market, code in zip(
                (self.collateral.symbol, self.debt.symbol),
                self.market.enter_markets(self.address, [self.collateral.symbol, self.debt.symbol]),
            ):
                self._check(f"enter_markets({market})", code)

            repay_amount = self.gateway.quote_amount_in(
                self.debt.symbol, self.collateral.symbol, collateral_amount
            )
            prefunded = self.debt.balance_of(self.address)
            if prefunded + debt_amount < repay_amount:
                raise AmountInTooLow(
                    f"pre-funded {prefunded} + borrowed {debt_amount} < repayment {repay_amount}"
                )

            op = Operation(
                kind=OperationKind.INITIALIZE,
                sender=caller,
                recipient=recipient or caller,
                refund_recipient=caller,
                token_in=self.debt.symbol,
                token_out=self.share.symbol,
                amount_in=prefunded,
                amount_out=share_amount,
                refund_amount=prefunded + debt_amount - repay_amount,
                borrow_amount=collateral_amount,
                repay_amount=repay_amount,
                collateral_amount=collateral_amount,
                debt_amount=debt_amount,
            )
            self._flash(op)

    def _settle_initialize(self, op: Operation) -> None:
        self._check("supply", self.market.supply(self.address, op.collateral_amount))
        self._check("borrow", self.market.borrow(self.address, op.debt_amount))
        self._pay(self.debt.symbol, self.gateway_address, op.repay_amount)
        self._pay(self.debt.symbol, op.refund_recipient, op.refund_amount)
        self.share.mint(op.recipient, op.amount_out)
        self._commit(op.amount_out, initialized=True)
        self._emit(
            Initialized(
                initializer=op.sender,
                recipient=op.recipient,
                collateral_amount=op.collateral_amount,
                debt_amount=op.debt_amount,
                shares=op.amount_out,
                refund_amount=op.refund_amount,
            )
        )

    # ------------------------------------------------------------------
    # Mint
    # ------------------------------------------------------------------

    def _check_mint(self, shares: int) -> tuple[int, int]:
        pos = self._require_initialized()
        if shares <= 0:
            raise AmountOutTooLow("shares must be positive")
        if pos.total_shares + shares > pos.max_shares:
            raise AmountOutTooHigh(
                f"minting {shares} would exceed max shares {pos.max_shares}"
            )
        collateral_amount, debt_amount = self.ledger.mint_requirements(shares)
        if collateral_amount == 0:
            raise AmountOutTooLow(f"{shares} shares are worth no collateral")
        return collateral_amount, debt_amount

    def mint_via_debt(self, shares: int, recipient: str, refund_recipient: str | None = None) -> None:
        """Mint ``shares`` paid for with the debt token pre-transferred to the engine."""
        with self._atomic("mint_via_debt"):
            collateral_amount, debt_amount = self._check_mint(shares)
            repay_amount = self.gateway.quote_amount_in(
                self.debt.symbol, self.collateral.symbol, collateral_amount
            )
            if repay_amount < debt_amount:
                raise AmountInTooLow(f"repayment {repay_amount} below debt {debt_amount}")
            amount_in_used = repay_amount - debt_amount
            fee_amount = bps(amount_in_used, self.position.fee_rate_bps)

            amount_in = self.debt.balance_of(self.address)
            if amount_in < amount_in_used + fee_amount:
                raise AmountInTooLow(
                    f"received {amount_in}, required {amount_in_used + fee_amount}"
                )

            self._flash(
                Operation(
                    kind=OperationKind.MINT,
                    recipient=recipient,
                    refund_recipient=refund_recipient or recipient,
                    token_in=self.debt.symbol,
                    token_out=self.share.symbol,
                    amount_in=amount_in,
                    amount_out=shares,
                    fee_amount=fee_amount,
                    refund_amount=amount_in - amount_in_used - fee_amount,
                    borrow_amount=collateral_amount,
                    repay_amount=repay_amount,
                    collateral_amount=collateral_amount,
                    debt_amount=debt_amount,
                )
            )

    def mint_via_collateral(
        self, shares: int, recipient: str, refund_recipient: str | None = None
    ) -> None:
        """Mint ``shares`` paid for with collateral pre-transferred to the engine."""
        with self._atomic("mint_via_collateral"):
            collateral_amount, debt_amount = self._check_mint(shares)
            flash_amount = self.gateway.quote_amount_out(
                self.debt.symbol, self.collateral.symbol, debt_amount
            )
            if flash_amount == 0:
                raise AmountOutTooLow(f"{shares} shares carry too little debt to swap")
            if flash_amount > collateral_amount:
                raise AmountInTooLow(
                    f"swapped collateral {flash_amount} exceeds required {collateral_amount}"
                )
            amount_in_used = collateral_amount - flash_amount
            fee_amount = bps(amount_in_used, self.position.fee_rate_bps)

            amount_in = self.collateral.balance_of(self.address)
            if amount_in < amount_in_used + fee_amount:
                raise AmountInTooLow(
                    f"received {amount_in}, required {amount_in_used + fee_amount}"
                )

            self._flash(
                Operation(
                    kind=OperationKind.MINT,
                    recipient=recipient,
                    refund_recipient=refund_recipient or recipient,
                    token_in=self.collateral.symbol,
                    token_out=self.share.symbol,
                    amount_in=amount_in,
                    amount_out=shares,
                    fee_amount=fee_amount,
                    refund_amount=amount_in - amount_in_used - fee_amount,
                    borrow_amount=flash_amount,
                    repay_amount=debt_amount,
                    collateral_amount=collateral_amount,
                    debt_amount=debt_amount,
                )
            )

    def _settle_mint(self, op: Operation) -> None:
        self._check("supply", self.market.supply(self.address, op.collateral_amount))
        self._check("borrow", self.market.borrow(self.address, op.debt_amount))
        self._pay(self.debt.symbol, self.gateway_address, op.repay_amount)
        self._pay(op.token_in, self.fee_recipient, op.fee_amount)
        self._pay(op.token_in, op.refund_recipient, op.refund_amount)
        self.share.mint(op.recipient, op.amount_out)
        self._commit(op.amount_out)
        self._emit(
            Minted(
                recipient=op.recipient,
                refund_recipient=op.refund_recipient,
                token_in=op.token_in,
                shares=op.amount_out,
                amount_in=op.amount_in - op.refund_amount,
                fee_amount=op.fee_amount,
                refund_amount=op.refund_amount,
            )
        )

    # ------------------------------------------------------------------
    # Burn
    # ------------------------------------------------------------------

    def _check_burn(self) -> tuple[int, int, int]:
        self._require_initialized()
        burn_amount = self.share.balance_of(self.address)
        if burn_amount == 0:
            raise AmountInTooLow("no shares were transferred in")
        collateral_amount, debt_amount = self.ledger.shares_to_underlying(burn_amount)
        if collateral_amount == 0 or debt_amount == 0:
            raise AmountInTooLow(f"{burn_amount} shares are too small to unwind")
        return burn_amount, collateral_amount, debt_amount

    @staticmethod
    def _net_out(gross_out: int, fee_rate_bps: int, min_amount_out: int) -> tuple[int, int]:
        fee_amount = bps(gross_out, fee_rate_bps)
        amount_out = gross_out - fee_amount
        if amount_out <= 0:
            raise AmountOutTooLow("burn pays out nothing")
        if amount_out < min_amount_out:
            raise SlippageTooHigh(f"amount out {amount_out} below minimum {min_amount_out}")
        return amount_out, fee_amount

    def burn_via_debt(self, recipient: str, min_amount_out: int = 0) -> None:
        """Burn the escrowed shares and pay out the debt token."""
        with self._atomic("burn_via_debt"):
            burn_amount, collateral_amount, debt_amount = self._check_burn()
            gross_out = self.gateway.quote_amount_out(
                self.collateral.symbol, self.debt.symbol, collateral_amount
            )
            if gross_out < debt_amount:
                raise AmountOutTooLow(f"sale proceeds {gross_out} below debt {debt_amount}")
            amount_out, fee_amount = self._net_out(
                gross_out - debt_amount, self.position.fee_rate_bps, min_amount_out
            )

            self._flash(
                Operation(
                    kind=OperationKind.BURN,
                    recipient=recipient,
                    token_in=self.share.symbol,
                    token_out=self.debt.symbol,
                    amount_in=burn_amount,
                    amount_out=amount_out,
                    fee_amount=fee_amount,
                    borrow_amount=gross_out,
                    repay_amount=collateral_amount,
                    collateral_amount=collateral_amount,
                    debt_amount=debt_amount,
                )
            )

    def burn_via_collateral(self, recipient: str, min_amount_out: int = 0) -> None:
        """Burn the escrowed shares and pay out collateral."""
        with self._atomic("burn_via_collateral"):
            burn_amount, collateral_amount, debt_amount = self._check_burn()
            repay_amount = self.gateway.quote_amount_in(
                self.collateral.symbol, self.debt.symbol, debt_amount
            )
            if repay_amount > collateral_amount:
                raise AmountOutTooLow(
                    f"repaying {debt_amount} debt costs {repay_amount} of {collateral_amount} collateral"
                )
            amount_out, fee_amount = self._net_out(
                collateral_amount - repay_amount, self.position.fee_rate_bps, min_amount_out
            )

            self._flash(
                Operation(
                    kind=OperationKind.BURN,
                    recipient=recipient,
                    token_in=self.share.symbol,
                    token_out=self.collateral.symbol,
                    amount_in=burn_amount,
                    amount_out=amount_out,
                    fee_amount=fee_amount,
                    borrow_amount=debt_amount,
                    repay_amount=repay_amount,
                    collateral_amount=collateral_amount,
                    debt_amount=debt_amount,
                )
            )

    def _settle_burn(self, op: Operation) -> None:
        self._check("repay", self.market.repay(self.address, op.debt_amount))
        self._check("redeem", self.market.redeem(self.address, op.collateral_amount))
        self._pay(self.collateral.symbol, self.gateway_address, op.repay_amount)
        self._pay(op.token_out, self.fee_recipient, op.fee_amount)
        self._pay(op.token_out, op.recipient, op.amount_out)
        self.share.burn(self.address, op.amount_in)
        self._commit(-op.amount_in)
        self._emit(
            Burned(
                recipient=op.recipient,
                token_out=op.token_out,
                shares=op.amount_in,
                amount_out=op.amount_out,
                fee_amount=op.fee_amount,
            )
        )

    # ------------------------------------------------------------------
    # Rebalance
    # ------------------------------------------------------------------

    def leverage_up(self, recipient: str, min_incentive: int = 0) -> Rebalanced:
        """Sell the position pre-transferred collateral for borrowed debt plus an incentive."""
        with self._atomic("leverage_up"):
            self._require_initialized()
            amount_in = self.collateral.balance_of(self.address)
            op = plan_leverage_up(self.ledger, recipient, recipient, amount_in, min_incentive)
            return self._rebalance(op)

    def leverage_down(self, recipient: str, min_incentive: int = 0) -> Rebalanced:
        """Repay position debt with pre-transferred debt tokens for collateral plus an incentive."""
        with self._atomic("leverage_down"):
            self._require_initialized()
            amount_in = self.debt.balance_of(self.address)
            op = plan_leverage_down(self.ledger, recipient, recipient, amount_in, min_incentive)
            return self._rebalance(op)

    def _rebalance(self, op: Operation) -> Rebalanced:
        before = self.position
        ratio_before = self.ledger.leverage_ratio()
        price_before = self.ledger.price()

        self._handlers[op.kind](op)

        candidate = self._synced()
        ratio_after = self.ledger.leverage_ratio(candidate)
        target = before.target_leverage_ratio
        if op.kind is OperationKind.LEVERAGE_UP:
            moved, overshot = ratio_after > ratio_before, ratio_after > target
        else:
            moved, overshot = ratio_after < ratio_before, ratio_after < target
        if not moved:
            raise AmountInTooLow("trade is too small to move the leverage ratio")
        if overshot:
            raise AmountInTooHigh(
                f"leverage ratio {ratio_after} would cross the target {target}"
            )

        self.ledger.commit(candidate)
        event = Rebalanced(
            kind=op.kind,
            rebalancer=op.sender,
            amount_in=op.amount_in,
            amount_out=op.amount_out,
            incentive=op.amount_out + op.fee_amount - self._fair_value(op),
            fee_amount=op.fee_amount,
            leverage_ratio_before=ratio_before,
            leverage_ratio_after=ratio_after,
            total_collateral_before=before.total_collateral,
            total_collateral_after=candidate.total_collateral,
            total_debt_before=before.total_debt,
            total_debt_after=candidate.total_debt,
            price_before=price_before,
            price_after=self.ledger.price(),
        )
        self._emit(event)
        return event

    def _fair_value(self, op: Operation) -> int:
        return self.oracle.value(op.token_in, op.token_out, op.amount_in)

    # Rebalance settlement only moves venue balances; ``_rebalance`` checks
    # the resulting position before committing it.

    def _settle_leverage_up(self, op: Operation) -> None:
        self._check("supply", self.market.supply(self.address, op.collateral_amount))
        self._check("borrow", self.market.borrow(self.address, op.debt_amount))
        self._pay(self.debt.symbol, op.recipient, op.amount_out)
        self._pay(self.debt.symbol, self.fee_recipient, op.fee_amount)

    def _settle_leverage_down(self, op: Operation) -> None:
        self._check("repay", self.market.repay(self.address, op.debt_amount))
        self._check("redeem", self.market.redeem(self.address, op.collateral_amount))
        self._pay(self.collateral.symbol, op.recipient, op.amount_out)
        self._pay(self.collateral.symbol, self.fee_recipient, op.fee_amount)

    # ------------------------------------------------------------------
    # Governance
    # ------------------------------------------------------------------

    def set_max_shares(self, caller: str, max_shares: int) -> None:
        with self._atomic("set_max_shares"):
            if caller != self.owner:
                raise Unauthorized(f"{caller} is not the owner")
            if max_shares < self.position.total_shares:
                raise AmountOutTooLow(
                    f"max shares {max_shares} is below the supply {self.position.total_shares}"
                )
            previous = self.position.max_shares
            self.ledger.commit(replace(self.position, max_shares=max_shares))
            self._emit(MaxSharesUpdated(previous=previous, current=max_shares))
