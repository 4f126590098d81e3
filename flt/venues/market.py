"""Single-pair money market returning Compound-style result codes."""
from __future__ import annotations

import logging
from collections import defaultdict
from enum import IntEnum

from ..errors import InsufficientBalance
from ..interfaces.price_oracle import Oracle
from ..units import mul_wad
from .token import Token

logger = logging.getLogger(__name__)


class MarketCode(IntEnum):
    NO_ERROR = 0
    MARKET_NOT_LISTED = 1
    MARKET_NOT_ENTERED = 2
    INSUFFICIENT_LIQUIDITY = 3
    INSUFFICIENT_CASH = 4
    REPAY_EXCEEDS_BORROW = 5
    REDEEM_EXCEEDS_SUPPLY = 6
    TRANSFER_FAILED = 7


class MoneyMarket:
    """Collateral is supplied in one token, debt is borrowed in another.

    An account may borrow up to ``collateral_factor`` of its supplied
    collateral value, measured by the oracle in debt-token units.
    """

    def __init__(
        self,
        collateral: Token,
        debt: Token,
        oracle: Oracle,
        collateral_factor: int,
        address: str = "market",
    ) -> None:
        self.address = address
        self.collateral = collateral
        self.debt = debt
        self.oracle = oracle
        self.collateral_factor = collateral_factor
        self._supplied: defaultdict[str, int] = defaultdict(int)
        self._borrowed: defaultdict[str, int] = defaultdict(int)
        self._entered: defaultdict[str, set[str]] = defaultdict(set)

    def fund(self, provider: str, amount: int) -> None:
        """Deposit borrowable debt-token cash."""
        self.debt.transfer(provider, self.address, amount)

    @property
    def cash(self) -> int:
        return self.debt.balance_of(self.address)

    def enter_markets(self, account: str, markets: list[str]) -> list[int]:
        codes: list[int] = []
        for market in markets:
            if market not in (self.collateral.symbol, self.debt.symbol):
                codes.append(MarketCode.MARKET_NOT_LISTED)
                continue
            self._entered[account].add(market)
            codes.append(MarketCode.NO_ERROR)
        return codes

    def _borrow_limit(self, collateral_amount: int) -> int:
        value = self.oracle.value(self.collateral.symbol, self.debt.symbol, collateral_amount)
        return mul_wad(value, self.collateral_factor)

    def supply(self, account: str, amount: int) -> int:
        try:
            self.collateral.transfer(account, self.address, amount)
        except InsufficientBalance:
            return MarketCode.TRANSFER_FAILED
        self._supplied[account] += amount
        return MarketCode.NO_ERROR

    def borrow(self, account: str, amount: int) -> int:
        if self.collateral.symbol not in self._entered[account]:
            return MarketCode.MARKET_NOT_ENTERED
        if amount > self.cash:
            return MarketCode.INSUFFICIENT_CASH
        new_debt = self._borrowed[account] + amount
        if new_debt > self._borrow_limit(self._supplied[account]):
            return MarketCode.INSUFFICIENT_LIQUIDITY
        self.debt.transfer(self.address, account, amount)
        self._borrowed[account] = new_debt
        return MarketCode.NO_ERROR

    def repay(self, account: str, amount: int) -> int:
        if amount > self._borrowed[account]:
            return MarketCode.REPAY_EXCEEDS_BORROW
        try:
            self.debt.transfer(account, self.address, amount)
        except InsufficientBalance:
            return MarketCode.TRANSFER_FAILED
        self._borrowed[account] -= amount
        return MarketCode.NO_ERROR

    def redeem(self, account: str, amount: int) -> int:
        supplied = self._supplied[account]
        if amount > supplied:
            return MarketCode.REDEEM_EXCEEDS_SUPPLY
        if self._borrowed[account] > self._borrow_limit(supplied - amount):
            return MarketCode.INSUFFICIENT_LIQUIDITY
        self.collateral.transfer(self.address, account, amount)
        self._supplied[account] = supplied - amount
        return MarketCode.NO_ERROR

    def balance_of_underlying(self, account: str) -> int:
        return self._supplied.get(account, 0)

    def borrow_balance_current(self, account: str) -> int:
        return self._borrowed.get(account, 0)

    # ------------------------------------------------------------------
    # Journaled
    # ------------------------------------------------------------------

    def snapshot(self) -> tuple[dict[str, int], dict[str, int], dict[str, set[str]]]:
        return (
            dict(self._supplied),
            dict(self._borrowed),
            {k: set(v) for k, v in self._entered.items()},
        )

    def restore(self, state: tuple[dict[str, int], dict[str, int], dict[str, set[str]]]) -> None:
        supplied, borrowed, entered = state
        self._supplied = defaultdict(int, supplied)
        self._borrowed = defaultdict(int, borrowed)
        self._entered = defaultdict(set, {k: set(v) for k, v in entered.items()})
