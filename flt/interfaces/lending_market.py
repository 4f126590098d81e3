"""Lending market protocol — supply/borrow primitives returning result codes."""
from typing import Protocol


class LendingMarket(Protocol):
    """Abstract interface for a collateral/debt money market.

    Mutating calls return ``0`` on success and a nonzero code otherwise.
    """

    def enter_markets(self, account: str, markets: list[str]) -> list[int]: ...

    def supply(self, account: str, amount: int) -> int: ...

    def borrow(self, account: str, amount: int) -> int: ...

    def repay(self, account: str, amount: int) -> int: ...

    def redeem(self, account: str, amount: int) -> int: ...

    def balance_of_underlying(self, account: str) -> int: ...

    def borrow_balance_current(self, account: str) -> int: ...
