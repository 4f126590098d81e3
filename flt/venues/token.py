"""In-memory fungible token ledger."""
from __future__ import annotations

import logging
from collections import defaultdict

from ..errors import InsufficientBalance

logger = logging.getLogger(__name__)


class Token:
    """Fungible token with balances keyed by account address."""

    def __init__(self, symbol: str, decimals: int = 18, name: str = "") -> None:
        self.symbol = symbol
        self.decimals = decimals
        self.name = name or symbol
        self._balances: defaultdict[str, int] = defaultdict(int)
        self.total_supply = 0

    def __repr__(self) -> str:
        return f"Token({self.symbol!r}, decimals={self.decimals})"

    @property
    def unit(self) -> int:
        return 10**self.decimals

    def balance_of(self, account: str) -> int:
        return self._balances.get(account, 0)

    def transfer(self, sender: str, recipient: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"negative transfer amount: {amount}")
        balance = self.balance_of(sender)
        if balance < amount:
            raise InsufficientBalance(self.symbol, sender, balance, amount)
        if amount == 0:
            return
        self._balances[sender] = balance - amount
        self._balances[recipient] += amount

    def mint(self, account: str, amount: int) -> None:
        if amount < 0:
            raise ValueError(f"negative mint amount: {amount}")
        self._balances[account] += amount
        self.total_supply += amount

    def burn(self, account: str, amount: int) -> None:
        balance = self.balance_of(account)
        if balance < amount:
            raise InsufficientBalance(self.symbol, account, balance, amount)
        self._balances[account] = balance - amount
        self.total_supply -= amount

    # ------------------------------------------------------------------
    # Journaled
    # ------------------------------------------------------------------

    def snapshot(self) -> tuple[dict[str, int], int]:
        return dict(self._balances), self.total_supply

    def restore(self, state: tuple[dict[str, int], int]) -> None:
        balances, total_supply = state
        self._balances = defaultdict(int, balances)
        self.total_supply = total_supply
