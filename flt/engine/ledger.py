"""Share accounting and leverage views over one Position."""
from __future__ import annotations

import logging

from ..errors import AmountInTooLow, EmptyPosition, InsolventPosition, Uninitialized
from ..interfaces.price_oracle import Oracle
from ..models import Position
from ..units import WAD, div_wad_up

logger = logging.getLogger(__name__)

SHARE_DECIMALS = 18
ONE_SHARE = 10**SHARE_DECIMALS


class PositionLedger:
    """Holds the current Position and answers every read-only question about it.

    Values are expressed in debt-token base units; ratios in WAD.
    """

    def __init__(self, position: Position, collateral: str, debt: str, oracle: Oracle) -> None:
        self.position = position
        self.collateral = collateral
        self.debt = debt
        self.oracle = oracle

    def commit(self, position: Position) -> None:
        self.position = position

    def _require_initialized(self, position: Position | None = None) -> Position:
        pos = self.position if position is None else position
        if not pos.initialized:
            raise Uninitialized()
        if pos.total_shares == 0:
            raise EmptyPosition()
        return pos

    def shares_to_underlying(self, shares: int) -> tuple[int, int]:
        """Collateral and debt attributable to ``shares`` (rounded down)."""
        pos = self._require_initialized()
        collateral = shares * pos.total_collateral // pos.total_shares
        debt = shares * pos.total_debt // pos.total_shares
        return collateral, debt

    def mint_requirements(self, shares: int) -> tuple[int, int]:
        """Collateral to supply and debt to take on when minting ``shares``.

        Collateral rounds up and debt rounds down so existing holders never
        lose collateral or gain debt per share.
        """
        pos = self._require_initialized()
        collateral = -(-shares * pos.total_collateral // pos.total_shares)
        debt = shares * pos.total_debt // pos.total_shares
        return collateral, debt

    def collateral_per_share(self) -> int:
        return self.shares_to_underlying(ONE_SHARE)[0]

    def debt_per_share(self) -> int:
        return self.shares_to_underlying(ONE_SHARE)[1]

    def value(self, shares: int) -> int:
        """Net value of ``shares`` in debt units."""
        collateral, debt = self.shares_to_underlying(shares)
        collateral_value = self.oracle.value(self.collateral, self.debt, collateral)
        if collateral_value < debt:
            raise InsolventPosition(collateral_value, debt)
        return collateral_value - debt

    def price(self) -> int:
        """Net asset value of one share in debt units."""
        return self.value(ONE_SHARE)

    def collateral_value(self, position: Position | None = None) -> int:
        pos = self._require_initialized(position)
        return self.oracle.value(self.collateral, self.debt, pos.total_collateral)

    def equity(self, position: Position | None = None) -> int:
        """Collateral value minus debt; strictly positive or the position is insolvent."""
        pos = self._require_initialized(position)
        collateral_value = self.collateral_value(pos)
        equity = collateral_value - pos.total_debt
        if equity <= 0:
            raise InsolventPosition(collateral_value, pos.total_debt)
        return equity

    def leverage_ratio(self, position: Position | None = None) -> int:
        """``cv / (cv - debt)`` in WAD, rounded up since it gates safety checks.

        Pass ``position`` to evaluate a candidate before it is committed.
        """
        pos = self._require_initialized(position)
        return div_wad_up(self.collateral_value(pos), self.equity(pos))

    def plan_initialize(self, collateral_amount: int, nav: int) -> tuple[int, int]:
        """Debt and share amounts that open ``collateral_amount`` at the target ratio.

        ``nav`` is the desired price of one share in debt units.
        """
        if collateral_amount <= 0 or nav <= 0:
            raise AmountInTooLow("collateral amount and nav must be positive")
        collateral_value = self.oracle.value(self.collateral, self.debt, collateral_amount)
        equity = collateral_value * WAD // self.position.target_leverage_ratio
        debt_amount = collateral_value - equity
        shares = equity * ONE_SHARE // nav
        return debt_amount, shares

    # ------------------------------------------------------------------
    # Journaled
    # ------------------------------------------------------------------

    def snapshot(self) -> Position:
        return self.position

    def restore(self, state: Position) -> None:
        self.position = state
