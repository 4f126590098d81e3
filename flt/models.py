"""Data models — all frozen (immutable)."""
from __future__ import annotations

import json
from dataclasses import asdict, dataclass, fields
from enum import Enum

from .errors import InvalidFlashSwapType
from .units import WAD


@dataclass(frozen=True)
class LeverageBand:
    """Rebalancing window around the target leverage ratio (WAD values)."""

    min_leverage_ratio: int
    max_leverage_ratio: int
    max_drift_ratio: int


@dataclass(frozen=True)
class Position:
    """Owned state of one leveraged instrument.

    The engine never mutates a Position; it commits a new one with
    ``dataclasses.replace`` once every venue call has succeeded.
    """

    target_leverage_ratio: int
    max_incentive_ratio: int
    fee_rate_bps: int
    max_shares: int
    band: LeverageBand | None = None
    total_collateral: int = 0
    total_debt: int = 0
    total_shares: int = 0
    initialized: bool = False

    @property
    def min_leverage_ratio(self) -> int:
        return self.band.min_leverage_ratio if self.band else self.target_leverage_ratio

    @property
    def max_leverage_ratio(self) -> int:
        return self.band.max_leverage_ratio if self.band else self.target_leverage_ratio

    @property
    def max_drift_ratio(self) -> int:
        if self.band:
            return self.band.max_drift_ratio
        return self.target_leverage_ratio - WAD


class OperationKind(str, Enum):
    INITIALIZE = "initialize"
    MINT = "mint"
    BURN = "burn"
    LEVERAGE_UP = "leverage_up"
    LEVERAGE_DOWN = "leverage_down"


FLASHABLE_KINDS = frozenset(
    {OperationKind.INITIALIZE, OperationKind.MINT, OperationKind.BURN}
)


@dataclass(frozen=True)
class Operation:
    """Amounts computed before a flash swap and consumed once by its settlement."""

    kind: OperationKind
    sender: str = ""
    recipient: str = ""
    refund_recipient: str = ""
    token_in: str = ""
    token_out: str = ""
    amount_in: int = 0
    amount_out: int = 0
    fee_amount: int = 0
    refund_amount: int = 0
    borrow_amount: int = 0
    repay_amount: int = 0
    collateral_amount: int = 0
    debt_amount: int = 0

    def encode(self) -> bytes:
        raw = asdict(self)
        raw["kind"] = self.kind.value
        return json.dumps(raw, sort_keys=True).encode()

    @classmethod
    def decode(cls, data: bytes) -> Operation:
        try:
            raw = json.loads(data)
            kind = OperationKind(raw.pop("kind"))
        except (ValueError, TypeError, KeyError, AttributeError) as e:
            raise InvalidFlashSwapType(f"cannot decode flash swap payload: {e}") from e

        known = {f.name for f in fields(cls)}
        unknown = set(raw) - known
        if unknown:
            raise InvalidFlashSwapType(f"unexpected payload fields: {sorted(unknown)}")
        return cls(kind=kind, **raw)


# ---------------------------------------------------------------------------
# Emitted records
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Initialized:
    initializer: str
    recipient: str
    collateral_amount: int
    debt_amount: int
    shares: int
    refund_amount: int


@dataclass(frozen=True)
class Minted:
    recipient: str
    refund_recipient: str
    token_in: str
    shares: int
    amount_in: int
    fee_amount: int
    refund_amount: int


@dataclass(frozen=True)
class Burned:
    recipient: str
    token_out: str
    shares: int
    amount_out: int
    fee_amount: int


@dataclass(frozen=True)
class Rebalanced:
    kind: OperationKind
    rebalancer: str
    amount_in: int
    amount_out: int
    incentive: int
    fee_amount: int
    leverage_ratio_before: int
    leverage_ratio_after: int
    total_collateral_before: int
    total_collateral_after: int
    total_debt_before: int
    total_debt_after: int
    price_before: int
    price_after: int


@dataclass(frozen=True)
class MaxSharesUpdated:
    previous: int
    current: int
