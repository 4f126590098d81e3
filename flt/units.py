"""Fixed-point helpers. Integer math only past the config boundary."""
from __future__ import annotations

from decimal import Decimal

WAD = 10**18
BPS = 10_000


def to_wad(value: float | str | int) -> int:
    """Convert a human ratio (``2.0``, ``"0.05"``) to an 18-decimal integer."""
    return int(Decimal(str(value)) * WAD)


def from_wad(value: int) -> float:
    return float(Decimal(value) / WAD)


def to_units(amount: float | str | int, decimals: int) -> int:
    """Convert a whole-token amount to base units."""
    return int(Decimal(str(amount)) * (10**decimals))


def from_units(amount: int, decimals: int) -> float:
    return float(Decimal(amount) / (10**decimals))


def mul_wad(a: int, b: int) -> int:
    return a * b // WAD


def div_wad_up(a: int, b: int) -> int:
    """``a / b`` in WAD precision, rounded up."""
    return -(-a * WAD // b)


def bps(amount: int, rate_bps: int) -> int:
    return amount * rate_bps // BPS
