"""Leverage engine: position ledger, rebalance planning and atomic settlement."""
from .ledger import ONE_SHARE, PositionLedger
from .leverage import LeverageEngine

__all__ = ["LeverageEngine", "ONE_SHARE", "PositionLedger"]
