"""Leveraged position engine: flash-swap mint/burn and incentivized rebalancing."""

__version__ = "0.1.0"
