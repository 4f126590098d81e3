"""Price feeds and the oracle adapter."""
from .adapter import OracleAdapter
from .pyth import PythPriceFeed

__all__ = ["OracleAdapter", "PythPriceFeed"]
