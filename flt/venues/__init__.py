"""In-process venues implementing the engine's external interfaces."""
from .market import MarketCode, MoneyMarket
from .pair import FlashSwapPair
from .token import Token

__all__ = ["FlashSwapPair", "MarketCode", "MoneyMarket", "Token"]
