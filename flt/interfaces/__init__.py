"""Protocol interfaces for the leverage engine's external collaborators."""
from .flash_gateway import FlashSwapGateway, FlashSwapReceiver
from .journaled import Journaled
from .lending_market import LendingMarket
from .price_oracle import Oracle, PriceFeed

__all__ = [
    "FlashSwapGateway",
    "FlashSwapReceiver",
    "Journaled",
    "LendingMarket",
    "Oracle",
    "PriceFeed",
]
