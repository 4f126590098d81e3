"""ETH-denominated price table used for valuation."""
from __future__ import annotations

import logging

from ..errors import OracleNotConfigured
from ..interfaces.price_oracle import PriceFeed
from ..units import WAD, to_wad

logger = logging.getLogger(__name__)


class OracleAdapter:
    """Values token amounts against each other through their ETH prices.

    Prices are stored as the ETH value of one whole token in WAD, so the
    adapter only needs each token's decimals to convert base units.
    """

    def __init__(self, decimals: dict[str, int], eth_symbol: str = "ETH") -> None:
        self._decimals = dict(decimals)
        self._prices: dict[str, int] = {}
        self.eth_symbol = eth_symbol
        if eth_symbol in self._decimals:
            self._prices[eth_symbol] = WAD

    def set_price(self, token: str, eth_price: int) -> None:
        if eth_price <= 0:
            raise ValueError(f"price for {token} must be positive, got {eth_price}")
        if token not in self._decimals:
            raise OracleNotConfigured(token)
        self._prices[token] = eth_price

    def update_from_usd(self, usd_prices: dict[str, float]) -> None:
        """Rebase a USD price snapshot onto ETH."""
        eth_usd = usd_prices.get(self.eth_symbol)
        if not eth_usd:
            raise OracleNotConfigured(self.eth_symbol)
        for token in self._decimals:
            usd = usd_prices.get(token)
            if usd:
                self.set_price(token, to_wad(usd) * WAD // to_wad(eth_usd))
        logger.debug("Oracle prices updated: %s", self._prices)

    async def refresh(self, feed: PriceFeed) -> None:
        symbols = sorted(set(self._decimals) | {self.eth_symbol})
        prices = await feed.fetch_prices(symbols)
        self.update_from_usd(prices)

    def price(self, token: str) -> int:
        try:
            return self._prices[token]
        except KeyError:
            raise OracleNotConfigured(token) from None

    def price_of(self, base: str, quote: str) -> int:
        return self.value(base, quote, 10 ** self._decimals_of(base))

    def value(self, base: str, quote: str, amount: int) -> int:
        if base == quote:
            return amount
        numerator = amount * self.price(base) * 10 ** self._decimals_of(quote)
        denominator = self.price(quote) * 10 ** self._decimals_of(base)
        return numerator // denominator

    def _decimals_of(self, token: str) -> int:
        try:
            return self._decimals[token]
        except KeyError:
            raise OracleNotConfigured(token) from None
