"""Price oracle protocols — price feed and valuation abstractions."""
from typing import Protocol


class PriceFeed(Protocol):
    """Abstract interface for fetching USD asset prices."""

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, float]: ...


class Oracle(Protocol):
    """Translates an amount of one token into the value of another.

    ``price`` is the ETH value of one whole token in WAD; ``price_of`` is the
    amount of ``quote`` base units one whole ``base`` token is worth.
    """

    def price(self, token: str) -> int: ...

    def price_of(self, base: str, quote: str) -> int: ...

    def value(self, base: str, quote: str, amount: int) -> int: ...
