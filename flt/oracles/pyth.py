"""Pyth Network Hermes price feed."""
import logging
import ssl

import aiohttp
import certifi

from ..config import PythConfig

logger = logging.getLogger(__name__)


class PythPriceFeed:
    """Fetch USD prices from the Pyth Network Hermes endpoint."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.price_feeds = dict(config.feeds)
        self.timeout = config.timeout

    async def fetch_prices(self, symbols: list[str] | None = None) -> dict[str, float]:
        """Fetch current USD prices.

        Args:
            symbols: Optional list of symbols to fetch. If None, fetches all
                     configured feeds.
        """
        prices: dict[str, float] = {}

        feeds = self.price_feeds
        if symbols is not None:
            feeds = {k: v for k, v in self.price_feeds.items() if k in symbols}

        feed_ids = sorted(set(feeds.values()))
        if not feed_ids:
            return prices

        params = [("ids[]", fid) for fid in feed_ids]

        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(
                    self.hermes_url,
                    params=params,
                    timeout=aiohttp.ClientTimeout(total=self.timeout),
                ) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching prices from Pyth: HTTP %s", response.status
                        )
                        return prices

                    data = await response.json()
        except (aiohttp.ClientError, TimeoutError, ConnectionError) as e:
            logger.error("Error fetching prices from Pyth: %s", e)
            return prices

        id_to_symbols: dict[str, list[str]] = {}
        for symbol, feed_id in feeds.items():
            id_to_symbols.setdefault(_normalize_id(feed_id), []).append(symbol)

        for item in data.get("parsed", []):
            feed_id = _normalize_id(item.get("id", ""))
            price_data = item.get("price", {})
            price = int(price_data.get("price", 0)) * (10 ** int(price_data.get("expo", 0)))
            for symbol in id_to_symbols.get(feed_id, []):
                prices[symbol] = price

        for symbol, price in sorted(prices.items()):
            logger.info("Pyth %s: $%.4f", symbol, price)
        return prices


def _normalize_id(feed_id: str) -> str:
    """Hermes returns ids without the ``0x`` prefix."""
    return feed_id.lower().removeprefix("0x")
