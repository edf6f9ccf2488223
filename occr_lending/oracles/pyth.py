"""Pyth Network price source for the collateral feed."""
from __future__ import annotations

import logging
import ssl

import aiohttp
import certifi

from ..config import PythConfig
from ..core.risk import PRICE_SCALE
from ..models import PriceQuote

logger = logging.getLogger(__name__)


def to_wad(price_raw: int, expo: int) -> int:
    """Convert a Pyth ``price * 10^expo`` pair to a WAD integer exactly."""
    if expo >= 0:
        return price_raw * 10**expo * PRICE_SCALE
    return price_raw * PRICE_SCALE // 10**(-expo)


class PythPriceSource:
    """Fetch the collateral price from the Pyth Hermes API."""

    def __init__(self, config: PythConfig) -> None:
        self.hermes_url = config.hermes_url
        self.feed_id = config.feed_id

    async def fetch_quote(self) -> PriceQuote | None:
        """Fetch the latest quote, or ``None`` when it cannot be read."""
        if not self.feed_id:
            logger.warning("No Pyth feed configured")
            return None

        url = f"{self.hermes_url}?ids[]={self.feed_id}"
        ssl_context = ssl.create_default_context(cafile=certifi.where())
        connector = aiohttp.TCPConnector(ssl=ssl_context)

        try:
            async with aiohttp.ClientSession(connector=connector) as session:
                async with session.get(url) as response:
                    if response.status != 200:
                        logger.error(
                            "Error fetching price from Pyth: HTTP %s", response.status
                        )
                        return None

                    data = await response.json()
        except Exception as e:
            logger.error("Error fetching price from Pyth: %s", e)
            return None

        # Hermes returns ids without the 0x prefix
        wanted = self.feed_id.lower().removeprefix("0x")
        for item in data.get("parsed", []):
            if str(item.get("id", "")).lower().removeprefix("0x") != wanted:
                continue
            price_data = item.get("price", {})
            quote = PriceQuote(
                price=to_wad(int(price_data.get("price", 0)), int(price_data.get("expo", 0))),
                publish_time=int(price_data.get("publish_time", 0)),
            )
            logger.info("Pyth price: %d (published %d)", quote.price, quote.publish_time)
            return quote

        logger.error("Feed %s missing from Pyth response", self.feed_id)
        return None
