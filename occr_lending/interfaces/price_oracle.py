"""Price source protocol — collateral price feed abstraction."""
from typing import Protocol

from ..models import PriceQuote


class PriceSource(Protocol):
    """Abstract interface for reading the collateral price."""

    async def fetch_quote(self) -> PriceQuote | None: ...
