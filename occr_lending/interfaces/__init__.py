"""Protocol interfaces for the lending engine."""
from .asset import AssetLedger
from .notifier import Notifier
from .price_oracle import PriceSource

__all__ = ["AssetLedger", "Notifier", "PriceSource"]
