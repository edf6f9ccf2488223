"""Price sources."""
from .pyth import PythPriceSource

__all__ = ["PythPriceSource"]
