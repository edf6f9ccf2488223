"""Fungible asset ledgers."""
from .ledger import TokenLedger
from .units import from_units, to_units

__all__ = ["TokenLedger", "from_units", "to_units"]
