"""Asset ledger protocol — fungible balance abstraction used by the pool."""
from typing import Protocol


class AssetLedger(Protocol):
    """Abstract interface for a fungible token the pool can move."""

    symbol: str

    def balance_of(self, address: str) -> int: ...

    def transfer(self, sender: str, to: str, amount: int) -> bool: ...

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool: ...
