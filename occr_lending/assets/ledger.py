"""In-memory mintable token ledger (allowance-based transfers)."""
from __future__ import annotations

import logging
from collections import defaultdict

logger = logging.getLogger(__name__)


class TokenLedger:
    """Fungible balance ledger with ``approve``/``transfer_from`` semantics.

    Transfers either apply fully or not at all and report the outcome as a
    bool, so callers can observe failures synchronously.
    """

    def __init__(self, symbol: str, decimals: int = 18) -> None:
        self.symbol = symbol
        self.decimals = decimals
        self._balances: dict[str, int] = defaultdict(int)
        self._allowances: dict[tuple[str, str], int] = defaultdict(int)
        self.total_supply = 0

    def balance_of(self, address: str) -> int:
        return self._balances.get(address, 0)

    def allowance(self, owner: str, spender: str) -> int:
        return self._allowances.get((owner, spender), 0)

    def mint(self, to: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("mint amount must be non-negative")
        self._balances[to] += amount
        self.total_supply += amount
        logger.debug("%s mint %d to %s", self.symbol, amount, to)

    def approve(self, owner: str, spender: str, amount: int) -> None:
        if amount < 0:
            raise ValueError("allowance must be non-negative")
        self._allowances[(owner, spender)] = amount

    def transfer(self, sender: str, to: str, amount: int) -> bool:
        if amount < 0 or self.balance_of(sender) < amount:
            logger.debug("%s transfer %s -> %s of %d refused", self.symbol, sender, to, amount)
            return False
        self._move(sender, to, amount)
        return True

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        if amount < 0:
            return False
        if self.allowance(owner, spender) < amount or self.balance_of(owner) < amount:
            logger.debug(
                "%s transfer_from %s -> %s of %d refused (spender %s)",
                self.symbol, owner, to, amount, spender,
            )
            return False
        self._allowances[(owner, spender)] -= amount
        self._move(owner, to, amount)
        return True

    def _move(self, sender: str, to: str, amount: int) -> None:
        self._balances[sender] -= amount
        self._balances[to] += amount
