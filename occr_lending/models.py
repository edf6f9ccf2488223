"""Data models — all frozen (immutable)."""
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class CreditEvent(str, Enum):
    """Credit events the pool reports to the score engine."""

    BORROW = "borrow"
    REPAY = "repay"
    LIQUIDATION = "liquidation"


@dataclass(frozen=True)
class Position:
    """Balances held by one user inside the pool (integer base units)."""

    collateral: int = 0
    debt: int = 0
    buffer: int = 0

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.collateral, self.debt, self.buffer)


@dataclass(frozen=True)
class PriceQuote:
    """Collateral price in debt units, WAD-scaled, with its publish time."""

    price: int
    publish_time: int = 0


@dataclass(frozen=True)
class PositionReport:
    """Point-in-time view of a position used by the watcher."""

    label: str
    address: str
    collateral: int
    debt: int
    buffer: int
    price: int
    ltv_bps: int
    health_factor_bps: int | None
    score_micro: int
    max_ltv_bps: int
    underwater: bool


@dataclass(frozen=True)
class DemoStep:
    """One line of the scripted demo."""

    label: str
    collateral: int
    debt: int
    score_micro: int
    underwater: bool
