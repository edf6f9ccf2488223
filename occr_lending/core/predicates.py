"""Read-only predicates for gating limit orders on pool price or borrower risk.

A limit-order protocol evaluates these at fill time. They never mutate the
pool or the score engine.
"""
from __future__ import annotations

import logging

from ..errors import InvalidAmount
from .pool import LendingPool
from .risk import SCORE_SCALE
from .score import OCCRScore

logger = logging.getLogger(__name__)

DEFAULT_MAX_RISK_MICRO = 350_000


def _require_threshold(threshold: int) -> None:
    if not isinstance(threshold, int) or isinstance(threshold, bool) or threshold <= 0:
        raise InvalidAmount(f"price threshold must be a positive WAD integer, got {threshold!r}")


class PricePredicate:
    """Compares the pool's current collateral price with a WAD threshold.

    ``is_price_lte`` backs stop-loss orders, ``is_price_gte`` take-profit
    orders.
    """

    def __init__(self, pool: LendingPool) -> None:
        self._pool = pool

    def is_price_gte(self, threshold: int) -> bool:
        _require_threshold(threshold)
        return self._pool.price >= threshold

    def is_price_lte(self, threshold: int) -> bool:
        _require_threshold(threshold)
        return self._pool.price <= threshold


class OCCRPredicate:
    """Allows an order only while the maker's credit risk stays below a cap.

    Risk is the complement of the OCCR score, ``SCORE_SCALE - score``, so an
    address with no history carries full risk and is always refused unless
    ``max_risk_micro`` is ``SCORE_SCALE``.
    """

    def __init__(self, score: OCCRScore, max_risk_micro: int = DEFAULT_MAX_RISK_MICRO) -> None:
        if isinstance(max_risk_micro, bool) or not 0 <= max_risk_micro <= SCORE_SCALE:
            raise ValueError(
                f"max_risk_micro must be within [0, {SCORE_SCALE}], got {max_risk_micro!r}"
            )
        self._score = score
        self.max_risk_micro = max_risk_micro

    def risk_micro(self, address: str) -> int:
        return SCORE_SCALE - self._score.score_micro(address)

    def is_allowed(self, address: str) -> bool:
        risk = self.risk_micro(address)
        allowed = risk <= self.max_risk_micro
        if not allowed:
            logger.debug("Order by %s refused: risk %d above %d", address, risk, self.max_risk_micro)
        return allowed
