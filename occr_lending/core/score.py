"""On-chain credit reputation (OCCR) score engine.

Scores are micro-scaled integers clamped to ``[0, SCORE_SCALE]``. The pool
is the only writer; it reports every borrow, repay and liquidation through
:meth:`OCCRScore.record_event`.

Update rule (per event):

- repay: ``repay_reward_micro * paid // max(debt_before, reward_debt_floor)``,
  so clearing a whole loan earns the full reward while dust repayments earn
  nothing
- borrow: ``+borrow_delta_micro`` (0 by default, taking on debt is neutral)
- liquidation: ``+liquidation_delta_micro`` (0 by default, a liquidation
  never lowers the score below its pre-liquidation level unless configured
  with a negative delta)

The borrow ceiling grows linearly with the score from ``base_ltv_bps`` up
to ``base_ltv_bps + max_bonus_ltv_bps`` (see :func:`risk.scaled_ltv_bps`).
"""
from __future__ import annotations

import logging

from ..assets.units import to_units
from ..config import ScoreConfig
from ..errors import AlreadyConfigured, Unauthorized
from ..models import CreditEvent
from .risk import SCORE_SCALE, scaled_ltv_bps

logger = logging.getLogger(__name__)


class OCCRScore:
    """Per-address reputation score with a score-dependent LTV ceiling."""

    def __init__(
        self, owner: str, config: ScoreConfig | None = None, decimals: int = 18
    ) -> None:
        self.owner = owner
        self._config = config or ScoreConfig()
        self._reward_floor = to_units(self._config.reward_debt_floor, decimals)
        self._scores: dict[str, int] = {}
        self._pool: str | None = None

    @property
    def pool(self) -> str | None:
        return self._pool

    def set_pool(self, pool_address: str, caller: str) -> None:
        """Authorize ``pool_address`` as the single score writer (once)."""
        if caller != self.owner:
            raise Unauthorized(f"{caller} may not wire the score pool")
        if self._pool is not None:
            raise AlreadyConfigured("score pool already set")
        self._pool = pool_address
        logger.info("Score writer set to %s", pool_address)

    def score_micro(self, address: str) -> int:
        return self._scores.get(address, 0)

    def get_max_ltv_bps(self, address: str, base_ltv_bps: int) -> int:
        return scaled_ltv_bps(
            self.score_micro(address), base_ltv_bps, self._config.max_bonus_ltv_bps
        )

    def delta_for(self, event: CreditEvent, amount: int = 0, debt_before: int = 0) -> int:
        if event is CreditEvent.REPAY:
            basis = max(debt_before, amount, self._reward_floor)
            if basis <= 0:
                return 0
            return self._config.repay_reward_micro * amount // basis
        if event is CreditEvent.BORROW:
            return self._config.borrow_delta_micro
        return self._config.liquidation_delta_micro

    def record_event(
        self,
        caller: str,
        user: str,
        event: CreditEvent,
        amount: int,
        debt_before: int = 0,
    ) -> int:
        """Apply the update rule for ``event`` and return the new score.

        ``debt_before`` is the user's debt before a repayment and scales the
        repay reward; other events ignore it.
        """
        if self._pool is None or caller != self._pool:
            raise Unauthorized(f"{caller} is not the authorized score writer")

        before = self.score_micro(user)
        delta = self.delta_for(event, amount, debt_before)
        after = min(max(before + delta, 0), SCORE_SCALE)
        self._scores[user] = after
        logger.debug(
            "Score %s: %s of %d moved %d -> %d", user, event.value, amount, before, after
        )
        return after
