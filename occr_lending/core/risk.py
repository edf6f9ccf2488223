"""Pure fixed-point risk math — no state, no I/O.

All values are integers. Prices are WAD-scaled (``PRICE_SCALE``), ratios are
basis points, scores are micro-scaled. Every division truncates toward zero
(amounts are never negative, so this is floor division).
"""
from __future__ import annotations

PRICE_SCALE = 10**18
BPS = 10_000
SCORE_SCALE = 1_000_000


def collateral_value(collateral: int, price: int) -> int:
    """Collateral value in debt-asset units.

    collateral_value = collateral * price / PRICE_SCALE
    """
    return collateral * price // PRICE_SCALE


def max_debt_at(collateral: int, price: int, ratio_bps: int) -> int:
    """Largest debt a position may carry at ``ratio_bps`` of its value."""
    return collateral * price * ratio_bps // (PRICE_SCALE * BPS)


def is_underwater(
    collateral: int, debt: int, price: int, liquidation_threshold_bps: int
) -> bool:
    """True when debt is strictly above the liquidation limit."""
    return debt > max_debt_at(collateral, price, liquidation_threshold_bps)


def seize_amount(repay_amount: int, price: int, bonus_bps: int) -> int:
    """Collateral paid to a liquidator for repaying ``repay_amount`` of debt.

    seized = repay_amount * (BPS + bonus_bps) / BPS, converted to collateral
    units at ``price``. Truncation favours the borrower.
    """
    return repay_amount * (BPS + bonus_bps) * PRICE_SCALE // (BPS * price)


def ltv_bps(collateral: int, debt: int, price: int) -> int:
    """Current loan-to-value in basis points (0 when there is no collateral)."""
    value = collateral_value(collateral, price)
    if value <= 0:
        return 0
    return debt * BPS // value


def health_factor_bps(
    collateral: int, debt: int, price: int, liquidation_threshold_bps: int
) -> int | None:
    """Health factor in basis points; ``None`` when there is no debt.

    health_factor = (collateral value * liquidation threshold) / debt
    """
    if debt <= 0:
        return None
    return max_debt_at(collateral, price, liquidation_threshold_bps) * BPS // debt


def scaled_ltv_bps(score_micro: int, base_ltv_bps: int, max_bonus_bps: int) -> int:
    """Linear, saturating score-to-LTV curve.

    Score 0 maps to ``base_ltv_bps``; a full score maps to
    ``base_ltv_bps + max_bonus_bps``. Scores outside the range are clamped.
    """
    score = min(max(score_micro, 0), SCORE_SCALE)
    return base_ltv_bps + max_bonus_bps * score // SCORE_SCALE
