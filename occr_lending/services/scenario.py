"""Scripted walk-through of a borrower's life cycle against a fresh engine."""
from __future__ import annotations

import logging

from ..engine import LendingEngine
from ..errors import IdentityNotVerified
from ..models import DemoStep

logger = logging.getLogger(__name__)


def _step(engine: LendingEngine, user: str, label: str) -> DemoStep:
    collateral, debt, _ = engine.pool.get_user_positions(user)
    step = DemoStep(
        label=label,
        collateral=collateral,
        debt=debt,
        score_micro=engine.score.score_micro(user),
        underwater=engine.pool.is_underwater(user),
    )
    logger.info(
        "%s: collateral=%d debt=%d score=%d underwater=%s",
        label, collateral, debt, step.score_micro, step.underwater,
    )
    return step


def run_demo(
    engine: LendingEngine,
    user: str = "borrower",
    liquidator: str = "liquidator",
    collateral: str = "1",
    borrow: str = "1000",
    repay: str = "200",
    crash_price: str = "1000",
    liquidate: str = "200",
) -> list[DemoStep]:
    """Deposit, hit the identity gate, verify, borrow, repay, crash, liquidate."""
    pool = engine.pool
    steps: list[DemoStep] = []

    deposit_amount = engine.units(collateral)
    engine.collateral.mint(user, deposit_amount)
    engine.collateral.approve(user, pool.address, deposit_amount)
    pool.deposit(user, deposit_amount)
    steps.append(_step(engine, user, f"Deposited {collateral} {engine.collateral.symbol}"))

    try:
        pool.borrow(user, engine.units(borrow))
    except IdentityNotVerified:
        steps.append(_step(engine, user, "Borrow blocked by identity check"))

    engine.identity.verify_identity(user, b"")
    pool.borrow(user, engine.units(borrow))
    steps.append(_step(engine, user, f"Borrowed {borrow} {engine.debt.symbol}"))

    repay_amount = engine.units(repay)
    engine.debt.approve(user, pool.address, repay_amount)
    pool.repay(user, repay_amount)
    steps.append(_step(engine, user, f"Repaid {repay} {engine.debt.symbol}"))

    pool.set_price(engine.admin, engine.wad(crash_price))
    steps.append(_step(engine, user, f"Price dropped to {crash_price}"))

    liquidation_amount = engine.units(liquidate)
    engine.debt.mint(liquidator, liquidation_amount)
    engine.debt.approve(liquidator, pool.address, liquidation_amount)
    pool.liquidate(liquidator, user, liquidation_amount)
    steps.append(_step(engine, user, f"Liquidated {liquidate} {engine.debt.symbol}"))

    return steps
