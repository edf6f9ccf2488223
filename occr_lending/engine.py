"""Wires the ledgers, identity gate, score engine and pool together."""
from __future__ import annotations

import logging
import time
from dataclasses import dataclass
from typing import Callable

from .assets import TokenLedger, to_units
from .config import AccountConfig, AppConfig
from .core import IdentityVerifier, LendingPool, OCCRScore

logger = logging.getLogger(__name__)

POOL_ADDRESS = "pool"


@dataclass(frozen=True)
class LendingEngine:
    """Handles to every wired component."""

    admin: str
    collateral: TokenLedger
    debt: TokenLedger
    identity: IdentityVerifier
    score: OCCRScore
    pool: LendingPool

    def units(self, value: str) -> int:
        """Convert a human amount to base units of the pool assets."""
        return to_units(value, self.collateral.decimals)

    @staticmethod
    def wad(value: str) -> int:
        """Convert a human price to the pool's WAD price scale."""
        return to_units(value, 18)


def deploy_engine(
    config: AppConfig,
    admin: str = "deployer",
    clock: Callable[[], float] = time.time,
) -> LendingEngine:
    """Deploy and wire a fresh engine, seeding the pool with debt liquidity."""
    pool_cfg = config.pool
    collateral = TokenLedger(pool_cfg.collateral_symbol, pool_cfg.decimals)
    debt = TokenLedger(pool_cfg.debt_symbol, pool_cfg.decimals)

    identity = IdentityVerifier(admin)
    score = OCCRScore(admin, config.score, decimals=pool_cfg.decimals)
    pool = LendingPool(POOL_ADDRESS, collateral, debt, admin, pool_cfg, clock=clock)

    pool.set_refs(admin, score, identity)
    score.set_pool(pool.address, admin)

    liquidity = to_units(pool_cfg.pool_liquidity, pool_cfg.decimals)
    if liquidity:
        debt.mint(pool.address, liquidity)

    logger.info(
        "Engine deployed: %s collateral, %s debt, liquidity %s",
        collateral.symbol, debt.symbol, pool_cfg.pool_liquidity,
    )
    return LendingEngine(
        admin=admin,
        collateral=collateral,
        debt=debt,
        identity=identity,
        score=score,
        pool=pool,
    )


def seed_account(engine: LendingEngine, account: AccountConfig) -> None:
    """Open a configured account's position through the public operations."""
    collateral = engine.units(account.collateral)
    debt = engine.units(account.debt)

    if account.verified:
        engine.identity.admin_set_verified(engine.admin, account.address, True)
    if collateral:
        engine.collateral.mint(account.address, collateral)
        engine.collateral.approve(account.address, engine.pool.address, collateral)
        engine.pool.deposit(account.address, collateral)
    if debt:
        engine.pool.borrow(account.address, debt)
    logger.info("Seeded account %s (%s)", account.label, account.address)
