"""Integration tests for the lending pool wired to identity and score."""
from __future__ import annotations

import logging

import pytest

from occr_lending.assets import TokenLedger
from occr_lending.config import PoolConfig
from occr_lending.core import IdentityVerifier, LendingPool, OCCRScore
from occr_lending.engine import LendingEngine
from occr_lending.errors import (
    AlreadyConfigured,
    ExceedsLTV,
    IdentityNotVerified,
    InsufficientBalance,
    InvalidAmount,
    NotUnderwater,
    ReentrantCall,
    StaleOrInvalidPrice,
    Unauthorized,
)
from occr_lending.models import PriceQuote

ONE = 10**18


def units(n: int) -> int:
    return n * ONE


class TestWiring:
    def test_set_refs_only_once(self, engine: LendingEngine) -> None:
        with pytest.raises(AlreadyConfigured):
            engine.pool.set_refs(engine.admin, engine.score, engine.identity)
        assert engine.pool.score is engine.score

    def test_set_refs_admin_only(self) -> None:
        pool = LendingPool("p", TokenLedger("c"), TokenLedger("d"), "admin")
        with pytest.raises(Unauthorized):
            pool.set_refs("mallory", OCCRScore("admin"), IdentityVerifier("admin"))
        assert pool.score is None

    def test_borrow_requires_wiring(self) -> None:
        pool = LendingPool("p", TokenLedger("c"), TokenLedger("d"), "admin")
        with pytest.raises(Unauthorized):
            pool.borrow("u", 1)

    def test_borrow_requires_score_writer(self) -> None:
        identity = IdentityVerifier("admin")
        identity.admin_set_verified("admin", "u", True)
        pool = LendingPool("p", TokenLedger("c"), TokenLedger("d"), "admin")
        pool.set_refs("admin", OCCRScore("admin"), identity)
        with pytest.raises(Unauthorized, match="score writer"):
            pool.borrow("u", 1)


class TestDeposit:
    def test_deposit_conserves_balances(self, engine: LendingEngine, fund) -> None:
        fund("0xA", collateral=units(3))
        engine.pool.deposit("0xA", units(2))

        assert engine.pool.collateral_balance("0xA") == units(2)
        assert engine.collateral.balance_of(engine.pool.address) == units(2)
        assert engine.collateral.balance_of("0xA") == units(1)

    @pytest.mark.parametrize("amount", [0, -5])
    def test_non_positive_amount_rejected(self, engine: LendingEngine, amount: int) -> None:
        with pytest.raises(InvalidAmount):
            engine.pool.deposit("0xA", amount)

    def test_without_allowance_rejected(self, engine: LendingEngine) -> None:
        engine.collateral.mint("0xA", units(1))
        with pytest.raises(InsufficientBalance):
            engine.pool.deposit("0xA", units(1))
        assert engine.pool.get_user_positions("0xA") == (0, 0, 0)


class TestBorrow:
    def test_unverified_rejected_then_allowed(self, engine: LendingEngine, fund) -> None:
        fund("0xA", collateral=units(10))
        engine.pool.deposit("0xA", units(10))

        with pytest.raises(IdentityNotVerified):
            engine.pool.borrow("0xA", units(1000))
        assert engine.pool.debt_balance("0xA") == 0

        engine.identity.verify_identity("0xA", "0x")
        assert engine.pool.get_user_positions("0xA") == (units(10), 0, 0)
        engine.pool.borrow("0xA", units(1000))
        assert engine.pool.debt_balance("0xA") == units(1000)
        assert engine.debt.balance_of("0xA") == units(1000)

    def test_boundary_is_inclusive(self, engine: LendingEngine, borrower: str) -> None:
        # 1 unit at 2000 and 50% base LTV → exactly 1000
        engine.pool.borrow(borrower, units(1000))
        assert engine.pool.debt_balance(borrower) == units(1000)
        assert engine.pool.is_underwater(borrower) is False

    def test_one_wei_over_limit_rejected(self, engine: LendingEngine, borrower: str) -> None:
        with pytest.raises(ExceedsLTV):
            engine.pool.borrow(borrower, units(1000) + 1)
        assert engine.pool.debt_balance(borrower) == 0

    def test_cumulative_limit(self, engine: LendingEngine, borrower: str) -> None:
        engine.pool.borrow(borrower, units(600))
        with pytest.raises(ExceedsLTV):
            engine.pool.borrow(borrower, units(401))
        engine.pool.borrow(borrower, units(400))
        assert engine.pool.max_borrowable(borrower) == 0

    def test_score_raises_ceiling(self, engine: LendingEngine, borrower: str, fund) -> None:
        engine.pool.borrow(borrower, units(100))
        fund(borrower, debt=units(100))
        engine.pool.repay(borrower, units(100))

        # score 50_000 → 5000 + 400 * 5% = 5020 bps
        assert engine.pool.max_ltv_bps(borrower) == 5020
        engine.pool.borrow(borrower, units(1004))
        assert engine.pool.debt_balance(borrower) == units(1004)

    def test_pool_liquidity_exhausted(self, engine: LendingEngine, fund) -> None:
        fund("0xWHALE", collateral=units(1000))
        engine.pool.deposit("0xWHALE", units(1000))
        engine.identity.admin_set_verified(engine.admin, "0xWHALE", True)
        with pytest.raises(InsufficientBalance, match="liquidity"):
            engine.pool.borrow("0xWHALE", units(100_001))


class TestRepay:
    def test_partial_repay(self, engine: LendingEngine, borrower: str, fund) -> None:
        engine.pool.borrow(borrower, units(100))
        fund(borrower, debt=units(40))
        engine.pool.repay(borrower, units(40))
        assert engine.pool.debt_balance(borrower) == units(60)

    def test_excess_is_clamped(self, engine: LendingEngine, borrower: str, fund) -> None:
        engine.pool.borrow(borrower, units(100))
        fund(borrower, debt=units(150))

        paid = engine.pool.repay(borrower, units(150))

        assert paid == units(100)
        assert engine.pool.debt_balance(borrower) == 0
        # only the outstanding debt was pulled
        assert engine.debt.balance_of(borrower) == units(150)

    def test_repay_without_debt_rejected(self, engine: LendingEngine, borrower: str) -> None:
        with pytest.raises(InvalidAmount):
            engine.pool.repay(borrower, units(1))

    def test_repay_increases_score(self, engine: LendingEngine, borrower: str, fund) -> None:
        engine.pool.borrow(borrower, units(100))
        before = engine.score.score_micro(borrower)
        fund(borrower, debt=units(10))
        engine.pool.repay(borrower, units(10))
        assert engine.score.score_micro(borrower) > before

    def test_dust_round_trips_do_not_raise_ceiling(
        self, engine: LendingEngine, borrower: str, fund
    ) -> None:
        fund(borrower, debt=20)
        for _ in range(20):
            engine.pool.borrow(borrower, 1)
            engine.pool.repay(borrower, 1)

        assert engine.score.score_micro(borrower) == 0
        assert engine.pool.max_ltv_bps(borrower) == 5000

    def test_repay_insufficient_funds(
self, engine: LendingEngine, borrower: str) -> None:
        engine.pool.borrow(borrower, units(100))
        engine.debt.approve(borrower, engine.pool.address, units(200))
        engine.debt.transfer(borrower, "0xSINK", units(100))
        with pytest.raises(InsufficientBalance):
            engine.pool.repay(borrower, units(10))
        assert engine.pool.debt_balance(borrower) == units(100)
        assert engine.score.score_micro(borrower) == 0

    def test_repay_on_behalf(self, engine: LendingEngine, borrower: str, fund) -> None:
        engine.pool.borrow(borrower, units(100))
        fund("0xFRIEND", debt=units(25))

        engine.pool.repay_on_behalf("0xFRIEND", borrower, units(25))

        assert engine.pool.debt_balance(borrower) == units(75)
        assert engine.debt.balance_of("0xFRIEND") == 0
        assert not engine.identity.is_verified("0xFRIEND")


class TestWithdraw:
    def test_free_collateral_withdrawn(self, engine: LendingEngine, borrower: str) -> None:
        engine.pool.withdraw(borrower, units(1))
        assert engine.pool.collateral_balance(borrower) == 0
        assert engine.collateral.balance_of(borrower) == units(1)

    def test_exceeding_collateral_rejected(self, engine: LendingEngine, borrower: str) -> None:
        with pytest.raises(InsufficientBalance):
            engine.pool.withdraw(borrower, units(2))

    def test_cannot_undercollateralize(self, engine: LendingEngine, borrower: str) -> None:
        engine.pool.borrow(borrower, units(500))
        # 500 debt needs 0.5 units at 2000 / 50%
        with pytest.raises(ExceedsLTV):
            engine.pool.withdraw(borrower, ONE // 2 + 1)
        engine.pool.withdraw(borrower, ONE // 2)
        assert engine.pool.collateral_balance(borrower) == ONE // 2


class TestBuffer:
    def test_buffer_round_trip(self, engine: LendingEngine, borrower: str, fund) -> None:
        engine.pool.borrow(borrower, units(100))
        fund(borrower, debt=units(50))

        engine.pool.deposit_buffer(borrower, units(50))
        engine.pool.repay_from_buffer(borrower, units(30))
        assert engine.pool.get_user_positions(borrower) == (units(1), units(70), units(20))

        engine.pool.withdraw_buffer(borrower, units(20))
        assert engine.pool.buffer_balance(borrower) == 0
        assert engine.pool.debt_balance(borrower) == units(70)
        assert engine.debt.balance_of(borrower) == units(120)

    def test_repay_from_buffer_limits(self, engine: LendingEngine, borrower: str, fund) -> None:
        engine.pool.borrow(borrower, units(10))
        fund(borrower, debt=units(50))
        engine.pool.deposit_buffer(borrower, units(20))

        with pytest.raises(InsufficientBalance):
            engine.pool.repay_from_buffer(borrower, units(21))
        with pytest.raises(InvalidAmount):
            engine.pool.repay_from_buffer(borrower, units(11))
        assert engine.pool.get_user_positions(borrower) == (units(1), units(10), units(20))

    def test_withdraw_buffer_over_balance(self, engine: LendingEngine, borrower: str) -> None:
        with pytest.raises(InsufficientBalance):
            engine.pool.withdraw_buffer(borrower, 1)

    def test_buffer_not_lent_out(self, engine: LendingEngine, fund) -> None:
        liquidity = engine.pool.available_liquidity()
        fund("0xSAVER", debt=units(500))
        engine.pool.deposit_buffer("0xSAVER", units(500))
        assert engine.pool.available_liquidity() == liquidity


class TestPrice:
    def test_set_price_admin_only(self, engine: LendingEngine) -> None:
        with pytest.raises(Unauthorized):
            engine.pool.set_price("0xA", units(1))

    @pytest.mark.parametrize("price", [0, -1, True, 1.5])
    def test_invalid_price(self, engine: LendingEngine, price: int) -> None:
        with pytest.raises(StaleOrInvalidPrice):
            engine.pool.set_price(engine.admin, price)
        assert engine.pool.price == units(2000)

    def test_quote_applied(self, engine: LendingEngine, clock) -> None:
        engine.pool.update_price(engine.admin, PriceQuote(units(1800), int(clock.now) - 10))
        assert engine.pool.price == units(1800)

    def test_stale_quote_rejected(self, engine: LendingEngine, clock) -> None:
        with pytest.raises(StaleOrInvalidPrice, match="max age"):
            engine.pool.update_price(engine.admin, PriceQuote(units(1800), int(clock.now) - 301))
        assert engine.pool.price == units(2000)

    def test_out_of_order_quote_rejected(self, engine: LendingEngine, clock) -> None:
        engine.pool.update_price(engine.admin, PriceQuote(units(1800), int(clock.now)))
        with pytest.raises(StaleOrInvalidPrice, match="older"):
            engine.pool.update_price(engine.admin, PriceQuote(units(1700), int(clock.now) - 5))

    def test_staleness_check_disabled(self) -> None:
        pool = LendingPool(
            "p", TokenLedger("c"), TokenLedger("d"), "admin",
            PoolConfig(max_price_age_seconds=0), clock=lambda: 10**10,
        )
        pool.update_price("admin", PriceQuote(units(5), 1))
        assert pool.price == units(5)


class TestLiquidation:
    def test_price_drop_scenario(self, engine: LendingEngine, borrower: str, fund) -> None:
        engine.pool.borrow(borrower, units(1000))
        assert engine.pool.is_underwater(borrower) is False

        engine.pool.set_price(engine.admin, units(1500))
        assert engine.pool.is_underwater(borrower) is True

        fund("0xLIQ", debt=units(200))
        seized = engine.pool.liquidate("0xLIQ", borrower, units(200))

        assert engine.pool.debt_balance(borrower) == units(800)
        # 200 * 1.05 / 1500 = 0.14 collateral
        assert seized == 14 * ONE // 100
        assert engine.pool.collateral_balance(borrower) == ONE - seized
        assert engine.collateral.balance_of("0xLIQ") == seized
        assert engine.debt.balance_of("0xLIQ") == 0

    def test_healthy_position_rejected(self, engine: LendingEngine, borrower: str, fund) -> None:
        engine.pool.borrow(borrower, units(1000))
        fund("0xLIQ", debt=units(200))
        with pytest.raises(NotUnderwater):
            engine.pool.liquidate("0xLIQ", borrower, units(200))
        assert engine.debt.balance_of("0xLIQ") == units(200)

    def test_repay_above_debt_rejected(self, engine: LendingEngine, borrower: str, fund) -> None:
        engine.pool.borrow(borrower, units(1000))
        engine.pool.set_price(engine.admin, units(1500))
        fund("0xLIQ", debt=units(2000))
        with pytest.raises(InvalidAmount):
            engine.pool.liquidate("0xLIQ", borrower, units(1001))

    def test_seizure_capped_at_collateral(self, engine: LendingEngine, borrower: str, fund) -> None:
        engine.pool.borrow(borrower, units(1000))
        engine.pool.set_price(engine.admin, units(500))
        fund("0xLIQ", debt=units(1000))

        seized = engine.pool.liquidate("0xLIQ", borrower, units(1000))

        assert seized == ONE
        assert engine.pool.get_user_positions(borrower) == (0, 0, 0)

    def test_liquidation_does_not_lower_score(
        self, engine: LendingEngine, borrower: str, fund
    ) -> None:
        engine.pool.borrow(borrower, units(1000))
        fund(borrower, debt=units(200))
        engine.pool.repay(borrower, units(200))
        before = engine.score.score_micro(borrower)

        engine.pool.set_price(engine.admin, units(1000))
        fund("0xLIQ", debt=units(500))
        engine.pool.liquidate("0xLIQ", borrower, units(500))

        assert engine.score.score_micro(borrower) >= before

    def test_failed_payout_refunds_liquidator(
        self, engine: LendingEngine, borrower: str, fund, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        engine.pool.borrow(borrower, units(1000))
        fund(borrower, debt=units(200))
        engine.pool.repay(borrower, units(200))
        score_before = engine.score.score_micro(borrower)
        engine.pool.set_price(engine.admin, units(1000))
        fund("0xLIQ", debt=units(200))
        monkeypatch.setattr(engine.collateral, "transfer", lambda *args: False)

        with pytest.raises(InsufficientBalance, match="seized collateral"):
            engine.pool.liquidate("0xLIQ", borrower, units(200))

        assert engine.debt.balance_of("0xLIQ") == units(200)
        assert engine.pool.get_user_positions(borrower) == (ONE, units(800), 0)
        assert engine.score.score_micro(borrower) == score_before

    def test_failed_refund_is_reported(
        self,
        engine: LendingEngine,
        borrower: str,
        fund,
        monkeypatch: pytest.MonkeyPatch,
        caplog: pytest.LogCaptureFixture,
    ) -> None:
        engine.pool.borrow(borrower, units(1000))
        engine.pool.set_price(engine.admin, units(1500))
        fund("0xLIQ", debt=units(100))
        monkeypatch.setattr(engine.collateral, "transfer", lambda *args: False)
        monkeypatch.setattr(engine.debt, "transfer", lambda *args: False)

        with caplog.at_level(logging.ERROR, logger="occr_lending.core.pool"):
            with pytest.raises(InsufficientBalance, match="refund"):
                engine.pool.liquidate("0xLIQ", borrower, units(100))

        assert "Refund of" in caplog.text
        assert engine.pool.get_user_positions(borrower) == (ONE, units(1000), 0)

    def test_liquidator_without_funds(
self, engine: LendingEngine, borrower: str) -> None:
        engine.pool.borrow(borrower, units(1000))
        engine.pool.set_price(engine.admin, units(1500))
        with pytest.raises(InsufficientBalance):
            engine.pool.liquidate("0xLIQ", borrower, units(100))
        assert engine.pool.get_user_positions(borrower) == (ONE, units(1000), 0)


class _ReentrantToken(TokenLedger):
    """Token that calls back into the pool during ``transfer_from``."""

    def __init__(self) -> None:
        super().__init__("EVIL")
        self.pool: LendingPool | None = None
        self.caught: Exception | None = None

    def transfer_from(self, spender: str, owner: str, to: str, amount: int) -> bool:
        assert self.pool is not None
        try:
            self.pool.deposit(owner, amount)
        except ReentrantCall as e:
            self.caught = e
        return super().transfer_from(spender, owner, to, amount)


class TestReentrancy:
    def test_nested_call_rejected(self) -> None:
        token = _ReentrantToken()
        pool = LendingPool("p", token, TokenLedger("d"), "admin")
        token.pool = pool
        token.mint("0xA", 10)
        token.approve("0xA", "p", 10)

        pool.deposit("0xA", 10)

        assert isinstance(token.caught, ReentrantCall)
        assert pool.collateral_balance("0xA") == 10

    def test_guard_released_after_rejection(self, engine: LendingEngine) -> None:
        with pytest.raises(InvalidAmount):
            engine.pool.deposit("0xA", 0)
        with pytest.raises(InsufficientBalance):
            engine.pool.deposit("0xA", 1)
