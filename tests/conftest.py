"""Shared test fixtures and sample data."""
from __future__ import annotations

import textwrap
from pathlib import Path

import pytest

from occr_lending.config import (
    AccountConfig,
    AppConfig,
    MonitorConfig,
    NotificationsConfig,
    PoolConfig,
    PriceOracleConfig,
    PythConfig,
    ScoreConfig,
    TelegramConfig,
    ThresholdsConfig,
)
from occr_lending.engine import LendingEngine, deploy_engine

ONE = 10**18


def units(n: int | str) -> int:
    """Whole token amount → 18-decimal base units."""
    return int(n) * ONE


class FakeClock:
    """Settable clock for price staleness checks."""

    def __init__(self, now: float = 1_700_000_000) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


# ---------------------------------------------------------------------------
# Config fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def sample_pool_config() -> PoolConfig:
    return PoolConfig(
        collateral_symbol="cWETH",
        debt_symbol="tUSDC",
        decimals=18,
        base_ltv_bps=5000,
        liquidation_threshold_bps=5500,
        liquidation_bonus_bps=500,
        initial_price="2000",
        max_price_age_seconds=300,
        pool_liquidity="100000",
    )


@pytest.fixture()
def sample_score_config() -> ScoreConfig:
    return ScoreConfig(
        repay_reward_micro=50_000,
        borrow_delta_micro=0,
        liquidation_delta_micro=0,
        max_bonus_ltv_bps=400,
    )


@pytest.fixture()
def sample_app_config(
    sample_pool_config: PoolConfig, sample_score_config: ScoreConfig
) -> AppConfig:
    return AppConfig(
        pool=sample_pool_config,
        score=sample_score_config,
        monitor=MonitorConfig(
            check_interval_minutes=5,
            thresholds=ThresholdsConfig(ltv_warning_bps=4500),
        ),
        accounts=(
            AccountConfig(
                label="test-borrower",
                address="0xBORROWER",
                collateral="1",
                debt="800",
                verified=True,
            ),
        ),
        price_oracle=PriceOracleConfig(
            provider="pyth",
            pyth=PythConfig(hermes_url="https://hermes.example.com", feed_id="aaa111"),
        ),
        notifications=NotificationsConfig(
            telegram=TelegramConfig(
                enabled=True,
                alert_bot_token="fake-alert-token",
                log_bot_token="fake-log-token",
                chat_id="12345",
            ),
        ),
    )


# ---------------------------------------------------------------------------
# Engine fixtures
# ---------------------------------------------------------------------------


@pytest.fixture()
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture()
def engine(sample_app_config: AppConfig, clock: FakeClock) -> LendingEngine:
    """Freshly wired engine: price 2000, 100k debt liquidity, no positions."""
    return deploy_engine(sample_app_config, admin="deployer", clock=clock)


@pytest.fixture()
def fund(engine: LendingEngine):
    """Mint collateral and/or debt tokens to an address and approve the pool."""

    def _fund(address: str, collateral: int = 0, debt: int = 0) -> None:
        pool = engine.pool.address
        if collateral:
            engine.collateral.mint(address, collateral)
            engine.collateral.approve(
                address, pool, engine.collateral.allowance(address, pool) + collateral
            )
        if debt:
            engine.debt.mint(address, debt)
            engine.debt.approve(address, pool, engine.debt.allowance(address, pool) + debt)

    return _fund


@pytest.fixture()
def borrower(engine: LendingEngine, fund) -> str:
    """Verified user with 1 cWETH deposited and no debt."""
    user = "0xUSER"
    fund(user, collateral=units(1))
    engine.pool.deposit(user, units(1))
    engine.identity.admin_set_verified(engine.admin, user, True)
    return user


# ---------------------------------------------------------------------------
# Config YAML fixture
# ---------------------------------------------------------------------------

SAMPLE_YAML = textwrap.dedent("""\
    pool:
      collateral_symbol: cWETH
      debt_symbol: tUSDC
      decimals: 18
      base_ltv_bps: 5000
      liquidation_threshold_bps: 5500
      liquidation_bonus_bps: 500
      initial_price: "2000"
      max_price_age_seconds: 120
      pool_liquidity: "100000"
    score:
      repay_reward_micro: 25000
      max_bonus_ltv_bps: 300
      reward_debt_floor: "250"
    monitor:
      check_interval_minutes: 5
      thresholds:
        ltv_warning_bps: 4000
    accounts:
      - label: test-borrower
        address: "0xTEST"
        collateral: "2.5"
        debt: "1000"
        verified: true
    price_oracle:
      provider: pyth
      pyth:
        hermes_url: "https://hermes.example.com"
        feed_id: "aaa"
    notifications:
      telegram:
        enabled: true
        alert_bot_token: "tok1"
        log_bot_token: "tok2"
        chat_id: "999"
""")


@pytest.fixture()
def sample_yaml_path(tmp_path: Path) -> Path:
    cfg_file = tmp_path / "config.yaml"
    cfg_file.write_text(SAMPLE_YAML)
    return cfg_file
