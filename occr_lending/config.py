"""Configuration loader — reads config.yaml, interpolates env vars, validates."""
from __future__ import annotations

import logging
import os
import re
from dataclasses import dataclass, field
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any

import yaml
from dotenv import load_dotenv

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Frozen config dataclasses
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class PoolConfig:
    collateral_symbol: str = "cWETH"
    debt_symbol: str = "tUSDC"
    decimals: int = 18
    base_ltv_bps: int = 5000
    liquidation_threshold_bps: int = 5500
    liquidation_bonus_bps: int = 500
    initial_price: str = "2000"
    max_price_age_seconds: int = 0
    pool_liquidity: str = "100000"


@dataclass(frozen=True)
class ScoreConfig:
    repay_reward_micro: int = 50_000
    borrow_delta_micro: int = 0
    liquidation_delta_micro: int = 0
    max_bonus_ltv_bps: int = 400
    reward_debt_floor: str = "100"


@dataclass(frozen=True)
class ThresholdsConfig:
    ltv_warning_bps: int = 4500


@dataclass(frozen=True)
class MonitorConfig:
    check_interval_minutes: int = 15
    thresholds: ThresholdsConfig = field(default_factory=ThresholdsConfig)


@dataclass(frozen=True)
class AccountConfig:
    label: str = ""
    address: str = ""
    collateral: str = "0"
    debt: str = "0"
    verified: bool = False


@dataclass(frozen=True)
class PythConfig:
    hermes_url: str = "https://hermes.pyth.network/v2/updates/price/latest"
    feed_id: str = ""


@dataclass(frozen=True)
class PriceOracleConfig:
    provider: str = "pyth"
    pyth: PythConfig = field(default_factory=PythConfig)


@dataclass(frozen=True)
class TelegramConfig:
    enabled: bool = False
    alert_bot_token: str = ""
    log_bot_token: str = ""
    chat_id: str = ""


@dataclass(frozen=True)
class NotificationsConfig:
    telegram: TelegramConfig = field(default_factory=TelegramConfig)


@dataclass(frozen=True)
class AppConfig:
    pool: PoolConfig = field(default_factory=PoolConfig)
    score: ScoreConfig = field(default_factory=ScoreConfig)
    monitor: MonitorConfig = field(default_factory=MonitorConfig)
    accounts: tuple[AccountConfig, ...] = ()
    price_oracle: PriceOracleConfig = field(default_factory=PriceOracleConfig)
    notifications: NotificationsConfig = field(default_factory=NotificationsConfig)


# ---------------------------------------------------------------------------
# Env interpolation
# ---------------------------------------------------------------------------

_ENV_VAR_RE = re.compile(r"\$\{([^}]+)}")


def _interpolate_env(value: Any) -> Any:
    """Recursively replace ${VAR} references with environment variable values."""
    if isinstance(value, str):
        return _ENV_VAR_RE.sub(lambda m: os.environ.get(m.group(1), ""), value)
    if isinstance(value, dict):
        return {k: _interpolate_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_interpolate_env(item) for item in value]
    return value


# ---------------------------------------------------------------------------
# YAML → dataclass builders
# ---------------------------------------------------------------------------


def _build_pool(raw: dict[str, Any]) -> PoolConfig:
    defaults = PoolConfig()
    return PoolConfig(
        collateral_symbol=str(raw.get("collateral_symbol", defaults.collateral_symbol)),
        debt_symbol=str(raw.get("debt_symbol", defaults.debt_symbol)),
        decimals=int(raw.get("decimals", defaults.decimals)),
        base_ltv_bps=int(raw.get("base_ltv_bps", defaults.base_ltv_bps)),
        liquidation_threshold_bps=int(
            raw.get("liquidation_threshold_bps", defaults.liquidation_threshold_bps)
        ),
        liquidation_bonus_bps=int(
            raw.get("liquidation_bonus_bps", defaults.liquidation_bonus_bps)
        ),
        initial_price=str(raw.get("initial_price", defaults.initial_price)),
        max_price_age_seconds=int(
            raw.get("max_price_age_seconds", defaults.max_price_age_seconds)
        ),
        pool_liquidity=str(raw.get("pool_liquidity", defaults.pool_liquidity)),
    )


def _build_score(raw: dict[str, Any]) -> ScoreConfig:
    defaults = ScoreConfig()
    return ScoreConfig(
        repay_reward_micro=int(raw.get("repay_reward_micro", defaults.repay_reward_micro)),
        borrow_delta_micro=int(raw.get("borrow_delta_micro", defaults.borrow_delta_micro)),
        liquidation_delta_micro=int(
            raw.get("liquidation_delta_micro", defaults.liquidation_delta_micro)
        ),
        max_bonus_ltv_bps=int(raw.get("max_bonus_ltv_bps", defaults.max_bonus_ltv_bps)),
        reward_debt_floor=str(raw.get("reward_debt_floor", defaults.reward_debt_floor)),
    )


def _build_monitor(raw: dict[str, Any]) -> MonitorConfig:
    thresholds = raw.get("thresholds", {})
    return MonitorConfig(
        check_interval_minutes=int(raw.get("check_interval_minutes", 15)),
        thresholds=ThresholdsConfig(
            ltv_warning_bps=int(thresholds.get("ltv_warning_bps", 4500)),
        ),
    )


def _build_accounts(raw: list[dict[str, Any]]) -> tuple[AccountConfig, ...]:
    accounts: list[AccountConfig] = []
    for a in raw:
        accounts.append(
            AccountConfig(
                label=a.get("label", ""),
                address=a.get("address", ""),
                collateral=str(a.get("collateral", "0")),
                debt=str(a.get("debt", "0")),
                verified=bool(a.get("verified", False)),
            )
        )
    return tuple(accounts)


def _build_price_oracle(raw: dict[str, Any]) -> PriceOracleConfig:
    pyth_raw = raw.get("pyth", {})
    return PriceOracleConfig(
        provider=raw.get("provider", "pyth"),
        pyth=PythConfig(
            hermes_url=pyth_raw.get("hermes_url", PythConfig.hermes_url),
            feed_id=pyth_raw.get("feed_id", ""),
        ),
    )


def _build_notifications(raw: dict[str, Any]) -> NotificationsConfig:
    tg = raw.get("telegram", {})
    return NotificationsConfig(
        telegram=TelegramConfig(
            enabled=bool(tg.get("enabled", False)),
            alert_bot_token=tg.get("alert_bot_token", ""),
            log_bot_token=tg.get("log_bot_token", ""),
            chat_id=str(tg.get("chat_id", "")),
        ),
    )


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_config(config_path: str | Path | None = None) -> AppConfig:
    """Load and validate engine configuration from YAML + .env.

    Args:
        config_path: Path to config.yaml. Defaults to ``config.yaml`` in the
            project root (two levels up from this file).
    """
    load_dotenv()

    if config_path is None:
        config_path = Path(__file__).resolve().parent.parent / "config.yaml"
    config_path = Path(config_path)

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        raw = yaml.safe_load(f) or {}

    raw = _interpolate_env(raw)

    cfg = AppConfig(
        pool=_build_pool(raw.get("pool", {})),
        score=_build_score(raw.get("score", {})),
        monitor=_build_monitor(raw.get("monitor", {})),
        accounts=_build_accounts(raw.get("accounts", [])),
        price_oracle=_build_price_oracle(raw.get("price_oracle", {})),
        notifications=_build_notifications(raw.get("notifications", {})),
    )

    validate(cfg)
    logger.info("Configuration loaded from %s", config_path)
    return cfg


def _check_bps(name: str, value: int) -> None:
    if not 0 <= value <= 10_000:
        raise ValueError(f"{name} must be within [0, 10000] bps, got {value}")


def validate(cfg: AppConfig) -> None:
    """Raise on invalid configuration."""
    pool = cfg.pool
    _check_bps("base_ltv_bps", pool.base_ltv_bps)
    _check_bps("liquidation_threshold_bps", pool.liquidation_threshold_bps)
    _check_bps("liquidation_bonus_bps", pool.liquidation_bonus_bps)
    _check_bps("max_bonus_ltv_bps", cfg.score.max_bonus_ltv_bps)

    ceiling = pool.base_ltv_bps + cfg.score.max_bonus_ltv_bps
    if pool.liquidation_threshold_bps <= ceiling:
        raise ValueError(
            "liquidation_threshold_bps must be above the highest borrow LTV "
            f"({pool.liquidation_threshold_bps} <= {ceiling})"
        )

    try:
        initial_price = Decimal(pool.initial_price)
    except InvalidOperation:
        raise ValueError(f"initial_price is not a number: {pool.initial_price!r}") from None
    if initial_price <= 0:
        raise ValueError("initial_price must be positive")

    try:
        floor = Decimal(cfg.score.reward_debt_floor)
    except InvalidOperation:
        raise ValueError(
            f"reward_debt_floor is not a number: {cfg.score.reward_debt_floor!r}"
        ) from None
    if floor < 0:
        raise ValueError("reward_debt_floor must not be negative")

    seen: set[str] = set()
    for account in cfg.accounts:
        if not account.address:
            raise ValueError(f"Account '{account.label}' has no address")
        if account.address in seen:
            raise ValueError(f"Duplicate account address '{account.address}'")
        seen.add(account.address)
