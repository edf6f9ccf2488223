"""Command-line interface for the OCCR lending engine."""
from __future__ import annotations

import argparse
import asyncio
import sys

from .assets import from_units
from .config import AppConfig, load_config
from .engine import deploy_engine, seed_account
from .interfaces.notifier import Notifier
from .logging_setup import configure_logging
from .notifications import TelegramNotifier
from .oracles import PythPriceSource
from .services import PositionWatcher, run_demo


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse CLI parser."""
    parser = argparse.ArgumentParser(
        prog="occr-lending",
        description="Collateralized lending pool with on-chain credit reputation",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to config.yaml (default: config.yaml in project root)",
    )
    parser.add_argument(
        "--log-level",
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        help="Logging level (default: INFO)",
    )

    sub = parser.add_subparsers(dest="command")

    sub.add_parser("demo", help="Run the scripted borrow/repay/liquidation demo")
    sub.add_parser("check", help="Seed configured accounts and run one watcher pass")

    watch_parser = sub.add_parser("watch", help="Continuous price refresh and position checks")
    watch_parser.add_argument(
        "interval",
        nargs="?",
        type=int,
        default=None,
        help="Check interval in minutes (overrides config)",
    )

    return parser


def _build_notifiers(config: AppConfig) -> list[Notifier]:
    notifiers: list[Notifier] = []
    if config.notifications.telegram.enabled:
        notifiers.append(TelegramNotifier(config.notifications.telegram))
    return notifiers


def _build_watcher(config: AppConfig) -> PositionWatcher:
    engine = deploy_engine(config)
    for account in config.accounts:
        seed_account(engine, account)
    return PositionWatcher(
        config,
        engine,
        price_source=PythPriceSource(config.price_oracle.pyth),
        notifiers=_build_notifiers(config),
    )


def _print_demo(config: AppConfig) -> None:
    engine = deploy_engine(config)
    decimals = config.pool.decimals
    for step in run_demo(engine):
        print(
            f"{step.label:<36} collateral={from_units(step.collateral, decimals):<8.4f} "
            f"debt={from_units(step.debt, decimals):<10.2f} score={step.score_micro:<8} "
            f"underwater={step.underwater}"
        )
    base = engine.pool.base_ltv_bps
    print(f"Base LTV bps={base}, borrower LTV bps={engine.pool.max_ltv_bps('borrower')}")


async def _run(args: argparse.Namespace) -> None:
    """Execute the selected command."""
    configure_logging(args.log_level)
    config = load_config(args.config)

    if args.command == "demo":
        _print_demo(config)
    elif args.command == "check":
        watcher = _build_watcher(config)
        await watcher.refresh_price()
        await watcher.check_and_alert()
    elif args.command == "watch":
        await _build_watcher(config).run_continuous(args.interval)
    else:
        build_parser().print_help()
        sys.exit(1)


def main() -> None:
    """Entry point."""
    parser = build_parser()
    args = parser.parse_args()

    if not args.command:
        parser.print_help()
        sys.exit(1)

    asyncio.run(_run(args))
