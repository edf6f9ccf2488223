"""Keeps the pool price fresh and alerts on risky positions."""
from __future__ import annotations

import asyncio
import logging
from datetime import datetime, timezone

from ..assets import from_units
from ..config import AppConfig
from ..core import risk
from ..engine import LendingEngine
from ..errors import LendingError
from ..interfaces.notifier import Notifier
from ..interfaces.price_oracle import PriceSource
from ..models import PositionReport

logger = logging.getLogger(__name__)


class PositionWatcher:
    """Checks configured accounts against the pool and notifies on risk."""

    def __init__(
        self,
        config: AppConfig,
        engine: LendingEngine,
        price_source: PriceSource | None = None,
        notifiers: list[Notifier] | None = None,
    ) -> None:
        self._config = config
        self._engine = engine
        self._price_source = price_source
        self._notifiers: list[Notifier] = list(notifiers or [])
        self._warning_bps = config.monitor.thresholds.ltv_warning_bps

    # ------------------------------------------------------------------
    # Formatting helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _now_str() -> str:
        return datetime.now(timezone.utc).strftime("%Y-%m-%d %H:%M:%S")

    @staticmethod
    def _format_bps(bps: int | None) -> str:
        if bps is None:
            return "∞"
        return f"{bps / 100:.2f}%"

    def _format_amount(self, amount: int) -> str:
        return f"{from_units(amount, self._engine.collateral.decimals):,.4f}"

    def _get_status(self, report: PositionReport) -> str:
        if report.underwater:
            return "🚨 UNDERWATER"
        if report.ltv_bps >= self._warning_bps:
            return "⚠️ WARNING"
        return "✅ Healthy"

    def _build_log_message(self, report: PositionReport) -> str:
        pool = self._engine.pool
        return (
            f"📊 {report.label} · {self._get_status(report)}\n"
            f"\n"
            f"Collateral: {self._format_amount(report.collateral)} {pool.collateral_asset.symbol}\n"
            f"Debt: {self._format_amount(report.debt)} {pool.debt_asset.symbol}\n"
            f"Buffer: {self._format_amount(report.buffer)} {pool.debt_asset.symbol}\n"
            f"LTV: {self._format_bps(report.ltv_bps)} · max {self._format_bps(report.max_ltv_bps)}\n"
            f"HF: {self._format_bps(report.health_factor_bps)} · score {report.score_micro}\n"
            f"\n"
            f"{self._now_str()} UTC"
        )

    def _build_alert(self, report: PositionReport) -> str:
        pool = self._engine.pool
        if report.underwater:
            advice = "Position can be liquidated now. Repay debt or add collateral."
        else:
            advice = "Consider adding collateral or repaying from the buffer."
        return (
            f"{self._get_status(report)} — LTV {self._format_bps(report.ltv_bps)}\n"
            f"\n"
            f"{report.label} ({report.address})\n"
            f"Price: {from_units(report.price, 18):,.2f} {pool.debt_asset.symbol}\n"
            f"Liquidation threshold: {self._format_bps(pool.liquidation_threshold_bps)}\n"
            f"Health factor: {self._format_bps(report.health_factor_bps)}\n"
            f"\n"
            f"{advice}\n"
            f"{self._now_str()} UTC"
        )

    # ------------------------------------------------------------------
    # Notification dispatch
    # ------------------------------------------------------------------

    async def _send_log(self, message: str, silent: bool = True) -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_log(message, silent=silent)
            except Exception as e:
                logger.error("Notifier send_log failed: %s", e)

    async def _send_alert(self, message: str, subject: str = "") -> None:
        for notifier in self._notifiers:
            try:
                await notifier.send_alert(message, subject=subject)
            except Exception as e:
                logger.error("Notifier send_alert failed: %s", e)

    # ------------------------------------------------------------------
    # Core workflows
    # ------------------------------------------------------------------

    def build_report(self, label: str, address: str) -> PositionReport:
        pool = self._engine.pool
        position = pool.position(address)
        return PositionReport(
            label=label,
            address=address,
            collateral=position.collateral,
            debt=position.debt,
            buffer=position.buffer,
            price=pool.price,
            ltv_bps=risk.ltv_bps(position.collateral, position.debt, pool.price),
            health_factor_bps=risk.health_factor_bps(
                position.collateral, position.debt, pool.price, pool.liquidation_threshold_bps
            ),
            score_micro=self._engine.score.score_micro(address),
            max_ltv_bps=pool.max_ltv_bps(address),
            underwater=pool.is_underwater(address),
        )

    async def refresh_price(self) -> bool:
        """Push the latest quote from the price source into the pool."""
        if self._price_source is None:
            return False
        quote = await self._price_source.fetch_quote()
        if quote is None:
            logger.warning("No price quote available, keeping %d", self._engine.pool.price)
            return False
        try:
            self._engine.pool.update_price(self._engine.admin, quote)
        except LendingError as e:
            logger.warning("Price quote rejected: %s", e)
            return False
        return True

    async def check_and_alert(self) -> list[PositionReport]:
        """Report every configured account and alert on risky ones."""
        reports: list[PositionReport] = []

        for account in self._config.accounts:
            report = self.build_report(account.label, account.address)
            reports.append(report)

            logger.info(
                "Position — %s · collateral %d  debt %d  LTV %d bps  score %d  underwater %s",
                report.label,
                report.collateral,
                report.debt,
                report.ltv_bps,
                report.score_micro,
                report.underwater,
            )
            await self._send_log(self._build_log_message(report))

            if report.underwater:
                await self._send_alert(
                    self._build_alert(report), subject="🚨 CRITICAL: Position underwater"
                )
            elif report.debt and report.ltv_bps >= self._warning_bps:
                await self._send_alert(
                    self._build_alert(report), subject="⚠️ WARNING: High LTV"
                )

        return reports

    async def run_continuous(self, check_interval_minutes: int | None = None) -> None:
        """Run the refresh-and-check loop until cancelled."""
        interval = check_interval_minutes or self._config.monitor.check_interval_minutes
        logger.info("Starting position watcher (checking every %d minutes)", interval)

        while True:
            try:
                await self.refresh_price()
                await self.check_and_alert()
                await asyncio.sleep(interval * 60)
            except Exception as e:
                logger.error("Error in watcher loop: %s", e)
                await asyncio.sleep(60)
