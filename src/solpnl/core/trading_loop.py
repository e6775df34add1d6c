from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Optional, Union
import asyncio
import time
import logging
from .events import CycleSummary, ExecutionFailed, TradeExecuted
from .ledger import PositionLedger
from .sync import LedgerSync
from .types import SignalAction, Position, utc_now
from .valuation import ValuationEngine
from ..db.rule_store import RuleStore
from ..db.trade_history import TradeHistoryStore
from ..execution.engine import ExecutionEngine
from ..risk.rate_governor import TradeRateGovernor
from ..strategies.base_strategy import BaseStrategy
from ..utils.config import TradingParameters


@dataclass
class LoopStatus:
    running: bool
    dry_run: bool
    active_rules: int
    trades_last_hour: int
    total_trades: int
    cycles: int
    last_cycle_at: Optional[datetime]


class TradingLoop:
    """Single cooperative driver: resync, value, evaluate and exit, one position at a time"""

    def __init__(self,
                 params: TradingParameters,
                 sync: LedgerSync,
                 ledger: PositionLedger,
                 valuation: ValuationEngine,
                 rules: RuleStore,
                 strategy: BaseStrategy,
                 governor: TradeRateGovernor,
                 engine: ExecutionEngine,
                 history: TradeHistoryStore,
                 logger=None,
                 sleep: Callable = asyncio.sleep,
                 clock: Callable[[], float] = time.monotonic,
                 now: Callable[[], datetime] = utc_now):
        self.params = params
        self.sync = sync
        self.ledger = ledger
        self.valuation = valuation
        self.rules = rules
        self.strategy = strategy
        self.governor = governor
        self.engine = engine
        self.history = history
        self.logger = logger or logging.getLogger(__name__)
        self.sleep = sleep
        self.clock = clock
        self.now = now

        self.is_running = False
        self.cycles = 0
        self.last_cycle_at: Optional[datetime] = None
        self.last_summary: Optional[CycleSummary] = None
        self._last_resync: Optional[float] = None
        self._resync_requested = False

    @property
    def dry_run(self) -> bool:
        return self.engine.dry_run

    async def start(self, max_cycles: Optional[int] = None):
        """Run cycles until stopped; the current cycle always completes"""
        if not self.params.enabled:
            self.logger.warning("Trading is disabled in config")
            return

        self.is_running = True
        self.rules.ensure_default()
        self.logger.critical(
            f"Trading loop starting: mode={'DRY RUN' if self.dry_run else 'LIVE'}, "
            f"check every {self.params.check_interval_seconds}s, "
            f"resync every {self.params.resync_interval_seconds}s, "
            f"max {self.params.max_trades_per_hour} trades/hour"
        )
        for rule in self.rules.list_rules():
            label = "Global Default" if rule.is_global_default else (rule.symbol or rule.mint[:8])
            self.logger.info(f"Rule {label}: TP +{rule.take_profit_pct}% | SL {rule.stop_loss_pct}% | "
                             f"sell {rule.sell_percentage}%")

        try:
            while self.is_running:
                try:
                    await self.run_cycle()
                except Exception as e:
                    self.logger.error(f"Error in trading loop: {str(e)}")

                if max_cycles is not None and self.cycles >= max_cycles:
                    break
                if self.is_running:
                    await self.sleep(self.params.check_interval_seconds)
        finally:
            self.is_running = False
            self.logger.info("Trading loop stopped")

    def stop(self):
        """Ask the loop to exit after the cycle in progress"""
        if self.is_running:
            self.logger.info("Stop requested, finishing current cycle")
        self.is_running = False

    def request_resync(self):
        self._resync_requested = True

    def _resync_due(self, now: float) -> bool:
        if self._last_resync is None:
            return True
        elapsed = now - self._last_resync
        if elapsed >= self.params.resync_interval_seconds:
            return True
        # Post-trade resyncs are debounced
        return self._resync_requested and elapsed >= self.params.min_resync_interval_seconds

    async def run_cycle(self) -> CycleSummary:
        summary = CycleSummary()

        now = self.clock()
        if self._resync_due(now):
            try:
                result = await self.sync.sync_recent()
                summary.resynced = True
                summary.base_balance = result.base_balance
            except Exception as e:
                self.logger.error(f"Ledger resync failed, using stored positions: {str(e)}")
            self._last_resync = now
            self._resync_requested = False
        else:
            summary.base_balance = await self.sync.refresh_base_balance()

        positions = self.ledger.open_positions()
        if not positions:
            self.logger.info("No positions to check")
        else:
            self.logger.info(f"Checking {len(positions)} position{'s' if len(positions) > 1 else ''}...")

        for index, position in enumerate(positions):
            if index > 0:
                await self.sleep(self.params.position_check_delay_seconds)
            try:
                await self._check_position(position, summary)
            except Exception as e:
                self.logger.error(f"Error checking position {position.label}: {str(e)}")

        self.cycles += 1
        self.last_cycle_at = self.now()
        self.last_summary = summary
        self._log_summary(summary)
        return summary

    async def _check_position(self, position: Position, summary: CycleSummary):
        summary.positions_checked += 1

        # Unsynced positions have no usable cost basis
        if position.total_invested <= 0:
            self.logger.info(f"Skipping {position.label} - invalid cost basis (not synced yet)")
            summary.positions_skipped += 1
            return

        valuation = await self.valuation.valuate(position, force_refresh=True)
        if not valuation.is_priced:
            self.logger.warning(f"Could not get price for {position.label}")
            summary.positions_skipped += 1
            return
        summary.unrealized_pnl += valuation.unrealized_pnl

        rule = self.rules.resolve(position.mint)
        rule_text = f" | TP: {rule.take_profit_pct}%, SL: {rule.stop_loss_pct}%" if rule else " | no active rule"
        self.logger.info(
            f"{position.label}: {valuation.unrealized_pnl_pct:+.2f}% "
            f"({valuation.unrealized_pnl:+.6f} SOL){rule_text}"
        )

        signal = self.strategy.should_trade(position, valuation, rule)
        if signal is None or signal.action != SignalAction.SELL:
            return
        summary.signals += 1

        if not self.governor.allow(self.now()):
            summary.suppressed_by_governor += 1
            return

        self._handle_event(await self.engine.execute(signal), summary)

    def _handle_event(self, event: Union[TradeExecuted, ExecutionFailed], summary: CycleSummary):
        if isinstance(event, TradeExecuted):
            summary.trades_executed += 1
            if not event.dry_run:
                # Pick up the swap's own transaction on the next eligible cycle
                self.request_resync()
        else:
            summary.trades_failed += 1
            self.logger.warning(f"Exit for {event.mint[:8]} failed [{event.reason_code}]: {event.message}")

    def _log_summary(self, summary: CycleSummary):
        parts = [
            f"checked {summary.positions_checked}",
            f"skipped {summary.positions_skipped}",
            f"signals {summary.signals}",
            f"executed {summary.trades_executed}",
        ]
        if summary.trades_failed:
            parts.append(f"failed {summary.trades_failed}")
        if summary.suppressed_by_governor:
            parts.append(f"rate limited {summary.suppressed_by_governor}")
        if summary.base_balance is not None:
            parts.append(f"wallet {summary.base_balance:.6f} SOL")
        parts.append(f"unrealized {summary.unrealized_pnl:+.6f} SOL")
        self.logger.info(f"Cycle {self.cycles}: " + ", ".join(parts))

    def status(self) -> LoopStatus:
        return LoopStatus(
            running=self.is_running,
            dry_run=self.dry_run,
            active_rules=self.rules.active_rule_count(),
            trades_last_hour=self.governor.trades_in_window(self.now()),
            total_trades=self.history.count(),
            cycles=self.cycles,
            last_cycle_at=self.last_cycle_at,
        )
