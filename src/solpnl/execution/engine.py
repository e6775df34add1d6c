from typing import Union
import logging
from sqlalchemy.exc import SQLAlchemyError
from ..core.events import ExecutionFailed, TradeExecuted
from ..core.types import SignalAction, TradeRecord, TradingSignal
from ..core.ledger import PositionLedger
from ..db.trade_history import TradeHistoryStore
from .errors import ExecutionError, INVALID_SIGNAL, SUBMISSION_FAILED


class ExecutionEngine:
    """Turns a SELL signal into a confirmed exit, a trade record and a ledger update"""

    def __init__(self, executor, ledger: PositionLedger, history: TradeHistoryStore,
                 strategy_name: str = "TP_SL", logger=None):
        self.executor = executor
        self.ledger = ledger
        self.history = history
        self.strategy_name = strategy_name
        self.logger = logger or logging.getLogger(__name__)

    @property
    def dry_run(self) -> bool:
        return self.executor.dry_run

    async def execute(self, signal: TradingSignal) -> Union[TradeExecuted, ExecutionFailed]:
        label = signal.symbol or signal.mint[:8]
        if signal.action != SignalAction.SELL or signal.trigger is None or signal.quantity_to_sell <= 0:
            return ExecutionFailed(
                mint=signal.mint, trigger=signal.trigger, reason_code=INVALID_SIGNAL,
                message=f"Not an executable signal: {signal.action.value} {signal.quantity_to_sell}",
            )

        mode = "DRY RUN" if self.dry_run else "LIVE"
        self.logger.info(
            f"[{mode}] {signal.trigger.value} {label}: selling {signal.quantity_to_sell} "
            f"at {signal.current_pnl_pct:.2f}% ({signal.current_pnl_base:.6f} SOL). {signal.reason}"
        )

        try:
            result = await self.executor.sell_for_base(signal.mint, signal.quantity_to_sell, signal.spot_price)
        except ExecutionError as e:
            self.logger.error(f"Execution aborted for {label} [{e.reason_code}]: {str(e)}")
            return ExecutionFailed(
                mint=signal.mint, trigger=signal.trigger, reason_code=e.reason_code,
                message=str(e), tx_signature=e.signature,
            )
        except Exception as e:
            self.logger.error(f"Unexpected execution error for {label}: {str(e)}")
            return ExecutionFailed(
                mint=signal.mint, trigger=signal.trigger, reason_code=SUBMISSION_FAILED, message=str(e),
            )

        cost = signal.avg_cost_basis * signal.quantity_to_sell
        record = TradeRecord(
            mint=signal.mint,
            symbol=signal.symbol,
            strategy=self.strategy_name,
            trigger=signal.trigger,
            pnl_pct=signal.current_pnl_pct,
            pnl_base=result.quantity_received - cost,
            quantity_sold=signal.quantity_to_sell,
            quantity_received=result.quantity_received,
            tx_signature=result.signature,
            dry_run=self.dry_run,
        )

        if self.dry_run:
            self.history.append(record)
            return TradeExecuted(record=record, ledger_updated=False, attempts=result.attempts,
                                 slippage_bps=result.slippage_bps)

        # The record and the position update commit together
        try:
            with self.ledger.store.transaction() as session:
                self.history.append(record, session=session)
                self.ledger.record_exit(
                    result.signature, signal.mint, signal.quantity_to_sell, result.quantity_received,
                    session=session,
                )
        except SQLAlchemyError as e:
            self.logger.critical(
                f"Swap {result.signature} confirmed but the ledger write failed: {str(e)}. "
                f"The reconciler will report the drift until a resync."
            )
            return TradeExecuted(record=record, ledger_updated=False, attempts=result.attempts,
                                 slippage_bps=result.slippage_bps)

        self.logger.info(
            f"Sold {signal.quantity_to_sell} {label} for {result.quantity_received:.6f} SOL "
            f"(PnL {record.pnl_base:+.6f} SOL) in {result.attempts} attempt(s)"
        )
        return TradeExecuted(record=record, ledger_updated=True, attempts=result.attempts,
                             slippage_bps=result.slippage_bps)
