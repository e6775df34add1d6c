from decimal import Decimal
from typing import Optional
import logging
from .base_strategy import BaseStrategy
from ..core.types import (
    ZERO,
    Position,
    SignalAction,
    TradingRule,
    TradingSignal,
    TriggerType,
    Valuation,
)


class TakeProfitStopLossStrategy(BaseStrategy):
    """Sell a fixed share of a position when unrealized PnL crosses take-profit or stop-loss"""

    name = "TP_SL"

    def __init__(self, logger: logging.Logger = None):
        super().__init__()
        self.logger = logger or logging.getLogger(__name__)

    def should_trade(self, position: Position, valuation: Valuation,
                     rule: Optional[TradingRule]) -> Optional[TradingSignal]:
        # Unsynced cost basis would turn any price into a huge gain
        if position.total_invested <= 0 or position.avg_cost_basis <= 0:
            self.logger.debug(f"Skipping {position.label}: no cost basis")
            return None
        if not valuation.is_priced:
            self.logger.debug(f"Skipping {position.label}: no price")
            return None
        if rule is None or not rule.enabled:
            return None

        pnl_pct = valuation.unrealized_pnl_pct

        if pnl_pct >= rule.take_profit_pct:
            return self._sell(position, valuation, rule, TriggerType.TAKE_PROFIT,
                              f"Take profit: {pnl_pct:.2f}% >= {rule.take_profit_pct}%")

        if pnl_pct <= rule.stop_loss_pct:
            return self._sell(position, valuation, rule, TriggerType.STOP_LOSS,
                              f"Stop loss: {pnl_pct:.2f}% <= {rule.stop_loss_pct}%")

        return TradingSignal(
            mint=position.mint,
            symbol=position.symbol,
            action=SignalAction.HOLD,
            quantity_to_sell=ZERO,
            current_pnl_pct=pnl_pct,
            current_pnl_base=valuation.unrealized_pnl,
            reason=f"Holding at {pnl_pct:.2f}%",
            spot_price=valuation.spot_price,
            avg_cost_basis=position.avg_cost_basis,
        )

    def _sell(self, position: Position, valuation: Valuation, rule: TradingRule,
              trigger: TriggerType, reason: str) -> TradingSignal:
        quantity = position.total_quantity * rule.sell_percentage / Decimal(100)
        return TradingSignal(
            mint=position.mint,
            symbol=position.symbol,
            action=SignalAction.SELL,
            trigger=trigger,
            quantity_to_sell=quantity,
            current_pnl_pct=valuation.unrealized_pnl_pct,
            current_pnl_base=valuation.unrealized_pnl,
            reason=reason,
            spot_price=valuation.spot_price,
            avg_cost_basis=position.avg_cost_basis,
        )
