from typing import Optional
from ..core.types import Position, TradingRule, TradingSignal, Valuation

class BaseStrategy:
    """Base class for all exit strategies"""

    name = "BASE"

    def should_trade(self, position: Position, valuation: Valuation,
                     rule: Optional[TradingRule]) -> Optional[TradingSignal]:
        """Decide HOLD or SELL for one position; None when the decision is suppressed"""
        raise NotImplementedError
