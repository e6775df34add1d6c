from decimal import Decimal
from typing import Optional
import logging
from .errors import QuoteUnavailableError, NO_QUOTE
from .live_run_executor import SwapResult

BPS = Decimal(10000)

class DryRunExecutor:
    """Simulates a sell at the spot price less the base slippage; nothing is signed or sent"""

    def __init__(self, base_slippage_bps: int = 100, logger=None):
        self.base_slippage_bps = base_slippage_bps
        self.logger = logger or logging.getLogger(__name__)

    @property
    def dry_run(self) -> bool:
        return True

    async def sell_for_base(self, mint: str, quantity: Decimal, spot_price: Optional[Decimal] = None) -> SwapResult:
        if spot_price is None or spot_price <= 0:
            raise QuoteUnavailableError(f"No price to simulate a sell of {mint[:8]}", reason_code=NO_QUOTE)

        # Worst case fill inside the slippage tolerance
        execution_price = spot_price * (1 - Decimal(self.base_slippage_bps) / BPS)
        received = quantity * execution_price
        self.logger.info(f"[DRY RUN] Would sell {quantity} of {mint[:8]} for ~{received:.6f} SOL")
        return SwapResult(
            signature=None,
            quantity_received=received,
            slippage_bps=self.base_slippage_bps,
            attempts=1,
        )
