from datetime import datetime, timedelta
from typing import Optional
import logging
from ..core.types import utc_now
from ..db.trade_history import TradeHistoryStore

WINDOW = timedelta(hours=1)

class TradeRateGovernor:
    """Sliding one-hour trade cap, counted from the trade history itself"""

    def __init__(self, history: TradeHistoryStore, max_per_hour: int, dry_run: bool = False, logger=None):
        self.history = history
        self.max_per_hour = max_per_hour
        self.dry_run = dry_run
        self.logger = logger or logging.getLogger(__name__)

    def trades_in_window(self, now: Optional[datetime] = None) -> int:
        now = now or utc_now()
        return self.history.count_since(now - WINDOW, dry_run=self.dry_run)

    def allow(self, now: Optional[datetime] = None) -> bool:
        now = now or utc_now()
        count = self.trades_in_window(now)
        if count >= self.max_per_hour:
            self.logger.warning(
                f"Trade rate limit reached: {count}/{self.max_per_hour} in the last hour, "
                f"next slot at {self.next_available_at(now)}"
            )
            return False
        return True

    def next_available_at(self, now: Optional[datetime] = None) -> Optional[datetime]:
        """When the oldest trade in the window ages out; None if a slot is free now"""
        now = now or utc_now()
        if self.max_per_hour <= 0:
            return None
        timestamps = self.history.timestamps_since(now - WINDOW, dry_run=self.dry_run)
        if len(timestamps) < self.max_per_hour:
            return None
        # Enough of the oldest must age out to drop below the cap
        return timestamps[len(timestamps) - self.max_per_hour] + WINDOW
