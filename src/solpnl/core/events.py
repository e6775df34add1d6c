from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from .types import TradeRecord, TriggerType, utc_now

@dataclass
class TradeExecuted:
    """Emitted by the execution engine after a confirmed (or dry-run) exit"""
    record: TradeRecord
    ledger_updated: bool
    attempts: int = 1
    slippage_bps: Optional[int] = None
    timestamp: datetime = field(default_factory=utc_now)

    @property
    def mint(self) -> str:
        return self.record.mint

    @property
    def dry_run(self) -> bool:
        return self.record.dry_run

@dataclass
class ExecutionFailed:
    mint: str
    trigger: Optional[TriggerType]
    reason_code: str
    message: str
    attempts: int = 0
    tx_signature: Optional[str] = None
    timestamp: datetime = field(default_factory=utc_now)

@dataclass
class SyncCompleted:
    transactions_fetched: int
    events_parsed: int
    events_applied: int
    duplicates: int
    base_balance: Optional[Decimal]
    discrepancies: List = field(default_factory=list)
    realized_pnl: Decimal = Decimal(0)
    timestamp: datetime = field(default_factory=utc_now)

@dataclass
class CycleSummary:
    positions_checked: int = 0
    positions_skipped: int = 0
    signals: int = 0
    trades_executed: int = 0
    trades_failed: int = 0
    suppressed_by_governor: int = 0
    resynced: bool = False
    base_balance: Optional[Decimal] = None
    unrealized_pnl: Decimal = Decimal(0)
    timestamp: datetime = field(default_factory=utc_now)
