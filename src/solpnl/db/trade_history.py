from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import List, Optional
from sqlalchemy import select, func
import logging
from .database import DatabaseConnection
from .models import TradeHistoryRow
from ..core.types import TradeRecord, TriggerType


@dataclass
class TradeTotals:
    trades: int
    total_pnl: Decimal
    wins: int
    losses: int

    @property
    def win_rate(self) -> Decimal:
        if self.trades == 0:
            return Decimal(0)
        return Decimal(self.wins) / Decimal(self.trades) * 100


def _record_from_row(row: TradeHistoryRow) -> TradeRecord:
    return TradeRecord(
        id=row.id,
        mint=row.mint,
        symbol=row.symbol,
        strategy=row.strategy,
        trigger=TriggerType(row.trigger),
        pnl_pct=row.pnl_pct,
        pnl_base=row.pnl_base,
        quantity_sold=row.quantity_sold,
        quantity_received=row.quantity_received,
        tx_signature=row.tx_signature,
        dry_run=row.dry_run,
        executed_at=row.executed_at,
    )


class TradeHistoryStore:
    """Append-only log of executed and dry-run exits"""

    def __init__(self, db: DatabaseConnection):
        self.db = db
        self.logger = logging.getLogger(__name__)

    def append(self, record: TradeRecord, session=None) -> TradeRecord:
        with self.db.session_scope(session) as s:
            row = TradeHistoryRow(
                mint=record.mint,
                symbol=record.symbol,
                strategy=record.strategy,
                trigger=record.trigger.value,
                pnl_pct=record.pnl_pct,
                pnl_base=record.pnl_base,
                quantity_sold=record.quantity_sold,
                quantity_received=record.quantity_received,
                tx_signature=record.tx_signature,
                dry_run=record.dry_run,
                executed_at=record.executed_at,
            )
            s.add(row)
            s.flush()
            record.id = row.id
        return record

    def recent(self, limit: int = 20, session=None) -> List[TradeRecord]:
        with self.db.session_scope(session) as s:
            rows = s.execute(
                select(TradeHistoryRow)
                .order_by(TradeHistoryRow.executed_at.desc(), TradeHistoryRow.id.desc())
                .limit(limit)
            ).scalars().all()
            return [_record_from_row(r) for r in rows]

    def all(self, session=None) -> List[TradeRecord]:
        with self.db.session_scope(session) as s:
            rows = s.execute(
                select(TradeHistoryRow).order_by(TradeHistoryRow.executed_at, TradeHistoryRow.id)
            ).scalars().all()
            return [_record_from_row(r) for r in rows]

    def timestamps_since(self, since: datetime, dry_run: Optional[bool] = False, session=None) -> List[datetime]:
        """Execution times at or after `since`, oldest first; dry_run=None counts both modes"""
        with self.db.session_scope(session) as s:
            query = select(TradeHistoryRow.executed_at).where(TradeHistoryRow.executed_at >= since)
            if dry_run is not None:
                query = query.where(TradeHistoryRow.dry_run.is_(dry_run))
            return list(s.execute(query.order_by(TradeHistoryRow.executed_at)).scalars().all())

    def count_since(self, since: datetime, dry_run: Optional[bool] = False, session=None) -> int:
        return len(self.timestamps_since(since, dry_run=dry_run, session=session))

    def count(self, session=None) -> int:
        with self.db.session_scope(session) as s:
            return s.execute(select(func.count(TradeHistoryRow.id))).scalar_one()

    def total_pnl(self, dry_run: Optional[bool] = None, session=None) -> TradeTotals:
        records = [r for r in self.all(session=session) if dry_run is None or r.dry_run == dry_run]
        total = sum((r.pnl_base for r in records), Decimal(0))
        wins = sum(1 for r in records if r.pnl_base > 0)
        losses = sum(1 for r in records if r.pnl_base < 0)
        return TradeTotals(trades=len(records), total_pnl=total, wins=wins, losses=losses)
