from typing import List, Optional, Set
from sqlalchemy import select
import logging
from .database import DatabaseConnection
from .models import LedgerEventRow, PositionRow
from ..core.types import EventKind, LedgerEvent, Position, utc_now


def _event_from_row(row: LedgerEventRow) -> LedgerEvent:
    return LedgerEvent(
        signature=row.signature,
        block_time=row.block_time,
        kind=EventKind(row.kind),
        mint=row.mint,
        quantity=row.quantity,
        fee_lamports=row.fee_lamports or 0,
        counterparty_mint=row.counterparty_mint,
        value_in_base=row.value_in_base,
        symbol=row.symbol,
    )


def _position_from_row(row: PositionRow) -> Position:
    return Position(
        mint=row.mint,
        symbol=row.symbol,
        total_quantity=row.total_quantity,
        avg_cost_basis=row.avg_cost_basis,
        total_invested=row.total_invested,
        last_block_time=row.last_block_time or 0,
        updated_at=row.updated_at,
    )


class LedgerStore:
    """Ledger events and positions"""

    def __init__(self, db: DatabaseConnection):
        self.db = db
        self.logger = logging.getLogger(__name__)

    def transaction(self, session=None):
        return self.db.session_scope(session)

    def insert_event(self, event: LedgerEvent, session=None) -> bool:
        """Insert an event; returns False when (signature, mint) is already stored"""
        with self.db.session_scope(session) as s:
            existing = s.execute(
                select(LedgerEventRow.id).where(
                    LedgerEventRow.signature == event.signature,
                    LedgerEventRow.mint == event.mint,
                )
            ).first()
            if existing is not None:
                return False

            s.add(LedgerEventRow(
                signature=event.signature,
                block_time=event.block_time,
                kind=event.kind.value,
                mint=event.mint,
                counterparty_mint=event.counterparty_mint,
                quantity=event.quantity,
                fee_lamports=event.fee_lamports,
                value_in_base=event.value_in_base,
                symbol=event.symbol,
            ))
            s.flush()
            return True

    def events_for_mint(self, mint: str, session=None) -> List[LedgerEvent]:
        """All events for a mint in replay order"""
        with self.db.session_scope(session) as s:
            rows = s.execute(
                select(LedgerEventRow)
                .where(LedgerEventRow.mint == mint)
                .order_by(LedgerEventRow.block_time, LedgerEventRow.id)
            ).scalars().all()
            return [_event_from_row(r) for r in rows]

    def event_mints(self, session=None) -> List[str]:
        with self.db.session_scope(session) as s:
            return list(s.execute(select(LedgerEventRow.mint).distinct()).scalars().all())

    def known_signatures(self, session=None) -> Set[str]:
        with self.db.session_scope(session) as s:
            return set(s.execute(select(LedgerEventRow.signature).distinct()).scalars().all())

    def get_position(self, mint: str, session=None) -> Optional[Position]:
        with self.db.session_scope(session) as s:
            row = s.execute(select(PositionRow).where(PositionRow.mint == mint)).scalar_one_or_none()
            return _position_from_row(row) if row else None

    def save_position(self, position: Position, session=None) -> Position:
        """Upsert a position by mint"""
        with self.db.session_scope(session) as s:
            row = s.execute(
                select(PositionRow).where(PositionRow.mint == position.mint)
            ).scalar_one_or_none()
            if row is None:
                row = PositionRow(mint=position.mint)
                s.add(row)

            position.updated_at = utc_now()
            row.symbol = position.symbol or row.symbol
            row.total_quantity = position.total_quantity
            row.avg_cost_basis = position.avg_cost_basis
            row.total_invested = position.total_invested
            row.last_block_time = position.last_block_time
            row.updated_at = position.updated_at
            s.flush()
            return position

    def all_positions(self, session=None) -> List[Position]:
        with self.db.session_scope(session) as s:
            rows = s.execute(select(PositionRow).order_by(PositionRow.mint)).scalars().all()
            return [_position_from_row(r) for r in rows]
