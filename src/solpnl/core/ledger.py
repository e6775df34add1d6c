from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, Iterable, List, Optional, Set
import logging
import time
from .types import (
    SOL_MINT,
    ZERO,
    EventKind,
    LedgerEvent,
    Position,
)
from ..db.ledger_store import LedgerStore
from ..utils.config import LedgerParameters


@dataclass
class ApplyResult:
    position: Position
    realized_pnl: Optional[Decimal] = None
    closed: bool = False
    rebuilt: bool = False


@dataclass
class IngestResult:
    applied: int = 0
    duplicates: int = 0
    rebuilt_mints: Set[str] = field(default_factory=set)
    realized_pnl: Decimal = ZERO
    touched_mints: Set[str] = field(default_factory=set)


def apply_event(position: Position, event: LedgerEvent, dust_threshold: Decimal, logger=None) -> ApplyResult:
    """Pure position update for one event. Returns a new Position."""
    logger = logger or logging.getLogger(__name__)
    position = replace(position)
    position.last_block_time = max(position.last_block_time, event.block_time)
    if event.symbol and not position.symbol:
        position.symbol = event.symbol

    if position.mint == SOL_MINT:
        # Base currency is its own unit
        sign = 1 if event.kind.is_inbound else -1
        quantity = max(ZERO, position.total_quantity + sign * event.quantity)
        position.total_quantity = quantity
        position.avg_cost_basis = Decimal(1) if quantity > 0 else ZERO
        position.total_invested = quantity
        return ApplyResult(position=position)

    if event.kind.is_inbound:
        if event.kind == EventKind.BUY and event.value_in_base is None:
            logger.warning(f"BUY {event.signature[:8]} for {position.label} has no SOL value, cost basis understated")
        cost = event.value_in_base if event.value_in_base is not None else ZERO
        position.total_quantity += event.quantity
        position.total_invested += cost
        position.avg_cost_basis = position.total_invested / position.total_quantity
        return ApplyResult(position=position)

    if position.total_quantity <= 0:
        logger.debug(f"{event.kind.value} {event.signature[:8]} for {position.label} with no holdings, ignored")
        return ApplyResult(position=position)

    sold = min(event.quantity, position.total_quantity)
    cost_removed = position.avg_cost_basis * sold
    realized = None
    if event.kind == EventKind.SELL and event.value_in_base is not None:
        proceeds = event.value_in_base * (sold / event.quantity) if event.quantity else ZERO
        realized = proceeds - cost_removed

    position.total_quantity -= sold
    position.total_invested = max(ZERO, position.total_invested - cost_removed)

    if position.total_quantity <= dust_threshold:
        return ApplyResult(position=position.closed(), realized_pnl=realized, closed=True)
    return ApplyResult(position=position, realized_pnl=realized)


class PositionLedger:
    """Applies ledger events to positions; (signature, mint) makes ingestion idempotent"""

    def __init__(self, store: LedgerStore, params: Optional[LedgerParameters] = None, logger=None):
        self.store = store
        self.params = params or LedgerParameters()
        self.logger = logger or logging.getLogger(__name__)

    @property
    def dust_threshold(self) -> Decimal:
        return self.params.dust_threshold

    def apply_event(self, event: LedgerEvent, session=None) -> Optional[ApplyResult]:
        """Persist and apply one event; None when it was already ingested"""
        with self.store.transaction(session) as s:
            if not self.store.insert_event(event, session=s):
                return None

            position = self.store.get_position(event.mint, session=s) or Position(mint=event.mint, symbol=event.symbol)
            if event.block_time < position.last_block_time:
                # Older than what the position already reflects: replay in block order
                return ApplyResult(position=self.rebuild(event.mint, session=s), rebuilt=True)

            result = apply_event(position, event, self.dust_threshold, self.logger)
            self.store.save_position(result.position, session=s)

        if result.closed:
            self.logger.info(f"Position closed for {result.position.label}")
        return result

    def ingest(self, events: Iterable[LedgerEvent]) -> IngestResult:
        """Apply events in order, one transaction per event"""
        outcome = IngestResult()
        for event in events:
            try:
                result = self.apply_event(event)
            except Exception as e:
                self.logger.error(f"Failed to apply {event.kind.value} {event.signature[:8]} {event.mint[:8]}: {str(e)}")
                continue

            if result is None:
                outcome.duplicates += 1
                continue
            outcome.applied += 1
            outcome.touched_mints.add(event.mint)
            if result.rebuilt:
                outcome.rebuilt_mints.add(event.mint)
            if result.realized_pnl is not None:
                outcome.realized_pnl += result.realized_pnl

        if outcome.applied or outcome.duplicates:
            self.logger.debug(f"Ingested {outcome.applied} events, {outcome.duplicates} already known")
        return outcome

    def record_exit(self, signature: str, mint: str, quantity: Decimal, proceeds: Decimal,
                    block_time: Optional[int] = None, session=None) -> Optional[ApplyResult]:
        """Apply a confirmed sell under its on-chain key so the later sync sees it as known"""
        position = self.store.get_position(mint, session=session)
        event = LedgerEvent(
            signature=signature,
            block_time=block_time if block_time is not None else max(
                int(time.time()), position.last_block_time if position else 0
            ),
            kind=EventKind.SELL,
            mint=mint,
            quantity=quantity,
            counterparty_mint=SOL_MINT,
            value_in_base=proceeds,
            symbol=position.symbol if position else None,
        )
        return self.apply_event(event, session=session)

    def sync_base_balance(self, balance: Decimal, session=None) -> Position:
        """Set the SOL position straight from the wallet balance"""
        with self.store.transaction(session) as s:
            position = self.store.get_position(SOL_MINT, session=s) or Position(mint=SOL_MINT, symbol="SOL")
            position.total_quantity = balance
            position.avg_cost_basis = Decimal(1) if balance > 0 else ZERO
            position.total_invested = balance
            return self.store.save_position(position, session=s)

    def get_position(self, mint: str) -> Optional[Position]:
        return self.store.get_position(mint)

    def base_position(self) -> Optional[Position]:
        return self.store.get_position(SOL_MINT)

    def open_positions(self) -> List[Position]:
        """Token positions above dust, base currency excluded"""
        return [
            p for p in self.store.all_positions()
            if not p.is_base and p.is_open(self.dust_threshold)
        ]

    def rebuild(self, mint: str, session=None) -> Position:
        """Replay every stored event for a mint in block-time order"""
        with self.store.transaction(session) as s:
            existing = self.store.get_position(mint, session=s)
            position = Position(mint=mint, symbol=existing.symbol if existing else None)
            for event in self.store.events_for_mint(mint, session=s):
                position = apply_event(position, event, self.dust_threshold, self.logger).position
            self.store.save_position(position, session=s)
        self.logger.debug(f"Rebuilt {position.label}: qty {position.total_quantity}, avg {position.avg_cost_basis}")
        return position

    def rebuild_all(self) -> Dict[str, Position]:
        rebuilt = {}
        for mint in self.store.event_mints():
            if mint == SOL_MINT:
                continue
            rebuilt[mint] = self.rebuild(mint)
        self.logger.info(f"Rebuilt {len(rebuilt)} positions from the event log")
        return rebuilt

    def seed_position(self, mint: str, quantity: Decimal, price: Optional[Decimal],
                      symbol: Optional[str] = None) -> Position:
        """Start a position from a live balance; an unknown price leaves cost basis at zero"""
        cost = price if price is not None else ZERO
        position = self.store.get_position(mint) or Position(mint=mint)
        position.symbol = symbol or position.symbol
        position.total_quantity = quantity
        position.avg_cost_basis = cost
        position.total_invested = quantity * cost
        return self.store.save_position(position)
