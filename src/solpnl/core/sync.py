from dataclasses import replace
from decimal import Decimal
from typing import Dict, List, Optional
import logging
from .classifier import TransactionClassifier
from .events import SyncCompleted
from .ledger import PositionLedger
from .types import SOL_MINT, LedgerEvent
from ..execution.errors import RpcError, TransientUpstreamError


class LedgerSync:
    """Pulls wallet history into the ledger, then refreshes SOL from the live balance and reconciles"""

    def __init__(self, wallet: str, data_client, classifier: TransactionClassifier, ledger: PositionLedger,
                 reconciler=None, oracle=None, recent_limit: int = 100, logger=None):
        self.wallet = wallet
        self.data_client = data_client
        self.classifier = classifier
        self.ledger = ledger
        self.reconciler = reconciler
        self.oracle = oracle
        self.recent_limit = recent_limit
        self.logger = logger or logging.getLogger(__name__)
        self._symbols: Dict[str, Optional[str]] = {}

    async def sync_recent(self) -> SyncCompleted:
        """Ingest the newest transactions not yet in the ledger"""
        known = self.ledger.store.known_signatures()
        transactions = await self.data_client.get_recent_transactions(
            self.wallet, limit=self.recent_limit, known_signatures=known
        )
        return await self._ingest(transactions)

    async def full_resync(self) -> SyncCompleted:
        """Walk the whole signature history, then replay every position from its events"""
        self.logger.info(f"Full resync of {self.wallet}")
        known = self.ledger.store.known_signatures()
        transactions = await self.data_client.get_all_transactions(self.wallet, known_signatures=known)
        result = await self._ingest(transactions, reconcile=False)
        self.ledger.rebuild_all()
        if self.reconciler:
            result.discrepancies = await self._reconcile()
        return result

    async def _ingest(self, transactions: List[dict], reconcile: bool = True) -> SyncCompleted:
        events = self.classifier.classify_many(transactions, self.wallet)
        events.sort(key=lambda e: e.block_time)
        events = [await self._with_symbol(e) for e in events]

        outcome = self.ledger.ingest(events)
        if outcome.rebuilt_mints:
            self.logger.info(f"Replayed {len(outcome.rebuilt_mints)} positions for out-of-order events")

        base_balance = await self.refresh_base_balance()
        discrepancies = await self._reconcile() if reconcile and self.reconciler else []

        self.logger.info(
            f"Sync complete: {len(transactions)} transactions, {len(events)} events, "
            f"{outcome.applied} applied, {outcome.duplicates} known, "
            f"realized PnL {outcome.realized_pnl:+.6f} SOL"
        )
        return SyncCompleted(
            transactions_fetched=len(transactions),
            events_parsed=len(events),
            events_applied=outcome.applied,
            duplicates=outcome.duplicates,
            base_balance=base_balance,
            discrepancies=discrepancies,
            realized_pnl=outcome.realized_pnl,
        )

    async def refresh_base_balance(self) -> Optional[Decimal]:
        """SOL comes from the wallet, never from replayed history"""
        try:
            balance = await self.data_client.get_sol_balance(self.wallet)
        except (TransientUpstreamError, RpcError) as e:
            self.logger.warning(f"Could not refresh SOL balance: {str(e)}")
            return None
        self.ledger.sync_base_balance(balance)
        return balance

    async def _reconcile(self) -> list:
        try:
            report = await self.reconciler.reconcile(self.wallet)
        except (TransientUpstreamError, RpcError) as e:
            self.logger.warning(f"Reconciliation skipped: {str(e)}")
            return []
        return report.discrepancies

    async def _with_symbol(self, event: LedgerEvent) -> LedgerEvent:
        if event.symbol or event.mint == SOL_MINT:
            return event
        if event.mint not in self._symbols:
            existing = self.ledger.store.get_position(event.mint)
            if existing and existing.symbol:
                self._symbols[event.mint] = existing.symbol
            else:
                self._symbols[event.mint] = await self.data_client.get_token_symbol(event.mint)
        symbol = self._symbols[event.mint]
        if symbol is None:
            return event
        return replace(event, symbol=symbol)

    async def initialize_from_balances(self) -> int:
        """Seed positions from current wallet balances at today's price"""
        balances = await self.data_client.get_token_balances(self.wallet)
        seeded = 0
        for mint, quantity in balances.items():
            if quantity <= self.ledger.dust_threshold:
                continue
            price = await self.oracle.spot_price_in_base(mint) if self.oracle else None
            symbol = await self.data_client.get_token_symbol(mint)
            self.ledger.seed_position(mint, quantity, price, symbol=symbol)
            if price is None:
                self.logger.warning(f"No price for {symbol or mint[:8]}, seeded with zero cost basis")
            seeded += 1

        await self.refresh_base_balance()
        self.logger.info(f"Initialized {seeded} positions from wallet balances")
        return seeded
