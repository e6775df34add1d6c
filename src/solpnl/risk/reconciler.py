from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from typing import Dict, List, Optional
import logging
from ..core.types import SOL_MINT, ZERO, Position, utc_now


class DiscrepancyKind(str, Enum):
    DRIFT = "DRIFT"          # Both sides hold the mint, quantities differ
    UNTRACKED = "UNTRACKED"  # Wallet holds a mint the ledger does not
    MISSING = "MISSING"      # Ledger holds a mint the wallet does not


@dataclass
class Discrepancy:
    mint: str
    kind: DiscrepancyKind
    ledger_quantity: Decimal
    wallet_quantity: Decimal
    difference_pct: Optional[Decimal] = None
    symbol: Optional[str] = None


@dataclass
class ReconciliationReport:
    checked: int = 0
    discrepancies: List[Discrepancy] = field(default_factory=list)
    timestamp: object = field(default_factory=utc_now)

    @property
    def in_sync(self) -> bool:
        return not self.discrepancies


class BalanceReconciler:
    """Compares ledger quantities with live wallet balances. Reports only, never mutates the ledger."""

    def __init__(self, ledger, data_client, tolerance_pct: Decimal = Decimal("0.001"),
                 dust_threshold: Decimal = Decimal("0.001"), logger=None):
        self.ledger = ledger
        self.data_client = data_client
        self.tolerance_pct = tolerance_pct
        self.dust_threshold = dust_threshold
        self.logger = logger or logging.getLogger(__name__)

    def compare(self, positions: List[Position], wallet_balances: Dict[str, Decimal]) -> ReconciliationReport:
        report = ReconciliationReport()
        ledger = {
            p.mint: p for p in positions
            if p.mint != SOL_MINT and p.total_quantity > self.dust_threshold
        }
        wallet = {
            mint: qty for mint, qty in wallet_balances.items()
            if mint != SOL_MINT and qty > self.dust_threshold
        }

        for mint in sorted(set(ledger) | set(wallet)):
            report.checked += 1
            position = ledger.get(mint)
            ledger_qty = position.total_quantity if position else ZERO
            wallet_qty = wallet.get(mint, ZERO)
            symbol = position.symbol if position else None

            if position is None:
                report.discrepancies.append(Discrepancy(
                    mint=mint, kind=DiscrepancyKind.UNTRACKED,
                    ledger_quantity=ZERO, wallet_quantity=wallet_qty, symbol=symbol,
                ))
                continue
            if mint not in wallet:
                report.discrepancies.append(Discrepancy(
                    mint=mint, kind=DiscrepancyKind.MISSING,
                    ledger_quantity=ledger_qty, wallet_quantity=ZERO, symbol=symbol,
                ))
                continue

            difference_pct = abs(ledger_qty - wallet_qty) / wallet_qty * 100
            if difference_pct > self.tolerance_pct:
                report.discrepancies.append(Discrepancy(
                    mint=mint, kind=DiscrepancyKind.DRIFT,
                    ledger_quantity=ledger_qty, wallet_quantity=wallet_qty,
                    difference_pct=difference_pct, symbol=symbol,
                ))

        return report

    async def reconcile(self, wallet: str) -> ReconciliationReport:
        balances = await self.data_client.get_token_balances(wallet)
        report = self.compare(self.ledger.store.all_positions(), balances)

        for d in report.discrepancies:
            label = d.symbol or d.mint[:8]
            if d.kind == DiscrepancyKind.DRIFT:
                self.logger.warning(
                    f"Ledger drift for {label}: ledger {d.ledger_quantity}, wallet {d.wallet_quantity} "
                    f"({d.difference_pct:.4f}%), run a full resync"
                )
            elif d.kind == DiscrepancyKind.UNTRACKED:
                self.logger.warning(f"Wallet holds {d.wallet_quantity} {label} with no ledger history")
            else:
                self.logger.warning(f"Ledger holds {d.ledger_quantity} {label} not found in wallet")

        if report.in_sync:
            self.logger.debug(f"Reconciled {report.checked} mints, no drift")
        return report
