from dataclasses import dataclass, field, replace
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import Optional

SOL_MINT = "So11111111111111111111111111111111111111112"
LAMPORTS_PER_SOL = Decimal(1_000_000_000)
GLOBAL_RULE_MINT = "*"
ZERO = Decimal(0)


def utc_now() -> datetime:
    """Naive UTC timestamp, the form every stored datetime uses"""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def lamports_to_sol(lamports) -> Decimal:
    return Decimal(int(lamports)) / LAMPORTS_PER_SOL


class EventKind(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    TRANSFER_IN = "TRANSFER_IN"
    TRANSFER_OUT = "TRANSFER_OUT"

    @property
    def is_inbound(self) -> bool:
        return self in (EventKind.BUY, EventKind.TRANSFER_IN)


class SignalAction(str, Enum):
    HOLD = "HOLD"
    SELL = "SELL"


class TriggerType(str, Enum):
    TAKE_PROFIT = "TAKE_PROFIT"
    STOP_LOSS = "STOP_LOSS"


@dataclass(frozen=True)
class LedgerEvent:
    """One classified balance movement, keyed by (signature, mint)"""
    signature: str
    block_time: int
    kind: EventKind
    mint: str
    quantity: Decimal
    fee_lamports: int = 0
    counterparty_mint: Optional[str] = None
    value_in_base: Optional[Decimal] = None  # SOL paid or received for this leg, when known
    symbol: Optional[str] = None

    @property
    def key(self):
        return (self.signature, self.mint)


@dataclass
class Position:
    mint: str
    symbol: Optional[str] = None
    total_quantity: Decimal = ZERO
    avg_cost_basis: Decimal = ZERO
    total_invested: Decimal = ZERO
    last_block_time: int = 0
    updated_at: Optional[datetime] = None

    @property
    def is_base(self) -> bool:
        return self.mint == SOL_MINT

    @property
    def label(self) -> str:
        return self.symbol or self.mint[:8]

    def is_open(self, dust_threshold: Decimal) -> bool:
        return self.total_quantity > dust_threshold

    def closed(self) -> "Position":
        return replace(self, total_quantity=ZERO, avg_cost_basis=ZERO, total_invested=ZERO)


@dataclass
class TradingRule:
    take_profit_pct: Decimal
    stop_loss_pct: Decimal
    sell_percentage: Decimal
    mint: str = GLOBAL_RULE_MINT
    symbol: Optional[str] = None
    strategy: str = "TP_SL"
    enabled: bool = True

    @property
    def is_global_default(self) -> bool:
        return self.mint == GLOBAL_RULE_MINT


@dataclass
class Valuation:
    mint: str
    spot_price: Optional[Decimal]
    current_value: Decimal
    unrealized_pnl: Decimal
    unrealized_pnl_pct: Decimal

    @property
    def is_priced(self) -> bool:
        return self.spot_price is not None


@dataclass
class TradingSignal:
    """Transient decision for one position; never persisted"""
    mint: str
    action: SignalAction
    quantity_to_sell: Decimal
    current_pnl_pct: Decimal
    current_pnl_base: Decimal
    reason: str
    trigger: Optional[TriggerType] = None
    symbol: Optional[str] = None
    spot_price: Optional[Decimal] = None
    avg_cost_basis: Decimal = ZERO


@dataclass
class TradeRecord:
    mint: str
    strategy: str
    trigger: TriggerType
    pnl_pct: Decimal
    pnl_base: Decimal
    quantity_sold: Decimal
    quantity_received: Decimal
    dry_run: bool
    tx_signature: Optional[str] = None
    symbol: Optional[str] = None
    executed_at: datetime = field(default_factory=utc_now)
    id: Optional[int] = None
