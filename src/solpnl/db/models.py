from decimal import Decimal
from sqlalchemy import Column, Integer, BigInteger, String, DateTime, Boolean, Index, UniqueConstraint, func
from sqlalchemy.types import TypeDecorator
from .database import Base


class DecimalText(TypeDecorator):
    """Exact decimal stored as text, identical on SQLite and PostgreSQL"""
    impl = String(64)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return str(value if isinstance(value, Decimal) else Decimal(str(value)))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return Decimal(value)


class LedgerEventRow(Base):
    __tablename__ = 'ledger_events'
    __table_args__ = (
        UniqueConstraint('signature', 'mint', name='uq_ledger_events_signature_mint'),
        Index('ix_ledger_events_mint_block_time', 'mint', 'block_time'),
    )

    id = Column(Integer, primary_key=True)
    signature = Column(String(128), nullable=False)
    block_time = Column(BigInteger, nullable=False)
    kind = Column(String(16), nullable=False)  # BUY SELL TRANSFER_IN TRANSFER_OUT
    mint = Column(String(64), nullable=False)
    counterparty_mint = Column(String(64))
    quantity = Column(DecimalText, nullable=False)
    fee_lamports = Column(BigInteger, nullable=False, default=0)
    value_in_base = Column(DecimalText)
    symbol = Column(String(32))
    created_at = Column(DateTime, server_default=func.now())


class PositionRow(Base):
    __tablename__ = 'positions'

    id = Column(Integer, primary_key=True)
    mint = Column(String(64), nullable=False, unique=True)
    symbol = Column(String(32))
    total_quantity = Column(DecimalText, nullable=False, default=Decimal(0))
    avg_cost_basis = Column(DecimalText, nullable=False, default=Decimal(0))
    total_invested = Column(DecimalText, nullable=False, default=Decimal(0))
    last_block_time = Column(BigInteger, nullable=False, default=0)
    updated_at = Column(DateTime)


class TradingRuleRow(Base):
    __tablename__ = 'trading_rules'
    __table_args__ = (
        UniqueConstraint('mint', 'strategy', name='uq_trading_rules_mint_strategy'),
    )

    id = Column(Integer, primary_key=True)
    mint = Column(String(64), nullable=False)  # '*' is the Global Default rule
    symbol = Column(String(32))
    strategy = Column(String(32), nullable=False)
    take_profit_pct = Column(DecimalText, nullable=False)
    stop_loss_pct = Column(DecimalText, nullable=False)
    sell_percentage = Column(DecimalText, nullable=False)
    enabled = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, server_default=func.now())
    updated_at = Column(DateTime)


class TradeHistoryRow(Base):
    __tablename__ = 'trade_history'
    __table_args__ = (
        Index('ix_trade_history_executed_at', 'executed_at'),
    )

    id = Column(Integer, primary_key=True)
    mint = Column(String(64), nullable=False)
    symbol = Column(String(32))
    strategy = Column(String(32), nullable=False)
    trigger = Column(String(16), nullable=False)  # TAKE_PROFIT STOP_LOSS
    pnl_pct = Column(DecimalText, nullable=False)
    pnl_base = Column(DecimalText, nullable=False)
    quantity_sold = Column(DecimalText, nullable=False)
    quantity_received = Column(DecimalText, nullable=False)
    tx_signature = Column(String(128))
    dry_run = Column(Boolean, nullable=False)
    executed_at = Column(DateTime, nullable=False)
