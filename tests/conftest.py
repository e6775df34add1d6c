import base64
import pytest
from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import MessageV0
from solders.system_program import TransferParams, transfer
from solders.transaction import VersionedTransaction
from fakes import FakeDataClient, FakeOracle, InstantSleep
from solpnl.core.ledger import PositionLedger
from solpnl.db.database import DatabaseConnection
from solpnl.db.ledger_store import LedgerStore
from solpnl.db.rule_store import RuleStore
from solpnl.db.trade_history import TradeHistoryStore
from solpnl.utils.config import (
    DefaultRuleParameters,
    ExecutionParameters,
    LedgerParameters,
    TradingParameters,
)


@pytest.fixture
def db():
    database = DatabaseConnection("sqlite://")
    database.init_db()
    yield database
    database.dispose()


@pytest.fixture
def ledger_params():
    return LedgerParameters()


@pytest.fixture
def store(db):
    return LedgerStore(db)


@pytest.fixture
def ledger(store, ledger_params):
    return PositionLedger(store, ledger_params)


@pytest.fixture
def rules(db):
    return RuleStore(db, DefaultRuleParameters(take_profit_pct="50", stop_loss_pct="-20", sell_percentage="100"))


@pytest.fixture
def history(db):
    return TradeHistoryStore(db)


@pytest.fixture
def data_client():
    return FakeDataClient()


@pytest.fixture
def oracle():
    return FakeOracle()


@pytest.fixture
def instant_sleep():
    return InstantSleep()


@pytest.fixture
def wallet():
    return Keypair()


@pytest.fixture
def swap_transaction(wallet):
    """Base64 versioned transaction, as the swap API returns it"""
    instruction = transfer(TransferParams(from_pubkey=wallet.pubkey(), to_pubkey=Keypair().pubkey(), lamports=1))
    message = MessageV0.try_compile(wallet.pubkey(), [instruction], [], Hash.default())
    tx = VersionedTransaction(message, [wallet])
    return base64.b64encode(bytes(tx)).decode("utf-8")


@pytest.fixture
def execution_params():
    return ExecutionParameters(
        base_slippage_bps=100,
        slippage_multipliers=[1, 3, 6],
        retry_delay_seconds=2.0,
        confirmation_timeout_seconds=10.0,
        confirmation_poll_seconds=1.0,
    )


@pytest.fixture
def trading_params():
    return TradingParameters(
        dry_run=False,
        check_interval_seconds=10,
        resync_interval_seconds=30,
        min_resync_interval_seconds=30,
        max_trades_per_hour=20,
        position_check_delay_seconds=0.5,
    )
