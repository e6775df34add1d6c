from dataclasses import replace
from decimal import Decimal
import pytest
from fakes import FakeRpcSender, FakeSwapClient
from factories import MINT, WALLET, buy_tx
from solpnl.core.classifier import TransactionClassifier
from solpnl.core.sync import LedgerSync
from solpnl.core.trading_loop import TradingLoop
from solpnl.core.types import TradingRule, TriggerType
from solpnl.core.valuation import ValuationEngine
from solpnl.execution.dry_run_executor import DryRunExecutor
from solpnl.execution.engine import ExecutionEngine
from solpnl.execution.live_run_executor import LiveRunExecutor
from solpnl.risk.rate_governor import TradeRateGovernor
from solpnl.strategies.tp_sl_strategy import TakeProfitStopLossStrategy


class SleepClock:
    """Monotonic clock advanced only by the loop's own sleeps"""

    def __init__(self, sleep):
        self.sleep = sleep

    def __call__(self):
        return sum(self.sleep.calls)


@pytest.fixture
def wallet_with_buy(data_client, oracle, rules):
    """Bought 1000 BONK for 1.0 SOL; the price is now 0.0012 SOL (+20%)"""
    data_client.transactions = [buy_tx("sig-buy", tokens=1000, sol_lamports=1_000_000_000)]
    data_client.symbols[MINT] = "BONK"
    data_client.sol_balance = Decimal("9")
    oracle.prices[MINT] = Decimal("0.0012")
    rules.set_rule(TradingRule(mint=MINT, symbol="BONK", take_profit_pct=Decimal("15"),
                               stop_loss_pct=Decimal("-10"), sell_percentage=Decimal("100")))


@pytest.fixture
def build_loop(trading_params, data_client, oracle, ledger, rules, history, instant_sleep,
               wallet, swap_transaction, execution_params):
    def build(dry_run=False, params=None, out_lamports=1_200_000_000):
        params = params or trading_params
        clock = SleepClock(instant_sleep)
        if dry_run:
            executor = DryRunExecutor(base_slippage_bps=100)
        else:
            executor = LiveRunExecutor(wallet, FakeRpcSender(), FakeSwapClient(swap_transaction, out_lamports),
                                       data_client, execution_params, sleep=instant_sleep, clock=clock)
        sync = LedgerSync(WALLET, data_client, TransactionClassifier(ledger.params), ledger, oracle=oracle)
        return TradingLoop(
            params=params,
            sync=sync,
            ledger=ledger,
            valuation=ValuationEngine(oracle),
            rules=rules,
            strategy=TakeProfitStopLossStrategy(),
            governor=TradeRateGovernor(history, params.max_trades_per_hour, dry_run=dry_run),
            engine=ExecutionEngine(executor, ledger, history),
            history=history,
            sleep=instant_sleep,
            clock=clock,
        )
    return build


class TestTradingLoop:
    @pytest.mark.asyncio
    async def test_take_profit_end_to_end(self, wallet_with_buy, build_loop, ledger, history):
        loop = build_loop()

        await loop.start(max_cycles=1)

        records = history.all()
        assert len(records) == 1
        assert records[0].trigger == TriggerType.TAKE_PROFIT
        assert records[0].dry_run is False
        assert records[0].symbol == "BONK"
        assert records[0].pnl_base == Decimal("0.2")
        assert ledger.open_positions() == []
        assert loop.last_summary.trades_executed == 1
        assert loop.last_summary.base_balance == Decimal("9")
        assert not loop.is_running

    @pytest.mark.asyncio
    async def test_dry_run_leaves_position_open(self, wallet_with_buy, build_loop, ledger, history):
        loop = build_loop(dry_run=True)

        await loop.start(max_cycles=1)

        assert history.all()[0].dry_run is True
        assert ledger.get_position(MINT).total_quantity == Decimal("1000")

    @pytest.mark.asyncio
    async def test_hold_inside_thresholds(self, wallet_with_buy, build_loop, oracle, history):
        oracle.prices[MINT] = Decimal("0.00105")
        loop = build_loop()

        summary = await loop.run_cycle()

        assert summary.signals == 0
        assert summary.positions_checked == 1
        assert history.count() == 0

    @pytest.mark.asyncio
    async def test_unpriced_position_is_skipped(self, wallet_with_buy, build_loop, oracle, history):
        oracle.prices.clear()
        summary = await build_loop().run_cycle()

        assert summary.positions_skipped == 1
        assert history.count() == 0

    @pytest.mark.asyncio
    async def test_rate_limit_suppresses_signal(self, wallet_with_buy, build_loop, trading_params, history):
        loop = build_loop(params=replace(trading_params, max_trades_per_hour=0))

        summary = await loop.run_cycle()

        assert summary.signals == 1
        assert summary.suppressed_by_governor == 1
        assert history.count() == 0

    @pytest.mark.asyncio
    async def test_failed_sync_still_checks_stored_positions(self, wallet_with_buy, build_loop, data_client, ledger):
        loop = build_loop(dry_run=True)
        await loop.run_cycle()

        async def unavailable(*args, **kwargs):
            raise ConnectionError("node down")

        data_client.get_recent_transactions = unavailable
        loop.request_resync()
        loop._last_resync = None
        summary = await loop.run_cycle()

        assert not summary.resynced
        assert summary.positions_checked == 1

    @pytest.mark.asyncio
    async def test_disabled_trading_does_not_run(self, build_loop, trading_params):
        loop = build_loop(params=replace(trading_params, enabled=False))
        await loop.start(max_cycles=3)
        assert loop.cycles == 0

    @pytest.mark.asyncio
    async def test_default_rule_is_seeded_on_start(self, build_loop, rules):
        await build_loop().start(max_cycles=1)
        assert rules.active_rule_count() == 1

    @pytest.mark.asyncio
    async def test_status_reports_activity(self, wallet_with_buy, build_loop):
        loop = build_loop()
        await loop.start(max_cycles=1)

        status = loop.status()
        assert status.cycles == 1
        assert status.total_trades == 1
        assert status.trades_last_hour == 1
        assert status.active_rules == 2
        assert status.dry_run is False


class TestResyncSchedule:
    @pytest.mark.asyncio
    async def test_first_cycle_resyncs(self, build_loop, data_client):
        loop = build_loop()
        summary = await loop.run_cycle()
        assert summary.resynced
        assert data_client.fetch_calls == 1

    def test_interval_elapsed(self, build_loop, trading_params):
        loop = build_loop()
        loop._last_resync = 0.0
        assert not loop._resync_due(trading_params.resync_interval_seconds - 1)
        assert loop._resync_due(trading_params.resync_interval_seconds)

    def test_post_trade_resync_is_debounced(self, build_loop, trading_params):
        loop = build_loop(params=replace(trading_params, resync_interval_seconds=300, min_resync_interval_seconds=30))
        loop._last_resync = 0.0
        loop.request_resync()

        assert not loop._resync_due(10.0)
        assert loop._resync_due(30.0)

    @pytest.mark.asyncio
    async def test_live_trade_requests_resync(self, wallet_with_buy, build_loop):
        loop = build_loop()
        await loop.run_cycle()
        assert loop._resync_requested
