from decimal import Decimal
import pytest
from factories import MINT
from solpnl.core.types import Position, SignalAction, TradingRule, TriggerType, Valuation
from solpnl.strategies.tp_sl_strategy import TakeProfitStopLossStrategy


@pytest.fixture
def strategy():
    return TakeProfitStopLossStrategy()


@pytest.fixture
def position():
    return Position(mint=MINT, symbol="BONK", total_quantity=Decimal("1000"),
                    avg_cost_basis=Decimal("0.001"), total_invested=Decimal("1.0"))


def at_pct(pct, price="0.001"):
    pct = Decimal(pct)
    return Valuation(mint=MINT, spot_price=Decimal(price), current_value=Decimal("1.0") + pct / 100,
                     unrealized_pnl=pct / 100, unrealized_pnl_pct=pct)


def rule(tp="15", sl="-10", sell="100", enabled=True):
    return TradingRule(take_profit_pct=Decimal(tp), stop_loss_pct=Decimal(sl),
                       sell_percentage=Decimal(sell), mint=MINT, enabled=enabled)


class TestThresholds:
    def test_take_profit_at_exact_threshold(self, strategy, position):
        signal = strategy.should_trade(position, at_pct("15.0"), rule())

        assert signal.action == SignalAction.SELL
        assert signal.trigger == TriggerType.TAKE_PROFIT
        assert signal.quantity_to_sell == Decimal("1000")

    def test_just_below_take_profit_holds(self, strategy, position):
        signal = strategy.should_trade(position, at_pct("14.999"), rule())
        assert signal.action == SignalAction.HOLD
        assert signal.quantity_to_sell == Decimal(0)

    def test_stop_loss_at_exact_threshold(self, strategy, position):
        signal = strategy.should_trade(position, at_pct("-10"), rule())
        assert signal.action == SignalAction.SELL
        assert signal.trigger == TriggerType.STOP_LOSS

    def test_just_above_stop_loss_holds(self, strategy, position):
        signal = strategy.should_trade(position, at_pct("-9.99"), rule())
        assert signal.action == SignalAction.HOLD

    def test_partial_sell_percentage(self, strategy, position):
        signal = strategy.should_trade(position, at_pct("40"), rule(sell="25"))
        assert signal.quantity_to_sell == Decimal("250")

    def test_signal_carries_cost_and_price(self, strategy, position):
        signal = strategy.should_trade(position, at_pct("20", price="0.0012"), rule())
        assert signal.avg_cost_basis == Decimal("0.001")
        assert signal.spot_price == Decimal("0.0012")
        assert signal.symbol == "BONK"


class TestNoSignal:
    def test_zero_cost_basis(self, strategy):
        unsynced = Position(mint=MINT, total_quantity=Decimal("1000"))
        assert strategy.should_trade(unsynced, at_pct("500"), rule()) is None

    def test_unpriced(self, strategy, position):
        unpriced = Valuation(mint=MINT, spot_price=None, current_value=Decimal(0),
                             unrealized_pnl=Decimal(0), unrealized_pnl_pct=Decimal(0))
        assert strategy.should_trade(position, unpriced, rule()) is None

    def test_no_rule(self, strategy, position):
        assert strategy.should_trade(position, at_pct("50"), None) is None

    def test_disabled_rule(self, strategy, position):
        assert strategy.should_trade(position, at_pct("50"), rule(enabled=False)) is None
