from decimal import Decimal
import pytest
from solpnl.utils.config import (
    HELIUS_RPC_TEMPLATE,
    Config,
    DefaultRuleParameters,
    ExecutionParameters,
    TradingParameters,
)

CONFIG_YAML = """
trading:
  dry_run: false
  check_interval_seconds: 5
  max_trades_per_hour: 10
default_rule:
  take_profit_pct: "25"
  stop_loss_pct: "-12.5"
  sell_percentage: 50
execution:
  base_slippage_bps: 50
  slippage_multipliers: [1, 2, 4]
ledger:
  dust_threshold: "0.01"
provider:
  rpc_url: https://rpc.example.org
"""


@pytest.fixture
def clean_env(monkeypatch):
    for name in ("WALLET_ADDRESS", "PRIVATE_KEY", "DB_URL", "RPC_URL", "HELIUS_API_KEY"):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


def test_defaults_without_file(clean_env, tmp_path):
    config = Config(str(tmp_path / "missing.yaml"), load_env=False)

    assert config.trading.dry_run is True
    assert config.trading.max_trades_per_hour == 20
    assert config.execution.slippage_schedule == [100, 300, 600, 1000]
    assert config.default_rule.stop_loss_pct == Decimal("-20")
    assert config.db_url == "sqlite:///data/solpnl.db"


def test_yaml_sections_are_loaded(clean_env, tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(CONFIG_YAML)
    config = Config(str(path), load_env=False)

    assert config.trading.dry_run is False
    assert config.trading.check_interval_seconds == 5
    assert config.default_rule.take_profit_pct == Decimal("25")
    assert config.default_rule.sell_percentage == Decimal("50")
    assert config.execution.slippage_schedule == [50, 100, 200]
    assert config.ledger.dust_threshold == Decimal("0.01")
    assert config.provider.rpc_url == "https://rpc.example.org"


def test_environment_overrides(clean_env, tmp_path):
    clean_env.setenv("WALLET_ADDRESS", "wallet123")
    clean_env.setenv("DB_URL", "sqlite://")
    clean_env.setenv("HELIUS_API_KEY", "key-1")
    config = Config(str(tmp_path / "missing.yaml"), load_env=False)

    assert config.wallet_address == "wallet123"
    assert config.db_url == "sqlite://"
    assert config.provider.rpc_url == HELIUS_RPC_TEMPLATE.format(api_key="key-1")


def test_rpc_url_wins_over_api_key(clean_env, tmp_path):
    clean_env.setenv("RPC_URL", "https://my-node")
    clean_env.setenv("HELIUS_API_KEY", "key-1")
    config = Config(str(tmp_path / "missing.yaml"), load_env=False)
    assert config.provider.rpc_url == "https://my-node"


def test_invalid_values_are_rejected():
    with pytest.raises(ValueError):
        DefaultRuleParameters(stop_loss_pct="5")
    with pytest.raises(ValueError):
        DefaultRuleParameters(sell_percentage="0")
    with pytest.raises(ValueError):
        ExecutionParameters(slippage_multipliers=[])
    with pytest.raises(ValueError):
        TradingParameters(check_interval_seconds=0)
