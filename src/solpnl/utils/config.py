from dataclasses import dataclass, field, fields
from decimal import Decimal
from typing import List, Optional
import os
import yaml
from dotenv import load_dotenv

HELIUS_RPC_TEMPLATE = "https://mainnet.helius-rpc.com/?api-key={api_key}"


def _to_decimal(value) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


@dataclass
class TradingParameters:
    """Trading loop parameters"""
    enabled: bool = True
    dry_run: bool = True
    check_interval_seconds: float = 10.0       # Time between position checks
    resync_interval_seconds: float = 30.0      # Time between ledger resyncs
    min_resync_interval_seconds: float = 30.0  # Debounce for post-trade resyncs
    max_trades_per_hour: int = 20
    position_check_delay_seconds: float = 0.5  # Pause between positions (upstream rate limits)
    recent_transaction_limit: int = 100
    strategy: str = "TP_SL"

    def __post_init__(self):
        if self.check_interval_seconds <= 0 or self.resync_interval_seconds <= 0:
            raise ValueError("Loop intervals must be positive")
        if self.max_trades_per_hour < 0:
            raise ValueError("max_trades_per_hour cannot be negative")


@dataclass
class DefaultRuleParameters:
    """Global Default rule, used for every mint without its own rule"""
    take_profit_pct: Decimal = Decimal("50")
    stop_loss_pct: Decimal = Decimal("-20")
    sell_percentage: Decimal = Decimal("100")

    def __post_init__(self):
        self.take_profit_pct = _to_decimal(self.take_profit_pct)
        self.stop_loss_pct = _to_decimal(self.stop_loss_pct)
        self.sell_percentage = _to_decimal(self.sell_percentage)
        if self.stop_loss_pct >= 0:
            raise ValueError("stop_loss_pct must be negative")
        if not (Decimal(0) < self.sell_percentage <= Decimal(100)):
            raise ValueError("sell_percentage must be in (0, 100]")


@dataclass
class ExecutionParameters:
    """Swap execution parameters"""
    base_slippage_bps: int = 100
    slippage_multipliers: List[int] = field(default_factory=lambda: [1, 3, 6, 10])
    retry_delay_seconds: float = 2.0
    confirmation_timeout_seconds: float = 60.0
    confirmation_poll_seconds: float = 2.0
    skip_preflight_on_retry: bool = True
    max_price_impact_pct: float = 5.0

    def __post_init__(self):
        if not self.slippage_multipliers:
            raise ValueError("slippage_multipliers cannot be empty")
        if self.base_slippage_bps <= 0:
            raise ValueError("base_slippage_bps must be positive")

    @property
    def slippage_schedule(self) -> List[int]:
        return [self.base_slippage_bps * m for m in self.slippage_multipliers]


@dataclass
class LedgerParameters:
    """Chain and fee-schedule dependent thresholds"""
    dust_threshold: Decimal = Decimal("0.001")             # Quantity at or below which a position is closed
    account_rent_sol: Decimal = Decimal("0.00203928")      # Token account rent exemption
    rent_filter_threshold_sol: Decimal = Decimal("0.0025") # Inner transfers below this look like rent
    min_sol_change: Decimal = Decimal("0.0001")            # Ignore smaller SOL balance diffs
    drift_tolerance_pct: Decimal = Decimal("0.001")        # Reconciler tolerance, in percent

    def __post_init__(self):
        for f in fields(self):
            setattr(self, f.name, _to_decimal(getattr(self, f.name)))


@dataclass
class ProviderParameters:
    """Upstream endpoints and rate limiting"""
    rpc_url: str = ""
    request_timeout_seconds: float = 30.0
    request_delay_seconds: float = 0.3
    max_consecutive_failures: int = 3
    page_limit: int = 100
    max_pages: int = 100
    jupiter_api_url: str = "https://lite-api.jup.ag"
    dexscreener_url: str = "https://api.dexscreener.com/latest/dex/tokens"
    coingecko_url: str = "https://api.coingecko.com/api/v3"
    price_cache_ttl_seconds: float = 60.0
    min_price_request_interval_seconds: float = 0.5


class Config:
    def __init__(self, config_path: str = "config.yaml", load_env: bool = True):
        if load_env:
            load_dotenv()

        self.trading = TradingParameters()
        self.default_rule = DefaultRuleParameters()
        self.execution = ExecutionParameters()
        self.ledger = LedgerParameters()
        self.provider = ProviderParameters()

        if config_path and os.path.exists(config_path):
            self.load_config(config_path)

        self.wallet_address: Optional[str] = os.getenv('WALLET_ADDRESS')
        self.private_key: Optional[str] = os.getenv('PRIVATE_KEY')
        self.db_url: str = os.getenv('DB_URL', 'sqlite:///data/solpnl.db')
        self._apply_rpc_env()

    def load_config(self, config_path: str):
        """Load configuration from YAML file"""
        with open(config_path, 'r') as f:
            config_data = yaml.safe_load(f) or {}

        if 'trading' in config_data:
            self.trading = TradingParameters(**config_data['trading'])
        if 'default_rule' in config_data:
            self.default_rule = DefaultRuleParameters(**config_data['default_rule'])
        if 'execution' in config_data:
            self.execution = ExecutionParameters(**config_data['execution'])
        if 'ledger' in config_data:
            self.ledger = LedgerParameters(**config_data['ledger'])
        if 'provider' in config_data:
            self.provider = ProviderParameters(**config_data['provider'])

    def _apply_rpc_env(self):
        rpc_url = os.getenv('RPC_URL')
        api_key = os.getenv('HELIUS_API_KEY')
        if rpc_url:
            self.provider.rpc_url = rpc_url
        elif api_key and not self.provider.rpc_url:
            self.provider.rpc_url = HELIUS_RPC_TEMPLATE.format(api_key=api_key)
