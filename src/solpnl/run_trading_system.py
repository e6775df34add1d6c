import argparse
import asyncio
import logging
import signal
import sys
from decimal import Decimal
from typing import List, Optional
import base58
from solders.keypair import Keypair
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solpnl.analysis.trade_results_analyzer import TradeResultsAnalyzer
from solpnl.core.classifier import TransactionClassifier
from solpnl.core.ledger import PositionLedger
from solpnl.core.sync import LedgerSync
from solpnl.core.trading_loop import TradingLoop
from solpnl.core.types import GLOBAL_RULE_MINT, TradingRule
from solpnl.core.valuation import ValuationEngine, portfolio_totals
from solpnl.data.price_oracle import DexScreenerPriceOracle
from solpnl.data.rpc_client import SolanaDataClient
from solpnl.db.database import DatabaseConnection
from solpnl.db.ledger_store import LedgerStore
from solpnl.db.rule_store import RuleStore
from solpnl.db.trade_history import TradeHistoryStore
from solpnl.execution.dry_run_executor import DryRunExecutor
from solpnl.execution.engine import ExecutionEngine
from solpnl.execution.jupiter_client import JupiterSwapClient
from solpnl.execution.live_run_executor import LiveRunExecutor
from solpnl.risk.rate_governor import TradeRateGovernor
from solpnl.risk.reconciler import BalanceReconciler
from solpnl.strategies.tp_sl_strategy import TakeProfitStopLossStrategy
from solpnl.utils.config import Config
from solpnl.utils.logger import TradingLogger


def load_keypair(private_key: Optional[str]) -> Keypair:
    """Keypair from a base58 secret key (Phantom export format)"""
    if not private_key:
        raise ValueError("PRIVATE_KEY not found in environment variables")
    secret_key = bytes(base58.b58decode(private_key))
    return Keypair.from_bytes(secret_key)


class InitTradingSystem:
    """Builds every component from configuration and owns their network clients"""

    def __init__(self, config: Config, logger: TradingLogger, dry_run: Optional[bool] = None):
        self.config = config
        self.logger = logger
        self.dry_run = config.trading.dry_run if dry_run is None else dry_run
        self.trading_loop: Optional[TradingLoop] = None
        self._closeables: List = []

        self.keypair = None if self.dry_run else load_keypair(config.private_key)
        self.wallet_address = self._resolve_wallet()

        self.db = DatabaseConnection(config.db_url)
        if not self.db.test_connection():
            raise ValueError(f"Cannot connect to database at {self.db.db_url}")
        self.db.init_db()
        self.ledger = PositionLedger(LedgerStore(self.db), config.ledger, logger)
        self.rules = RuleStore(self.db, config.default_rule, strategy=config.trading.strategy)
        self.history = TradeHistoryStore(self.db)

        self.data_client = SolanaDataClient(config.provider, logger)
        self.oracle = DexScreenerPriceOracle(config.provider, logger)
        self._closeables += [self.data_client, self.oracle]

        self.reconciler = BalanceReconciler(
            self.ledger, self.data_client,
            tolerance_pct=config.ledger.drift_tolerance_pct,
            dust_threshold=config.ledger.dust_threshold,
            logger=logger,
        )
        self.sync = LedgerSync(
            self.wallet_address, self.data_client, TransactionClassifier(config.ledger, logger), self.ledger,
            reconciler=self.reconciler, oracle=self.oracle,
            recent_limit=config.trading.recent_transaction_limit, logger=logger,
        )
        self.valuation = ValuationEngine(self.oracle, logger)

    def _resolve_wallet(self) -> str:
        configured = self.config.wallet_address
        if self.keypair is not None:
            derived = str(self.keypair.pubkey())
            if configured and configured != derived:
                raise ValueError(f"WALLET_ADDRESS {configured} does not match PRIVATE_KEY ({derived})")
            return derived
        if not configured:
            raise ValueError("WALLET_ADDRESS not found in environment variables")
        return configured

    def _build_executor(self):
        if self.dry_run:
            return DryRunExecutor(self.config.execution.base_slippage_bps, self.logger)

        swap_client = JupiterSwapClient(
            self.config.provider.jupiter_api_url,
            timeout_seconds=self.config.provider.request_timeout_seconds,
            max_price_impact_pct=self.config.execution.max_price_impact_pct,
            logger=self.logger,
        )
        client = AsyncClient(self.config.provider.rpc_url, commitment=Confirmed)
        self._closeables += [swap_client, client]
        return LiveRunExecutor(self.keypair, client, swap_client, self.data_client, self.config.execution, self.logger)

    def build_trading_loop(self) -> TradingLoop:
        engine = ExecutionEngine(self._build_executor(), self.ledger, self.history,
                                 strategy_name=self.config.trading.strategy, logger=self.logger)
        self.trading_loop = TradingLoop(
            params=self.config.trading,
            sync=self.sync,
            ledger=self.ledger,
            valuation=self.valuation,
            rules=self.rules,
            strategy=TakeProfitStopLossStrategy(self.logger),
            governor=TradeRateGovernor(self.history, self.config.trading.max_trades_per_hour,
                                       dry_run=self.dry_run, logger=self.logger),
            engine=engine,
            history=self.history,
            logger=self.logger,
        )
        return self.trading_loop

    def handle_shutdown(self, signum, frame):
        """Handle shutdown signals"""
        self.logger.info(f"Received signal {signum}. Starting graceful shutdown...")
        if self.trading_loop:
            self.trading_loop.stop()

    async def run_trading_system(self) -> None:
        """Run the trading loop until a shutdown signal"""
        trading_loop = self.build_trading_loop()
        for sig in (signal.SIGTERM, signal.SIGINT):
            signal.signal(sig, self.handle_shutdown)
        await trading_loop.start()

    async def print_pnl(self) -> None:
        positions = self.ledger.open_positions()
        valuations = await self.valuation.valuate_all(positions)
        for position in positions:
            v = valuations[position.mint]
            if not v.is_priced:
                self.logger.info(f"{position.label}: {position.total_quantity} (no price)")
                continue
            self.logger.info(
                f"{position.label}: {position.total_quantity} @ {position.avg_cost_basis:.10f} SOL, "
                f"value {v.current_value:.6f} SOL, PnL {v.unrealized_pnl:+.6f} SOL ({v.unrealized_pnl_pct:+.2f}%)"
            )

        totals = portfolio_totals((p, valuations[p.mint]) for p in positions)
        self.logger.info(
            f"Unrealized: invested {totals.total_invested:.6f} SOL, value {totals.current_value:.6f} SOL, "
            f"PnL {totals.unrealized_pnl:+.6f} SOL ({totals.unrealized_pnl_pct:+.2f}%), "
            f"{totals.unpriced} unpriced"
        )
        base = self.ledger.base_position()
        if base:
            self.logger.info(f"Wallet balance: {base.total_quantity:.6f} SOL")

        stats = self.history.total_pnl(dry_run=False)
        self.logger.info(f"Realized: {stats.trades} trades, {stats.total_pnl:+.6f} SOL ({stats.wins}W/{stats.losses}L)")
        TradeResultsAnalyzer.from_history(self.history).print_analysis(self.logger)

    def print_status(self) -> None:
        trading_loop = self.trading_loop or self.build_trading_loop()
        status = trading_loop.status()
        self.logger.info(
            f"Status: running={status.running}, mode={'DRY RUN' if status.dry_run else 'LIVE'}, "
            f"active rules={status.active_rules}, trades last hour={status.trades_last_hour}, "
            f"total trades={status.total_trades}"
        )

    async def close(self):
        for closeable in self._closeables:
            try:
                await closeable.close()
            except Exception as e:
                self.logger.warning(f"Error closing {type(closeable).__name__}: {str(e)}")
        self.db.dispose()


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="solpnl", description="Wallet PnL ledger and auto-exit trader")
    parser.add_argument("--config", default="config.yaml", help="YAML configuration file")
    parser.add_argument("--verbose", action="store_true", help="Show debug output on the console")
    commands = parser.add_subparsers(dest="command", required=True)

    commands.add_parser("init", help="Seed positions from current wallet balances")
    commands.add_parser("sync", help="Ingest recent wallet transactions")
    commands.add_parser("resync", help="Ingest the full history and rebuild every position")
    commands.add_parser("pnl", help="Print positions and profit/loss")
    commands.add_parser("trade", help="Run the trading loop live")
    commands.add_parser("trade-dry", help="Run the trading loop in dry-run mode")
    commands.add_parser("status", help="Print trading status")

    rule_set = commands.add_parser("rule-set", help="Create or update a take-profit/stop-loss rule")
    rule_set.add_argument("mint", help=f"Token mint, or '{GLOBAL_RULE_MINT}' for the Global Default")
    rule_set.add_argument("--tp", type=Decimal, required=True, help="Take profit percent")
    rule_set.add_argument("--sl", type=Decimal, required=True, help="Stop loss percent (negative)")
    rule_set.add_argument("--sell", type=Decimal, default=Decimal(100), help="Percent of the position to sell")
    rule_set.add_argument("--symbol", default=None)

    rule_disable = commands.add_parser("rule-disable", help="Disable the rule for a mint")
    rule_disable.add_argument("mint")
    return parser


async def run(args, logger: TradingLogger) -> int:
    config = Config(args.config)
    dry_run = {"trade": False, "trade-dry": True}.get(args.command, True)
    system = InitTradingSystem(config, logger, dry_run=dry_run)
    try:
        if args.command == "init":
            await system.sync.initialize_from_balances()
        elif args.command == "sync":
            await system.sync.sync_recent()
        elif args.command == "resync":
            await system.sync.full_resync()
        elif args.command == "pnl":
            await system.print_pnl()
        elif args.command in ("trade", "trade-dry"):
            await system.run_trading_system()
        elif args.command == "status":
            system.print_status()
        elif args.command == "rule-set":
            system.rules.set_rule(TradingRule(
                mint=args.mint,
                symbol=args.symbol,
                strategy=config.trading.strategy,
                take_profit_pct=args.tp,
                stop_loss_pct=args.sl,
                sell_percentage=args.sell,
            ))
        elif args.command == "rule-disable":
            if not system.rules.disable_rule(args.mint):
                logger.warning(f"No enabled rule for {args.mint}")
                return 1
        return 0
    finally:
        await system.close()


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    logger = TradingLogger("solpnl", console_output=True,
                           console_level=logging.DEBUG if args.verbose else logging.INFO)
    logger.debug(f"Writing log to {logger.log_path}")
    try:
        return asyncio.run(run(args, logger))
    except ValueError as e:
        logger.error(f"Configuration error: {e}")
        return 2
    except Exception as e:
        logger.error(f"Fatal error: {e}")
        return 1
    finally:
        logger.info("solpnl shutdown complete")


if __name__ == "__main__":
    sys.exit(main())
