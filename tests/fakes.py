"""In-memory stand-ins for the RPC node, price feed, swap API and transaction sender"""
from decimal import Decimal
from typing import Dict, List, Optional
from solders.signature import Signature
from solpnl.data.rpc_client import SignatureStatus
from solpnl.execution.errors import INSUFFICIENT_LIQUIDITY, QuoteUnavailableError
from solpnl.execution.jupiter_client import SwapQuote


class InstantSleep:
    """Records requested delays instead of waiting"""

    def __init__(self):
        self.calls: List[float] = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


class FakeDataClient:
    def __init__(self):
        self.sol_balance = Decimal("10")
        self.token_balances: Dict[str, Decimal] = {}
        self.decimals: Dict[str, int] = {}
        self.symbols: Dict[str, str] = {}
        self.transactions: List[dict] = []
        self.statuses: Dict[str, SignatureStatus] = {}
        self.logs: Dict[str, List[str]] = {}
        self.fetch_calls = 0

    async def get_recent_transactions(self, address, limit=None, known_signatures=None):
        self.fetch_calls += 1
        known = known_signatures or set()
        return [tx for tx in self.transactions if tx["transaction"]["signatures"][0] not in known]

    async def get_all_transactions(self, address, known_signatures=None):
        return await self.get_recent_transactions(address, known_signatures=known_signatures)

    async def get_sol_balance(self, address):
        return self.sol_balance

    async def get_token_balances(self, address):
        return dict(self.token_balances)

    async def get_mint_decimals(self, mint):
        return self.decimals.get(mint, 6)

    async def get_token_symbol(self, mint):
        return self.symbols.get(mint)

    async def get_signature_status(self, signature):
        return self.statuses.get(signature, SignatureStatus(signature, "confirmed", None))

    async def get_transaction_logs(self, signature):
        return self.logs.get(signature, [])

    async def close(self):
        pass


class FakeOracle:
    def __init__(self, prices: Optional[Dict[str, Decimal]] = None):
        self.prices = prices or {}
        self.calls: List[tuple] = []

    async def spot_price_in_base(self, mint, force_refresh=False):
        self.calls.append((mint, force_refresh))
        return self.prices.get(mint)


class FakeSwapClient:
    """Jupiter stand-in: a fresh quote per call, paying `out_lamports`"""

    def __init__(self, swap_transaction: str, out_lamports: int = 1_000_000_000, no_route: bool = False):
        self.swap_transaction = swap_transaction
        self.out_lamports = out_lamports
        self.no_route = no_route
        self.quotes: List[SwapQuote] = []
        self.built: List[SwapQuote] = []

    async def quote(self, input_mint, output_mint, amount, slippage_bps):
        if self.no_route:
            raise QuoteUnavailableError("No routes found", reason_code=INSUFFICIENT_LIQUIDITY)
        quote = SwapQuote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=amount,
            out_amount=self.out_lamports,
            other_amount_threshold=self.out_lamports * (10000 - slippage_bps) // 10000,
            price_impact_pct=Decimal("0.1"),
            slippage_bps=slippage_bps,
            quote_response={"inAmount": str(amount), "outAmount": str(self.out_lamports)},
        )
        self.quotes.append(quote)
        return quote

    async def build_swap_transaction(self, quote, user_public_key):
        self.built.append(quote)
        return self.swap_transaction

    async def close(self):
        pass


class SendResponse:
    def __init__(self, value):
        self.value = value


class FakeRpcSender:
    """AsyncClient stand-in; raises the queued errors first, then accepts"""

    def __init__(self, failures: Optional[List[str]] = None):
        self.failures = list(failures or [])
        self.sent: List[tuple] = []

    async def send_raw_transaction(self, txn: bytes, opts=None):
        self.sent.append((txn, opts))
        if self.failures:
            raise Exception(self.failures.pop(0))
        return SendResponse(Signature.new_unique())

    async def close(self):
        pass

