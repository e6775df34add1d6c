from dataclasses import dataclass
from decimal import Decimal, ROUND_DOWN
from typing import Callable, List, Optional
import asyncio
import base64
import json
import time
from logging import Logger
import logging
from solders.keypair import Keypair
from solders.transaction import VersionedTransaction
from solana.rpc.async_api import AsyncClient
from solana.rpc.commitment import Confirmed
from solana.rpc.types import TxOpts
from ..core.types import SOL_MINT, LAMPORTS_PER_SOL
from ..utils.config import ExecutionParameters
from .jupiter_client import JupiterSwapClient, SwapQuote
from .errors import (
    ConfirmationTimeoutError,
    QuoteUnavailableError,
    SlippageExceededError,
    SubmissionError,
    TransientUpstreamError,
    classify_failure,
    error_for,
    NO_QUOTE,
    TRANSACTION_FAILED,
)


@dataclass
class SwapResult:
    signature: Optional[str]
    quantity_received: Decimal  # SOL
    slippage_bps: int
    attempts: int
    price_impact_pct: Decimal = Decimal(0)


class LiveRunExecutor:
    """Sells tokens for SOL through the swap aggregator, escalating slippage on slippage failures"""

    def __init__(self, wallet: Keypair, client: AsyncClient, swap_client: JupiterSwapClient, data_client,
                 params: ExecutionParameters, logger: Logger = None,
                 sleep: Callable = asyncio.sleep, clock: Callable[[], float] = time.monotonic):
        self.wallet = wallet
        self.client = client
        self.swap_client = swap_client
        self.data_client = data_client
        self.params = params
        self.logger = logger or logging.getLogger(__name__)
        self.sleep = sleep
        self.clock = clock

    @property
    def dry_run(self) -> bool:
        return False

    async def to_raw_amount(self, mint: str, quantity: Decimal) -> int:
        decimals = await self.data_client.get_mint_decimals(mint)
        raw = (quantity * (Decimal(10) ** decimals)).to_integral_value(rounding=ROUND_DOWN)
        return int(raw)

    async def sell_for_base(self, mint: str, quantity: Decimal, spot_price: Optional[Decimal] = None) -> SwapResult:
        """Swap `quantity` of a token for SOL; raises an ExecutionError subclass on failure"""
        raw_amount = await self.to_raw_amount(mint, quantity)
        if raw_amount <= 0:
            raise QuoteUnavailableError(f"Invalid amount after decimal conversion: {raw_amount}",
                                        reason_code=NO_QUOTE)

        schedule = self.params.slippage_schedule
        for attempt, slippage_bps in enumerate(schedule, start=1):
            is_last = attempt == len(schedule)
            if attempt > 1:
                self.logger.warning(f"Retry {attempt - 1} with {slippage_bps / 100}% slippage")

            try:
                # Quotes are never reused, the price may have moved
                quote = await self.swap_client.quote(mint, SOL_MINT, raw_amount, slippage_bps)
                if attempt == 1:
                    self.logger.info(
                        f"Quote: {quote.out_amount} lamports "
                        f"({Decimal(quote.out_amount) / LAMPORTS_PER_SOL:.6f} SOL), "
                        f"price impact {quote.price_impact_pct:.2f}%"
                    )
                signature = await self._submit(quote, skip_preflight=attempt > 1 and self.params.skip_preflight_on_retry)
                await self._await_confirmation(signature)
            except SlippageExceededError as e:
                self.logger.warning(f"Attempt {attempt}/{len(schedule)} exceeded {slippage_bps} bps slippage: {str(e)}")
                if is_last:
                    self.logger.error(f"All {len(schedule)} slippage tiers exhausted")
                    raise
                await self.sleep(self.params.retry_delay_seconds)
                continue

            received = Decimal(quote.out_amount) / LAMPORTS_PER_SOL
            self.logger.info(f"Swap confirmed: {signature}, received ~{received:.6f} SOL")
            return SwapResult(
                signature=signature,
                quantity_received=received,
                slippage_bps=slippage_bps,
                attempts=attempt,
                price_impact_pct=quote.price_impact_pct,
            )

    async def _submit(self, quote: SwapQuote, skip_preflight: bool) -> str:
        swap_tx = await self.swap_client.build_swap_transaction(quote, str(self.wallet.pubkey()))
        try:
            raw = VersionedTransaction.from_bytes(base64.b64decode(swap_tx))
            signed = VersionedTransaction(raw.message, [self.wallet])
        except Exception as e:
            raise SubmissionError(f"Failed to sign swap transaction: {str(e)}") from e

        self.logger.info("Sending transaction")
        try:
            response = await self.client.send_raw_transaction(
                bytes(signed),
                opts=TxOpts(
                    skip_preflight=skip_preflight,
                    preflight_commitment=Confirmed,
                    max_retries=3
                )
            )
        except Exception as e:
            # Preflight simulation failures carry the program error code
            message = str(e)
            if classify_failure(message) == TRANSACTION_FAILED:
                raise SubmissionError(f"Failed to send transaction: {message}") from e
            raise error_for(message) from e

        signature = str(response.value)
        self.logger.info(f"Transaction sent: {signature}")
        return signature

    async def _await_confirmation(self, signature: str):
        deadline = self.clock() + self.params.confirmation_timeout_seconds
        while True:
            try:
                status = await self.data_client.get_signature_status(signature)
            except TransientUpstreamError as e:
                self.logger.debug(f"Status poll for {signature[:8]} failed: {str(e)}")
                status = None
            if status is not None and status.failed:
                message = await self._failure_message(signature, status.err)
                self.logger.error(f"Transaction failed on-chain: {message}")
                raise error_for(message, signature=signature)
            if status is not None and status.is_confirmed:
                return

            if self.clock() >= deadline:
                self.logger.warning(f"Signature {signature} unconfirmed after "
                                    f"{self.params.confirmation_timeout_seconds}s, check manually")
                raise ConfirmationTimeoutError(f"Confirmation not observed for {signature}", signature=signature)
            await self.sleep(self.params.confirmation_poll_seconds)

    async def _failure_message(self, signature: str, err) -> str:
        """Status error plus program logs, which carry the hex error codes"""
        parts = [json.dumps(err) if not isinstance(err, str) else err]
        try:
            logs: List[str] = await self.data_client.get_transaction_logs(signature)
            parts.extend(logs)
        except Exception as e:
            self.logger.debug(f"Could not fetch logs for {signature}: {str(e)}")
        return " ".join(parts)
