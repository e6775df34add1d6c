from dataclasses import dataclass
from decimal import Decimal
from typing import Optional
import asyncio
import aiohttp
import logging
from .errors import (
    INSUFFICIENT_LIQUIDITY,
    NO_QUOTE,
    QuoteUnavailableError,
    SubmissionError,
    classify_failure,
)


@dataclass
class SwapQuote:
    input_mint: str
    output_mint: str
    in_amount: int
    out_amount: int
    other_amount_threshold: int
    price_impact_pct: Decimal
    slippage_bps: int
    quote_response: dict  # Full response, sent back unchanged to build the swap


class JupiterSwapClient:
    """Quotes and unsigned swap transactions from the Jupiter swap API"""

    def __init__(self, api_url: str = "https://lite-api.jup.ag", timeout_seconds: float = 30.0,
                 max_price_impact_pct: float = 5.0, logger=None):
        self.api_url = api_url.rstrip("/")
        self.timeout_seconds = timeout_seconds
        self.max_price_impact_pct = Decimal(str(max_price_impact_pct))
        self.logger = logger or logging.getLogger(__name__)
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(timeout=aiohttp.ClientTimeout(total=self.timeout_seconds))
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def quote(self, input_mint: str, output_mint: str, amount: int, slippage_bps: int) -> SwapQuote:
        """Fresh quote for a raw input amount; raises QuoteUnavailableError when there is none"""
        params = {
            "inputMint": input_mint,
            "outputMint": output_mint,
            "amount": str(amount),
            "slippageBps": str(slippage_bps),
            "onlyDirectRoutes": "false",
            "maxAccounts": "64",
        }
        self.logger.debug(f"Getting quote: {params}")

        session = await self._get_session()
        try:
            async with session.get(
                f"{self.api_url}/swap/v1/quote",
                params=params,
                headers={"Accept": "application/json"}
            ) as response:
                data = await response.json(content_type=None)
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise QuoteUnavailableError(f"Quote request failed: {str(e)}", reason_code=NO_QUOTE) from e

        if status != 200 or not data or "outAmount" not in data:
            message = str((data or {}).get("error") or (data or {}).get("errorCode") or f"HTTP {status}")
            reason = INSUFFICIENT_LIQUIDITY if classify_failure(data) == INSUFFICIENT_LIQUIDITY else NO_QUOTE
            raise QuoteUnavailableError(f"Quote API error ({status}): {message}", reason_code=reason)

        quote = SwapQuote(
            input_mint=input_mint,
            output_mint=output_mint,
            in_amount=int(data["inAmount"]),
            out_amount=int(data["outAmount"]),
            other_amount_threshold=int(data.get("otherAmountThreshold") or 0),
            price_impact_pct=Decimal(str(data.get("priceImpactPct") or "0")),
            slippage_bps=int(data.get("slippageBps", slippage_bps)),
            quote_response=data,
        )
        if quote.price_impact_pct > self.max_price_impact_pct:
            self.logger.warning(f"High price impact: {quote.price_impact_pct:.2f}%, token may be illiquid")
        return quote

    async def build_swap_transaction(self, quote: SwapQuote, user_public_key: str) -> str:
        """Base64 unsigned versioned transaction for a quote"""
        payload = {
            "quoteResponse": quote.quote_response,
            "userPublicKey": user_public_key,
            "wrapAndUnwrapSol": True,
            "dynamicComputeUnitLimit": True,
            "prioritizationFeeLamports": "auto",
        }
        session = await self._get_session()
        try:
            async with session.post(f"{self.api_url}/swap/v1/swap", json=payload) as response:
                data = await response.json(content_type=None)
                status = response.status
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise SubmissionError(f"Swap request failed: {str(e)}") from e

        if status != 200 or not data or not data.get("swapTransaction"):
            raise SubmissionError(f"Swap API error ({status}): missing swapTransaction {data}")
        return data["swapTransaction"]
