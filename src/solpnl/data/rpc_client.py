from dataclasses import dataclass
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Set
import asyncio
import aiohttp
import logging
from ..core.types import SOL_MINT, lamports_to_sol
from ..execution.constants import TOKEN_PROGRAMS
from ..execution.errors import RpcError, TransientUpstreamError
from ..utils.config import ProviderParameters

TOKEN_2022_METADATA_EXTENSION = "tokenMetadata"
DEFAULT_DECIMALS = 9


@dataclass
class SignatureStatus:
    signature: str
    confirmation_status: Optional[str]
    err: Optional[Any]

    @property
    def is_confirmed(self) -> bool:
        return self.confirmation_status in ("confirmed", "finalized")

    @property
    def failed(self) -> bool:
        return self.err is not None


class SolanaDataClient:
    """JSON-RPC reads against a Solana node, one request at a time"""

    def __init__(self, params: ProviderParameters, logger=None, sleep: Callable = asyncio.sleep):
        if not params.rpc_url:
            raise ValueError("RPC URL not configured (set RPC_URL or HELIUS_API_KEY)")
        self.params = params
        self.rpc_url = params.rpc_url
        self.logger = logger or logging.getLogger(__name__)
        self.sleep = sleep
        self._session: Optional[aiohttp.ClientSession] = None
        self._request_id = 0

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.params.request_timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _rpc(self, method: str, params: list) -> Any:
        self._request_id += 1
        request_data = {
            "jsonrpc": "2.0",
            "id": self._request_id,
            "method": method,
            "params": params,
        }
        session = await self._get_session()
        try:
            async with session.post(
                self.rpc_url,
                json=request_data,
                headers={"Content-Type": "application/json"}
            ) as response:
                if response.status == 429 or response.status >= 500:
                    raise TransientUpstreamError(f"{method} returned HTTP {response.status}")
                if response.status >= 400:
                    raise RpcError(f"{method} returned HTTP {response.status}")
                result = await response.json(content_type=None)
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise TransientUpstreamError(f"{method} failed: {str(e)}") from e

        if "error" in result and result["error"]:
            error = result["error"]
            message = error.get("message", str(error)) if isinstance(error, dict) else str(error)
            code = error.get("code") if isinstance(error, dict) else None
            # -32429 is the node's own rate-limit code
            if code in (429, -32429) or "rate limit" in message.lower():
                raise TransientUpstreamError(f"{method}: {message}")
            raise RpcError(f"{method}: {message}", code=code)
        return result.get("result")

    async def list_signatures(self, address: str, before: Optional[str] = None,
                              limit: Optional[int] = None) -> List[str]:
        """Successful signatures for an address, newest first"""
        options = {"limit": limit or self.params.page_limit}
        if before:
            options["before"] = before
        result = await self._rpc("getSignaturesForAddress", [address, options]) or []
        return [item["signature"] for item in result if item.get("err") is None]

    async def get_parsed_transaction(self, signature: str) -> Optional[dict]:
        """jsonParsed transaction body; None when unavailable"""
        try:
            return await self._rpc("getTransaction", [
                signature,
                {"encoding": "jsonParsed", "maxSupportedTransactionVersion": 0, "commitment": "confirmed"},
            ])
        except TransientUpstreamError:
            raise
        except RpcError as e:
            self.logger.warning(f"Could not fetch transaction {signature[:8]}: {str(e)}")
            return None

    async def get_recent_transactions(self, address: str, limit: Optional[int] = None,
                                      known_signatures: Optional[Set[str]] = None) -> List[dict]:
        signatures = await self.list_signatures(address, limit=limit)
        return await self._fetch_transactions(signatures, known_signatures or set())

    async def get_all_transactions(self, address: str, known_signatures: Optional[Set[str]] = None) -> List[dict]:
        """Walk the full signature history with the `before` cursor"""
        signatures: List[str] = []
        before = None
        for page in range(self.params.max_pages):
            batch = await self.list_signatures(address, before=before)
            if not batch:
                break
            signatures.extend(batch)
            self.logger.debug(f"Signature page {page + 1}: {len(batch)} signatures")
            if len(batch) < self.params.page_limit:
                break
            before = batch[-1]
            await self.sleep(self.params.request_delay_seconds)
        else:
            self.logger.warning(f"Stopped after {self.params.max_pages} signature pages, history may be truncated")

        return await self._fetch_transactions(signatures, known_signatures or set())

    async def _fetch_transactions(self, signatures: List[str], known: Set[str]) -> List[dict]:
        """Sequential fetch; gives up after too many consecutive upstream failures"""
        transactions = []
        consecutive_failures = 0
        pending = [s for s in signatures if s not in known]

        for index, signature in enumerate(pending):
            if index > 0:
                await self.sleep(self.params.request_delay_seconds)
            try:
                tx = await self.get_parsed_transaction(signature)
            except TransientUpstreamError as e:
                consecutive_failures += 1
                self.logger.warning(f"Upstream error fetching {signature[:8]} ({consecutive_failures}): {str(e)}")
                if consecutive_failures >= self.params.max_consecutive_failures:
                    self.logger.error(
                        f"Giving up after {consecutive_failures} consecutive failures, "
                        f"{len(pending) - index - 1} transactions left for the next sync"
                    )
                    break
                await self.sleep(self.params.request_delay_seconds * (2 ** consecutive_failures))
                continue

            consecutive_failures = 0
            if tx is not None:
                transactions.append(tx)

        self.logger.info(f"Fetched {len(transactions)} of {len(pending)} new transactions")
        return transactions

    async def get_sol_balance(self, address: str) -> Decimal:
        result = await self._rpc("getBalance", [address, {"commitment": "confirmed"}])
        return lamports_to_sol(result["value"])

    async def get_token_balances(self, address: str) -> Dict[str, Decimal]:
        """Token balances per mint across both token programs, zero balances left out"""
        balances: Dict[str, Decimal] = {}
        for program in TOKEN_PROGRAMS:
            result = await self._rpc("getTokenAccountsByOwner", [
                address,
                {"programId": str(program)},
                {"encoding": "jsonParsed", "commitment": "confirmed"},
            ])
            for account in (result or {}).get("value", []):
                info = account["account"]["data"]["parsed"]["info"]
                amount = info["tokenAmount"]
                quantity = Decimal(int(amount["amount"])).scaleb(-int(amount["decimals"]))
                if quantity > 0 and info["mint"] != SOL_MINT:
                    balances[info["mint"]] = balances.get(info["mint"], Decimal(0)) + quantity
        return balances

    async def _get_mint_info(self, mint: str) -> Optional[dict]:
        result = await self._rpc("getAccountInfo", [mint, {"encoding": "jsonParsed"}])
        value = (result or {}).get("value")
        if not value:
            return None
        data = value.get("data")
        if not isinstance(data, dict):
            return None
        return data.get("parsed", {}).get("info")

    async def get_mint_decimals(self, mint: str) -> int:
        if mint == SOL_MINT:
            return DEFAULT_DECIMALS
        try:
            info = await self._get_mint_info(mint)
            if info and "decimals" in info:
                return int(info["decimals"])
        except (RpcError, TransientUpstreamError) as e:
            self.logger.warning(f"Decimals lookup failed for {mint[:8]}: {str(e)}")
        self.logger.warning(f"Using default {DEFAULT_DECIMALS} decimals for {mint[:8]}")
        return DEFAULT_DECIMALS

    async def get_token_symbol(self, mint: str) -> Optional[str]:
        """Symbol from Token-2022 metadata, when the mint carries it"""
        if mint == SOL_MINT:
            return "SOL"
        try:
            info = await self._get_mint_info(mint)
        except (RpcError, TransientUpstreamError) as e:
            self.logger.debug(f"Symbol lookup failed for {mint[:8]}: {str(e)}")
            return None
        for extension in (info or {}).get("extensions", []):
            if extension.get("extension") == TOKEN_2022_METADATA_EXTENSION:
                symbol = (extension.get("state") or {}).get("symbol")
                return (symbol or "").strip() or None
        return None

    async def get_signature_status(self, signature: str) -> Optional[SignatureStatus]:
        result = await self._rpc("getSignatureStatuses", [[signature], {"searchTransactionHistory": True}])
        value = ((result or {}).get("value") or [None])[0]
        if value is None:
            return None
        return SignatureStatus(
            signature=signature,
            confirmation_status=value.get("confirmationStatus"),
            err=value.get("err"),
        )

    async def get_transaction_logs(self, signature: str) -> List[str]:
        tx = await self.get_parsed_transaction(signature)
        return ((tx or {}).get("meta") or {}).get("logMessages") or []
