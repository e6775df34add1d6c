from decimal import Decimal, InvalidOperation
from typing import Callable, Dict, List, Optional, Tuple
import asyncio
import time
import aiohttp
import logging
from ..core.types import SOL_MINT
from ..utils.config import ProviderParameters

# Weights for picking the most representative SOL pair
LIQUIDITY_WEIGHT = Decimal("0.6")
VOLUME_WEIGHT = Decimal("0.3")
TXN_WEIGHT = Decimal("0.1")
TXN_SCALE = Decimal(100)


def _dec(value) -> Decimal:
    try:
        return Decimal(str(value)) if value is not None else Decimal(0)
    except InvalidOperation:
        return Decimal(0)


def _is_sol_quoted(pair: dict) -> bool:
    quote = pair.get("quoteToken") or {}
    return quote.get("symbol") == "SOL" or quote.get("address") == SOL_MINT


def pair_score(pair: dict) -> Decimal:
    liquidity = _dec((pair.get("liquidity") or {}).get("usd"))
    volume = _dec((pair.get("volume") or {}).get("m5"))
    txns = (pair.get("txns") or {}).get("m5") or {}
    recent = _dec(txns.get("buys")) + _dec(txns.get("sells"))
    return liquidity * LIQUIDITY_WEIGHT + volume * VOLUME_WEIGHT + recent * TXN_SCALE * TXN_WEIGHT


def select_native_price(pairs: List[dict]) -> Optional[Decimal]:
    """priceNative of the best scored SOL-quoted pair"""
    sol_pairs = [p for p in pairs if _is_sol_quoted(p)]
    if not sol_pairs:
        return None
    best = max(sol_pairs, key=pair_score)
    price = _dec(best.get("priceNative"))
    return price if price > 0 else None


def select_usd_price(pairs: List[dict]) -> Optional[Decimal]:
    """priceUsd of the most liquid pair of any quote"""
    if not pairs:
        return None
    best = max(pairs, key=lambda p: _dec((p.get("liquidity") or {}).get("usd")))
    price = _dec(best.get("priceUsd"))
    return price if price > 0 else None


class DexScreenerPriceOracle:
    """Spot prices in SOL from DexScreener pairs, with a CoinGecko SOL/USD fallback"""

    def __init__(self, params: ProviderParameters, logger=None, clock: Callable[[], float] = time.monotonic):
        self.params = params
        self.logger = logger or logging.getLogger(__name__)
        self.clock = clock
        self._cache: Dict[str, Tuple[Decimal, float]] = {}
        self._last_request = 0.0
        self._session: Optional[aiohttp.ClientSession] = None

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            timeout = aiohttp.ClientTimeout(total=self.params.request_timeout_seconds)
            self._session = aiohttp.ClientSession(timeout=timeout)
        return self._session

    async def close(self):
        if self._session and not self._session.closed:
            await self._session.close()

    async def _throttle(self):
        wait = self.params.min_price_request_interval_seconds - (self.clock() - self._last_request)
        if wait > 0:
            await asyncio.sleep(wait)
        self._last_request = self.clock()

    async def _get_json(self, url: str, params: Optional[dict] = None) -> Optional[dict]:
        await self._throttle()
        session = await self._get_session()
        async with session.get(url, params=params) as response:
            if response.status != 200:
                self.logger.debug(f"Price request {url} returned HTTP {response.status}")
                return None
            return await response.json(content_type=None)

    async def _fetch_pairs(self, mint: str) -> List[dict]:
        data = await self._get_json(f"{self.params.dexscreener_url}/{mint}")
        return (data or {}).get("pairs") or []

    async def _fetch_sol_usd(self) -> Optional[Decimal]:
        data = await self._get_json(
            f"{self.params.coingecko_url}/simple/price",
            params={"ids": "solana", "vs_currencies": "usd"},
        )
        price = _dec(((data or {}).get("solana") or {}).get("usd"))
        return price if price > 0 else None

    def _cached(self, mint: str) -> Optional[Decimal]:
        entry = self._cache.get(mint)
        if entry and self.clock() - entry[1] < self.params.price_cache_ttl_seconds:
            return entry[0]
        return None

    async def spot_price_in_base(self, mint: str, force_refresh: bool = False) -> Optional[Decimal]:
        """Price of one token in SOL, or None when no usable pair exists"""
        if mint == SOL_MINT:
            return Decimal(1)

        if not force_refresh:
            cached = self._cached(mint)
            if cached is not None:
                return cached

        try:
            pairs = await self._fetch_pairs(mint)
            price = select_native_price(pairs)

            if price is None:
                usd_price = select_usd_price(pairs)
                if usd_price is not None:
                    sol_usd = await self._fetch_sol_usd()
                    if sol_usd:
                        price = usd_price / sol_usd
                        self.logger.debug(f"Used USD conversion for {mint[:8]}: ${usd_price} / ${sol_usd}")
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            self.logger.debug(f"Failed to get SOL price for {mint[:8]}: {str(e)}")
            return None

        if price is not None:
            self._cache[mint] = (price, self.clock())
        return price
