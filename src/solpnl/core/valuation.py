from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, Iterable, List, Optional
import logging
from .types import ZERO, Position, Valuation


def valuate(position: Position, spot_price: Optional[Decimal]) -> Valuation:
    """Unrealized value and PnL of a position at a spot price in SOL.

    A missing price gives an unpriced valuation with zero value. Callers skip it,
    it is never a signal to liquidate.
    """
    if spot_price is None:
        return Valuation(
            mint=position.mint,
            spot_price=None,
            current_value=ZERO,
            unrealized_pnl=ZERO,
            unrealized_pnl_pct=ZERO,
        )

    current_value = position.total_quantity * spot_price
    pnl = current_value - position.total_invested
    pnl_pct = pnl / position.total_invested * 100 if position.total_invested > 0 else ZERO
    return Valuation(
        mint=position.mint,
        spot_price=spot_price,
        current_value=current_value,
        unrealized_pnl=pnl,
        unrealized_pnl_pct=pnl_pct,
    )


@dataclass
class PortfolioTotals:
    total_invested: Decimal
    current_value: Decimal
    unrealized_pnl: Decimal
    unrealized_pnl_pct: Decimal
    priced: int
    unpriced: int


def portfolio_totals(pairs: Iterable) -> PortfolioTotals:
    """Totals over (position, valuation) pairs; unpriced positions are counted but not summed"""
    invested = ZERO
    value = ZERO
    priced = 0
    unpriced = 0
    for position, valuation in pairs:
        if not valuation.is_priced:
            unpriced += 1
            continue
        priced += 1
        invested += position.total_invested
        value += valuation.current_value

    pnl = value - invested
    pnl_pct = pnl / invested * 100 if invested > 0 else ZERO
    return PortfolioTotals(
        total_invested=invested,
        current_value=value,
        unrealized_pnl=pnl,
        unrealized_pnl_pct=pnl_pct,
        priced=priced,
        unpriced=unpriced,
    )


class ValuationEngine:
    def __init__(self, oracle, logger=None):
        self.oracle = oracle
        self.logger = logger or logging.getLogger(__name__)

    async def valuate(self, position: Position, force_refresh: bool = False) -> Valuation:
        try:
            price = await self.oracle.spot_price_in_base(position.mint, force_refresh=force_refresh)
        except Exception as e:
            self.logger.warning(f"Price lookup failed for {position.label}: {str(e)}")
            price = None
        return valuate(position, price)

    async def valuate_all(self, positions: List[Position]) -> Dict[str, Valuation]:
        """Sequential lookups, one price request at a time"""
        valuations = {}
        for position in positions:
            valuations[position.mint] = await self.valuate(position)
        return valuations
