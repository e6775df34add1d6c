from decimal import Decimal
from typing import List, Optional
from sqlalchemy import select
import logging
from .database import DatabaseConnection
from .models import TradingRuleRow
from ..core.types import GLOBAL_RULE_MINT, TradingRule, utc_now
from ..utils.config import DefaultRuleParameters


def validate_rule(rule: TradingRule):
    if rule.take_profit_pct <= 0:
        raise ValueError(f"take_profit_pct must be positive, got {rule.take_profit_pct}")
    if rule.stop_loss_pct >= 0:
        raise ValueError(f"stop_loss_pct must be negative, got {rule.stop_loss_pct}")
    if not (Decimal(0) < rule.sell_percentage <= Decimal(100)):
        raise ValueError(f"sell_percentage must be in (0, 100], got {rule.sell_percentage}")


def _rule_from_row(row: TradingRuleRow) -> TradingRule:
    return TradingRule(
        mint=row.mint,
        symbol=row.symbol,
        strategy=row.strategy,
        take_profit_pct=row.take_profit_pct,
        stop_loss_pct=row.stop_loss_pct,
        sell_percentage=row.sell_percentage,
        enabled=row.enabled,
    )


class RuleStore:
    """Per-mint rules with a single Global Default fallback. Rules are disabled, never deleted."""

    def __init__(self, db: DatabaseConnection, defaults: Optional[DefaultRuleParameters] = None,
                 strategy: str = "TP_SL"):
        self.db = db
        self.defaults = defaults or DefaultRuleParameters()
        self.strategy = strategy
        self.logger = logging.getLogger(__name__)

    def _find(self, session, mint: str, strategy: str) -> Optional[TradingRuleRow]:
        return session.execute(
            select(TradingRuleRow).where(
                TradingRuleRow.mint == mint,
                TradingRuleRow.strategy == strategy,
            )
        ).scalar_one_or_none()

    def set_rule(self, rule: TradingRule, session=None) -> TradingRule:
        """Create or update the rule for (mint, strategy) and enable it"""
        validate_rule(rule)
        with self.db.session_scope(session) as s:
            row = self._find(s, rule.mint, rule.strategy)
            if row is None:
                row = TradingRuleRow(mint=rule.mint, strategy=rule.strategy)
                s.add(row)
            row.symbol = rule.symbol or row.symbol
            row.take_profit_pct = rule.take_profit_pct
            row.stop_loss_pct = rule.stop_loss_pct
            row.sell_percentage = rule.sell_percentage
            row.enabled = rule.enabled
            row.updated_at = utc_now()
            s.flush()

        label = "Global Default" if rule.is_global_default else (rule.symbol or rule.mint)
        self.logger.info(
            f"Rule set for {label}: TP {rule.take_profit_pct}%, SL {rule.stop_loss_pct}%, "
            f"sell {rule.sell_percentage}%"
        )
        return rule

    def set_default(self, take_profit_pct, stop_loss_pct, sell_percentage, session=None) -> TradingRule:
        return self.set_rule(TradingRule(
            mint=GLOBAL_RULE_MINT,
            strategy=self.strategy,
            take_profit_pct=Decimal(str(take_profit_pct)),
            stop_loss_pct=Decimal(str(stop_loss_pct)),
            sell_percentage=Decimal(str(sell_percentage)),
        ), session=session)

    def ensure_default(self, session=None) -> TradingRule:
        """Seed the Global Default rule from configuration if it does not exist yet"""
        with self.db.session_scope(session) as s:
            row = self._find(s, GLOBAL_RULE_MINT, self.strategy)
            if row is not None:
                return _rule_from_row(row)
            return self.set_default(
                self.defaults.take_profit_pct,
                self.defaults.stop_loss_pct,
                self.defaults.sell_percentage,
                session=s,
            )

    def disable_rule(self, mint: str, strategy: Optional[str] = None, session=None) -> bool:
        with self.db.session_scope(session) as s:
            row = self._find(s, mint, strategy or self.strategy)
            if row is None or not row.enabled:
                return False
            row.enabled = False
            row.updated_at = utc_now()
            s.flush()
        self.logger.info(f"Rule disabled for {mint}")
        return True

    def get_rule(self, mint: str, strategy: Optional[str] = None, session=None) -> Optional[TradingRule]:
        with self.db.session_scope(session) as s:
            row = self._find(s, mint, strategy or self.strategy)
            return _rule_from_row(row) if row else None

    def resolve(self, mint: str, session=None) -> Optional[TradingRule]:
        """The one active rule for a mint: its own enabled rule, else the Global Default"""
        with self.db.session_scope(session) as s:
            row = self._find(s, mint, self.strategy)
            if row is not None and row.enabled:
                return _rule_from_row(row)

            default = self._find(s, GLOBAL_RULE_MINT, self.strategy)
            if default is None:
                return self.ensure_default(session=s)
            if not default.enabled:
                return None
            return _rule_from_row(default)

    def list_rules(self, include_disabled: bool = False, session=None) -> List[TradingRule]:
        with self.db.session_scope(session) as s:
            query = select(TradingRuleRow).order_by(TradingRuleRow.mint)
            if not include_disabled:
                query = query.where(TradingRuleRow.enabled.is_(True))
            return [_rule_from_row(r) for r in s.execute(query).scalars().all()]

    def active_rule_count(self, session=None) -> int:
        return len(self.list_rules(session=session))
