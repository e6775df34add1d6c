from collections import OrderedDict
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, List, Optional, Set, Tuple
import logging
from .types import (
    SOL_MINT,
    EventKind,
    LedgerEvent,
    lamports_to_sol,
)
from ..utils.config import LedgerParameters


@dataclass
class _Leg:
    """Net balance movement of one mint inside one transaction"""
    mint: str
    delta: Decimal
    symbol: Optional[str] = None

    @property
    def inbound(self) -> bool:
        return self.delta > 0


@dataclass
class _ParseState:
    signature: str
    block_time: int
    fee_lamports: int
    legs: "OrderedDict[str, _Leg]" = field(default_factory=OrderedDict)

    def covers(self, mint: str) -> bool:
        return mint in self.legs

    def add(self, mint: str, delta: Decimal, symbol: Optional[str] = None):
        if delta == 0:
            return
        self.legs[mint] = _Leg(mint=mint, delta=delta, symbol=symbol)


def _account_pubkey(key) -> str:
    return key if isinstance(key, str) else key.get("pubkey", "")


class TransactionClassifier:
    """Turns one jsonParsed transaction into typed ledger events for a wallet.

    Never raises: a transaction that cannot be parsed yields no events and a warning.
    """

    def __init__(self, params: Optional[LedgerParameters] = None, logger=None):
        self.params = params or LedgerParameters()
        self.logger = logger or logging.getLogger(__name__)

    def classify(self, tx: dict, wallet: str) -> List[LedgerEvent]:
        signature = None
        try:
            if not tx or not tx.get("transaction"):
                return []

            signature = (tx["transaction"].get("signatures") or ["unknown"])[0]
            meta = tx.get("meta") or {}
            if meta.get("err") is not None:
                self.logger.debug(f"Skipping failed transaction {signature[:8]}")
                return []

            account_keys = [_account_pubkey(k) for k in tx["transaction"].get("message", {}).get("accountKeys", [])]
            wallet_pays_fee = bool(account_keys) and account_keys[0] == wallet
            state = _ParseState(
                signature=signature,
                block_time=int(tx.get("blockTime") or 0),
                fee_lamports=int(meta.get("fee") or 0) if wallet_pays_fee else 0,
            )

            creates_account = self._creates_token_account(meta, wallet)

            self._parse_inner_transfers(meta, wallet, state)
            self._parse_token_balances(meta, wallet, state)
            if not state.covers(SOL_MINT):
                self._parse_sol_balance(meta, account_keys, wallet, state)

            if creates_account:
                self._exclude_account_rent(state)

            return self._build_events(state)
        except Exception as e:
            self.logger.warning(f"Error parsing transaction {signature}: {str(e)}")
            return []

    def classify_many(self, transactions: List[dict], wallet: str) -> List[LedgerEvent]:
        events = []
        for tx in transactions:
            events.extend(self.classify(tx, wallet))
        self.logger.info(f"Parsed {len(events)} ledger events from {len(transactions)} transactions")
        return events

    def _creates_token_account(self, meta: dict, wallet: str) -> bool:
        pre = self._owned_accounts(meta.get("preTokenBalances") or [], wallet)
        post = self._owned_accounts(meta.get("postTokenBalances") or [], wallet)
        return bool(post - pre)

    @staticmethod
    def _owned_accounts(balances: List[dict], wallet: str) -> Set[Tuple[int, str]]:
        return {(b.get("accountIndex"), b.get("mint")) for b in balances if b.get("owner") == wallet}

    def _parse_inner_transfers(self, meta: dict, wallet: str, state: _ParseState):
        """Native SOL legs from inner system transfers"""
        outbound: List[int] = []
        inbound: List[int] = []

        for inner in meta.get("innerInstructions") or []:
            for ix in inner.get("instructions") or []:
                parsed = ix.get("parsed")
                if not isinstance(parsed, dict) or parsed.get("type") != "transfer":
                    continue
                info = parsed.get("info") or {}
                if "lamports" not in info:
                    continue
                lamports = int(info["lamports"])
                if info.get("source") == wallet:
                    outbound.append(lamports)
                elif info.get("destination") == wallet:
                    inbound.append(lamports)

        if not outbound and not inbound:
            return

        # With several outbound transfers the rent-sized ones are account creation
        if len(outbound) > 1:
            threshold = self.params.rent_filter_threshold_sol
            outbound = [l for l in outbound if lamports_to_sol(l) >= threshold]

        net = lamports_to_sol(sum(inbound)) - lamports_to_sol(sum(outbound))
        state.add(SOL_MINT, net, symbol="SOL")

    def _parse_token_balances(self, meta: dict, wallet: str, state: _ParseState):
        """SPL token legs from pre/post token balance snapshots, exact in raw units"""
        raw_deltas: "OrderedDict[str, int]" = OrderedDict()
        decimals: Dict[str, int] = {}

        for sign, balances in ((-1, meta.get("preTokenBalances") or []), (1, meta.get("postTokenBalances") or [])):
            for balance in balances:
                if balance.get("owner") != wallet:
                    continue
                mint = balance.get("mint")
                amount = balance.get("uiTokenAmount") or {}
                raw_deltas[mint] = raw_deltas.get(mint, 0) + sign * int(amount.get("amount") or 0)
                decimals[mint] = int(amount.get("decimals") or 0)

        for mint, raw in raw_deltas.items():
            if raw == 0 or state.covers(mint):
                continue
            delta = Decimal(raw).scaleb(-decimals[mint])
            state.add(mint, delta, symbol="SOL" if mint == SOL_MINT else None)

    def _parse_sol_balance(self, meta: dict, account_keys: List[str], wallet: str, state: _ParseState):
        """Fallback SOL leg from the wallet's lamport balance diff, fee excluded"""
        pre_balances = meta.get("preBalances")
        post_balances = meta.get("postBalances")
        if not pre_balances or not post_balances:
            return

        try:
            index = account_keys.index(wallet)
        except ValueError:
            self.logger.debug(f"Wallet not found in account keys for {state.signature}")
            return

        lamports = int(post_balances[index]) - int(pre_balances[index]) + state.fee_lamports
        delta = lamports_to_sol(lamports)
        if abs(delta) > self.params.min_sol_change:
            state.add(SOL_MINT, delta, symbol="SOL")

    def _exclude_account_rent(self, state: _ParseState):
        sol = state.legs.get(SOL_MINT)
        rent = self.params.account_rent_sol
        if sol is None or sol.inbound or -sol.delta <= rent:
            return
        self.logger.debug(f"Subtracting account rent ({rent} SOL) from transaction {state.signature[:8]}")
        sol.delta += rent

    def _build_events(self, state: _ParseState) -> List[LedgerEvent]:
        legs = list(state.legs.values())
        if not legs:
            return []

        is_swap = any(l.inbound for l in legs) and any(not l.inbound for l in legs)
        events = []
        for leg in legs:
            if is_swap:
                kind = EventKind.BUY if leg.inbound else EventKind.SELL
            else:
                kind = EventKind.TRANSFER_IN if leg.inbound else EventKind.TRANSFER_OUT

            counterparty = self._counterparty(leg, legs) if is_swap else None
            events.append(LedgerEvent(
                signature=state.signature,
                block_time=state.block_time,
                kind=kind,
                mint=leg.mint,
                quantity=abs(leg.delta),
                fee_lamports=0,
                counterparty_mint=counterparty.mint if counterparty else None,
                value_in_base=self._value_in_base(leg, counterparty),
                symbol=leg.symbol,
            ))

        # The fee is charged once per transaction
        events[0] = replace(events[0], fee_lamports=state.fee_lamports)
        return events

    @staticmethod
    def _counterparty(leg: _Leg, legs: List[_Leg]) -> Optional[_Leg]:
        opposite = [l for l in legs if l.inbound != leg.inbound]
        if not opposite:
            return None
        for candidate in opposite:
            if candidate.mint == SOL_MINT:
                return candidate
        return max(opposite, key=lambda l: abs(l.delta))

    @staticmethod
    def _value_in_base(leg: _Leg, counterparty: Optional[_Leg]) -> Optional[Decimal]:
        if leg.mint == SOL_MINT:
            return abs(leg.delta)
        if counterparty is not None and counterparty.mint == SOL_MINT:
            return abs(counterparty.delta)
        return None
