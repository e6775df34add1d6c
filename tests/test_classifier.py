from decimal import Decimal
import pytest
from factories import (
    LAMPORTS,
    MINT,
    MINT_B,
    OTHER,
    WALLET,
    buy_tx,
    make_tx,
    sell_tx,
    sol_transfer,
    token_balance,
)
from solpnl.core.classifier import TransactionClassifier
from solpnl.core.types import SOL_MINT, EventKind


@pytest.fixture
def classifier(ledger_params):
    return TransactionClassifier(ledger_params)


def by_mint(events):
    return {e.mint: e for e in events}


class TestSwapClassification:
    def test_buy_produces_token_buy_and_sol_sell(self, classifier):
        events = by_mint(classifier.classify(buy_tx("sig-buy"), WALLET))

        token = events[MINT]
        assert token.kind == EventKind.BUY
        assert token.quantity == Decimal("1000")
        assert token.value_in_base == Decimal("1")
        assert token.counterparty_mint == SOL_MINT

        sol = events[SOL_MINT]
        assert sol.kind == EventKind.SELL
        assert sol.quantity == Decimal("1")
        assert sol.counterparty_mint == MINT

    def test_sell_produces_token_sell_and_sol_buy(self, classifier):
        events = by_mint(classifier.classify(sell_tx("sig-sell", tokens=400, sol_lamports=LAMPORTS // 2), WALLET))

        assert events[MINT].kind == EventKind.SELL
        assert events[MINT].quantity == Decimal("400")
        assert events[MINT].value_in_base == Decimal("0.5")
        assert events[SOL_MINT].kind == EventKind.BUY

    def test_fee_is_charged_once_per_transaction(self, classifier):
        events = classifier.classify(buy_tx("sig-fee"), WALLET)

        assert len(events) == 2
        assert sum(e.fee_lamports for e in events) == 5000
        assert events[0].fee_lamports == 5000
        assert events[1].fee_lamports == 0

    def test_one_event_per_mint(self, classifier):
        events = classifier.classify(buy_tx("sig-keys"), WALLET)
        keys = [e.key for e in events]
        assert len(keys) == len(set(keys))

    def test_token_for_token_swap_has_no_sol_value(self, classifier):
        tx = make_tx(
            "sig-t2t",
            pre_tokens=[token_balance(1, MINT, 1000_000000), token_balance(2, MINT_B, 0)],
            post_tokens=[token_balance(1, MINT, 0), token_balance(2, MINT_B, 50_000000)],
        )
        events = by_mint(classifier.classify(tx, WALLET))

        assert events[MINT].kind == EventKind.SELL
        assert events[MINT_B].kind == EventKind.BUY
        assert events[MINT_B].counterparty_mint == MINT
        assert events[MINT_B].value_in_base is None


class TestTransfers:
    def test_token_received_is_transfer_in(self, classifier):
        tx = make_tx(
            "sig-in",
            fee_payer=OTHER,
            pre_tokens=[token_balance(1, MINT, 0)],
            post_tokens=[token_balance(1, MINT, 250_000000)],
        )
        events = classifier.classify(tx, WALLET)

        assert len(events) == 1
        assert events[0].kind == EventKind.TRANSFER_IN
        assert events[0].quantity == Decimal("250")
        assert events[0].value_in_base is None

    def test_fee_ignored_when_wallet_does_not_pay(self, classifier):
        tx = make_tx("sig-other-payer", fee_payer=OTHER, sol_change=2 * LAMPORTS)
        events = classifier.classify(tx, WALLET)

        assert len(events) == 1
        assert events[0].kind == EventKind.TRANSFER_IN
        assert events[0].fee_lamports == 0
        assert events[0].quantity == Decimal("2")

    def test_sol_change_below_threshold_is_ignored(self, classifier):
        tx = make_tx("sig-dust", sol_change=-50_000)
        assert classifier.classify(tx, WALLET) == []


class TestInnerTransfers:
    def test_rent_sized_transfer_dropped_when_several_outbound(self, classifier):
        tx = make_tx(
            "sig-inner",
            sol_change=-(LAMPORTS + 2_039_280),
            pre_tokens=[token_balance(1, MINT, 0)],
            post_tokens=[token_balance(1, MINT, 1000_000000)],
            inner=[
                sol_transfer(WALLET, OTHER, LAMPORTS),
                sol_transfer(WALLET, OTHER, 2_039_280),
            ],
        )
        events = by_mint(classifier.classify(tx, WALLET))

        assert events[SOL_MINT].quantity == Decimal("1")
        assert events[MINT].value_in_base == Decimal("1")

    def test_single_outbound_transfer_is_kept(self, classifier):
        tx = make_tx("sig-single", sol_change=-2_039_280, inner=[sol_transfer(WALLET, OTHER, 2_039_280)])
        events = classifier.classify(tx, WALLET)

        assert len(events) == 1
        assert events[0].kind == EventKind.TRANSFER_OUT
        assert events[0].quantity == Decimal("0.00203928")

    def test_transfers_are_netted(self, classifier):
        tx = make_tx(
            "sig-net",
            inner=[sol_transfer(OTHER, WALLET, 3 * LAMPORTS), sol_transfer(WALLET, OTHER, LAMPORTS)],
        )
        events = classifier.classify(tx, WALLET)

        assert len(events) == 1
        assert events[0].kind == EventKind.TRANSFER_IN
        assert events[0].quantity == Decimal("2")


class TestRentExclusion:
    def test_new_token_account_rent_is_subtracted(self, classifier):
        tx = make_tx(
            "sig-new-account",
            sol_change=-(LAMPORTS + 2_039_280),
            post_tokens=[token_balance(3, MINT, 1000_000000)],
        )
        events = by_mint(classifier.classify(tx, WALLET))

        assert events[SOL_MINT].quantity == Decimal("1.00000000")
        assert events[MINT].value_in_base == Decimal("1.00000000")

    def test_existing_account_keeps_full_amount(self, classifier):
        events = by_mint(classifier.classify(buy_tx("sig-existing", sol_lamports=LAMPORTS + 2_039_280), WALLET))
        assert events[SOL_MINT].quantity == Decimal("1.00203928")


class TestUnusableTransactions:
    def test_failed_transaction_yields_nothing(self, classifier):
        tx = buy_tx("sig-failed")
        tx["meta"]["err"] = {"InstructionError": [2, {"Custom": 6001}]}
        assert classifier.classify(tx, WALLET) == []

    def test_missing_body_yields_nothing(self, classifier):
        assert classifier.classify({}, WALLET) == []
        assert classifier.classify(None, WALLET) == []

    def test_malformed_transaction_is_logged_not_raised(self, classifier):
        tx = buy_tx("sig-bad")
        tx["meta"]["postTokenBalances"][0]["uiTokenAmount"]["amount"] = "not-a-number"
        assert classifier.classify(tx, WALLET) == []

    def test_unrelated_wallet_yields_nothing(self, classifier):
        tx = make_tx("sig-unrelated", wallet=OTHER, sol_change=LAMPORTS)
        assert classifier.classify(tx, WALLET) == []

    def test_classify_many_flattens(self, classifier):
        events = classifier.classify_many([buy_tx("a"), sell_tx("b")], WALLET)
        assert {e.signature for e in events} == {"a", "b"}
        assert len(events) == 4
