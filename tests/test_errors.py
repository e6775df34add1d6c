import pytest
from solpnl.execution.errors import (
    INSUFFICIENT_FUNDS,
    INSUFFICIENT_LIQUIDITY,
    INSUFFICIENT_RENT,
    SLIPPAGE_EXCEEDED,
    TRANSACTION_FAILED,
    OnChainExecutionError,
    QuoteUnavailableError,
    SlippageExceededError,
    classify_failure,
    error_for,
)


@pytest.mark.parametrize("message, expected", [
    ("custom program error: 0x1788", SLIPPAGE_EXCEEDED),
    ('{"InstructionError": [4, {"Custom": 6024}]}', SLIPPAGE_EXCEEDED),
    ("Slippage tolerance exceeded", SLIPPAGE_EXCEEDED),
    ("custom program error: 0x1771", INSUFFICIENT_FUNDS),
    ("custom program error: 0x1771 Program JUP6 consumed 160240 of 200000 compute units", INSUFFICIENT_FUNDS),
    ("Program log: slippage check skipped custom program error: 0x1771", INSUFFICIENT_FUNDS),
    ("Program JUP6 consumed 56024 of 200000 compute units", TRANSACTION_FAILED),
    ("Program log: amount 16024 transferred", TRANSACTION_FAILED),
    ("InstructionError(3, Custom(6024))", SLIPPAGE_EXCEEDED),
    ('{"InstructionError": [3, {"Custom": 1}]}', INSUFFICIENT_RENT),
    ("COULD_NOT_FIND_ANY_ROUTE", INSUFFICIENT_LIQUIDITY),
    ("No routes found for the input and output mints", INSUFFICIENT_LIQUIDITY),
    ("custom program error: 0x1", INSUFFICIENT_RENT),
    ("custom program error: 0x10", TRANSACTION_FAILED),
    ("blockhash not found", TRANSACTION_FAILED),
    (None, TRANSACTION_FAILED),
])
def test_classify_failure(message, expected):
    assert classify_failure(message) == expected


def test_error_for_builds_matching_exception():
    assert isinstance(error_for("0x1788"), SlippageExceededError)
    assert isinstance(error_for("COULD_NOT_FIND_ANY_ROUTE"), QuoteUnavailableError)

    failure = error_for("custom program error: 0x1771", signature="abc")
    assert isinstance(failure, OnChainExecutionError)
    assert failure.reason_code == INSUFFICIENT_FUNDS
    assert failure.signature == "abc"


def test_reason_code_defaults_per_class():
    assert QuoteUnavailableError("x").reason_code == INSUFFICIENT_LIQUIDITY
    assert QuoteUnavailableError("x", reason_code="NO_QUOTE").reason_code == "NO_QUOTE"
