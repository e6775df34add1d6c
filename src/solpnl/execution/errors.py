import re
from typing import Optional
from .constants import (
    SLIPPAGE_ERROR_CODE,
    INSUFFICIENT_FUNDS_CODE,
    INSUFFICIENT_RENT_CODE,
    NO_ROUTE_ERROR_CODE,
)

SLIPPAGE_EXCEEDED = "SLIPPAGE_EXCEEDED"
INSUFFICIENT_LIQUIDITY = "INSUFFICIENT_LIQUIDITY"
NO_QUOTE = "NO_QUOTE"
INSUFFICIENT_FUNDS = "INSUFFICIENT_FUNDS"
INSUFFICIENT_RENT = "INSUFFICIENT_RENT"
TRANSACTION_FAILED = "TRANSACTION_FAILED"
SUBMISSION_FAILED = "SUBMISSION_FAILED"
CONFIRMATION_UNKNOWN = "CONFIRMATION_UNKNOWN"
INVALID_SIGNAL = "INVALID_SIGNAL"


class TransientUpstreamError(Exception):
    """Raised on rate limits, timeouts and connection failures from any upstream"""
    pass


class RpcError(Exception):
    """Raised when the node answers with a JSON-RPC error object"""
    def __init__(self, message: str, code: Optional[int] = None):
        super().__init__(message)
        self.code = code


class ExecutionError(Exception):
    """Base class for swap execution failures, carries a reason code"""
    reason_code = TRANSACTION_FAILED

    def __init__(self, message: str, reason_code: Optional[str] = None, signature: Optional[str] = None):
        super().__init__(message)
        if reason_code:
            self.reason_code = reason_code
        self.signature = signature


class QuoteUnavailableError(ExecutionError):
    """Raised when no route or quote exists for the requested size"""
    reason_code = INSUFFICIENT_LIQUIDITY


class SlippageExceededError(ExecutionError):
    reason_code = SLIPPAGE_EXCEEDED


class OnChainExecutionError(ExecutionError):
    """Raised when a submitted transaction fails on chain"""
    reason_code = TRANSACTION_FAILED


class SubmissionError(ExecutionError):
    reason_code = SUBMISSION_FAILED


class ConfirmationTimeoutError(ExecutionError):
    """Raised when confirmation is not observed in time; the outcome is unknown"""
    reason_code = CONFIRMATION_UNKNOWN


def _program_error(code: int):
    """Matches a custom program error only in its structured forms, never inside other numbers"""
    return re.compile(
        rf"\b{hex(code)}\b|\bCustom\"?\s*[:(]\s*{code}\b",
        re.IGNORECASE,
    )


_SLIPPAGE_CODE = _program_error(SLIPPAGE_ERROR_CODE)
_INSUFFICIENT_FUNDS_CODE = _program_error(INSUFFICIENT_FUNDS_CODE)
_INSUFFICIENT_RENT_CODE = _program_error(INSUFFICIENT_RENT_CODE)


def classify_failure(message) -> str:
    """Map raw error text from simulation or confirmation to a reason code"""
    text = str(message or "")
    lowered = text.lower()

    if _INSUFFICIENT_FUNDS_CODE.search(text):
        return INSUFFICIENT_FUNDS
    if _SLIPPAGE_CODE.search(text):
        return SLIPPAGE_EXCEEDED
    if NO_ROUTE_ERROR_CODE in text or "no routes found" in lowered or "insufficient liquidity" in lowered:
        return INSUFFICIENT_LIQUIDITY
    if _INSUFFICIENT_RENT_CODE.search(text):
        return INSUFFICIENT_RENT
    if "slippage" in lowered:
        return SLIPPAGE_EXCEEDED
    return TRANSACTION_FAILED


def error_for(message, signature: Optional[str] = None) -> ExecutionError:
    """Build the exception matching a raw failure message"""
    reason = classify_failure(message)
    if reason == SLIPPAGE_EXCEEDED:
        return SlippageExceededError(str(message), signature=signature)
    if reason == INSUFFICIENT_LIQUIDITY:
        return QuoteUnavailableError(str(message), signature=signature)
    return OnChainExecutionError(str(message), reason_code=reason, signature=signature)
