"""
Error Classification

Defines the error taxonomy for batch bridging.
Errors are split into recoverable (the retry cascade may requote) and
unrecoverable (surface a message and stop).
"""

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


class ErrorCategory(str, Enum):
    """Categories of errors for recovery decisions."""

    USER_CANCELLED = "user_cancelled"        # Wallet rejection, not an error for the user
    BALANCE_REVERT = "balance_revert"        # Decoded ERC20InsufficientBalance revert
    SIMULATION_REVERT = "simulation_revert"  # Revert text without a balance payload
    SERVICE = "service"                      # Relay returned a recognised error code
    TIMEOUT = "timeout"                      # Request aborted after its deadline
    UNCLASSIFIED = "unclassified"            # Anything else


@dataclass
class ErrorContext:
    """Additional context about an error."""

    category: ErrorCategory = ErrorCategory.UNCLASSIFIED
    recoverable: bool = False
    suggested_action: Optional[str] = None
    request_id: Optional[str] = None
    chain_id: Optional[int] = None
    details: Dict[str, Any] = field(default_factory=dict)


class RecoverableError(Exception):
    """
    Base class for errors after which a fresh quote may succeed.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNCLASSIFIED,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(category=category, recoverable=True)


class UnrecoverableError(Exception):
    """
    Base class for errors that end the current attempt.
    """

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.UNCLASSIFIED,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.context = context or ErrorContext(category=category, recoverable=False)


class RelayApiError(RecoverableError):
    """Relay answered with an error body ``{message, errorCode, errorData, requestId}``."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        error_data: Any = None,
        request_id: Optional[str] = None,
        status_code: Optional[int] = None,
    ):
        category = ErrorCategory.SERVICE if error_code in RELAY_ERROR_CODES else ErrorCategory.UNCLASSIFIED
        super().__init__(
            message,
            category=category,
            context=ErrorContext(
                category=category,
                recoverable=True,
                request_id=request_id,
                details={"error_code": error_code, "status_code": status_code},
            ),
        )
        self.error_code = error_code
        self.error_data = error_data
        self.request_id = request_id
        self.status_code = status_code

    # Revert extraction looks these up by their wire names.
    @property
    def errorData(self) -> Any:  # noqa: N802
        return self.error_data


class RelayTimeoutError(RecoverableError):
    """A Relay request exceeded its deadline and was aborted."""

    def __init__(self, message: str = "Request timed out. Please try again.", operation: Optional[str] = None):
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            context=ErrorContext(
                category=ErrorCategory.TIMEOUT,
                recoverable=True,
                suggested_action="Retry the quote",
                details={"operation": operation} if operation else {},
            ),
        )


class ExecutionError(UnrecoverableError):
    """A quote step could not be executed as described (missing data, bad payload)."""

    pass


class AggregationError(UnrecoverableError):
    """No origin of a multi-token quote survived filtering."""

    def __init__(self, message: str, high_impact: Optional[list] = None, failed: Optional[list] = None):
        super().__init__(message, category=ErrorCategory.SERVICE)
        self.high_impact = list(high_impact or [])
        self.failed = list(failed or [])


RELAY_ERROR_CODES: Dict[str, Optional[str]] = {
    "AMOUNT_TOO_LOW": "Amount is too low for this swap. Try a larger amount.",
    "CHAIN_DISABLED": "This chain is temporarily disabled.",
    "EXTRA_TXS_NOT_SUPPORTED": "Extra transactions are not supported for this route.",
    "FORBIDDEN": "This request is not permitted.",
    "INSUFFICIENT_FUNDS": "Insufficient balance to complete this swap.",
    "INSUFFICIENT_LIQUIDITY": "Not enough liquidity available. Try a smaller amount or different token.",
    "INVALID_ADDRESS": "Invalid wallet address.",
    "INVALID_EXTRA_TXS": "Extra transactions exceed the intended output.",
    "INVALID_GAS_LIMIT_FOR_DEPOSIT_SPECIFIED_TXS": "Invalid gas limit for deposit-specified transactions.",
    "INVALID_INPUT_CURRENCY": "Unsupported input token for this route.",
    "INVALID_OUTPUT_CURRENCY": "Unsupported output token for this route.",
    "NO_SWAP_ROUTES_FOUND": "No route found for this swap. The token pair may not be supported.",
    "NO_INTERNAL_SWAP_ROUTES_FOUND": "No internal swap route available for this token.",
    "NO_QUOTES": "Unable to get a quote. Try again or use a different token.",
    "ROUTE_TEMPORARILY_RESTRICTED": "This route is temporarily unavailable. Please try again later.",
    "SANCTIONED_CURRENCY": "This token is restricted and cannot be swapped.",
    "SANCTIONED_WALLET_ADDRESS": "This wallet address is restricted.",
    "SWAP_IMPACT_TOO_HIGH": "Price impact is too high. Try a smaller amount.",
    "UNSUPPORTED_CURRENCY": "This token is not supported for swapping.",
    "UNSUPPORTED_CHAIN": "This chain is not currently supported.",
    "UNSUPPORTED_EXECUTION_TYPE": "This execution type is not supported.",
    "UNSUPPORTED_ROUTE": "This swap route is not supported.",
    "UNAUTHORIZED": "Unauthorized request.",
    "USER_RECIPIENT_MISMATCH": "Recipient must match the connected wallet for this route.",
    "DESTINATION_TX_FAILED": "The transaction failed on the destination chain.",
    "ERC20_ROUTER_ADDRESS_NOT_FOUND": "Routing contract not found for this token.",
    "SWAP_QUOTE_FAILED": "Failed to calculate quote. Please try again.",
    "PERMIT_FAILED": "Permit signature failed. Please try again.",
    "INVALID_SLIPPAGE_TOLERANCE": "Invalid slippage value.",
    "UNKNOWN_ERROR": None,
}

DEFAULT_ERROR_MESSAGE = "An error occurred. Please try again."

_REVERT_HINTS = ("revert", "reverted", "execution reverted", "simulation")
_REJECTION_PATTERNS = (
    "rejected",
    "denied",
    "cancelled",
    "canceled",
    "user refused",
    "user declined",
    "user closed",
    "user rejected",
)
_SIMULATION_REVERT_PATTERNS = (
    "will revert",
    "execution reverted",
    "revert onchain",
    "reverted",
    "call exception",
)

# (patterns, message) pairs, checked in order against the lowercased error text
_MESSAGE_PATTERNS = [
    (("no route", "no swap route"), RELAY_ERROR_CODES["NO_SWAP_ROUTES_FOUND"]),
    (("insufficient liquidity", "not enough liquidity"), RELAY_ERROR_CODES["INSUFFICIENT_LIQUIDITY"]),
    (("price impact", "swap impact"), RELAY_ERROR_CODES["SWAP_IMPACT_TOO_HIGH"]),
    (("amount too low", "minimum amount"), RELAY_ERROR_CODES["AMOUNT_TOO_LOW"]),
    (("insufficient funds", "insufficient balance"), RELAY_ERROR_CODES["INSUFFICIENT_FUNDS"]),
    (("unsupported currency", "invalid currency"), RELAY_ERROR_CODES["UNSUPPORTED_CURRENCY"]),
]


def _attr(obj: Any, name: str) -> Any:
    if isinstance(obj, dict):
        return obj.get(name)
    return getattr(obj, name, None)


def error_message(error: Any) -> str:
    """Best-effort human text of a wallet, library or Relay error."""

    if error is None:
        return ""
    if isinstance(error, str):
        return error
    message = _attr(error, "message")
    if isinstance(message, str) and message:
        return message
    if isinstance(error, BaseException):
        return str(error)
    return ""


def error_text(error: Any) -> str:
    """Lowercased message plus short message, the text the classifiers match on."""

    parts = [error_message(error), _attr(error, "shortMessage") or _attr(error, "short_message") or ""]
    return " ".join(p for p in parts if isinstance(p, str)).lower()


def deep_error_text(error: Any) -> str:
    """Lowercased text of the error, its causes two levels deep, and its JSON dump."""

    if error is None:
        return ""
    parts = []
    node = error
    for _ in range(3):
        if node is None:
            break
        for name in ("message", "shortMessage", "data", "errorData"):
            value = error_message(node) if name == "message" else _attr(node, name)
            if value is None and name == "shortMessage":
                value = _attr(node, "short_message")
            if value is None and name == "errorData":
                value = _attr(node, "error_data")
            if value:
                parts.append(value if isinstance(value, str) else repr(value))
        cause = _attr(node, "cause")
        if cause is None and isinstance(node, BaseException):
            cause = node.__cause__
        node = cause
    try:
        parts.append(json.dumps(error, default=_json_fallback))
    except (TypeError, ValueError, RecursionError):
        pass
    return " ".join(parts).lower()


def _json_fallback(value: Any) -> Any:
    if isinstance(value, BaseException):
        return {"message": str(value), **{k: v for k, v in vars(value).items() if not k.startswith("_")}}
    return str(value)


def error_code(error: Any) -> Any:
    code = _attr(error, "code")
    if code is None:
        code = _attr(error, "errorCode") if isinstance(error, dict) else getattr(error, "error_code", None)
    return code


def has_revert_hint(text: str) -> bool:
    return any(hint in text for hint in _REVERT_HINTS)


def is_user_rejection(error: Any) -> bool:
    """True when the wallet reports the user declined, and nothing suggests a revert."""

    if error is None:
        return False
    text = error_text(error)
    if has_revert_hint(text):
        return False
    if error_code(error) in (4001, "4001", "ACTION_REJECTED"):
        return True
    return any(pattern in text for pattern in _REJECTION_PATTERNS)


def is_simulation_revert(error: Any) -> bool:
    text = deep_error_text(error)
    return any(pattern in text for pattern in _SIMULATION_REVERT_PATTERNS)


def get_friendly_error_message(error: Any) -> str:
    """Map a Relay error code or known phrase to a user-facing message."""

    if error is None:
        return DEFAULT_ERROR_MESSAGE

    code = getattr(error, "error_code", None) or (error.get("errorCode") if isinstance(error, dict) else None)
    if code and RELAY_ERROR_CODES.get(code):
        return RELAY_ERROR_CODES[code]

    raw = error_message(error)
    lowered = deep_error_text(error)
    for patterns, message in _MESSAGE_PATTERNS:
        if any(p in lowered for p in patterns):
            return message

    return raw or DEFAULT_ERROR_MESSAGE


def classify_error(error: Exception) -> ErrorContext:
    """
    Classify an exception and return its error context.

    Revert payload decoding lives in ``revert.py``; this only looks at the
    error's type, code and text.
    """
    if isinstance(error, (RecoverableError, UnrecoverableError)):
        return error.context

    if is_user_rejection(error):
        return ErrorContext(
            category=ErrorCategory.USER_CANCELLED,
            recoverable=False,
            suggested_action="Nothing to do; the user declined",
        )

    text = deep_error_text(error)
    if "erc20insufficientbalance" in text or "0xe450d38c" in text:
        return ErrorContext(
            category=ErrorCategory.BALANCE_REVERT,
            recoverable=True,
            suggested_action="Requote without the short token",
        )

    if is_simulation_revert(error):
        return ErrorContext(
            category=ErrorCategory.SIMULATION_REVERT,
            recoverable=True,
            suggested_action="Requote with wider liquidity sources",
        )

    if any(p in text for p in ("timeout", "timed out", "deadline")):
        return ErrorContext(
            category=ErrorCategory.TIMEOUT,
            recoverable=True,
            suggested_action="Retry the request",
        )

    return ErrorContext(category=ErrorCategory.UNCLASSIFIED, recoverable=False)
