"""
Error Recovery Module

Error classification, revert decoding, and the retry cascade that decides
how to recover from a failed execution.
"""

from .cascade import CascadeAction, CascadeContext, CascadeDecision, RetryCascade
from .errors import (
    AggregationError,
    ErrorCategory,
    ExecutionError,
    RecoverableError,
    RelayApiError,
    RelayTimeoutError,
    UnrecoverableError,
    classify_error,
    get_friendly_error_message,
    is_user_rejection,
)
from .revert import InsufficientBalanceRevert, decode_error, extract_revert_data

__all__ = [
    # Errors
    "AggregationError",
    "ErrorCategory",
    "ExecutionError",
    "RecoverableError",
    "RelayApiError",
    "RelayTimeoutError",
    "UnrecoverableError",
    "classify_error",
    "get_friendly_error_message",
    "is_user_rejection",
    # Reverts
    "InsufficientBalanceRevert",
    "decode_error",
    "extract_revert_data",
    # Cascade
    "CascadeAction",
    "CascadeContext",
    "CascadeDecision",
    "RetryCascade",
]
