"""
Execution Module

Drives a quote's signature and transaction steps through a connected wallet
and polls Relay until settlement.
"""

from .engine import ExecutionEngine, ExecutionResult, ExecutionState
from .settlement import PollResult, poll_status, summarize_results
from .wallet import WalletClient, WalletError, normalize_typed_data_domain

__all__ = [
    "ExecutionEngine",
    "ExecutionResult",
    "ExecutionState",
    "PollResult",
    "poll_status",
    "summarize_results",
    "WalletClient",
    "WalletError",
    "normalize_typed_data_domain",
]
