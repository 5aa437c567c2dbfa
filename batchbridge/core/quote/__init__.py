"""
Quote Module

Relay response normalization and allowance-aware approval pruning.
``QuoteAggregator`` lives in ``aggregator`` and is imported from there.
"""

from .approvals import collect_approval_targets, parse_approve_calldata, prune_approval_steps
from .parsing import collect_request_ids, parse_quote, parse_steps, quote_to_dict

__all__ = [
    "collect_approval_targets",
    "parse_approve_calldata",
    "prune_approval_steps",
    "collect_request_ids",
    "parse_quote",
    "parse_steps",
    "quote_to_dict",
]
