"""
Allowance-aware approval pruning.

Relay includes an ``approve`` step whenever a route needs an allowance, even
when the wallet already granted enough. Items whose allowance is already
sufficient are dropped, and an approval step left with no items goes too.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, replace
from typing import Dict, List, Optional, Tuple

from ..models import Quote, Step, TransactionItem

logger = logging.getLogger(__name__)

ERC20_APPROVE_SELECTOR = "0x095ea7b3"


@dataclass
class ApprovalTarget:
    chain_id: int
    token: str
    spender: str
    required: int


def parse_approve_calldata(calldata: Optional[str]) -> Optional[Tuple[str, int]]:
    """``(spender, amount)`` from ``approve(address,uint256)`` calldata, else ``None``."""
    if not calldata:
        return None
    normalized = calldata.lower()
    if not normalized.startswith(ERC20_APPROVE_SELECTOR):
        return None
    payload = normalized[len(ERC20_APPROVE_SELECTOR):]
    if len(payload) < 128:
        return None
    spender = "0x" + payload[24:64]
    try:
        amount = int(payload[64:128], 16)
    except ValueError:
        return None
    return spender, amount


def _approval_key(item: TransactionItem, default_chain: Optional[int]) -> Optional[Tuple[str, int, str, str]]:
    if not isinstance(item, TransactionItem) or not item.to:
        return None
    parsed = parse_approve_calldata(item.data)
    if parsed is None:
        return None
    spender, amount = parsed
    chain_id = item.chain_id if item.chain_id is not None else default_chain
    if chain_id is None:
        return None
    key = f"{chain_id}-{item.to.lower()}-{spender}"
    return key, amount, item.to, spender


def collect_approval_targets(steps: List[Step], default_chain: Optional[int] = None) -> Dict[str, ApprovalTarget]:
    """Group approval items by ``chain-token-spender`` keeping the largest requested amount."""
    targets: Dict[str, ApprovalTarget] = {}
    for step in steps:
        if not step.is_approval:
            continue
        for item in step.items:
            found = _approval_key(item, default_chain)
            if found is None:
                continue
            key, amount, token, spender = found
            existing = targets.get(key)
            if existing is None or amount > existing.required:
                chain_id = int(key.split("-", 1)[0])
                targets[key] = ApprovalTarget(chain_id=chain_id, token=token, spender=spender, required=amount)
    return targets


async def read_allowances(chain_data, owner: str, targets: Dict[str, ApprovalTarget]) -> Dict[str, int]:
    """One batched allowance read per chain."""
    by_chain: Dict[int, List[str]] = {}
    for key, target in targets.items():
        by_chain.setdefault(target.chain_id, []).append(key)

    async def read_chain(chain_id: int, keys: List[str]) -> Dict[str, int]:
        pairs = [(targets[k].token, targets[k].spender) for k in keys]
        values = await chain_data.get_allowances(chain_id, owner, pairs)
        return dict(zip(keys, values))

    allowances: Dict[str, int] = {}
    for chunk in await asyncio.gather(*(read_chain(c, ks) for c, ks in by_chain.items())):
        allowances.update(chunk)
    return allowances


async def prune_approval_steps(
    quote: Quote,
    owner: str,
    chain_data,
    default_chain: Optional[int] = None,
) -> Quote:
    """Return ``quote`` without approvals the wallet has already granted."""
    if not quote.steps or not owner:
        return quote

    targets = collect_approval_targets(quote.steps, default_chain)
    if not targets:
        return quote

    allowances = await read_allowances(chain_data, owner, targets)

    steps: List[Step] = []
    for step in quote.steps:
        if not step.is_approval:
            steps.append(step)
            continue
        items = []
        for item in step.items:
            found = _approval_key(item, default_chain)
            if found is not None:
                key = found[0]
                if allowances.get(key, 0) >= targets[key].required:
                    logger.debug("Dropping approval %s: allowance already sufficient", key)
                    continue
            items.append(item)
        if items:
            steps.append(replace(step, items=items))

    return replace(quote, steps=steps)
