"""
Retry Cascade

Decides what to do after an execution failure. Strategies are evaluated in
order and the first whose guard matches produces a ``CascadeDecision``:

1. wallet rejection: cancel quietly
2. reverts (balance payload or simulation text): block fee tokens, drop an
   unreliable router, widen liquidity sources, or give up
3. anything else: a friendly message

The cascade never performs I/O; the session applies the decision.
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional, Sequence

from ...config import settings
from ..models import Quote, QuoteParams, SelectionEntry, StatusMessage, Token
from .errors import deep_error_text, get_friendly_error_message, is_simulation_revert, is_user_rejection
from .revert import InsufficientBalanceRevert, decode_error, extract_revert_data

logger = logging.getLogger(__name__)

TRANSFER_FEE_REASON = "Transfer-fee token (unsupported)"


class CascadeAction(str, Enum):
    CANCEL = "cancel"        # Stop silently, keep quote and selection
    TERMINATE = "terminate"  # Stop with a message
    REQUOTE = "requote"      # Re-quote with new params and/or fewer entries


@dataclass
class CascadeContext:
    """Everything a strategy may look at."""

    error: Exception
    owner: Optional[str]
    entries: List[SelectionEntry]
    params: QuoteParams
    quote: Optional[Quote] = None
    source_chain_id: Optional[int] = None
    dest_chain_id: Optional[int] = None
    revert: Optional[InsufficientBalanceRevert] = None

    @property
    def active_entries(self) -> List[SelectionEntry]:
        return [entry for entry in self.entries if entry.amount > 0]

    @property
    def ratio_bps(self) -> Optional[int]:
        return self.revert.ratio_bps if self.revert else None

    @property
    def fee_percent(self) -> Optional[float]:
        if self.revert is None or self.revert.ratio_percent is None:
            return None
        return max(0.0, 100 - self.revert.ratio_percent)

    @property
    def fee_hint(self) -> str:
        fee = self.fee_percent
        return f" (~{fee:.2f}%)" if fee is not None else ""


@dataclass
class CascadeDecision:
    action: CascadeAction
    status: StatusMessage
    strategy: str = ""
    params: Optional[QuoteParams] = None
    entries: Optional[List[SelectionEntry]] = None
    block_tokens: List[Token] = field(default_factory=list)
    block_reason: Optional[str] = None
    # Message shown when the follow-up quote finds nothing
    requote_failure_message: Optional[str] = None
    # Progress message while the follow-up quote runs
    requote_status_message: Optional[str] = None
    # Whether the caller should drop its quote and selection
    reset: bool = False
    clear_quote: bool = False


def is_insufficient_balance_error(error: Exception) -> bool:
    if extract_revert_data(error):
        return True
    text = deep_error_text(error)
    return "erc20insufficientbalance" in text or "0xe450d38c" in text


class CascadeStrategy(ABC):
    """One rung of the cascade."""

    name = "strategy"

    @abstractmethod
    def guard(self, ctx: CascadeContext) -> bool:
        pass

    @abstractmethod
    def decide(self, ctx: CascadeContext) -> CascadeDecision:
        pass


class UserRejectionStrategy(CascadeStrategy):
    name = "user_rejection"

    def guard(self, ctx: CascadeContext) -> bool:
        return is_user_rejection(ctx.error)

    def decide(self, ctx: CascadeContext) -> CascadeDecision:
        return CascadeDecision(
            action=CascadeAction.CANCEL,
            status=StatusMessage(type="", message="Transaction cancelled"),
            strategy=self.name,
        )


class RevertStrategy(CascadeStrategy):
    """Base for strategies that only apply to reverts."""

    def guard(self, ctx: CascadeContext) -> bool:
        return is_insufficient_balance_error(ctx.error) or is_simulation_revert(ctx.error)


class UserBalanceStrategy(RevertStrategy):
    name = "user_balance"

    def guard(self, ctx: CascadeContext) -> bool:
        if not super().guard(ctx) or ctx.revert is None or not ctx.owner:
            return False
        return ctx.revert.address.lower() == ctx.owner.lower()

    def decide(self, ctx: CascadeContext) -> CascadeDecision:
        return CascadeDecision(
            action=CascadeAction.TERMINATE,
            status=StatusMessage(type="error", message="Insufficient token balance for this swap."),
            strategy=self.name,
        )


class TransferFeeStrategy(RevertStrategy):
    name = "transfer_fee"

    def __init__(self, ratio_threshold_bps: Optional[int] = None):
        self.ratio_threshold_bps = (
            ratio_threshold_bps if ratio_threshold_bps is not None else settings.fee_on_transfer_ratio_bps
        )

    def guard(self, ctx: CascadeContext) -> bool:
        return super().guard(ctx) and ctx.ratio_bps is not None and ctx.ratio_bps < self.ratio_threshold_bps

    @staticmethod
    def suspects(ctx: CascadeContext) -> List[Token]:
        needed = ctx.revert.needed if ctx.revert else None
        matches = [entry.token for entry in ctx.entries if needed is not None and entry.amount == needed]
        active = ctx.active_entries
        if not matches and len(active) == 1:
            matches = [active[0].token]
        return matches

    def decide(self, ctx: CascadeContext) -> CascadeDecision:
        suspects = self.suspects(ctx)
        if not suspects:
            return CascadeDecision(
                action=CascadeAction.TERMINATE,
                status=StatusMessage(type="error", message="Transfer-fee token detected. Try a different token."),
                strategy=self.name,
            )

        labels = ", ".join(token.symbol or token.address[:8] for token in suspects)
        suspect_addresses = {token.address.lower() for token in suspects}
        remaining = [e for e in ctx.active_entries if e.token.address.lower() not in suspect_addresses]

        if remaining:
            return CascadeDecision(
                action=CascadeAction.REQUOTE,
                status=StatusMessage(
                    type="warning",
                    message=f"Skipped {labels} due to transfer fees{ctx.fee_hint}. Requoting remaining tokens...",
                ),
                strategy=self.name,
                params=ctx.params.copy(),
                entries=remaining,
                block_tokens=suspects,
                block_reason=TRANSFER_FEE_REASON,
                requote_status_message="Re-quoting remaining tokens...",
            )
        return CascadeDecision(
            action=CascadeAction.TERMINATE,
            status=StatusMessage(
                type="error",
                message=f"{labels} charge transfer fees{ctx.fee_hint} and are not supported by this route.",
            ),
            strategy=self.name,
            block_tokens=suspects,
            block_reason=TRANSFER_FEE_REASON,
            clear_quote=True,
        )


class ExcludeRouterStrategy(RevertStrategy):
    name = "exclude_router"

    def __init__(self, router: Optional[str] = None):
        self.router = (router or settings.unreliable_router).lower()

    def guard(self, ctx: CascadeContext) -> bool:
        if not super().guard(ctx) or ctx.quote is None:
            return False
        if ctx.source_chain_id is None or ctx.source_chain_id != ctx.dest_chain_id:
            return False
        router = str(ctx.quote.details.router or "").lower()
        excluded = {source.lower() for source in ctx.params.excluded_swap_sources}
        return router == self.router and self.router not in excluded

    def decide(self, ctx: CascadeContext) -> CascadeDecision:
        return CascadeDecision(
            action=CascadeAction.REQUOTE,
            status=StatusMessage(type="warning", message="Route ran out of liquidity. Trying alternative sources..."),
            strategy=self.name,
            params=ctx.params.copy(excluded_swap_sources=[*ctx.params.excluded_swap_sources, self.router]),
            requote_failure_message="No alternative route available. Try a smaller amount or a different token.",
            requote_status_message="Trying an alternative route...",
        )


class FallbackSourcesStrategy(RevertStrategy):
    name = "fallback_sources"

    def guard(self, ctx: CascadeContext) -> bool:
        return super().guard(ctx) and not ctx.params.use_fallbacks

    def decide(self, ctx: CascadeContext) -> CascadeDecision:
        return CascadeDecision(
            action=CascadeAction.REQUOTE,
            status=StatusMessage(type="warning", message="Swap failed on route. Retrying with fallback sources..."),
            strategy=self.name,
            params=ctx.params.copy(use_fallbacks=True),
            requote_failure_message="No fallback route available. Try a smaller amount or a different token.",
            requote_status_message="Searching fallback routes...",
        )


class ExternalLiquidityStrategy(RevertStrategy):
    name = "external_liquidity"

    def guard(self, ctx: CascadeContext) -> bool:
        return super().guard(ctx) and not ctx.params.use_external_liquidity

    def decide(self, ctx: CascadeContext) -> CascadeDecision:
        return CascadeDecision(
            action=CascadeAction.REQUOTE,
            status=StatusMessage(type="warning", message="Retrying with external liquidity routing..."),
            strategy=self.name,
            params=ctx.params.copy(use_fallbacks=True, use_external_liquidity=True),
            requote_failure_message=(
                "No external liquidity route available. Try a smaller amount or a different token."
            ),
            requote_status_message="Searching external liquidity routes...",
        )


class ExhaustedRevertStrategy(RevertStrategy):
    name = "revert_exhausted"

    def decide(self, ctx: CascadeContext) -> CascadeDecision:
        fee = ctx.fee_percent
        hint = (
            f"Token transfer fee detected (~{fee:.2f}%)." if fee is not None
            else "Swap simulation reverted on this route."
        )
        return CascadeDecision(
            action=CascadeAction.TERMINATE,
            status=StatusMessage(
                type="error",
                message=f"{hint} This route cannot execute the swap. Try a different token or swap source.",
            ),
            strategy=self.name,
            reset=True,
        )


class FriendlyMessageStrategy(CascadeStrategy):
    name = "friendly_message"

    def guard(self, ctx: CascadeContext) -> bool:
        return True

    def decide(self, ctx: CascadeContext) -> CascadeDecision:
        return CascadeDecision(
            action=CascadeAction.TERMINATE,
            status=StatusMessage(type="error", message=get_friendly_error_message(ctx.error)),
            strategy=self.name,
            reset=True,
        )


def default_strategies() -> List[CascadeStrategy]:
    return [
        UserRejectionStrategy(),
        UserBalanceStrategy(),
        TransferFeeStrategy(),
        ExcludeRouterStrategy(),
        FallbackSourcesStrategy(),
        ExternalLiquidityStrategy(),
        ExhaustedRevertStrategy(),
        FriendlyMessageStrategy(),
    ]


class RetryCascade:
    """Ordered evaluation of cascade strategies."""

    def __init__(self, strategies: Optional[Sequence[CascadeStrategy]] = None):
        self.strategies = list(strategies) if strategies is not None else default_strategies()

    def decide(self, ctx: CascadeContext) -> CascadeDecision:
        if ctx.revert is None:
            ctx.revert = decode_error(ctx.error)

        for strategy in self.strategies:
            if strategy.guard(ctx):
                decision = strategy.decide(ctx)
                logger.info(
                    "Retry cascade chose %s (%s)",
                    strategy.name,
                    decision.action.value,
                    extra={"ratio_bps": ctx.ratio_bps, "error": str(ctx.error)[:200]},
                )
                return decision

        # FriendlyMessageStrategy always matches when the default list is used
        return CascadeDecision(
            action=CascadeAction.TERMINATE,
            status=StatusMessage(type="error", message=get_friendly_error_message(ctx.error)),
            reset=True,
        )
