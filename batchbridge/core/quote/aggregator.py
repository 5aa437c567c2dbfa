"""
Quote aggregation.

Turns a batch of selections into one of three quote shapes:

- a single quote when only one origin is left,
- an aggregated same-chain swap built client-side from per-origin quotes,
- a cross-chain multi-input quote that Relay aggregates server-side.

Origins whose quote errors or whose price impact is too high are dropped
along the way and reported back for user messaging.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Dict, List, Optional, Sequence, Tuple

from ...config import settings
from ...services.pricing import map_with_concurrency
from ..models import Origin, Quote, QuoteDetails, QuoteKind, QuoteParams, SelectionEntry
from ..recovery.errors import AggregationError
from .approvals import prune_approval_steps
from .parsing import collect_request_ids

logger = logging.getLogger(__name__)

SWAP_IMPACT_TOO_HIGH = "SWAP_IMPACT_TOO_HIGH"


def _fmt_threshold(value: float) -> str:
    return f"{value:g}"


def _sum_formatted(values: Sequence[Any]) -> Decimal:
    total = Decimal(0)
    for value in values:
        try:
            total += Decimal(str(value or 0))
        except Exception:  # noqa: BLE001
            continue
    return total


def build_quote_body(
    user: str,
    origin: Origin,
    destination_chain_id: int,
    destination_currency: str,
    params: QuoteParams,
    recipient: Optional[str] = None,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "user": user,
        "originChainId": int(origin.chain_id),
        "destinationChainId": int(destination_chain_id),
        "originCurrency": origin.currency,
        "destinationCurrency": destination_currency,
        "amount": str(origin.amount),
        "recipient": recipient or user,
        "tradeType": "EXACT_INPUT",
        "useDepositAddress": False,
        "topupGas": False,
        "explicitDeposit": params.explicit_deposit,
    }
    if params.slippage_bps is not None:
        body["slippageTolerance"] = str(params.slippage_bps)
    if params.included_swap_sources:
        body["includedSwapSources"] = list(params.included_swap_sources)
    if params.excluded_swap_sources:
        body["excludedSwapSources"] = list(params.excluded_swap_sources)
    if params.use_fallbacks:
        body["useFallbacks"] = True
    if params.use_external_liquidity:
        body["useExternalLiquidity"] = True
    if params.use_permit:
        body["usePermit"] = True
    return body


def build_multi_input_body(
    user: str,
    origins: Sequence[Origin],
    destination_chain_id: int,
    destination_currency: str,
    params: QuoteParams,
    recipient: Optional[str] = None,
    partial: bool = False,
) -> Dict[str, Any]:
    body: Dict[str, Any] = {
        "user": user,
        "origins": [origin.to_payload() for origin in origins],
        "destinationChainId": int(destination_chain_id),
        "destinationCurrency": destination_currency,
        "recipient": recipient or user,
        "tradeType": "EXACT_INPUT",
        "useDepositAddress": False,
        "topupGas": False,
        "explicitDeposit": params.explicit_deposit,
    }
    if params.slippage_bps is not None:
        body["slippageTolerance"] = str(params.slippage_bps)
    if params.use_fallbacks:
        body["useFallbacks"] = True
    if params.use_external_liquidity:
        body["useExternalLiquidity"] = True
    if partial:
        body["partial"] = True
    return body


def exclusion_message(high_impact: Sequence[Origin], failed: Sequence[Origin]) -> Optional[str]:
    """User warning listing origins dropped from the batch."""
    if not high_impact and not failed:
        return None
    message = ""
    if high_impact:
        message += f"⚠️ Skipped {', '.join(o.label for o in high_impact)} due to high price impact. "
    if failed:
        message += f"⚠️ Skipped {', '.join(o.label for o in failed)} due to unsupported route."
    if not message.strip():
        labels = [o.label for o in [*high_impact, *failed]]
        message = f"⚠️ Skipped {', '.join(labels)} due to routing constraints."
    return message.strip()


@dataclass
class QuoteOutcome:
    """What the session needs to know after a quote attempt."""

    quote: Optional[Quote] = None
    single_mode: bool = False
    excluded_high_impact: List[Origin] = field(default_factory=list)
    failed_origins: List[Origin] = field(default_factory=list)
    warning: Optional[str] = None
    error: Optional[str] = None

    @property
    def excluded_origins(self) -> List[Origin]:
        return [*self.excluded_high_impact, *self.failed_origins]


class QuoteAggregator:
    def __init__(
        self,
        pricing,
        chain_data=None,
        *,
        max_price_impact: Optional[float] = None,
        max_concurrency: Optional[int] = None,
    ) -> None:
        self.pricing = pricing
        self.chain_data = chain_data
        self.max_price_impact = Decimal(str(
            max_price_impact if max_price_impact is not None else settings.max_price_impact_percent
        ))
        self.max_concurrency = max_concurrency or settings.max_concurrent_requests

    def exceeds_impact(self, quote: Quote) -> bool:
        return quote.details.impact_magnitude > self.max_price_impact

    # ------------------------------------------------------------------
    # Per-origin aggregation
    # ------------------------------------------------------------------

    async def _quote_origin(self, body: Dict[str, Any], origin: Origin) -> Tuple[Origin, Optional[Quote], Optional[Exception]]:
        try:
            return origin, await self.pricing.quote(body), None
        except Exception as exc:
            logger.info("Quote for %s failed: %s", origin.label, exc)
            return origin, None, exc

    async def aggregate_swap(
        self,
        user: str,
        origins: Sequence[Origin],
        destination_chain_id: int,
        destination_currency: str,
        params: QuoteParams,
        recipient: Optional[str] = None,
    ) -> Quote:
        """Quote every origin on its own and merge the survivors into one composite quote.

        Raises ``AggregationError`` when nothing survives.
        """
        results = await map_with_concurrency(
            list(origins),
            self.max_concurrency,
            lambda origin: self._quote_origin(
                build_quote_body(user, origin, destination_chain_id, destination_currency, params, recipient),
                origin,
            ),
        )

        high_impact: List[Origin] = []
        failed: List[Origin] = []
        valid: List[Tuple[Origin, Quote]] = []
        succeeded = 0

        for origin, quote, error in results:
            if error is not None:
                code = getattr(error, "error_code", None) or getattr(error, "code", None)
                (high_impact if code == SWAP_IMPACT_TOO_HIGH else failed).append(origin)
                continue
            succeeded += 1
            if self.exceeds_impact(quote):
                high_impact.append(origin)
            else:
                valid.append((origin, quote))

        if succeeded == 0:
            raise AggregationError("All quote requests failed", high_impact=high_impact, failed=failed)
        if not valid:
            raise AggregationError(
                f"All tokens have high price impact (>{_fmt_threshold(float(self.max_price_impact))}%). "
                "Try smaller amounts or different tokens.",
                high_impact=high_impact,
                failed=failed,
            )

        steps = [step for _, quote in valid for step in quote.steps]
        total_in = sum((q.details.amount_in_usd for _, q in valid), Decimal(0))
        total_out = sum((q.details.amount_out_usd for _, q in valid), Decimal(0))
        formatted_out = _sum_formatted([q.details.currency_out.get("amountFormatted") for _, q in valid])
        first = valid[0][1]

        details = QuoteDetails(
            currency_in={"amountUsd": f"{total_in:.2f}"},
            currency_out={
                "currency": first.details.currency_out.get("currency"),
                "amountFormatted": f"{formatted_out:.6f}",
                "amountUsd": f"{total_out:.2f}",
            },
            operation="aggregated_swap",
        )
        return Quote(
            kind=QuoteKind.AGGREGATED_SWAP,
            steps=steps,
            fees={"gas": first.fees.get("gas"), "relayer": first.fees.get("relayer")},
            details=details,
            request_ids=collect_request_ids(steps),
            valid_origins=[origin for origin, _ in valid],
            excluded_high_impact=high_impact,
            failed_origins=failed,
            raw={"details": {"operation": "aggregated_swap"}},
        )

    # ------------------------------------------------------------------
    # Decision procedure
    # ------------------------------------------------------------------

    async def quote(
        self,
        user: str,
        entries: Sequence[SelectionEntry],
        source_chain_id: int,
        destination_chain_id: int,
        destination_currency: str,
        params: QuoteParams,
    ) -> QuoteOutcome:
        """Quote the positive-amount ``entries`` towards ``destination_currency``.

        Relay errors propagate; policy rejections come back as
        ``QuoteOutcome.error``.
        """
        origins = [
            Origin(
                chain_id=int(entry.token.chain_id or source_chain_id),
                currency=entry.token.address,
                amount=entry.amount,
                symbol=entry.token.symbol,
            )
            for entry in entries
            if entry.amount > 0
        ]
        if not origins:
            return QuoteOutcome(error="Enter an amount greater than 0")

        outcome = QuoteOutcome()
        if len(origins) == 1:
            outcome.single_mode = True
            outcome.quote = await self.pricing.quote(
                build_quote_body(user, origins[0], destination_chain_id, destination_currency, params)
            )
        else:
            try:
                aggregated = await self.aggregate_swap(
                    user, origins, destination_chain_id, destination_currency, params
                )
            except AggregationError as exc:
                if source_chain_id != destination_chain_id and "high price impact" in exc.message:
                    return QuoteOutcome(
                        excluded_high_impact=exc.high_impact,
                        failed_origins=exc.failed,
                        error=f"All selected tokens exceeded {_fmt_threshold(float(self.max_price_impact))}% "
                              "price impact. Try smaller amounts or different tokens.",
                    )
                raise

            outcome.excluded_high_impact = aggregated.excluded_high_impact
            outcome.failed_origins = aggregated.failed_origins
            survivors = aggregated.valid_origins

            if len(survivors) == 1:
                outcome.single_mode = True
                outcome.quote = await self.pricing.quote(
                    build_quote_body(user, survivors[0], destination_chain_id, destination_currency, params)
                )
            elif source_chain_id == destination_chain_id:
                outcome.quote = aggregated
            else:
                multi = await self.pricing.multi_input_quote(
                    build_multi_input_body(user, survivors, destination_chain_id, destination_currency, params)
                )
                multi.valid_origins = list(survivors)
                multi.excluded_high_impact = list(aggregated.excluded_high_impact)
                multi.failed_origins = list(aggregated.failed_origins)
                outcome.quote = multi

        outcome.warning = exclusion_message(outcome.excluded_high_impact, outcome.failed_origins)

        if outcome.single_mode and self.exceeds_impact(outcome.quote):
            impact = outcome.quote.details.impact_magnitude
            outcome.error = (
                f"Price impact {impact:.1f}% exceeds {_fmt_threshold(float(self.max_price_impact))}%. "
                "Reduce the amount or choose another token."
            )
            outcome.quote = None
            return outcome

        if self.chain_data is not None:
            try:
                outcome.quote = await prune_approval_steps(
                    outcome.quote, user, self.chain_data, default_chain=source_chain_id
                )
            except Exception as exc:
                logger.warning("Approval pruning failed, keeping all approvals: %s", exc)

        return outcome


__all__ = [
    "QuoteAggregator",
    "QuoteOutcome",
    "build_quote_body",
    "build_multi_input_body",
    "exclusion_message",
]
