"""Normalize Relay quote responses into ``Quote``/``Step`` objects."""

from __future__ import annotations

import re
from decimal import Decimal, InvalidOperation
from typing import Any, Dict, List, Optional

from ..models import (
    EmptyItem,
    PostTarget,
    Quote,
    QuoteDetails,
    QuoteKind,
    SignatureItem,
    SignPayload,
    Step,
    StepItem,
    StepKind,
    TransactionItem,
)

REQUEST_ID_RE = re.compile(r"requestId=([^&]+)")


def to_int(value: Any) -> Optional[int]:
    """Parse ints, decimal strings and 0x-hex strings; ``None`` when absent or malformed."""
    if value is None or value == "":
        return None
    if isinstance(value, bool):
        return int(value)
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value)
    text = str(value).strip()
    try:
        if text.lower().startswith("0x"):
            return int(text, 16)
        return int(Decimal(text))
    except (ValueError, InvalidOperation):
        return None


def to_decimal(value: Any) -> Optional[Decimal]:
    if value is None or value == "":
        return None
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        return None
    return result if result.is_finite() else None


def _check_endpoint(item: Dict[str, Any]) -> Optional[str]:
    check = item.get("check")
    if isinstance(check, dict):
        return check.get("endpoint") or None
    return None


def parse_sign_payload(sign: Any) -> Optional[SignPayload]:
    if not isinstance(sign, dict):
        return None
    return SignPayload(
        signature_kind=str(sign.get("signatureKind") or ""),
        message=sign.get("message"),
        domain=sign.get("domain"),
        types=sign.get("types"),
        primary_type=sign.get("primaryType"),
        value=sign.get("value"),
    )


def parse_post_target(post: Any) -> Optional[PostTarget]:
    if not isinstance(post, dict) or not post.get("endpoint"):
        return None
    return PostTarget(
        endpoint=post["endpoint"],
        method=str(post.get("method") or "POST"),
        body=post.get("body"),
    )


def parse_item(raw: Dict[str, Any], kind: StepKind) -> StepItem:
    data = raw.get("data")
    endpoint = _check_endpoint(raw)
    status = raw.get("status")

    if kind == StepKind.SIGNATURE:
        data = data if isinstance(data, dict) else {}
        return SignatureItem(
            sign=parse_sign_payload(data.get("sign")),
            post=parse_post_target(data.get("post")),
            check_endpoint=endpoint,
            status=status,
            raw=raw,
        )

    if not isinstance(data, dict) or not data:
        return EmptyItem(check_endpoint=endpoint, status=status, raw=raw)

    return TransactionItem(
        chain_id=to_int(data.get("chainId")),
        to=data.get("to") or "",
        data=data.get("data") or "0x",
        value=to_int(data.get("value")) or 0,
        gas=to_int(data.get("gas")),
        max_fee_per_gas=to_int(data.get("maxFeePerGas")),
        max_priority_fee_per_gas=to_int(data.get("maxPriorityFeePerGas")),
        check_endpoint=endpoint,
        status=status,
        raw=raw,
    )


def step_kind(raw: Dict[str, Any]) -> StepKind:
    """Declared kind, else signature when any item carries ``data.sign``, else transaction."""
    declared = raw.get("kind")
    if declared in (StepKind.SIGNATURE.value, StepKind.TRANSACTION.value):
        return StepKind(declared)
    for item in raw.get("items") or []:
        data = item.get("data") if isinstance(item, dict) else None
        if isinstance(data, dict) and data.get("sign"):
            return StepKind.SIGNATURE
    return StepKind.TRANSACTION


def parse_step(raw: Dict[str, Any]) -> Step:
    kind = step_kind(raw)
    items = [parse_item(item, kind) for item in raw.get("items") or [] if isinstance(item, dict)]
    return Step(
        id=str(raw.get("id") or ""),
        kind=kind,
        items=items,
        action=raw.get("action"),
        description=raw.get("description"),
        request_id=raw.get("requestId"),
        raw=raw,
    )


def parse_steps(raw_steps: Any) -> List[Step]:
    return [parse_step(step) for step in raw_steps or [] if isinstance(step, dict)]


def _router(details: Dict[str, Any]) -> Optional[str]:
    route = details.get("route") or {}
    for side in ("origin", "destination"):
        router = (route.get(side) or {}).get("router")
        if router:
            return str(router)
    return None


def parse_details(raw: Any) -> QuoteDetails:
    details = raw if isinstance(raw, dict) else {}
    impact = details.get("totalImpact") or {}
    return QuoteDetails(
        currency_in=details.get("currencyIn") or {},
        currency_out=details.get("currencyOut") or {},
        total_impact_percent=to_decimal(impact.get("percent")) if isinstance(impact, dict) else None,
        router=_router(details),
        operation=details.get("operation"),
    )


def parse_quote(raw: Dict[str, Any], kind: QuoteKind = QuoteKind.SINGLE) -> Quote:
    return Quote(
        kind=kind,
        steps=parse_steps(raw.get("steps")),
        fees=raw.get("fees") or {},
        details=parse_details(raw.get("details")),
        request_ids=[r for r in raw.get("requestIds") or [] if r],
        raw=raw,
    )


def collect_request_ids(steps: List[Step]) -> List[str]:
    """Step request ids plus ids embedded in item check endpoints, in first-seen order."""
    seen: Dict[str, None] = {}
    for step in steps:
        if step.request_id:
            seen.setdefault(step.request_id, None)
        for item in step.items:
            if item.check_endpoint:
                match = REQUEST_ID_RE.search(item.check_endpoint)
                if match:
                    seen.setdefault(match.group(1), None)
    return list(seen)


def step_to_dict(step: Step) -> Dict[str, Any]:
    if step.raw:
        return {**step.raw, "items": [item.raw for item in step.items]}
    return {"id": step.id, "kind": step.kind.value, "requestId": step.request_id, "items": []}


def quote_to_dict(quote: Quote) -> Dict[str, Any]:
    """JSON-ready view of a (possibly aggregated) quote."""
    details = quote.details
    payload: Dict[str, Any] = {
        "kind": quote.kind.value,
        "steps": [step_to_dict(step) for step in quote.steps],
        "fees": quote.fees,
        "feeSummary": quote.fee_summary(),
        "details": {
            **(quote.raw.get("details") or {}),
            "currencyIn": details.currency_in,
            "currencyOut": details.currency_out,
        },
        "requestIds": list(quote.request_ids),
        "validOrigins": [o.to_payload() for o in quote.valid_origins],
        "excludedHighImpact": [o.label for o in quote.excluded_high_impact],
        "failedOrigins": [o.label for o in quote.failed_origins],
    }
    if details.total_impact_percent is not None:
        payload["details"]["totalImpact"] = {
            **(payload["details"].get("totalImpact") or {}),
            "percent": str(details.total_impact_percent),
        }
    return payload
