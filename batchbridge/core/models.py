"""
Data model for batch bridging: tokens, selections, quotes and their steps.
"""

from __future__ import annotations

from dataclasses import dataclass, field, replace
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .chains import token_key


@dataclass
class Token:
    """An ERC-20 (or native) token on one chain, optionally with a wallet balance."""

    chain_id: int
    address: str
    symbol: str
    name: str = ""
    decimals: int = 18
    balance: int = 0
    value_usd: float = 0.0
    price: float = 0.0
    route_available: Optional[bool] = None
    blocked_reason: Optional[str] = None
    logo: Optional[str] = None
    verified: bool = False
    is_custom: bool = False

    @property
    def key(self) -> str:
        return token_key(self.chain_id, self.address)

    @property
    def label(self) -> str:
        return self.symbol or self.address[:10]

    def with_updates(self, **changes: Any) -> "Token":
        return replace(self, **changes)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chainId": self.chain_id,
            "address": self.address,
            "symbol": self.symbol,
            "name": self.name,
            "decimals": self.decimals,
            "balance": str(self.balance),
            "valueUsd": self.value_usd,
            "price": self.price,
            "routeAvailable": self.route_available,
            "blockedReason": self.blocked_reason,
            "logo": self.logo,
            "verified": self.verified,
            "isCustom": self.is_custom,
        }


@dataclass
class SelectionEntry:
    """A token chosen for the batch together with the amount to move."""

    token: Token
    amount: int
    amount_input: str


@dataclass
class Origin:
    """One (chain, currency, amount) input of a quote request."""

    chain_id: int
    currency: str
    amount: int
    symbol: Optional[str] = None

    @property
    def label(self) -> str:
        return self.symbol or self.currency[:10]

    def to_payload(self) -> Dict[str, Any]:
        return {"chainId": int(self.chain_id), "currency": self.currency, "amount": str(self.amount)}


@dataclass
class QuoteParams:
    """Aggregator knobs that the retry cascade is allowed to loosen."""

    slippage_bps: Optional[int] = None
    excluded_swap_sources: List[str] = field(default_factory=list)
    use_fallbacks: bool = False
    use_external_liquidity: bool = False
    explicit_deposit: bool = True
    included_swap_sources: List[str] = field(default_factory=list)
    use_permit: bool = False

    def copy(self, **changes: Any) -> "QuoteParams":
        params = replace(
            self,
            excluded_swap_sources=list(self.excluded_swap_sources),
            included_swap_sources=list(self.included_swap_sources),
        )
        return replace(params, **changes) if changes else params

    def reset_routing(self) -> None:
        self.excluded_swap_sources = []
        self.use_fallbacks = False
        self.use_external_liquidity = False


@dataclass
class WalletMode:
    explicit_deposit: bool = True
    supports_atomic_batch: bool = True
    is_smart_wallet: bool = False
    is_eip7702_delegated: bool = False
    has_smart_wallet_capabilities: bool = False


@dataclass
class RouteCheck:
    available: bool
    data: Optional[Dict[str, Any]] = None
    reason: Optional[str] = None


class StepKind(str, Enum):
    SIGNATURE = "signature"
    TRANSACTION = "transaction"


class QuoteKind(str, Enum):
    SINGLE = "single"
    AGGREGATED_SWAP = "aggregated_swap"
    MULTI_INPUT = "multi_input"


@dataclass
class SignPayload:
    signature_kind: str
    message: Any = None
    domain: Optional[Dict[str, Any]] = None
    types: Optional[Dict[str, Any]] = None
    primary_type: Optional[str] = None
    value: Any = None


@dataclass
class PostTarget:
    endpoint: str
    method: str = "POST"
    body: Optional[Dict[str, Any]] = None


@dataclass
class TransactionItem:
    chain_id: Optional[int]
    to: str
    data: str = "0x"
    value: int = 0
    gas: Optional[int] = None
    max_fee_per_gas: Optional[int] = None
    max_priority_fee_per_gas: Optional[int] = None
    check_endpoint: Optional[str] = None
    status: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    def to_call(self) -> Dict[str, Any]:
        call: Dict[str, Any] = {"to": self.to, "data": self.data, "value": self.value}
        if self.gas is not None:
            call["gas"] = self.gas
        if self.max_fee_per_gas is not None:
            call["maxFeePerGas"] = self.max_fee_per_gas
        if self.max_priority_fee_per_gas is not None:
            call["maxPriorityFeePerGas"] = self.max_priority_fee_per_gas
        return call


@dataclass
class SignatureItem:
    sign: Optional[SignPayload]
    post: Optional[PostTarget]
    check_endpoint: Optional[str] = None
    status: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


@dataclass
class EmptyItem:
    """An item that carries neither a call nor a signature request."""

    check_endpoint: Optional[str] = None
    status: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)


StepItem = Union[TransactionItem, SignatureItem, EmptyItem]


@dataclass
class Step:
    id: str
    kind: StepKind
    items: List[StepItem] = field(default_factory=list)
    action: Optional[str] = None
    description: Optional[str] = None
    request_id: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_approval(self) -> bool:
        return self.id in ("approve", "approval")


@dataclass
class QuoteDetails:
    currency_in: Dict[str, Any] = field(default_factory=dict)
    currency_out: Dict[str, Any] = field(default_factory=dict)
    total_impact_percent: Optional[Decimal] = None
    router: Optional[str] = None
    operation: Optional[str] = None

    @property
    def amount_in_usd(self) -> Decimal:
        return _decimal_or_zero(self.currency_in.get("amountUsd"))

    @property
    def amount_out_usd(self) -> Decimal:
        return _decimal_or_zero(self.currency_out.get("amountUsd"))

    @property
    def impact_magnitude(self) -> Decimal:
        return abs(self.total_impact_percent) if self.total_impact_percent is not None else Decimal(0)


@dataclass
class Quote:
    kind: QuoteKind
    steps: List[Step] = field(default_factory=list)
    fees: Dict[str, Any] = field(default_factory=dict)
    details: QuoteDetails = field(default_factory=QuoteDetails)
    request_ids: List[str] = field(default_factory=list)
    valid_origins: List[Origin] = field(default_factory=list)
    excluded_high_impact: List[Origin] = field(default_factory=list)
    failed_origins: List[Origin] = field(default_factory=list)
    raw: Dict[str, Any] = field(default_factory=dict)

    @property
    def excluded_origins(self) -> List[Origin]:
        return [*self.excluded_high_impact, *self.failed_origins]

    def fee_summary(self) -> Dict[str, str]:
        gas = _decimal_or_zero((self.fees.get("gas") or {}).get("amountUsd"))
        relayer = _decimal_or_zero((self.fees.get("relayer") or {}).get("amountUsd"))
        return {
            "gas": str(gas),
            "relay": str(relayer),
            "total": str((gas + relayer).quantize(Decimal("0.01"))),
        }


@dataclass
class StatusMessage:
    type: str = ""
    message: str = ""


def _decimal_or_zero(value: Any) -> Decimal:
    if value in (None, ""):
        return Decimal(0)
    try:
        result = Decimal(str(value))
    except Exception:  # noqa: BLE001
        return Decimal(0)
    return result if result.is_finite() else Decimal(0)


__all__ = [
    "Token",
    "SelectionEntry",
    "Origin",
    "QuoteParams",
    "WalletMode",
    "RouteCheck",
    "StepKind",
    "QuoteKind",
    "SignPayload",
    "PostTarget",
    "TransactionItem",
    "SignatureItem",
    "EmptyItem",
    "StepItem",
    "Step",
    "QuoteDetails",
    "Quote",
    "StatusMessage",
]
