"""Shared fixtures and fakes for the batch bridge tests."""

from typing import Any, Dict, List, Optional

import httpx
import pytest

from batchbridge.core.execution.wallet import WalletError
from batchbridge.core.models import SelectionEntry, Token

OWNER = "0x50ac5cfcc81bb0872e85255d7079f8a529345d16"
SPENDER = "0xa5f565650890fba1824ee0f21ebbbf660a179934"

USDC_BASE = "0x833589fcd6edb6e08f4c7c32d4f71b54bda02913"
DAI_BASE = "0x50c5725949a6f0c72e6c4a641f24049a917db0cb"
AERO_BASE = "0x940181a94a35a4569e4529a3cdfb74e38fd98631"
USDC_ARB = "0xaf88d065e77c8cc2239327c5edb3a432268e5831"


def make_token(address: str, symbol: str, *, chain_id: int = 8453, decimals: int = 18,
               balance: int = 10 ** 18, value_usd: float = 1.0, **extra: Any) -> Token:
    return Token(chain_id=chain_id, address=address, symbol=symbol, decimals=decimals,
                 balance=balance, value_usd=value_usd, **extra)


def make_entry(token: Token, amount: Optional[int] = None) -> SelectionEntry:
    amount = token.balance if amount is None else amount
    return SelectionEntry(token=token, amount=amount, amount_input=str(amount))


def revert_payload(address: str, balance: int, needed: int) -> str:
    """ABI-encoded ERC20InsufficientBalance(address, uint256, uint256) revert data."""
    return (
        "0xe450d38c"
        + address[2:].lower().rjust(64, "0")
        + format(balance, "064x")
        + format(needed, "064x")
    )


def status_response(status: str, code: int = 200) -> httpx.Response:
    return httpx.Response(code, json={"status": status})


def raw_quote(
    *,
    steps: Optional[List[Dict[str, Any]]] = None,
    impact: str = "-0.5",
    amount_in_usd: str = "10.00",
    amount_out_usd: str = "9.90",
    amount_out: str = "9.9",
    router: Optional[str] = None,
    request_ids: Optional[List[str]] = None,
) -> Dict[str, Any]:
    details: Dict[str, Any] = {
        "operation": "swap",
        "currencyIn": {"amountUsd": amount_in_usd},
        "currencyOut": {
            "currency": {"symbol": "USDC", "address": USDC_ARB},
            "amountFormatted": amount_out,
            "amountUsd": amount_out_usd,
        },
        "totalImpact": {"percent": impact},
    }
    if router:
        details["route"] = {"origin": {"router": router}}
    return {
        "steps": steps if steps is not None else [],
        "fees": {"gas": {"amountUsd": "0.05"}, "relayer": {"amountUsd": "0.10"}},
        "details": details,
        "requestIds": request_ids or [],
    }


def tx_step(step_id: str, *, chain_id: int = 8453, to: str = SPENDER, data: str = "0xdeadbeef",
            request_id: Optional[str] = None, check: Optional[str] = None) -> Dict[str, Any]:
    item: Dict[str, Any] = {"status": "incomplete", "data": {"chainId": chain_id, "to": to, "data": data, "value": "0"}}
    if check:
        item["check"] = {"endpoint": check, "method": "GET"}
    step: Dict[str, Any] = {"id": step_id, "kind": "transaction", "items": [item]}
    if request_id:
        step["requestId"] = request_id
    return step


class FakeWallet:
    """In-memory wallet that records every call made to it."""

    def __init__(self, chain_id: int = 8453, account: str = OWNER,
                 send_calls_error: Optional[Exception] = None,
                 send_transaction_error: Optional[Exception] = None,
                 sign_error: Optional[Exception] = None):
        self.chain_id = chain_id
        self.account = account
        self.send_calls_error = send_calls_error
        self.send_transaction_error = send_transaction_error
        self.sign_error = sign_error
        self.events: List[tuple] = []
        self.capabilities: Dict[str, Any] = {}

    async def get_capabilities(self, account: str, chain_id: int) -> Dict[str, Any]:
        return self.capabilities

    async def switch_chain(self, chain_id: int) -> None:
        self.events.append(("switch_chain", chain_id))
        self.chain_id = chain_id

    async def sign_message(self, message: str, raw: bool = False) -> str:
        self.events.append(("sign_message", message, raw))
        if self.sign_error is not None:
            raise self.sign_error
        return "0xsig"

    async def sign_typed_data(self, domain, types, primary_type, message) -> str:
        self.events.append(("sign_typed_data", domain, primary_type))
        if self.sign_error is not None:
            raise self.sign_error
        return "0xtyped"

    async def send_calls(self, chain_id: int, calls: List[Dict[str, Any]]) -> str:
        self.events.append(("send_calls", chain_id, [c["to"] for c in calls]))
        if self.send_calls_error is not None:
            raise self.send_calls_error
        return "0xbatch"

    async def send_transaction(self, call: Dict[str, Any]) -> str:
        self.events.append(("send_transaction", call["to"]))
        if self.send_transaction_error is not None:
            raise self.send_transaction_error
        return "0xhash"


@pytest.fixture
def wallet() -> FakeWallet:
    return FakeWallet()


@pytest.fixture
def rejecting_wallet() -> FakeWallet:
    return FakeWallet(send_calls_error=WalletError("User rejected the request.", code=4001))
