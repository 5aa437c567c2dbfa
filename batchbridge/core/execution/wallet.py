"""
Wallet boundary.

The engine never holds keys. It drives whatever wallet the caller connects
through this protocol: switch chains, sign messages, and submit calls either
atomically (EIP-5792 ``wallet_sendCalls``) or one by one.
"""

from typing import Any, Dict, List, Optional, Protocol, runtime_checkable


class WalletError(Exception):
    """Raised by wallet adapters; ``code`` follows EIP-1193 (4001 = user rejected)."""

    def __init__(self, message: str, code: Optional[Any] = None, data: Any = None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.data = data


@runtime_checkable
class WalletClient(Protocol):
    @property
    def chain_id(self) -> int:
        ...

    @property
    def account(self) -> str:
        ...

    async def get_capabilities(self, account: str, chain_id: int) -> Dict[str, Any]:
        ...

    async def switch_chain(self, chain_id: int) -> None:
        ...

    async def sign_message(self, message: str, raw: bool = False) -> str:
        """Personal-sign ``message``; ``raw`` means it is hex bytes, not text."""
        ...

    async def sign_typed_data(
        self,
        domain: Dict[str, Any],
        types: Dict[str, Any],
        primary_type: str,
        message: Dict[str, Any],
    ) -> str:
        ...

    async def send_calls(self, chain_id: int, calls: List[Dict[str, Any]]) -> Any:
        ...

    async def send_transaction(self, call: Dict[str, Any]) -> Any:
        ...


def normalize_typed_data_domain(domain: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Copy of ``domain`` with a string ``chainId`` (hex or decimal) turned into an int."""
    normalized = dict(domain or {})
    chain_id = normalized.get("chainId")
    if isinstance(chain_id, str):
        text = chain_id.strip()
        try:
            normalized["chainId"] = int(text, 16) if text.lower().startswith("0x") else int(text)
        except ValueError:
            pass
    return normalized


def is_hex_message(message: Any) -> bool:
    if not isinstance(message, str) or not message.startswith("0x"):
        return False
    try:
        int(message[2:] or "0", 16)
    except ValueError:
        return False
    return True
