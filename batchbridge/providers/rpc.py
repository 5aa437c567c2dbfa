"""JSON-RPC transport with Multicall3 batching."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional, Sequence, Tuple

import httpx
from eth_abi import decode, encode
from eth_utils import keccak, to_checksum_address

from ..config import settings
from ..core.chains import MULTICALL3_ADDRESS, rpc_url_for

logger = logging.getLogger(__name__)


def function_selector(signature: str) -> bytes:
    """First four bytes of ``keccak(signature)``."""
    return keccak(text=signature)[:4]


AGGREGATE3_SELECTOR = function_selector("aggregate3((address,bool,bytes)[])")


@dataclass
class CallResult:
    success: bool
    return_data: bytes


class RpcError(Exception):
    """The node answered with a JSON-RPC error object."""

    def __init__(self, message: str, code: Optional[int] = None, data: Any = None):
        super().__init__(message)
        self.code = code
        self.data = data


class JsonRpcClient:
    """Minimal async JSON-RPC client, one endpoint per chain."""

    def __init__(
        self,
        rpc_urls: Optional[Dict[int, str]] = None,
        *,
        alchemy_api_key: Optional[str] = None,
        timeout_s: Optional[float] = None,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self._rpc_urls = dict(rpc_urls or {})
        self._alchemy_api_key = settings.alchemy_api_key if alchemy_api_key is None else alchemy_api_key
        self._client = client or httpx.AsyncClient(
            timeout=timeout_s if timeout_s is not None else settings.rpc_timeout_seconds
        )
        self._request_id = 0

    def rpc_url(self, chain_id: int) -> str:
        url = self._rpc_urls.get(int(chain_id)) or rpc_url_for(chain_id, self._alchemy_api_key)
        if not url:
            raise ValueError(f"No RPC URL configured for chain {chain_id}")
        return url

    async def close(self) -> None:
        await self._client.aclose()

    async def call(self, chain_id: int, method: str, params: List[Any]) -> Any:
        """Make an RPC call to the chain."""
        self._request_id += 1
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params,
            "id": self._request_id,
        }

        response = await self._client.post(self.rpc_url(chain_id), json=payload)
        response.raise_for_status()
        result = response.json()

        if "error" in result:
            err = result["error"] or {}
            raise RpcError(
                f"RPC error: {err.get('message', err)}",
                code=err.get("code"),
                data=err.get("data"),
            )

        return result.get("result")

    async def eth_call(self, chain_id: int, to: str, data: bytes) -> bytes:
        result = await self.call(chain_id, "eth_call", [{"to": to, "data": "0x" + data.hex()}, "latest"])
        return bytes.fromhex((result or "0x")[2:])

    async def multicall(self, chain_id: int, calls: Sequence[Tuple[str, bytes]]) -> List[CallResult]:
        """Run ``calls`` through Multicall3 ``aggregate3`` with ``allowFailure`` set on each.

        Individual failures come back as ``CallResult(success=False)``; only a
        failure of the whole batch raises.
        """
        if not calls:
            return []
        encoded_calls = [(to_checksum_address(target), True, calldata) for target, calldata in calls]
        data = AGGREGATE3_SELECTOR + encode(["(address,bool,bytes)[]"], [encoded_calls])
        raw = await self.eth_call(chain_id, MULTICALL3_ADDRESS, data)
        (results,) = decode(["(bool,bytes)[]"], raw)
        return [CallResult(success=bool(ok), return_data=bytes(ret)) for ok, ret in results]

    async def get_code(self, chain_id: int, address: str) -> str:
        return await self.call(chain_id, "eth_getCode", [address, "latest"]) or "0x"

    async def get_balance(self, chain_id: int, address: str) -> int:
        return int(await self.call(chain_id, "eth_getBalance", [address, "latest"]) or "0x0", 16)

    async def get_transaction_count(self, chain_id: int, address: str) -> int:
        return int(await self.call(chain_id, "eth_getTransactionCount", [address, "latest"]) or "0x0", 16)


__all__ = [
    "AGGREGATE3_SELECTOR",
    "CallResult",
    "JsonRpcClient",
    "RpcError",
    "function_selector",
]
