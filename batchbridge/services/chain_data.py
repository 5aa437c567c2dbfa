"""
Read-only chain queries: balances, allowances, code, and transfer-fee probes.

Every ERC-20 read is batched through Multicall3 with per-call failure
tolerance, so one broken token never aborts the batch.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

from eth_abi import decode, encode
from eth_abi.exceptions import DecodingError
from eth_utils import to_checksum_address

from ..cache import BoundedCache
from ..config import settings
from ..core.chains import NATIVE_PLACEHOLDER
from ..core.models import WalletMode
from ..providers.rpc import CallResult, JsonRpcClient, function_selector

logger = logging.getLogger(__name__)

BALANCE_OF_SELECTOR = function_selector("balanceOf(address)")
ALLOWANCE_SELECTOR = function_selector("allowance(address,address)")

TRANSFER_FEE_FUNCTIONS = (
    "transferFee",
    "transferFeeBps",
    "transferFeeBP",
    "transferFeeBasisPoints",
)
TRANSFER_FEE_SELECTORS = tuple(function_selector(f"{name}()") for name in TRANSFER_FEE_FUNCTIONS)

# chain id -> lowercase token -> fee in bps
KNOWN_TRANSFER_FEE_TOKENS: Dict[int, Dict[str, int]] = {
    8453: {
        "0xfb42da273158b0f642f59f2ba7cc1d5457481677": 125,
    },
}

SMART_WALLET_CAPABILITIES = ("atomicBatch", "paymasterService", "auxiliaryFunds", "sessionKeys")
EIP7702_DELEGATION_PREFIX = "0xef01"


def _decode_uint(result: CallResult) -> Optional[int]:
    if not result.success:
        return None
    try:
        (value,) = decode(["uint256"], result.return_data)
    except (DecodingError, ValueError, TypeError):
        return None
    return int(value)


def _capability_supported(capabilities: Dict[str, Any], name: str) -> bool:
    entry = capabilities.get(name)
    return bool(entry.get("supported")) if isinstance(entry, dict) else False


def has_smart_wallet_capabilities(capabilities: Optional[Dict[str, Any]]) -> bool:
    if not isinstance(capabilities, dict):
        return False
    return any(_capability_supported(capabilities, name) for name in SMART_WALLET_CAPABILITIES)


class ChainDataClient:
    """Batched on-chain reads for one process, with a transfer-fee cache."""

    def __init__(
        self,
        rpc: Optional[JsonRpcClient] = None,
        *,
        fee_cache: Optional[BoundedCache] = None,
    ) -> None:
        self.rpc = rpc or JsonRpcClient()
        self.fee_cache = fee_cache if fee_cache is not None else BoundedCache(settings.transfer_fee_cache_size)

    # ------------------------------------------------------------------
    # Balances and allowances
    # ------------------------------------------------------------------

    async def get_balances(
        self,
        chain_id: int,
        owner: str,
        tokens: Sequence[str],
    ) -> Dict[str, Optional[int]]:
        """Balance of ``owner`` for each token, keyed by lowercase address.

        A failed read maps to ``None`` (unknown). If the multicall itself
        fails every token is unknown.
        """
        balances: Dict[str, Optional[int]] = {}
        erc20 = [t for t in tokens if t and t.lower() != NATIVE_PLACEHOLDER]
        native = [t for t in tokens if t and t.lower() == NATIVE_PLACEHOLDER]

        if erc20:
            owner_arg = encode(["address"], [to_checksum_address(owner)])
            calls = [(token, BALANCE_OF_SELECTOR + owner_arg) for token in erc20]
            try:
                results = await self.rpc.multicall(chain_id, calls)
            except Exception as exc:
                logger.warning("balanceOf multicall failed on chain %s: %s", chain_id, exc)
                results = [CallResult(False, b"")] * len(erc20)
            for token, result in zip(erc20, results):
                balances[token.lower()] = _decode_uint(result)

        if native:
            try:
                balances[NATIVE_PLACEHOLDER] = await self.get_native_balance(chain_id, owner)
            except Exception as exc:
                logger.warning("Native balance read failed on chain %s: %s", chain_id, exc)
                balances[NATIVE_PLACEHOLDER] = None

        return balances

    async def get_allowances(
        self,
        chain_id: int,
        owner: str,
        targets: Sequence[Tuple[str, str]],
    ) -> List[int]:
        """Allowances for ``(token, spender)`` pairs; a failed read counts as zero."""
        if not targets:
            return []
        owner_checksum = to_checksum_address(owner)
        calls = []
        for token, spender in targets:
            args = encode(["address", "address"], [owner_checksum, to_checksum_address(spender)])
            calls.append((token, ALLOWANCE_SELECTOR + args))
        try:
            results = await self.rpc.multicall(chain_id, calls)
        except Exception as exc:
            logger.warning("allowance multicall failed on chain %s: %s", chain_id, exc)
            return [0] * len(targets)
        return [_decode_uint(result) or 0 for result in results]

    async def get_allowance(self, chain_id: int, token: str, owner: str, spender: str) -> int:
        if not spender:
            return 0
        (allowance,) = await self.get_allowances(chain_id, owner, [(token, spender)])
        return allowance

    async def get_native_balance(self, chain_id: int, address: str) -> int:
        return await self.rpc.get_balance(chain_id, address)

    async def get_code(self, chain_id: int, address: str) -> str:
        return await self.rpc.get_code(chain_id, address)

    async def get_transaction_count(self, chain_id: int, address: str) -> int:
        return await self.rpc.get_transaction_count(chain_id, address)

    # ------------------------------------------------------------------
    # Transfer-fee detection
    # ------------------------------------------------------------------

    @staticmethod
    def _fee_key(chain_id: int, address: str) -> str:
        return f"{int(chain_id)}-{address.lower()}"

    async def probe_transfer_fee(self, chain_id: int, tokens: Iterable[str]) -> Dict[str, bool]:
        """Whether each token charges a transfer fee, keyed by lowercase address.

        Checks the zero address, then the cache, then the known-fee table, and
        probes the rest with one multicall over every fee accessor. Results
        are cached; a failed batch records every probed token as fee-free.
        """
        results: Dict[str, bool] = {}
        uncached: List[str] = []

        for token in tokens:
            if not token:
                continue
            address = token.lower()
            if address == NATIVE_PLACEHOLDER:
                results[address] = False
                continue
            key = self._fee_key(chain_id, address)
            if key in self.fee_cache:
                results[address] = self.fee_cache.get(key)
                continue
            known_fee = KNOWN_TRANSFER_FEE_TOKENS.get(int(chain_id), {}).get(address)
            if known_fee is not None:
                is_fee = known_fee > 0
                self.fee_cache.set(key, is_fee)
                results[address] = is_fee
                continue
            if address not in uncached:
                uncached.append(address)

        if not uncached:
            return results

        calls = [(address, selector) for address in uncached for selector in TRANSFER_FEE_SELECTORS]
        try:
            call_results = await self.rpc.multicall(chain_id, calls)
        except Exception as exc:
            logger.debug("Transfer-fee probe failed on chain %s, assuming no fees: %s", chain_id, exc)
            for address in uncached:
                self.fee_cache.set(self._fee_key(chain_id, address), False)
                results[address] = False
            return results

        per_token = len(TRANSFER_FEE_SELECTORS)
        for index, address in enumerate(uncached):
            window = call_results[index * per_token:(index + 1) * per_token]
            is_fee = any((_decode_uint(r) or 0) > 0 for r in window)
            if is_fee:
                logger.info("Transfer-fee token detected: %s on chain %s", address, chain_id)
            self.fee_cache.set(self._fee_key(chain_id, address), is_fee)
            results[address] = is_fee

        return results

    async def detect_transfer_fee(self, chain_id: int, token: str) -> bool:
        if not token:
            return False
        results = await self.probe_transfer_fee(chain_id, [token])
        return results.get(token.lower(), False)

    # ------------------------------------------------------------------
    # Wallet mode
    # ------------------------------------------------------------------

    async def resolve_wallet_mode(
        self,
        chain_id: int,
        owner: str,
        wallet: Any = None,
    ) -> WalletMode:
        """Decide whether deposits must be explicit and whether atomic batching is available.

        ``wallet`` is an optional wallet client exposing ``get_capabilities``.
        Any read failure falls back to an explicit deposit.
        """
        if not owner or not chain_id:
            return WalletMode()

        smart_capabilities = False
        supports_atomic_batch = True
        capabilities_checked = False

        get_capabilities = getattr(wallet, "get_capabilities", None)
        if get_capabilities is not None:
            account = getattr(wallet, "account", None) or owner
            try:
                capabilities = await get_capabilities(account, int(chain_id))
                capabilities_checked = True
                smart_capabilities = has_smart_wallet_capabilities(capabilities)
                if isinstance(capabilities, dict) and "atomicBatch" in capabilities:
                    supports_atomic_batch = _capability_supported(capabilities, "atomicBatch")
            except Exception as exc:
                logger.debug("Capability negotiation failed for %s: %s", owner, exc)

        try:
            code, native_balance, tx_count = await asyncio.gather(
                self.get_code(chain_id, owner),
                self.get_native_balance(chain_id, owner),
                self.get_transaction_count(chain_id, owner),
            )
        except Exception as exc:
            logger.warning("Wallet mode reads failed for %s on chain %s: %s", owner, chain_id, exc)
            return WalletMode(
                explicit_deposit=True,
                supports_atomic_batch=supports_atomic_batch,
                is_smart_wallet=smart_capabilities,
                is_eip7702_delegated=False,
                has_smart_wallet_capabilities=smart_capabilities,
            )

        normalized = code.lower() if isinstance(code, str) else ""
        has_code = bool(normalized) and normalized != "0x"
        delegated = normalized.startswith(EIP7702_DELEGATION_PREFIX)

        explicit_deposit = True
        if not has_code and not delegated and (not capabilities_checked or not smart_capabilities):
            explicit_deposit = False
        # new-wallet heuristic
        if native_balance == 0 or tx_count <= 1:
            explicit_deposit = True

        return WalletMode(
            explicit_deposit=explicit_deposit,
            supports_atomic_batch=supports_atomic_batch,
            is_smart_wallet=smart_capabilities or has_code or delegated,
            is_eip7702_delegated=delegated,
            has_smart_wallet_capabilities=smart_capabilities,
        )
