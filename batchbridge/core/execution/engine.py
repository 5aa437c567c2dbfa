"""
Execution engine for Relay quotes.

Walks a quote's steps in order:
- Signature steps are signed and posted back to Relay. Relay may answer
  with further steps, which are spliced in right after the current one.
- Transaction steps are queued and flushed per chain, atomically when the
  wallet supports ``wallet_sendCalls`` and one by one otherwise.
- Recorded check endpoints are polled until settlement.

Failures propagate to the caller, which owns the retry cascade.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..chains import chain_name
from ..models import Quote, SignatureItem, SignPayload, StatusMessage, Step, StepKind, TransactionItem
from ..quote.parsing import parse_steps
from ..recovery.errors import ExecutionError, deep_error_text, is_user_rejection
from .settlement import PollResult, poll_all, summarize_results
from .wallet import WalletClient, is_hex_message, normalize_typed_data_domain

logger = logging.getLogger(__name__)

ATOMIC_UNSUPPORTED_HINTS = ("not supported", "unsupported", "sendcalls", "atomicbatch")


class ExecutionState(str, Enum):
    """Execution lifecycle reported through the progress callback."""

    IDLE = "idle"
    PREPARING = "preparing"
    SWITCHING_CHAIN = "switching_chain"
    SIGNING = "signing"
    CONFIRMING = "confirming"
    POLLING = "polling"
    COMPLETE = "complete"
    FAILED = "failed"


ProgressCallback = Callable[[ExecutionState, str], None]


@dataclass
class ExecutionResult:
    """Outcome of one execution run."""

    status: StatusMessage
    endpoints: List[str] = field(default_factory=list)
    poll_results: List[PollResult] = field(default_factory=list)
    submitted_batches: int = 0
    used_sequential_fallback: bool = False

    @property
    def success(self) -> bool:
        return self.status.type == "success"

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "status": {"type": self.status.type, "message": self.status.message},
            "endpoints": list(self.endpoints),
            "pollResults": [
                {"endpoint": r.endpoint, "success": r.success, "status": r.status, "error": r.error}
                for r in self.poll_results
            ],
            "submittedBatches": self.submitted_batches,
            "usedSequentialFallback": self.used_sequential_fallback,
        }


def request_id_endpoint(request_id: str) -> str:
    return f"/intents/status/v3?requestId={request_id}"


def atomic_batch_unsupported(error: Exception) -> bool:
    text = deep_error_text(error)
    return any(hint in text for hint in ATOMIC_UNSUPPORTED_HINTS)


class ExecutionEngine:
    """Runs one quote against one connected wallet."""

    def __init__(
        self,
        wallet: WalletClient,
        pricing,
        *,
        source_chain_id: int,
        supports_atomic_batch: bool = True,
        progress: Optional[ProgressCallback] = None,
        poll_attempts: Optional[int] = None,
        poll_interval_s: Optional[float] = None,
    ):
        self.wallet = wallet
        self.pricing = pricing
        self.source_chain_id = int(source_chain_id)
        self.supports_atomic_batch = supports_atomic_batch
        self.progress = progress
        self.poll_attempts = poll_attempts
        self.poll_interval_s = poll_interval_s

        self.state = ExecutionState.IDLE
        self._active_chain_id: Optional[int] = None
        self._pending_calls: List[Dict[str, Any]] = []
        self._pending_chain_id: Optional[int] = None
        self._endpoints: Dict[str, None] = {}
        self._batches = 0
        self._fell_back = False

    def _report(self, state: ExecutionState, message: str) -> None:
        self.state = state
        logger.debug("Execution %s: %s", state.value, message)
        if self.progress is not None:
            self.progress(state, message)

    def _record(self, endpoint: Optional[str]) -> None:
        if endpoint:
            self._endpoints.setdefault(endpoint, None)

    # ------------------------------------------------------------------
    # Signing
    # ------------------------------------------------------------------

    async def sign_payload(self, payload: Optional[SignPayload]) -> str:
        if payload is None:
            raise ExecutionError("Missing signature payload")

        kind = payload.signature_kind.lower()
        if kind == "eip191":
            message = payload.message
            if not message:
                raise ExecutionError("Missing message to sign")
            if is_hex_message(message):
                return await self.wallet.sign_message(message, raw=True)
            return await self.wallet.sign_message(str(message))

        if kind == "eip712":
            domain = normalize_typed_data_domain(payload.domain)
            value = payload.value if payload.value is not None else payload.message
            if not payload.types or not payload.primary_type or not value:
                raise ExecutionError("Incomplete typed data for signature")
            return await self.wallet.sign_typed_data(domain, payload.types, payload.primary_type, value)

        raise ExecutionError(f"Unsupported signature kind: {payload.signature_kind or 'unknown'}")

    async def _run_signature_step(self, queue: List[Step], index: int) -> None:
        step = queue[index]
        await self.flush()
        self._report(ExecutionState.SIGNING, step.description or "Sign authorization...")

        for item in step.items:
            if not isinstance(item, SignatureItem) or item.sign is None or item.post is None:
                raise ExecutionError("Missing signature data from Relay")

            signature = await self.sign_payload(item.sign)
            response = await self.pricing.submit_signature(
                item.post.endpoint,
                signature,
                method=item.post.method,
                body=item.post.body,
            )
            extra = parse_steps((response or {}).get("steps"))
            if extra:
                logger.info("Relay injected %d step(s) after %s", len(extra), step.id)
                queue[index + 1:index + 1] = extra

            self._record(item.check_endpoint)

        if step.request_id:
            self._record(request_id_endpoint(step.request_id))

    # ------------------------------------------------------------------
    # Transactions
    # ------------------------------------------------------------------

    async def _run_transaction_step(self, step: Step) -> None:
        for item in step.items:
            self._record(item.check_endpoint)
            if not isinstance(item, TransactionItem):
                continue

            chain_id = int(item.chain_id or self.source_chain_id)
            if self._pending_chain_id is not None and self._pending_chain_id != chain_id:
                await self.flush()
            if self._pending_chain_id is None:
                self._pending_chain_id = chain_id
            self._pending_calls.append(item.to_call())

        if step.request_id:
            self._record(request_id_endpoint(step.request_id))

    async def ensure_chain(self, chain_id: int) -> None:
        if self._active_chain_id is None:
            self._active_chain_id = int(self.wallet.chain_id)
        if self._active_chain_id != chain_id:
            self._report(ExecutionState.SWITCHING_CHAIN, f"Switching to {chain_name(chain_id)}...")
            await self.wallet.switch_chain(chain_id)
            self._active_chain_id = chain_id

    async def _send_sequential(self, calls: List[Dict[str, Any]]) -> None:
        for call in calls:
            await self.wallet.send_transaction(call)

    async def submit_calls(self, calls: List[Dict[str, Any]], chain_id: Optional[int]) -> None:
        if not calls:
            return
        target = int(chain_id or self.source_chain_id)
        await self.ensure_chain(target)

        if self.supports_atomic_batch:
            self._report(ExecutionState.SIGNING, f"Sign {len(calls)} transaction(s)...")
            try:
                await self.wallet.send_calls(target, calls)
            except Exception as exc:
                if is_user_rejection(exc) or not atomic_batch_unsupported(exc):
                    raise
                logger.info("Wallet rejected atomic batch, sending %d call(s) sequentially: %s", len(calls), exc)
                self.supports_atomic_batch = False
                self._fell_back = True
                await self._send_sequential(calls)
        else:
            self._report(ExecutionState.SIGNING, f"Sign {len(calls)} transaction(s) in sequence...")
            await self._send_sequential(calls)

        self._batches += 1
        self._report(ExecutionState.CONFIRMING, "Waiting for confirmation...")

    async def flush(self) -> None:
        if not self._pending_calls:
            return
        calls, chain_id = self._pending_calls, self._pending_chain_id
        self._pending_calls, self._pending_chain_id = [], None
        await self.submit_calls(calls, chain_id)

    # ------------------------------------------------------------------
    # Run
    # ------------------------------------------------------------------

    async def execute(self, quote: Quote) -> ExecutionResult:
        self._report(ExecutionState.PREPARING, "Preparing transaction...")
        queue: List[Step] = list(quote.steps)

        try:
            index = 0
            while index < len(queue):
                step = queue[index]
                if step.items:
                    if step.kind == StepKind.SIGNATURE:
                        await self._run_signature_step(queue, index)
                    else:
                        await self._run_transaction_step(step)
                index += 1

            await self.flush()
        except Exception:
            self._report(ExecutionState.FAILED, "Execution failed")
            raise

        for request_id in quote.request_ids:
            self._record(request_id_endpoint(request_id))

        endpoints = list(self._endpoints)
        if not endpoints:
            self._report(ExecutionState.COMPLETE, "Transaction complete!")
            return self._result(StatusMessage(type="success", message="Transaction complete!"), endpoints, [])

        self._report(ExecutionState.POLLING, f"Waiting for {len(endpoints)} swap(s)...")
        kwargs: Dict[str, Any] = {}
        if self.poll_attempts is not None:
            kwargs["max_attempts"] = self.poll_attempts
        if self.poll_interval_s is not None:
            kwargs["interval_s"] = self.poll_interval_s
        results = await poll_all(self.pricing.status, endpoints, **kwargs)

        status = summarize_results(results)
        if status.type == "success":
            self._report(ExecutionState.COMPLETE, "All swaps complete!")
        else:
            self._report(ExecutionState.COMPLETE, "Bridge failed" if status.type == "error" else "Bridge pending")
        return self._result(status, endpoints, results)

    def _result(self, status: StatusMessage, endpoints: List[str], results: List[PollResult]) -> ExecutionResult:
        return ExecutionResult(
            status=status,
            endpoints=endpoints,
            poll_results=results,
            submitted_batches=self._batches,
            used_sequential_fallback=self._fell_back,
        )
