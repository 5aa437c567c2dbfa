"""
Settlement polling.

Relay settles asynchronously; every recorded check endpoint is polled until
it reaches a terminal status or the attempts run out.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence

from ...config import settings
from ..models import StatusMessage

logger = logging.getLogger(__name__)

SUCCESS_STATUSES = frozenset({"success", "confirmed"})
FAILURE_STATUSES = frozenset({"failure", "failed", "reverted", "refund", "refunded", "fallback"})
# "fallback" stops polling but is not reported as a definitive failure
TERMINAL_FAILURE_STATUSES = frozenset({"failure", "failed", "reverted", "refund", "refunded"})

FOLLOW_UP_HINT = " Check your wallet or Relay status for updates."


@dataclass
class PollResult:
    endpoint: str
    success: bool
    status: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @property
    def status_value(self) -> str:
        return str((self.status or {}).get("status") or "").lower()


async def poll_status(
    fetch: Callable[[str], Awaitable[Any]],
    endpoint: str,
    *,
    max_attempts: Optional[int] = None,
    interval_s: Optional[float] = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> PollResult:
    """Poll ``endpoint`` through ``fetch`` (returns an ``httpx.Response``) until it settles.

    Non-200 responses and transport errors are retried after the interval.
    """
    if not endpoint:
        return PollResult(endpoint="", success=False, error="Missing status endpoint")

    attempts = max_attempts if max_attempts is not None else settings.status_poll_attempts
    interval = interval_s if interval_s is not None else settings.status_poll_interval_seconds
    last_status: Optional[Dict[str, Any]] = None

    for _ in range(attempts):
        try:
            response = await fetch(endpoint)
            if response.status_code != 200:
                await sleep(interval)
                continue
            data = response.json()
        except Exception as exc:
            logger.debug("Status poll for %s failed: %s", endpoint, exc)
            await sleep(interval)
            continue

        last_status = data if isinstance(data, dict) else {}
        value = str(last_status.get("status") or "").lower()
        if value in SUCCESS_STATUSES:
            return PollResult(endpoint=endpoint, success=True, status=last_status)
        if value in FAILURE_STATUSES:
            logger.warning("Bridge %s settled as %s", endpoint, value)
            return PollResult(endpoint=endpoint, success=False, status=last_status, error="Bridge transaction failed")
        await sleep(interval)

    if last_status is not None:
        value = str(last_status.get("status") or "unknown").lower()
        return PollResult(
            endpoint=endpoint,
            success=False,
            status=last_status,
            error=f"Bridge still {value} after waiting",
        )
    return PollResult(endpoint=endpoint, success=False, error="Timeout waiting for bridge confirmation")


async def poll_all(fetch: Callable[[str], Awaitable[Any]], endpoints: Sequence[str], **kwargs: Any) -> List[PollResult]:
    return list(await asyncio.gather(*(poll_status(fetch, endpoint, **kwargs) for endpoint in endpoints)))


def summarize_results(results: Sequence[PollResult]) -> StatusMessage:
    """User-facing outcome of a polled batch."""
    failed = [r for r in results if not r.success]
    if not failed:
        return StatusMessage(type="success", message="Tokens swapped successfully!")

    terminal = any(r.status_value in TERMINAL_FAILURE_STATUSES for r in failed)
    message = next((r.error for r in failed if r.error), None)
    if message is None:
        message = "Bridge failed or refunded." if terminal else "Bridge is still pending."
    if not message.endswith("."):
        message += "."
    return StatusMessage(type="error" if terminal else "warning", message=f"{message}{FOLLOW_UP_HINT}")
