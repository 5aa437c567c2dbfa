"""
Revert payload decoding.

Wallets and RPC libraries bury revert data in many different places of their
error objects. ``extract_revert_data`` searches a fixed list of fields first,
then a JSON dump of the error, then a bounded breadth-first scan of every
nested value.
"""

from __future__ import annotations

import json
import re
from collections import deque
from dataclasses import dataclass
from typing import Any, Iterable, Iterator, Optional

ERC20_INSUFFICIENT_BALANCE_SELECTOR = "0xe450d38c"

# selector + three 32-byte words
_REVERT_RE = re.compile(r"0xe450d38c[0-9a-f]{192}", re.IGNORECASE)

MAX_SCANNED_LEAVES = 200

# Dotted paths checked in order; "cause" also follows ``__cause__``.
_PRIORITY_FIELDS = (
    "data",
    "errorData",
    "cause.data",
    "cause.cause.data",
    "details",
    "metaMessages",
    "meta",
    "stack",
    "shortMessage",
    "message",
    "cause.message",
)

_SNAKE_ALIASES = {
    "errorData": "error_data",
    "metaMessages": "meta_messages",
    "shortMessage": "short_message",
}


@dataclass(frozen=True)
class InsufficientBalanceRevert:
    """Decoded ``ERC20InsufficientBalance(address sender, uint256 balance, uint256 needed)``."""

    address: str
    balance: int
    needed: int
    raw: str

    @property
    def ratio_bps(self) -> Optional[int]:
        if self.needed == 0:
            return None
        return self.balance * 10000 // self.needed

    @property
    def ratio_percent(self) -> Optional[float]:
        bps = self.ratio_bps
        return bps / 100 if bps is not None else None


def decode_insufficient_balance(data: str) -> Optional[InsufficientBalanceRevert]:
    """Decode the first ERC20InsufficientBalance payload found in ``data``."""

    if not isinstance(data, str):
        return None
    match = _REVERT_RE.search(data)
    if not match:
        return None
    raw = match.group(0)
    payload = raw[len(ERC20_INSUFFICIENT_BALANCE_SELECTOR):]
    return InsufficientBalanceRevert(
        address="0x" + payload[24:64].lower(),
        balance=int(payload[64:128], 16),
        needed=int(payload[128:192], 16),
        raw=raw,
    )


def _child(obj: Any, name: str) -> Any:
    if obj is None:
        return None
    if isinstance(obj, dict):
        value = obj.get(name)
        if value is None and name in _SNAKE_ALIASES:
            value = obj.get(_SNAKE_ALIASES[name])
        return value
    if name == "message" and isinstance(obj, BaseException):
        value = getattr(obj, "message", None)
        return value if value is not None else str(obj)
    value = getattr(obj, name, None)
    if value is None and name in _SNAKE_ALIASES:
        value = getattr(obj, _SNAKE_ALIASES[name], None)
    if value is None and name == "cause" and isinstance(obj, BaseException):
        value = obj.__cause__
    return value


def _lookup(obj: Any, path: str) -> Any:
    for name in path.split("."):
        obj = _child(obj, name)
        if obj is None:
            return None
    return obj


def _as_text(value: Any) -> Optional[str]:
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if isinstance(value, (list, tuple)) and all(isinstance(v, str) for v in value):
        return "\n".join(value)
    return None


def _json_default(value: Any) -> Any:
    if isinstance(value, BaseException):
        return {"type": type(value).__name__, "message": str(value), **_public_attrs(value)}
    if isinstance(value, (bytes, bytearray)):
        return "0x" + bytes(value).hex()
    if hasattr(value, "__dict__"):
        return _public_attrs(value)
    return str(value)


def _public_attrs(obj: Any) -> dict:
    try:
        attrs = vars(obj)
    except TypeError:
        return {}
    return {k: v for k, v in attrs.items() if not k.startswith("_")}


def _serialize(error: Any) -> Optional[str]:
    try:
        return json.dumps(error, default=_json_default)
    except (TypeError, ValueError, RecursionError):
        return None


def _children(value: Any) -> Iterator[Any]:
    if isinstance(value, dict):
        yield from value.values()
    elif isinstance(value, (list, tuple, set, frozenset)):
        yield from value
    else:
        if isinstance(value, BaseException):
            yield from value.args
            if value.__cause__ is not None:
                yield value.__cause__
            if value.__context__ is not None:
                yield value.__context__
        yield from _public_attrs(value).values()


def _scan(error: Any, limit: int = MAX_SCANNED_LEAVES) -> Optional[str]:
    queue: deque = deque([error])
    seen: set = set()
    leaves = 0
    while queue and leaves < limit:
        value = queue.popleft()
        if isinstance(value, (str, bytes, bytearray)):
            leaves += 1
            match = _REVERT_RE.search(_as_text(value))
            if match:
                return match.group(0)
            continue
        if value is None or isinstance(value, (int, float, bool)):
            continue
        if id(value) in seen:
            continue
        seen.add(id(value))
        queue.extend(_children(value))
    return None


def extract_revert_data(error: Any) -> Optional[str]:
    """Find an ERC20InsufficientBalance revert payload anywhere inside ``error``."""

    if error is None:
        return None

    candidates: Iterable[Any] = (_lookup(error, path) for path in _PRIORITY_FIELDS)
    for candidate in candidates:
        text = _as_text(candidate)
        if text:
            match = _REVERT_RE.search(text)
            if match:
                return match.group(0)

    serialized = _serialize(error)
    if serialized:
        match = _REVERT_RE.search(serialized)
        if match:
            return match.group(0)

    return _scan(error)


def decode_error(error: Any) -> Optional[InsufficientBalanceRevert]:
    data = extract_revert_data(error)
    return decode_insufficient_balance(data) if data else None


__all__ = [
    "ERC20_INSUFFICIENT_BALANCE_SELECTOR",
    "InsufficientBalanceRevert",
    "decode_insufficient_balance",
    "extract_revert_data",
    "decode_error",
]
