"""
In-memory token state for one session: holdings, custom tokens, and the blocklist.
"""

from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .chains import token_key
from .models import SelectionEntry, Token
from .units import clamp_to_decimals, format_units, parse_units, sanitize_amount_input

DEFAULT_BLOCK_REASON = "Token is not supported"
AMOUNT_INPUT_DECIMALS = 5


class TokenRegistry:
    """Holdings plus a blocklist that only ever grows.

    The blocklist survives ``replace_holdings``; every token that passes
    through the registry gets its ``blocked_reason`` re-applied.
    """

    def __init__(self) -> None:
        self._holdings: List[Token] = []
        self._custom_outputs: List[Token] = []
        self._blocked: Dict[str, str] = {}

    # Blocklist

    def block(self, tokens: Iterable[Token], reason: Optional[str] = None, chain_id: Optional[int] = None) -> List[str]:
        """Block ``tokens`` (on ``chain_id`` when given, else their own chain); returns their keys."""
        reason = reason or DEFAULT_BLOCK_REASON
        keys = []
        for token in tokens:
            if not token.address:
                continue
            key = token_key(chain_id if chain_id is not None else token.chain_id, token.address)
            self._blocked[key] = reason
            keys.append(key)
        if keys:
            self._holdings = self.apply_blocklist(self._holdings)
        return keys

    def blocked_reason(self, chain_id: int, address: str) -> Optional[str]:
        if not address:
            return None
        return self._blocked.get(token_key(chain_id, address))

    def is_blocked(self, chain_id: int, address: str) -> bool:
        return self.blocked_reason(chain_id, address) is not None

    @property
    def blocked(self) -> Dict[str, str]:
        return dict(self._blocked)

    def apply_blocklist(self, tokens: Iterable[Token]) -> List[Token]:
        result = []
        for token in tokens:
            reason = self.blocked_reason(token.chain_id, token.address)
            if reason:
                token = token.with_updates(route_available=False, blocked_reason=reason)
            result.append(token)
        return result

    # Holdings

    @property
    def holdings(self) -> List[Token]:
        return list(self._holdings)

    def replace_holdings(self, tokens: Iterable[Token]) -> List[Token]:
        self._holdings = self.apply_blocklist(tokens)
        return self.holdings

    def clear_holdings(self) -> None:
        self._holdings = []

    def find(self, chain_id: int, address: str) -> Optional[Token]:
        key = token_key(chain_id, address)
        for token in self._holdings:
            if token.key == key:
                return token
        return None

    def add_holding(self, token: Token) -> bool:
        """Prepend ``token`` unless already held; returns whether it was added."""
        if self.find(token.chain_id, token.address) is not None:
            return False
        self._holdings = self.apply_blocklist([token]) + self._holdings
        return True

    def update_holding(self, token: Token) -> None:
        self._holdings = self.apply_blocklist(
            token if held.key == token.key else held for held in self._holdings
        )

    def reset_route_flags(self) -> None:
        self._holdings = self.apply_blocklist(t.with_updates(route_available=None) for t in self._holdings)

    # Custom output tokens

    @property
    def custom_outputs(self) -> List[Token]:
        return list(self._custom_outputs)

    def add_custom_output(self, token: Token) -> bool:
        if any(t.key == token.key for t in self._custom_outputs):
            return False
        self._custom_outputs.append(token)
        return True

    def clear_custom_outputs(self) -> None:
        self._custom_outputs = []


def max_amount_input(token: Token) -> str:
    return clamp_to_decimals(format_units(token.balance, token.decimals), AMOUNT_INPUT_DECIMALS)


def full_selection(token: Token) -> SelectionEntry:
    """Select the whole balance."""
    return SelectionEntry(token=token, amount=token.balance, amount_input=max_amount_input(token))


def update_selection(entry: SelectionEntry, text: str) -> SelectionEntry:
    """Apply typed input to ``entry``; invalid input keeps the previous amount, excess clamps to the balance."""
    normalized = sanitize_amount_input(text, AMOUNT_INPUT_DECIMALS)
    if normalized == "":
        amount, amount_input = 0, ""
    else:
        try:
            amount, amount_input = parse_units(normalized, entry.token.decimals), normalized
        except ValueError:
            amount, amount_input = entry.amount, entry.amount_input

    if amount > entry.token.balance:
        return full_selection(entry.token)
    return SelectionEntry(token=entry.token, amount=amount, amount_input=amount_input)
