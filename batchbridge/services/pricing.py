"""
Relay-backed pricing: USD prices, route availability, and quotes.

Prices and route checks are cached per client instance with a TTL; quotes
are never cached.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, TypeVar

import httpx

from ..cache import TTLCache
from ..config import settings
from ..core.chains import NATIVE_PLACEHOLDER
from ..core.models import QuoteKind, RouteCheck, Token
from ..core.quote.parsing import parse_quote
from ..core.units import to_float_amount
from ..providers.relay import RelayProvider

logger = logging.getLogger(__name__)

T = TypeVar("T")
R = TypeVar("R")


async def map_with_concurrency(
    items: Sequence[T],
    limit: int,
    mapper: Callable[[T], Awaitable[R]],
) -> List[R]:
    """Apply ``mapper`` to every item with at most ``limit`` in flight; order is kept."""
    semaphore = asyncio.Semaphore(max(1, limit))

    async def run(item: T) -> R:
        async with semaphore:
            return await mapper(item)

    return list(await asyncio.gather(*(run(item) for item in items)))


class PricingClient:
    def __init__(
        self,
        relay: Optional[RelayProvider] = None,
        *,
        price_cache: Optional[TTLCache] = None,
        route_cache: Optional[TTLCache] = None,
        max_concurrency: Optional[int] = None,
    ) -> None:
        self.relay = relay or RelayProvider()
        self.price_cache = price_cache if price_cache is not None else TTLCache(ttl=settings.cache_ttl_seconds)
        self.route_cache = route_cache if route_cache is not None else TTLCache(ttl=settings.cache_ttl_seconds)
        self.max_concurrency = max_concurrency or settings.max_concurrent_requests

    # ------------------------------------------------------------------
    # Prices
    # ------------------------------------------------------------------

    async def price_of(self, chain_id: int, token_address: str) -> Optional[float]:
        """USD price from Relay, or ``None``. Failures are cached too."""
        key = f"{int(chain_id)}-{token_address.lower()}"
        entry = self.price_cache.get_entry(key)
        if entry is not None:
            return entry.value

        try:
            data = await self.relay.token_price(chain_id, token_address)
            price: Optional[float] = float((data or {}).get("price") or 0)
        except Exception as exc:
            logger.debug("Relay price lookup failed for %s on chain %s: %s", token_address, chain_id, exc)
            price = None

        self.price_cache.set(key, price)
        return price

    async def apply_price(self, token: Token) -> Token:
        """Revalue ``token`` from its balance and Relay's price; unchanged when no price."""
        price = await self.price_of(token.chain_id, token.address)
        if not price or price <= 0:
            return token
        amount = to_float_amount(token.balance, token.decimals)
        return token.with_updates(price=price, value_usd=amount * price)

    async def apply_prices(self, tokens: Sequence[Token]) -> List[Token]:
        updated = await map_with_concurrency(tokens, self.max_concurrency, self.apply_price)
        return sorted(updated, key=lambda t: t.value_usd, reverse=True)

    # ------------------------------------------------------------------
    # Route availability
    # ------------------------------------------------------------------

    async def check_route(
        self,
        origin_chain_id: int,
        dest_chain_id: int,
        token_address: str,
        user: str,
        decimals: int = 18,
        dest_currency: str = NATIVE_PLACEHOLDER,
    ) -> RouteCheck:
        """Trial a 1-token price request; any failure means no route. Both outcomes are cached."""
        key = f"{int(origin_chain_id)}-{int(dest_chain_id)}-{token_address.lower()}-{dest_currency.lower()}"
        cached = self.route_cache.get(key)
        if cached is not None:
            return cached

        decimals = decimals if isinstance(decimals, int) and decimals >= 0 else 18
        payload = {
            "user": user,
            "originChainId": int(origin_chain_id),
            "destinationChainId": int(dest_chain_id),
            "originCurrency": token_address,
            "destinationCurrency": dest_currency,
            "amount": str(10 ** decimals),
            "tradeType": "EXACT_INPUT",
        }
        try:
            data = await self.relay.price(payload)
            result = RouteCheck(available=True, data=data)
        except Exception as exc:
            status = getattr(exc, "status_code", None)
            reason = "Route not supported" if status is not None else str(exc)
            result = RouteCheck(available=False, reason=reason)

        self.route_cache.set(key, result)
        return result

    async def check_routes(
        self,
        origin_chain_id: int,
        dest_chain_id: int,
        tokens: Sequence[Token],
        user: str,
        dest_currency: str = NATIVE_PLACEHOLDER,
    ) -> List[Token]:
        """Annotate each token with ``route_available``; one failure never sinks the batch."""
        self.route_cache.sweep()
        self.price_cache.sweep()

        results = await asyncio.gather(
            *(
                self.check_route(
                    origin_chain_id,
                    dest_chain_id,
                    token.address,
                    user,
                    token.decimals,
                    dest_currency,
                )
                for token in tokens
            ),
            return_exceptions=True,
        )

        checked: List[Token] = []
        for token, result in zip(tokens, results):
            if isinstance(result, BaseException):
                logger.warning("Route check raised for %s: %s", token.symbol, result)
                checked.append(token.with_updates(route_available=False))
            else:
                checked.append(token.with_updates(route_available=result.available))
        return checked

    # ------------------------------------------------------------------
    # Quotes and settlement
    # ------------------------------------------------------------------

    async def quote(self, payload: Dict[str, Any]):
        raw = await self.relay.quote(payload)
        return parse_quote(raw, QuoteKind.SINGLE)

    async def multi_input_quote(self, payload: Dict[str, Any]):
        raw = await self.relay.multi_input_quote(payload)
        return parse_quote(raw, QuoteKind.MULTI_INPUT)

    async def submit_signature(self, endpoint: str, signature: str, *, method: str = "POST",
                               body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        return await self.relay.submit_signature(endpoint, signature, method=method, body=body)

    async def status(self, endpoint: str) -> httpx.Response:
        return await self.relay.status(endpoint)

    async def token_metadata(self, chain_id: int, address: str) -> Token:
        """Look a token up by address for use as a custom input or output token."""
        currencies = await self.relay.currencies(
            {
                "chainIds": [int(chain_id)],
                "address": address.lower(),
                "defaultList": False,
                "limit": 1,
                "useExternalSearch": True,
            }
        )
        if not currencies:
            raise LookupError("Token not found on this network")
        entry = currencies[0]
        metadata = entry.get("metadata") or {}
        return Token(
            chain_id=int(chain_id),
            address=entry.get("address") or address,
            symbol=entry.get("symbol") or "",
            name=entry.get("name") or "",
            decimals=int(entry.get("decimals") if entry.get("decimals") is not None else 18),
            logo=metadata.get("logoURI"),
            verified=bool(metadata.get("verified")),
            is_custom=True,
        )
