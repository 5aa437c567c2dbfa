"""
Holdings discovery.

Pulls ERC-20 holdings from the Routescan index, drops dust and junk, checks
each balance on-chain, and reprices the survivors through Relay.
"""

from __future__ import annotations

import logging
import re
from typing import Any, Dict, List, Optional

from ..core.chains import is_supported_chain
from ..core.models import Token
from ..core.quote.parsing import to_int
from ..providers.routescan import RoutescanProvider
from .chain_data import ChainDataClient
from .pricing import PricingClient

logger = logging.getLogger(__name__)

_UNEXPECTED_SYMBOL_RE = re.compile(r"[^\w\s.-]")


def token_logo_url(chain_id: int, address: str) -> Optional[str]:
    if not address:
        return None
    return f"https://api.sim.dune.com/beta/token/logo/{int(chain_id)}/{address.lower()}"


def _usd(value: Any) -> float:
    try:
        return float(value or 0)
    except (TypeError, ValueError):
        return 0.0


def is_listable(item: Dict[str, Any]) -> bool:
    """Whether an index entry is worth showing at all."""
    symbol = item.get("tokenSymbol")
    if not symbol or not item.get("tokenAddress"):
        return False
    if str(item.get("tokenQuantity")) == "0":
        return False
    if _UNEXPECTED_SYMBOL_RE.search(symbol):
        return False
    return _usd(item.get("tokenValueInUsd")) > 0


class HoldingsService:
    def __init__(
        self,
        chain_data: ChainDataClient,
        pricing: PricingClient,
        routescan: Optional[RoutescanProvider] = None,
    ) -> None:
        self.chain_data = chain_data
        self.pricing = pricing
        self.routescan = routescan or RoutescanProvider()

    async def fetch_holdings(self, owner: str, chain_id: int) -> List[Token]:
        """Verified, Relay-priced holdings of ``owner`` on ``chain_id``, richest first."""
        if not is_supported_chain(int(chain_id)):
            raise ValueError(f"Unsupported chain: {chain_id}")

        items = await self.routescan.all_holdings(chain_id, owner)
        listable = [item for item in items if is_listable(item)]
        if not listable:
            return []

        balances = await self.chain_data.get_balances(
            chain_id, owner, [item["tokenAddress"] for item in listable]
        )

        holdings: List[Token] = []
        for item in listable:
            address = item["tokenAddress"]
            balance = to_int(item.get("tokenQuantity")) or 0
            on_chain = balances.get(address.lower())
            if on_chain is not None:
                if on_chain == 0:
                    continue
                balance = on_chain

            decimals = to_int(item.get("tokenDecimals"))
            holdings.append(
                Token(
                    chain_id=int(chain_id),
                    address=address,
                    symbol=item["tokenSymbol"],
                    name=item.get("tokenName") or item["tokenSymbol"],
                    decimals=decimals if decimals is not None else 18,
                    balance=balance,
                    price=_usd(item.get("tokenPrice")),
                    value_usd=_usd(item.get("tokenValueInUsd")),
                    logo=token_logo_url(chain_id, address),
                    verified=True,
                    route_available=None,
                )
            )

        logger.info("Loaded %d holdings for %s on chain %s (%d indexed)",
                    len(holdings), owner, chain_id, len(items))
        holdings.sort(key=lambda t: t.value_usd, reverse=True)
        return await self.pricing.apply_prices(holdings)
