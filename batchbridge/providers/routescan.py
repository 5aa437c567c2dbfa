"""Async client for the Routescan ERC-20 holdings index."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

import httpx

from ..config import settings

logger = logging.getLogger(__name__)


class RoutescanError(Exception):
    """The holdings index could not be read."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


class RoutescanProvider:
    """Reads ``/v2/network/mainnet/evm/{chainId}/address/{address}/erc20-holdings``.

    When no API key is configured the base URL is expected to point at a
    proxy that injects one.
    """

    def __init__(
        self,
        *,
        api_key: Optional[str] = None,
        base_url: Optional[str] = None,
        timeout_s: float = 20,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.api_key = settings.routescan_api_key if api_key is None else api_key
        self.base_url = (base_url or settings.routescan_base_url).rstrip("/")
        self.timeout_s = timeout_s
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        headers = {"accept": "application/json"}
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        return headers

    async def holdings_page(
        self,
        chain_id: int,
        address: str,
        *,
        limit: int = 100,
        next_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        """Fetch one page; the response carries ``items`` and ``link.nextToken``."""

        params: Dict[str, Any] = {"limit": limit}
        if next_token:
            params["next"] = next_token
        path = f"/v2/network/mainnet/evm/{int(chain_id)}/address/{address}/erc20-holdings"

        kwargs: Dict[str, Any] = {"base_url": self.base_url, "timeout": self.timeout_s}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        async with httpx.AsyncClient(**kwargs) as client:
            try:
                response = await client.get(path, params=params, headers=self._headers())
            except httpx.RequestError as exc:
                raise RoutescanError(f"Failed to fetch holdings: {exc}") from exc

        if response.status_code != 200:
            raise RoutescanError(
                f"Failed to fetch holdings: {response.status_code}",
                status_code=response.status_code,
            )
        data = response.json()
        return data if isinstance(data, dict) else {}

    async def all_holdings(
        self,
        chain_id: int,
        address: str,
        *,
        limit: Optional[int] = None,
        max_pages: Optional[int] = None,
    ) -> List[Dict[str, Any]]:
        """Follow ``link.nextToken`` for up to ``max_pages`` pages.

        A failing first page raises; a failing later page ends paging with
        what was collected so far.
        """

        limit = limit or settings.holdings_page_limit
        max_pages = max_pages or settings.holdings_max_pages
        items: List[Dict[str, Any]] = []
        next_token: Optional[str] = None

        for page in range(max_pages):
            try:
                data = await self.holdings_page(chain_id, address, limit=limit, next_token=next_token)
            except RoutescanError:
                if page == 0:
                    raise
                logger.warning("Holdings page %d failed for %s on chain %s; keeping %d items",
                               page, address, chain_id, len(items))
                break

            items.extend(data.get("items") or [])
            next_token = (data.get("link") or {}).get("nextToken")
            if not next_token:
                break

        return items
