"""Async client for Relay's public routing API."""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional
from urllib.parse import quote as url_quote

import httpx

from ..config import settings
from ..core.recovery.errors import RelayApiError, RelayTimeoutError

logger = logging.getLogger(__name__)


class RelayProvider:
    """Thin wrapper around https://api.relay.link endpoints.

    Every request carries the configured ``referrer``. Non-2xx answers are
    raised as ``RelayApiError`` built from Relay's JSON error body.
    """

    def __init__(
        self,
        *,
        base_url: Optional[str] = None,
        referrer: Optional[str] = None,
        timeout_s: Optional[float] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ) -> None:
        self.base_url = (base_url or settings.relay_base_url).rstrip("/")
        self.referrer = referrer or settings.relay_referrer
        self.timeout_s = timeout_s if timeout_s is not None else settings.relay_timeout_seconds
        self._transport = transport

    def _headers(self) -> Dict[str, str]:
        return {
            "accept": "application/json, text/plain, */*",
            "content-type": "application/json",
            "user-agent": "BatchBridgeRelayClient/2025-10",
            "origin": "https://relay.link",
        }

    def _client(self, timeout: float) -> httpx.AsyncClient:
        kwargs: Dict[str, Any] = {"base_url": self.base_url, "timeout": timeout}
        if self._transport is not None:
            kwargs["transport"] = self._transport
        return httpx.AsyncClient(**kwargs)

    async def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        headers: Optional[Dict[str, str]] = None,
        timeout: Optional[float] = None,
        **kwargs: Any,
    ) -> httpx.Response:
        merged_headers = {**self._headers(), **(headers or {})}
        async with self._client(timeout or self.timeout_s) as client:
            response = await client.request(method, path, json=json, headers=merged_headers, **kwargs)
        if response.is_error:
            raise self._api_error(response)
        return response

    @staticmethod
    def _api_error(response: httpx.Response) -> RelayApiError:
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}
        message = body.get("message") or f"Relay request failed with status {response.status_code}"
        return RelayApiError(
            message,
            error_code=body.get("errorCode"),
            error_data=body.get("errorData"),
            request_id=body.get("requestId"),
            status_code=response.status_code,
        )

    def _with_referrer(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        return {**payload, "referrer": self.referrer}

    async def quote(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Request a single-origin quote.

        `payload` follows the schema documented at https://docs.relay.link/
        (user, originChainId, destinationChainId, originCurrency, amount, ...).
        """

        resp = await self._request("POST", "/quote/v2", json=self._with_referrer(payload))
        return resp.json()

    async def multi_input_quote(self, payload: Dict[str, Any], *, timeout_s: Optional[float] = None) -> Dict[str, Any]:
        """Request a server-side aggregated quote for several origins.

        Aborts after ``multi_input_timeout_seconds`` and raises ``RelayTimeoutError``.
        """

        timeout = timeout_s if timeout_s is not None else settings.multi_input_timeout_seconds
        try:
            resp = await self._request(
                "POST",
                "/execute/swap/multi-input",
                json=self._with_referrer(payload),
                timeout=timeout,
            )
        except httpx.TimeoutException as exc:
            logger.warning("Relay multi-input quote timed out after %.0fs", timeout)
            raise RelayTimeoutError(operation="multi_input_quote") from exc
        return resp.json()

    async def price(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Lightweight price/route check used to test whether a route exists."""

        resp = await self._request("POST", "/price", json=self._with_referrer(payload))
        return resp.json()

    async def token_price(self, chain_id: int, address: str) -> Dict[str, Any]:
        resp = await self._request(
            "GET",
            "/currencies/token/price",
            params={"address": address, "chainId": int(chain_id), "referrer": self.referrer},
        )
        return resp.json()

    async def currencies(self, payload: Dict[str, Any]) -> List[Dict[str, Any]]:
        resp = await self._request("POST", "/currencies/v2", json=self._with_referrer(payload))
        data = resp.json()
        if isinstance(data, list):
            return data
        return data.get("currencies", []) if isinstance(data, dict) else []

    async def submit_signature(
        self,
        endpoint: str,
        signature: str,
        *,
        method: str = "POST",
        body: Optional[Dict[str, Any]] = None,
    ) -> Dict[str, Any]:
        """Post a signed message back to the endpoint a signature step names."""

        if not signature:
            raise ValueError("Missing signature for permit submission")
        if not endpoint:
            raise ValueError("Missing permit submission endpoint")
        url = self.normalize_endpoint(endpoint)
        separator = "&" if "?" in url else "?"
        url = f"{url}{separator}signature={url_quote(signature, safe='')}"
        method = method.upper()
        has_body = method not in ("GET", "HEAD")
        resp = await self._request(method, url, json=body if has_body and body else None)
        try:
            data = resp.json()
        except ValueError:
            return {}
        return data if isinstance(data, dict) else {}

    async def status(self, endpoint: str) -> httpx.Response:
        """Fetch one settlement status snapshot; the caller interprets non-200s."""

        url = self.status_url(endpoint)
        async with self._client(self.timeout_s) as client:
            return await client.get(url, headers=self._headers())

    def status_endpoint(self, request_id: str) -> str:
        return f"/intents/status/v3?requestId={request_id}"

    def normalize_endpoint(self, endpoint: str) -> str:
        if endpoint.startswith("http"):
            return endpoint
        if endpoint.startswith("/"):
            return f"{self.base_url}{endpoint}"
        return f"{self.base_url}/{endpoint}"

    def status_url(self, endpoint_or_request_id: str) -> str:
        """Absolute URLs pass through, paths get the base URL, anything else is a request id."""

        if endpoint_or_request_id.startswith(("http", "/")):
            return self.normalize_endpoint(endpoint_or_request_id)
        return f"{self.base_url}{self.status_endpoint(endpoint_or_request_id)}"
