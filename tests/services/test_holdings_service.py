"""Tests for holdings discovery and the Routescan pager."""

import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock

from batchbridge.providers.routescan import RoutescanError, RoutescanProvider
from batchbridge.services.holdings import HoldingsService, is_listable

from conftest import AERO_BASE, DAI_BASE, OWNER, USDC_BASE


def index_item(address, symbol, quantity="1000000", value="5.0", decimals="6"):
    return {
        "tokenAddress": address,
        "tokenSymbol": symbol,
        "tokenName": symbol,
        "tokenQuantity": quantity,
        "tokenDecimals": decimals,
        "tokenValueInUsd": value,
        "tokenPrice": "1.0",
    }


def service_with(items, balances):
    routescan = MagicMock()
    routescan.all_holdings = AsyncMock(return_value=items)
    chain_data = MagicMock()
    chain_data.get_balances = AsyncMock(return_value=balances)
    pricing = MagicMock()
    pricing.apply_prices = AsyncMock(side_effect=lambda tokens: tokens)
    return HoldingsService(chain_data, pricing, routescan), chain_data


class TestListable:
    @pytest.mark.parametrize("item", [
        index_item(USDC_BASE, ""),
        index_item(USDC_BASE, "USDC", quantity="0"),
        index_item(USDC_BASE, "USDC", value="0"),
        index_item(USDC_BASE, "visit scam.io ✅"),
    ])
    def test_junk_is_dropped(self, item):
        assert not is_listable(item)

    def test_regular_token(self):
        assert is_listable(index_item(USDC_BASE, "USDC"))


class TestFetchHoldings:
    @pytest.mark.asyncio
    async def test_on_chain_balance_wins_and_zero_balances_are_dropped(self):
        items = [
            index_item(USDC_BASE, "USDC", value="5.0"),
            index_item(DAI_BASE, "DAI", value="9.0", decimals="18"),
            index_item(AERO_BASE, "AERO", value="2.0", decimals="18"),
        ]
        service, chain_data = service_with(items, {USDC_BASE: 2_000_000, DAI_BASE: 0, AERO_BASE: None})

        tokens = await service.fetch_holdings(OWNER, 8453)

        assert [t.symbol for t in tokens] == ["USDC", "AERO"]
        assert tokens[0].balance == 2_000_000
        assert tokens[1].balance == 1_000_000
        assert tokens[0].verified is True
        assert tokens[0].logo.endswith(f"/8453/{USDC_BASE}")
        chain_data.get_balances.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_nothing_listable_skips_chain_reads(self):
        service, chain_data = service_with([index_item(USDC_BASE, "USDC", value="0")], {})

        assert await service.fetch_holdings(OWNER, 8453) == []
        chain_data.get_balances.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_unsupported_chain(self):
        service, _ = service_with([], {})
        with pytest.raises(ValueError):
            await service.fetch_holdings(OWNER, 56)


class TestRoutescanPaging:
    @pytest.mark.asyncio
    async def test_follows_next_token(self):
        pages = {
            None: {"items": [{"tokenSymbol": "A"}], "link": {"nextToken": "p2"}},
            "p2": {"items": [{"tokenSymbol": "B"}], "link": {}},
        }

        def handler(request):
            assert request.url.path.endswith(f"/address/{OWNER}/erc20-holdings")
            return httpx.Response(200, json=pages[request.url.params.get("next")])

        provider = RoutescanProvider(api_key="", base_url="https://scan.test", transport=httpx.MockTransport(handler))
        items = await provider.all_holdings(8453, OWNER, limit=1, max_pages=5)

        assert [i["tokenSymbol"] for i in items] == ["A", "B"]

    @pytest.mark.asyncio
    async def test_first_page_failure_raises(self):
        provider = RoutescanProvider(
            api_key="key",
            base_url="https://scan.test",
            transport=httpx.MockTransport(lambda request: httpx.Response(429)),
        )
        with pytest.raises(RoutescanError) as exc_info:
            await provider.all_holdings(8453, OWNER)
        assert exc_info.value.status_code == 429

    @pytest.mark.asyncio
    async def test_later_page_failure_keeps_collected_items(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(200, json={"items": [{"tokenSymbol": "A"}], "link": {"nextToken": "p2"}})
            return httpx.Response(500)

        provider = RoutescanProvider(api_key="", base_url="https://scan.test", transport=httpx.MockTransport(handler))
        items = await provider.all_holdings(8453, OWNER, max_pages=3)

        assert [i["tokenSymbol"] for i in items] == ["A"]
        assert calls[0].headers.get("authorization") is None
