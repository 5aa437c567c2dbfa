"""Tests for Relay-backed pricing, route checks and quotes."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from batchbridge.core.models import QuoteKind
from batchbridge.core.recovery.errors import RelayApiError
from batchbridge.services.pricing import PricingClient, map_with_concurrency

from conftest import AERO_BASE, DAI_BASE, OWNER, USDC_ARB, USDC_BASE, make_token, raw_quote


def relay_double():
    relay = MagicMock()
    relay.token_price = AsyncMock(return_value={"price": 2.0})
    relay.price = AsyncMock(return_value={"details": {}})
    relay.quote = AsyncMock(return_value=raw_quote())
    relay.multi_input_quote = AsyncMock(return_value=raw_quote())
    relay.currencies = AsyncMock(return_value=[])
    return relay


class TestPrices:
    @pytest.mark.asyncio
    async def test_price_is_cached(self):
        relay = relay_double()
        pricing = PricingClient(relay)

        assert await pricing.price_of(8453, USDC_BASE) == 2.0
        assert await pricing.price_of(8453, USDC_BASE.upper().replace("0X", "0x")) == 2.0
        relay.token_price.assert_awaited_once()

    @pytest.mark.asyncio
    async def test_failed_lookup_is_cached_as_none(self):
        relay = relay_double()
        relay.token_price = AsyncMock(side_effect=RuntimeError("down"))
        pricing = PricingClient(relay)

        assert await pricing.price_of(8453, AERO_BASE) is None
        assert await pricing.price_of(8453, AERO_BASE) is None
        assert relay.token_price.await_count == 1

    @pytest.mark.asyncio
    async def test_apply_prices_revalues_and_sorts(self):
        relay = relay_double()

        async def token_price(chain_id, address):
            return {"price": 3.0 if address == DAI_BASE else 0}

        relay.token_price = AsyncMock(side_effect=token_price)
        tokens = [
            make_token(USDC_BASE, "USDC", decimals=6, balance=1_000_000, value_usd=1.0),
            make_token(DAI_BASE, "DAI", balance=2 * 10 ** 18, value_usd=0.5),
        ]

        priced = await PricingClient(relay).apply_prices(tokens)

        assert [t.symbol for t in priced] == ["DAI", "USDC"]
        assert priced[0].value_usd == 6.0
        assert priced[1].value_usd == 1.0


class TestRoutes:
    @pytest.mark.asyncio
    async def test_route_check_uses_one_whole_token(self):
        relay = relay_double()
        check = await PricingClient(relay).check_route(8453, 42161, USDC_BASE, OWNER, 6, USDC_ARB)

        assert check.available is True
        payload = relay.price.await_args.args[0]
        assert payload["amount"] == "1000000"
        assert payload["destinationCurrency"] == USDC_ARB

    @pytest.mark.asyncio
    async def test_unavailable_route_is_cached(self):
        relay = relay_double()
        relay.price = AsyncMock(side_effect=RelayApiError("nope", status_code=400))
        pricing = PricingClient(relay)

        first = await pricing.check_route(8453, 42161, AERO_BASE, OWNER)
        second = await pricing.check_route(8453, 42161, AERO_BASE, OWNER)

        assert first.available is False
        assert first.reason == "Route not supported"
        assert second is first
        assert relay.price.await_count == 1

    @pytest.mark.asyncio
    async def test_check_routes_annotates_every_token(self):
        relay = relay_double()

        async def price(payload):
            if payload["originCurrency"] == AERO_BASE:
                raise RelayApiError("no route", status_code=400)
            return {}

        relay.price = AsyncMock(side_effect=price)
        tokens = [make_token(AERO_BASE, "AERO"), make_token(USDC_BASE, "USDC", decimals=6)]

        checked = await PricingClient(relay).check_routes(8453, 42161, tokens, OWNER, USDC_ARB)

        assert [(t.symbol, t.route_available) for t in checked] == [("AERO", False), ("USDC", True)]


class TestQuotesAndMetadata:
    @pytest.mark.asyncio
    async def test_quotes_are_parsed_with_their_kind(self):
        pricing = PricingClient(relay_double())

        assert (await pricing.quote({})).kind == QuoteKind.SINGLE
        assert (await pricing.multi_input_quote({})).kind == QuoteKind.MULTI_INPUT

    @pytest.mark.asyncio
    async def test_token_metadata(self):
        relay = relay_double()
        relay.currencies = AsyncMock(return_value=[{
            "address": AERO_BASE,
            "symbol": "AERO",
            "name": "Aerodrome",
            "decimals": 18,
            "metadata": {"logoURI": "https://logo", "verified": True},
        }])

        token = await PricingClient(relay).token_metadata(8453, AERO_BASE)

        assert token.symbol == "AERO"
        assert token.is_custom is True
        assert token.verified is True
        assert relay.currencies.await_args.args[0]["chainIds"] == [8453]

    @pytest.mark.asyncio
    async def test_unknown_token(self):
        with pytest.raises(LookupError, match="Token not found on this network"):
            await PricingClient(relay_double()).token_metadata(8453, AERO_BASE)


@pytest.mark.asyncio
async def test_map_with_concurrency_keeps_order():
    async def double(value):
        return value * 2

    assert await map_with_concurrency([3, 1, 2], 2, double) == [6, 2, 4]
