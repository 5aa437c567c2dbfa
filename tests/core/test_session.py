"""End-to-end tests for BridgeSession with the network stubbed out."""

import pytest
from unittest.mock import AsyncMock, MagicMock

from batchbridge.core.execution.wallet import WalletError
from batchbridge.core.models import QuoteKind, WalletMode
from batchbridge.core.quote.aggregator import QuoteAggregator
from batchbridge.core.quote.parsing import parse_quote
from batchbridge.core.recovery.cascade import TRANSFER_FEE_REASON
from batchbridge.core.recovery.errors import RelayApiError
from batchbridge.core.session import TRANSFER_FEE_BLOCK_REASON, BridgeSession

from conftest import (
    AERO_BASE,
    DAI_BASE,
    OWNER,
    USDC_ARB,
    USDC_BASE,
    FakeWallet,
    make_token,
    raw_quote,
    revert_payload,
    status_response,
    tx_step,
)

ROUTER = "0x1231deb6f5749ef6ce6943a275a1d3e7486f4eae"


def holdings():
    return [
        make_token(USDC_BASE, "USDC", decimals=6, balance=5_000_000, value_usd=5.0),
        make_token(AERO_BASE, "AERO", balance=3 * 10 ** 18, value_usd=3.0),
        make_token(DAI_BASE, "DAI", balance=2 * 10 ** 18, value_usd=2.0),
    ]


def output_token():
    return make_token(USDC_ARB, "USDC", chain_id=42161, decimals=6, balance=0)


def build_session(quotes=None, fee_tokens=(), max_batch_tokens=10):
    quotes = quotes or {}

    chain_data = MagicMock()
    chain_data.resolve_wallet_mode = AsyncMock(return_value=WalletMode(explicit_deposit=False))
    chain_data.probe_transfer_fee = AsyncMock(
        side_effect=lambda chain_id, tokens: {t.lower(): t.lower() in fee_tokens for t in tokens}
    )
    chain_data.detect_transfer_fee = AsyncMock(side_effect=lambda chain_id, token: token.lower() in fee_tokens)
    chain_data.get_balances = AsyncMock(return_value={})

    async def quote(body):
        raw = quotes[body["originCurrency"]]
        if isinstance(raw, Exception):
            raise raw
        return parse_quote(raw, QuoteKind.SINGLE)

    pricing = MagicMock()
    pricing.quote = AsyncMock(side_effect=quote)
    pricing.multi_input_quote = AsyncMock(return_value=parse_quote(
        raw_quote(steps=[tx_step("deposit", request_id="0xmulti")], request_ids=["0xmulti"]),
        QuoteKind.MULTI_INPUT,
    ))
    pricing.check_routes = AsyncMock(
        side_effect=lambda origin, dest, tokens, user, currency: [t.with_updates(route_available=True) for t in tokens]
    )
    pricing.status = AsyncMock(return_value=status_response("success"))
    pricing.token_metadata = AsyncMock()
    pricing.apply_price = AsyncMock(side_effect=lambda token: token)
    pricing.check_route = AsyncMock()

    holdings_service = MagicMock()
    holdings_service.fetch_holdings = AsyncMock(return_value=holdings())

    session = BridgeSession(
        OWNER,
        chain_data=chain_data,
        pricing=pricing,
        holdings_service=holdings_service,
        aggregator=QuoteAggregator(pricing, max_price_impact=15),
        max_batch_tokens=max_batch_tokens,
    )
    return session, chain_data, pricing


async def ready_session(**kwargs):
    session, chain_data, pricing = build_session(**kwargs)
    await session.load_holdings()
    await session.select_output_token(output_token())
    return session, chain_data, pricing


class TestHoldingsAndRoutes:
    @pytest.mark.asyncio
    async def test_load_blocks_transfer_fee_tokens(self):
        session, _, _ = build_session(fee_tokens={AERO_BASE})

        tokens = await session.load_holdings()

        assert [t.symbol for t in tokens] == ["USDC", "AERO", "DAI"]
        assert tokens[1].blocked_reason == TRANSFER_FEE_BLOCK_REASON
        assert session.status.type == "success"
        assert session.status.message == (
            "Found 3 tokens worth $10.00. Select output token to check routes. • 1 transfer-fee tokens blocked"
        )
        assert session.is_loading_holdings is False

    @pytest.mark.asyncio
    async def test_load_failure(self):
        session, _, _ = build_session()
        session.holdings_service.fetch_holdings = AsyncMock(side_effect=RuntimeError("index down"))

        assert await session.load_holdings() == []
        assert (session.status.type, session.status.message) == ("error", "Failed to load token balances")

    @pytest.mark.asyncio
    async def test_selecting_output_checks_routes(self):
        session, _, pricing = await ready_session(fee_tokens={AERO_BASE})

        pricing.check_routes.assert_awaited_once()
        assert session.status.message == "Found 2 tokens bridgeable to USDC ($7.00) • 1 unavailable"
        assert [t.symbol for t in session.holdings] == ["USDC", "DAI", "AERO"]

    @pytest.mark.asyncio
    async def test_blocked_output_token_is_refused(self):
        session, _, _ = build_session(fee_tokens={USDC_ARB})

        assert await session.select_output_token(output_token()) is False
        assert session.toast == TRANSFER_FEE_BLOCK_REASON
        assert session.output_token is None

    @pytest.mark.asyncio
    async def test_swap_chains_drops_old_holdings(self):
        session, _, _ = await ready_session()
        assert {t.chain_id for t in session.holdings} == {8453}

        session.swap_chains()

        assert (session.source_chain_id, session.dest_chain_id) == (42161, 8453)
        assert session.output_token is None
        assert session.holdings == []
        assert session.registry.find(8453, USDC_BASE) is None


class TestSelection:
    @pytest.mark.asyncio
    async def test_toggle_selects_whole_balance(self):
        session, _, _ = await ready_session()
        usdc = session.holdings[0]

        assert await session.toggle_token(usdc) is True
        assert session.selections[usdc.key].amount == 5_000_000
        assert await session.toggle_token(usdc) is True
        assert session.selections == {}

    @pytest.mark.asyncio
    async def test_blocked_token_cannot_be_selected(self):
        session, _, _ = await ready_session(fee_tokens={AERO_BASE})
        aero = session.registry.find(8453, AERO_BASE)

        assert await session.toggle_token(aero) is False
        assert session.toast == TRANSFER_FEE_BLOCK_REASON

    @pytest.mark.asyncio
    async def test_batch_size_limit(self):
        session, _, _ = await ready_session(max_batch_tokens=1)
        usdc, aero = session.holdings[0], session.holdings[1]

        await session.toggle_token(usdc)
        assert await session.toggle_token(aero) is False
        assert session.toast == "Maximum 1 tokens per batch"

    @pytest.mark.asyncio
    async def test_update_amount_and_max(self):
        session, _, _ = await ready_session()
        usdc = session.holdings[0]
        await session.toggle_token(usdc)

        assert session.update_amount(usdc.key, "1.5").amount == 1_500_000
        assert session.set_max_amount(usdc.key).amount == 5_000_000
        assert session.update_amount("8453:0xunknown", "1") is None


class TestQuoting:
    @pytest.mark.asyncio
    async def test_high_impact_token_is_dropped_from_multi_input_batch(self):
        session, chain_data, pricing = await ready_session(quotes={
            USDC_BASE: raw_quote(impact="-0.2"),
            AERO_BASE: raw_quote(impact="-20"),
            DAI_BASE: raw_quote(impact="-0.4"),
        })
        await session.connect(FakeWallet())
        for token in session.holdings:
            await session.toggle_token(token)

        quote = await session.fetch_quote()

        assert quote.kind == QuoteKind.MULTI_INPUT
        assert session.status.type == "warning"
        assert session.status.message == "⚠️ Skipped AERO due to high price impact."
        assert sorted(e.token.symbol for e in session.selected_entries) == ["DAI", "USDC"]
        body = pricing.multi_input_quote.await_args.args[0]
        assert body["explicitDeposit"] is False
        assert session.is_loading_quote is False

    @pytest.mark.asyncio
    async def test_zero_amount_selection(self):
        session, _, pricing = await ready_session()
        usdc = session.holdings[0]
        await session.toggle_token(usdc)
        session.update_amount(usdc.key, "0")

        assert await session.fetch_quote() is None
        assert session.toast == "Enter an amount greater than 0"
        pricing.quote.assert_not_awaited()

    @pytest.mark.asyncio
    async def test_quote_error_becomes_friendly_status(self):
        session, _, _ = await ready_session(quotes={USDC_BASE: RelayApiError("x", error_code="AMOUNT_TOO_LOW")})
        await session.toggle_token(session.holdings[0])

        assert await session.fetch_quote() is None
        assert session.status.message == "Amount is too low for this swap. Try a larger amount."


class TestExecution:
    async def _quoted_session(self, wallet):
        session, chain_data, pricing = await ready_session(quotes={
            USDC_BASE: raw_quote(steps=[tx_step("deposit", request_id="0xusdc")], request_ids=["0xusdc"]),
            DAI_BASE: raw_quote(steps=[tx_step("deposit", request_id="0xdai")], request_ids=["0xdai"]),
        })
        await session.connect(wallet)
        await session.toggle_token(session.registry.find(8453, USDC_BASE))
        await session.toggle_token(session.registry.find(8453, DAI_BASE))
        await session.fetch_quote()
        return session, pricing

    @pytest.mark.asyncio
    async def test_successful_bridge_keeps_selection(self):
        wallet = FakeWallet()
        session, pricing = await self._quoted_session(wallet)

        result = await session.execute()

        assert result.success is True
        assert result.endpoints == ["/intents/status/v3?requestId=0xmulti"]
        assert session.status.message == "Tokens swapped successfully!"
        assert session.quote is None
        assert len(session.selections) == 2
        assert session.is_bridging is False

        sent = list(wallet.events)
        assert await session.execute() is None
        assert wallet.events == sent

    @pytest.mark.asyncio
    async def test_rejection_keeps_quote(self):
        wallet = FakeWallet(send_calls_error=WalletError("User rejected the request.", code=4001))
        session, _ = await self._quoted_session(wallet)

        assert await session.execute() is None
        assert (session.status.type, session.status.message) == ("", "Transaction cancelled")
        assert session.quote is not None
        assert len(session.selections) == 2

    @pytest.mark.asyncio
    async def test_transfer_fee_revert_blocks_token_and_requotes_rest(self):
        dai_amount = 2 * 10 ** 18
        error = WalletError("Execution reverted", data=revert_payload(ROUTER, dai_amount * 85 // 100, dai_amount))
        wallet = FakeWallet(send_calls_error=error)
        session, pricing = await self._quoted_session(wallet)
        pricing.quote.reset_mock()

        assert await session.execute() is None

        assert session.registry.blocked_reason(8453, DAI_BASE) == TRANSFER_FEE_REASON
        assert [e.token.symbol for e in session.selected_entries] == ["USDC"]
        assert session.quote is not None
        assert session.quote.kind == QuoteKind.SINGLE
        body = pricing.quote.await_args.args[0]
        assert body["originCurrency"] == USDC_BASE
        assert session.status.message == "Quote ready"

    @pytest.mark.asyncio
    async def test_unknown_failure_resets_quote_and_selection(self):
        wallet = FakeWallet(send_calls_error=RuntimeError("wallet exploded"))
        session, _ = await self._quoted_session(wallet)

        assert await session.execute() is None
        assert session.status.type == "error"
        assert session.status.message == "wallet exploded"
        assert session.quote is None
        assert session.selections == {}

    @pytest.mark.asyncio
    async def test_nothing_to_execute(self):
        session, _, _ = build_session()
        assert await session.execute(FakeWallet()) is None


class TestCustomTokens:
    @pytest.mark.asyncio
    async def test_add_custom_output_selects_it(self):
        session, _, pricing = await ready_session()
        custom = make_token(AERO_BASE, "AERO", chain_id=42161, balance=0)
        pricing.token_metadata = AsyncMock(return_value=custom)

        token = await session.add_custom_output_token(AERO_BASE)

        assert token is custom
        assert session.output_token is custom
        assert session.toast == "Added AERO"
        assert custom in session.output_options()

    @pytest.mark.asyncio
    async def test_add_source_token_without_balance(self):
        session, chain_data, pricing = build_session()
        pricing.token_metadata = AsyncMock(return_value=make_token(AERO_BASE, "AERO", balance=0))
        chain_data.get_balances = AsyncMock(return_value={AERO_BASE: 0})

        assert await session.add_source_token(AERO_BASE) is None
        assert session.toast == "No AERO balance on Base"

    @pytest.mark.asyncio
    async def test_add_source_token_prepends_holding(self):
        session, chain_data, pricing = await ready_session()
        pricing.token_metadata = AsyncMock(return_value=make_token(AERO_BASE.upper().replace("0X", "0x"), "AERO"))
        chain_data.get_balances = AsyncMock(return_value={AERO_BASE: 7})
        session.registry.replace_holdings([h for h in session.holdings if h.symbol != "AERO"])
        pricing.check_route = AsyncMock(return_value=MagicMock(available=True))

        token = await session.add_source_token(AERO_BASE)

        assert token.balance == 7
        assert token.route_available is True
        assert session.holdings[0].symbol == "AERO"
        assert session.toast == "Added AERO"
