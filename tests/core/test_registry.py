"""Tests for the token registry, blocklist and selection helpers."""

from batchbridge.core.registry import TokenRegistry, full_selection, max_amount_input, update_selection

from conftest import AERO_BASE, DAI_BASE, USDC_BASE, make_token


def _registry_with_holdings():
    registry = TokenRegistry()
    registry.replace_holdings([
        make_token(USDC_BASE, "USDC", decimals=6, balance=5_000_000, value_usd=5.0),
        make_token(DAI_BASE, "DAI", value_usd=1.0),
    ])
    return registry


class TestBlocklist:
    def test_block_marks_holdings_unroutable(self):
        registry = _registry_with_holdings()
        keys = registry.block([make_token(DAI_BASE.upper().replace("0X", "0x"), "DAI")], "Transfer-fee token")

        assert keys == [f"8453:{DAI_BASE}"]
        dai = registry.find(8453, DAI_BASE)
        assert dai.blocked_reason == "Transfer-fee token"
        assert dai.route_available is False

    def test_blocklist_survives_holdings_reload(self):
        registry = _registry_with_holdings()
        registry.block([make_token(USDC_BASE, "USDC")], "nope")

        registry.replace_holdings([make_token(USDC_BASE, "USDC", route_available=True)])

        assert registry.holdings[0].route_available is False
        assert registry.is_blocked(8453, USDC_BASE)

    def test_reblocking_overwrites_reason_but_never_unblocks(self):
        registry = TokenRegistry()
        token = make_token(AERO_BASE, "AERO")
        registry.block([token], "first")
        registry.block([token], "second")

        assert registry.blocked_reason(8453, AERO_BASE) == "second"
        assert len(registry.blocked) == 1

    def test_block_on_explicit_chain(self):
        registry = TokenRegistry()
        registry.block([make_token(AERO_BASE, "AERO")], "fee", chain_id=42161)

        assert registry.is_blocked(42161, AERO_BASE)
        assert not registry.is_blocked(8453, AERO_BASE)

    def test_tokens_without_address_are_ignored(self):
        registry = TokenRegistry()
        assert registry.block([make_token("", "???")]) == []


class TestHoldings:
    def test_add_holding_prepends_once(self):
        registry = _registry_with_holdings()
        aero = make_token(AERO_BASE, "AERO")

        assert registry.add_holding(aero) is True
        assert registry.add_holding(aero) is False
        assert registry.holdings[0].symbol == "AERO"
        assert len(registry.holdings) == 3

    def test_reset_route_flags(self):
        registry = TokenRegistry()
        registry.replace_holdings([make_token(USDC_BASE, "USDC", route_available=True)])
        registry.reset_route_flags()

        assert registry.holdings[0].route_available is None

    def test_custom_outputs_are_unique(self):
        registry = TokenRegistry()
        token = make_token(USDC_BASE, "USDC", chain_id=42161)

        assert registry.add_custom_output(token)
        assert not registry.add_custom_output(token)
        registry.clear_custom_outputs()
        assert registry.custom_outputs == []


class TestSelection:
    def test_full_selection_uses_whole_balance(self):
        token = make_token(USDC_BASE, "USDC", decimals=6, balance=1_234_567)
        entry = full_selection(token)

        assert entry.amount == 1_234_567
        assert entry.amount_input == "1.23456"
        assert max_amount_input(token) == "1.23456"

    def test_update_selection_parses_input(self):
        token = make_token(USDC_BASE, "USDC", decimals=6, balance=5_000_000)
        entry = update_selection(full_selection(token), "2.5")

        assert entry.amount == 2_500_000
        assert entry.amount_input == "2.5"

    def test_update_selection_clamps_to_balance(self):
        token = make_token(USDC_BASE, "USDC", decimals=6, balance=5_000_000)
        entry = update_selection(full_selection(token), "9")

        assert entry.amount == 5_000_000
        assert entry.amount_input == "5"

    def test_huge_input_clamps_to_balance(self):
        token = make_token(AERO_BASE, "AERO", balance=5 * 10 ** 18)
        entry = update_selection(full_selection(token), "12345678901")

        assert entry.amount == 5 * 10 ** 18
        assert entry.amount_input == "5"

    def test_empty_input_means_zero(self):
        token = make_token(USDC_BASE, "USDC", decimals=6, balance=5_000_000)
        entry = update_selection(full_selection(token), "")

        assert entry.amount == 0
        assert entry.amount_input == ""

    def test_invalid_input_keeps_previous_amount(self):
        token = make_token(USDC_BASE, "USDC", decimals=6, balance=5_000_000)
        previous = update_selection(full_selection(token), "1")
        entry = update_selection(previous, "1.2.3")

        assert entry.amount == 1_000_000
        assert entry.amount_input == "1"
