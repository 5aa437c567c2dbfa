"""Tests for error classification and user-facing messages."""

import pytest

from batchbridge.core.execution.wallet import WalletError
from batchbridge.core.recovery.errors import (
    DEFAULT_ERROR_MESSAGE,
    ErrorCategory,
    RelayApiError,
    RelayTimeoutError,
    classify_error,
    get_friendly_error_message,
    is_simulation_revert,
    is_user_rejection,
)


class TestUserRejection:
    def test_eip1193_code(self):
        assert is_user_rejection(WalletError("Request failed", code=4001))

    def test_action_rejected_code(self):
        assert is_user_rejection(WalletError("nope", code="ACTION_REJECTED"))

    @pytest.mark.parametrize("text", ["User rejected the request", "User denied transaction signature"])
    def test_rejection_phrases(self, text):
        assert is_user_rejection(Exception(text))

    def test_revert_hint_wins_over_code(self):
        assert not is_user_rejection(WalletError("execution reverted", code=4001))

    def test_unrelated_error(self):
        assert not is_user_rejection(Exception("insufficient liquidity"))


class TestSimulationRevert:
    def test_matches_nested_message(self):
        inner = Exception("Transaction will revert onchain")
        outer = RuntimeError("send failed")
        outer.__cause__ = inner
        assert is_simulation_revert(outer)

    def test_plain_error(self):
        assert not is_simulation_revert(Exception("timeout"))


class TestFriendlyMessage:
    def test_known_error_code(self):
        error = RelayApiError("boom", error_code="NO_SWAP_ROUTES_FOUND")
        assert get_friendly_error_message(error) == (
            "No route found for this swap. The token pair may not be supported."
        )

    def test_phrase_match(self):
        error = Exception("Insufficient liquidity for this trade")
        assert get_friendly_error_message(error) == (
            "Not enough liquidity available. Try a smaller amount or different token."
        )

    def test_unknown_code_falls_back_to_raw_message(self):
        error = RelayApiError("Something odd happened", error_code="UNKNOWN_ERROR")
        assert get_friendly_error_message(error) == "Something odd happened"

    def test_missing_error(self):
        assert get_friendly_error_message(None) == DEFAULT_ERROR_MESSAGE


class TestClassify:
    def test_relay_errors_keep_their_context(self):
        context = classify_error(RelayApiError("x", error_code="AMOUNT_TOO_LOW", request_id="0xabc"))
        assert context.category == ErrorCategory.SERVICE
        assert context.request_id == "0xabc"
        assert context.recoverable is True

    def test_timeout(self):
        assert classify_error(RelayTimeoutError()).category == ErrorCategory.TIMEOUT

    def test_rejection_is_not_recoverable(self):
        context = classify_error(WalletError("User rejected", code=4001))
        assert context.category == ErrorCategory.USER_CANCELLED
        assert context.recoverable is False

    def test_balance_revert(self):
        context = classify_error(Exception("reverted: ERC20InsufficientBalance"))
        assert context.category == ErrorCategory.BALANCE_REVERT
