import logging

import structlog

from batchbridge.logging_config import (
    bind_session_context,
    clear_session_context,
    setup_logging,
    shorten_hex_payloads,
)


def test_calldata_is_shortened():
    calldata = "0x" + "ab" * 100
    event = shorten_hex_payloads(None, "info", {"event": "send", "data": calldata})

    assert event["data"] == "0x" + "ab" * 8 + "…(100 bytes)"
    assert event["event"] == "send"


def test_hashes_and_plain_values_untouched():
    tx_hash = "0x" + "12" * 32
    event = shorten_hex_payloads(None, "info", {"hash": tx_hash, "count": 3, "symbol": "USDC"})

    assert event == {"hash": tx_hash, "count": 3, "symbol": "USDC"}


def test_setup_logging_sets_level():
    setup_logging("warning", "json")

    assert logging.getLogger().level == logging.WARNING
    assert logging.getLogger("httpx").level == logging.WARNING


def test_session_context_binding():
    structlog.contextvars.clear_contextvars()
    bind_session_context("0xABC", 8453, 42161)

    assert structlog.contextvars.get_contextvars() == {
        "owner": "0xabc",
        "source_chain": 8453,
        "dest_chain": 42161,
    }

    clear_session_context()
    assert structlog.contextvars.get_contextvars() == {}
