"""
Unit Tests for Logging Helpers

Run with:
    pytest tests/unit/test_logging.py -v
"""

import io
import logging

from core.logging import get_logger, log_api_request, redact, setup_logging


class TestRedact:
    def test_masks_credentials(self):
        params = {"symbol": "ETHBTC", "signature": "abc", "apiKey": "k", "nonce": 5}
        assert redact(params) == {"symbol": "ETHBTC", "signature": "***", "apiKey": "***", "nonce": "***"}
        assert params["signature"] == "abc"

    def test_empty_params(self):
        assert redact(None) is None
        assert redact({}) == {}


class TestLoggers:
    def test_child_logger_name(self):
        assert get_logger("exchanges.kraken").name == "exchcore.exchanges.kraken"

    def test_api_request_never_logs_secrets(self, caplog):
        caplog.set_level(logging.DEBUG, logger="exchcore")

        log_api_request("binance", "/api/v3/order", {"symbol": "ETHBTC", "signature": "deadbeef"})

        assert "ETHBTC" in caplog.text
        assert "deadbeef" not in caplog.text

    def test_setup_replaces_its_handler(self):
        first, second = io.StringIO(), io.StringIO()
        try:
            setup_logging("INFO", stream=first)
            root = setup_logging("INFO", stream=second)
            get_logger("test").info("kraken: setup complete")

            assert len([h for h in root.handlers if getattr(h, "_exchcore", False)]) == 1
            assert first.getvalue() == ""
            assert "kraken: setup complete" in second.getvalue()
        finally:
            setup_logging("INFO")
