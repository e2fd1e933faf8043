"""
Unit Tests for Configuration Module

These tests verify that the configuration system works correctly:
- Default values are applied when needed
- Per-exchange settings load from nested environment variables
- Comma-separated lists are split
- Validation catches invalid configurations

Run with:
    pytest tests/unit/test_config.py -v
"""

import pytest
from pydantic import ValidationError

from core.config import ExchangeConfig, Settings, settings, validate_configuration
from core.errors import FormatError
from core.pair import CurrencyPairFormat


class TestConfigurationLoading:
    """Test defaults and environment loading"""

    def test_log_level_is_set(self):
        """Verify log level is configured"""
        assert settings.log_level is not None
        assert isinstance(settings.log_level, str)
        assert len(settings.log_level) > 0

    def test_defaults(self):
        config = Settings(_env_file=None)
        assert config.request_timeout == 15.0
        assert config.default_polling_delay == 10.0
        assert config.exchanges == {}

    def test_nested_exchange_environment(self, monkeypatch):
        monkeypatch.setenv("EXCHANGES__KRAKEN__ENABLED", "true")
        monkeypatch.setenv("EXCHANGES__KRAKEN__API_KEY", "abc")
        monkeypatch.setenv("EXCHANGES__KRAKEN__POLLING_DELAY_SECONDS", "5")

        config = Settings(_env_file=None)
        kraken = config.exchanges["kraken"]
        assert kraken.enabled is True
        assert kraken.api_key == "abc"
        assert kraken.polling_delay_seconds == 5

    def test_exchange_configs_fill_name_from_key(self):
        config = Settings(
            _env_file=None,
            exchanges={"kraken": {"enabled": True}, "gemini": {"enabled": False}},
        )
        assert [c.name for c in config.exchange_configs] == ["kraken", "gemini"]
        assert config.enabled_exchanges == ["kraken"]


class TestExchangeConfig:
    """Test per-exchange configuration parsing"""

    def test_comma_separated_lists(self):
        config = ExchangeConfig(name="Kraken", enabled_pairs="ETHUSD, XBTUSD,", base_currencies="USD,EUR")
        assert config.name == "kraken"
        assert config.enabled_pairs == ["ETHUSD", "XBTUSD"]
        assert config.base_currencies == ["USD", "EUR"]

    def test_lists_accepted_as_lists(self):
        assert ExchangeConfig(available_pairs=["ETH_BTC"]).available_pairs == ["ETH_BTC"]

    def test_polling_delay_must_be_positive(self):
        with pytest.raises(ValidationError):
            ExchangeConfig(polling_delay_seconds=0)

    def test_format_override(self):
        config = ExchangeConfig(request_currency_pair_format={"delimiter": "-", "uppercase": False})
        assert config.request_currency_pair_format == CurrencyPairFormat(delimiter="-", uppercase=False)


class TestValidateConfiguration:
    """Test startup validation"""

    def test_valid_configuration(self):
        config = Settings(
            _env_file=None,
            exchanges={"liqui": {"enabled": True, "enabled_pairs": "ETH_BTC,LTC_BTC"}},
        )
        validate_configuration(config)

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            validate_configuration(Settings(_env_file=None, log_level="LOUD"))

    def test_unknown_exchange(self):
        config = Settings(_env_file=None, exchanges={"mtgox": {"enabled": True}})
        with pytest.raises(ValueError, match="Unknown exchange"):
            validate_configuration(config)

    def test_unparsable_pair_is_fatal(self):
        config = Settings(
            _env_file=None,
            exchanges={"liqui": {"enabled": True, "enabled_pairs": "ETHBTC"}},
        )
        with pytest.raises(FormatError):
            validate_configuration(config)

    def test_long_code_needs_base_currency(self):
        pairs = {"enabled": True, "enabled_pairs": "DASHUSD"}
        with pytest.raises(FormatError):
            validate_configuration(Settings(_env_file=None, exchanges={"kraken": pairs}))
        validate_configuration(
            Settings(_env_file=None, exchanges={"kraken": {**pairs, "base_currencies": "USD"}})
        )

    def test_non_positive_timeout(self):
        with pytest.raises(ValueError):
            validate_configuration(Settings(_env_file=None, request_timeout=0))
