"""
Configuration Management Module

This module handles loading, validating, and providing access to application
configuration from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Global settings (log level, HTTP timeout, default polling delay)
- One ExchangeConfig per exchange, loaded from nested environment variables:
      EXCHANGES__KRAKEN__ENABLED=true
      EXCHANGES__KRAKEN__API_KEY=...
      EXCHANGES__KRAKEN__ENABLED_PAIRS=ETHUSD,XBTUSD
- Comma-separated strings are converted to lists
- validate_configuration() fails fast at startup on malformed settings

Usage:
    from core.config import settings

    print(settings.log_level)
    kraken = settings.exchanges.get("kraken")
"""

from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from core.pair import CurrencyPairFormat


class ExchangeConfig(BaseModel):
    """
    Configuration of one exchange instance.

    Attributes:
        name: Exchange identifier (filled from the settings key if empty)
        enabled: Whether the exchange should be set up and polled
        authenticated_api_support: Allow private (signed) endpoints
        api_key: API key
        api_secret: API secret
        client_id: Client/customer id (exchanges that need one)
        polling_delay_seconds: Delay between two polls of the REST API
        verbose: Log raw requests and responses
        websocket_enabled: Use websocket feeds where the driver supports them
        use_sandbox: Talk to the exchange's sandbox environment
        base_currencies: Fiat/base currencies of the account
        available_pairs: Pairs the exchange lists (config format)
        enabled_pairs: Pairs to poll and trade (config format)
        request_currency_pair_format: Overrides the driver's request format
        config_currency_pair_format: Overrides the driver's config format
    """

    name: str = ""
    enabled: bool = False
    authenticated_api_support: bool = False
    api_key: str = ""
    api_secret: str = ""
    client_id: str = ""
    polling_delay_seconds: float = Field(default=10.0, gt=0)
    verbose: bool = False
    websocket_enabled: bool = False
    use_sandbox: bool = False
    base_currencies: List[str] = Field(default_factory=list)
    available_pairs: List[str] = Field(default_factory=list)
    enabled_pairs: List[str] = Field(default_factory=list)
    request_currency_pair_format: Optional[CurrencyPairFormat] = None
    config_currency_pair_format: Optional[CurrencyPairFormat] = None

    @field_validator("base_currencies", "available_pairs", "enabled_pairs", mode="before")
    @classmethod
    def split_comma_separated(cls, v):
        """Accept "ETHUSD,XBTUSD" as well as a list"""
        if v is None:
            return []
        if isinstance(v, str):
            return [item.strip() for item in v.split(",") if item.strip()]
        return v

    @field_validator("name")
    @classmethod
    def validate_name(cls, v: str) -> str:
        return v.strip().lower()


class Settings(BaseSettings):
    """
    Application Settings

    Values are automatically loaded from environment variables or .env file.

    Attributes:
        environment: Current environment (development, production)
        log_level: Logging level
        request_timeout: Timeout for HTTP requests in seconds
        default_polling_delay: Polling delay for exchanges that don't set one
        exchanges: Per-exchange configuration, keyed by exchange name
    """

    environment: str = Field(
        default="development",
        description="Application environment (development, production)"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    request_timeout: float = Field(
        default=15.0,
        description="HTTP request timeout in seconds"
    )

    default_polling_delay: float = Field(
        default=10.0,
        description="Seconds between two polls of an exchange"
    )

    exchanges: Dict[str, ExchangeConfig] = Field(
        default_factory=dict,
        description="Exchange configurations keyed by exchange name"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False,
        env_nested_delimiter="__",
    )

    @property
    def exchange_configs(self) -> List[ExchangeConfig]:
        """
        Exchange configurations with their name filled in from the settings key.

        Example:
            >>> [c.name for c in settings.exchange_configs]
            ['kraken', 'gemini']
        """
        configs = []
        for key, config in self.exchanges.items():
            configs.append(config if config.name else config.model_copy(update={"name": key.lower()}))
        return configs

    @property
    def enabled_exchanges(self) -> List[str]:
        return [c.name for c in self.exchange_configs if c.enabled]


# Single instance, loaded once and reused
settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Optional[Settings] = None) -> None:
    """
    Validate settings on application startup.

    Malformed persisted configuration is fatal: it is reported here instead
    of being retried at runtime.

    Raises:
        ValueError: If the log level or an exchange name is invalid
        FormatError: If a configured currency pair cannot be parsed
    """
    # logging.py imports config.py, so import here
    from core.logging import logger
    from core.exchange_manager import EXCHANGE_CLASSES
    from core.pair import parse_config_pairs

    config = config or settings

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ValueError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    if config.request_timeout <= 0:
        raise ValueError(f"Invalid REQUEST_TIMEOUT: {config.request_timeout}. Must be positive")

    for exchange_config in config.exchange_configs:
        exchange_class = EXCHANGE_CLASSES.get(exchange_config.name)
        if exchange_class is None:
            raise ValueError(
                f"Unknown exchange '{exchange_config.name}'. "
                f"Must be one of: {', '.join(EXCHANGE_CLASSES)}"
            )

        fmt = exchange_config.config_currency_pair_format or exchange_class.CONFIG_FORMAT
        parse_config_pairs(
            exchange_config.available_pairs + exchange_config.enabled_pairs,
            fmt,
            exchange_config.base_currencies,
        )

        if exchange_config.authenticated_api_support and not (exchange_config.api_key and exchange_config.api_secret):
            logger.warning(
                f"{exchange_config.name}: authenticated API support enabled but credentials are missing"
            )

    logger.info("Configuration validated successfully")
    logger.info(f"Environment: {config.environment}")
    logger.info(f"Log level: {config.log_level.upper()}")
    logger.info(f"Enabled exchanges: {', '.join(config.enabled_exchanges) or 'none'}")
