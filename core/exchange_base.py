"""
Shared Exchange Context

State every exchange driver carries regardless of which exchange it talks to:
identity, flags, credentials with their nonce sequencer, the two pair formats,
the currency lists from configuration and the shared market data cache.

Drivers hold one ExchangeContext as a plain attribute instead of inheriting
the fields, so the same context can be inspected and built in isolation.

Usage:
    context = ExchangeContext(
        name="liqui",
        request_format=CurrencyPairFormat(delimiter="_", uppercase=False, separator="-"),
        config_format=CurrencyPairFormat(delimiter="_"),
    )
    context.setup(exchange_config)
    context.format_currency(CurrencyPair("ETH", "BTC"))   # "eth_btc"
"""

from typing import Iterable, List, Optional, Sequence, Set

from core.cache import MarketDataCache
from core.config import ExchangeConfig, settings
from core.errors import CredentialsMissingError
from core.logging import get_logger
from core.nonce import Nonce
from core.pair import CurrencyPair, CurrencyPairFormat, format_pairs, parse_config_pairs, parse_pair
from core.schemas import SPOT
from core.signer import Credentials

logger = get_logger(__name__)


class ExchangeContext:
    """
    Configuration-derived state of one exchange instance.

    Attributes:
        name: Exchange identifier (lowercase)
        enabled: Set by setup(); a disabled exchange is neither polled nor traded
        verbose: Log raw requests and responses
        websocket_enabled: Use websocket feeds where supported
        use_sandbox: Talk to the exchange's sandbox environment
        polling_delay: Seconds between two polls
        authenticated_api_support: Private endpoints allowed
        credentials: API key material
        nonce: Nonce sequencer bound to the credentials
        request_format: Pair format of outbound requests
        config_format: Pair format of persisted configuration
        base_currencies: Fiat/base currencies of the account
        available_pairs: Pairs the exchange lists
        enabled_pairs: Pairs to poll and trade
        asset_types: Asset types the exchange trades
        cache: Shared market data cache
    """

    def __init__(
        self,
        name: str,
        request_format: Optional[CurrencyPairFormat] = None,
        config_format: Optional[CurrencyPairFormat] = None,
        nonce: Optional[Nonce] = None,
        cache: Optional[MarketDataCache] = None,
        asset_types: Sequence[str] = (SPOT,),
    ):
        self.name = name.lower()
        self.enabled = False
        self.verbose = False
        self.websocket_enabled = False
        self.use_sandbox = False
        self.polling_delay = settings.default_polling_delay
        self.authenticated_api_support = False
        self.credentials = Credentials()
        self.nonce = nonce or Nonce()
        self.request_format = request_format or CurrencyPairFormat()
        self.config_format = config_format or CurrencyPairFormat()
        self.base_currencies: List[str] = []
        self.available_pairs: List[CurrencyPair] = []
        self.enabled_pairs: List[CurrencyPair] = []
        self.asset_types = tuple(a.upper() for a in asset_types)
        self.cache = cache if cache is not None else MarketDataCache()

    def setup(self, config: ExchangeConfig) -> None:
        """
        Apply an exchange configuration.

        A disabled configuration only clears the enabled flag. Otherwise keys,
        delays, flags and format overrides are applied and the pair lists are
        parsed with the config format.

        Raises:
            FormatError: If a configured pair cannot be parsed
        """
        if not config.enabled:
            self.enabled = False
            logger.debug(f"{self.name}: disabled by configuration")
            return

        self.enabled = True
        self.authenticated_api_support = config.authenticated_api_support
        self.credentials = Credentials(
            api_key=config.api_key,
            api_secret=config.api_secret,
            client_id=config.client_id,
        )
        self.polling_delay = config.polling_delay_seconds
        self.verbose = config.verbose
        self.websocket_enabled = config.websocket_enabled
        self.use_sandbox = config.use_sandbox

        if config.request_currency_pair_format is not None:
            self.request_format = config.request_currency_pair_format
        if config.config_currency_pair_format is not None:
            self.config_format = config.config_currency_pair_format

        self.base_currencies = [c.strip().upper() for c in config.base_currencies]
        configured = parse_config_pairs(
            config.available_pairs + config.enabled_pairs, self.config_format, self.base_currencies
        )
        self.available_pairs = configured[:len(config.available_pairs)]
        self.enabled_pairs = configured[len(config.available_pairs):]

        logger.info(
            f"{self.name}: setup complete, {len(self.enabled_pairs)} enabled pair(s), "
            f"authenticated API {'on' if self.authenticated_api_support else 'off'}"
        )

    # ============================================
    # Pair Formatting
    # ============================================

    def format_currency(self, pair: CurrencyPair) -> str:
        """Pair as spelled in outbound requests."""
        return pair.format(self.request_format)

    def format_currencies(self, pairs: Iterable[CurrencyPair]) -> str:
        """Several pairs joined for one request ("ethbtc-ltcbtc")."""
        return format_pairs(pairs, self.request_format)

    def known_currencies(self) -> Set[str]:
        """Every currency code appearing in the available or enabled pairs."""
        codes: Set[str] = set(self.base_currencies)
        for pair in list(self.available_pairs) + list(self.enabled_pairs):
            codes.add(pair.base)
            codes.add(pair.quote)
        return codes

    def parse_symbol(self, text: str) -> CurrencyPair:
        """
        Parse a symbol as returned by the exchange.

        Delimiter-less symbols are split using the known currency codes when
        any are configured.
        """
        fmt = self.request_format
        known = None if (fmt.delimiter or fmt.index) else (self.known_currencies() or None)
        return parse_pair(text, fmt, known)

    def update_available_currencies(self, pairs: Iterable[CurrencyPair]) -> None:
        """Replace the available pair list with what the exchange reports."""
        new_pairs = list(dict.fromkeys(pairs))
        added = set(new_pairs) - set(self.available_pairs)
        removed = set(self.available_pairs) - set(new_pairs)
        if added or removed:
            logger.info(
                f"{self.name}: available pairs updated ({len(added)} added, {len(removed)} removed)"
            )
        self.available_pairs = new_pairs

    # ============================================
    # Checks
    # ============================================

    def require_credentials(self) -> Credentials:
        """
        Credentials for a private call.

        Raises:
            CredentialsMissingError: If authenticated API support is off or
                                     key/secret are empty
        """
        if not self.authenticated_api_support or not self.credentials.configured:
            raise CredentialsMissingError(self.name)
        return self.credentials

    def supports_asset_type(self, asset_type: str) -> bool:
        return asset_type.upper() in self.asset_types

    def __repr__(self) -> str:
        return f"<ExchangeContext(name='{self.name}', enabled={self.enabled})>"
