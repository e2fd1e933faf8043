"""
Exchange Error Taxonomy

Every failure raised by the exchange core or an exchange driver derives from
ExchangeError, so callers can handle "anything the exchange layer raised" with
a single except clause while still telling the categories apart.

Categories:
    - FormatError: a currency pair or numeric field could not be parsed
    - CredentialsMissingError: authenticated call attempted without API keys
    - RateLimitedError: the exchange throttled us (recoverable)
    - TransportError: network or HTTP failure
    - ExchangeBusinessError: the exchange returned a structured error payload
    - UnsupportedError: the exchange does not implement this capability

Usage:
    from core.errors import RateLimitedError

    try:
        book = await exchange.update_orderbook(pair)
    except RateLimitedError:
        book = cache.get_orderbook(exchange.name, pair, "SPOT")
"""

from typing import Any, Optional


class ExchangeError(Exception):
    """
    Base class for all errors raised by the exchange layer.

    Attributes:
        exchange: Name of the exchange the error originated from (may be None
                  for errors raised by exchange-agnostic code)
    """

    def __init__(self, message: str, exchange: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.exchange = exchange


class FormatError(ExchangeError, ValueError):
    """A currency pair string or numeric field could not be parsed."""


class CredentialsMissingError(ExchangeError):
    """
    An authenticated operation was attempted without API key/secret.

    Raised before any network call is made.
    """

    def __init__(self, exchange: Optional[str] = None):
        name = exchange or "exchange"
        super().__init__(
            f"{name}: authenticated request attempted without API credentials set",
            exchange,
        )


class RateLimitedError(ExchangeError):
    """
    The exchange rejected the request because of rate limiting.

    This is a recoverable condition. Callers that hold a previously cached
    snapshot should prefer serving it over failing the overall operation.

    Attributes:
        fallback: Optional partial result collected before the limit was hit
                  (e.g. open orders of the pairs that could still be queried)
        retry_after: Seconds suggested by the exchange before retrying, if any
    """

    def __init__(
        self,
        message: str = "rate limited",
        exchange: Optional[str] = None,
        fallback: Any = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message, exchange)
        self.fallback = fallback
        self.retry_after = retry_after


class TransportError(ExchangeError):
    """Network or HTTP failure. No automatic retry happens in the core."""

    def __init__(self, message: str, exchange: Optional[str] = None, status: Optional[int] = None):
        super().__init__(message, exchange)
        self.status = status


class ExchangeBusinessError(ExchangeError):
    """
    The exchange answered with a structured error (e.g. insufficient funds).

    str(error) is the exchange's message, verbatim.
    """

    def __init__(self, message: str, exchange: Optional[str] = None, code: Any = None):
        super().__init__(message, exchange)
        self.code = code


class UnsupportedError(ExchangeError, NotImplementedError):
    """The exchange driver does not implement the requested capability."""

    def __init__(self, operation: str, exchange: Optional[str] = None):
        name = exchange or "exchange"
        super().__init__(f"{name} does not support {operation}", exchange)
        self.operation = operation


def parse_float(value: Any, field: str = "value", exchange: Optional[str] = None) -> float:
    """
    Convert a raw numeric field (usually a string) to float.

    Raises:
        FormatError: If the value is missing or not numeric
    """
    if value is None or isinstance(value, bool):
        raise FormatError(f"Missing numeric field '{field}'", exchange)
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise FormatError(f"Invalid numeric field '{field}': {value!r}", exchange) from e
