"""
Logging for the exchange layer

Every module logs through a child of the "exchcore" logger:

    from core.logging import get_logger
    logger = get_logger(__name__)   # "exchcore.exchanges.kraken"

setup_logging() attaches a single stdout handler to "exchcore" (calling it
again replaces that handler) and leaves the root logger alone, so an
embedding application keeps control of its own logging. The level comes from
the LOG_LEVEL setting.

What goes where:
    DEBUG    - request paths, public params, response status and timing
    INFO     - setup, initialize and shutdown of exchanges
    WARNING  - rate limits and cached fallbacks
    ERROR    - failed polls and requests

API keys, secrets, nonces and signatures never reach the log: signed requests
don't log their params, and public params pass through redact() first.
"""

import logging
import sys
from typing import Any, Dict, Optional, TextIO

from core.config import settings

ROOT_LOGGER_NAME = "exchcore"
DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s %(message)s"

SECRET_PARAM_NAMES = frozenset({
    "key", "apikey", "api_key", "secret", "api_secret", "sign", "signature", "nonce",
})


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    stream: Optional[TextIO] = None,
) -> logging.Logger:
    """
    Configure the "exchcore" logger.

    Args:
        log_level: DEBUG, INFO, WARNING, ERROR or CRITICAL (unknown -> INFO)
        log_format: Format string (DEFAULT_FORMAT if None)
        stream: Output stream (stdout if None)

    Returns:
        logging.Logger: The "exchcore" logger
    """
    root = logging.getLogger(ROOT_LOGGER_NAME)
    root.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    for handler in [h for h in root.handlers if getattr(h, "_exchcore", False)]:
        root.removeHandler(handler)

    handler = logging.StreamHandler(stream or sys.stdout)
    handler.setFormatter(logging.Formatter(log_format or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler._exchcore = True
    root.addHandler(handler)
    return root


logger = setup_logging(log_level=settings.log_level)


def get_logger(name: str) -> logging.Logger:
    """Child of the "exchcore" logger, typically get_logger(__name__)."""
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def redact(params: Optional[Dict[str, Any]]) -> Optional[Dict[str, Any]]:
    """Copy of params with credential-like values masked."""
    if not params:
        return params
    return {
        name: "***" if str(name).lower() in SECRET_PARAM_NAMES else value
        for name, value in params.items()
    }


def log_api_request(exchange: str, endpoint: str, params: Optional[Dict[str, Any]] = None) -> None:
    """
    Example:
        >>> log_api_request("binance", "/api/v3/depth", {"symbol": "ETHBTC", "limit": 100})
        [DEBUG] exchcore API Request: binance /api/v3/depth | Params: {'symbol': 'ETHBTC', 'limit': 100}
    """
    if params:
        logger.debug(f"API Request: {exchange} {endpoint} | Params: {redact(params)}")
    else:
        logger.debug(f"API Request: {exchange} {endpoint}")


def log_api_response(exchange: str, endpoint: str, status: int, response_time: Optional[float] = None) -> None:
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    logger.debug(f"API Response: {exchange} {endpoint} | Status: {status}{time_str}")
