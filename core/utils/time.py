"""
Time Utilities

Exchanges report times in different units:
- Binance: milliseconds since epoch (e.g. 1704110400000)
- Gemini: "timestampms" in milliseconds, "timestamp" in seconds
- Kraken: seconds since epoch as a float (e.g. 1704110400.1234)
- Liqui: seconds since epoch

These helpers normalize them to timezone-aware UTC datetimes, and provide
clock sources for nonce seeding.
"""

import time
from datetime import datetime, timezone
from typing import Union


def to_utc_datetime(timestamp: Union[int, float, str]) -> datetime:
    """
    Convert a timestamp (seconds or milliseconds) to UTC datetime.

    Detection Logic:
        - If timestamp > 1e12: milliseconds
        - Otherwise: seconds

    Args:
        timestamp: Unix timestamp in seconds or milliseconds (numeric strings accepted)

    Returns:
        datetime: Timezone-aware datetime in UTC

    Raises:
        ValueError: If timestamp is negative or not numeric

    Examples:
        >>> to_utc_datetime(1704110400000)
        datetime.datetime(2024, 1, 1, 12, 0, tzinfo=datetime.timezone.utc)

        >>> to_utc_datetime("1704110400.5")
        datetime.datetime(2024, 1, 1, 12, 0, 0, 500000, tzinfo=datetime.timezone.utc)
    """
    value = float(timestamp)

    if value < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")

    # Current time in seconds: ~1.7 billion, in milliseconds: ~1.7 trillion
    if value > 1e12:
        value = value / 1000.0

    return datetime.fromtimestamp(value, tz=timezone.utc)


def current_utc_datetime() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


def current_utc_timestamp(milliseconds: bool = False) -> int:
    """
    Get current UTC timestamp.

    Args:
        milliseconds: If True, return milliseconds; if False, return seconds

    Examples:
        >>> current_utc_timestamp()
        1704110400

        >>> current_utc_timestamp(milliseconds=True)
        1704110400000
    """
    now = time.time()
    return int(now * 1000) if milliseconds else int(now)


def current_utc_timestamp_ms() -> int:
    """Millisecond clock, used to seed timestamp-style nonces."""
    return current_utc_timestamp(milliseconds=True)
