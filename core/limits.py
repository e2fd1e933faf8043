"""
Exchange Limits

Per-pair numeric-precision constraints an exchange declares: decimal places
for price and amount, minimum order amount and minimum order total (notional).
Callers round and validate against them before submitting orders.

Missing data is reported as LIMIT_UNSET (-1), never 0: zero is a valid
answer for some fields ("no minimum").
"""

from decimal import ROUND_DOWN, Decimal
from typing import Dict, Iterable, Optional

from pydantic import BaseModel, Field

from core.pair import CurrencyPair

LIMIT_UNSET = -1


class PairLimits(BaseModel):
    """Declared limits of one pair; -1 means the exchange didn't declare it."""

    price_decimal_places: int = Field(default=LIMIT_UNSET, description="Max decimal places of the price")
    amount_decimal_places: int = Field(default=LIMIT_UNSET, description="Max decimal places of the amount")
    min_amount: float = Field(default=LIMIT_UNSET, description="Minimum order amount (base currency)")
    min_total: float = Field(default=LIMIT_UNSET, description="Minimum order total (quote currency)")


def decimal_places(step: str) -> int:
    """
    Number of decimal places implied by a step/tick size string.

    Example:
        >>> decimal_places("0.01000000")
        2
        >>> decimal_places("1.00000000")
        0
    """
    exponent = Decimal(step).normalize().as_tuple().exponent
    return max(0, -exponent)


def _round_down(value: float, places: int) -> float:
    quantum = Decimal(1).scaleb(-places)
    return float(Decimal(str(value)).quantize(quantum, rounding=ROUND_DOWN))


class CurrencyLimits:
    """
    Limits table of an exchange.

    Args:
        exchange: Exchange name
        limits: Mapping of pair to its PairLimits

    Example:
        >>> limits = CurrencyLimits("gemini", {CurrencyPair("BTC", "USD"): PairLimits(price_decimal_places=2)})
        >>> limits.get_price_decimal_places(CurrencyPair("BTC", "USD"))
        2
        >>> limits.get_price_decimal_places(CurrencyPair("LTC", "USD"))
        -1
    """

    def __init__(self, exchange: str, limits: Optional[Dict[CurrencyPair, PairLimits]] = None):
        self.exchange = exchange
        self._limits: Dict[CurrencyPair, PairLimits] = dict(limits or {})

    def get(self, pair: CurrencyPair) -> Optional[PairLimits]:
        return self._limits.get(pair)

    def get_price_decimal_places(self, pair: CurrencyPair) -> int:
        info = self._limits.get(pair)
        return info.price_decimal_places if info else LIMIT_UNSET

    def get_amount_decimal_places(self, pair: CurrencyPair) -> int:
        info = self._limits.get(pair)
        return info.amount_decimal_places if info else LIMIT_UNSET

    def get_min_amount(self, pair: CurrencyPair) -> float:
        info = self._limits.get(pair)
        return info.min_amount if info else LIMIT_UNSET

    def get_min_total(self, pair: CurrencyPair) -> float:
        info = self._limits.get(pair)
        return info.min_total if info else LIMIT_UNSET

    def round_price(self, pair: CurrencyPair, price: float) -> float:
        """Round price down to the allowed decimal places (unchanged if undeclared)."""
        places = self.get_price_decimal_places(pair)
        return price if places == LIMIT_UNSET else _round_down(price, places)

    def round_amount(self, pair: CurrencyPair, amount: float) -> float:
        """Round amount down to the allowed decimal places (unchanged if undeclared)."""
        places = self.get_amount_decimal_places(pair)
        return amount if places == LIMIT_UNSET else _round_down(amount, places)

    def meets_minimums(self, pair: CurrencyPair, amount: float, price: float) -> bool:
        """True if amount and amount * price satisfy the declared minima."""
        min_amount = self.get_min_amount(pair)
        if min_amount != LIMIT_UNSET and amount < min_amount:
            return False
        min_total = self.get_min_total(pair)
        if min_total != LIMIT_UNSET:
            total = Decimal(str(amount)) * Decimal(str(price))
            if total < Decimal(str(min_total)):
                return False
        return True

    def pairs(self) -> Iterable[CurrencyPair]:
        return list(self._limits)

    def __len__(self) -> int:
        return len(self._limits)

    def __repr__(self) -> str:
        return f"<CurrencyLimits(exchange='{self.exchange}', pairs={len(self._limits)})>"
