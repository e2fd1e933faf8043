"""
Order State Normalizer

Maps each exchange's raw order-status vocabulary onto the canonical
OrderStatus (ACTIVE, FILLED, ABORTED, UNKNOWN).

Rules:
    - A computed remaining amount of zero means FILLED, whatever the raw
      status says. Some exchanges keep reporting "partially filled" after
      the last fill.
    - Otherwise the raw status is looked up in the exchange's vocabulary.
    - Anything unrecognised is UNKNOWN, never ACTIVE, so a strategy doesn't
      keep managing an order that may be dead.

There is no stored state machine: every poll produces a fresh Order from the
latest raw snapshot.

Remaining amounts are computed with decimal.Decimal built from the string form
of each float, so 0.3 - 0.1 - 0.2 is exactly zero.
"""

from datetime import datetime
from decimal import Decimal
from typing import Any, Dict, Optional

from core.errors import FormatError
from core.pair import CurrencyPair
from core.schemas import Order, OrderSide, OrderStatus, OrderType

DEFAULT_VOCABULARY: Dict[str, OrderStatus] = {
    "new": OrderStatus.ACTIVE,
    "partially_filled": OrderStatus.ACTIVE,
    "open": OrderStatus.ACTIVE,
    "filled": OrderStatus.FILLED,
    "canceled": OrderStatus.ABORTED,
    "cancelled": OrderStatus.ABORTED,
    "pending_cancel": OrderStatus.ABORTED,
    "expired": OrderStatus.ABORTED,
    "rejected": OrderStatus.ABORTED,
}


def normalize_token(raw: Any) -> str:
    """'PARTIALLY-FILLED' / 'Partially filled' -> 'partially_filled'"""
    return str(raw).strip().lower().replace("-", "_").replace(" ", "_")


def to_decimal(value: Any) -> Decimal:
    return Decimal(str(value))


def remaining_amount(amount: float, filled_amount: float) -> float:
    """amount - filled_amount, computed in decimal arithmetic."""
    return float(to_decimal(amount) - to_decimal(filled_amount))


def format_decimal(value: Any) -> str:
    """Plain decimal string of a number for request bodies (1e-05 -> "0.00001")."""
    return format(to_decimal(value), "f")


class OrderStatusNormalizer:
    """
    Total mapping from one exchange's raw statuses to OrderStatus.

    Args:
        exchange: Exchange name (for Order construction and logging)
        vocabulary: Raw status -> canonical status; merged over DEFAULT_VOCABULARY
                    unless include_defaults is False

    Example:
        >>> normalizer = OrderStatusNormalizer("binance")
        >>> normalizer.normalize("PARTIALLY_FILLED")
        <OrderStatus.ACTIVE: 'active'>
        >>> normalizer.normalize("PARTIALLY_FILLED", remaining_amount=0)
        <OrderStatus.FILLED: 'filled'>
    """

    def __init__(
        self,
        exchange: str,
        vocabulary: Optional[Dict[Any, OrderStatus]] = None,
        include_defaults: bool = True,
    ):
        self.exchange = exchange
        self.vocabulary: Dict[str, OrderStatus] = dict(DEFAULT_VOCABULARY) if include_defaults else {}
        for raw, status in (vocabulary or {}).items():
            self.vocabulary[normalize_token(raw)] = status

    def normalize(self, raw_status: Any, remaining_amount: Optional[float] = None) -> OrderStatus:
        """
        Canonical status for a raw status.

        Args:
            raw_status: Status as reported by the exchange (any type; None allowed)
            remaining_amount: Computed remaining amount, if known

        Returns:
            OrderStatus (UNKNOWN for anything unrecognised)
        """
        if remaining_amount is not None and to_decimal(remaining_amount) == 0:
            return OrderStatus.FILLED
        if raw_status is None:
            return OrderStatus.UNKNOWN
        return self.vocabulary.get(normalize_token(raw_status), OrderStatus.UNKNOWN)

    def build_order(
        self,
        *,
        order_id: Any,
        pair: CurrencyPair,
        side: Any,
        raw_status: Any,
        amount: float,
        filled_amount: float,
        rate: float,
        order_type: Optional[OrderType] = None,
        created_at: Optional[datetime] = None,
        remaining: Optional[float] = None,
    ) -> Order:
        """
        Build a canonical Order from raw exchange values.

        remaining is computed as amount - filled_amount unless the exchange
        reports it directly.
        """
        if remaining is None:
            remaining = remaining_amount(amount, filled_amount)

        try:
            order_side = OrderSide(normalize_token(side))
        except ValueError as e:
            raise FormatError(f"Unknown order side: {side!r}", self.exchange) from e

        return Order(
            order_id=str(order_id),
            pair=pair,
            side=order_side,
            type=order_type,
            status=self.normalize(raw_status, remaining),
            amount=amount,
            filled_amount=filled_amount,
            remaining_amount=remaining,
            rate=rate,
            created_at=created_at,
        )

    def __repr__(self) -> str:
        return f"<OrderStatusNormalizer(exchange='{self.exchange}', statuses={len(self.vocabulary)})>"
