"""Pricing arithmetic: amount bounds, bid increments and fee splits.

All arithmetic is exact. Decimal fractions are turned into integer ratios
before they touch an amount, so results never depend on float rounding.
"""

from __future__ import annotations

from decimal import Decimal

from title_exchange.domain.exceptions import InvalidAmountError

MAX_AMOUNT = 2**256 - 1


def validate_amount(value: object, field: str = "amount") -> int:
    """Return ``value`` if it is an int in [1, MAX_AMOUNT], else raise InvalidAmountError."""
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidAmountError(field, value)
    if value < 1 or value > MAX_AMOUNT:
        raise InvalidAmountError(field, value)
    return value


def validate_fraction(value: Decimal, field: str) -> Decimal:
    """Fractions must be finite and within [0, 1)."""
    if not value.is_finite() or value < 0 or value >= 1:
        raise InvalidAmountError(field, value)
    return value


def apply_increment(amount: int, increment: Decimal) -> int:
    """Return ceil(amount * (1 + increment)) using integer arithmetic."""
    num, den = increment.as_integer_ratio()
    # -(-a // b) is ceiling division for positive b
    return -(-(amount * (den + num)) // den)


def min_next_bid(ask_price: int, highest_active: int | None, increment: Decimal) -> int:
    """Minimum acceptable next bid.

    The ask price when the book has no live bids, otherwise the highest live
    bid raised by the minimum increment.
    """
    if highest_active is None:
        return ask_price
    return apply_increment(highest_active, increment)


def compute_fee(amount: int, fee_rate: Decimal) -> int:
    """Return floor(amount * fee_rate)."""
    num, den = fee_rate.as_integer_ratio()
    return amount * num // den


def split_proceeds(amount: int, fee_rate: Decimal) -> tuple[int, int]:
    """Split a sale amount into (fee, seller proceeds). The parts always sum to amount."""
    fee = compute_fee(amount, fee_rate)
    return fee, amount - fee
