"""
pricing.py - Integer pricing for sale phases

Key Formulas:
    effective_rate = base_price * DISCOUNT_SCALE // (DISCOUNT_SCALE - discount_bps)
    cost_due       = ceil(amount / effective_rate)

base_price is the number of token base units bought by one base unit of the
settlement currency. A discount raises the rate, so the buyer gets more
tokens per currency unit. The rate is floored and the cost is rounded up,
so the sale never under-charges.

All arithmetic is on Python ints (arbitrary precision), so no intermediate
product can overflow or truncate before the final division.
"""

from typing import Optional

# 1000 discount points make 100 %.
DISCOUNT_SCALE = 1000
MAX_DISCOUNT_BPS = DISCOUNT_SCALE


def _require_int(name: str, value) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError(f"{name} must be an integer, got {type(value).__name__}")


def ceil_div(numerator: int, denominator: int) -> int:
    """Integer division rounding towards positive infinity."""
    if denominator <= 0:
        raise ValueError(f"denominator must be positive, got {denominator}")
    return -(-numerator // denominator)


def effective_rate(base_price: int, discount_bps: int) -> Optional[int]:
    """
    Token base units per currency base unit for a phase.

    Returns None for a 100 % discount, where the rate is unbounded.

    Example:
        effective_rate(5, 505) == 10     # 5 * 1000 // 495
        effective_rate(5, 0) == 5
    """
    _require_int("base_price", base_price)
    _require_int("discount_bps", discount_bps)
    if base_price < 1:
        raise ValueError(f"base_price must be positive, got {base_price}")
    if not 0 <= discount_bps <= MAX_DISCOUNT_BPS:
        raise ValueError(f"discount_bps must be within 0..{MAX_DISCOUNT_BPS}, got {discount_bps}")
    if discount_bps == MAX_DISCOUNT_BPS:
        return None
    return base_price * DISCOUNT_SCALE // (DISCOUNT_SCALE - discount_bps)


def cost_for(amount: int, rate: Optional[int]) -> int:
    """Currency base units due for amount tokens at rate (free when rate is None)."""
    _require_int("amount", amount)
    if amount < 0:
        raise ValueError(f"amount must be non-negative, got {amount}")
    if rate is None:
        return 0
    return ceil_div(amount, rate)


def cost_due(amount: int, base_price: int, discount_bps: int) -> int:
    """
    Currency base units a buyer must pay for amount tokens in a phase.

    Example:
        cost_due(400, 5, 505) == 40
        cost_due(401, 5, 505) == 41   # rounded up, never under-charged
    """
    return cost_for(amount, effective_rate(base_price, discount_bps))
