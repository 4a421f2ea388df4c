"""
converter.py - Fixed-Point Conversion Between Assets

Pure functions converting an old-asset amount into new-asset base units:

    amount_out = floor(amount_in * num * 10^new_decimals / (den * 10^old_decimals))

Python integers never wrap, so the native widths of the asset ledger are
enforced explicitly: inputs and the result must fit u64, every intermediate
product must fit u128. Anything wider raises MathOverflow.

Division truncates toward zero, so the program never issues more than the
exact rational amount.
"""

from __future__ import annotations
from decimal import Decimal

from .core import (
    ConfigurationRecord, MathOverflow,
    U64_MAX, U128_MAX, MAX_DECIMALS,
)


def _checked_mul(a: int, b: int, what: str) -> int:
    product = a * b
    if product > U128_MAX:
        raise MathOverflow(f"{what} exceeds u128")
    return product


def pow10(decimals: int) -> int:
    """
    Return 10**decimals as a u128.

    Raises:
        ValueError: If decimals is negative.
        MathOverflow: If decimals > 38 (10**39 does not fit u128).
    """
    if decimals < 0:
        raise ValueError(f"decimals must be non-negative, got {decimals}")
    if decimals > MAX_DECIMALS:
        raise MathOverflow(f"10^{decimals} exceeds u128")
    return 10 ** decimals


def convert_amount(
    amount_in: int,
    ratio_numerator: int,
    ratio_denominator: int,
    old_decimals: int,
    new_decimals: int,
) -> int:
    """
    Convert old-asset base units to new-asset base units, rounding down.

    Args:
        amount_in: Old-asset base units (u64)
        ratio_numerator: Exchange rate numerator (u64)
        ratio_denominator: Exchange rate denominator (u64)
        old_decimals: Fractional digits of the old asset
        new_decimals: Fractional digits of the new asset

    Returns:
        New-asset base units (u64). Zero when the input rounds down to nothing.

    Raises:
        ValueError: If any argument is negative.
        MathOverflow: If an input or the result exceeds u64, an intermediate
                      exceeds u128, or the scaled denominator is zero.

    Example:
        >>> convert_amount(1_000_000_000, 1, 10, 9, 9)
        100000000
        >>> convert_amount(1, 1, 1, 6, 9)
        1000
    """
    for name, value in (("amount_in", amount_in),
                        ("ratio_numerator", ratio_numerator),
                        ("ratio_denominator", ratio_denominator)):
        if value < 0:
            raise ValueError(f"{name} must be non-negative, got {value}")
        if value > U64_MAX:
            raise MathOverflow(f"{name} exceeds u64")

    num = _checked_mul(amount_in, ratio_numerator, "amount * ratio_numerator")
    num = _checked_mul(num, pow10(new_decimals), "scaled numerator")
    den = _checked_mul(ratio_denominator, pow10(old_decimals), "scaled denominator")
    if den == 0:
        raise MathOverflow("division by zero")

    amount_out = num // den
    if amount_out > U64_MAX:
        raise MathOverflow("converted amount exceeds u64")
    return amount_out


def quote(record: ConfigurationRecord, amount_old: int) -> int:
    """Convert amount_old at the record's ratio and decimals (no cap or window checks)."""
    return convert_amount(
        amount_old,
        record.ratio_numerator,
        record.ratio_denominator,
        record.old_decimals,
        record.new_decimals,
    )


def to_ui_amount(base_units: int, decimals: int) -> Decimal:
    """
    Express base units in whole-asset terms, exactly.

    Example:
        >>> to_ui_amount(1_500_000, 6)
        Decimal('1.500000')
    """
    return Decimal(base_units).scaleb(-decimals)
