"""Utilities for working with monetary values in kidledger."""

from __future__ import annotations

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Union

CENT = Decimal("0.01")
ZERO = Decimal("0.00")

AmountLike = Union[Decimal, int, float, str]


def to_decimal(value: AmountLike) -> Decimal:
    """Convert ``value`` to a :class:`~decimal.Decimal` with two decimal places."""

    if isinstance(value, bool):
        raise TypeError("Booleans are not amounts.")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, (int, float)):
        result = Decimal(str(value))
    elif isinstance(value, str):
        try:
            result = Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"Invalid amount: {value!r}") from exc
    else:
        raise TypeError(f"Unsupported amount type: {type(value)!r}")

    if not result.is_finite():
        raise ValueError(f"Amount must be a finite number, got {value!r}.")
    return result.quantize(CENT, rounding=ROUND_HALF_UP)


def require_positive(amount: Decimal, *, allow_zero: bool = False) -> Decimal:
    """Ensure ``amount`` is positive (or non-negative when ``allow_zero`` is true)."""

    if allow_zero:
        if amount < ZERO:
            raise ValueError("Amount must be zero or greater.")
    else:
        if amount <= ZERO:
            raise ValueError("Amount must be greater than zero.")
    return amount


def to_cents(value: AmountLike) -> int:
    """Return ``value`` as a whole number of cents."""

    return int(to_decimal(value) * 100)


def from_cents(cents: int) -> Decimal:
    """Return a cents integer as a two-place :class:`~decimal.Decimal`."""

    return (Decimal(cents) / 100).quantize(CENT)


def percent_of(amount: Decimal, percent: AmountLike) -> Decimal:
    """Return ``percent`` percent of ``amount`` rounded half-up to the cent."""

    share = amount * Decimal(str(percent)) / Decimal(100)
    return share.quantize(CENT, rounding=ROUND_HALF_UP)


def format_currency(amount: Decimal) -> str:
    """Return ``amount`` as a currency formatted string (e.g. ``$12.34``)."""

    value = amount.quantize(CENT, rounding=ROUND_HALF_UP)
    if value < ZERO:
        return f"-${-value:,.2f}"
    return f"${value:,.2f}"


__all__ = [
    "AmountLike",
    "CENT",
    "ZERO",
    "format_currency",
    "from_cents",
    "percent_of",
    "require_positive",
    "to_cents",
    "to_decimal",
]
