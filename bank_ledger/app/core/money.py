"""Exact two-place money arithmetic.

Balances and amounts are stored as integer minor units (cents) and exposed as
``Decimal`` quantized to two places. Floats never take part in arithmetic; a
float passed in directly is converted through ``str`` first. JSON request
bodies are decoded with ``parse_float=Decimal`` so wire numbers keep every
digit the client sent.
"""

from __future__ import annotations

from decimal import Decimal, InvalidOperation
from typing import Any

from .errors import InvalidAmountError

CENT = Decimal("0.01")
# Ceiling for a single amount and for any balance; its minor units fit in BIGINT.
MAX_AMOUNT = Decimal("999999999999999.99")
MAX_MINOR_UNITS = 99999999999999999


def to_decimal(value: Any) -> Decimal:
    if isinstance(value, bool):
        raise InvalidAmountError("Amount must be a number")
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value).strip())
        except InvalidOperation as exc:
            raise InvalidAmountError("Amount must be a number") from exc
    else:
        raise InvalidAmountError("Amount must be a number")

    if not amount.is_finite():
        raise InvalidAmountError("Amount must be a finite number")
    return amount


def quantize_cents(amount: Decimal) -> Decimal:
    try:
        quantized = amount.quantize(CENT)
    except InvalidOperation as exc:
        raise InvalidAmountError("Amount is out of range") from exc
    if quantized != amount:
        raise InvalidAmountError("Amount cannot have more than 2 decimal places")
    return quantized


def parse_amount(value: Any) -> Decimal:
    """Validate a movement amount: positive, finite, at most two decimals."""
    amount = to_decimal(value)
    if amount <= 0:
        raise InvalidAmountError("Amount must be positive")
    amount = quantize_cents(amount)
    if amount > MAX_AMOUNT:
        raise InvalidAmountError("Amount is out of range")
    return amount


def to_minor_units(amount: Decimal) -> int:
    return int(quantize_cents(amount) * 100)


def from_minor_units(minor: int) -> Decimal:
    return (Decimal(minor) / 100).quantize(CENT)


def format_amount(amount: Decimal) -> str:
    return f"{amount.quantize(CENT):f}"
