"""
Canonical money helpers.

Every monetary amount in the system is a ``Decimal``: parsed once at the
boundary (request schemas, database rows) with ``to_decimal`` and rounded to
the currency's minor unit with ``quantize`` before it is persisted. Nothing
downstream re-parses strings or touches binary floats.

Rounding is ROUND_HALF_UP (a 0.005 tip rounds to 0.01), matching how the
cash drawer is counted.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from typing import Union

ZERO = Decimal("0")
HUNDRED = Decimal("100")

# Storage scale of the Money column (see db.base.Money)
STORAGE_EXPONENT = 2

# Currencies without a minor unit; everything else is stored with 2 decimals
ZERO_DECIMAL_CURRENCIES = {
    "UGX",  # Ugandan Shilling
    "JPY",  # Japanese Yen
    "KRW",  # South Korean Won
    "VND",  # Vietnamese Dong
    "CLP",  # Chilean Peso
    "ISK",  # Icelandic Krona
    "RWF",  # Rwandan Franc
}

AmountLike = Union[Decimal, str, int, float]


def to_decimal(value: AmountLike) -> Decimal:
    """Parse an amount into a Decimal.

    Floats go through ``str`` first so 0.1 becomes Decimal("0.1") rather than
    its binary expansion.

    Raises:
        ValueError: if the value is not a finite number.
    """
    if isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(str(value).strip())
        except (InvalidOperation, ValueError):
            raise ValueError(f"Invalid amount: {value!r}")
    if not result.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    return result


def currency_exponent(currency: str) -> int:
    """Number of decimal places of the currency's minor unit.

    >>> currency_exponent("USD")
    2
    >>> currency_exponent("ugx")
    0
    """
    return 0 if (currency or "").upper() in ZERO_DECIMAL_CURRENCIES else STORAGE_EXPONENT


def minor_unit(currency: str) -> Decimal:
    """Smallest representable amount, e.g. Decimal("0.01") for USD."""
    return Decimal(10) ** -currency_exponent(currency)


def quantize(amount: AmountLike, currency: str) -> Decimal:
    """Round to the currency's minor unit using half-up rounding.

    >>> quantize("10.125", "USD")
    Decimal('10.13')
    >>> quantize("1234.5", "UGX")
    Decimal('1235')
    """
    return to_decimal(amount).quantize(minor_unit(currency), rounding=ROUND_HALF_UP)


def format_amount(amount: AmountLike, currency: str) -> str:
    """String form used in JSON snapshots (receipts, events, audit metadata)."""
    return str(quantize(amount, currency))


def percent_of(amount: Decimal, percent: Decimal) -> Decimal:
    """Unrounded ``amount * percent / 100``."""
    return amount * percent / HUNDRED
