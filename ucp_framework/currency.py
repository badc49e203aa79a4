"""
Currency utilities.

Prices are stored and transmitted as integers in minor units (e.g. cents
for USD).  Conversion and formatting respect each currency's ISO 4217
exponent.
"""

from __future__ import annotations

from decimal import ROUND_HALF_UP, Decimal
from typing import Union

# ISO 4217 minor-unit exponents; anything not listed uses 2.
CURRENCY_EXPONENTS: dict[str, int] = {
    "USD": 2, "EUR": 2, "GBP": 2, "SGD": 2, "AUD": 2, "CAD": 2, "CHF": 2,
    "CNY": 2, "HKD": 2, "NZD": 2, "SEK": 2, "NOK": 2, "DKK": 2, "PLN": 2,
    "BRL": 2, "MXN": 2, "INR": 2, "THB": 2, "MYR": 2, "PHP": 2, "IDR": 2,
    "ZAR": 2, "AED": 2, "SAR": 2, "TWD": 2, "TRY": 2, "ILS": 2,
    "CZK": 2, "HUF": 2, "RON": 2, "BGN": 2, "RUB": 2, "UAH": 2,
    "COP": 2, "PEN": 2, "ARS": 2,
    "CLP": 0, "JPY": 0, "VND": 0, "KRW": 0,
    "BHD": 3, "KWD": 3, "OMR": 3,
}

CURRENCY_SYMBOLS: dict[str, str] = {
    "USD": "$",
    "EUR": "€",
    "GBP": "£",
    "JPY": "¥",
    "CNY": "CN¥",
    "KRW": "₩",
    "INR": "₹",
    "SGD": "S$",
    "AUD": "A$",
    "CAD": "CA$",
    "HKD": "HK$",
    "NZD": "NZ$",
}

DEFAULT_EXPONENT = 2

Number = Union[int, float, str, Decimal]


def normalize_currency(code: str) -> str:
    """Upper-case and validate an ISO 4217 alphabetic code."""
    normalized = (code or "").strip().upper()
    if len(normalized) != 3 or not normalized.isalpha():
        raise ValueError(f"Invalid ISO 4217 currency code: {code!r}")
    return normalized


def currency_exponent(code: str) -> int:
    return CURRENCY_EXPONENTS.get(code.upper(), DEFAULT_EXPONENT)


def round_half_up(value: Decimal) -> int:
    return int(value.quantize(Decimal(1), rounding=ROUND_HALF_UP))


def minor_to_major(amount: int, code: str) -> Decimal:
    """
    Convert minor units to major units.

    >>> minor_to_major(2999, "USD")
    Decimal('29.99')
    >>> minor_to_major(1000, "JPY")
    Decimal('1000')
    """
    return Decimal(amount).scaleb(-currency_exponent(code))


def major_to_minor(amount: Number, code: str) -> int:
    """
    Convert major units to minor units, rounding half up.

    >>> major_to_minor("29.99", "USD")
    2999
    """
    return round_half_up(Decimal(str(amount)).scaleb(currency_exponent(code)))


def _format_major(amount: int, code: str, grouping: bool) -> str:
    exponent = currency_exponent(code)
    major = minor_to_major(amount, code)
    if grouping:
        return f"{major:,.{exponent}f}"
    return f"{major:.{exponent}f}"


def format_display(amount: int, code: str) -> str:
    """
    Format a minor-unit amount for display.

    >>> format_display(2999, "USD")
    '$29.99'
    >>> format_display(100000, "JPY")
    '¥100,000'
    """
    code = code.upper()
    sign = "-" if amount < 0 else ""
    formatted = _format_major(abs(amount), code, grouping=True)
    symbol = CURRENCY_SYMBOLS.get(code)
    if symbol is None:
        return f"{sign}{formatted} {code}"
    return f"{sign}{symbol}{formatted}"


def format_for_feed(amount: int, code: str) -> str:
    """
    Format a price for commerce feeds: ``"29.99 USD"``.
    """
    return f"{_format_major(amount, code, grouping=False)} {code.upper()}"


def calculate_tax(subtotal: int, tax_rate: float) -> int:
    """
    Tax in minor units, rounded half up.

    >>> calculate_tax(10000, 0.08)
    800
    """
    return round_half_up(Decimal(subtotal) * Decimal(str(tax_rate)))
