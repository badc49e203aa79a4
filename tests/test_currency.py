from decimal import Decimal

import pytest

from ucp_framework.currency import (
    calculate_tax,
    currency_exponent,
    format_display,
    format_for_feed,
    major_to_minor,
    minor_to_major,
    normalize_currency,
)


def test_minor_to_major_respects_exponent():
    assert minor_to_major(2999, "USD") == Decimal("29.99")
    assert minor_to_major(1000, "JPY") == Decimal("1000")
    assert minor_to_major(1500, "KWD") == Decimal("1.500")


def test_major_to_minor_rounds_half_up():
    assert major_to_minor("29.99", "USD") == 2999
    assert major_to_minor("29.995", "USD") == 3000
    assert major_to_minor("0.005", "EUR") == 1
    assert major_to_minor(100, "JPY") == 100


def test_unknown_currency_uses_two_decimals():
    assert currency_exponent("XYZ") == 2
    assert currency_exponent("jpy") == 0


def test_format_display_uses_symbol_and_grouping():
    assert format_display(2999, "usd") == "$29.99"
    assert format_display(100000, "JPY") == "¥100,000"
    assert format_display(123456789, "GBP") == "£1,234,567.89"
    assert format_display(-500, "EUR") == "-€5.00"


def test_format_display_falls_back_to_code_suffix():
    assert format_display(1234, "XYZ") == "12.34 XYZ"
    assert format_display(1500, "KWD") == "1.500 KWD"


def test_format_for_feed_has_no_grouping():
    assert format_for_feed(2999, "usd") == "29.99 USD"
    assert format_for_feed(123456, "USD") == "1234.56 USD"
    assert format_for_feed(5000, "JPY") == "5000 JPY"


def test_calculate_tax_rounds_half_up():
    assert calculate_tax(10000, 0.08) == 800
    assert calculate_tax(5998, 0.08) == 480
    assert calculate_tax(1, 0.5) == 1
    assert calculate_tax(5998, 0) == 0


def test_normalize_currency():
    assert normalize_currency(" usd ") == "USD"
    for bad in ("", "US", "USDX", "12$"):
        with pytest.raises(ValueError):
            normalize_currency(bad)
