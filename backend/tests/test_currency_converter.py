from decimal import Decimal

import pytest

from quotedesk.data.currency import format_price
from quotedesk.errors import CurrencyRateMissing, ValidationError
from quotedesk.services.currency_converter import CurrencyConverter, StaticRateProvider


def test_same_currency_passes_through():
    converter = CurrencyConverter(StaticRateProvider())
    assert converter.convert(Decimal("123.45"), "usd", "USD") == Decimal("123.45")


def test_cross_rate_goes_through_base():
    provider = StaticRateProvider({"USD": Decimal("1"), "INR": Decimal("80"), "AED": Decimal("4")})
    assert provider.rate("AED", "INR") == Decimal("20")
    assert CurrencyConverter(provider).convert(Decimal("10"), "AED", "INR") == Decimal("200")


def test_unknown_currency_raises():
    converter = CurrencyConverter(StaticRateProvider())
    with pytest.raises(CurrencyRateMissing):
        converter.convert(Decimal("1"), "USD", "XYZ")


def test_missing_rate_is_a_validation_error():
    assert issubclass(CurrencyRateMissing, ValidationError)


def test_currencies_lists_table():
    provider = StaticRateProvider({"EUR": Decimal("0.9")}, base_currency="USD")
    assert provider.currencies() == ["EUR", "USD"]


def test_format_price():
    assert format_price(Decimal("1234.5"), "INR") == "₹1,234.50"
