"""Tests for currency conversion."""
from decimal import Decimal

import pytest

from spendflow.core.errors import UnsupportedCurrency, ValidationError
from spendflow.services import fx


def test_same_currency_is_identity_rounded_to_cents():
    assert fx.convert(Decimal("10.005"), "USD", "usd") == Decimal("10.01")


def test_convert_uses_usd_based_rates():
    assert fx.convert(Decimal("100"), "EUR", "USD") == Decimal("108.00")
    assert fx.convert(Decimal("108"), "USD", "EUR") == Decimal("100.00")


def test_unsupported_currency_raises_validation_error():
    with pytest.raises(UnsupportedCurrency):
        fx.convert(Decimal("1"), "USD", "XYZ")
    assert issubclass(UnsupportedCurrency, ValidationError)


def test_supported_currencies_sorted():
    codes = fx.supported_currencies()
    assert codes == sorted(codes)
    assert "INR" in codes


def test_format_amount():
    assert fx.format_amount(Decimal("1234.5"), "USD") == "$1,234.50"
    assert fx.format_amount(Decimal("10"), "CHF") == "10.00 CHF"
