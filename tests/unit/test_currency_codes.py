"""
Tests for currency code validation at the service boundary.
"""

import pytest

from exchange_kernel.db.types import ISO_4217_CURRENCIES, validate_currency
from exchange_kernel.exceptions import InvalidCurrencyError


class TestValidateCurrency:

    def test_traded_codes_accepted(self):
        for code in ["CAD", "USD", "EUR", "IRR", "AED", "TRY"]:
            assert validate_currency(code) == code

    def test_lowercase_normalized(self):
        assert validate_currency("usd") == "USD"

    def test_whitespace_trimmed(self):
        assert validate_currency(" EUR ") == "EUR"

    @pytest.mark.parametrize("code", ["XXY", "ABC", "123", "US", "USDD", ""])
    def test_unknown_codes_rejected(self, code):
        with pytest.raises(InvalidCurrencyError):
            validate_currency(code)

    def test_none_rejected(self):
        with pytest.raises(InvalidCurrencyError):
            validate_currency(None)

    def test_error_carries_code(self):
        with pytest.raises(InvalidCurrencyError) as exc_info:
            validate_currency("ZZZ")
        assert exc_info.value.code == "INVALID_CURRENCY"
        assert exc_info.value.currency == "ZZZ"

    def test_registry_codes_are_three_uppercase_letters(self):
        for code in ISO_4217_CURRENCIES:
            assert len(code) == 3
            assert code.isalpha() and code.isupper()
