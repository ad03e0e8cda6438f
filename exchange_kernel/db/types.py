"""
Module: exchange_kernel.db.types
Responsibility: Column types for financial values and the ISO 4217 currency
    check applied at every service boundary.
Architecture position: Kernel > DB.  Imported by db/base.py, models/ and
    services/.  MUST NOT import from models/ or services/.

Invariants enforced:
    - Amount columns are quantized to their column scale on write, so the
      stored value is exactly what a later read returns.
    - PostgreSQL stores NUMERIC(38, scale).  SQLite has no fixed-point
      type and would coerce NUMERIC through float, so there the value is
      stored as its fixed-point text rendering.  SQL-side arithmetic and
      comparisons on these columns are therefore avoided; services sum and
      compare in Python with Amount.
    - No floats anywhere.

Failure modes:
    - InvalidCurrencyError on a code outside ISO_4217_CURRENCIES.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import Numeric, String
from sqlalchemy.types import TypeDecorator

from exchange_kernel.domain.values import (
    MONEY_DECIMAL_PLACES,
    RATE_DECIMAL_PLACES,
    Amount,
)
from exchange_kernel.exceptions import InvalidCurrencyError

__all__ = [
    "AmountType",
    "CurrencyCode",
    "ISO_4217_CURRENCIES",
    "MONEY_DECIMAL_PLACES",
    "RATE_DECIMAL_PLACES",
    "validate_currency",
]


class AmountType(TypeDecorator):
    """
    Amount stored as NUMERIC(38, scale), or fixed-point text on SQLite.

    Guarantees:
        - process_bind_param: Amount / Decimal / int / str -> value quantized
          to ``scale`` places.
        - process_result_value: always returns an Amount.
    """

    impl = Numeric
    cache_ok = True

    def __init__(self, scale: int = MONEY_DECIMAL_PLACES):
        super().__init__(precision=38, scale=scale, asdecimal=True)
        self.scale = scale

    def load_dialect_impl(self, dialect):
        if dialect.name == "sqlite":
            return dialect.type_descriptor(String(64))
        return dialect.type_descriptor(Numeric(38, self.scale, asdecimal=True))

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        quantized = Amount.of(value).round(self.scale).value
        if dialect.name == "sqlite":
            return format(quantized, "f")
        return quantized

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        if isinstance(value, Decimal):
            return Amount(value)
        return Amount(str(value))

    @property
    def python_type(self):
        return Amount


CurrencyCode = Annotated[str, String(3)]

# Currencies an exchange bureau quotes against CAD, plus the ISO metals
# and test code used by integration fixtures.
ISO_4217_CURRENCIES: frozenset[str] = frozenset(
    {
        "CAD", "USD", "EUR", "GBP", "CHF", "JPY", "AUD", "NZD", "CNY", "HKD",
        "SGD", "SEK", "NOK", "DKK", "PLN", "CZK", "HUF", "RON", "BGN", "ISK",
        "IRR", "AED", "TRY", "SAR", "QAR", "KWD", "BHD", "OMR", "JOD", "IQD",
        "AFN", "AMD", "AZN", "GEL", "INR", "PKR", "BDT", "LKR", "MYR", "THB",
        "IDR", "PHP", "KRW", "TWD", "VND", "MXN", "BRL", "ARS", "CLP", "COP",
        "PEN", "ZAR", "EGP", "MAD", "NGN", "KES", "RUB", "UAH", "ILS", "LBP",
        "XAU", "XAG", "XTS",
    }
)


def validate_currency(currency: str) -> str:
    """Return the normalized (uppercase, stripped) code or raise InvalidCurrencyError."""
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))
    normalized = currency.upper().strip()
    if normalized not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(currency)
    return normalized
