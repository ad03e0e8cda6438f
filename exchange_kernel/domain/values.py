"""
Values -- the fixed-precision decimal money type.

Responsibility:
    Provides ``Amount``, the single representation of monetary values
    (IRR amounts, CAD equivalents, profits, quantities, exchange rates)
    throughout the kernel.  Arithmetic runs in a dedicated 38-digit
    decimal context so no operation drifts the way binary floats do.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    Imported by models, engines and services.  No outward dependencies
    except the exception hierarchy.

Invariants enforced:
    - Amount always wraps a finite ``Decimal`` (never float, NaN or Infinity).
    - Division by zero raises ``AmountDivisionByZeroError``; it never
      yields Infinity.
    - Floats enter only through ``Amount.from_float`` (via their shortest
      repr) and leave only through ``to_float`` for display.

Failure modes:
    - InvalidAmountError on construction from an unparseable or non-finite value.
    - AmountDivisionByZeroError on division by zero.
    - TypeError (via NotImplemented) when mixed with float operands.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Context, Decimal, InvalidOperation, localcontext
from typing import Union

from exchange_kernel.exceptions import AmountDivisionByZeroError, InvalidAmountError

# Arithmetic context for every Amount operation.  38 significant digits
# matches the NUMERIC(38, scale) storage columns.
MONEY_CONTEXT = Context(prec=38, rounding=ROUND_HALF_UP)

# Persisted scales: money columns and rate columns.
MONEY_DECIMAL_PLACES = 9
RATE_DECIMAL_PLACES = 18

AmountLike = Union["Amount", Decimal, int, str]


def _to_decimal(value: AmountLike) -> Decimal | None:
    if isinstance(value, Amount):
        return value.value
    if isinstance(value, Decimal):
        return value
    # bool is an int subclass but never a sensible amount
    if isinstance(value, int) and not isinstance(value, bool):
        return Decimal(value)
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation:
            return None
    return None


@dataclass(frozen=True, slots=True, eq=False)
class Amount:
    """
    Fixed-precision decimal amount.

    Contract:
        Wraps a finite Decimal.  Supports +, -, *, /, unary minus, abs and
        the full set of comparisons against other Amounts, Decimals, ints
        and numeric strings.  Results are always new Amount instances.

    Guarantees:
        - Immutable and hashable; ``Amount("1.0") == Amount("1.00")``.
        - Division by zero raises AmountDivisionByZeroError.
        - Never auto-rounds; call ``round()`` / ``quantize()`` explicitly.

    Non-goals:
        - Does NOT carry a currency; the owning record names it.
    """

    value: Decimal

    def __post_init__(self) -> None:
        raw = self.value
        if isinstance(raw, float):
            raise InvalidAmountError("amount", raw, "use Amount.from_float for floats")
        converted = _to_decimal(raw)
        if converted is None or not converted.is_finite():
            raise InvalidAmountError("amount", raw, "not a finite decimal")
        object.__setattr__(self, "value", converted)

    @classmethod
    def of(cls, value: AmountLike) -> Amount:
        if isinstance(value, Amount):
            return value
        return cls(value)

    @classmethod
    def zero(cls) -> Amount:
        return cls(Decimal("0"))

    @classmethod
    def from_float(cls, value: float) -> Amount:
        """Build from a display float using its shortest round-trip repr."""
        return cls(Decimal(repr(float(value))))

    def to_float(self) -> float:
        """Float rendering for display only; never feed it back into arithmetic."""
        return float(self.value)

    @property
    def is_zero(self) -> bool:
        return self.value == 0

    @property
    def is_positive(self) -> bool:
        return self.value > 0

    @property
    def is_negative(self) -> bool:
        return self.value < 0

    def round(self, places: int = 2, rounding: str = ROUND_HALF_UP) -> Amount:
        """Return a new Amount rounded to ``places`` decimal places."""
        exponent = Decimal(1).scaleb(-places)
        with localcontext(MONEY_CONTEXT) as ctx:
            ctx.prec = max(MONEY_CONTEXT.prec, self.value.adjusted() + places + 2)
            return Amount(self.value.quantize(exponent, rounding=rounding))

    def quantize_money(self) -> Amount:
        """Round to the persisted money scale."""
        return self.round(MONEY_DECIMAL_PLACES)

    def quantize_rate(self) -> Amount:
        """Round to the persisted rate scale."""
        return self.round(RATE_DECIMAL_PLACES)

    # Arithmetic

    def __add__(self, other: AmountLike) -> Amount:
        rhs = _to_decimal(other)
        if rhs is None:
            return NotImplemented
        return Amount(MONEY_CONTEXT.add(self.value, rhs))

    def __radd__(self, other: AmountLike) -> Amount:
        # Allows sum() over Amounts, which starts from int 0
        return self.__add__(other)

    def __sub__(self, other: AmountLike) -> Amount:
        rhs = _to_decimal(other)
        if rhs is None:
            return NotImplemented
        return Amount(MONEY_CONTEXT.subtract(self.value, rhs))

    def __rsub__(self, other: AmountLike) -> Amount:
        lhs = _to_decimal(other)
        if lhs is None:
            return NotImplemented
        return Amount(MONEY_CONTEXT.subtract(lhs, self.value))

    def __mul__(self, other: AmountLike) -> Amount:
        rhs = _to_decimal(other)
        if rhs is None:
            return NotImplemented
        return Amount(MONEY_CONTEXT.multiply(self.value, rhs))

    def __rmul__(self, other: AmountLike) -> Amount:
        return self.__mul__(other)

    def __truediv__(self, other: AmountLike) -> Amount:
        divisor = _to_decimal(other)
        if divisor is None:
            return NotImplemented
        if divisor == 0:
            raise AmountDivisionByZeroError(self.value)
        return Amount(MONEY_CONTEXT.divide(self.value, divisor))

    def __rtruediv__(self, other: AmountLike) -> Amount:
        dividend = _to_decimal(other)
        if dividend is None:
            return NotImplemented
        if self.value == 0:
            raise AmountDivisionByZeroError(dividend)
        return Amount(MONEY_CONTEXT.divide(dividend, self.value))

    def __neg__(self) -> Amount:
        return Amount(-self.value)

    def __abs__(self) -> Amount:
        return Amount(abs(self.value))

    # Comparisons

    def __eq__(self, other: object) -> bool:
        rhs = _to_decimal(other) if not isinstance(other, float) else None
        if rhs is None:
            return NotImplemented
        return self.value == rhs

    def __hash__(self) -> int:
        return hash(self.value)

    def __lt__(self, other: AmountLike) -> bool:
        rhs = _to_decimal(other)
        if rhs is None:
            return NotImplemented
        return self.value < rhs

    def __le__(self, other: AmountLike) -> bool:
        rhs = _to_decimal(other)
        if rhs is None:
            return NotImplemented
        return self.value <= rhs

    def __gt__(self, other: AmountLike) -> bool:
        rhs = _to_decimal(other)
        if rhs is None:
            return NotImplemented
        return self.value > rhs

    def __ge__(self, other: AmountLike) -> bool:
        rhs = _to_decimal(other)
        if rhs is None:
            return NotImplemented
        return self.value >= rhs

    def __str__(self) -> str:
        return format(self.value, "f")

    def __repr__(self) -> str:
        return f"Amount('{self}')"
