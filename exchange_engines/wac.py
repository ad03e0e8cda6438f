"""
Module: exchange_engines.wac
Responsibility:
    Weighted-average-cost position arithmetic for currency inventory:
    purchases blend the per-unit cost, sales realize profit against it,
    adjustments correct quantity (and optionally cost).

Architecture position:
    Engines -- pure calculation layer, zero I/O.  WACService loads the
    locked CurrencyHolding, calls one of these functions and persists the
    returned movement.

Invariants enforced:
    - Purchase: new_wac = (q0 * wac0 + q * rate) / (q0 + q), rounded to the
      rate scale; profit is always 0.
    - Sale: wac is returned unchanged (the same Amount instance) unless the
      position is fully depleted, in which case it resets to 0.
      Realized P/L = (rate - wac) * q.
    - Quantity never goes negative.
    - total_cost == quantity * wac, rounded to the money scale.

Failure modes:
    - InvalidAmountError for non-positive quantities / zero adjustments.
    - InvalidRateError for non-positive rates.
    - InsufficientHoldingError when a sale or adjustment exceeds the position.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum

from exchange_engines.tracer import traced_engine
from exchange_kernel.domain.values import Amount
from exchange_kernel.exceptions import (
    InsufficientHoldingError,
    InvalidAmountError,
    InvalidRateError,
)


class MovementType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    ADJUSTMENT = "ADJUSTMENT"


@dataclass(frozen=True)
class HoldingPosition:
    """Quantity and per-unit weighted average cost of one currency."""

    quantity: Amount
    wac: Amount

    @classmethod
    def empty(cls) -> HoldingPosition:
        return cls(quantity=Amount.zero(), wac=Amount.zero())

    @property
    def total_cost(self) -> Amount:
        return (self.quantity * self.wac).quantize_money()


@dataclass(frozen=True)
class WACMovement:
    """Result of one engine step: the before/after positions and realized P/L."""

    movement_type: MovementType
    quantity: Amount  # signed
    rate: Amount
    previous: HoldingPosition
    new: HoldingPosition
    profit_or_loss: Amount


def _positive_quantity(quantity: Amount) -> Amount:
    """Quantity at stored scale; anything that rounds to zero is rejected."""
    stored = quantity.quantize_money()
    if not stored.is_positive:
        raise InvalidAmountError("quantity", quantity, "must be greater than zero")
    return stored


def _positive_rate(rate: Amount) -> Amount:
    stored = rate.quantize_rate()
    if not stored.is_positive:
        raise InvalidRateError("rate", rate)
    return stored


@traced_engine("wac", "1.0", fingerprint_fields=("quantity", "rate"))
def apply_purchase(*, position: HoldingPosition, quantity: Amount, rate: Amount) -> WACMovement:
    """Blend ``quantity`` units bought at ``rate`` into the position."""
    quantity = _positive_quantity(quantity)
    rate = _positive_rate(rate)

    new_quantity = position.quantity + quantity
    if position.quantity.is_zero:
        new_wac = rate.quantize_rate()
    else:
        blended_cost = position.quantity * position.wac + quantity * rate
        new_wac = (blended_cost / new_quantity).quantize_rate()

    return WACMovement(
        movement_type=MovementType.BUY,
        quantity=quantity,
        rate=rate,
        previous=position,
        new=HoldingPosition(quantity=new_quantity, wac=new_wac),
        profit_or_loss=Amount.zero(),
    )


@traced_engine("wac", "1.0", fingerprint_fields=("currency", "quantity", "rate"))
def apply_sale(
    *,
    position: HoldingPosition,
    quantity: Amount,
    rate: Amount,
    currency: str,
) -> WACMovement:
    """Sell ``quantity`` units at ``rate``; the WAC itself does not move."""
    quantity = _positive_quantity(quantity)
    rate = _positive_rate(rate)
    if quantity > position.quantity:
        raise InsufficientHoldingError(currency, quantity.value, position.quantity.value)

    new_quantity = position.quantity - quantity
    new_wac = position.wac if new_quantity.is_positive else Amount.zero()
    profit = ((rate - position.wac) * quantity).quantize_money()

    return WACMovement(
        movement_type=MovementType.SELL,
        quantity=-quantity,
        rate=rate,
        previous=position,
        new=HoldingPosition(quantity=new_quantity, wac=new_wac),
        profit_or_loss=profit,
    )


@traced_engine("wac", "1.0", fingerprint_fields=("currency", "quantity_delta", "new_wac"))
def apply_adjustment(
    *,
    position: HoldingPosition,
    quantity_delta: Amount,
    currency: str,
    new_wac: Amount | None = None,
) -> WACMovement:
    """
    Correct the position by a signed quantity (count differences, write-offs).

    ``new_wac`` of None keeps the current cost.  A depleted position resets
    its WAC to 0, as a full sale does.
    """
    requested, quantity_delta = quantity_delta, quantity_delta.quantize_money()
    if quantity_delta.is_zero:
        raise InvalidAmountError("quantity_delta", requested, "adjustment cannot be zero")
    if new_wac is not None:
        new_wac = _positive_rate(new_wac)

    new_quantity = position.quantity + quantity_delta
    if new_quantity.is_negative:
        raise InsufficientHoldingError(currency, (-quantity_delta).value, position.quantity.value)

    if not new_quantity.is_positive:
        wac = Amount.zero()
    elif new_wac is not None:
        wac = new_wac.quantize_rate()
    else:
        wac = position.wac

    return WACMovement(
        movement_type=MovementType.ADJUSTMENT,
        quantity=quantity_delta,
        rate=wac,
        previous=position,
        new=HoldingPosition(quantity=new_quantity, wac=wac),
        profit_or_loss=Amount.zero(),
    )
