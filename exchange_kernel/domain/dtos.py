"""
DTOs -- immutable inputs and read projections for the kernel services.

Responsibility:
    Request objects accepted by the write services, and the read models
    returned by selectors, so callers outside a session never touch ORM
    instances they cannot lazily load.

Architecture position:
    Kernel > Domain -- pure, no ORM imports.  Amount fields are coerced
    on construction so callers may pass Decimal, int or numeric strings.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from uuid import UUID

from exchange_kernel.domain.values import Amount


def _coerce(obj: object, *names: str) -> None:
    for name in names:
        value = getattr(obj, name)
        if value is not None and not isinstance(value, Amount):
            object.__setattr__(obj, name, Amount.of(value))


# ---------------------------------------------------------------------------
# Ledger
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class LedgerEntryDraft:
    """A ledger movement to append.  Positive amount credits the client."""

    tenant_id: UUID
    client_id: UUID
    entry_type: str
    currency: str
    amount: Amount
    created_by: UUID
    branch_id: UUID | None = None
    exchange_rate: Amount | None = None
    related_entry_id: UUID | None = None
    description: str = ""

    def __post_init__(self) -> None:
        _coerce(self, "amount", "exchange_rate")


# ---------------------------------------------------------------------------
# Remittances
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class OutgoingRemittanceRequest:
    tenant_id: UUID
    created_by: UUID
    sender_name: str
    recipient_name: str
    amount_irr: Amount
    buy_rate_cad: Amount
    branch_id: UUID | None = None
    sender_phone: str | None = None
    recipient_phone: str | None = None
    fee_cad: Amount = field(default_factory=Amount.zero)
    notes: str | None = None

    def __post_init__(self) -> None:
        _coerce(self, "amount_irr", "buy_rate_cad", "fee_cad")


@dataclass(frozen=True)
class IncomingRemittanceRequest:
    tenant_id: UUID
    created_by: UUID
    sender_name: str
    recipient_name: str
    amount_irr: Amount
    sell_rate_cad: Amount
    branch_id: UUID | None = None
    sender_phone: str | None = None
    recipient_phone: str | None = None
    fee_cad: Amount = field(default_factory=Amount.zero)
    notes: str | None = None

    def __post_init__(self) -> None:
        _coerce(self, "amount_irr", "sell_rate_cad", "fee_cad")


@dataclass(frozen=True)
class ProfitSummary:
    total_profit_cad: Amount
    settlement_count: int
    average_profit_cad: Amount


@dataclass(frozen=True)
class StatusBreakdown:
    count: int
    remaining_irr: Amount


@dataclass(frozen=True)
class UnsettledSummary:
    """Open outgoing debt for a tenant, by status and by age bucket."""

    total_count: int
    total_remaining_irr: Amount
    by_status: dict[str, StatusBreakdown]
    age_buckets: dict[str, StatusBreakdown]
    as_of: datetime


# ---------------------------------------------------------------------------
# WAC inventory
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class CurrencyPosition:
    currency: str
    quantity: Amount
    wac: Amount
    total_cost: Amount
    updated_at: datetime


@dataclass(frozen=True)
class CurrencyInventory:
    """
    Live positions (quantity > 0) valued at cost in ``base_currency``.

    Market revaluation needs a rate source, which the kernel does not own,
    so total_value is the cost basis.
    """

    tenant_id: UUID
    base_currency: str
    positions: tuple[CurrencyPosition, ...]
    total_value: Amount
    as_of: datetime


@dataclass(frozen=True)
class RealizedProfitLoss:
    start: datetime
    end: datetime
    total: Amount
    by_currency: dict[str, Amount]
    sale_count: int
