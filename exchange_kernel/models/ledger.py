"""
Module: exchange_kernel.models.ledger
Responsibility: ORM persistence for client ledger entries and the per
    (tenant, client, currency) guard row that serializes debits.
Architecture position: Kernel > Models.  May import from db/ and domain/values.

Invariants enforced:
    - amount != 0 (validated by LedgerService before insert).
    - LedgerEntry is append-only (db/immutability.py).
    - A client's balance in a currency is the sum of its entry amounts;
      there is no stored running balance to drift.
    - The two legs of an exchange reference each other through
      related_entry_id.  Both ids are assigned before insert so neither
      row is ever updated.
"""

from enum import Enum
from uuid import UUID

from sqlalchemy import Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from exchange_kernel.db.base import Base, TrackedBase, UUIDString
from exchange_kernel.db.types import RATE_DECIMAL_PLACES, AmountType
from exchange_kernel.domain.values import Amount


class LedgerEntryType(str, Enum):
    """Kind of client money movement."""

    DEPOSIT = "DEPOSIT"
    WITHDRAWAL = "WITHDRAWAL"
    EXCHANGE_IN = "EXCHANGE_IN"
    EXCHANGE_OUT = "EXCHANGE_OUT"
    SETTLEMENT = "SETTLEMENT"


class LedgerEntry(TrackedBase):
    """
    One immutable client money movement.

    Contract:
        Positive amount is a credit to the client, negative a debit.

    Non-goals:
        - No balance column; balances are summed by LedgerService.
        - No foreign key on related_entry_id (both legs insert in one flush).
    """

    __tablename__ = "ledger_entries"
    __table_args__ = (
        Index("idx_ledger_client_currency", "tenant_id", "client_id", "currency"),
        Index("idx_ledger_created_at", "created_at"),
    )

    client_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    branch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    entry_type: Mapped[LedgerEntryType] = mapped_column(String(20), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    # Signed: + credit, - debit; never zero
    amount: Mapped[Amount] = mapped_column(nullable=False)

    exchange_rate: Mapped[Amount | None] = mapped_column(
        AmountType(RATE_DECIMAL_PLACES), nullable=True
    )
    related_entry_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    description: Mapped[str] = mapped_column(String(500), nullable=False, default="")

    def __repr__(self) -> str:
        return (
            f"<LedgerEntry {self.id}: {self.entry_type} "
            f"{self.amount} {self.currency} client={self.client_id}>"
        )


class LedgerBalanceGuard(Base):
    """
    Lock row for one (tenant, client, currency) balance.

    Every debit writer locks this row ``FOR UPDATE`` before checking funds
    and inserting.  Row locks on existing entries cannot stop a concurrent
    INSERT, so the guard row is what closes the check-then-act window.
    """

    __tablename__ = "ledger_balance_guards"
    __table_args__ = (
        UniqueConstraint("tenant_id", "client_id", "currency", name="uq_ledger_guard"),
    )

    tenant_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    client_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
