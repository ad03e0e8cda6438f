"""
Module: exchange_kernel.models.remittance
Responsibility: ORM persistence for outgoing and incoming IRR/CAD remittances
    and the immutable settlement rows that match them.
Architecture position: Kernel > Models.

Invariants enforced:
    - remaining_irr == amount_irr - settled_amount_irr (outgoing) or
      amount_irr - allocated_irr (incoming), and remaining_irr >= 0.
      Kept exact by RemittanceService; never snapped to zero.
    - Status only moves forward:
          PENDING -> PARTIAL -> COMPLETED [-> PAID, incoming only]
          PENDING | PARTIAL -> CANCELLED   (nothing settled yet)
    - remittance_code is unique per tenant.
    - RemittanceSettlement is append-only and freezes both rates.

Concurrency discipline:
    Outgoing/IncomingRemittance: pessimistic ``FOR UPDATE``, always locking
    the outgoing row before the incoming row.
    RemittanceSettlement: insert-only.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from exchange_kernel.db.base import TrackedBase, UUIDString
from exchange_kernel.db.types import RATE_DECIMAL_PLACES, AmountType
from exchange_kernel.domain.values import Amount


class RemittanceStatus(str, Enum):
    """
    Lifecycle status shared by both directions.

    PAID is reachable only by incoming remittances.
    """

    PENDING = "PENDING"
    PARTIAL = "PARTIAL"
    COMPLETED = "COMPLETED"
    PAID = "PAID"
    CANCELLED = "CANCELLED"


OPEN_STATUSES = (RemittanceStatus.PENDING, RemittanceStatus.PARTIAL)


class _RemittanceColumns(TrackedBase):
    __abstract__ = True

    branch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    remittance_code: Mapped[str] = mapped_column(String(20), nullable=False)

    sender_name: Mapped[str] = mapped_column(String(200), nullable=False)
    sender_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)
    recipient_name: Mapped[str] = mapped_column(String(200), nullable=False)
    recipient_phone: Mapped[str | None] = mapped_column(String(50), nullable=True)

    amount_irr: Mapped[Amount] = mapped_column(nullable=False)
    equivalent_cad: Mapped[Amount] = mapped_column(nullable=False)
    remaining_irr: Mapped[Amount] = mapped_column(nullable=False)
    total_profit_cad: Mapped[Amount] = mapped_column(nullable=False)
    fee_cad: Mapped[Amount] = mapped_column(nullable=False)

    status: Mapped[RemittanceStatus] = mapped_column(String(20), nullable=False)
    notes: Mapped[str | None] = mapped_column(String(1000), nullable=True)

    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    completed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    cancellation_reason: Mapped[str | None] = mapped_column(String(500), nullable=True)


class OutgoingRemittance(_RemittanceColumns):
    """Money a customer sends abroad: the house owes IRR at buy_rate_cad."""

    __tablename__ = "outgoing_remittances"
    __table_args__ = (
        UniqueConstraint("tenant_id", "remittance_code", name="uq_outgoing_code"),
        Index("idx_outgoing_status_created", "tenant_id", "status", "created_at"),
    )

    # IRR per CAD
    buy_rate_cad: Mapped[Amount] = mapped_column(AmountType(RATE_DECIMAL_PLACES), nullable=False)
    settled_amount_irr: Mapped[Amount] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<OutgoingRemittance {self.remittance_code}: {self.amount_irr} IRR "
            f"remaining={self.remaining_irr} {self.status}>"
        )


class IncomingRemittance(_RemittanceColumns):
    """IRR arriving for a local recipient: funds outgoing debts at sell_rate_cad."""

    __tablename__ = "incoming_remittances"
    __table_args__ = (
        UniqueConstraint("tenant_id", "remittance_code", name="uq_incoming_code"),
        Index("idx_incoming_status_created", "tenant_id", "status", "created_at"),
    )

    # IRR per CAD
    sell_rate_cad: Mapped[Amount] = mapped_column(AmountType(RATE_DECIMAL_PLACES), nullable=False)
    allocated_irr: Mapped[Amount] = mapped_column(nullable=False)

    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    paid_by_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    paid_cad: Mapped[Amount | None] = mapped_column(nullable=True)
    payment_method: Mapped[str | None] = mapped_column(String(20), nullable=True)
    payment_reference: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        return (
            f"<IncomingRemittance {self.remittance_code}: {self.amount_irr} IRR "
            f"remaining={self.remaining_irr} {self.status}>"
        )


class RemittanceSettlement(TrackedBase):
    """
    One settlement action matching part of an incoming against an outgoing.

    Rates are copied at settlement time so profit stays reproducible even
    if the remittances are later re-quoted.
    """

    __tablename__ = "remittance_settlements"
    __table_args__ = (
        Index("idx_settlement_outgoing", "outgoing_remittance_id"),
        Index("idx_settlement_incoming", "incoming_remittance_id"),
        Index("idx_settlement_tenant_created", "tenant_id", "created_at"),
    )

    outgoing_remittance_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)
    incoming_remittance_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    settled_amount_irr: Mapped[Amount] = mapped_column(nullable=False)
    outgoing_buy_rate: Mapped[Amount] = mapped_column(AmountType(RATE_DECIMAL_PLACES), nullable=False)
    incoming_sell_rate: Mapped[Amount] = mapped_column(AmountType(RATE_DECIMAL_PLACES), nullable=False)
    profit_cad: Mapped[Amount] = mapped_column(nullable=False)

    notes: Mapped[str | None] = mapped_column(String(500), nullable=True)
