"""
Module: exchange_kernel.models.currency_holding
Responsibility: ORM persistence for weighted-average-cost currency positions
    and their immutable movement trail.
Architecture position: Kernel > Models.

Invariants enforced:
    - One CurrencyHolding per (tenant, currency).
    - quantity >= 0 and total_cost == quantity * wac after every mutation
      (WACService applies engine results; the engine enforces both).
    - WACRecord is append-only.

Concurrency discipline:
    CurrencyHolding: pessimistic (``SELECT ... FOR UPDATE``) for every mutation.
    WACRecord: insert-only.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from exchange_kernel.db.base import TrackedBase, UUIDString
from exchange_kernel.db.types import RATE_DECIMAL_PLACES, AmountType
from exchange_kernel.domain.values import Amount


class WACTransactionType(str, Enum):
    BUY = "BUY"
    SELL = "SELL"
    ADJUSTMENT = "ADJUSTMENT"


class CurrencyHolding(TrackedBase):
    """Live WAC position for one tenant and currency."""

    __tablename__ = "currency_holdings"
    __table_args__ = (
        UniqueConstraint("tenant_id", "currency", name="uq_currency_holding"),
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    quantity: Mapped[Amount] = mapped_column(nullable=False)
    wac: Mapped[Amount] = mapped_column(AmountType(RATE_DECIMAL_PLACES), nullable=False)
    total_cost: Mapped[Amount] = mapped_column(nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<CurrencyHolding {self.currency} qty={self.quantity} wac={self.wac}>"


class WACRecord(TrackedBase):
    """
    Immutable audit row for one buy, sell or adjustment.

    quantity is signed: positive for BUY, negative for SELL, either for
    ADJUSTMENT.  profit_or_loss is non-zero only for SELL.
    """

    __tablename__ = "wac_records"
    __table_args__ = (
        Index("idx_wac_record_currency_time", "tenant_id", "currency", "created_at"),
    )

    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    transaction_type: Mapped[WACTransactionType] = mapped_column(String(20), nullable=False)

    quantity: Mapped[Amount] = mapped_column(nullable=False)
    rate: Mapped[Amount] = mapped_column(AmountType(RATE_DECIMAL_PLACES), nullable=False)

    previous_quantity: Mapped[Amount] = mapped_column(nullable=False)
    previous_wac: Mapped[Amount] = mapped_column(AmountType(RATE_DECIMAL_PLACES), nullable=False)
    new_quantity: Mapped[Amount] = mapped_column(nullable=False)
    new_wac: Mapped[Amount] = mapped_column(AmountType(RATE_DECIMAL_PLACES), nullable=False)

    profit_or_loss: Mapped[Amount] = mapped_column(nullable=False)

    reference_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    notes: Mapped[str] = mapped_column(String(500), nullable=False, default="")
