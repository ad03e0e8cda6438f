"""
Module: exchange_kernel.models.cash_balance
Responsibility: ORM persistence for per (tenant, branch, currency) cash
    balances, their manual adjustment audit trail, and the cash payment
    history the automatic balance is summed from.
Architecture position: Kernel > Models.

Invariants enforced:
    - final_balance == auto_calculated_balance + manual_adjustment, kept by
      CashBalanceService through versioned compare-and-swap updates.
    - One CashBalance row per (tenant, branch-or-null, currency).  A null
      branch is stored in ``branch_key`` as "*" so the unique constraint
      also covers tenant-wide balances (NULLs never collide in SQL).
    - CashAdjustment is append-only.

Concurrency discipline:
    CashBalance: optimistic (``version`` column, see db/optimistic.py).
    CashAdjustment, CashPayment: insert-only writers, no locks.
"""

from datetime import datetime
from enum import Enum
from uuid import UUID

from sqlalchemy import DateTime, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from exchange_kernel.db.base import TrackedBase, UUIDString, Versioned
from exchange_kernel.domain.values import Amount

TENANT_WIDE_BRANCH_KEY = "*"


def branch_key_for(branch_id: UUID | None) -> str:
    return str(branch_id) if branch_id is not None else TENANT_WIDE_BRANCH_KEY


class PaymentMethod(str, Enum):
    CASH = "CASH"
    E_TRANSFER = "E_TRANSFER"
    WIRE = "WIRE"
    CARD = "CARD"


class PaymentStatus(str, Enum):
    PENDING = "PENDING"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


class CashBalance(Versioned, TrackedBase):
    """
    Running cash position for one tenant, branch and currency.

    Contract:
        Mutated only through ``compare_and_swap``; never assign the balance
        columns directly on a persistent instance.
    """

    __tablename__ = "cash_balances"
    __table_args__ = (
        UniqueConstraint("tenant_id", "branch_key", "currency", name="uq_cash_balance_scope"),
    )

    branch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    branch_key: Mapped[str] = mapped_column(String(36), nullable=False)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    auto_calculated_balance: Mapped[Amount] = mapped_column(nullable=False)
    manual_adjustment: Mapped[Amount] = mapped_column(nullable=False)
    final_balance: Mapped[Amount] = mapped_column(nullable=False)

    last_calculated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return (
            f"<CashBalance {self.currency} branch={self.branch_key} "
            f"final={self.final_balance} v{self.version}>"
        )


class CashAdjustment(TrackedBase):
    """Immutable record of one manual balance change (created_by_id is the adjuster)."""

    __tablename__ = "cash_adjustments"
    __table_args__ = (
        Index("idx_cash_adjustment_scope", "tenant_id", "currency", "created_at"),
    )

    cash_balance_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False, index=True)
    branch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)

    amount: Mapped[Amount] = mapped_column(nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)

    balance_before: Mapped[Amount] = mapped_column(nullable=False)
    balance_after: Mapped[Amount] = mapped_column(nullable=False)


class CashPayment(TrackedBase):
    """A customer payment; completed CASH payments feed the automatic balance."""

    __tablename__ = "cash_payments"
    __table_args__ = (
        Index("idx_cash_payment_scope", "tenant_id", "currency", "payment_method", "status"),
    )

    branch_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    currency: Mapped[str] = mapped_column(String(3), nullable=False)
    amount: Mapped[Amount] = mapped_column(nullable=False)
    payment_method: Mapped[PaymentMethod] = mapped_column(String(20), nullable=False)
    status: Mapped[PaymentStatus] = mapped_column(String(20), nullable=False)
    reference: Mapped[str | None] = mapped_column(String(100), nullable=True)
