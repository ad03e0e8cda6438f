"""
Module: exchange_kernel.db.base
Responsibility: Declarative base classes for all ORM models.  Provides the
    UUID primary key convention, the type annotation map that routes every
    monetary ``Amount`` through AmountType, and the TrackedBase mixin for
    clock-stamped audit columns.
Architecture position: Kernel > DB.  Lowest-level import target within the
    kernel; MUST NOT import from models/, services/ or selectors/.

Invariants enforced:
    - UUID primary keys (uuid4) on every model.
    - ``Mapped[Amount]`` columns default to AmountType at money scale;
      rate columns pass ``AmountType(RATE_DECIMAL_PLACES)`` explicitly.
    - Timestamps are written by services from the injected Clock, never
      by server defaults, so replayed tests see deterministic values.
"""

from datetime import datetime
from typing import ClassVar
from uuid import UUID as PyUUID, uuid4

from sqlalchemy import BigInteger, DateTime, String
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column
from sqlalchemy.types import TypeDecorator

from exchange_kernel.db.types import AmountType
from exchange_kernel.domain.values import Amount


class UUIDString(TypeDecorator):
    """UUID stored as String(36) for cross-database portability."""

    impl = String(36)
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is not None:
            return str(value)
        return None

    def process_result_value(self, value, dialect):
        if value is not None:
            return PyUUID(value)
        return None


class Base(DeclarativeBase):
    """
    Declarative base for all models.

    Guarantees:
        - id is a uuid4 stored as String(36).
        - Amount maps to AmountType (NUMERIC(38, 9) on PostgreSQL).
        - datetime maps to DateTime(timezone=True).
        - int maps to BigInteger.
    """

    type_annotation_map: ClassVar[dict] = {
        Amount: AmountType(),
        datetime: DateTime(timezone=True),
        PyUUID: UUIDString(),
        int: BigInteger,
    }

    id: Mapped[PyUUID] = mapped_column(
        UUIDString(),
        primary_key=True,
        default=uuid4,
    )


class TrackedBase(Base):
    """
    Abstract base with tenant scope, creator and creation time.

    Every core entity is tenant scoped; lookups always filter on
    ``tenant_id`` so a wrong-tenant id behaves exactly like a missing one.
    """

    __abstract__ = True

    tenant_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False, index=True)

    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    created_by_id: Mapped[PyUUID] = mapped_column(UUIDString(), nullable=False)


class Versioned:
    """Optimistic-lock counter mixin; starts at 1 and only grows (see db/optimistic.py)."""

    version: Mapped[int] = mapped_column(BigInteger, nullable=False, default=1)


UUID = PyUUID

