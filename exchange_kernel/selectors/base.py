"""
Module: exchange_kernel.selectors.base
Responsibility: Abstract base class for read-only query selectors, the read
    side of the service/selector split.
Architecture position: Kernel > Selectors.  May import from db/, models/,
    domain/ and the pure engines.  MUST NOT import from services/.

Invariants enforced:
    - Read-only: selectors never add, delete, flush or commit.
    - Session ownership: the caller owns the session and its transaction.
    - List queries return ORM rows for display; aggregates return frozen
      DTOs from exchange_kernel.domain.dtos.
    - Every query filters on tenant_id.
    - Amount columns are summed and compared in Python: AmountType is text
      on SQLite, so SQL arithmetic over it is not portable.
"""

from abc import ABC
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from exchange_kernel.db.base import Base

ModelType = TypeVar("ModelType", bound=Base)


class BaseSelector(ABC, Generic[ModelType]):
    """Base class for selectors; subclasses add domain-specific queries."""

    def __init__(self, session: Session):
        self.session = session
