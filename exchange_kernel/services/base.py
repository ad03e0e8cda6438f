"""
BaseService -- abstract base for all kernel write services.

Responsibility:
    Provides the common constructor and session-handling contract.  Every
    concrete service receives a SQLAlchemy ``Session`` and persists with
    ``session.flush()``, never ``session.commit()``.

Architecture position:
    Kernel > Services.  The caller (exchange_services orchestrators,
    ``session_scope`` blocks, tests) owns commit and rollback, so several
    service calls compose into one atomic unit of work.

Failure modes:
    - A subclass that commits on its own breaks the all-or-nothing
      guarantee of multi-write operations such as settlement.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from exchange_kernel.db.base import Base
from exchange_kernel.domain.clock import Clock, SystemClock

ModelType = TypeVar("ModelType", bound=Base)

# created_by_id for rows the system creates on first access
SYSTEM_ACTOR_ID = UUID(int=0)


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or ``rollback()``.
        - Timestamps come from the injected Clock.

    Non-goals:
        - Read-only projections live in ``exchange_kernel/selectors/``.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        self.session = session
        self.clock = clock or SystemClock()
