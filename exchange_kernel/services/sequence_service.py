"""
SequenceService -- race-free sequential numbers via locked counter rows.

Responsibility:
    Allocates strictly increasing integers per named sequence and formats
    tenant-scoped remittance codes (``OUT-000001``, ``IN-000042``) from them.

Architecture position:
    Kernel > Services.  Called by RemittanceService inside the same
    transaction as the remittance insert.

Invariants enforced:
    - The locked counter row is the sole source of the next value.  The
      aggregate max-plus-one read is never used: two transactions reading
      the same max would mint the same code.
    - Allocation is transactional: a rolled-back creation returns its value.

Failure modes:
    - IntegrityError on concurrent first use of a sequence, handled by a
      savepoint rollback and a locked re-read.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from exchange_kernel.logging_config import get_logger
from exchange_kernel.models.sequence import SequenceCounter

logger = get_logger("services.sequence")


def remittance_sequence_name(tenant_id: UUID, prefix: str) -> str:
    return f"remittance:{prefix}:{tenant_id}"


def format_remittance_code(prefix: str, value: int, digits: int = 6) -> str:
    return f"{prefix}-{value:0{digits}d}"


class SequenceService:
    """
    Transactional sequence allocation.

    Usage:
        with session_scope() as session:
            code = SequenceService(session).next_remittance_code(tenant_id, "OUT")
    """

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(self, sequence_name: str) -> SequenceCounter | None:
        # populate_existing refreshes a counter already in the identity map
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Lock (or create) the counter row, increment it and return the new value.

        The row stays locked until the caller's transaction ends.
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._lock_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def next_remittance_code(self, tenant_id: UUID, prefix: str, digits: int = 6) -> str:
        """Next code for ``prefix`` within one tenant, e.g. ``OUT-000007``."""
        value = self.next_value(remittance_sequence_name(tenant_id, prefix))
        return format_remittance_code(prefix, value, digits)
