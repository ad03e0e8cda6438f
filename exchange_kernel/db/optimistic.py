"""
Module: exchange_kernel.db.optimistic
Responsibility: Versioned compare-and-swap for mutable aggregates, and a
    bounded-retry runner that re-executes a whole unit of work when the swap
    loses a race.
Architecture position: Kernel > DB.  Used by services that own versioned
    entities (CashBalance) and by exchange_services orchestrators.

Invariants enforced:
    - A swap applies only if the row still carries the version the caller
      read at the start of the operation; at most one concurrent writer
      succeeds per attempt.
    - A lost swap is surfaced as OptimisticLockError, never swallowed and
      never silently overwritten.
    - Retries re-run the entire operation in a fresh transaction, so every
      derived value (balance_before, audit rows) is re-read.

Failure modes:
    - OptimisticLockError after ``max_attempts`` consecutive conflicts.
"""

import time
from dataclasses import dataclass
from typing import Any, Callable, TypeVar

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from exchange_kernel.db.engine import session_scope
from exchange_kernel.exceptions import OptimisticLockError
from exchange_kernel.logging_config import get_logger

logger = get_logger("db.optimistic")

T = TypeVar("T")


def compare_and_swap(
    session: Session,
    entity: Any,
    values: dict[str, Any],
    *,
    expected_version: int | None = None,
) -> Any:
    """
    Apply ``values`` to ``entity`` iff its stored version is unchanged.

    Steps:
        1. Re-read the row with an exclusive lock, keyed on id AND the
           expected version.  A concurrent writer that already committed
           makes the row invisible to this predicate.
        2. ``UPDATE ... SET <values>, version = version + 1
           WHERE id = ? AND version = ?``.
        3. Refresh the in-session instance from the database.

    Args:
        session: Active session; caller owns the transaction.
        entity: A persistent instance of a Versioned model.
        values: Attribute name -> new value.
        expected_version: Defaults to the version currently on ``entity``.

    Returns:
        The refreshed entity.

    Raises:
        OptimisticLockError: If the row moved on (zero rows matched).
    """
    model = type(entity)
    expected = entity.version if expected_version is None else expected_version

    locked_id = session.execute(
        select(model.id)
        .where(model.id == entity.id, model.version == expected)
        .with_for_update()
    ).scalar_one_or_none()

    if locked_id is not None:
        result = session.execute(
            update(model)
            .where(model.id == entity.id, model.version == expected)
            .values(**values, version=expected + 1)
            .execution_options(synchronize_session=False)
        )
        swapped = result.rowcount == 1
    else:
        swapped = False

    if not swapped:
        logger.info(
            "cas_conflict",
            extra={
                "entity_type": model.__name__,
                "entity_id": str(entity.id),
                "expected_version": expected,
            },
        )
        raise OptimisticLockError(model.__name__, str(entity.id), expected)

    session.refresh(entity)
    return entity


@dataclass(frozen=True)
class CASRetryPolicy:
    """Bounded retry settings for optimistic-lock conflicts."""

    max_attempts: int = 3
    backoff_seconds: float = 0.05

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.backoff_seconds < 0:
            raise ValueError("backoff_seconds cannot be negative")


def run_with_cas_retry(
    session_factory: sessionmaker[Session],
    operation: Callable[[Session], T],
    *,
    policy: CASRetryPolicy | None = None,
    operation_name: str = "operation",
) -> T:
    """
    Run ``operation`` in its own transaction, retrying on OptimisticLockError.

    Each attempt opens a fresh session via ``session_scope`` so the retried
    operation re-reads current state.  Other exceptions propagate at once.
    """
    policy = policy or CASRetryPolicy()
    for attempt in range(1, policy.max_attempts + 1):
        try:
            with session_scope(session_factory) as session:
                return operation(session)
        except OptimisticLockError as exc:
            if attempt >= policy.max_attempts:
                logger.warning(
                    "cas_retry_exhausted",
                    extra={
                        "operation": operation_name,
                        "attempts": attempt,
                        "entity_type": exc.entity_type,
                        "entity_id": exc.entity_id,
                    },
                )
                raise
            logger.info(
                "cas_conflict_retry",
                extra={
                    "operation": operation_name,
                    "attempt": attempt,
                    "max_attempts": policy.max_attempts,
                    "entity_type": exc.entity_type,
                    "entity_id": exc.entity_id,
                },
            )
            time.sleep(policy.backoff_seconds * attempt)
    raise AssertionError("unreachable")  # pragma: no cover
