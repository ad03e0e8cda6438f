"""
ORM-level append-only enforcement for audit records.

SQLAlchemy fires ``before_update`` / ``before_delete`` before the SQL reaches
the database.  The listeners registered here reject any change to an
insert-only record, so a flush that would rewrite history aborts and the
transaction rolls back:

    session.flush()
         |
         v
    [before_update / before_delete] --> ImmutabilityViolationError
         |
         v
    SQL sent to database (only for mutable entities)

Protected entities (always immutable, from creation):

    LedgerEntry            client money movements
    CashAdjustment         manual cash balance changes
    WACRecord              inventory buy/sell/adjust trail
    RemittanceSettlement   settlement matches with frozen rates

Core ``update()`` statements bypass mapper events; the services never issue
them against these tables.
"""

from sqlalchemy import event

from exchange_kernel.exceptions import ImmutabilityViolationError
from exchange_kernel.logging_config import get_logger

logger = get_logger("db.immutability")


def _insert_only_models() -> tuple[type, ...]:
    from exchange_kernel.models.cash_balance import CashAdjustment
    from exchange_kernel.models.currency_holding import WACRecord
    from exchange_kernel.models.ledger import LedgerEntry
    from exchange_kernel.models.remittance import RemittanceSettlement

    return (LedgerEntry, CashAdjustment, WACRecord, RemittanceSettlement)


def _block(operation: str, target) -> None:
    entity_type = type(target).__name__
    logger.error(
        "immutability_violation_blocked",
        extra={
            "entity_type": entity_type,
            "entity_id": str(target.id),
            "operation": operation,
        },
    )
    raise ImmutabilityViolationError(
        entity_type=entity_type,
        entity_id=str(target.id),
        reason=f"{entity_type} records are append-only and cannot be {operation.lower()}d",
    )


def _check_update(mapper, connection, target):
    _block("UPDATE", target)


def _check_delete(mapper, connection, target):
    _block("DELETE", target)


def register_immutability_listeners() -> None:
    """
    Register the append-only listeners.

    Call once during application initialization, after models are importable.
    Registering twice is harmless.
    """
    for model in _insert_only_models():
        if not event.contains(model, "before_update", _check_update):
            event.listen(model, "before_update", _check_update)
        if not event.contains(model, "before_delete", _check_delete):
            event.listen(model, "before_delete", _check_delete)


def unregister_immutability_listeners() -> None:
    """Remove the listeners.  Tests only."""
    for model in _insert_only_models():
        if event.contains(model, "before_update", _check_update):
            event.remove(model, "before_update", _check_update)
        if event.contains(model, "before_delete", _check_delete):
            event.remove(model, "before_delete", _check_delete)
