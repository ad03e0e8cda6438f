"""
WACService -- weighted-average-cost currency inventory.

Responsibility:
    Loads the locked CurrencyHolding for (tenant, currency), runs the pure
    WAC engine, writes the new position and appends the WACRecord audit row
    in the caller's transaction.  Serves the live inventory projection,
    optionally through an injected TTLCache.

Architecture position:
    Kernel > Services.  Arithmetic lives in exchange_engines.wac; this class
    only does I/O and locking.

Invariants enforced:
    - The holding row is locked ``FOR UPDATE`` before it is read for a
      mutation, so two concurrent sales cannot both pass the quantity check.
    - Audit insert and holding update share one transaction: both persist
      or neither does.
    - A sale leaves the stored WAC exactly as it was unless the position is
      depleted, in which case it resets to 0.
    - The cache only ever holds committed state.  A mutation schedules
      invalidation of the tenant's entries for the end of the session's
      transaction, and inventory reads in a session with pending mutations
      bypass the cache.

Failure modes:
    - InvalidAmountError / InvalidRateError / InvalidCurrencyError.
    - InsufficientHoldingError when selling or adjusting below zero.
"""

from uuid import UUID

from sqlalchemy import event, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from exchange_engines.wac import (
    HoldingPosition,
    WACMovement,
    apply_adjustment,
    apply_purchase,
    apply_sale,
)
from exchange_kernel.db.types import validate_currency
from exchange_kernel.domain.clock import Clock
from exchange_kernel.domain.dtos import CurrencyInventory, CurrencyPosition
from exchange_kernel.domain.values import Amount
from exchange_kernel.logging_config import get_logger
from exchange_kernel.models.currency_holding import CurrencyHolding, WACRecord
from exchange_kernel.services.base import BaseService
from exchange_kernel.utils.cache import TTLCache

logger = get_logger("services.wac")

# session.info key: set of (cache, tenant_id) awaiting commit
_PENDING_INVALIDATIONS = "exchange_kernel.wac.pending_inventory_invalidations"


def inventory_cache_key(tenant_id: UUID, base_currency: str) -> str:
    return f"inventory:{tenant_id}:{base_currency}"


def _tenant_prefix(tenant_id: UUID) -> str:
    return f"inventory:{tenant_id}:"


@event.listens_for(Session, "after_transaction_end")
def _invalidate_inventory_after_transaction(session: Session, transaction) -> None:
    """
    Drop cached inventory for tenants written in the transaction that just ended.

    Runs after the COMMIT (or ROLLBACK) of the root transaction only; savepoints
    end inside it.  After a rollback the invalidation is merely redundant.
    """
    if transaction.parent is not None:
        return
    for cache, tenant_id in session.info.pop(_PENDING_INVALIDATIONS, ()):
        cache.invalidate_prefix(_tenant_prefix(tenant_id))


class WACService(BaseService[CurrencyHolding]):
    """
    Currency purchases, sales and count adjustments at weighted average cost.

    Args:
        inventory_cache: Optional shared cache for get_currency_inventory().
            Owned by the caller; this service never starts or closes it.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        inventory_cache: TTLCache | None = None,
    ):
        super().__init__(session, clock)
        self._cache = inventory_cache

    # -------------------------------------------------------------------------
    # Locking
    # -------------------------------------------------------------------------

    def _select_holding(self, tenant_id: UUID, currency: str):
        return (
            select(CurrencyHolding)
            .where(CurrencyHolding.tenant_id == tenant_id, CurrencyHolding.currency == currency)
            .with_for_update()
            .execution_options(populate_existing=True)
        )

    def _lock_holding(
        self, tenant_id: UUID, currency: str, actor_id: UUID, *, create: bool
    ) -> CurrencyHolding | None:
        stmt = self._select_holding(tenant_id, currency)
        holding = self.session.execute(stmt).scalar_one_or_none()
        if holding is not None or not create:
            return holding

        now = self.clock.now()
        savepoint = self.session.begin_nested()
        try:
            holding = CurrencyHolding(
                tenant_id=tenant_id,
                currency=currency,
                quantity=Amount.zero(),
                wac=Amount.zero(),
                total_cost=Amount.zero(),
                updated_at=now,
                created_at=now,
                created_by_id=actor_id,
            )
            self.session.add(holding)
            self.session.flush()
            savepoint.commit()
            return holding
        except IntegrityError:
            savepoint.rollback()
            logger.debug("currency_holding_create_race", extra={"currency": currency})
            return self.session.execute(stmt).scalar_one()

    def _has_pending_writes(self, tenant_id: UUID) -> bool:
        pending = self.session.info.get(_PENDING_INVALIDATIONS, ())
        return (self._cache, tenant_id) in pending

    @staticmethod
    def _position(holding: CurrencyHolding | None) -> HoldingPosition:
        if holding is None:
            return HoldingPosition.empty()
        return HoldingPosition(quantity=holding.quantity, wac=holding.wac)

    # -------------------------------------------------------------------------
    # Persistence of engine results
    # -------------------------------------------------------------------------

    def _apply(
        self,
        holding: CurrencyHolding,
        movement: WACMovement,
        *,
        actor_id: UUID,
        reference_id: UUID | None,
        notes: str,
    ) -> WACRecord:
        now = self.clock.now()
        holding.quantity = movement.new.quantity
        holding.wac = movement.new.wac
        holding.total_cost = movement.new.total_cost
        holding.updated_at = now

        record = WACRecord(
            tenant_id=holding.tenant_id,
            currency=holding.currency,
            transaction_type=movement.movement_type.value,
            quantity=movement.quantity,
            rate=movement.rate,
            previous_quantity=movement.previous.quantity,
            previous_wac=movement.previous.wac,
            new_quantity=movement.new.quantity,
            new_wac=movement.new.wac,
            profit_or_loss=movement.profit_or_loss,
            reference_id=reference_id,
            notes=notes,
            created_by_id=actor_id,
            created_at=now,
        )
        self.session.add(record)
        self.session.flush()

        if self._cache is not None:
            pending = self.session.info.setdefault(_PENDING_INVALIDATIONS, set())
            pending.add((self._cache, holding.tenant_id))

        logger.info(
            "wac_movement_recorded",
            extra={
                "record_id": str(record.id),
                "currency": holding.currency,
                "transaction_type": movement.movement_type.value,
                "quantity": str(movement.quantity),
                "rate": str(movement.rate),
                "new_quantity": str(movement.new.quantity),
                "new_wac": str(movement.new.wac),
                "profit_or_loss": str(movement.profit_or_loss),
            },
        )
        return record

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def record_currency_purchase(
        self,
        *,
        tenant_id: UUID,
        currency: str,
        quantity: Amount,
        rate: Amount,
        actor_id: UUID,
        reference_id: UUID | None = None,
        notes: str = "",
    ) -> WACRecord:
        """Buy ``quantity`` at ``rate``; the WAC blends toward the purchase rate."""
        currency = validate_currency(currency)
        holding = self._lock_holding(tenant_id, currency, actor_id, create=True)
        movement = apply_purchase(
            position=self._position(holding),
            quantity=Amount.of(quantity),
            rate=Amount.of(rate),
        )
        return self._apply(
            holding, movement, actor_id=actor_id, reference_id=reference_id, notes=notes
        )

    def record_currency_sale(
        self,
        *,
        tenant_id: UUID,
        currency: str,
        quantity: Amount,
        rate: Amount,
        actor_id: UUID,
        reference_id: UUID | None = None,
        notes: str = "",
    ) -> WACRecord:
        """
        Sell ``quantity`` at ``rate``, realizing (rate - wac) * quantity.

        Raises:
            InsufficientHoldingError: quantity exceeds the locked position.
        """
        currency = validate_currency(currency)
        # No holding row means an empty position; apply_sale rejects the sale
        holding = self._lock_holding(tenant_id, currency, actor_id, create=False)
        movement = apply_sale(
            position=self._position(holding),
            quantity=Amount.of(quantity),
            rate=Amount.of(rate),
            currency=currency,
        )
        return self._apply(
            holding, movement, actor_id=actor_id, reference_id=reference_id, notes=notes
        )

    def adjust_inventory(
        self,
        *,
        tenant_id: UUID,
        currency: str,
        quantity_delta: Amount,
        actor_id: UUID,
        new_wac: Amount | None = None,
        reference_id: UUID | None = None,
        notes: str = "",
    ) -> WACRecord:
        """Correct the held quantity (and optionally the cost) after a count."""
        currency = validate_currency(currency)
        delta = Amount.of(quantity_delta)
        holding = self._lock_holding(
            tenant_id, currency, actor_id, create=delta.is_positive
        )
        movement = apply_adjustment(
            position=self._position(holding),
            quantity_delta=delta,
            currency=currency,
            new_wac=Amount.of(new_wac) if new_wac is not None else None,
        )
        return self._apply(
            holding, movement, actor_id=actor_id, reference_id=reference_id, notes=notes
        )

    # -------------------------------------------------------------------------
    # Projection
    # -------------------------------------------------------------------------

    def get_currency_inventory(
        self, tenant_id: UUID, base_currency: str = "CAD"
    ) -> CurrencyInventory:
        """Live positions with quantity > 0, ordered by currency code."""
        base_currency = validate_currency(base_currency)
        key = inventory_cache_key(tenant_id, base_currency)
        use_cache = self._cache is not None and not self._has_pending_writes(tenant_id)
        if use_cache:
            cached = self._cache.get(key)
            if cached is not None:
                return cached

        holdings = self.session.scalars(
            select(CurrencyHolding)
            .where(CurrencyHolding.tenant_id == tenant_id)
            .order_by(CurrencyHolding.currency)
        ).all()
        positions = tuple(
            CurrencyPosition(
                currency=h.currency,
                quantity=h.quantity,
                wac=h.wac,
                total_cost=h.total_cost,
                updated_at=h.updated_at,
            )
            for h in holdings
            if h.quantity.is_positive
        )
        inventory = CurrencyInventory(
            tenant_id=tenant_id,
            base_currency=base_currency,
            positions=positions,
            total_value=sum((p.total_cost for p in positions), Amount.zero()),
            as_of=self.clock.now(),
        )
        if use_cache:
            self._cache.set(key, inventory)
        return inventory
