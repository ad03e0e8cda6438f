"""
CashBalanceService -- per (tenant, branch, currency) cash positions.

Responsibility:
    Lazily creates CashBalance rows seeded from completed cash payments,
    records manual adjustments with an immutable audit row, applies payment
    impacts, and reconciles the automatic balance from payment history.

Architecture position:
    Kernel > Services.  Flush only.  Retrying a lost compare-and-swap is the
    caller's job (exchange_services.cash_adjustment_service), because the
    whole adjustment must be re-run, not just the final update.

Invariants enforced:
    - final_balance == auto_calculated_balance + manual_adjustment after
      every write.
    - Every mutation of a persistent CashBalance is a versioned
      compare-and-swap keyed on the version read at the start of the
      operation (db/optimistic.py).  No locks are held between reads.
    - refresh never touches manual_adjustment.

Failure modes:
    - OptimisticLockError (retryable) when a concurrent writer won.
    - InvalidAmountError for a zero adjustment or payment.
    - CashBalanceNotFoundError for an unknown or other-tenant balance id.
"""

from uuid import UUID

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from exchange_kernel.db.optimistic import compare_and_swap
from exchange_kernel.db.types import validate_currency
from exchange_kernel.domain.values import Amount
from exchange_kernel.exceptions import (
    CashBalanceNotFoundError,
    InvalidAmountError,
    ValidationError,
)
from exchange_kernel.logging_config import get_logger
from exchange_kernel.models.cash_balance import (
    CashAdjustment,
    CashBalance,
    CashPayment,
    PaymentMethod,
    PaymentStatus,
    branch_key_for,
)
from exchange_kernel.services.base import SYSTEM_ACTOR_ID, BaseService

logger = get_logger("services.cash_balance")


class CashBalanceService(BaseService[CashBalance]):
    """Cash balance writes under optimistic concurrency."""

    # -------------------------------------------------------------------------
    # Reads used by the write paths
    # -------------------------------------------------------------------------

    def calculate_balance_from_payments(
        self, tenant_id: UUID, branch_id: UUID | None, currency: str
    ) -> Amount:
        """Sum of completed CASH payments for the scope; a null branch means tenant-wide rows."""
        stmt = select(CashPayment.amount).where(
            CashPayment.tenant_id == tenant_id,
            CashPayment.currency == currency,
            CashPayment.payment_method == PaymentMethod.CASH.value,
            CashPayment.status == PaymentStatus.COMPLETED.value,
        )
        if branch_id is not None:
            stmt = stmt.where(CashPayment.branch_id == branch_id)
        else:
            stmt = stmt.where(CashPayment.branch_id.is_(None))
        return sum(self.session.scalars(stmt), Amount.zero())

    def _find_balance(
        self, tenant_id: UUID, branch_id: UUID | None, currency: str
    ) -> CashBalance | None:
        return self.session.execute(
            select(CashBalance)
            .where(
                CashBalance.tenant_id == tenant_id,
                CashBalance.branch_key == branch_key_for(branch_id),
                CashBalance.currency == currency,
            )
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def get_or_create_cash_balance(
        self,
        tenant_id: UUID,
        branch_id: UUID | None,
        currency: str,
        actor_id: UUID | None = None,
    ) -> CashBalance:
        """
        Return the balance row for the scope, creating it on first access.

        A new row is seeded with auto = sum of historical completed cash
        payments and manual = 0.  Concurrent first access is resolved by the
        unique constraint: the loser rolls back its savepoint and re-reads.
        """
        currency = validate_currency(currency)
        balance = self._find_balance(tenant_id, branch_id, currency)
        if balance is not None:
            return balance

        auto = self.calculate_balance_from_payments(tenant_id, branch_id, currency)
        now = self.clock.now()
        savepoint = self.session.begin_nested()
        try:
            balance = CashBalance(
                tenant_id=tenant_id,
                branch_id=branch_id,
                branch_key=branch_key_for(branch_id),
                currency=currency,
                auto_calculated_balance=auto,
                manual_adjustment=Amount.zero(),
                final_balance=auto,
                last_calculated_at=now,
                updated_at=now,
                created_at=now,
                created_by_id=actor_id or SYSTEM_ACTOR_ID,
                version=1,
            )
            self.session.add(balance)
            self.session.flush()
            savepoint.commit()
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "cash_balance_create_race",
                extra={"currency": currency, "branch_key": branch_key_for(branch_id)},
            )
            balance = self._find_balance(tenant_id, branch_id, currency)
            if balance is None:
                raise
            return balance

        logger.info(
            "cash_balance_created",
            extra={
                "balance_id": str(balance.id),
                "currency": currency,
                "branch_key": balance.branch_key,
                "auto_calculated_balance": str(auto),
            },
        )
        return balance

    def get_balance(self, balance_id: UUID, *, tenant_id: UUID) -> CashBalance:
        balance = self.session.execute(
            select(CashBalance)
            .where(CashBalance.id == balance_id, CashBalance.tenant_id == tenant_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if balance is None:
            raise CashBalanceNotFoundError(str(balance_id))
        return balance

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def create_manual_adjustment(
        self,
        *,
        tenant_id: UUID,
        branch_id: UUID | None,
        currency: str,
        amount: Amount,
        reason: str,
        adjusted_by: UUID,
    ) -> CashAdjustment:
        """
        Apply a signed manual change and record it.

        Steps, in the caller's transaction:
            (a) load or create the balance row
            (b) capture balance_before and the version read
            (c) insert the CashAdjustment
            (d) re-read the row locked and keyed on that version
            (e) manual += amount, final += amount, version += 1

        Raises:
            OptimisticLockError: another writer moved the row after (b).
                Retry the whole call in a new transaction.
        """
        amount = Amount.of(amount).quantize_money()
        if amount.is_zero:
            raise InvalidAmountError("amount", amount, "adjustment cannot be zero")
        if not reason or not reason.strip():
            raise ValidationError("An adjustment reason is required")

        balance = self.get_or_create_cash_balance(tenant_id, branch_id, currency, adjusted_by)
        read_version = balance.version
        balance_before = balance.final_balance
        balance_after = balance_before + amount
        now = self.clock.now()

        adjustment = CashAdjustment(
            tenant_id=tenant_id,
            cash_balance_id=balance.id,
            branch_id=branch_id,
            currency=balance.currency,
            amount=amount,
            reason=reason.strip(),
            balance_before=balance_before,
            balance_after=balance_after,
            created_by_id=adjusted_by,
            created_at=now,
        )
        self.session.add(adjustment)
        self.session.flush()

        compare_and_swap(
            self.session,
            balance,
            {
                "manual_adjustment": balance.manual_adjustment + amount,
                "final_balance": balance_after,
                "updated_at": now,
            },
            expected_version=read_version,
        )

        logger.info(
            "cash_adjustment_created",
            extra={
                "adjustment_id": str(adjustment.id),
                "balance_id": str(balance.id),
                "currency": balance.currency,
                "amount": str(amount),
                "balance_before": str(balance_before),
                "balance_after": str(balance_after),
                "version": balance.version,
            },
        )
        return adjustment

    def record_cash_payment(
        self,
        *,
        tenant_id: UUID,
        branch_id: UUID | None,
        currency: str,
        amount: Amount,
        actor_id: UUID,
        reference: str | None = None,
    ) -> CashPayment:
        """
        Record a completed cash payment and apply it to the automatic balance.

        The balance row is loaded (or seeded) before the payment is inserted
        so a freshly created row does not count the new payment twice.
        """
        amount = Amount.of(amount).quantize_money()
        if amount.is_zero:
            raise InvalidAmountError("amount", amount, "payment cannot be zero")

        balance = self.get_or_create_cash_balance(tenant_id, branch_id, currency, actor_id)
        read_version = balance.version
        now = self.clock.now()

        payment = CashPayment(
            tenant_id=tenant_id,
            branch_id=branch_id,
            currency=balance.currency,
            amount=amount,
            payment_method=PaymentMethod.CASH.value,
            status=PaymentStatus.COMPLETED.value,
            reference=reference,
            created_by_id=actor_id,
            created_at=now,
        )
        self.session.add(payment)
        self.session.flush()

        compare_and_swap(
            self.session,
            balance,
            {
                "auto_calculated_balance": balance.auto_calculated_balance + amount,
                "final_balance": balance.final_balance + amount,
                "updated_at": now,
            },
            expected_version=read_version,
        )

        logger.info(
            "cash_payment_applied",
            extra={
                "payment_id": str(payment.id),
                "balance_id": str(balance.id),
                "currency": balance.currency,
                "amount": str(amount),
                "final_balance": str(balance.final_balance),
            },
        )
        return payment

    def refresh_cash_balance(self, balance_id: UUID, *, tenant_id: UUID) -> CashBalance:
        """Recompute auto from payment history; final = recomputed auto + existing manual."""
        balance = self.get_balance(balance_id, tenant_id=tenant_id)
        read_version = balance.version
        auto = self.calculate_balance_from_payments(
            balance.tenant_id, balance.branch_id, balance.currency
        )
        now = self.clock.now()

        compare_and_swap(
            self.session,
            balance,
            {
                "auto_calculated_balance": auto,
                "final_balance": auto + balance.manual_adjustment,
                "last_calculated_at": now,
                "updated_at": now,
            },
            expected_version=read_version,
        )

        logger.info(
            "cash_balance_refreshed",
            extra={
                "balance_id": str(balance.id),
                "auto_calculated_balance": str(auto),
                "final_balance": str(balance.final_balance),
            },
        )
        return balance

    def refresh_all_balances(self, tenant_id: UUID) -> list[CashBalance]:
        balance_ids = self.session.scalars(
            select(CashBalance.id)
            .where(CashBalance.tenant_id == tenant_id)
            .order_by(CashBalance.currency, CashBalance.branch_key)
        ).all()
        return [self.refresh_cash_balance(bid, tenant_id=tenant_id) for bid in balance_ids]
