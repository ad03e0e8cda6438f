"""
CashAdjustmentService -- cash balance writes with bounded optimistic retry.

Responsibility:
    Runs CashBalanceService operations inside ``run_with_cas_retry`` so a
    lost compare-and-swap re-runs the whole operation (re-read balance,
    new audit row, new swap) in a fresh transaction.

Architecture position:
    Services -- orchestration above the kernel.  Owns the transaction
    boundaries; the kernel service only flushes.

Failure modes:
    - OptimisticLockError once the retry policy is exhausted.
    - Validation errors propagate on the first attempt without retry.
"""

from __future__ import annotations

from uuid import UUID

from sqlalchemy.orm import Session, sessionmaker

from exchange_kernel.db.optimistic import CASRetryPolicy, run_with_cas_retry
from exchange_kernel.domain.clock import Clock, SystemClock
from exchange_kernel.domain.values import Amount
from exchange_kernel.logging_config import LogContext
from exchange_kernel.models.cash_balance import CashAdjustment, CashBalance, CashPayment
from exchange_kernel.services.cash_balance_service import CashBalanceService


class CashAdjustmentService:
    """Retried entry points for cash balance mutations."""

    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Clock | None = None,
        policy: CASRetryPolicy | None = None,
    ):
        self._session_factory = session_factory
        self._clock = clock or SystemClock()
        self._policy = policy or CASRetryPolicy()

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
        def attempt(session: Session) -> CashAdjustment:
            return CashBalanceService(session, self._clock).create_manual_adjustment(
                tenant_id=tenant_id,
                branch_id=branch_id,
                currency=currency,
                amount=amount,
                reason=reason,
                adjusted_by=adjusted_by,
            )

        with LogContext.bind(tenant_id=tenant_id, actor_id=adjusted_by):
            return run_with_cas_retry(
                self._session_factory,
                attempt,
                policy=self._policy,
                operation_name="create_manual_adjustment",
            )

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
        def attempt(session: Session) -> CashPayment:
            return CashBalanceService(session, self._clock).record_cash_payment(
                tenant_id=tenant_id,
                branch_id=branch_id,
                currency=currency,
                amount=amount,
                actor_id=actor_id,
                reference=reference,
            )

        with LogContext.bind(tenant_id=tenant_id, actor_id=actor_id):
            return run_with_cas_retry(
                self._session_factory,
                attempt,
                policy=self._policy,
                operation_name="record_cash_payment",
            )

    def refresh_cash_balance(self, balance_id: UUID, *, tenant_id: UUID) -> CashBalance:
        def attempt(session: Session) -> CashBalance:
            return CashBalanceService(session, self._clock).refresh_cash_balance(
                balance_id, tenant_id=tenant_id
            )

        with LogContext.bind(tenant_id=tenant_id):
            return run_with_cas_retry(
                self._session_factory,
                attempt,
                policy=self._policy,
                operation_name="refresh_cash_balance",
            )
