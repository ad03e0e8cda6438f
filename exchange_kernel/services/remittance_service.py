"""
RemittanceService -- outgoing/incoming remittance lifecycle and settlement.

Responsibility:
    Creates remittances with tenant-scoped sequential codes, settles part of
    an incoming against an outgoing, cancels untouched remittances and marks
    fully allocated incoming remittances as paid to the recipient.

Architecture position:
    Kernel > Services.  Flush only; ``settle_remittance`` is one unit of
    work (two locked reads, one insert, two updates) that the caller
    commits or rolls back as a whole.  Settlement math lives in
    exchange_engines.settlement.

Invariants enforced:
    - Both remittance rows are locked ``FOR UPDATE`` before any remaining
      balance is checked, outgoing first, then incoming.  A fixed order
      means two reversed concurrent calls cannot deadlock.
    - remaining_irr == amount_irr - settled (or allocated), never negative,
      kept exact.  COMPLETED is reached when remaining <= tolerance.
    - Status only moves forward; a settled or allocated remittance can no
      longer be cancelled.
    - Settlement rows freeze both rates at settlement time.
    - Lookups filter on tenant_id: another tenant's id is not found.

Failure modes:
    - InvalidAmountError / InvalidRateError on creation or settlement input.
    - ExceedsRemainingError, RemittanceStateError,
      RemittanceNotCancellableError, RemittanceNotFullyAllocatedError.
    - RemittanceNotFoundError for a missing or other-tenant id.
"""

from dataclasses import dataclass
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from exchange_engines.settlement import (
    DEFAULT_COMPLETION_TOLERANCE,
    equivalent_cad,
    is_fully_settled,
    settlement_profit,
)
from exchange_kernel.domain.clock import Clock
from exchange_kernel.domain.dtos import IncomingRemittanceRequest, OutgoingRemittanceRequest
from exchange_kernel.domain.values import Amount
from exchange_kernel.exceptions import (
    ExceedsRemainingError,
    InvalidAmountError,
    InvalidRateError,
    RemittanceNotCancellableError,
    RemittanceNotFoundError,
    RemittanceNotFullyAllocatedError,
    RemittanceStateError,
    ValidationError,
)
from exchange_kernel.logging_config import get_logger
from exchange_kernel.models.remittance import (
    OPEN_STATUSES,
    IncomingRemittance,
    OutgoingRemittance,
    RemittanceSettlement,
    RemittanceStatus,
)
from exchange_kernel.services.base import BaseService
from exchange_kernel.services.sequence_service import SequenceService

logger = get_logger("services.remittance")

OUTGOING = "outgoing"
INCOMING = "incoming"


@dataclass(frozen=True)
class RemittanceSettings:
    """Code format and completion tolerance; built from config by exchange_config.bridges."""

    completion_tolerance: Amount = DEFAULT_COMPLETION_TOLERANCE
    code_digits: int = 6
    outgoing_prefix: str = "OUT"
    incoming_prefix: str = "IN"


def _next_status(remaining: Amount, moved: Amount, tolerance: Amount) -> RemittanceStatus:
    if is_fully_settled(remaining, tolerance):
        return RemittanceStatus.COMPLETED
    if moved.is_positive:
        return RemittanceStatus.PARTIAL
    return RemittanceStatus.PENDING


class RemittanceService(BaseService[OutgoingRemittance]):
    """
    Remittance writes.

    Usage:
        with session_scope() as session:
            service = RemittanceService(session, clock)
            settlement = service.settle_remittance(
                tenant_id=t, outgoing_id=o, incoming_id=i,
                amount_irr=Amount("200000000"), user_id=u,
            )
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        settings: RemittanceSettings | None = None,
    ):
        super().__init__(session, clock)
        self.settings = settings or RemittanceSettings()
        self._sequences = SequenceService(session)

    # -------------------------------------------------------------------------
    # Creation
    # -------------------------------------------------------------------------

    @staticmethod
    def _validate_request(
        amount_irr: Amount, rate: Amount, rate_field: str, fee_cad: Amount,
        sender_name: str, recipient_name: str,
    ) -> tuple[Amount, Amount, Amount]:
        """Return (amount, rate, fee) at stored scale, or raise before any write."""
        # Checks run on the stored values; sub-scale inputs round to zero
        amount_irr = Amount.of(amount_irr).quantize_money()
        rate = Amount.of(rate).quantize_rate()
        fee_cad = Amount.of(fee_cad).quantize_money()
        if not amount_irr.is_positive:
            raise InvalidAmountError("amount_irr", amount_irr, "must be greater than zero")
        if not rate.is_positive:
            raise InvalidRateError(rate_field, rate)
        if fee_cad.is_negative:
            raise InvalidAmountError("fee_cad", fee_cad, "cannot be negative")
        if not (sender_name or "").strip() or not (recipient_name or "").strip():
            raise ValidationError("Sender and recipient names are required")
        return amount_irr, rate, fee_cad

    def create_outgoing(self, request: OutgoingRemittanceRequest) -> OutgoingRemittance:
        """
        Create a PENDING outgoing remittance.

        The code is drawn from the tenant's locked counter row in this same
        transaction, so concurrent creations never share a code.
        """
        amount_irr, rate, fee_cad = self._validate_request(
            request.amount_irr, request.buy_rate_cad, "buy_rate_cad", request.fee_cad,
            request.sender_name, request.recipient_name,
        )
        code = self._sequences.next_remittance_code(
            request.tenant_id, self.settings.outgoing_prefix, self.settings.code_digits
        )
        now = self.clock.now()
        remittance = OutgoingRemittance(
            tenant_id=request.tenant_id,
            branch_id=request.branch_id,
            remittance_code=code,
            sender_name=request.sender_name.strip(),
            sender_phone=request.sender_phone,
            recipient_name=request.recipient_name.strip(),
            recipient_phone=request.recipient_phone,
            amount_irr=amount_irr,
            buy_rate_cad=rate,
            equivalent_cad=equivalent_cad(amount_irr, rate),
            settled_amount_irr=Amount.zero(),
            remaining_irr=amount_irr,
            total_profit_cad=Amount.zero(),
            fee_cad=fee_cad,
            status=RemittanceStatus.PENDING.value,
            notes=request.notes,
            created_by_id=request.created_by,
            created_at=now,
            updated_at=now,
        )
        self.session.add(remittance)
        self.session.flush()
        self._log_created(OUTGOING, remittance)
        return remittance

    def create_incoming(self, request: IncomingRemittanceRequest) -> IncomingRemittance:
        """Create a PENDING incoming remittance; symmetric to create_outgoing."""
        amount_irr, rate, fee_cad = self._validate_request(
            request.amount_irr, request.sell_rate_cad, "sell_rate_cad", request.fee_cad,
            request.sender_name, request.recipient_name,
        )
        code = self._sequences.next_remittance_code(
            request.tenant_id, self.settings.incoming_prefix, self.settings.code_digits
        )
        now = self.clock.now()
        remittance = IncomingRemittance(
            tenant_id=request.tenant_id,
            branch_id=request.branch_id,
            remittance_code=code,
            sender_name=request.sender_name.strip(),
            sender_phone=request.sender_phone,
            recipient_name=request.recipient_name.strip(),
            recipient_phone=request.recipient_phone,
            amount_irr=amount_irr,
            sell_rate_cad=rate,
            equivalent_cad=equivalent_cad(amount_irr, rate),
            allocated_irr=Amount.zero(),
            remaining_irr=amount_irr,
            total_profit_cad=Amount.zero(),
            fee_cad=fee_cad,
            status=RemittanceStatus.PENDING.value,
            notes=request.notes,
            created_by_id=request.created_by,
            created_at=now,
            updated_at=now,
        )
        self.session.add(remittance)
        self.session.flush()
        self._log_created(INCOMING, remittance)
        return remittance

    def _log_created(self, direction: str, remittance) -> None:
        logger.info(
            "remittance_created",
            extra={
                "direction": direction,
                "remittance_id": str(remittance.id),
                "remittance_code": remittance.remittance_code,
                "amount_irr": str(remittance.amount_irr),
                "equivalent_cad": str(remittance.equivalent_cad),
            },
        )

    # -------------------------------------------------------------------------
    # Lookups
    # -------------------------------------------------------------------------

    def _fetch(self, model, direction: str, tenant_id: UUID, remittance_id: UUID, *, lock: bool):
        stmt = select(model).where(model.id == remittance_id, model.tenant_id == tenant_id)
        if lock:
            stmt = stmt.with_for_update()
        stmt = stmt.execution_options(populate_existing=True)
        remittance = self.session.execute(stmt).scalar_one_or_none()
        if remittance is None:
            raise RemittanceNotFoundError(direction, str(remittance_id))
        return remittance

    def get_outgoing(self, tenant_id: UUID, remittance_id: UUID) -> OutgoingRemittance:
        return self._fetch(OutgoingRemittance, OUTGOING, tenant_id, remittance_id, lock=False)

    def get_incoming(self, tenant_id: UUID, remittance_id: UUID) -> IncomingRemittance:
        return self._fetch(IncomingRemittance, INCOMING, tenant_id, remittance_id, lock=False)

    def lock_outgoing(self, tenant_id: UUID, remittance_id: UUID) -> OutgoingRemittance:
        return self._fetch(OutgoingRemittance, OUTGOING, tenant_id, remittance_id, lock=True)

    def lock_incoming(self, tenant_id: UUID, remittance_id: UUID) -> IncomingRemittance:
        return self._fetch(IncomingRemittance, INCOMING, tenant_id, remittance_id, lock=True)

    # -------------------------------------------------------------------------
    # Settlement
    # -------------------------------------------------------------------------

    def settle_remittance(
        self,
        *,
        tenant_id: UUID,
        outgoing_id: UUID,
        incoming_id: UUID,
        amount_irr: Amount,
        user_id: UUID,
        notes: str | None = None,
    ) -> RemittanceSettlement:
        """
        Apply ``amount_irr`` of an incoming remittance to an outgoing debt.

        Steps:
            1. Lock outgoing, then incoming.
            2. Both must be PENDING or PARTIAL, and amount <= each remaining.
            3. profit = amount / buy_rate - amount / sell_rate.
            4. Insert the settlement row with both rates frozen.
            5. Outgoing: settled += amount, remaining -= amount, profit +=.
            6. Incoming: allocated += amount, remaining -= amount, profit +=.

        Any failure leaves both rows untouched once the caller rolls back;
        validation failures happen before any write.
        """
        amount = Amount.of(amount_irr).quantize_money()
        if not amount.is_positive:
            raise InvalidAmountError("amount_irr", amount, "must be greater than zero")

        outgoing = self.lock_outgoing(tenant_id, outgoing_id)
        incoming = self.lock_incoming(tenant_id, incoming_id)

        for direction, remittance in ((OUTGOING, outgoing), (INCOMING, incoming)):
            if remittance.status not in OPEN_STATUSES:
                raise RemittanceStateError(direction, str(remittance.id), remittance.status, "settle")
            if amount > remittance.remaining_irr:
                raise ExceedsRemainingError(
                    direction, str(remittance.id), amount.value, remittance.remaining_irr.value
                )

        profit = settlement_profit(amount, outgoing.buy_rate_cad, incoming.sell_rate_cad)
        now = self.clock.now()
        tolerance = self.settings.completion_tolerance

        settlement = RemittanceSettlement(
            tenant_id=tenant_id,
            outgoing_remittance_id=outgoing.id,
            incoming_remittance_id=incoming.id,
            settled_amount_irr=amount,
            outgoing_buy_rate=outgoing.buy_rate_cad,
            incoming_sell_rate=incoming.sell_rate_cad,
            profit_cad=profit,
            notes=notes,
            created_by_id=user_id,
            created_at=now,
        )
        self.session.add(settlement)

        outgoing.settled_amount_irr = outgoing.settled_amount_irr + amount
        outgoing.remaining_irr = outgoing.amount_irr - outgoing.settled_amount_irr
        outgoing.total_profit_cad = outgoing.total_profit_cad + profit
        outgoing.status = _next_status(
            outgoing.remaining_irr, outgoing.settled_amount_irr, tolerance
        ).value
        outgoing.updated_at = now
        if outgoing.status == RemittanceStatus.COMPLETED:
            outgoing.completed_at = now

        incoming.allocated_irr = incoming.allocated_irr + amount
        incoming.remaining_irr = incoming.amount_irr - incoming.allocated_irr
        incoming.total_profit_cad = incoming.total_profit_cad + profit
        incoming.status = _next_status(
            incoming.remaining_irr, incoming.allocated_irr, tolerance
        ).value
        incoming.updated_at = now
        if incoming.status == RemittanceStatus.COMPLETED:
            incoming.completed_at = now

        self.session.flush()

        logger.info(
            "remittance_settled",
            extra={
                "settlement_id": str(settlement.id),
                "outgoing_id": str(outgoing.id),
                "incoming_id": str(incoming.id),
                "amount_irr": str(amount),
                "profit_cad": str(profit),
                "outgoing_status": outgoing.status,
                "incoming_status": incoming.status,
                "outgoing_remaining_irr": str(outgoing.remaining_irr),
                "incoming_remaining_irr": str(incoming.remaining_irr),
            },
        )
        return settlement

    # -------------------------------------------------------------------------
    # Cancellation and payout
    # -------------------------------------------------------------------------

    def _cancel(self, remittance, direction: str, moved: Amount, user_id: UUID, reason: str | None):
        if moved.is_positive:
            raise RemittanceNotCancellableError(direction, str(remittance.id), moved.value)
        if remittance.status not in OPEN_STATUSES:
            raise RemittanceStateError(direction, str(remittance.id), remittance.status, "cancel")

        now = self.clock.now()
        remittance.status = RemittanceStatus.CANCELLED.value
        remittance.cancelled_at = now
        remittance.cancelled_by_id = user_id
        remittance.cancellation_reason = reason
        remittance.updated_at = now
        self.session.flush()

        logger.info(
            "remittance_cancelled",
            extra={
                "direction": direction,
                "remittance_id": str(remittance.id),
                "remittance_code": remittance.remittance_code,
                "reason": reason,
            },
        )
        return remittance

    def cancel_outgoing(
        self, tenant_id: UUID, remittance_id: UUID, user_id: UUID, reason: str | None = None
    ) -> OutgoingRemittance:
        """Cancel an outgoing remittance nothing has been settled against."""
        outgoing = self.lock_outgoing(tenant_id, remittance_id)
        return self._cancel(outgoing, OUTGOING, outgoing.settled_amount_irr, user_id, reason)

    def cancel_incoming(
        self, tenant_id: UUID, remittance_id: UUID, user_id: UUID, reason: str | None = None
    ) -> IncomingRemittance:
        """Cancel an incoming remittance nothing has been allocated from."""
        incoming = self.lock_incoming(tenant_id, remittance_id)
        return self._cancel(incoming, INCOMING, incoming.allocated_irr, user_id, reason)

    def mark_incoming_as_paid(
        self,
        tenant_id: UUID,
        remittance_id: UUID,
        user_id: UUID,
        payment_method: str,
        payment_reference: str | None = None,
    ) -> IncomingRemittance:
        """
        Record disbursement to the recipient: COMPLETED -> PAID.

        Raises:
            RemittanceNotFullyAllocatedError: remaining is above tolerance.
            RemittanceStateError: not COMPLETED (cancelled, already paid, or
                never allocated).
        """
        incoming = self.lock_incoming(tenant_id, remittance_id)
        if incoming.status in (RemittanceStatus.CANCELLED, RemittanceStatus.PAID):
            raise RemittanceStateError(INCOMING, str(incoming.id), incoming.status, "mark as paid")
        if not is_fully_settled(incoming.remaining_irr, self.settings.completion_tolerance):
            raise RemittanceNotFullyAllocatedError(str(incoming.id), incoming.remaining_irr.value)
        # PAID follows COMPLETED only
        if incoming.status != RemittanceStatus.COMPLETED.value:
            raise RemittanceStateError(INCOMING, str(incoming.id), incoming.status, "mark as paid")

        now = self.clock.now()
        incoming.status = RemittanceStatus.PAID.value
        incoming.paid_at = now
        incoming.paid_by_id = user_id
        incoming.paid_cad = incoming.equivalent_cad
        incoming.payment_method = payment_method
        incoming.payment_reference = payment_reference or None
        incoming.updated_at = now
        self.session.flush()

        logger.info(
            "remittance_paid",
            extra={
                "remittance_id": str(incoming.id),
                "remittance_code": incoming.remittance_code,
                "paid_cad": str(incoming.paid_cad),
                "payment_method": payment_method,
            },
        )
        return incoming
