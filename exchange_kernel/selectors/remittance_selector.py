"""
Module: exchange_kernel.selectors.remittance_selector
Responsibility: Read-only remittance listings, settlement history, the
    open-debt summary (by status and by age) and the settlement profit
    summary.
Architecture position: Kernel > Selectors.  Uses the pure aging helpers
    from exchange_engines.settlement.

Invariants enforced:
    - Tenant scoped throughout.
    - Aggregates over Amount columns are computed in Python.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import or_, select

from exchange_engines.settlement import UNSETTLED_AGE_BUCKETS, bucket_for, days_outstanding
from exchange_kernel.domain.dtos import ProfitSummary, StatusBreakdown, UnsettledSummary
from exchange_kernel.domain.values import Amount
from exchange_kernel.models.remittance import (
    OPEN_STATUSES,
    IncomingRemittance,
    OutgoingRemittance,
    RemittanceSettlement,
    RemittanceStatus,
)
from exchange_kernel.selectors.base import BaseSelector

_OPEN_VALUES = [s.value for s in OPEN_STATUSES]


class RemittanceSelector(BaseSelector[OutgoingRemittance]):
    """
    Remittance queries.

    Non-goals:
        - No locking.  Settlement reads its rows through RemittanceService.
    """

    def _list(self, model, tenant_id, status, branch_id, limit, offset):
        stmt = select(model).where(model.tenant_id == tenant_id)
        if status is not None:
            stmt = stmt.where(model.status == RemittanceStatus(status).value)
        if branch_id is not None:
            stmt = stmt.where(model.branch_id == branch_id)
        stmt = stmt.order_by(model.created_at.desc(), model.remittance_code.desc())
        if limit is not None:
            stmt = stmt.limit(limit).offset(offset)
        return list(self.session.scalars(stmt))

    def list_outgoing(
        self,
        tenant_id: UUID,
        *,
        status: RemittanceStatus | str | None = None,
        branch_id: UUID | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[OutgoingRemittance]:
        """Newest first, optionally filtered by status and branch."""
        return self._list(OutgoingRemittance, tenant_id, status, branch_id, limit, offset)

    def list_incoming(
        self,
        tenant_id: UUID,
        *,
        status: RemittanceStatus | str | None = None,
        branch_id: UUID | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[IncomingRemittance]:
        return self._list(IncomingRemittance, tenant_id, status, branch_id, limit, offset)

    def unsettled_outgoing(self, tenant_id: UUID) -> list[OutgoingRemittance]:
        """PENDING/PARTIAL outgoing remittances with something left, oldest first."""
        rows = self.session.scalars(
            select(OutgoingRemittance)
            .where(
                OutgoingRemittance.tenant_id == tenant_id,
                OutgoingRemittance.status.in_(_OPEN_VALUES),
            )
            .order_by(OutgoingRemittance.created_at, OutgoingRemittance.remittance_code)
        )
        return [r for r in rows if r.remaining_irr.is_positive]

    def unsettled_incoming(self, tenant_id: UUID) -> list[IncomingRemittance]:
        rows = self.session.scalars(
            select(IncomingRemittance)
            .where(
                IncomingRemittance.tenant_id == tenant_id,
                IncomingRemittance.status.in_(_OPEN_VALUES),
            )
            .order_by(IncomingRemittance.created_at, IncomingRemittance.remittance_code)
        )
        return [r for r in rows if r.remaining_irr.is_positive]

    def settlement_history(self, tenant_id: UUID, remittance_id: UUID) -> list[RemittanceSettlement]:
        """Settlements touching the remittance on either side, oldest first."""
        return list(
            self.session.scalars(
                select(RemittanceSettlement)
                .where(
                    RemittanceSettlement.tenant_id == tenant_id,
                    or_(
                        RemittanceSettlement.outgoing_remittance_id == remittance_id,
                        RemittanceSettlement.incoming_remittance_id == remittance_id,
                    ),
                )
                .order_by(RemittanceSettlement.created_at, RemittanceSettlement.id)
            )
        )

    def profit_summary(
        self,
        tenant_id: UUID,
        start: datetime | None = None,
        end: datetime | None = None,
    ) -> ProfitSummary:
        """Settlement profit between ``start`` and ``end`` inclusive."""
        stmt = select(RemittanceSettlement.profit_cad).where(
            RemittanceSettlement.tenant_id == tenant_id
        )
        if start is not None:
            stmt = stmt.where(RemittanceSettlement.created_at >= start)
        if end is not None:
            stmt = stmt.where(RemittanceSettlement.created_at <= end)

        profits = list(self.session.scalars(stmt))
        total = sum(profits, Amount.zero())
        average = (total / len(profits)).quantize_money() if profits else Amount.zero()
        return ProfitSummary(
            total_profit_cad=total,
            settlement_count=len(profits),
            average_profit_cad=average,
        )

    def unsettled_summary(self, tenant_id: UUID, as_of: datetime) -> UnsettledSummary:
        """Open outgoing debt grouped by status and by days outstanding at ``as_of``."""
        by_status = {s.value: [0, Amount.zero()] for s in OPEN_STATUSES}
        by_age = {b.name: [0, Amount.zero()] for b in UNSETTLED_AGE_BUCKETS}

        open_rows = self.unsettled_outgoing(tenant_id)
        for row in open_rows:
            status_slot = by_status[RemittanceStatus(row.status).value]
            status_slot[0] += 1
            status_slot[1] += row.remaining_irr

            age_slot = by_age[bucket_for(days_outstanding(row.created_at, as_of)).name]
            age_slot[0] += 1
            age_slot[1] += row.remaining_irr

        return UnsettledSummary(
            total_count=len(open_rows),
            total_remaining_irr=sum((r.remaining_irr for r in open_rows), Amount.zero()),
            by_status={k: StatusBreakdown(count=c, remaining_irr=a) for k, (c, a) in by_status.items()},
            age_buckets={k: StatusBreakdown(count=c, remaining_irr=a) for k, (c, a) in by_age.items()},
            as_of=as_of,
        )
