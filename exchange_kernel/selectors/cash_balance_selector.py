"""
Module: exchange_kernel.selectors.cash_balance_selector
Responsibility: Read-only cash balance listings and the manual adjustment
    audit trail.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import func, select

from exchange_kernel.models.cash_balance import CashAdjustment, CashBalance, branch_key_for
from exchange_kernel.selectors.base import BaseSelector


class CashBalanceSelector(BaseSelector[CashBalance]):

    def all_balances(self, tenant_id: UUID, branch_id: UUID | None = None) -> list[CashBalance]:
        """Every balance row for the tenant, or only one branch's when given."""
        stmt = select(CashBalance).where(CashBalance.tenant_id == tenant_id)
        if branch_id is not None:
            stmt = stmt.where(CashBalance.branch_id == branch_id)
        return list(self.session.scalars(stmt.order_by(CashBalance.currency, CashBalance.branch_key)))

    def balance_for(
        self, tenant_id: UUID, branch_id: UUID | None, currency: str
    ) -> CashBalance | None:
        return self.session.scalar(
            select(CashBalance).where(
                CashBalance.tenant_id == tenant_id,
                CashBalance.branch_key == branch_key_for(branch_id),
                CashBalance.currency == currency.upper(),
            )
        )

    def adjustment_history(
        self,
        tenant_id: UUID,
        *,
        branch_id: UUID | None = None,
        currency: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> tuple[list[CashAdjustment], int]:
        """Adjustments newest first, plus the unpaginated total."""
        conditions = [CashAdjustment.tenant_id == tenant_id]
        if branch_id is not None:
            conditions.append(CashAdjustment.branch_id == branch_id)
        if currency is not None:
            conditions.append(CashAdjustment.currency == currency.upper())

        total = self.session.scalar(select(func.count(CashAdjustment.id)).where(*conditions)) or 0
        rows = self.session.scalars(
            select(CashAdjustment)
            .where(*conditions)
            .order_by(CashAdjustment.created_at.desc(), CashAdjustment.id)
            .limit(limit)
            .offset(offset)
        )
        return list(rows), total
