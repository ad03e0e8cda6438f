"""
Module: exchange_kernel.selectors.wac_selector
Responsibility: Read-only WAC audit trail, single-position lookup and
    realized profit/loss over a period.
Architecture position: Kernel > Selectors.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import select

from exchange_kernel.domain.dtos import CurrencyPosition, RealizedProfitLoss
from exchange_kernel.domain.values import Amount
from exchange_kernel.models.currency_holding import CurrencyHolding, WACRecord, WACTransactionType
from exchange_kernel.selectors.base import BaseSelector


class WACSelector(BaseSelector[WACRecord]):

    def position(self, tenant_id: UUID, currency: str) -> CurrencyPosition | None:
        holding = self.session.scalar(
            select(CurrencyHolding).where(
                CurrencyHolding.tenant_id == tenant_id,
                CurrencyHolding.currency == currency.upper(),
            )
        )
        if holding is None:
            return None
        return CurrencyPosition(
            currency=holding.currency,
            quantity=holding.quantity,
            wac=holding.wac,
            total_cost=holding.total_cost,
            updated_at=holding.updated_at,
        )

    def history(
        self,
        tenant_id: UUID,
        *,
        currency: str | None = None,
        limit: int = 100,
        offset: int = 0,
    ) -> list[WACRecord]:
        """WAC movements oldest first, so each row's previous_* matches the row before."""
        stmt = select(WACRecord).where(WACRecord.tenant_id == tenant_id)
        if currency is not None:
            stmt = stmt.where(WACRecord.currency == currency.upper())
        stmt = stmt.order_by(WACRecord.created_at, WACRecord.id).limit(limit).offset(offset)
        return list(self.session.scalars(stmt))

    def realized_profit_loss(
        self, tenant_id: UUID, start: datetime, end: datetime
    ) -> RealizedProfitLoss:
        """Sum of SELL profit_or_loss between ``start`` and ``end`` inclusive."""
        rows = self.session.execute(
            select(WACRecord.currency, WACRecord.profit_or_loss).where(
                WACRecord.tenant_id == tenant_id,
                WACRecord.transaction_type == WACTransactionType.SELL.value,
                WACRecord.created_at >= start,
                WACRecord.created_at <= end,
            )
        ).all()

        by_currency: dict[str, Amount] = {}
        for currency, pnl in rows:
            by_currency[currency] = by_currency.get(currency, Amount.zero()) + pnl
        return RealizedProfitLoss(
            start=start,
            end=end,
            total=sum(by_currency.values(), Amount.zero()),
            by_currency=dict(sorted(by_currency.items())),
            sale_count=len(rows),
        )
