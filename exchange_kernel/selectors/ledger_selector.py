"""
Module: exchange_kernel.selectors.ledger_selector
Responsibility: Read-only client ledger queries: paginated entry listings
    and the paired leg of an exchange.
Architecture position: Kernel > Selectors.

Balances that gate a write are read through LedgerService under locks;
this selector takes none.
"""

from uuid import UUID

from sqlalchemy import func, select

from exchange_kernel.models.ledger import LedgerEntry
from exchange_kernel.selectors.base import BaseSelector


class LedgerSelector(BaseSelector[LedgerEntry]):
    """Ledger entry listings, newest first."""

    def entries(
        self,
        client_id: UUID,
        tenant_id: UUID,
        *,
        currency: str | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[LedgerEntry]:
        stmt = select(LedgerEntry).where(
            LedgerEntry.tenant_id == tenant_id,
            LedgerEntry.client_id == client_id,
        )
        if currency is not None:
            stmt = stmt.where(LedgerEntry.currency == currency.upper())
        stmt = (
            stmt.order_by(LedgerEntry.created_at.desc(), LedgerEntry.id)
            .limit(limit)
            .offset(offset)
        )
        return list(self.session.scalars(stmt))

    def count_entries(self, client_id: UUID, tenant_id: UUID) -> int:
        return self.session.scalar(
            select(func.count(LedgerEntry.id)).where(
                LedgerEntry.tenant_id == tenant_id,
                LedgerEntry.client_id == client_id,
            )
        ) or 0

    def related_entry(self, entry: LedgerEntry) -> LedgerEntry | None:
        """The other leg of an exchange, or None for single-leg entries."""
        if entry.related_entry_id is None:
            return None
        return self.session.scalar(
            select(LedgerEntry).where(
                LedgerEntry.id == entry.related_entry_id,
                LedgerEntry.tenant_id == entry.tenant_id,
            )
        )
