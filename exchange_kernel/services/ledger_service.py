"""
LedgerService -- append-only client ledger with lock-guarded debits.

Responsibility:
    Appends immutable LedgerEntry rows (deposits, withdrawals, the two legs
    of a currency exchange) and computes client balances by summation.

Architecture position:
    Kernel > Services.  Flushes only; the caller's transaction makes the
    two legs of an exchange, or a funds check and its withdrawal, atomic.

Invariants enforced:
    - amount != 0 on every entry.
    - Exchange legs reference each other through related_entry_id.  Both
      ids are minted before insert so neither row is ever updated.
    - Every debit writer locks the (tenant, client, currency) guard row
      ``FOR UPDATE`` first.  A row lock on existing entries cannot block a
      concurrent INSERT; the guard row serializes check-then-act sequences.

Failure modes:
    - InvalidAmountError / InvalidRateError / InvalidCurrencyError before
      any write.
    - InsufficientFundsError from withdraw() when the locked balance is short.
"""

from uuid import UUID, uuid4

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError

from exchange_kernel.db.types import validate_currency
from exchange_kernel.domain.dtos import LedgerEntryDraft
from exchange_kernel.domain.values import Amount
from exchange_kernel.exceptions import (
    InsufficientFundsError,
    InvalidAmountError,
    InvalidRateError,
)
from exchange_kernel.logging_config import get_logger
from exchange_kernel.models.ledger import LedgerBalanceGuard, LedgerEntry, LedgerEntryType
from exchange_kernel.services.base import BaseService

logger = get_logger("services.ledger")


class LedgerService(BaseService[LedgerEntry]):
    """
    Client ledger writes and balance reads.

    Guarantees:
        - Entries are never updated or deleted (see db/immutability.py).
        - Locked balance reads hold their locks until the caller's
          transaction ends.
    """

    # -------------------------------------------------------------------------
    # Locking
    # -------------------------------------------------------------------------

    def _lock_balance_guard(
        self, tenant_id: UUID, client_id: UUID, currency: str
    ) -> LedgerBalanceGuard:
        stmt = (
            select(LedgerBalanceGuard)
            .where(
                LedgerBalanceGuard.tenant_id == tenant_id,
                LedgerBalanceGuard.client_id == client_id,
                LedgerBalanceGuard.currency == currency,
            )
            .with_for_update()
        )
        guard = self.session.execute(stmt).scalar_one_or_none()
        if guard is not None:
            return guard

        savepoint = self.session.begin_nested()
        try:
            guard = LedgerBalanceGuard(tenant_id=tenant_id, client_id=client_id, currency=currency)
            self.session.add(guard)
            self.session.flush()
            savepoint.commit()
            return guard
        except IntegrityError:
            savepoint.rollback()
            logger.debug(
                "ledger_guard_race_retry",
                extra={"client_id": str(client_id), "currency": currency},
            )
            return self.session.execute(stmt).scalar_one()

    def _entry_amounts(
        self,
        tenant_id: UUID,
        client_id: UUID,
        currency: str | None = None,
        *,
        for_update: bool = False,
        for_share: bool = False,
    ) -> list[tuple[str, Amount]]:
        # Row locks cannot wrap an aggregate on PostgreSQL, so rows are
        # locked individually and summed here.
        stmt = select(LedgerEntry.currency, LedgerEntry.amount).where(
            LedgerEntry.tenant_id == tenant_id,
            LedgerEntry.client_id == client_id,
        )
        if currency is not None:
            stmt = stmt.where(LedgerEntry.currency == currency)
        if for_update:
            stmt = stmt.with_for_update()
        elif for_share:
            stmt = stmt.with_for_update(read=True)
        return [(row.currency, row.amount) for row in self.session.execute(stmt)]

    # -------------------------------------------------------------------------
    # Writes
    # -------------------------------------------------------------------------

    def add_entry(self, draft: LedgerEntryDraft, *, entry_id: UUID | None = None) -> LedgerEntry:
        """
        Append one entry inside the caller's transaction.

        Raises:
            InvalidAmountError: amount is zero.
            InvalidCurrencyError: unknown currency code.
        """
        currency = validate_currency(draft.currency)
        amount = Amount.of(draft.amount).quantize_money()
        if amount.is_zero:
            raise InvalidAmountError("amount", draft.amount, "amount cannot be zero")

        if amount.is_negative:
            self._lock_balance_guard(draft.tenant_id, draft.client_id, currency)

        entry = LedgerEntry(
            id=entry_id or uuid4(),
            tenant_id=draft.tenant_id,
            client_id=draft.client_id,
            branch_id=draft.branch_id,
            entry_type=LedgerEntryType(draft.entry_type).value,
            currency=currency,
            amount=amount,
            exchange_rate=draft.exchange_rate,
            related_entry_id=draft.related_entry_id,
            description=draft.description,
            created_by_id=draft.created_by,
            created_at=self.clock.now(),
        )
        self.session.add(entry)
        self.session.flush()

        logger.info(
            "ledger_entry_added",
            extra={
                "entry_id": str(entry.id),
                "client_id": str(entry.client_id),
                "entry_type": entry.entry_type,
                "currency": currency,
                "amount": str(entry.amount),
            },
        )
        return entry

    def exchange(
        self,
        *,
        tenant_id: UUID,
        client_id: UUID,
        user_id: UUID,
        from_currency: str,
        to_currency: str,
        amount: Amount,
        rate: Amount,
        branch_id: UUID | None = None,
        description: str = "",
    ) -> tuple[LedgerEntry, LedgerEntry]:
        """
        Convert ``amount`` of ``from_currency`` into ``to_currency`` at ``rate``.

        One unit of from_currency buys ``rate`` units of to_currency.  Returns
        (debit, credit); the caller's commit makes both visible together.
        """
        amount = Amount.of(amount).quantize_money()
        rate = Amount.of(rate).quantize_rate()
        if not amount.is_positive:
            raise InvalidAmountError("amount", amount, "must be greater than zero")
        if not rate.is_positive:
            raise InvalidRateError("rate", rate)
        from_currency = validate_currency(from_currency)
        to_currency = validate_currency(to_currency)

        converted = (amount * rate).quantize_money()
        if converted.is_zero:
            raise InvalidAmountError("amount", amount, "converted amount rounds to zero")

        debit_id, credit_id = uuid4(), uuid4()
        debit = self.add_entry(
            LedgerEntryDraft(
                tenant_id=tenant_id,
                client_id=client_id,
                branch_id=branch_id,
                entry_type=LedgerEntryType.EXCHANGE_OUT,
                currency=from_currency,
                amount=-amount,
                exchange_rate=rate,
                related_entry_id=credit_id,
                description=f"{description} (Sold)",
                created_by=user_id,
            ),
            entry_id=debit_id,
        )
        credit = self.add_entry(
            LedgerEntryDraft(
                tenant_id=tenant_id,
                client_id=client_id,
                branch_id=branch_id,
                entry_type=LedgerEntryType.EXCHANGE_IN,
                currency=to_currency,
                amount=converted,
                exchange_rate=rate,
                related_entry_id=debit_id,
                description=f"{description} (Bought)",
                created_by=user_id,
            ),
            entry_id=credit_id,
        )

        logger.info(
            "ledger_exchange_recorded",
            extra={
                "client_id": str(client_id),
                "from_currency": from_currency,
                "to_currency": to_currency,
                "amount": str(amount),
                "rate": str(rate),
                "converted": str(converted),
            },
        )
        return debit, credit

    def deposit(
        self,
        *,
        tenant_id: UUID,
        client_id: UUID,
        user_id: UUID,
        currency: str,
        amount: Amount,
        branch_id: UUID | None = None,
        description: str = "",
    ) -> LedgerEntry:
        amount = Amount.of(amount).quantize_money()
        if not amount.is_positive:
            raise InvalidAmountError("amount", amount, "must be greater than zero")
        return self.add_entry(
            LedgerEntryDraft(
                tenant_id=tenant_id,
                client_id=client_id,
                branch_id=branch_id,
                entry_type=LedgerEntryType.DEPOSIT,
                currency=currency,
                amount=amount,
                created_by=user_id,
                description=description,
            )
        )

    def withdraw(
        self,
        *,
        tenant_id: UUID,
        client_id: UUID,
        user_id: UUID,
        currency: str,
        amount: Amount,
        branch_id: UUID | None = None,
        description: str = "",
    ) -> LedgerEntry:
        """
        Debit the client after a locked sufficient-funds check.

        The guard row stays locked through the insert, so no concurrent
        debit can slip in between the check and the write.
        """
        amount = Amount.of(amount).quantize_money()
        if not amount.is_positive:
            raise InvalidAmountError("amount", amount, "must be greater than zero")
        currency = validate_currency(currency)

        available = self.get_client_balance_for_currency(client_id, tenant_id, currency)
        if amount > available:
            raise InsufficientFundsError(str(client_id), currency, amount.value, available.value)

        return self.add_entry(
            LedgerEntryDraft(
                tenant_id=tenant_id,
                client_id=client_id,
                branch_id=branch_id,
                entry_type=LedgerEntryType.WITHDRAWAL,
                currency=currency,
                amount=-amount,
                created_by=user_id,
                description=description,
            )
        )

    # -------------------------------------------------------------------------
    # Balances
    # -------------------------------------------------------------------------

    def get_client_balances(self, client_id: UUID, tenant_id: UUID) -> dict[str, Amount]:
        """Balance per currency, read under a shared lock on the summed rows."""
        balances: dict[str, Amount] = {}
        for currency, amount in self._entry_amounts(tenant_id, client_id, for_share=True):
            balances[currency] = balances.get(currency, Amount.zero()) + amount
        return balances

    def get_client_balance_for_currency(
        self, client_id: UUID, tenant_id: UUID, currency: str
    ) -> Amount:
        """
        Exclusive-locked single-currency balance for withdrawal validation.

        Locks the guard row and every summed entry until the caller's
        transaction ends.
        """
        currency = validate_currency(currency)
        self._lock_balance_guard(tenant_id, client_id, currency)
        amounts = self._entry_amounts(tenant_id, client_id, currency, for_update=True)
        return sum((amount for _, amount in amounts), Amount.zero())
