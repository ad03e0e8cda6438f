"""
Append-only audit records: ledger entries, cash adjustments, WAC records
and remittance settlements reject ORM updates and deletes.
"""

from uuid import uuid4

import pytest

from exchange_kernel.domain.values import Amount
from exchange_kernel.exceptions import ImmutabilityViolationError
from exchange_kernel.services.cash_balance_service import CashBalanceService
from exchange_kernel.services.ledger_service import LedgerService
from exchange_kernel.services.wac_service import WACService


@pytest.fixture
def ledger_entry(session, clock, tenant_id, actor_id):
    return LedgerService(session, clock).deposit(
        tenant_id=tenant_id,
        client_id=uuid4(),
        user_id=actor_id,
        currency="CAD",
        amount=Amount("100"),
    )


@pytest.fixture
def cash_adjustment(session, clock, tenant_id, actor_id):
    return CashBalanceService(session, clock).create_manual_adjustment(
        tenant_id=tenant_id,
        branch_id=uuid4(),
        currency="CAD",
        amount=Amount("10"),
        reason="Opening float",
        adjusted_by=actor_id,
    )


@pytest.fixture
def wac_record(session, clock, tenant_id, actor_id):
    return WACService(session, clock).record_currency_purchase(
        tenant_id=tenant_id,
        currency="USD",
        quantity=Amount("100"),
        rate=Amount("1.35"),
        actor_id=actor_id,
    )


@pytest.fixture
def settlement(remittance_service, create_outgoing, create_incoming, tenant_id, actor_id):
    outgoing = create_outgoing()
    incoming = create_incoming()
    return remittance_service.settle_remittance(
        tenant_id=tenant_id,
        outgoing_id=outgoing.id,
        incoming_id=incoming.id,
        amount_irr=Amount("1000"),
        user_id=actor_id,
    )


class TestLedgerEntryImmutability:

    def test_update_rejected(self, session, ledger_entry):
        ledger_entry.amount = Amount("1000000")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_type == "LedgerEntry"

    def test_delete_rejected(self, session, ledger_entry):
        session.delete(ledger_entry)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestCashAdjustmentImmutability:

    def test_update_rejected(self, session, cash_adjustment):
        cash_adjustment.reason = "rewritten"
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_rejected(self, session, cash_adjustment):
        session.delete(cash_adjustment)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestWACRecordImmutability:

    def test_update_rejected(self, session, wac_record):
        wac_record.new_wac = Amount("0.01")
        with pytest.raises(ImmutabilityViolationError) as exc_info:
            session.flush()
        assert exc_info.value.entity_id == str(wac_record.id)

    def test_delete_rejected(self, session, wac_record):
        session.delete(wac_record)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()


class TestSettlementImmutability:

    def test_update_rejected(self, session, settlement):
        settlement.profit_cad = Amount("999")
        with pytest.raises(ImmutabilityViolationError):
            session.flush()

    def test_delete_rejected(self, session, settlement, captured_logs):
        session.delete(settlement)
        with pytest.raises(ImmutabilityViolationError):
            session.flush()
        assert any(r["message"] == "immutability_violation_blocked" for r in captured_logs())
