"""
Tests for SequenceService: locked counter rows per named sequence and the
tenant-scoped remittance code format.
"""

from uuid import uuid4

from exchange_kernel.models.sequence import SequenceCounter
from exchange_kernel.services.sequence_service import (
    SequenceService,
    format_remittance_code,
    remittance_sequence_name,
)


class TestNextValue:

    def test_first_value_is_one(self, session):
        assert SequenceService(session).next_value("test:alpha") == 1

    def test_values_strictly_increase(self, session):
        sequences = SequenceService(session)
        assert [sequences.next_value("test:alpha") for _ in range(4)] == [1, 2, 3, 4]
        assert sequences.current_value("test:alpha") == 4

    def test_sequences_are_independent(self, session):
        sequences = SequenceService(session)
        sequences.next_value("test:alpha")
        sequences.next_value("test:alpha")
        assert sequences.next_value("test:beta") == 1

    def test_unknown_sequence_has_no_current_value(self, session):
        assert SequenceService(session).current_value("test:never") is None

    def test_one_row_per_sequence(self, session):
        sequences = SequenceService(session)
        for _ in range(3):
            sequences.next_value("test:alpha")
        assert session.query(SequenceCounter).filter_by(name="test:alpha").count() == 1

    def test_rollback_returns_the_value(self, session_factory):
        session = session_factory()
        try:
            SequenceService(session).next_value("test:rollback")
            session.rollback()
            assert SequenceService(session).next_value("test:rollback") == 1
        finally:
            session.rollback()
            session.close()


class TestRemittanceCodes:

    def test_format(self):
        assert format_remittance_code("OUT", 7) == "OUT-000007"
        assert format_remittance_code("IN", 42, digits=3) == "IN-042"
        assert format_remittance_code("OUT", 1234567) == "OUT-1234567"

    def test_sequence_name_per_tenant_and_prefix(self):
        tenant = uuid4()
        assert remittance_sequence_name(tenant, "OUT") != remittance_sequence_name(tenant, "IN")
        assert remittance_sequence_name(tenant, "OUT") != remittance_sequence_name(uuid4(), "OUT")

    def test_codes_per_tenant(self, session, tenant_id, other_tenant_id):
        sequences = SequenceService(session)
        assert sequences.next_remittance_code(tenant_id, "OUT") == "OUT-000001"
        assert sequences.next_remittance_code(tenant_id, "OUT") == "OUT-000002"
        assert sequences.next_remittance_code(other_tenant_id, "OUT") == "OUT-000001"
        assert sequences.next_remittance_code(tenant_id, "IN") == "IN-000001"

    def test_allocation_logged(self, session, captured_logs):
        SequenceService(session).next_value("test:logged")
        records = [r for r in captured_logs() if r["message"] == "sequence_allocated"]
        assert records[-1]["sequence_name"] == "test:logged"
        assert records[-1]["value"] == 1
