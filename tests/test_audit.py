"""
Test suite for audit module

Tests the hash-chained audit trail, tamper detection and integrity
verification of financing events.
"""

import pytest
from datetime import datetime, timezone
from decimal import Decimal

from agro_financing.storage import InMemoryStorage
from agro_financing.audit import AuditTrail, AuditEvent, AuditEventType
from agro_financing.workflow import FinancingStatus


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


class TestAuditEvent:
    """AuditEvent hashing and serialization"""

    def _event(self, **overrides):
        now = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)
        fields = dict(
            id="EVT001",
            created_at=now,
            updated_at=now,
            event_type=AuditEventType.FINANCING_CREATED,
            entity_type="financing",
            entity_id="FIN001",
            previous_hash="",
            current_hash="",
            metadata={"amount": Decimal('1500.00'), "status": FinancingStatus.DRAFT},
            user_id="operador-1"
        )
        fields.update(overrides)
        return AuditEvent(**fields)

    def test_metadata_is_made_storable(self):
        event = self._event()
        assert event.metadata == {"amount": "1500.00", "status": "draft"}

    def test_hash_is_deterministic(self):
        assert self._event().calculate_hash() == self._event().calculate_hash()
        assert len(self._event().calculate_hash()) == 64

    def test_hash_covers_content(self):
        base = self._event().calculate_hash()
        assert self._event(entity_id="FIN002").calculate_hash() != base
        assert self._event(previous_hash="abc").calculate_hash() != base
        assert self._event(metadata={"amount": "1500.01"}).calculate_hash() != base

    def test_verify_hash(self):
        event = self._event()
        event.current_hash = event.calculate_hash()
        assert event.verify_hash()
        event.metadata["amount"] = "9999.00"
        assert not event.verify_hash()

    def test_round_trip_through_dict(self):
        event = self._event()
        event.current_hash = event.calculate_hash()
        restored = AuditEvent.from_dict(event.to_dict())
        assert restored.event_type is AuditEventType.FINANCING_CREATED
        assert restored.verify_hash()


class TestAuditTrail:
    """Appending and querying the chain"""

    def test_first_event_has_empty_previous_hash(self, audit_trail):
        event = audit_trail.log_event(AuditEventType.FARMER_REGISTERED, "farmer", "F1")
        assert event.previous_hash == ""
        assert event.verify_hash()

    def test_events_are_chained(self, audit_trail):
        first = audit_trail.log_event(AuditEventType.FARMER_REGISTERED, "farmer", "F1")
        second = audit_trail.log_event(AuditEventType.PARCEL_ADDED, "parcel", "P1")
        assert second.previous_hash == first.current_hash
        assert audit_trail.get_latest_hash() == second.current_hash

    def test_latest_hash_on_empty_trail(self, audit_trail):
        assert audit_trail.get_latest_hash() is None

    def test_query_by_entity_and_type(self, audit_trail):
        audit_trail.log_event(AuditEventType.FINANCING_CREATED, "financing", "FIN1", user_id="u1")
        audit_trail.log_event(AuditEventType.FINANCING_STATUS_CHANGED, "financing", "FIN1",
                              metadata={"from": "draft", "to": "pending_approval"})
        audit_trail.log_event(AuditEventType.FINANCING_CREATED, "financing", "FIN2")

        fin1 = audit_trail.get_events_for_entity("financing", "FIN1")
        assert [e.event_type for e in fin1] == [
            AuditEventType.FINANCING_CREATED, AuditEventType.FINANCING_STATUS_CHANGED
        ]
        assert fin1[0].user_id == "u1"
        assert len(audit_trail.get_events_by_type(AuditEventType.FINANCING_CREATED)) == 2
        assert audit_trail.count_events() == 3

    def test_logging_inside_rolled_back_transaction_is_discarded(self, storage, audit_trail):
        with pytest.raises(RuntimeError):
            with storage.atomic():
                audit_trail.log_event(AuditEventType.PAYMENT_RECORDED, "financing", "FIN1")
                raise RuntimeError("boom")
        assert audit_trail.count_events() == 0


class TestIntegrity:
    """Tamper detection"""

    def test_untouched_chain_is_valid(self, audit_trail):
        for i in range(5):
            audit_trail.log_event(AuditEventType.PAYMENT_RECORDED, "financing", "FIN1",
                                  metadata={"amount": Decimal(i * 100)})
        result = audit_trail.verify_integrity()
        assert result["valid"]
        assert result["total_events"] == 5
        assert result["hash_errors"] == []
        assert result["chain_breaks"] == []

    def test_modified_event_is_detected(self, storage, audit_trail):
        audit_trail.log_event(AuditEventType.PAYMENT_RECORDED, "financing", "FIN1",
                              metadata={"amount": "100.00"})
        target = audit_trail.log_event(AuditEventType.PAYMENT_RECORDED, "financing", "FIN1",
                                       metadata={"amount": "200.00"})

        data = storage.load(audit_trail.table_name, target.id)
        data["metadata"]["amount"] = "2.00"
        storage.save(audit_trail.table_name, target.id, data)

        result = audit_trail.verify_integrity()
        assert not result["valid"]
        assert [e["event_id"] for e in result["hash_errors"]] == [target.id]

    def test_deleted_event_breaks_chain(self, storage, audit_trail):
        audit_trail.log_event(AuditEventType.FARMER_REGISTERED, "farmer", "F1")
        middle = audit_trail.log_event(AuditEventType.PARCEL_ADDED, "parcel", "P1")
        last = audit_trail.log_event(AuditEventType.PARCEL_ADDED, "parcel", "P2")

        storage.delete(audit_trail.table_name, middle.id)

        result = audit_trail.verify_integrity()
        assert not result["valid"]
        assert result["chain_breaks"][0]["event_id"] == last.id
        assert result["hash_errors"] == []
