"""
Test suite for inspections, estimations and quality controls
"""

import pytest
from decimal import Decimal
from datetime import date

from agro_financing.storage import InMemoryStorage
from agro_financing.audit import AuditTrail, AuditEventType
from agro_financing.farmers import FarmerManager
from agro_financing.inspections import (
    InspectionManager, InspectionStatus, QualityResult,
    normalize_inspection_status, is_active_inspection_status, is_terminal_inspection_status
)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def audit_trail(storage):
    return AuditTrail(storage)


@pytest.fixture
def farmer_manager(storage, audit_trail):
    return FarmerManager(storage, audit_trail)


@pytest.fixture
def inspection_manager(storage, farmer_manager, audit_trail):
    return InspectionManager(storage, farmer_manager, audit_trail)


@pytest.fixture
def farmer(farmer_manager):
    return farmer_manager.register_farmer(full_name="Carmen Salas", cedula="V-15000111")


@pytest.fixture
def parcel(farmer_manager, farmer):
    return farmer_manager.add_parcel(farmer.id, "Hacienda El Carmen", "20", is_linked_to_client=True)


class TestStatusNormalisation:
    """Status variants from different screens"""

    @pytest.mark.parametrize("raw,expected", [
        ("approved", InspectionStatus.APROBADA),
        ("Aprobada", InspectionStatus.APROBADA),
        (" EN PROGRESO ", InspectionStatus.EN_PROGRESO),
        ("in_progress", InspectionStatus.EN_PROGRESO),
        ("scheduled", InspectionStatus.PROGRAMADA),
        ("cancelled", InspectionStatus.CANCELADA),
        (InspectionStatus.RECHAZADA, InspectionStatus.RECHAZADA),
    ])
    def test_known_variants(self, raw, expected):
        assert normalize_inspection_status(raw) is expected

    @pytest.mark.parametrize("raw", [None, "", "finished"])
    def test_unknown_variants(self, raw):
        assert normalize_inspection_status(raw) is None

    def test_active_and_terminal(self):
        assert is_active_inspection_status("pending")
        assert not is_terminal_inspection_status("pending")
        assert is_terminal_inspection_status("Completada")
        assert not is_active_inspection_status("rejected")
        assert not is_active_inspection_status("finished")
        assert not is_terminal_inspection_status("finished")


class TestInspections:
    """Scheduling and resolving inspections"""

    def test_schedule_inspection(self, inspection_manager, audit_trail, parcel):
        inspection = inspection_manager.schedule_inspection(parcel.id, "Ing. Rojas", date(2024, 4, 10))
        stored = inspection_manager.get_inspection(inspection.id)
        assert stored.status is InspectionStatus.PROGRAMADA
        assert stored.scheduled_for == date(2024, 4, 10)
        assert audit_trail.get_events_by_type(AuditEventType.INSPECTION_SCHEDULED)[0].entity_id == inspection.id

    def test_schedule_requires_parcel(self, inspection_manager):
        with pytest.raises(ValueError, match="Parcel missing not found"):
            inspection_manager.schedule_inspection("missing", "Ing. Rojas", date(2024, 4, 10))

    def test_schedule_requires_inspector(self, inspection_manager, parcel):
        with pytest.raises(ValueError, match="Inspector"):
            inspection_manager.schedule_inspection(parcel.id, "  ", date(2024, 4, 10))

    def test_update_status(self, inspection_manager, parcel):
        inspection = inspection_manager.schedule_inspection(parcel.id, "Ing. Rojas", date(2024, 4, 10))
        updated = inspection_manager.update_inspection_status(inspection.id, "Approved", findings="Cultivo sano")
        assert updated.status is InspectionStatus.APROBADA
        assert inspection_manager.get_inspection(inspection.id).findings == "Cultivo sano"
        assert inspection_manager.has_approved_inspection(parcel.id)

    def test_unknown_status_rejected(self, inspection_manager, parcel):
        inspection = inspection_manager.schedule_inspection(parcel.id, "Ing. Rojas", date(2024, 4, 10))
        with pytest.raises(ValueError, match="Unknown inspection status"):
            inspection_manager.update_inspection_status(inspection.id, "finished")

    def test_closed_inspection_cannot_change(self, inspection_manager, parcel):
        inspection = inspection_manager.schedule_inspection(parcel.id, "Ing. Rojas", date(2024, 4, 10))
        inspection_manager.update_inspection_status(inspection.id, "rechazada")
        with pytest.raises(ValueError, match="already rechazada"):
            inspection_manager.update_inspection_status(inspection.id, "aprobada")

    def test_list_inspections_by_date(self, inspection_manager, parcel):
        inspection_manager.schedule_inspection(parcel.id, "B", date(2024, 6, 1))
        inspection_manager.schedule_inspection(parcel.id, "A", date(2024, 5, 1))
        assert [i.inspector for i in inspection_manager.list_inspections(parcel.id)] == ["A", "B"]


class TestEstimations:
    """Harvest value estimates"""

    def test_record_and_replace(self, inspection_manager, parcel):
        first = inspection_manager.record_estimation(parcel.id, "15000")
        second = inspection_manager.record_estimation(parcel.id, Decimal('18000.50'), notes="revisada")
        assert second.id == first.id
        stored = inspection_manager.get_estimation(parcel.id)
        assert stored.estimated_total_amount == Decimal('18000.50')
        assert stored.notes == "revisada"

    @pytest.mark.parametrize("amount", ["0", "-10", "mucho"])
    def test_invalid_amounts(self, inspection_manager, parcel, amount):
        with pytest.raises(ValueError):
            inspection_manager.record_estimation(parcel.id, amount)

    def test_missing_estimation(self, inspection_manager, parcel):
        assert inspection_manager.get_estimation(parcel.id) is None


class TestQualityControl:

    def test_register_quality_control(self, inspection_manager, farmer, parcel):
        control = inspection_manager.register_quality_control(parcel.id, "approved", "Lic. Mora")
        assert control.result is QualityResult.APPROVED
        assert control.farmer_id == farmer.id
        assert [c.id for c in inspection_manager.list_quality_controls(parcel.id)] == [control.id]

    def test_unknown_result(self, inspection_manager, parcel):
        with pytest.raises(ValueError):
            inspection_manager.register_quality_control(parcel.id, "maybe", "Lic. Mora")


class TestApprovedParcels:
    """Parcels eligible to back a financing"""

    def _approve(self, inspection_manager, parcel_id):
        inspection = inspection_manager.schedule_inspection(parcel_id, "Ing. Rojas", date(2024, 4, 10))
        inspection_manager.update_inspection_status(inspection.id, "aprobada")

    def test_linked_approved_and_estimated(self, inspection_manager, farmer, parcel):
        self._approve(inspection_manager, parcel.id)
        inspection_manager.record_estimation(parcel.id, "25000")
        assert inspection_manager.get_approved_parcels(farmer.id) == [{
            "id": parcel.id,
            "name": "Hacienda El Carmen",
            "estimated_total_amount": Decimal('25000'),
        }]

    def test_without_estimation(self, inspection_manager, farmer, parcel):
        self._approve(inspection_manager, parcel.id)
        assert inspection_manager.get_approved_parcels(farmer.id) == []

    def test_without_approved_inspection(self, inspection_manager, farmer, parcel):
        inspection_manager.schedule_inspection(parcel.id, "Ing. Rojas", date(2024, 4, 10))
        inspection_manager.record_estimation(parcel.id, "25000")
        assert inspection_manager.get_approved_parcels(farmer.id) == []

    def test_unlinked_parcel(self, inspection_manager, farmer_manager, farmer):
        parcel = farmer_manager.add_parcel(farmer.id, "Lote suelto", "3")
        self._approve(inspection_manager, parcel.id)
        inspection_manager.record_estimation(parcel.id, "5000")
        assert inspection_manager.get_approved_parcels(farmer.id) == []
