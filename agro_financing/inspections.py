"""
Inspection Module

Field inspections of parcels, harvest value estimations and quality controls.
A parcel backs a financing only when it is linked to the client, has an
approved inspection and carries an estimation of the harvest value.

Inspection statuses arrive from several screens in English or Spanish and in
mixed case; ``normalize_inspection_status`` folds them onto one canonical set.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, date, timezone
from dataclasses import dataclass
from enum import Enum
from typing import Dict, List, Optional, Any, Union
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .farmers import FarmerManager
from .logging_config import get_logger, log_action


logger = get_logger(__name__)


class InspectionStatus(Enum):
    PENDIENTE = "pendiente"
    PROGRAMADA = "programada"
    EN_PROGRESO = "en_progreso"
    APROBADA = "aprobada"
    COMPLETADA = "completada"
    RECHAZADA = "rechazada"
    CANCELADA = "cancelada"


_STATUS_VARIANTS: Dict[str, InspectionStatus] = {
    "pending": InspectionStatus.PENDIENTE,
    "pendiente": InspectionStatus.PENDIENTE,
    "scheduled": InspectionStatus.PROGRAMADA,
    "programada": InspectionStatus.PROGRAMADA,
    "in_progress": InspectionStatus.EN_PROGRESO,
    "en progreso": InspectionStatus.EN_PROGRESO,
    "en_progreso": InspectionStatus.EN_PROGRESO,
    "approved": InspectionStatus.APROBADA,
    "aprobada": InspectionStatus.APROBADA,
    "completed": InspectionStatus.COMPLETADA,
    "completada": InspectionStatus.COMPLETADA,
    "rejected": InspectionStatus.RECHAZADA,
    "rechazada": InspectionStatus.RECHAZADA,
    "cancelled": InspectionStatus.CANCELADA,
    "cancelada": InspectionStatus.CANCELADA,
}

ACTIVE_STATUSES = frozenset({
    InspectionStatus.PENDIENTE, InspectionStatus.PROGRAMADA, InspectionStatus.EN_PROGRESO,
})
TERMINAL_STATUSES = frozenset(InspectionStatus) - ACTIVE_STATUSES


def normalize_inspection_status(value: Union[InspectionStatus, str, None]) -> Optional[InspectionStatus]:
    """Canonical status for any known variant, None otherwise"""
    if isinstance(value, InspectionStatus):
        return value
    if not value:
        return None
    return _STATUS_VARIANTS.get(str(value).strip().lower())


def is_active_inspection_status(value: Union[InspectionStatus, str, None]) -> bool:
    return normalize_inspection_status(value) in ACTIVE_STATUSES


def is_terminal_inspection_status(value: Union[InspectionStatus, str, None]) -> bool:
    return normalize_inspection_status(value) in TERMINAL_STATUSES


class QualityResult(Enum):
    APPROVED = "approved"
    REJECTED = "rejected"


@dataclass
class Inspection(StorageRecord):
    """Visit to a parcel by a field inspector"""
    parcel_id: str
    inspector: str
    scheduled_for: date
    status: InspectionStatus = InspectionStatus.PROGRAMADA
    findings: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Inspection':
        data = dict(data)
        data['status'] = InspectionStatus(data['status'])
        data['scheduled_for'] = date.fromisoformat(data['scheduled_for'])
        return super().from_dict(data)


@dataclass
class Estimation(StorageRecord):
    """Estimated value of the parcel's harvest"""
    parcel_id: str
    estimated_total_amount: Decimal
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Estimation':
        data = dict(data)
        data['estimated_total_amount'] = Decimal(data['estimated_total_amount'])
        return super().from_dict(data)


@dataclass
class QualityControl(StorageRecord):
    """Quality check of the final product before it is sold"""
    farmer_id: str
    parcel_id: str
    result: QualityResult
    inspector: str
    notes: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'QualityControl':
        data = dict(data)
        data['result'] = QualityResult(data['result'])
        return super().from_dict(data)


class InspectionManager:
    """
    Tracks inspections, estimations and quality controls per parcel
    """

    def __init__(self, storage: StorageInterface, farmer_manager: FarmerManager, audit_trail: AuditTrail):
        self.storage = storage
        self.farmer_manager = farmer_manager
        self.audit_trail = audit_trail
        self.inspections_table = "inspections"
        self.estimations_table = "estimations"
        self.quality_table = "quality_controls"

    def _require_parcel(self, parcel_id: str):
        parcel = self.farmer_manager.get_parcel(parcel_id)
        if not parcel:
            raise ValueError(f"Parcel {parcel_id} not found")
        return parcel

    def schedule_inspection(self, parcel_id: str, inspector: str, scheduled_for: date,
                            user_id: Optional[str] = None) -> Inspection:
        self._require_parcel(parcel_id)
        if not (inspector or "").strip():
            raise ValueError("Inspector is required")

        now = datetime.now(timezone.utc)
        inspection = Inspection(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            parcel_id=parcel_id,
            inspector=inspector.strip(),
            scheduled_for=scheduled_for
        )
        self.storage.save(self.inspections_table, inspection.id, inspection.to_dict())
        self.audit_trail.log_event(
            event_type=AuditEventType.INSPECTION_SCHEDULED,
            entity_type="inspection",
            entity_id=inspection.id,
            metadata={"parcel_id": parcel_id, "scheduled_for": scheduled_for},
            user_id=user_id
        )
        return inspection

    def get_inspection(self, inspection_id: str) -> Optional[Inspection]:
        data = self.storage.load(self.inspections_table, inspection_id)
        return Inspection.from_dict(data) if data else None

    def update_inspection_status(self, inspection_id: str, status: Union[InspectionStatus, str],
                                 findings: Optional[str] = None,
                                 user_id: Optional[str] = None) -> Inspection:
        """
        Move an inspection to a new status

        Raises:
            ValueError: unknown inspection or status, or the inspection is already closed
        """
        inspection = self.get_inspection(inspection_id)
        if not inspection:
            raise ValueError(f"Inspection {inspection_id} not found")

        new_status = normalize_inspection_status(status)
        if new_status is None:
            raise ValueError(f"Unknown inspection status: {status!r}")
        if inspection.status in TERMINAL_STATUSES:
            raise ValueError(f"Inspection is already {inspection.status.value}")

        previous = inspection.status
        inspection.status = new_status
        if findings is not None:
            inspection.findings = findings
        inspection.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.inspections_table, inspection.id, inspection.to_dict())

        self.audit_trail.log_event(
            event_type=AuditEventType.INSPECTION_STATUS_CHANGED,
            entity_type="inspection",
            entity_id=inspection.id,
            metadata={"from": previous, "to": new_status},
            user_id=user_id
        )
        log_action(logger, "info", "inspection status changed", user_id=user_id,
                   action="inspection.status", resource=inspection.id,
                   extra={"from": previous.value, "to": new_status.value})
        return inspection

    def list_inspections(self, parcel_id: str) -> List[Inspection]:
        inspections = [
            Inspection.from_dict(d)
            for d in self.storage.find(self.inspections_table, {"parcel_id": parcel_id})
        ]
        return sorted(inspections, key=lambda i: i.scheduled_for)

    def has_approved_inspection(self, parcel_id: str) -> bool:
        return bool(self.storage.find(
            self.inspections_table,
            {"parcel_id": parcel_id, "status": InspectionStatus.APROBADA.value}
        ))

    # Estimations

    def record_estimation(self, parcel_id: str, estimated_total_amount: Any,
                          notes: Optional[str] = None, user_id: Optional[str] = None) -> Estimation:
        """Record (or replace) the harvest value estimate of a parcel"""
        self._require_parcel(parcel_id)
        try:
            amount = Decimal(str(estimated_total_amount))
        except InvalidOperation:
            raise ValueError(f"Invalid estimated amount: {estimated_total_amount!r}")
        if not amount.is_finite() or amount <= Decimal('0'):
            raise ValueError("Estimated amount must be positive")

        now = datetime.now(timezone.utc)
        existing = self.get_estimation(parcel_id)
        estimation = Estimation(
            id=existing.id if existing else str(uuid.uuid4()),
            created_at=existing.created_at if existing else now,
            updated_at=now,
            parcel_id=parcel_id,
            estimated_total_amount=amount,
            notes=notes
        )
        self.storage.save(self.estimations_table, estimation.id, estimation.to_dict())
        self.audit_trail.log_event(
            event_type=AuditEventType.ESTIMATION_RECORDED,
            entity_type="parcel",
            entity_id=parcel_id,
            metadata={"estimated_total_amount": amount},
            user_id=user_id
        )
        return estimation

    def get_estimation(self, parcel_id: str) -> Optional[Estimation]:
        found = self.storage.find(self.estimations_table, {"parcel_id": parcel_id})
        return Estimation.from_dict(found[0]) if found else None

    # Quality control

    def register_quality_control(self, parcel_id: str, result: Union[QualityResult, str],
                                 inspector: str, notes: Optional[str] = None,
                                 user_id: Optional[str] = None) -> QualityControl:
        parcel = self._require_parcel(parcel_id)
        now = datetime.now(timezone.utc)
        control = QualityControl(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            farmer_id=parcel.farmer_id,
            parcel_id=parcel_id,
            result=QualityResult(result),
            inspector=inspector,
            notes=notes
        )
        self.storage.save(self.quality_table, control.id, control.to_dict())
        self.audit_trail.log_event(
            event_type=AuditEventType.QUALITY_CONTROL_REGISTERED,
            entity_type="parcel",
            entity_id=parcel_id,
            metadata={"result": control.result},
            user_id=user_id
        )
        return control

    def list_quality_controls(self, parcel_id: str) -> List[QualityControl]:
        controls = [
            QualityControl.from_dict(d)
            for d in self.storage.find(self.quality_table, {"parcel_id": parcel_id})
        ]
        return sorted(controls, key=lambda c: c.created_at)

    def get_approved_parcels(self, farmer_id: str) -> List[Dict[str, Any]]:
        """
        Parcels eligible as collateral for ``farmer_id``

        A parcel qualifies when it is linked to the client, has at least one
        approved inspection and has a harvest estimation.
        """
        eligible = []
        for parcel in self.farmer_manager.list_parcels(farmer_id):
            if not parcel.is_linked_to_client:
                continue
            if not self.has_approved_inspection(parcel.id):
                continue
            estimation = self.get_estimation(parcel.id)
            if not estimation:
                continue
            eligible.append({
                "id": parcel.id,
                "name": parcel.name,
                "estimated_total_amount": estimation.estimated_total_amount,
            })
        return eligible
