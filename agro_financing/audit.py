"""
Audit Trail Module

Hash-chained audit log for the financing back office. Every registration,
inspection result, status transition and payment is appended here, and each
event carries the SHA-256 of its predecessor so tampering breaks the chain.
"""

import hashlib
import json
import uuid
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, List, Optional, Any

from .storage import StorageInterface, StorageRecord, _to_storable


class AuditEventType(Enum):
    """Types of audit events"""
    # Farmers and parcels
    FARMER_REGISTERED = "farmer_registered"
    FARMER_UPDATED = "farmer_updated"
    FARMER_DEACTIVATED = "farmer_deactivated"
    PARCEL_ADDED = "parcel_added"
    PARCEL_LINK_CHANGED = "parcel_link_changed"

    # Field work
    INSPECTION_SCHEDULED = "inspection_scheduled"
    INSPECTION_STATUS_CHANGED = "inspection_status_changed"
    ESTIMATION_RECORDED = "estimation_recorded"
    QUALITY_CONTROL_REGISTERED = "quality_control_registered"

    # Financing lifecycle
    FINANCING_CREATED = "financing_created"
    FINANCING_STATUS_CHANGED = "financing_status_changed"
    FINANCING_TRANSITION_DENIED = "financing_transition_denied"
    FINANCING_DELETED = "financing_deleted"
    SCHEDULE_GENERATED = "schedule_generated"
    PAYMENT_RECORDED = "payment_recorded"

    # System
    AUDIT_INTEGRITY_CHECK = "audit_integrity_check"


@dataclass
class AuditEvent(StorageRecord):
    """Immutable audit event chained to its predecessor by hash"""
    event_type: AuditEventType
    entity_type: str
    entity_id: str
    previous_hash: str
    current_hash: str
    metadata: Dict[str, Any]
    user_id: Optional[str] = None

    def __post_init__(self):
        self.metadata = _to_storable(self.metadata or {})

    def calculate_hash(self) -> str:
        """SHA-256 over every field except current_hash"""
        payload = {
            'id': self.id,
            'created_at': self.created_at.isoformat(),
            'event_type': self.event_type.value,
            'entity_type': self.entity_type,
            'entity_id': self.entity_id,
            'previous_hash': self.previous_hash,
            'user_id': self.user_id,
            'metadata': self.metadata,
        }
        canonical = json.dumps(payload, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(canonical.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'AuditEvent':
        data = dict(data)
        data['event_type'] = AuditEventType(data['event_type'])
        return super().from_dict(data)


class AuditTrail:
    """
    Append-only, hash-chained audit trail
    """

    def __init__(self, storage: StorageInterface, table_name: str = "audit_events"):
        self.storage = storage
        self.table_name = table_name

    def _sorted_events(self) -> List[AuditEvent]:
        events = [AuditEvent.from_dict(data) for data in self.storage.load_all(self.table_name)]
        events.sort(key=lambda e: e.created_at)
        return events

    def get_latest_hash(self) -> Optional[str]:
        events = self._sorted_events()
        return events[-1].current_hash if events else None

    def log_event(
        self,
        event_type: AuditEventType,
        entity_type: str,
        entity_id: str,
        metadata: Optional[Dict[str, Any]] = None,
        user_id: Optional[str] = None
    ) -> AuditEvent:
        """
        Append an event to the chain

        Args:
            event_type: Type of audit event
            entity_type: Kind of entity affected (farmer, financing, ...)
            entity_id: ID of the entity
            metadata: Event-specific data
            user_id: Acting user, when known

        Returns:
            The stored AuditEvent
        """
        # Reading the tip and appending must not interleave with other writers
        with self.storage.atomic():
            now = datetime.now(timezone.utc)
            event = AuditEvent(
                id=str(uuid.uuid4()),
                created_at=now,
                updated_at=now,
                event_type=event_type,
                entity_type=entity_type,
                entity_id=entity_id,
                previous_hash=self.get_latest_hash() or "",
                current_hash="",
                metadata=metadata or {},
                user_id=user_id
            )
            event.current_hash = event.calculate_hash()
            self.storage.save(self.table_name, event.id, event.to_dict())
            return event

    def get_events_for_entity(self, entity_type: str, entity_id: str) -> List[AuditEvent]:
        """All events for one entity, oldest first"""
        return [
            e for e in self._sorted_events()
            if e.entity_type == entity_type and e.entity_id == entity_id
        ]

    def get_events_by_type(self, event_type: AuditEventType) -> List[AuditEvent]:
        return [e for e in self._sorted_events() if e.event_type == event_type]

    def count_events(self) -> int:
        return self.storage.count(self.table_name)

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Recompute every hash and check each link of the chain

        Returns:
            Dictionary with ``valid``, ``total_events``, ``hash_errors`` and
            ``chain_breaks``
        """
        result = {'valid': True, 'total_events': 0, 'hash_errors': [], 'chain_breaks': []}
        previous_hash = ""
        for position, event in enumerate(self._sorted_events()):
            result['total_events'] += 1
            if not event.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({'event_id': event.id, 'position': position})
            if event.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'event_id': event.id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': event.previous_hash
                })
            previous_hash = event.current_hash
        return result
