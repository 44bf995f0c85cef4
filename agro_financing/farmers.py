"""
Farmer Management Module

Registry of producers (the Bolívar Digital clients) and the land parcels they
offer as collateral. Parcels must be linked to the client before they can
back a financing.
"""

from decimal import Decimal, InvalidOperation
from datetime import datetime, timezone
from dataclasses import dataclass
from typing import Dict, List, Optional, Any
import re
import uuid

from .storage import StorageInterface, StorageRecord
from .audit import AuditTrail, AuditEventType
from .logging_config import get_logger, log_action


logger = get_logger(__name__)

CEDULA_PATTERN = re.compile(r'^[VEJPG]?-?\d{5,10}$', re.IGNORECASE)


@dataclass
class Farmer(StorageRecord):
    """Producer profile"""
    full_name: str
    cedula: str                      # National identity number
    phone: Optional[str] = None
    address: Optional[str] = None
    activity: Optional[str] = None   # Main agricultural activity
    rif: Optional[str] = None        # Tax registry id
    is_active: bool = True

    def __post_init__(self):
        self.full_name = (self.full_name or "").strip()
        self.cedula = (self.cedula or "").strip().upper()
        if not self.full_name:
            raise ValueError("Farmer full name is required")
        if not CEDULA_PATTERN.match(self.cedula):
            raise ValueError(f"Invalid cedula: {self.cedula!r}")


@dataclass
class Parcel(StorageRecord):
    """Plot of land owned or worked by a farmer"""
    farmer_id: str
    name: str
    area_hectares: Decimal
    crop: Optional[str] = None
    location: Optional[str] = None   # "lat,lng" as captured on the map picker
    is_linked_to_client: bool = False

    def __post_init__(self):
        if not isinstance(self.area_hectares, Decimal):
            try:
                self.area_hectares = Decimal(str(self.area_hectares))
            except InvalidOperation:
                raise ValueError(f"Invalid parcel area: {self.area_hectares!r}")
        if self.area_hectares < Decimal('0'):
            raise ValueError("Parcel area cannot be negative")
        if not (self.name or "").strip():
            raise ValueError("Parcel name is required")


class FarmerManager:
    """
    Registers farmers and their parcels
    """

    def __init__(self, storage: StorageInterface, audit_trail: AuditTrail):
        self.storage = storage
        self.audit_trail = audit_trail
        self.farmers_table = "farmers"
        self.parcels_table = "parcels"

    def register_farmer(
        self,
        full_name: str,
        cedula: str,
        phone: Optional[str] = None,
        address: Optional[str] = None,
        activity: Optional[str] = None,
        rif: Optional[str] = None,
        user_id: Optional[str] = None
    ) -> Farmer:
        """
        Register a new farmer

        Raises:
            ValueError: on invalid data or when the cedula is already registered
        """
        now = datetime.now(timezone.utc)
        farmer = Farmer(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            full_name=full_name,
            cedula=cedula,
            phone=phone,
            address=address,
            activity=activity,
            rif=rif
        )

        if self.storage.find(self.farmers_table, {"cedula": farmer.cedula}):
            raise ValueError(f"A farmer with cedula {farmer.cedula} is already registered")

        self.storage.save(self.farmers_table, farmer.id, farmer.to_dict())
        self.audit_trail.log_event(
            event_type=AuditEventType.FARMER_REGISTERED,
            entity_type="farmer",
            entity_id=farmer.id,
            metadata={"full_name": farmer.full_name, "cedula": farmer.cedula},
            user_id=user_id
        )
        log_action(logger, "info", "farmer registered", user_id=user_id,
                   action="farmer.register", resource=farmer.id)
        return farmer

    def get_farmer(self, farmer_id: str) -> Optional[Farmer]:
        data = self.storage.load(self.farmers_table, farmer_id)
        return Farmer.from_dict(data) if data else None

    def list_farmers(self, active_only: bool = False) -> List[Farmer]:
        farmers = [Farmer.from_dict(data) for data in self.storage.load_all(self.farmers_table)]
        if active_only:
            farmers = [f for f in farmers if f.is_active]
        return sorted(farmers, key=lambda f: f.full_name.lower())

    def search_farmers(self, term: str, limit: int = 10) -> List[Farmer]:
        """Case-insensitive match on name or cedula"""
        needle = (term or "").strip().lower()
        if not needle:
            return []
        matches = [
            f for f in self.list_farmers()
            if needle in f.full_name.lower() or needle in f.cedula.lower()
        ]
        return matches[:limit]

    def update_farmer(self, farmer_id: str, updates: Dict[str, Any],
                      user_id: Optional[str] = None) -> Farmer:
        """Update contact fields of a farmer; the cedula is immutable"""
        farmer = self.get_farmer(farmer_id)
        if not farmer:
            raise ValueError(f"Farmer {farmer_id} not found")

        allowed = {"full_name", "phone", "address", "activity", "rif"}
        unknown = set(updates) - allowed
        if unknown:
            raise ValueError(f"Cannot update fields: {', '.join(sorted(unknown))}")

        data = farmer.to_dict()
        data.update({k: v for k, v in updates.items() if v is not None})
        data["updated_at"] = datetime.now(timezone.utc).isoformat()
        farmer = Farmer.from_dict(data)

        self.storage.save(self.farmers_table, farmer.id, farmer.to_dict())
        self.audit_trail.log_event(
            event_type=AuditEventType.FARMER_UPDATED,
            entity_type="farmer",
            entity_id=farmer.id,
            metadata={"fields": sorted(updates)},
            user_id=user_id
        )
        return farmer

    def deactivate_farmer(self, farmer_id: str, user_id: Optional[str] = None) -> bool:
        farmer = self.get_farmer(farmer_id)
        if not farmer:
            return False
        if farmer.is_active:
            farmer.is_active = False
            farmer.updated_at = datetime.now(timezone.utc)
            self.storage.save(self.farmers_table, farmer.id, farmer.to_dict())
            self.audit_trail.log_event(
                event_type=AuditEventType.FARMER_DEACTIVATED,
                entity_type="farmer",
                entity_id=farmer.id,
                metadata={},
                user_id=user_id
            )
        return True

    # Parcels

    def add_parcel(
        self,
        farmer_id: str,
        name: str,
        area_hectares: Any,
        crop: Optional[str] = None,
        location: Optional[str] = None,
        is_linked_to_client: bool = False,
        user_id: Optional[str] = None
    ) -> Parcel:
        """Register a parcel for an existing farmer"""
        if not self.get_farmer(farmer_id):
            raise ValueError(f"Farmer {farmer_id} not found")

        now = datetime.now(timezone.utc)
        parcel = Parcel(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            farmer_id=farmer_id,
            name=name,
            area_hectares=area_hectares,
            crop=crop,
            location=location,
            is_linked_to_client=is_linked_to_client
        )
        self.storage.save(self.parcels_table, parcel.id, parcel.to_dict())
        self.audit_trail.log_event(
            event_type=AuditEventType.PARCEL_ADDED,
            entity_type="parcel",
            entity_id=parcel.id,
            metadata={"farmer_id": farmer_id, "area_hectares": parcel.area_hectares},
            user_id=user_id
        )
        return parcel

    def get_parcel(self, parcel_id: str) -> Optional[Parcel]:
        data = self.storage.load(self.parcels_table, parcel_id)
        return Parcel.from_dict(data) if data else None

    def list_parcels(self, farmer_id: str) -> List[Parcel]:
        parcels = [Parcel.from_dict(d) for d in self.storage.find(self.parcels_table, {"farmer_id": farmer_id})]
        return sorted(parcels, key=lambda p: p.created_at)

    def link_parcel(self, parcel_id: str, linked: bool = True, user_id: Optional[str] = None) -> Parcel:
        """Mark a parcel as (not) usable as collateral for the client"""
        parcel = self.get_parcel(parcel_id)
        if not parcel:
            raise ValueError(f"Parcel {parcel_id} not found")

        parcel.is_linked_to_client = linked
        parcel.updated_at = datetime.now(timezone.utc)
        self.storage.save(self.parcels_table, parcel.id, parcel.to_dict())
        self.audit_trail.log_event(
            event_type=AuditEventType.PARCEL_LINK_CHANGED,
            entity_type="parcel",
            entity_id=parcel.id,
            metadata={"linked": linked},
            user_id=user_id
        )
        return parcel
