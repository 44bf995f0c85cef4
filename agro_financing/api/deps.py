"""
System wiring and request dependencies
"""

from typing import Optional

from fastapi import Request

from ..storage import StorageInterface, create_storage
from ..audit import AuditTrail
from ..farmers import FarmerManager
from ..inspections import InspectionManager
from ..notifications import NotificationCenter
from ..financing import FinancingManager
from ..config import get_config


class AgroFinancingSystem:
    """All managers of the back office, sharing one storage backend"""

    def __init__(self, storage: Optional[StorageInterface] = None):
        config = get_config()
        self.storage = storage or create_storage(config.database_url)

        self.audit_trail = AuditTrail(self.storage)
        self.farmer_manager = FarmerManager(self.storage, self.audit_trail)
        self.inspection_manager = InspectionManager(self.storage, self.farmer_manager, self.audit_trail)
        self.notifications = NotificationCenter(self.storage, enabled=config.enable_notifications)
        self.financing_manager = FinancingManager(
            self.storage,
            self.audit_trail,
            self.farmer_manager,
            notifications=self.notifications,
            inspection_manager=self.inspection_manager,
            max_term_months=config.max_term_months
        )

    def close(self) -> None:
        self.storage.close()


_system: Optional[AgroFinancingSystem] = None


def get_system() -> AgroFinancingSystem:
    """Process-wide system, built on first use from the current configuration"""
    global _system
    if _system is None:
        _system = AgroFinancingSystem()
    return _system


def get_role(request: Request) -> Optional[str]:
    """Acting role from the role header; a missing or blank header means no role"""
    value = request.headers.get(get_config().role_header, "").strip()
    return value or None


def get_user_id(request: Request) -> Optional[str]:
    value = request.headers.get(get_config().user_header, "").strip()
    return value or None
