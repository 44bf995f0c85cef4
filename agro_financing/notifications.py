"""
Notification Module

In-app notifications shown to farmers and operators when something happens to
one of their financings (status changes, payments, schedules).
"""

from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Any
from enum import Enum
import uuid

from .storage import StorageInterface, StorageRecord
from .workflow import FinancingStatus
from .logging_config import get_logger


logger = get_logger(__name__)


class NotificationType(Enum):
    INFO = "info"
    WARNING = "warning"
    SUCCESS = "success"
    ACTION_REQUIRED = "action_required"


class NotificationStatus(Enum):
    UNREAD = "unread"
    READ = "read"


STATUS_NOTIFICATION_TYPES = {
    FinancingStatus.PENDING_APPROVAL: NotificationType.ACTION_REQUIRED,
    FinancingStatus.APPROVED: NotificationType.SUCCESS,
    FinancingStatus.COMPLETED: NotificationType.SUCCESS,
    FinancingStatus.REJECTED: NotificationType.WARNING,
    FinancingStatus.CANCELLED: NotificationType.WARNING,
    FinancingStatus.ON_HOLD: NotificationType.WARNING,
}


@dataclass
class Notification(StorageRecord):
    """Single in-app notification"""
    farmer_id: str
    financing_id: Optional[str]
    notification_type: NotificationType
    message: str
    status: NotificationStatus = NotificationStatus.UNREAD
    read_at: Optional[datetime] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'Notification':
        data = dict(data)
        data["notification_type"] = NotificationType(data["notification_type"])
        data["status"] = NotificationStatus(data["status"])
        if data.get("read_at"):
            data["read_at"] = datetime.fromisoformat(data["read_at"])
        return super().from_dict(data)


class NotificationCenter:
    """Stores notifications and tracks their read state"""

    def __init__(self, storage: StorageInterface, enabled: bool = True):
        self.storage = storage
        self.enabled = enabled
        self.notifications_table = "notifications"

    def notify(
        self,
        farmer_id: str,
        message: str,
        notification_type: NotificationType = NotificationType.INFO,
        financing_id: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[Notification]:
        """Create an unread notification; returns None when notifications are disabled"""
        if not self.enabled:
            return None

        now = datetime.now(timezone.utc)
        notification = Notification(
            id=str(uuid.uuid4()),
            created_at=now,
            updated_at=now,
            farmer_id=farmer_id,
            financing_id=financing_id,
            notification_type=notification_type,
            message=message,
            metadata=metadata or {}
        )
        self.storage.save(self.notifications_table, notification.id, notification.to_dict())
        logger.debug("notification %s created for farmer %s", notification.id, farmer_id)
        return notification

    def notify_status_change(self, farmer_id: str, financing_id: str,
                             previous: FinancingStatus, current: FinancingStatus) -> Optional[Notification]:
        return self.notify(
            farmer_id=farmer_id,
            financing_id=financing_id,
            notification_type=STATUS_NOTIFICATION_TYPES.get(current, NotificationType.INFO),
            message=f"Financing status changed from {previous.value} to {current.value}",
            metadata={"from": previous.value, "to": current.value}
        )

    def get_notification(self, notification_id: str) -> Optional[Notification]:
        data = self.storage.load(self.notifications_table, notification_id)
        return Notification.from_dict(data) if data else None

    def get_notifications(
        self,
        farmer_id: str,
        status: Optional[NotificationStatus] = None,
        limit: int = 50
    ) -> List[Notification]:
        """Notifications for a farmer, newest first"""
        filters = {"farmer_id": farmer_id}
        if status:
            filters["status"] = status.value

        notifications = [
            Notification.from_dict(data)
            for data in self.storage.find(self.notifications_table, filters)
        ]
        notifications.sort(key=lambda n: n.created_at, reverse=True)
        return notifications[:limit]

    def mark_as_read(self, notification_id: str) -> bool:
        notification = self.get_notification(notification_id)
        if not notification:
            return False

        if notification.status != NotificationStatus.READ:
            notification.status = NotificationStatus.READ
            notification.read_at = datetime.now(timezone.utc)
            notification.updated_at = notification.read_at
            self.storage.save(self.notifications_table, notification.id, notification.to_dict())
        return True

    def get_unread_count(self, farmer_id: str) -> int:
        return len(self.storage.find(self.notifications_table, {
            "farmer_id": farmer_id,
            "status": NotificationStatus.UNREAD.value
        }))
