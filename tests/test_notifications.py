"""
Tests for in-app notifications
"""

import pytest

from agro_financing.storage import InMemoryStorage
from agro_financing.notifications import (
    NotificationCenter, NotificationType, NotificationStatus, Notification
)
from agro_financing.workflow import FinancingStatus


@pytest.fixture
def center():
    return NotificationCenter(InMemoryStorage())


class TestNotify:
    """Creating notifications"""

    def test_notify_creates_unread(self, center):
        notification = center.notify("F1", "Bienvenido", financing_id="FIN1")
        stored = center.get_notification(notification.id)
        assert stored.status is NotificationStatus.UNREAD
        assert stored.notification_type is NotificationType.INFO
        assert stored.financing_id == "FIN1"
        assert stored.read_at is None

    def test_disabled_center_stores_nothing(self):
        storage = InMemoryStorage()
        center = NotificationCenter(storage, enabled=False)
        assert center.notify("F1", "Bienvenido") is None
        assert center.get_notifications("F1") == []

    @pytest.mark.parametrize("target,expected", [
        (FinancingStatus.PENDING_APPROVAL, NotificationType.ACTION_REQUIRED),
        (FinancingStatus.APPROVED, NotificationType.SUCCESS),
        (FinancingStatus.COMPLETED, NotificationType.SUCCESS),
        (FinancingStatus.REJECTED, NotificationType.WARNING),
        (FinancingStatus.CANCELLED, NotificationType.WARNING),
        (FinancingStatus.IN_PROGRESS, NotificationType.INFO),
    ])
    def test_status_change_type(self, center, target, expected):
        notification = center.notify_status_change("F1", "FIN1", FinancingStatus.DRAFT, target)
        assert notification.notification_type is expected
        assert notification.metadata == {"from": "draft", "to": target.value}


class TestReadState:
    """Listing and marking as read"""

    def test_newest_first_and_limit(self, center):
        ids = [center.notify("F1", f"mensaje {i}").id for i in range(3)]
        listed = center.get_notifications("F1")
        assert {n.id for n in listed} == set(ids)
        assert [n.created_at for n in listed] == sorted((n.created_at for n in listed), reverse=True)
        assert len(center.get_notifications("F1", limit=2)) == 2

    def test_only_own_notifications(self, center):
        center.notify("F1", "uno")
        center.notify("F2", "dos")
        assert [n.message for n in center.get_notifications("F2")] == ["dos"]

    def test_mark_as_read(self, center):
        notification = center.notify("F1", "uno")
        center.notify("F1", "dos")
        assert center.get_unread_count("F1") == 2

        assert center.mark_as_read(notification.id)
        stored = center.get_notification(notification.id)
        assert stored.status is NotificationStatus.READ
        assert stored.read_at is not None
        assert center.get_unread_count("F1") == 1
        assert [n.id for n in center.get_notifications("F1", status=NotificationStatus.READ)] == [notification.id]

    def test_mark_unknown(self, center):
        assert not center.mark_as_read("missing")

    def test_round_trip(self, center):
        notification = center.notify("F1", "uno", notification_type=NotificationType.WARNING,
                                     metadata={"k": "v"})
        assert Notification.from_dict(notification.to_dict()) == notification
