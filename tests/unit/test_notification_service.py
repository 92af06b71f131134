from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from sqlalchemy.exc import OperationalError

from carbontrack import db
from carbontrack.models import Notification, NotificationSettings, NotificationType
from carbontrack.services.notification_service import NotificationService


def test_settings_default_to_all_enabled(regular_user):
    settings = NotificationService.get_settings(regular_user.id)
    assert settings.to_dict() == {
        'goal_reminders': True,
        'achievement_alerts': True,
        'business_alerts': True,
    }
    # Second access reuses the row
    NotificationService.get_settings(regular_user.id)
    assert NotificationSettings.query.filter_by(user_id=regular_user.id).count() == 1


def test_save_settings_accepts_camel_case_and_ignores_unknown_keys(regular_user):
    settings = NotificationService.save_settings(
        regular_user.id, {'goalReminders': False, 'business_alerts': False, 'weeklyDigest': True}
    )
    assert settings.goal_reminders is False
    assert settings.business_alerts is False
    assert settings.achievement_alerts is True


def test_emit_creates_unread_notification(regular_user):
    notification = NotificationService.emit(regular_user.id, NotificationType.BUSINESS_ALERTS, "Hello")

    assert notification is not None
    assert notification.read is False
    assert NotificationService.unread_count(regular_user.id) == 1


def test_disabled_type_is_suppressed_silently(regular_user):
    NotificationService.save_settings(regular_user.id, {'achievementAlerts': False})

    assert NotificationService.emit(regular_user.id, NotificationType.ACHIEVEMENT_ALERTS, "Yay") is None
    assert NotificationService.emit(regular_user.id, NotificationType.GOAL_REMINDERS, "Due") is not None
    assert Notification.query.count() == 1


class TestDeduplication:
    def test_same_key_within_cooldown_is_suppressed(self, regular_user):
        now = datetime(2026, 3, 1, 9, 0)
        first = NotificationService.emit(regular_user.id, "goalReminders", "Due soon",
                                         goal_id=7, dedupe_key="1-day", now=now)
        again = NotificationService.emit(regular_user.id, "goalReminders", "Due soon",
                                         goal_id=7, dedupe_key="1-day", now=now + timedelta(minutes=10))
        assert first is not None
        assert again is None

    def test_key_reopens_after_cooldown(self, regular_user):
        now = datetime(2026, 3, 1, 9, 0)
        NotificationService.emit(regular_user.id, "goalReminders", "Due", goal_id=7,
                                 dedupe_key="overdue", now=now)
        later = NotificationService.emit(regular_user.id, "goalReminders", "Due", goal_id=7,
                                         dedupe_key="overdue", now=now + timedelta(hours=24, minutes=1))
        assert later is not None

    def test_cooldown_is_configurable(self, app, regular_user):
        app.config["REMINDER_COOLDOWN_HOURS"] = 1
        now = datetime(2026, 3, 1, 9, 0)
        NotificationService.emit(regular_user.id, "goalReminders", "Due", goal_id=7,
                                 dedupe_key="overdue", now=now)
        later = NotificationService.emit(regular_user.id, "goalReminders", "Due", goal_id=7,
                                         dedupe_key="overdue", now=now + timedelta(hours=2))
        assert later is not None

    def test_different_goal_bucket_or_user_is_not_a_duplicate(self, regular_user, other_user):
        now = datetime(2026, 3, 1, 9, 0)
        args = ("goalReminders", "Due")
        assert NotificationService.emit(regular_user.id, *args, goal_id=7, dedupe_key="3-day", now=now)
        assert NotificationService.emit(regular_user.id, *args, goal_id=8, dedupe_key="3-day", now=now)
        assert NotificationService.emit(regular_user.id, *args, goal_id=7, dedupe_key="1-day", now=now)
        assert NotificationService.emit(other_user.id, *args, goal_id=7, dedupe_key="3-day", now=now)
        assert Notification.query.count() == 4

    def test_without_key_nothing_is_deduplicated(self, regular_user):
        for _ in range(2):
            NotificationService.emit(regular_user.id, NotificationType.BUSINESS_ALERTS, "Cut back")
        assert Notification.query.count() == 2


def test_storage_failure_returns_none_and_rolls_back(regular_user):
    NotificationService.get_settings(regular_user.id)
    with patch.object(db.session, "commit",
                      side_effect=OperationalError("INSERT", {}, Exception("database is locked"))):
        assert NotificationService.emit(regular_user.id, NotificationType.BUSINESS_ALERTS, "Hi") is None
    assert Notification.query.count() == 0


class TestInbox:
    def test_list_is_newest_first_and_limited(self, app, regular_user):
        base = datetime(2026, 3, 1, 9, 0)
        for i in range(5):
            NotificationService.emit(regular_user.id, "businessAlerts", f"Alert {i}",
                                     now=base + timedelta(minutes=i))

        messages = [n.message for n in NotificationService.list_notifications(regular_user.id, limit=3)]
        assert messages == ["Alert 4", "Alert 3", "Alert 2"]

        app.config["NOTIFICATION_LIST_LIMIT"] = 2
        assert len(NotificationService.list_notifications(regular_user.id)) == 2

    def test_mark_all_read_and_delete_all_are_user_scoped(self, regular_user, other_user):
        NotificationService.emit(regular_user.id, "businessAlerts", "Mine")
        NotificationService.emit(regular_user.id, "businessAlerts", "Mine too")
        NotificationService.emit(other_user.id, "businessAlerts", "Theirs")

        assert NotificationService.mark_all_read(regular_user.id) == 2
        assert NotificationService.unread_count(regular_user.id) == 0
        assert NotificationService.unread_count(other_user.id) == 1

        assert NotificationService.delete_all(regular_user.id) == 2
        assert Notification.query.count() == 1

    def test_cleanup_removes_only_malformed_messages(self, regular_user):
        for message in ('Goal "None" is due tomorrow', "Progress: NaN/40 kg CO2",
                        "Your goal undefined is overdue", 'Goal "Nonesuch" is due tomorrow'):
            NotificationService.emit(regular_user.id, "businessAlerts", message)

        assert NotificationService.cleanup_malformed(regular_user.id) == 3
        remaining = [n.message for n in Notification.query.all()]
        assert remaining == ['Goal "Nonesuch" is due tomorrow']
        assert NotificationService.cleanup_malformed(regular_user.id) == 0


def test_storage_failure_can_be_re_raised(regular_user):
    NotificationService.get_settings(regular_user.id)
    with patch.object(db.session, "commit",
                      side_effect=OperationalError("INSERT", {}, Exception("database is locked"))):
        with pytest.raises(OperationalError):
            NotificationService.emit(regular_user.id, NotificationType.BUSINESS_ALERTS, "Hi",
                                     suppress_errors=False)
    assert Notification.query.count() == 0
