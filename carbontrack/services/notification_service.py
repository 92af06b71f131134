# carbontrack/services/notification_service.py
from __future__ import annotations

import re
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy.exc import IntegrityError

from carbontrack import db
from carbontrack.models import Goal, Notification, NotificationSettings, NotificationType

DEFAULT_COOLDOWN_HOURS = 24

# Messages rendered from a missing value, e.g. 'Your goal "None" is due'
MALFORMED_MESSAGE = re.compile(r"\b(?:undefined|None|NaN)\b")

# Accepted spellings for each settings flag (API clients send camelCase)
SETTINGS_FIELDS = {
    'goal_reminders': 'goal_reminders',
    'goalReminders': 'goal_reminders',
    'achievement_alerts': 'achievement_alerts',
    'achievementAlerts': 'achievement_alerts',
    'business_alerts': 'business_alerts',
    'businessAlerts': 'business_alerts',
}


class NotificationService:
    # -----------------------
    # Settings
    # -----------------------
    @staticmethod
    def get_settings(user_id: int) -> NotificationSettings:
        """Return the user's settings, creating the all-enabled default on first access."""
        settings = NotificationSettings.query.filter_by(user_id=user_id).first()
        if settings is not None:
            return settings
        settings = NotificationSettings(user_id=user_id)
        db.session.add(settings)
        try:
            db.session.commit()
        except IntegrityError:
            # Another request created the row first
            db.session.rollback()
            settings = NotificationSettings.query.filter_by(user_id=user_id).one()
        return settings

    @staticmethod
    def save_settings(user_id: int, values: Dict) -> NotificationSettings:
        """Update the flags present in *values*; unknown keys are ignored."""
        settings = NotificationService.get_settings(user_id)
        for key, value in (values or {}).items():
            attr = SETTINGS_FIELDS.get(key)
            if attr is not None:
                setattr(settings, attr, bool(value))
        db.session.commit()
        return settings

    @staticmethod
    def is_enabled(user_id: int, notif_type) -> bool:
        return NotificationService.get_settings(user_id).allows(notif_type)

    # -----------------------
    # Emission
    # -----------------------
    @staticmethod
    def emit(
        user_id: int,
        notif_type,
        message: str,
        goal_id: Optional[int] = None,
        dedupe_key: Optional[str] = None,
        now: Optional[datetime] = None,
        suppress_errors: bool = True,
    ) -> Optional[Notification]:
        """Create a notification, or return None when it is suppressed.

        Suppression happens silently when the user disabled *notif_type*, or
        when *dedupe_key* is given and a notification with the same user, goal,
        type and key was created within the cool-down window. Storage errors
        are logged and also yield None, so a notification never fails the write
        that triggered it. Callers that count failures pass
        ``suppress_errors=False`` to get the storage error re-raised instead.
        """
        notif_type = NotificationType(notif_type)
        now = now or datetime.utcnow()
        try:
            if not NotificationService.is_enabled(user_id, notif_type):
                current_app.logger.debug(
                    "Notification %s disabled for user %s; skipping", notif_type.value, user_id
                )
                return None

            if dedupe_key is not None and NotificationService._sent_recently(
                user_id, notif_type, goal_id, dedupe_key, now
            ):
                current_app.logger.debug(
                    "Suppressed duplicate %s/%s for user %s goal %s",
                    notif_type.value, dedupe_key, user_id, goal_id,
                )
                return None

            notification = Notification(
                user_id=user_id,
                goal_id=goal_id,
                type=notif_type,
                dedupe_key=dedupe_key,
                message=message,
                created_at=now,
            )
            db.session.add(notification)
            db.session.commit()
            return notification
        except Exception as e:
            # Avoid crashing business flow on notification failure; log and continue
            db.session.rollback()
            current_app.logger.error(f"Failed to emit {notif_type.value} notification for user {user_id}: {e}")
            if not suppress_errors:
                raise
            return None

    @staticmethod
    def _sent_recently(user_id, notif_type, goal_id, dedupe_key, now) -> bool:
        hours = current_app.config.get("REMINDER_COOLDOWN_HOURS", DEFAULT_COOLDOWN_HOURS)
        cutoff = now - timedelta(hours=hours)
        query = Notification.query.filter(
            Notification.user_id == user_id,
            Notification.type == notif_type,
            Notification.dedupe_key == dedupe_key,
            Notification.created_at > cutoff,
        )
        if goal_id is None:
            query = query.filter(Notification.goal_id.is_(None))
        else:
            query = query.filter(Notification.goal_id == goal_id)
        return db.session.query(query.exists()).scalar()

    @staticmethod
    def send_achievement(goal: Goal) -> Optional[Notification]:
        return NotificationService.emit(
            goal.user_id,
            NotificationType.ACHIEVEMENT_ALERTS,
            f'🎉 Congratulations! You achieved your goal: "{goal.title}"',
            goal_id=goal.id,
        )

    @staticmethod
    def send_business_alert(employee_id: int, message: str) -> Optional[Notification]:
        return NotificationService.emit(employee_id, NotificationType.BUSINESS_ALERTS, message)

    # -----------------------
    # Inbox management
    # -----------------------
    @staticmethod
    def list_notifications(user_id: int, limit: Optional[int] = None) -> List[Notification]:
        limit = limit or current_app.config.get("NOTIFICATION_LIST_LIMIT", 50)
        return (
            Notification.query.filter_by(user_id=user_id)
            .order_by(Notification.created_at.desc(), Notification.id.desc())
            .limit(limit)
            .all()
        )

    @staticmethod
    def unread_count(user_id: int) -> int:
        return Notification.query.filter_by(user_id=user_id, read=False).count()

    @staticmethod
    def mark_all_read(user_id: int) -> int:
        updated = Notification.query.filter_by(user_id=user_id, read=False).update(
            {Notification.read: True}, synchronize_session=False
        )
        db.session.commit()
        return updated

    @staticmethod
    def delete_all(user_id: int) -> int:
        deleted = Notification.query.filter_by(user_id=user_id).delete(synchronize_session=False)
        db.session.commit()
        return deleted

    @staticmethod
    def cleanup_malformed(user_id: int) -> int:
        """Delete notifications whose message was rendered from a missing value."""
        broken_ids = [
            n.id for n in Notification.query.filter_by(user_id=user_id).all()
            if MALFORMED_MESSAGE.search(n.message or "")
        ]
        if not broken_ids:
            return 0
        Notification.query.filter(Notification.id.in_(broken_ids)).delete(synchronize_session=False)
        db.session.commit()
        current_app.logger.info("Removed %d malformed notifications for user %s", len(broken_ids), user_id)
        return len(broken_ids)
