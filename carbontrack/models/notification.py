# carbontrack/models/notification.py
import enum
from datetime import datetime

from carbontrack import db
from carbontrack.models.carbon import _enum_values


class NotificationType(str, enum.Enum):
    ACHIEVEMENT_ALERTS = 'achievementAlerts'
    GOAL_REMINDERS = 'goalReminders'
    BUSINESS_ALERTS = 'businessAlerts'


class Notification(db.Model):
    __tablename__ = 'notifications'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    # Plain column, not a foreign key: notifications outlive deleted goals
    goal_id = db.Column(db.Integer, nullable=True)
    type = db.Column(
        db.Enum(NotificationType, native_enum=False, length=32,
                values_callable=_enum_values, name='notification_type'),
        nullable=False,
    )
    dedupe_key = db.Column(db.String(32), nullable=True)
    message = db.Column(db.Text, nullable=False)
    read = db.Column(db.Boolean, nullable=False, default=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_notifications_user_goal_type', 'user_id', 'goal_id', 'type'),
        db.Index('ix_notifications_user_created', 'user_id', 'created_at'),
    )

    def __repr__(self):
        return f'<Notification {self.type.value} for User {self.user_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'goal_id': self.goal_id,
            'type': self.type.value,
            'message': self.message,
            'read': self.read,
            'created_at': self.created_at.isoformat(),
        }


class NotificationSettings(db.Model):
    __tablename__ = 'notification_settings'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, unique=True)
    goal_reminders = db.Column(db.Boolean, nullable=False, default=True)
    achievement_alerts = db.Column(db.Boolean, nullable=False, default=True)
    business_alerts = db.Column(db.Boolean, nullable=False, default=True)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    # Maps each notification type to the flag that enables it
    FLAG_BY_TYPE = {
        NotificationType.GOAL_REMINDERS: 'goal_reminders',
        NotificationType.ACHIEVEMENT_ALERTS: 'achievement_alerts',
        NotificationType.BUSINESS_ALERTS: 'business_alerts',
    }

    def allows(self, notif_type):
        return bool(getattr(self, self.FLAG_BY_TYPE[NotificationType(notif_type)]))

    def to_dict(self):
        return {
            'goal_reminders': self.goal_reminders,
            'achievement_alerts': self.achievement_alerts,
            'business_alerts': self.business_alerts,
        }
