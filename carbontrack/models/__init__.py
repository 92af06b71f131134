# carbontrack/models/__init__.py

from .. import db  # Import the SQLAlchemy instance from the app package

# Import all models to ensure they're registered with SQLAlchemy
from carbontrack.models.user import User, Role
from carbontrack.models.carbon import ActivityCategory, CarbonEntry
from carbontrack.models.goal import Achievement, Goal, GoalStatus
from carbontrack.models.notification import Notification, NotificationSettings, NotificationType

__all__ = [
    'db',
    'User',
    'Role',
    'ActivityCategory',
    'CarbonEntry',
    'Achievement',
    'Goal',
    'GoalStatus',
    'Notification',
    'NotificationSettings',
    'NotificationType',
]
