# carbontrack/models/goal.py
import enum
from datetime import datetime

from carbontrack import db
from carbontrack.models.carbon import ActivityCategory, _enum_values


class GoalStatus(str, enum.Enum):
    PENDING = 'pending'
    COMPLETED = 'completed'


class Goal(db.Model):
    """A sustainability goal.

    ``category`` links the goal to the carbon ledger: when set, ``current_value``
    is a materialized aggregate recomputed by the goal reconciler. A goal with
    no category is a manual goal whose progress is reported by the user.
    """
    __tablename__ = 'goals'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    title = db.Column(db.String(200), nullable=False)
    target_value = db.Column(db.Float, nullable=False)
    current_value = db.Column(db.Float, nullable=False, default=0.0)
    unit = db.Column(db.String(40), nullable=False)
    deadline = db.Column(db.Date, nullable=False)
    status = db.Column(
        db.Enum(GoalStatus, native_enum=False, length=20,
                values_callable=_enum_values, name='goal_status'),
        nullable=False,
        default=GoalStatus.PENDING,
    )
    category = db.Column(
        db.Enum(ActivityCategory, native_enum=False, length=20,
                values_callable=_enum_values, name='goal_category'),
        nullable=True,
    )
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    updated_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, onupdate=datetime.utcnow)

    user = db.relationship('User', backref=db.backref('goals', lazy='dynamic'))

    # The deadline sweep scans every pending goal by deadline
    __table_args__ = (
        db.Index('ix_goals_status_deadline', 'status', 'deadline'),
    )

    @property
    def is_completed(self):
        return self.status == GoalStatus.COMPLETED

    @property
    def is_category_linked(self):
        return self.category is not None

    def __repr__(self):
        return f'<Goal {self.title!r} {self.current_value}/{self.target_value} {self.unit} ({self.status.value})>'

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'title': self.title,
            'target_value': self.target_value,
            'current_value': self.current_value,
            'unit': self.unit,
            'deadline': self.deadline.isoformat(),
            'status': self.status.value,
            'category': self.category.value if self.category else None,
            'created_at': self.created_at.isoformat() if self.created_at else None,
            'updated_at': self.updated_at.isoformat() if self.updated_at else None,
        }


class Achievement(db.Model):
    """Record of a goal reaching its target automatically."""
    __tablename__ = 'achievements'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False, index=True)
    goal_id = db.Column(db.Integer, nullable=False)
    title = db.Column(db.String(200), nullable=False)
    target_value = db.Column(db.Float, nullable=False)
    unit = db.Column(db.String(40), nullable=False)
    completed_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def to_dict(self):
        return {
            'id': self.id,
            'goal_id': self.goal_id,
            'title': self.title,
            'target_value': self.target_value,
            'unit': self.unit,
            'completed_at': self.completed_at.isoformat(),
        }
