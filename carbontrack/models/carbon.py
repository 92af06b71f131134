# carbontrack/models/carbon.py
import enum
from datetime import datetime

from carbontrack import db


class ActivityCategory(str, enum.Enum):
    ELECTRICITY = 'electricity'
    TRANSPORT = 'transport'
    FLIGHT = 'flight'
    FUEL = 'fuel'
    FOOD = 'food'
    WASTE = 'waste'
    OTHER = 'other'

    @classmethod
    def parse(cls, value):
        """Return the member for *value*, or None when it is not a known category."""
        if isinstance(value, cls):
            return value
        try:
            return cls(value)
        except ValueError:
            return None


def _enum_values(enum_cls):
    return [member.value for member in enum_cls]


class CarbonEntry(db.Model):
    """One activity's emissions for one user and day. Rows are never updated."""
    __tablename__ = 'carbon_entries'

    id = db.Column(db.Integer, primary_key=True)
    user_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=False)
    category = db.Column(
        db.Enum(ActivityCategory, native_enum=False, length=20,
                values_callable=_enum_values, name='activity_category'),
        nullable=False,
    )
    activity_type = db.Column(db.String(40), nullable=False)
    quantity = db.Column(db.Float, nullable=False)
    # Factor in effect when the row was written
    factor = db.Column(db.Float, nullable=False)
    co2_amount = db.Column(db.Float, nullable=False)
    date = db.Column(db.Date, nullable=False)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index('ix_carbon_entries_user_category', 'user_id', 'category'),
        db.Index('ix_carbon_entries_user_date', 'user_id', 'date'),
    )

    def __repr__(self):
        return f'<CarbonEntry {self.activity_type}={self.quantity} ({self.co2_amount} kg) for User {self.user_id}>'

    def to_dict(self):
        return {
            'id': self.id,
            'user_id': self.user_id,
            'category': self.category.value,
            'activity_type': self.activity_type,
            'quantity': self.quantity,
            'factor': self.factor,
            'co2_amount': self.co2_amount,
            'date': self.date.isoformat(),
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }
