# carbontrack/models/user.py
import uuid
from datetime import datetime

from flask_security import RoleMixin, UserMixin

from carbontrack import db

roles_users = db.Table(
    'roles_users',
    db.Column('user_id', db.Integer, db.ForeignKey('users.id'), primary_key=True),
    db.Column('role_id', db.Integer, db.ForeignKey('roles.id'), primary_key=True),
)


class Role(db.Model, RoleMixin):
    __tablename__ = 'roles'

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(80), unique=True, nullable=False)
    description = db.Column(db.String(255))

    def __repr__(self):
        return f'<Role {self.name}>'


class User(db.Model, UserMixin):
    __tablename__ = 'users'

    id = db.Column(db.Integer, primary_key=True)
    email = db.Column(db.String(255), unique=True, nullable=False)
    name = db.Column(db.String(120))
    password = db.Column(db.String(255))
    active = db.Column(db.Boolean, nullable=False, default=True)
    fs_uniquifier = db.Column(db.String(64), unique=True, nullable=False,
                              default=lambda: uuid.uuid4().hex)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    last_login_at = db.Column(db.DateTime)
    current_login_at = db.Column(db.DateTime)
    last_login_ip = db.Column(db.String(64))
    current_login_ip = db.Column(db.String(64))
    login_count = db.Column(db.Integer)

    # Employees point at the business account that owns their organization
    organization_id = db.Column(db.Integer, db.ForeignKey('users.id'), nullable=True, index=True)
    organization_name = db.Column(db.String(120))

    roles = db.relationship('Role', secondary=roles_users,
                            backref=db.backref('users', lazy='dynamic'))
    employees = db.relationship('User', backref=db.backref('organization', remote_side=[id]),
                                lazy='dynamic')

    @property
    def is_business(self):
        return self.has_role('business')

    def __repr__(self):
        return f'<User {self.email}>'
