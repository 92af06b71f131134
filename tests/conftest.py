"""Pytest fixtures for Flask app testing.

Every test gets a fresh app backed by an in-memory SQLite database, with an
application context pushed for the whole test so services and models can be
used directly. Authenticated API clients are built with Flask-Login's
``FlaskLoginClient`` instead of posting to the login form. The reminder sweep
scheduler and rate limiting are disabled.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta

import pytest
from flask import g
from flask_login import FlaskLoginClient

from carbontrack import create_app, db
from carbontrack.models import Goal, GoalStatus, Role, User

TEST_CONFIG = {
    "TESTING": True,
    "SECRET_KEY": "testing-secret-key",
    "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
    "SQLALCHEMY_TRACK_MODIFICATIONS": False,
    "SECURITY_PASSWORD_SALT": "salt",
    "SECURITY_PASSWORD_HASH": "bcrypt",
    # Disable CSRF for JSON test requests
    "WTF_CSRF_ENABLED": False,
    "RATELIMIT_ENABLED": False,
    # Avoid APScheduler side-effects in tests
    "SCHEDULER_API_ENABLED": False,
    "REMINDER_SWEEP_ENABLED": False,
    "REMINDER_COOLDOWN_HOURS": 24,
    "WEEKLY_CARBON_LIMIT_KG": 230,
    "NOTIFICATION_LIST_LIMIT": 50,
}

###############################################################################
# Core application & database fixtures
###############################################################################


@pytest.fixture
def app():
    """Create a new app with its own database and keep its context pushed."""
    app = create_app(dict(TEST_CONFIG))
    app.test_client_class = FlaskLoginClient

    # Requests reuse the pushed app context, and with it ``g``; drop the
    # cached user so each client is authenticated from its own session.
    @app.teardown_request
    def _forget_login_user(exc):
        g.pop("_login_user", None)

    with app.app_context():
        db.create_all()
        for name in ("user", "business"):
            if not Role.query.filter_by(name=name).first():
                db.session.add(Role(name=name))
        db.session.commit()

        yield app

        db.session.remove()
        db.drop_all()


@pytest.fixture
def today():
    return datetime.utcnow().date()


###############################################################################
# Helper fixtures – users & authenticated clients
###############################################################################


def make_user(email, role="user", **fields):
    user = User(email=email, password="unused", active=True, **fields)
    user.roles.append(Role.query.filter_by(name=role).one())
    db.session.add(user)
    db.session.commit()
    return user


@pytest.fixture
def regular_user(app):
    return make_user("testuser@example.com", name="Test User")


@pytest.fixture
def other_user(app):
    return make_user("other@example.com", name="Other User")


@pytest.fixture
def business_user(app):
    return make_user("org@example.com", role="business", name="Org Admin",
                     organization_name="Green Corp")


@pytest.fixture
def employee(app, business_user):
    return make_user("employee@example.com", name="Eve Employee", organization_id=business_user.id)


@pytest.fixture
def client(app):
    """Return an unauthenticated test client."""
    return app.test_client()


@pytest.fixture
def auth_client(app, regular_user):
    """A test client logged in as *regular_user*."""
    return app.test_client(user=regular_user)


@pytest.fixture
def business_client(app, business_user):
    """A test client logged in as *business_user*."""
    return app.test_client(user=business_user)


@pytest.fixture
def make_goal(app):
    """Insert a goal directly, bypassing creation rules (e.g. past deadlines)."""
    def _make_goal(user, title="Cut electricity use", target_value=40.0, unit="kg CO2",
                   deadline: date | None = None, category=None, status=GoalStatus.PENDING,
                   current_value=0.0):
        goal = Goal(
            user_id=user.id,
            title=title,
            target_value=target_value,
            current_value=current_value,
            unit=unit,
            deadline=deadline or (datetime.utcnow().date() + timedelta(days=7)),
            category=category,
            status=status,
        )
        db.session.add(goal)
        db.session.commit()
        return goal
    return _make_goal


@pytest.fixture
def second_employee(app, business_user):
    return make_user("bob@example.com", name="Bob", organization_id=business_user.id)
