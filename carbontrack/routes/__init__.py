# carbontrack/routes/__init__.py
from datetime import date
from functools import wraps

from flask import Blueprint, jsonify
from flask_security import current_user

from carbontrack.utils.errors import ValidationFailed

bp = Blueprint('main', __name__)


@bp.route('/')
def index():
    return jsonify({"service": "carbontrack", "authenticated": current_user.is_authenticated})


def api_login_required(view_func):
    """Simple auth guard for API routes (session or token)."""
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({"error": "Authentication required"}), 401
        return view_func(*args, **kwargs)
    return wrapper


def business_required(view_func):
    """Restrict a route to organization (business) accounts."""
    @wraps(view_func)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return jsonify({"error": "Authentication required"}), 401
        if not current_user.has_role('business'):
            return jsonify({"error": "Forbidden", "message": "Business account required"}), 403
        return view_func(*args, **kwargs)
    return wrapper


def parse_date_arg(value, name):
    """Parse an optional ISO date query argument."""
    if value in (None, ''):
        return None
    try:
        return date.fromisoformat(value)
    except ValueError:
        raise ValidationFailed(f"{name} must be an ISO date (YYYY-MM-DD)") from None
