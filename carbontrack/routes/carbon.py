# carbontrack/routes/carbon.py
import logging

from flask import Blueprint, jsonify, request
from flask_security import current_user

from carbontrack.routes import api_login_required, parse_date_arg
from carbontrack.services import carbon_ledger
from carbontrack.services.emission_service import EMISSION_FACTORS
from carbontrack.utils.errors import ValidationFailed

logger = logging.getLogger(__name__)

bp = Blueprint('carbon', __name__, url_prefix='/api/carbon')

SUMMARY_PERIODS = {'weekly': 7, 'monthly': 30}


@bp.route('', methods=['POST'])
@api_login_required
def record_activities():
    """Save one day's activities, e.g. ``{"electricity": 5, "petrol": 10}``."""
    activities = request.get_json(silent=True)
    if not isinstance(activities, dict):
        raise ValidationFailed("Request body must be a JSON object of activity quantities")
    day = parse_date_arg(request.args.get('date'), 'date')

    entries = carbon_ledger.append(current_user.id, day, activities)
    return jsonify([entry.to_dict() for entry in entries]), 201


@bp.route('', methods=['GET'])
@api_login_required
def list_entries():
    start = parse_date_arg(request.args.get('from'), 'from')
    end = parse_date_arg(request.args.get('to'), 'to')
    entries = carbon_ledger.query(current_user.id, start, end)
    return jsonify([entry.to_dict() for entry in entries])


@bp.route('/summary', methods=['GET'])
@api_login_required
def summary():
    period = request.args.get('period', 'weekly')
    if period not in SUMMARY_PERIODS:
        raise ValidationFailed(f"period must be one of {sorted(SUMMARY_PERIODS)}")
    data = carbon_ledger.summarize(current_user.id, SUMMARY_PERIODS[period])
    data['period'] = period
    return jsonify(data)


@bp.route('/factors', methods=['GET'])
def factors():
    return jsonify({
        activity: {'factor': f.factor, 'unit': f.unit, 'category': f.category.value}
        for activity, f in EMISSION_FACTORS.items()
    })


@bp.route('/today', methods=['DELETE'])
@api_login_required
def delete_today():
    deleted = carbon_ledger.delete_for_day(current_user.id, carbon_ledger.today_utc())
    return jsonify({
        "message": f"Deleted {deleted} entries from today",
        "deleted_count": deleted,
    })
