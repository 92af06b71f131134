# carbontrack/routes/business.py
from flask import Blueprint, jsonify, request
from flask_security import current_user

from carbontrack import limiter
from carbontrack.routes import business_required
from carbontrack.services import business_service
from carbontrack.utils.errors import ValidationFailed

bp = Blueprint('business', __name__, url_prefix='/api/business')


@bp.route('/employees', methods=['GET'])
@business_required
def employees():
    return jsonify(business_service.list_employees(current_user))


@bp.route('/employee/<int:user_id>', methods=['GET'])
@business_required
def employee(user_id):
    return jsonify(business_service.employee_detail(current_user, user_id))


@bp.route('/alert/<int:user_id>', methods=['POST'])
@business_required
@limiter.limit("30 per hour", key_func=lambda: str(current_user.id))
def alert(user_id):
    data = request.get_json(silent=True) or {}
    message = data.get('message')
    if message is not None and not isinstance(message, str):
        raise ValidationFailed("message must be a string")
    notification = business_service.send_alert(current_user, user_id, message)
    return jsonify({
        "message": "Alert sent successfully" if notification else "Employee has disabled business alerts",
        "delivered": notification is not None,
    })
