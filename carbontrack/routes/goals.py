# carbontrack/routes/goals.py
from flask import Blueprint, jsonify, request
from flask_security import current_user

from carbontrack.routes import api_login_required
from carbontrack.services import goal_service
from carbontrack.utils.errors import ValidationFailed

bp = Blueprint('goals', __name__, url_prefix='/api/goals')


def _json_body():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationFailed("Request body must be a JSON object")
    return data


@bp.route('', methods=['GET'])
@api_login_required
def list_goals():
    return jsonify([goal.to_dict() for goal in goal_service.list_goals(current_user.id)])


@bp.route('', methods=['POST'])
@api_login_required
def create_goal():
    goal = goal_service.create_goal(current_user.id, _json_body())
    return jsonify(goal.to_dict()), 201


@bp.route('/achievements', methods=['GET'])
@api_login_required
def achievements():
    return jsonify([a.to_dict() for a in goal_service.list_achievements(current_user.id)])


@bp.route('/<int:goal_id>/toggle', methods=['PUT'])
@api_login_required
def toggle_goal(goal_id):
    goal = goal_service.toggle_goal(current_user.id, goal_id)
    return jsonify(goal.to_dict())


@bp.route('/<int:goal_id>/progress', methods=['PUT'])
@api_login_required
def update_progress(goal_id):
    data = _json_body()
    goal = goal_service.set_progress(current_user.id, goal_id, data.get('current_value'))
    return jsonify(goal.to_dict())


@bp.route('/<int:goal_id>', methods=['DELETE'])
@api_login_required
def delete_goal(goal_id):
    goal_service.delete_goal(current_user.id, goal_id)
    return jsonify({"message": "Goal deleted successfully"})
