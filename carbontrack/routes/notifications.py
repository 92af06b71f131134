# carbontrack/routes/notifications.py
from flask import Blueprint, jsonify, request
from flask_security import current_user

from carbontrack.routes import api_login_required
from carbontrack.services.notification_service import NotificationService
from carbontrack.services.reminder_service import deadline_sweeper
from carbontrack.utils.errors import ValidationFailed

bp = Blueprint('notifications', __name__, url_prefix='/api/notifications')


@bp.route('', methods=['GET'])
@api_login_required
def list_notifications():
    notifications = NotificationService.list_notifications(current_user.id)
    settings = NotificationService.get_settings(current_user.id)
    return jsonify({
        "notifications": [n.to_dict() for n in notifications],
        "unread_count": NotificationService.unread_count(current_user.id),
        "settings": settings.to_dict(),
    })


@bp.route('/read', methods=['PUT'])
@api_login_required
def mark_read():
    updated = NotificationService.mark_all_read(current_user.id)
    return jsonify({"message": "Notifications marked as read", "updated": updated})


@bp.route('/all', methods=['DELETE'])
@api_login_required
def clear_all():
    deleted = NotificationService.delete_all(current_user.id)
    return jsonify({"message": f"Deleted {deleted} notification(s)", "deleted_count": deleted})


@bp.route('/cleanup', methods=['DELETE'])
@api_login_required
def cleanup():
    deleted = NotificationService.cleanup_malformed(current_user.id)
    return jsonify({"message": f"Cleaned up {deleted} broken notification(s)", "deleted_count": deleted})


@bp.route('/settings', methods=['GET'])
@api_login_required
def get_settings():
    return jsonify({"settings": NotificationService.get_settings(current_user.id).to_dict()})


@bp.route('/settings', methods=['POST'])
@api_login_required
def save_settings():
    data = request.get_json(silent=True) or {}
    values = data.get('settings', data)
    if not isinstance(values, dict):
        raise ValidationFailed("settings must be a JSON object")
    settings = NotificationService.save_settings(current_user.id, values)
    return jsonify({"settings": settings.to_dict()})


@bp.route('/check-reminders', methods=['POST'])
@api_login_required
def check_reminders():
    """Run the deadline sweep now instead of waiting for the next scheduled run."""
    result = deadline_sweeper.run()
    if result is None:
        return jsonify({"message": "Deadline reminder check already in progress"}), 409
    return jsonify({"message": "Deadline reminder check completed", "result": result._asdict()})
