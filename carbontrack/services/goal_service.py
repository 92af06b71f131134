# carbontrack/services/goal_service.py
from __future__ import annotations

import logging
import math
from datetime import date, datetime
from numbers import Real
from typing import Dict, List, Optional

from carbontrack import db
from carbontrack.models import Achievement, ActivityCategory, Goal, GoalStatus
from carbontrack.services.emission_service import validate_quantity
from carbontrack.services.goal_reconciler import reconcile_user_goals, record_completion
from carbontrack.services.notification_service import NotificationService
from carbontrack.utils.errors import Forbidden, NotFound, ValidationFailed

logger = logging.getLogger(__name__)

MIN_TITLE_LENGTH = 3


def _parse_deadline(value) -> Optional[date]:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str) and value:
        try:
            # Accept both "2025-06-01" and full ISO timestamps from date pickers
            return date.fromisoformat(value[:10])
        except ValueError:
            return None
    return None


def _is_number(value) -> bool:
    return isinstance(value, Real) and not isinstance(value, bool) and math.isfinite(value)


def _validate_new_goal(data: Dict, today: date) -> Dict:
    """Return cleaned goal fields or raise ValidationFailed listing every problem."""
    errors = []

    title = data.get('title')
    title = title.strip() if isinstance(title, str) else ''
    if len(title) < MIN_TITLE_LENGTH:
        errors.append(f"title must be at least {MIN_TITLE_LENGTH} characters")

    target_value = data.get('target_value')
    if not _is_number(target_value) or target_value <= 0:
        errors.append("target_value must be a positive number")

    unit = data.get('unit')
    unit = unit.strip() if isinstance(unit, str) else ''
    if not unit:
        errors.append("unit is required")

    deadline = _parse_deadline(data.get('deadline'))
    if deadline is None:
        errors.append("deadline must be an ISO date")
    elif deadline <= today:
        errors.append("deadline must be after today")

    category = None
    raw_category = data.get('category')
    if raw_category not in (None, ''):
        category = ActivityCategory.parse(raw_category)
        if category is None or category == ActivityCategory.OTHER:
            errors.append(f"unsupported goal category: {raw_category!r}")

    current_value = data.get('current_value', 0)
    if current_value is None:
        current_value = 0
    if not _is_number(current_value) or current_value < 0:
        errors.append("current_value must be a non-negative number")

    if errors:
        raise ValidationFailed("; ".join(errors))

    return {
        'title': title,
        'target_value': float(target_value),
        'unit': unit,
        'deadline': deadline,
        'category': category,
        'current_value': float(current_value),
    }


def create_goal(user_id: int, data: Dict, today: Optional[date] = None) -> Goal:
    """Create a pending goal. Duplicate titles are allowed.

    A manual goal whose starting value already meets its target is completed
    right away, the same way ``set_progress`` completes it.
    """
    fields = _validate_new_goal(data or {}, today or datetime.utcnow().date())
    goal = Goal(user_id=user_id, status=GoalStatus.PENDING, **fields)
    db.session.add(goal)

    just_completed = not goal.is_category_linked and goal.current_value >= goal.target_value
    if just_completed:
        # Achievement rows need the goal id
        db.session.flush()
        record_completion(goal)
    db.session.commit()
    logger.info("Created goal %s for user %s (category=%s)", goal.id, user_id,
                goal.category.value if goal.category else None)

    if just_completed:
        NotificationService.send_achievement(goal)
    elif goal.is_category_linked:
        reconcile_user_goals(user_id)
    return goal


def list_goals(user_id: int) -> List[Goal]:
    return Goal.query.filter_by(user_id=user_id).order_by(Goal.created_at.desc(), Goal.id.desc()).all()


def get_goal(user_id: int, goal_id: int) -> Goal:
    goal = db.session.get(Goal, goal_id)
    if goal is None:
        raise NotFound("Goal not found")
    if goal.user_id != user_id:
        raise Forbidden("You do not own this goal")
    return goal


def toggle_goal(user_id: int, goal_id: int) -> Goal:
    """Manually flip a goal between pending and completed.

    Manual completion records no achievement, and reopening a category-linked
    goal does not reconcile it; the next ledger write does.
    """
    goal = get_goal(user_id, goal_id)
    goal.status = GoalStatus.PENDING if goal.is_completed else GoalStatus.COMPLETED
    db.session.commit()
    logger.info("Goal %s toggled to %s by user %s", goal.id, goal.status.value, user_id)
    return goal


def set_progress(user_id: int, goal_id: int, value) -> Goal:
    """Report progress on a manual goal; reaching the target completes it."""
    goal = get_goal(user_id, goal_id)
    if goal.is_category_linked:
        raise ValidationFailed("Progress of category-linked goals is derived from carbon entries")
    value = validate_quantity(value, label="current_value")

    goal.current_value = value
    just_completed = not goal.is_completed and goal.current_value >= goal.target_value
    if just_completed:
        record_completion(goal)
    db.session.commit()

    if just_completed:
        NotificationService.send_achievement(goal)
    return goal


def delete_goal(user_id: int, goal_id: int) -> None:
    goal = get_goal(user_id, goal_id)
    db.session.delete(goal)
    db.session.commit()
    logger.info("Goal %s deleted by user %s", goal_id, user_id)


def list_achievements(user_id: int) -> List[Achievement]:
    return (
        Achievement.query.filter_by(user_id=user_id)
        .order_by(Achievement.completed_at.desc(), Achievement.id.desc())
        .all()
    )
