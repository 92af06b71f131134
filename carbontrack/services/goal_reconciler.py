# carbontrack/services/goal_reconciler.py
"""Keeps category-linked goal progress consistent with the carbon ledger.

``current_value`` of a category-linked goal is a materialized aggregate: it is
always recomputed from the user's full ledger history for that category, never
incremented. Two racing writes therefore heal on the next reconciliation.
"""
from __future__ import annotations

import logging
from collections import namedtuple
from datetime import datetime
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from carbontrack import db
from carbontrack.models import Achievement, Goal, GoalStatus
from carbontrack.services.carbon_ledger import aggregate_by_category
from carbontrack.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

ReconcileResult = namedtuple('ReconcileResult', ['reconciled', 'completed', 'failed'])


def record_completion(goal: Goal, completed_at: Optional[datetime] = None) -> None:
    """Flip *goal* to completed and stage its achievement row (caller commits)."""
    goal.status = GoalStatus.COMPLETED
    db.session.add(Achievement(
        user_id=goal.user_id,
        goal_id=goal.id,
        title=goal.title,
        target_value=goal.target_value,
        unit=goal.unit,
        completed_at=completed_at or datetime.utcnow(),
    ))


def reconcile_goal(goal: Goal) -> bool:
    """Recompute *goal* from the ledger. Returns True on the pending->completed edge."""
    was_completed = goal.is_completed
    total = aggregate_by_category(goal.user_id, goal.category)
    goal.current_value = round(total, 2)

    if not was_completed and goal.current_value >= goal.target_value:
        record_completion(goal)
        return True
    return False


def reconcile_user_goals(user_id: int, refresh_completed: bool = False) -> ReconcileResult:
    """Reconcile every pending category-linked goal of *user_id*.

    With *refresh_completed* the values of completed category-linked goals are
    refreshed as well; their status is left alone. Each goal is committed on
    its own, and a failing goal is logged and skipped. Achievement
    notifications are emitted after the goal is committed.
    """
    statuses = [GoalStatus.PENDING]
    if refresh_completed:
        statuses.append(GoalStatus.COMPLETED)

    try:
        goal_ids = [
            goal_id for goal_id, in db.session.query(Goal.id).filter(
                Goal.user_id == user_id,
                Goal.category.isnot(None),
                Goal.status.in_(statuses),
            ).order_by(Goal.id).all()
        ]
    except SQLAlchemyError as exc:
        db.session.rollback()
        logger.error("Could not load goals for reconciliation of user %s: %s", user_id, exc)
        return ReconcileResult(0, [], 0)

    reconciled, completed, failed = 0, [], 0
    for goal_id in goal_ids:
        try:
            # Loaded one at a time so a corrupt or concurrently deleted row only fails itself
            goal = db.session.get(Goal, goal_id)
            if goal is None:
                continue
            just_completed = reconcile_goal(goal)
            db.session.commit()
        except Exception as exc:
            db.session.rollback()
            failed += 1
            logger.error("Failed to reconcile goal %s for user %s: %s", goal_id, user_id, exc, exc_info=True)
            continue

        reconciled += 1
        if just_completed:
            logger.info("Goal %s for user %s reached its target", goal_id, user_id)
            completed.append(goal)
            try:
                NotificationService.send_achievement(goal)
            except Exception as exc:
                db.session.rollback()
                logger.error("Achievement notification for goal %s failed: %s", goal_id, exc)

    return ReconcileResult(reconciled, completed, failed)
