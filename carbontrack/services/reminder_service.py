# carbontrack/services/reminder_service.py
"""Deadline sweep: reminds users about pending goals that are due soon or overdue."""
from __future__ import annotations

import enum
import logging
import threading
from collections import namedtuple
from datetime import date, datetime, timedelta, timezone
from typing import Optional

from carbontrack import db, scheduler
from carbontrack.models import Goal, GoalStatus, NotificationType
from carbontrack.services.notification_service import NotificationService

logger = logging.getLogger(__name__)

REMINDER_HORIZON_DAYS = 3

SweepResult = namedtuple('SweepResult', ['scanned', 'sent', 'suppressed', 'failed'])


class ReminderBucket(str, enum.Enum):
    THREE_DAY = '3-day'
    ONE_DAY = '1-day'
    OVERDUE = 'overdue'


def classify_deadline(deadline: date, today: date) -> Optional[ReminderBucket]:
    """Which reminder, if any, is due for a pending goal on *today*."""
    days_left = (deadline - today).days
    if days_left < 0:
        return ReminderBucket.OVERDUE
    if days_left <= 1:
        return ReminderBucket.ONE_DAY
    if days_left <= REMINDER_HORIZON_DAYS:
        return ReminderBucket.THREE_DAY
    return None


def reminder_message(goal: Goal, bucket: ReminderBucket, today: date) -> str:
    progress = f"{goal.current_value:g}/{goal.target_value:g} {goal.unit}"
    days_left = (goal.deadline - today).days
    if bucket == ReminderBucket.OVERDUE:
        return f'⚠️ Goal Overdue: "{goal.title}" was due {-days_left} day(s) ago. Progress: {progress}'
    if bucket == ReminderBucket.ONE_DAY:
        when = "today" if days_left == 0 else "tomorrow"
        return (f'⏰ Deadline {when.capitalize()}! Your goal "{goal.title}" is due {when}. '
                f'Current progress: {progress}')
    return f'📅 Deadline Approaching: Your goal "{goal.title}" is due in {days_left} days. Keep going!'


class DeadlineSweeper:
    """Owns the recurring reminder job and guards against overlapping sweeps."""

    JOB_ID = 'goal_deadline_sweep'

    def __init__(self):
        self._lock = threading.Lock()
        self._app = None

    @property
    def running(self) -> bool:
        return self._lock.locked()

    def start(self, app, interval_minutes: Optional[int] = None) -> None:
        """Schedule the sweep on the app's scheduler, with one run right away."""
        self._app = app
        minutes = interval_minutes or app.config.get('REMINDER_SWEEP_INTERVAL_MINUTES', 60)
        scheduler.add_job(
            id=self.JOB_ID,
            func=self._scheduled_run,
            trigger='interval',
            minutes=minutes,
            next_run_time=datetime.now(timezone.utc),
            replace_existing=True,
            max_instances=1,
            coalesce=True,
        )
        logger.info("Goal deadline sweep scheduled every %s minutes", minutes)

    def stop(self) -> None:
        if scheduler.get_job(self.JOB_ID):
            scheduler.remove_job(self.JOB_ID)
            logger.info("Goal deadline sweep unscheduled")
        self._app = None

    def _scheduled_run(self):
        with self._app.app_context():
            self.run()

    def run(self, now: Optional[datetime] = None) -> Optional[SweepResult]:
        """Run one sweep. Returns None without sweeping if another sweep is in progress."""
        if not self._lock.acquire(blocking=False):
            logger.warning("Deadline sweep already running; skipping this run")
            return None
        try:
            return self._sweep(now or datetime.utcnow())
        finally:
            self._lock.release()

    def _sweep(self, now: datetime) -> SweepResult:
        today = now.date()
        horizon = today + timedelta(days=REMINDER_HORIZON_DAYS)
        goal_ids = [
            goal_id for goal_id, in db.session.query(Goal.id)
            .filter(Goal.status == GoalStatus.PENDING, Goal.deadline <= horizon)
            .order_by(Goal.deadline, Goal.id)
            .all()
        ]

        sent = suppressed = failed = 0
        for goal_id in goal_ids:
            user_id = None
            try:
                # Loaded one at a time so a corrupt row only fails itself
                goal = db.session.get(Goal, goal_id)
                if goal is None or goal.status != GoalStatus.PENDING:
                    continue
                user_id = goal.user_id
                bucket = classify_deadline(goal.deadline, today)
                if bucket is None:
                    continue
                notification = NotificationService.emit(
                    user_id,
                    NotificationType.GOAL_REMINDERS,
                    reminder_message(goal, bucket, today),
                    goal_id=goal_id,
                    dedupe_key=bucket.value,
                    now=now,
                    suppress_errors=False,
                )
            except Exception as exc:
                db.session.rollback()
                failed += 1
                logger.error("Reminder for goal %s (user %s) failed: %s", goal_id, user_id, exc, exc_info=True)
                continue

            if notification is None:
                suppressed += 1
            else:
                sent += 1
                logger.info("Sent %s reminder for goal %s to user %s", bucket.value, goal_id, user_id)

        result = SweepResult(len(goal_ids), sent, suppressed, failed)
        logger.info("Deadline sweep at %s: %s", now.isoformat(), result)
        return result


deadline_sweeper = DeadlineSweeper()
