from datetime import datetime, timedelta
from unittest.mock import MagicMock, patch

import pytest
from sqlalchemy import text
from sqlalchemy.exc import OperationalError

from carbontrack import db
from carbontrack.models import GoalStatus, Notification, NotificationType
from carbontrack.services import reminder_service
from carbontrack.services.notification_service import NotificationService
from carbontrack.services.reminder_service import (
    DeadlineSweeper, ReminderBucket, classify_deadline, reminder_message,
)

NOW = datetime(2026, 3, 10, 8, 0)
TODAY = NOW.date()


def reminders():
    return Notification.query.filter_by(type=NotificationType.GOAL_REMINDERS).all()


@pytest.mark.parametrize("days_left, bucket", [
    (-3, ReminderBucket.OVERDUE),
    (-1, ReminderBucket.OVERDUE),
    (0, ReminderBucket.ONE_DAY),
    (1, ReminderBucket.ONE_DAY),
    (2, ReminderBucket.THREE_DAY),
    (3, ReminderBucket.THREE_DAY),
    (4, None),
    (30, None),
])
def test_classify_deadline(days_left, bucket):
    assert classify_deadline(TODAY + timedelta(days=days_left), TODAY) == bucket


def test_reminder_messages(regular_user, make_goal):
    goal = make_goal(regular_user, title="Cycle to work", target_value=20, unit="trips",
                     current_value=5, deadline=TODAY - timedelta(days=2))
    overdue = reminder_message(goal, ReminderBucket.OVERDUE, TODAY)
    assert '"Cycle to work"' in overdue
    assert "2 day(s) ago" in overdue
    assert "5/20 trips" in overdue

    assert "Tomorrow" in reminder_message(goal, ReminderBucket.ONE_DAY, goal.deadline - timedelta(days=1))
    assert "due today" in reminder_message(goal, ReminderBucket.ONE_DAY, goal.deadline)
    assert "in 3 days" in reminder_message(goal, ReminderBucket.THREE_DAY, goal.deadline - timedelta(days=3))


class TestSweep:
    def test_overdue_goal_reminded_once_across_close_sweeps(self, regular_user, make_goal):
        goal = make_goal(regular_user, deadline=TODAY - timedelta(days=1))
        sweeper = DeadlineSweeper()

        first = sweeper.run(now=NOW)
        second = sweeper.run(now=NOW + timedelta(minutes=10))

        assert first.sent == 1
        assert second.sent == 0
        assert second.suppressed == 1
        sent = reminders()
        assert len(sent) == 1
        assert sent[0].goal_id == goal.id
        assert sent[0].dedupe_key == ReminderBucket.OVERDUE.value

    def test_hourly_sweeps_send_one_reminder_per_day(self, regular_user, make_goal):
        make_goal(regular_user, deadline=TODAY + timedelta(days=1))
        sweeper = DeadlineSweeper()

        for hour in range(24):
            sweeper.run(now=NOW + timedelta(hours=hour))

        assert len(reminders()) == 1

    def test_each_bucket_fires_as_deadline_approaches(self, regular_user, make_goal):
        make_goal(regular_user, deadline=TODAY + timedelta(days=3))
        sweeper = DeadlineSweeper()

        for day in range(5):
            sweeper.run(now=NOW + timedelta(days=day))

        keys = [n.dedupe_key for n in reminders()]
        # 3-day, 3-day (24h later), 1-day, 1-day, overdue
        assert keys.count('3-day') == 2
        assert keys.count('1-day') == 2
        assert keys.count('overdue') == 1

    def test_only_pending_goals_within_horizon_are_scanned(self, regular_user, make_goal):
        make_goal(regular_user, deadline=TODAY + timedelta(days=2))
        make_goal(regular_user, deadline=TODAY + timedelta(days=10))
        make_goal(regular_user, deadline=TODAY - timedelta(days=1), status=GoalStatus.COMPLETED)

        result = DeadlineSweeper().run(now=NOW)
        assert result.scanned == 1
        assert result.sent == 1

    def test_disabled_reminders_are_suppressed(self, regular_user, make_goal):
        make_goal(regular_user, deadline=TODAY)
        NotificationService.save_settings(regular_user.id, {'goalReminders': False})

        result = DeadlineSweeper().run(now=NOW)
        assert result.suppressed == 1
        assert reminders() == []

    def test_failing_goal_does_not_stop_the_sweep(self, regular_user, other_user, make_goal):
        make_goal(regular_user, title="Broken", deadline=TODAY)
        make_goal(other_user, title="Fine", deadline=TODAY)
        real_message = reminder_service.reminder_message

        def flaky(goal, bucket, today):
            if goal.title == "Broken":
                raise ValueError("cannot render")
            return real_message(goal, bucket, today)

        with patch.object(reminder_service, "reminder_message", side_effect=flaky):
            result = DeadlineSweeper().run(now=NOW)

        assert result.failed == 1
        assert result.sent == 1
        assert [n.user_id for n in reminders()] == [other_user.id]

    def test_overlapping_run_is_skipped(self, regular_user, make_goal):
        make_goal(regular_user, deadline=TODAY)
        sweeper = DeadlineSweeper()

        sweeper._lock.acquire()
        try:
            assert sweeper.running
            assert sweeper.run(now=NOW) is None
        finally:
            sweeper._lock.release()

        assert not sweeper.running
        assert reminders() == []

    def test_corrupt_goal_row_does_not_block_other_users(self, regular_user, other_user, make_goal):
        legacy = make_goal(regular_user, title="Legacy", deadline=TODAY)
        make_goal(other_user, title="Fine", deadline=TODAY)
        # A category value the current enum no longer knows
        db.session.execute(text("UPDATE goals SET category = 'legacy' WHERE id = :id"), {"id": legacy.id})
        db.session.commit()

        result = DeadlineSweeper().run(now=NOW)

        assert result.scanned == 2
        assert result.failed == 1
        assert result.sent == 1
        assert [n.user_id for n in reminders()] == [other_user.id]

    def test_goal_deleted_during_sweep_is_skipped(self, regular_user, other_user, make_goal):
        make_goal(regular_user, title="First", deadline=TODAY - timedelta(days=1))
        second_id = make_goal(other_user, title="Second", deadline=TODAY).id
        real_emit = NotificationService.emit

        def emit_then_delete(*args, **kwargs):
            notification = real_emit(*args, **kwargs)
            db.session.execute(text("DELETE FROM goals WHERE id = :id"), {"id": second_id})
            db.session.commit()
            return notification

        with patch.object(NotificationService, "emit", side_effect=emit_then_delete):
            result = DeadlineSweeper().run(now=NOW)

        assert result is not None
        assert result.sent == 1
        assert result.failed == 0
        assert [n.user_id for n in reminders()] == [regular_user.id]

    def test_storage_failure_counts_as_failed(self, regular_user, make_goal):
        make_goal(regular_user, deadline=TODAY)
        NotificationService.get_settings(regular_user.id)

        with patch.object(db.session, "commit",
                          side_effect=OperationalError("INSERT", {}, Exception("database is locked"))):
            result = DeadlineSweeper().run(now=NOW)

        assert result.failed == 1
        assert result.suppressed == 0
        assert reminders() == []


class TestScheduling:
    def test_start_registers_single_instance_interval_job(self, app):
        fake_scheduler = MagicMock()
        sweeper = DeadlineSweeper()
        with patch.object(reminder_service, "scheduler", fake_scheduler):
            sweeper.start(app, interval_minutes=15)

        kwargs = fake_scheduler.add_job.call_args.kwargs
        assert kwargs["id"] == DeadlineSweeper.JOB_ID
        assert kwargs["trigger"] == "interval"
        assert kwargs["minutes"] == 15
        assert kwargs["max_instances"] == 1
        assert kwargs["coalesce"] is True
        assert kwargs["replace_existing"] is True

    def test_start_uses_configured_interval(self, app):
        app.config["REMINDER_SWEEP_INTERVAL_MINUTES"] = 45
        fake_scheduler = MagicMock()
        with patch.object(reminder_service, "scheduler", fake_scheduler):
            DeadlineSweeper().start(app)
        assert fake_scheduler.add_job.call_args.kwargs["minutes"] == 45

    def test_stop_removes_job(self, app):
        fake_scheduler = MagicMock()
        sweeper = DeadlineSweeper()
        with patch.object(reminder_service, "scheduler", fake_scheduler):
            sweeper.start(app)
            sweeper.stop()
        fake_scheduler.remove_job.assert_called_once_with(DeadlineSweeper.JOB_ID)

    def test_scheduled_run_pushes_app_context(self, app, regular_user, make_goal):
        make_goal(regular_user, deadline=datetime.utcnow().date() - timedelta(days=1))
        sweeper = DeadlineSweeper()
        with patch.object(reminder_service, "scheduler", MagicMock()):
            sweeper.start(app)
        sweeper._scheduled_run()
        assert len(reminders()) == 1
