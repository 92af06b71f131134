# carbontrack/services/scheduler.py
import atexit

from apscheduler.events import EVENT_JOB_ERROR, EVENT_JOB_EXECUTED

from carbontrack import scheduler
from carbontrack.services.reminder_service import deadline_sweeper


def init_scheduler(app):
    """Start the background scheduler and register the goal deadline sweep."""

    def _log_scheduler_event(job_event):
        """Write a concise log line for every APScheduler job completion/error."""
        if getattr(job_event, "exception", None):
            app.logger.error("Scheduler job %s failed: %s", job_event.job_id, job_event.exception)
        else:
            app.logger.debug("Scheduler job %s executed successfully.", job_event.job_id)

    if not scheduler.running:
        scheduler.add_listener(_log_scheduler_event, EVENT_JOB_EXECUTED | EVENT_JOB_ERROR)
        scheduler.start()
        atexit.register(shutdown_scheduler)

    deadline_sweeper.start(app)


def shutdown_scheduler():
    deadline_sweeper.stop()
    if scheduler.running:
        scheduler.shutdown(wait=False)
