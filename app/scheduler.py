import atexit
import logging

from apscheduler.schedulers.background import BackgroundScheduler

from app.services import appointments, notification_queue
from app.services.notification_queue import NotificationQueue

logger = logging.getLogger(__name__)

scheduler = BackgroundScheduler()

SWEEP_JOB_ID = "notification_sweep"
PURGE_JOB_ID = "notification_purge"
AUTO_COMPLETE_JOB_ID = "auto_complete_appointments"


def run_notification_sweep(app):
    """One sweep of the notification queue inside an application context."""
    with app.app_context():
        return NotificationQueue.from_app(app).sweep()


def run_notification_purge(app):
    with app.app_context():
        try:
            return notification_queue.purge_old(app.config["NOTIFICATION_RETENTION_DAYS"])
        except Exception:
            logger.exception("Error purging old notifications")
            return 0


def run_auto_complete(app):
    """Auto-complete confirmed appointments that have ended."""
    with app.app_context():
        try:
            count = appointments.auto_complete_past_appointments()
        except Exception:
            logger.exception("Error auto-completing appointments")
            return 0

        if count:
            logger.info("Auto-completed %s appointment(s)", count)
        else:
            logger.debug("No appointments to auto-complete")
        return count


def _add_job(target, func, trigger, job_id, **kwargs):
    # replace_existing does not reach jobs queued on a scheduler that has not started
    if target.get_job(job_id) is not None:
        target.remove_job(job_id)
    target.add_job(func, trigger, id=job_id, replace_existing=True, **kwargs)


def register_jobs(app, target=None):
    """Add the recurring jobs for ``app`` to ``target`` (the module scheduler by default)."""
    target = target or scheduler
    _add_job(
        target,
        run_notification_sweep,
        "interval",
        SWEEP_JOB_ID,
        seconds=app.config["NOTIFICATION_SWEEP_INTERVAL_SECONDS"],
        args=[app],
        # overlapping ticks are skipped by the sweep guard
        max_instances=2,
        coalesce=True,
    )
    _add_job(target, run_notification_purge, "interval", PURGE_JOB_ID, hours=24, args=[app])
    _add_job(
        target,
        run_auto_complete,
        "interval",
        AUTO_COMPLETE_JOB_ID,
        minutes=app.config["AUTO_COMPLETE_INTERVAL_MINUTES"],
        args=[app],
    )
    return target


def init_scheduler(app):
    """Initialize the APScheduler scheduler with Flask app context."""
    register_jobs(app)

    if not scheduler.running:
        scheduler.start()
        logger.info("Scheduler started")
    else:
        logger.info("Scheduler already running (skipping duplicate start)")

    # Shut down the scheduler when exiting the app
    atexit.register(lambda: scheduler.shutdown(wait=False) if scheduler.running else None)
