"""
Notification dispatch queue.

Lifecycle operations enqueue NotificationTask rows after their own commit.
A periodic sweep (see app.scheduler) delivers them through the configured
channel, retrying failures after a fixed delay until ``max_attempts`` is
reached. Delivery problems stay in this module: they are recorded on the task
and never reach appointment state.
"""

import logging
import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, Optional

from flask import current_app
from sqlalchemy import delete, func, update
from sqlalchemy.exc import SQLAlchemyError

from app.extensions import db
from app.models import NotificationStatus, NotificationTask
from app.utils.logging import mask_email

logger = logging.getLogger(__name__)

BOOKING_CONFIRMATION = "booking-confirmation"
ADMIN_NOTIFICATION = "admin-notification"
APPOINTMENT_CONFIRMED = "appointment-confirmed"
APPOINTMENT_DECLINED = "appointment-declined"
CANCELLATION_CONFIRMATION = "cancellation-confirmation"

NOTIFICATION_TYPES = (
    BOOKING_CONFIRMATION,
    ADMIN_NOTIFICATION,
    APPOINTMENT_CONFIRMED,
    APPOINTMENT_DECLINED,
    CANCELLATION_CONFIRMATION,
)

# Single-process guard: a sweep that finds this held skips its tick
_sweep_guard = threading.Lock()


def enqueue(notification_type: str, recipient: str, payload: Dict) -> NotificationTask:
    """Insert a pending task and commit. Raises on store failure."""
    task = NotificationTask(
        type=notification_type,
        recipient=recipient,
        payload=payload,
        status=NotificationStatus.PENDING.value,
        attempts=0,
    )
    try:
        db.session.add(task)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info("Notification queued: %s to %s", notification_type, mask_email(recipient))
    return task


def queue_notification(notification_type: str, recipient: str, payload: Dict) -> Optional[NotificationTask]:
    """
    Enqueue without letting a failure escape.

    Used right after a lifecycle commit: the booking or transition has already
    happened, so a failed enqueue is logged and dropped.
    """
    if not recipient:
        logger.warning("Skipping %s notification: no recipient configured", notification_type)
        return None
    try:
        return enqueue(notification_type, recipient, payload)
    except Exception:
        logger.exception(
            "Failed to queue %s notification for %s",
            notification_type,
            mask_email(recipient),
        )
        return None


class NotificationQueue:
    """Sweeps pending tasks through ``channel.send(task)``."""

    def __init__(
        self,
        channel,
        batch_size: int = 10,
        max_attempts: int = 3,
        retry_delay: timedelta = timedelta(minutes=5),
        clock: Callable[[], datetime] = datetime.now,
    ):
        self.channel = channel
        self.batch_size = batch_size
        self.max_attempts = max_attempts
        self.retry_delay = retry_delay
        self.clock = clock

    @classmethod
    def from_app(cls, app=None, channel=None, clock: Callable[[], datetime] = datetime.now):
        app = app or current_app
        config = app.config
        return cls(
            channel=channel or app.extensions["notification_channel"],
            batch_size=config.get("NOTIFICATION_BATCH_SIZE", 10),
            max_attempts=config.get("NOTIFICATION_MAX_ATTEMPTS", 3),
            retry_delay=timedelta(seconds=config.get("NOTIFICATION_RETRY_DELAY_SECONDS", 300)),
            clock=clock,
        )

    def due_tasks(self):
        now = self.clock()
        return (
            db.session.query(NotificationTask)
            .filter(
                NotificationTask.status == NotificationStatus.PENDING.value,
                (NotificationTask.next_attempt_at.is_(None))
                | (NotificationTask.next_attempt_at <= now),
            )
            .order_by(NotificationTask.created_at, NotificationTask.id)
            .limit(self.batch_size)
            .all()
        )

    def sweep(self) -> Optional[Dict]:
        """
        Process one batch of due tasks.

        Returns per-outcome counts, or None when another sweep was already
        running and this one was skipped.
        """
        if not _sweep_guard.acquire(blocking=False):
            logger.debug("Notification sweep already in progress, skipping")
            return None

        counts = {"processed": 0, "sent": 0, "retrying": 0, "failed": 0}
        try:
            tasks = self.due_tasks()
            if not tasks:
                logger.debug("No pending notifications in queue")
                return counts

            logger.info("Processing %s notifications from queue", len(tasks))
            for task in tasks:
                outcome = self.dispatch(task)
                counts["processed"] += 1
                counts[outcome] += 1

            logger.info(
                "Notification sweep complete: sent=%s retrying=%s failed=%s",
                counts["sent"],
                counts["retrying"],
                counts["failed"],
            )
            return counts

        except SQLAlchemyError:
            db.session.rollback()
            logger.exception("Error processing notification queue")
            return counts
        finally:
            _sweep_guard.release()

    def dispatch(self, task: NotificationTask) -> str:
        """Deliver one task and persist the outcome: 'sent', 'retrying' or 'failed'."""
        try:
            result = self.channel.send(task)
        except Exception as e:
            logger.exception("Channel raised while sending notification %s", task.id)
            result = {"success": False, "error": str(e)}

        now = self.clock()
        if result.get("success"):
            task.status = NotificationStatus.SENT.value
            task.sent_at = now
            task.error = None
            db.session.commit()
            logger.info("Notification sent: %s to %s", task.type, mask_email(task.recipient))
            return "sent"

        error = result.get("error") or "unknown delivery error"
        task.attempts = (task.attempts or 0) + 1
        task.error = error

        if task.attempts >= self.max_attempts:
            task.status = NotificationStatus.FAILED.value
            db.session.commit()
            logger.error(
                "Notification %s failed after %s attempts: %s",
                task.id,
                task.attempts,
                error,
            )
            return "failed"

        task.next_attempt_at = now + self.retry_delay
        db.session.commit()
        logger.warning(
            "Notification %s scheduled for retry %s/%s: %s",
            task.id,
            task.attempts,
            self.max_attempts,
            error,
        )
        return "retrying"


# --- operator recovery -----------------------------------------------------


def reset_failed(limit: Optional[int] = None) -> int:
    """Return failed tasks to pending with a fresh attempt budget."""
    stmt = update(NotificationTask).where(
        NotificationTask.status == NotificationStatus.FAILED.value
    )
    if limit is not None:
        ids = [
            row.id
            for row in db.session.query(NotificationTask.id)
            .filter(NotificationTask.status == NotificationStatus.FAILED.value)
            .order_by(NotificationTask.created_at.desc(), NotificationTask.id.desc())
            .limit(limit)
            .all()
        ]
        if not ids:
            return 0
        stmt = stmt.where(NotificationTask.id.in_(ids))

    try:
        result = db.session.execute(
            stmt.values(
                status=NotificationStatus.PENDING.value,
                attempts=0,
                error=None,
                next_attempt_at=None,
            ).execution_options(synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info("Reset %s failed notifications for retry", result.rowcount)
    return result.rowcount


def purge_old(retention_days: int = 30, now: Optional[datetime] = None) -> int:
    """Delete sent and failed tasks created before the retention window."""
    cutoff = (now or datetime.now()) - timedelta(days=retention_days)
    try:
        result = db.session.execute(
            delete(NotificationTask)
            .where(
                NotificationTask.status.in_(
                    [NotificationStatus.SENT.value, NotificationStatus.FAILED.value]
                ),
                NotificationTask.created_at < cutoff,
            )
            .execution_options(synchronize_session=False)
        )
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise

    logger.info("Purged %s old notifications from queue", result.rowcount)
    return result.rowcount


def queue_stats(now: Optional[datetime] = None) -> Dict:
    now = now or datetime.now()
    by_status = {
        status: count
        for status, count in db.session.query(
            NotificationTask.status, func.count(NotificationTask.id)
        )
        .group_by(NotificationTask.status)
        .all()
    }
    failed_recent = (
        db.session.query(func.count(NotificationTask.id))
        .filter(
            NotificationTask.status == NotificationStatus.FAILED.value,
            NotificationTask.created_at >= now - timedelta(hours=24),
        )
        .scalar()
    )
    return {
        "by_status": by_status,
        "total": sum(by_status.values()),
        "failed_last_24h": failed_recent or 0,
    }
