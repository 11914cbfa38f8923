"""
Appointment lifecycle: reservation, staff transitions, client cancellation
and the read side used by the staff screens.

Reservation serializes competing requests for the same slot on a row lock
(SELECT ... FOR UPDATE over the slot's live rows) and the unique
``live_slot`` index backs it up. Status changes go through
app.services.transitions, which uses optimistic versioning. Notifications are
queued only after the owning transaction has committed.
"""

import logging
import secrets
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional

from flask import current_app
from sqlalchemy import func
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError

from app.errors import (
    AlreadyCancelled,
    AppointmentNotFound,
    BookingError,
    CannotCancel,
    SlotAlreadyBooked,
    SlotUnavailable,
)
from app.extensions import db
from app.models import (
    LIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    ChangedBy,
    slot_key,
)
from app.services import availability, history, notification_queue
from app.services.transitions import apply_transition, coerce_status
from app.utils.logging import mask_email

logger = logging.getLogger(__name__)


@dataclass
class BookingDetails:
    """Client-supplied fields, already validated by the caller."""

    client_name: str
    client_email: str
    client_phone: str
    service_type: str
    notes: Optional[str] = None


def generate_cancellation_token() -> str:
    return secrets.token_urlsafe(32)


def _admin_email() -> Optional[str]:
    return current_app.config.get("ADMIN_EMAIL")


# --- reservation -----------------------------------------------------------

# MySQL lock wait timeout and deadlock; the losing transaction is safe to re-run
LOCK_CONFLICT_ERRORS = (1205, 1213)
RESERVATION_ATTEMPTS = 3


def _is_lock_conflict(error: OperationalError) -> bool:
    args = getattr(error.orig, "args", None) or ()
    return bool(args) and args[0] in LOCK_CONFLICT_ERRORS


def _lock_slot(session, appointment_date: date, appointment_time: time):
    """Id of the live appointment holding the slot, read under a row lock."""
    return (
        session.query(Appointment.id)
        .filter(
            Appointment.appointment_date == appointment_date,
            Appointment.appointment_time == appointment_time,
            Appointment.status.in_(LIVE_STATUSES),
        )
        .with_for_update()
        .first()
    )


def _insert_reservation(session, appointment_date: date, appointment_time: time, details: BookingDetails) -> Appointment:
    """One reservation transaction, committed on success."""
    if _lock_slot(session, appointment_date, appointment_time) is not None:
        raise SlotAlreadyBooked()

    appointment = Appointment(
        client_name=details.client_name,
        client_email=details.client_email,
        client_phone=details.client_phone,
        appointment_date=appointment_date,
        appointment_time=appointment_time,
        service_type=details.service_type,
        notes=details.notes,
        status=AppointmentStatus.PENDING.value,
        cancellation_token=generate_cancellation_token(),
        version=1,
        live_slot=slot_key(appointment_date, appointment_time),
    )
    session.add(appointment)
    try:
        session.flush()
    except IntegrityError:
        # Another transaction took the slot between our check and insert
        raise SlotAlreadyBooked() from None

    history.record_transition(
        session,
        appointment.id,
        None,
        AppointmentStatus.PENDING.value,
        ChangedBy.CLIENT,
        "Appointment created",
    )
    session.commit()
    return appointment


def reserve_slot(
    appointment_date: date,
    appointment_time: time,
    details: BookingDetails,
    now: Optional[datetime] = None,
) -> Appointment:
    """
    Create a pending appointment for (date, time) or raise SlotAlreadyBooked.

    The checks up front (not in the past, outside the minimum notice, inside
    the booking window, offered by the schedule) are advisory; whether the
    slot is free is decided only under the lock below. A transaction that
    loses a lock conflict is rolled back and re-run, so it ends up seeing the
    winner's row.
    """
    appointment_time = appointment_time.replace(second=0, microsecond=0)
    reason = availability.booking_rejection(appointment_date, appointment_time, now=now)
    if reason:
        raise SlotUnavailable(
            date=appointment_date.isoformat(),
            time=appointment_time.strftime("%H:%M"),
            reason=reason,
        )

    session = db.session
    for attempt in range(1, RESERVATION_ATTEMPTS + 1):
        try:
            appointment = _insert_reservation(session, appointment_date, appointment_time, details)
            break
        except OperationalError as e:
            session.rollback()
            if not _is_lock_conflict(e) or attempt == RESERVATION_ATTEMPTS:
                raise
            logger.warning(
                "Lock conflict reserving %s %s, retrying (%s/%s)",
                appointment_date.isoformat(),
                appointment_time.strftime("%H:%M"),
                attempt,
                RESERVATION_ATTEMPTS,
            )
        except (BookingError, SQLAlchemyError):
            session.rollback()
            raise

    logger.info(
        "Appointment created: %s for %s at %s %s",
        appointment.id,
        mask_email(appointment.client_email),
        appointment_date.isoformat(),
        appointment_time.strftime("%H:%M"),
    )

    payload = appointment.to_dict()
    notification_queue.queue_notification(
        notification_queue.BOOKING_CONFIRMATION, appointment.client_email, payload
    )
    notification_queue.queue_notification(
        notification_queue.ADMIN_NOTIFICATION, _admin_email(), payload
    )
    return appointment


# --- status transitions ----------------------------------------------------

_TRANSITION_NOTIFICATIONS = {
    AppointmentStatus.CONFIRMED: notification_queue.APPOINTMENT_CONFIRMED,
    AppointmentStatus.DECLINED: notification_queue.APPOINTMENT_DECLINED,
    AppointmentStatus.CANCELLED: notification_queue.CANCELLATION_CONFIRMATION,
}


def _locked_query():
    return db.session.query(Appointment).populate_existing().with_for_update()


def _notify_transition(appointment: Appointment, new_status: AppointmentStatus) -> None:
    notification_type = _TRANSITION_NOTIFICATIONS.get(new_status)
    if notification_type:
        notification_queue.queue_notification(
            notification_type, appointment.client_email, appointment.to_dict()
        )


def _commit_transition(
    appointment: Appointment,
    new_status: AppointmentStatus,
    changed_by: ChangedBy,
    notes: Optional[str],
    decline_reason: Optional[str],
) -> Appointment:
    old_status = appointment.status
    session = db.session
    try:
        apply_transition(
            session,
            appointment,
            new_status,
            changed_by,
            notes=notes,
            decline_reason=decline_reason,
        )
        session.commit()
    except (BookingError, SQLAlchemyError):
        session.rollback()
        raise

    # commit expired the instance; this reloads the row as written
    session.refresh(appointment)
    logger.info(
        "Appointment %s status changed: %s -> %s by %s",
        appointment.id,
        old_status,
        appointment.status,
        ChangedBy(changed_by).value,
    )
    _notify_transition(appointment, new_status)
    return appointment


def transition(
    appointment_id: int,
    new_status,
    reason: Optional[str] = None,
    changed_by: ChangedBy = ChangedBy.ADMIN,
    notes: Optional[str] = None,
) -> Appointment:
    """Staff or system status change on an appointment addressed by id."""
    new_status = coerce_status(new_status)
    try:
        appointment = _locked_query().filter(Appointment.id == appointment_id).first()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    if appointment is None:
        db.session.rollback()
        raise AppointmentNotFound(appointment_id=appointment_id)

    return _commit_transition(appointment, new_status, changed_by, notes, reason)


def cancel(token: str) -> Appointment:
    """Client cancellation; possession of the token is the authorization."""
    try:
        appointment = _locked_query().filter(Appointment.cancellation_token == token).first()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    if appointment is None:
        db.session.rollback()
        raise AppointmentNotFound()

    status = coerce_status(appointment.status)
    if status is AppointmentStatus.CANCELLED:
        db.session.rollback()
        raise AlreadyCancelled()
    if status not in (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED):
        db.session.rollback()
        raise CannotCancel(status=status.value)

    return _commit_transition(
        appointment,
        AppointmentStatus.CANCELLED,
        ChangedBy.CLIENT,
        "Cancelled by client",
        None,
    )


def auto_complete_past_appointments(now: Optional[datetime] = None) -> int:
    """
    Move confirmed appointments whose slot has ended to completed.

    ``now`` defaults to the business-zone clock, not the host clock.
    """
    now = now or availability.business_now()
    duration = timedelta(minutes=availability.slot_duration())

    candidates = (
        db.session.query(Appointment.id, Appointment.appointment_date, Appointment.appointment_time)
        .filter(
            Appointment.status == AppointmentStatus.CONFIRMED.value,
            Appointment.appointment_date <= now.date(),
        )
        .all()
    )

    completed = 0
    for row in candidates:
        if datetime.combine(row.appointment_date, row.appointment_time) + duration > now:
            continue
        try:
            transition(
                row.id,
                AppointmentStatus.COMPLETED,
                changed_by=ChangedBy.SYSTEM,
                notes="Completed automatically after the appointment time",
            )
            completed += 1
        except BookingError as e:
            # Staff changed it in the meantime
            logger.info("Skipping auto-complete of appointment %s: %s", row.id, e.code)
    return completed


def delete_appointment(appointment_id: int) -> None:
    """Hard delete for erasure requests; history goes with it."""
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        raise AppointmentNotFound(appointment_id=appointment_id)
    try:
        db.session.delete(appointment)
        db.session.commit()
    except SQLAlchemyError:
        db.session.rollback()
        raise
    logger.info("Appointment %s deleted with its history", appointment_id)


# --- queries ---------------------------------------------------------------


def get_appointment(appointment_id: int) -> Appointment:
    appointment = db.session.get(Appointment, appointment_id)
    if appointment is None:
        raise AppointmentNotFound(appointment_id=appointment_id)
    return appointment


def get_appointment_by_token(token: str) -> Appointment:
    appointment = (
        db.session.query(Appointment).filter(Appointment.cancellation_token == token).first()
    )
    if appointment is None:
        raise AppointmentNotFound()
    return appointment


def get_appointments_by_email(email: str) -> List[Appointment]:
    return (
        db.session.query(Appointment)
        .filter(Appointment.client_email == email)
        .order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
        .all()
    )


def _filtered(query, status=None, on_date=None, start_date=None, end_date=None):
    if status:
        query = query.filter(Appointment.status == AppointmentStatus(status).value)
    if on_date:
        query = query.filter(Appointment.appointment_date == on_date)
    if start_date:
        query = query.filter(Appointment.appointment_date >= start_date)
    if end_date:
        query = query.filter(Appointment.appointment_date <= end_date)
    return query


def list_appointments(
    status=None,
    on_date: Optional[date] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    limit: Optional[int] = None,
    offset: Optional[int] = None,
) -> List[Appointment]:
    query = _filtered(db.session.query(Appointment), status, on_date, start_date, end_date)
    query = query.order_by(
        Appointment.appointment_date.desc(), Appointment.appointment_time.desc()
    )
    if limit is not None:
        query = query.limit(limit)
    if offset:
        query = query.offset(offset)
    return query.all()


def count_appointments(
    status=None,
    on_date: Optional[date] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
) -> int:
    query = _filtered(
        db.session.query(func.count(Appointment.id)), status, on_date, start_date, end_date
    )
    return query.scalar() or 0


def appointment_stats(today: Optional[date] = None) -> Dict:
    today = today or availability.business_today()
    by_status = {
        status: count
        for status, count in db.session.query(Appointment.status, func.count(Appointment.id))
        .group_by(Appointment.status)
        .all()
    }
    live = db.session.query(func.count(Appointment.id)).filter(
        Appointment.status.in_(LIVE_STATUSES)
    )
    return {
        "by_status": by_status,
        "today": live.filter(Appointment.appointment_date == today).scalar() or 0,
        "upcoming": live.filter(Appointment.appointment_date > today).scalar() or 0,
    }
