"""
Appointment status state machine.

Legal edges live in one table and are checked before anything is written.
Writes use optimistic versioning: the UPDATE only matches the row if its
version is still the one we read, otherwise ConcurrentModification is raised
and the caller has to re-read.
"""

import logging
from typing import Optional

from sqlalchemy import update

from app.errors import ConcurrentModification, InvalidTransition, MissingDeclineReason
from app.models import Appointment, AppointmentStatus, ChangedBy, slot_key
from app.services import history

logger = logging.getLogger(__name__)

ALLOWED_TRANSITIONS = {
    AppointmentStatus.PENDING: frozenset(
        {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.DECLINED,
            AppointmentStatus.CANCELLED,
        }
    ),
    AppointmentStatus.CONFIRMED: frozenset(
        {AppointmentStatus.CANCELLED, AppointmentStatus.COMPLETED}
    ),
    AppointmentStatus.DECLINED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
    AppointmentStatus.COMPLETED: frozenset(),
}

TERMINAL_STATUSES = frozenset(
    status for status, targets in ALLOWED_TRANSITIONS.items() if not targets
)


def coerce_status(value) -> AppointmentStatus:
    try:
        return AppointmentStatus(value)
    except ValueError:
        raise InvalidTransition(f"Unknown appointment status: {value!r}") from None


def is_live(status) -> bool:
    return coerce_status(status) in (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)


def validate_transition(current, new, decline_reason: Optional[str] = None) -> AppointmentStatus:
    """Raise unless ``current -> new`` is a legal edge with everything it needs."""
    current = coerce_status(current)
    new = coerce_status(new)

    if new not in ALLOWED_TRANSITIONS[current]:
        raise InvalidTransition(
            f"Cannot change status from {current.value} to {new.value}.",
            current_status=current.value,
            requested_status=new.value,
        )

    if new is AppointmentStatus.DECLINED and not (decline_reason or "").strip():
        raise MissingDeclineReason()

    return new


def apply_transition(
    session,
    appointment: Appointment,
    new_status,
    changed_by: ChangedBy,
    notes: Optional[str] = None,
    decline_reason: Optional[str] = None,
) -> int:
    """
    Validate and write one status change plus its history row into ``session``.

    ``appointment`` carries the state observed by the caller; its version is
    the compare-and-swap guard. Returns the new version. Nothing is committed.
    """
    old_status = coerce_status(appointment.status)
    new_status = validate_transition(old_status, new_status, decline_reason)
    observed_version = appointment.version

    values = {
        "status": new_status.value,
        "version": Appointment.version + 1,
        "live_slot": (
            slot_key(appointment.appointment_date, appointment.appointment_time)
            if is_live(new_status)
            else None
        ),
    }
    if new_status is AppointmentStatus.DECLINED:
        values["decline_reason"] = decline_reason.strip()

    result = session.execute(
        update(Appointment)
        .where(Appointment.id == appointment.id, Appointment.version == observed_version)
        .values(**values)
        .execution_options(synchronize_session=False)
    )
    if result.rowcount == 0:
        logger.warning(
            "Version conflict on appointment %s (expected version %s)",
            appointment.id,
            observed_version,
        )
        raise ConcurrentModification(appointment_id=appointment.id)

    history.record_transition(
        session,
        appointment.id,
        old_status.value,
        new_status.value,
        changed_by,
        notes if notes is not None else decline_reason,
    )
    return observed_version + 1
