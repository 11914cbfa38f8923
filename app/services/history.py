"""Append-only audit trail of appointment status changes."""

from typing import List, Optional

from app.extensions import db
from app.models import AppointmentHistory, ChangedBy


def record_transition(
    session,
    appointment_id: int,
    old_status: Optional[str],
    new_status: str,
    changed_by: ChangedBy,
    notes: Optional[str] = None,
) -> AppointmentHistory:
    """Stage a history row in ``session``; the caller owns the commit."""
    entry = AppointmentHistory(
        appointment_id=appointment_id,
        old_status=old_status,
        new_status=new_status,
        changed_by=ChangedBy(changed_by).value,
        notes=notes,
    )
    session.add(entry)
    return entry


def get_history(appointment_id: int) -> List[AppointmentHistory]:
    """Oldest first."""
    return (
        db.session.query(AppointmentHistory)
        .filter(AppointmentHistory.appointment_id == appointment_id)
        .order_by(AppointmentHistory.changed_at, AppointmentHistory.id)
        .all()
    )
