import time as host_clock
from datetime import datetime, time, timedelta

import pytest
from sqlalchemy.orm import Session

from app.errors import (
    AppointmentNotFound,
    ConcurrentModification,
    InvalidTransition,
    MissingDeclineReason,
)
from app.models import Appointment, AppointmentStatus, ChangedBy, NotificationTask
from app.services import appointments, availability, history, notification_queue
from app.services.transitions import (
    ALLOWED_TRANSITIONS,
    TERMINAL_STATUSES,
    apply_transition,
    validate_transition,
)


def _notifications(session, notification_type=None):
    query = session.query(NotificationTask)
    if notification_type:
        query = query.filter(NotificationTask.type == notification_type)
    return query.all()


@pytest.fixture
def pending(schedule, monday, ten_am, details):
    return appointments.reserve_slot(monday, ten_am, details)


@pytest.mark.transitions
class TestTransitionTable:
    def test_terminal_statuses(self):
        assert TERMINAL_STATUSES == {
            AppointmentStatus.DECLINED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.COMPLETED,
        }

    def test_legal_edges(self):
        assert ALLOWED_TRANSITIONS[AppointmentStatus.PENDING] == {
            AppointmentStatus.CONFIRMED,
            AppointmentStatus.DECLINED,
            AppointmentStatus.CANCELLED,
        }
        assert ALLOWED_TRANSITIONS[AppointmentStatus.CONFIRMED] == {
            AppointmentStatus.CANCELLED,
            AppointmentStatus.COMPLETED,
        }

    @pytest.mark.parametrize(
        "current,new",
        [
            ("pending", "completed"),
            ("pending", "pending"),
            ("confirmed", "pending"),
            ("confirmed", "declined"),
            ("declined", "confirmed"),
            ("cancelled", "pending"),
            ("completed", "cancelled"),
        ],
    )
    def test_illegal_edges_rejected(self, current, new):
        with pytest.raises(InvalidTransition):
            validate_transition(current, new)

    def test_unknown_status_rejected(self):
        with pytest.raises(InvalidTransition):
            validate_transition("pending", "archived")

    def test_decline_needs_non_blank_reason(self):
        with pytest.raises(MissingDeclineReason):
            validate_transition("pending", "declined", "   ")
        assert validate_transition("pending", "declined", "No staff") is AppointmentStatus.DECLINED


@pytest.mark.transitions
class TestTransition:
    """Staff status changes through the service layer."""

    def test_confirm(self, pending, schedule):
        appointment = appointments.transition(pending.id, "confirmed")

        assert appointment.status == "confirmed"
        assert appointment.version == 2
        confirmed = _notifications(schedule.session, notification_queue.APPOINTMENT_CONFIRMED)
        assert len(confirmed) == 1
        assert confirmed[0].recipient == "maria@example.com"

    def test_illegal_transition_leaves_appointment_unchanged(self, pending, schedule):
        with pytest.raises(InvalidTransition):
            appointments.transition(pending.id, "completed")

        appointment = schedule.session.get(Appointment, pending.id)
        schedule.session.refresh(appointment)
        assert appointment.status == "pending"
        assert appointment.version == 1
        assert len(history.get_history(pending.id)) == 1

    def test_decline_without_reason_is_rejected_before_any_write(self, pending, schedule):
        queued_before = len(_notifications(schedule.session))

        with pytest.raises(MissingDeclineReason):
            appointments.transition(pending.id, "declined")

        appointment = schedule.session.get(Appointment, pending.id)
        schedule.session.refresh(appointment)
        assert appointment.status == "pending"
        assert appointment.version == 1
        assert appointment.decline_reason is None
        assert len(_notifications(schedule.session)) == queued_before

    def test_decline_with_reason(self, pending, schedule):
        queued_before = len(_notifications(schedule.session))

        appointment = appointments.transition(
            pending.id, "declined", reason="  Doctor unavailable  "
        )

        assert appointment.status == "declined"
        assert appointment.decline_reason == "Doctor unavailable"
        assert appointment.version == 2
        assert appointment.live_slot is None

        entries = history.get_history(pending.id)
        assert (entries[-1].old_status, entries[-1].new_status) == ("pending", "declined")
        assert entries[-1].changed_by == "admin"

        queued = _notifications(schedule.session)
        assert len(queued) == queued_before + 1
        assert queued[-1].type == notification_queue.APPOINTMENT_DECLINED
        assert queued[-1].recipient == "maria@example.com"
        assert queued[-1].payload["decline_reason"] == "Doctor unavailable"

    def test_staff_cancel_notifies_client(self, pending, schedule):
        appointments.transition(pending.id, "cancelled", notes="Client phoned in")

        cancelled = _notifications(schedule.session, notification_queue.CANCELLATION_CONFIRMATION)
        assert len(cancelled) == 1
        assert history.get_history(pending.id)[-1].notes == "Client phoned in"

    def test_complete_sends_no_notification(self, pending, schedule):
        appointments.transition(pending.id, "confirmed")
        before = len(_notifications(schedule.session))

        appointment = appointments.transition(pending.id, "completed")

        assert appointment.status == "completed"
        assert appointment.version == 3
        assert len(_notifications(schedule.session)) == before

    def test_unknown_appointment(self, schedule):
        with pytest.raises(AppointmentNotFound):
            appointments.transition(999, "confirmed")

    def test_history_tracks_current_status(self, pending, schedule):
        appointments.transition(pending.id, "confirmed")
        appointments.transition(pending.id, "cancelled")

        appointment = appointments.get_appointment(pending.id)
        entries = history.get_history(pending.id)

        assert [e.new_status for e in entries] == ["pending", "confirmed", "cancelled"]
        assert entries[-1].new_status == appointment.status
        assert appointment.version == 3


@pytest.mark.transitions
class TestConcurrentTransitions:
    def test_stale_version_is_rejected(self, pending, schedule):
        # A second staff member reads the appointment at version 1
        other = Session(schedule.engine)
        try:
            stale = other.get(Appointment, pending.id)
            assert stale.version == 1

            winner = appointments.transition(pending.id, "confirmed")
            assert winner.version == 2

            with pytest.raises(ConcurrentModification):
                apply_transition(other, stale, AppointmentStatus.DECLINED, ChangedBy.ADMIN, decline_reason="Busy")
            other.rollback()
        finally:
            other.close()

        appointment = appointments.get_appointment(pending.id)
        schedule.session.refresh(appointment)
        assert appointment.status == "confirmed"
        assert appointment.version == 2
        assert [e.new_status for e in history.get_history(pending.id)] == ["pending", "confirmed"]

    def test_conflict_maps_to_error_code(self, pending, schedule):
        other = Session(schedule.engine)
        try:
            stale = other.get(Appointment, pending.id)
            appointments.transition(pending.id, "cancelled")

            with pytest.raises(ConcurrentModification) as exc_info:
                apply_transition(other, stale, "confirmed", ChangedBy.ADMIN)
            assert exc_info.value.code == "CONCURRENT_MODIFICATION"
            assert exc_info.value.status_code == 409
        finally:
            other.rollback()
            other.close()


@pytest.mark.transitions
class TestAutoComplete:
    def _confirmed(self, day, hour, details):
        appointment = appointments.reserve_slot(day, time(hour, 0), details)
        return appointments.transition(appointment.id, "confirmed")

    def test_completes_only_finished_confirmed_appointments(self, schedule, monday, details, other_details):
        finished = self._confirmed(monday, 9, details)
        running = self._confirmed(monday, 10, other_details)
        still_pending = appointments.reserve_slot(monday, time(11, 0), details)

        now = datetime.combine(monday, time(10, 30))
        completed = appointments.auto_complete_past_appointments(now=now)

        assert completed == 1
        assert appointments.get_appointment(finished.id).status == "completed"
        assert appointments.get_appointment(running.id).status == "confirmed"
        assert appointments.get_appointment(still_pending.id).status == "pending"

        last = history.get_history(finished.id)[-1]
        assert last.changed_by == "system"
        assert last.new_status == "completed"

    def test_nothing_to_complete(self, schedule, monday, details):
        self._confirmed(monday, 15, details)

        now = datetime.combine(monday, time(9, 0)) - timedelta(days=1)

        assert appointments.auto_complete_past_appointments(now=now) == 0


@pytest.fixture
def host_clock_ahead(monkeypatch):
    """Run the host clock in a zone well ahead of the business zone."""
    if not hasattr(host_clock, "tzset"):
        pytest.skip("time.tzset is not available on this platform")
    monkeypatch.setenv("TZ", "Pacific/Kiritimati")
    host_clock.tzset()
    yield
    monkeypatch.undo()
    host_clock.tzset()


@pytest.mark.transitions
def test_auto_complete_uses_business_clock(schedule, host_clock_ahead):
    starts_at = availability.business_now() + timedelta(hours=1)
    appointment = Appointment(
        client_name="Maria Papadopoulou",
        client_email="maria@example.com",
        client_phone="+30 210 000 0000",
        appointment_date=starts_at.date(),
        appointment_time=starts_at.time().replace(second=0, microsecond=0),
        service_type="Consultation",
        status="confirmed",
        cancellation_token="business-clock-token",
        version=2,
    )
    schedule.session.add(appointment)
    schedule.session.commit()

    # the host clock already reads many hours past the appointment's end
    assert datetime.now() > starts_at + timedelta(hours=2)

    assert appointments.auto_complete_past_appointments() == 0
    assert appointments.get_appointment(appointment.id).status == "confirmed"
