"""
Availability calculator.

Derives bookable slots from the weekly schedule, blocked dates and the live
appointments already on the books. Everything here is read-only and advisory:
the authoritative occupancy check happens inside the reservation transaction
(see app.services.appointments.reserve_slot).
"""

import logging
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Tuple

from flask import current_app

from app.extensions import db
from app.models import LIVE_STATUSES, Appointment, BlockedDate, WeeklyScheduleEntry
from app.utils.timezone import (
    DEFAULT_TIMEZONE,
    date_range,
    format_time,
    local_now,
    local_today,
    weekday_index,
)

logger = logging.getLogger(__name__)

DEFAULT_SLOT_DURATION = 60
DEFAULT_BOOKING_WINDOW_DAYS = 60
DEFAULT_MINIMUM_NOTICE_HOURS = 24


def _setting(name, default):
    try:
        return current_app.config.get(name, default)
    except RuntimeError:
        # Outside an application context
        return default


def slot_duration() -> int:
    return int(_setting("SLOT_DURATION_MINUTES", DEFAULT_SLOT_DURATION))


def booking_window_days() -> int:
    return int(_setting("BOOKING_WINDOW_DAYS", DEFAULT_BOOKING_WINDOW_DAYS))


def minimum_notice_hours() -> int:
    return int(_setting("MINIMUM_NOTICE_HOURS", DEFAULT_MINIMUM_NOTICE_HOURS))


def business_today() -> date:
    return local_today(_setting("TIMEZONE", DEFAULT_TIMEZONE))


def business_now() -> datetime:
    """Naive wall-clock time in the business zone; appointment dates and times use the same clock."""
    return local_now(_setting("TIMEZONE", DEFAULT_TIMEZONE))


def generate_day_slots(start: time, end: time, duration_minutes: int) -> List[time]:
    """
    Slot start times in [start, end) stepped by duration_minutes.

    A slot is only included when it fits entirely before ``end``, so a window
    that is not a multiple of the duration loses its final partial slot and
    ``start == end`` yields nothing.
    """
    if duration_minutes <= 0:
        raise ValueError("duration_minutes must be positive")

    anchor = date(2000, 1, 1)
    current = datetime.combine(anchor, start)
    stop = datetime.combine(anchor, end)
    step = timedelta(minutes=duration_minutes)

    slots = []
    while current + step <= stop:
        slots.append(current.time())
        current += step
    return slots


# --- schedule and blocked dates -------------------------------------------


def get_weekly_schedule() -> List[WeeklyScheduleEntry]:
    return (
        db.session.query(WeeklyScheduleEntry)
        .order_by(WeeklyScheduleEntry.day_of_week)
        .all()
    )


def get_schedule_for_day(day_of_week: int) -> Optional[WeeklyScheduleEntry]:
    return (
        db.session.query(WeeklyScheduleEntry)
        .filter(WeeklyScheduleEntry.day_of_week == day_of_week)
        .first()
    )


def get_blocked_dates() -> List[BlockedDate]:
    return (
        db.session.query(BlockedDate)
        .filter(BlockedDate.deleted_at.is_(None))
        .order_by(BlockedDate.blocked_date)
        .all()
    )


def is_date_blocked(day: date) -> bool:
    return (
        db.session.query(BlockedDate.id)
        .filter(BlockedDate.blocked_date == day, BlockedDate.deleted_at.is_(None))
        .first()
        is not None
    )


def get_booked_times(day: date) -> List[time]:
    """Times on ``day`` held by pending or confirmed appointments."""
    rows = (
        db.session.query(Appointment.appointment_time)
        .filter(
            Appointment.appointment_date == day,
            Appointment.status.in_(LIVE_STATUSES),
        )
        .order_by(Appointment.appointment_time)
        .all()
    )
    return [row.appointment_time.replace(second=0, microsecond=0) for row in rows]


# --- slot computation ------------------------------------------------------


def day_slots(day: date) -> List[time]:
    """Every slot the schedule offers on ``day``, ignoring occupancy."""
    if is_date_blocked(day):
        return []

    entry = get_schedule_for_day(weekday_index(day))
    if not entry or not entry.is_working_day or not entry.start_time or not entry.end_time:
        return []

    return generate_day_slots(entry.start_time, entry.end_time, slot_duration())


def available_slots(day: date) -> List[time]:
    all_slots = day_slots(day)
    if not all_slots:
        return []

    booked = set(get_booked_times(day))
    slots = [slot for slot in all_slots if slot not in booked]

    logger.debug(
        "Available slots for %s: total=%s booked=%s available=%s",
        day.isoformat(),
        len(all_slots),
        len(booked),
        len(slots),
    )
    return slots


def available_dates(days: Optional[int] = None, start: Optional[date] = None) -> List[Dict]:
    """Dates in [start, start + days) that still have at least one free slot."""
    days = booking_window_days() if days is None else days
    start = start or business_today()

    results = []
    for day in date_range(start, days):
        slots = available_slots(day)
        if slots:
            results.append(
                {
                    "date": day.isoformat(),
                    "day_of_week": weekday_index(day),
                    "available_slots": [format_time(slot) for slot in slots],
                }
            )
    return results


def is_slot_available(day: date, slot: time) -> bool:
    return slot.replace(second=0, microsecond=0) in available_slots(day)


def is_bookable_slot(day: date, slot: time) -> bool:
    """True when the schedule offers ``slot`` on ``day``, whether or not it is taken."""
    return slot.replace(second=0, microsecond=0) in day_slots(day)


def booking_rejection(day: date, slot: time, now: Optional[datetime] = None) -> Optional[str]:
    """
    Why ``slot`` on ``day`` cannot be requested at ``now``, or None if it can.

    Occupancy is not considered. Reasons: ``in_past``, ``minimum_notice``
    (closer than MINIMUM_NOTICE_HOURS), ``beyond_window`` (more than
    BOOKING_WINDOW_DAYS ahead) and ``not_offered`` (the schedule has no such
    slot that day).
    """
    now = now or business_now()
    starts_at = datetime.combine(day, slot.replace(second=0, microsecond=0))

    if starts_at <= now:
        return "in_past"
    if starts_at < now + timedelta(hours=minimum_notice_hours()):
        return "minimum_notice"
    if day > now.date() + timedelta(days=booking_window_days()):
        return "beyond_window"
    if not is_bookable_slot(day, slot):
        return "not_offered"
    return None


def next_available_slot(
    days: Optional[int] = None,
    start: Optional[date] = None,
    now: Optional[datetime] = None,
) -> Optional[Tuple[date, time]]:
    """Earliest free slot that can still be requested at ``now``."""
    days = booking_window_days() if days is None else days
    now = now or business_now()
    start = start or now.date()
    earliest = now + timedelta(hours=minimum_notice_hours())

    for day in date_range(start, days):
        for slot in available_slots(day):
            if datetime.combine(day, slot) >= earliest:
                return day, slot
    return None


def availability_stats(days: Optional[int] = None, start: Optional[date] = None) -> Dict:
    days = booking_window_days() if days is None else days
    start = start or business_today()

    total = 0
    booked = 0
    for day in date_range(start, days):
        all_slots = day_slots(day)
        if not all_slots:
            continue
        taken = set(get_booked_times(day)) & set(all_slots)
        total += len(all_slots)
        booked += len(taken)

    return {
        "total_slots": total,
        "booked_slots": booked,
        "available_slots": total - booked,
        "utilization_rate": round(booked / total * 100, 2) if total else 0.0,
    }
