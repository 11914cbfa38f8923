from dataclasses import replace
from datetime import datetime, time, timedelta

import pytest

from app.models import BlockedDate, WeeklyScheduleEntry
from app.services import availability
from app.services.appointments import reserve_slot
from conftest import next_weekday


@pytest.mark.availability
class TestGenerateDaySlots:
    """Pure slot generation."""

    def test_full_working_day(self):
        slots = availability.generate_day_slots(time(9, 0), time(17, 0), 60)

        assert len(slots) == 8
        assert slots[0] == time(9, 0)
        assert slots[-1] == time(16, 0)
        assert slots == [time(h, 0) for h in range(9, 17)]

    def test_window_shorter_than_duration(self):
        assert availability.generate_day_slots(time(9, 0), time(9, 30), 60) == []

    def test_start_equals_end(self):
        assert availability.generate_day_slots(time(9, 0), time(9, 0), 30) == []

    def test_partial_final_slot_is_dropped(self):
        slots = availability.generate_day_slots(time(9, 0), time(11, 30), 60)

        assert slots == [time(9, 0), time(10, 0)]

    def test_shorter_duration(self):
        slots = availability.generate_day_slots(time(9, 0), time(10, 30), 30)

        assert slots == [time(9, 0), time(9, 30), time(10, 0)]

    def test_non_positive_duration_rejected(self):
        with pytest.raises(ValueError):
            availability.generate_day_slots(time(9, 0), time(17, 0), 0)


@pytest.mark.availability
class TestAvailableSlots:
    """Slots derived from the schedule, blocked dates and live appointments."""

    def test_working_day_has_all_slots(self, schedule, monday):
        slots = availability.available_slots(monday)

        assert len(slots) == 8
        assert slots[0] == time(9, 0)

    def test_weekend_is_closed(self, schedule):
        sunday = next_weekday(6)

        assert availability.available_slots(sunday) == []
        assert availability.day_slots(sunday) == []

    def test_blocked_date_has_no_slots(self, blocked_date):
        assert availability.is_date_blocked(blocked_date)
        assert availability.available_slots(blocked_date) == []

    def test_deleted_block_no_longer_applies(self, blocked_date, schedule):
        block = schedule.session.query(BlockedDate).first()
        block.deleted_at = datetime.now()
        schedule.session.commit()

        assert not availability.is_date_blocked(blocked_date)
        assert len(availability.available_slots(blocked_date)) == 8

    def test_missing_schedule_row_means_closed(self, db, monday):
        assert availability.available_slots(monday) == []

    def test_booked_slot_is_excluded(self, schedule, monday, details):
        reserve_slot(monday, time(10, 0), details)

        slots = availability.available_slots(monday)

        assert time(10, 0) not in slots
        assert len(slots) == 7
        assert not availability.is_slot_available(monday, time(10, 0))
        assert availability.is_slot_available(monday, time(11, 0))
        # still an offered slot, just taken
        assert availability.is_bookable_slot(monday, time(10, 0))

    def test_custom_hours(self, schedule, monday):
        entry = (
            schedule.session.query(WeeklyScheduleEntry)
            .filter(WeeklyScheduleEntry.day_of_week == 1)
            .one()
        )
        entry.start_time = time(10, 0)
        entry.end_time = time(12, 30)
        schedule.session.commit()

        assert availability.available_slots(monday) == [time(10, 0), time(11, 0)]


@pytest.mark.availability
class TestAvailabilityWindow:
    def test_available_dates_skip_closed_days(self, schedule, monday):
        dates = availability.available_dates(days=7, start=monday)

        assert len(dates) == 5
        assert dates[0]["date"] == monday.isoformat()
        assert dates[0]["day_of_week"] == 1
        assert dates[0]["available_slots"][0] == "09:00"

    def test_fully_booked_day_is_dropped(self, schedule, monday, details):
        for hour in range(9, 17):
            reserve_slot(
                monday,
                time(hour, 0),
                replace(details, client_email=f"client{hour}@example.com"),
            )

        dates = availability.available_dates(days=1, start=monday)

        assert dates == []

    def test_next_available_slot(self, schedule, monday, details):
        reserve_slot(monday, time(9, 0), details)

        day, slot = availability.next_available_slot(days=7, start=monday)

        assert day == monday
        assert slot == time(10, 0)

    def test_next_available_slot_none_when_closed(self, schedule):
        saturday = next_weekday(5)

        assert availability.next_available_slot(days=2, start=saturday) is None

    def test_stats(self, schedule, monday, details):
        reserve_slot(monday, time(9, 0), details)

        stats = availability.availability_stats(days=7, start=monday)

        assert stats["total_slots"] == 40
        assert stats["booked_slots"] == 1
        assert stats["available_slots"] == 39
        assert stats["utilization_rate"] == 2.5

    def test_stats_empty_window(self, schedule):
        saturday = next_weekday(5)

        stats = availability.availability_stats(days=2, start=saturday)

        assert stats["total_slots"] == 0
        assert stats["utilization_rate"] == 0.0

    def test_window_start_defaults_to_today(self, schedule, monday):
        dates = availability.available_dates(days=14)

        assert monday.isoformat() in {d["date"] for d in dates}


@pytest.mark.availability
class TestBookingRejection:
    """Whether a slot can be requested at a given moment."""

    def test_open_slot_well_ahead(self, schedule, monday):
        now = datetime.combine(monday - timedelta(days=3), time(12, 0))

        assert availability.booking_rejection(monday, time(10, 0), now=now) is None

    def test_reasons(self, schedule, monday):
        ten = datetime.combine(monday, time(10, 0))

        assert availability.booking_rejection(monday, time(10, 0), now=ten + timedelta(minutes=1)) == "in_past"
        assert availability.booking_rejection(monday, time(10, 0), now=ten - timedelta(hours=2)) == "minimum_notice"
        assert (
            availability.booking_rejection(monday, time(10, 0), now=ten - timedelta(days=90))
            == "beyond_window"
        )
        assert (
            availability.booking_rejection(monday, time(10, 30), now=ten - timedelta(days=3))
            == "not_offered"
        )

    def test_notice_follows_config(self, app, schedule, monday):
        app.config["MINIMUM_NOTICE_HOURS"] = 2
        now = datetime.combine(monday, time(8, 0))

        assert availability.booking_rejection(monday, time(10, 0), now=now) is None
        assert availability.booking_rejection(monday, time(9, 0), now=now) == "minimum_notice"

    def test_next_available_slot_respects_notice(self, schedule, monday):
        now = datetime.combine(monday, time(9, 30)) - timedelta(hours=24)

        day, slot = availability.next_available_slot(days=7, start=monday, now=now)

        assert (day, slot) == (monday, time(10, 0))
