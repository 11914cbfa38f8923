"""
Pytest configuration and shared fixtures for the appointment booking tests.

Every test gets its own Flask app bound to a throwaway SQLite file, so tests
that use real threads against the store cannot see each other's rows.
"""

import os
import sys
from datetime import date, time, timedelta

import pytest
from flask import Flask

os.environ["FLASK_ENV"] = "testing"
os.environ["TESTING"] = "True"

from app.config import is_production_database  # noqa: E402
from app.extensions import db as database  # noqa: E402
from app.models import Base, BlockedDate  # noqa: E402
from app.services.appointments import BookingDetails  # noqa: E402
from init_db import seed_default_schedule  # noqa: E402
from main import create_app  # noqa: E402


class FakeChannel:
    """Records every task it is asked to send; ``fail`` makes sends report failure."""

    def __init__(self):
        self.sent = []
        self.fail = False
        self.raise_error = None

    def send(self, task):
        self.sent.append((task.type, task.recipient, dict(task.payload or {})))
        if self.raise_error is not None:
            raise self.raise_error
        if self.fail:
            return {"success": False, "error": "simulated delivery failure"}
        return {"success": True, "message": "sent"}

    def types(self):
        return [sent[0] for sent in self.sent]


def next_weekday(weekday, start=None):
    """Next date strictly after ``start`` with Python weekday ``weekday`` (Monday=0)."""
    start = start or date.today()
    days_ahead = (weekday - start.weekday()) % 7 or 7
    return start + timedelta(days=days_ahead)


def bookable_weekday(weekday):
    """Next ``weekday`` at least three days out, clear of the 24 hour notice period."""
    return next_weekday(weekday, date.today() + timedelta(days=2))


@pytest.fixture
def channel():
    return FakeChannel()


@pytest.fixture
def app(tmp_path, channel):
    """Create and configure a test app instance."""
    db_url = f"sqlite:///{tmp_path / 'appointments_test.db'}"

    # Safety check
    if is_production_database(db_url):
        print(f" DANGER: Database URL appears to be production: {db_url}")
        sys.exit(1)

    app = create_app(
        {
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": db_url,
            "SQLALCHEMY_ENGINE_OPTIONS": {"connect_args": {"timeout": 30}},
            "SECRET_KEY": "test-secret-key-for-testing-only",
            "NOTIFICATION_DISPATCH_ENABLED": False,
            "ADMIN_EMAIL": "admin@example.com",
            "SLOT_DURATION_MINUTES": 60,
            "BOOKING_WINDOW_DAYS": 60,
            "MINIMUM_NOTICE_HOURS": 24,
            "TIMEZONE": "Europe/Athens",
            "NOTIFICATION_MAX_ATTEMPTS": 3,
            "NOTIFICATION_BATCH_SIZE": 10,
            "NOTIFICATION_RETRY_DELAY_SECONDS": 300,
        },
        channel=channel,
    )
    yield app


@pytest.fixture
def db(app: Flask):
    """Create the schema for one test and drop it afterwards."""
    with app.app_context():
        if not app.config.get("TESTING"):
            print(" DANGER: Not in testing mode!")
            sys.exit(1)

        Base.metadata.create_all(bind=database.engine)

        yield database

        database.session.remove()
        Base.metadata.drop_all(bind=database.engine)
        database.engine.dispose()


@pytest.fixture
def schedule(db):
    """Monday to Friday 09:00-17:00, weekends closed."""
    seed_default_schedule()
    return db


@pytest.fixture
def monday():
    return bookable_weekday(0)


@pytest.fixture
def blocked_date(schedule):
    """Block an upcoming Tuesday."""
    day = bookable_weekday(1)
    blocked = BlockedDate(blocked_date=day, reason="Public holiday")
    schedule.session.add(blocked)
    schedule.session.commit()
    return day


@pytest.fixture
def details():
    return BookingDetails(
        client_name="Maria Papadopoulou",
        client_email="maria@example.com",
        client_phone="+30 210 000 0000",
        service_type="Consultation",
        notes="First visit",
    )


@pytest.fixture
def other_details():
    return BookingDetails(
        client_name="Nikos Georgiou",
        client_email="nikos@example.com",
        client_phone="+30 210 111 1111",
        service_type="Follow-up",
    )


@pytest.fixture
def ten_am():
    return time(10, 0)


@pytest.fixture
def client(app, schedule):
    return app.test_client()
