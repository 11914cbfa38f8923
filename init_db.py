"""
Create the booking tables and seed a default weekly schedule.

    python init_db.py
"""

import logging
from datetime import time

from app.extensions import db
from app.models import Base, WeeklyScheduleEntry

logger = logging.getLogger(__name__)

# 0=Sunday ... 6=Saturday; weekends closed, weekdays 09:00-17:00
DEFAULT_WEEKLY_SCHEDULE = {
    0: None,
    1: (time(9, 0), time(17, 0)),
    2: (time(9, 0), time(17, 0)),
    3: (time(9, 0), time(17, 0)),
    4: (time(9, 0), time(17, 0)),
    5: (time(9, 0), time(17, 0)),
    6: None,
}


def seed_default_schedule(schedule=None) -> int:
    """Insert schedule rows for days that have none. Returns rows added."""
    schedule = schedule or DEFAULT_WEEKLY_SCHEDULE
    existing = {row.day_of_week for row in db.session.query(WeeklyScheduleEntry.day_of_week)}

    added = 0
    for day_of_week, hours in sorted(schedule.items()):
        if day_of_week in existing:
            continue
        start_time, end_time = hours if hours else (None, None)
        db.session.add(
            WeeklyScheduleEntry(
                day_of_week=day_of_week,
                is_working_day=hours is not None,
                start_time=start_time,
                end_time=end_time,
            )
        )
        added += 1

    db.session.commit()
    return added


def init_db(seed=True) -> None:
    Base.metadata.create_all(bind=db.engine)
    logger.info("Database tables created")
    if seed:
        added = seed_default_schedule()
        logger.info("Seeded %s weekly schedule row(s)", added)


if __name__ == "__main__":
    from main import create_app

    app = create_app()
    with app.app_context():
        init_db()
