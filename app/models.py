import enum
from datetime import datetime
from typing import List

from sqlalchemy import (
    Boolean,
    Date,
    DateTime,
    Enum,
    ForeignKeyConstraint,
    Index,
    Integer,
    JSON,
    String,
    Text,
    Time,
    text,
)
from sqlalchemy.orm import Mapped, declarative_base, mapped_column, relationship

Base = declarative_base()
metadata = Base.metadata


class AppointmentStatus(str, enum.Enum):
    PENDING = "pending"
    CONFIRMED = "confirmed"
    DECLINED = "declined"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


# Statuses that occupy a slot
LIVE_STATUSES = (AppointmentStatus.PENDING.value, AppointmentStatus.CONFIRMED.value)


class ChangedBy(str, enum.Enum):
    CLIENT = "client"
    ADMIN = "admin"
    SYSTEM = "system"


class NotificationStatus(str, enum.Enum):
    PENDING = "pending"
    SENT = "sent"
    FAILED = "failed"


def _values(enum_cls):
    return [member.value for member in enum_cls]


def slot_key(appointment_date, appointment_time) -> str:
    """Key stored in Appointment.live_slot while the appointment holds its slot."""
    return f"{appointment_date.isoformat()} {appointment_time.strftime('%H:%M')}"


class Appointment(Base):
    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointment_date_time", "appointment_date", "appointment_time"),
        Index("idx_appointment_status", "status"),
        Index("idx_appointment_email", "client_email"),
        Index("uq_appointment_token", "cancellation_token", unique=True),
        # One live appointment per slot; NULL once the appointment leaves it
        Index("uq_appointment_live_slot", "live_slot", unique=True),
    )

    id = mapped_column(Integer, primary_key=True)
    client_name = mapped_column(String(255), nullable=False)
    client_email = mapped_column(String(255), nullable=False)
    client_phone = mapped_column(String(50), nullable=False)
    appointment_date = mapped_column(Date, nullable=False)
    appointment_time = mapped_column(Time, nullable=False)
    service_type = mapped_column(String(255), nullable=False)
    notes = mapped_column(Text)
    status = mapped_column(
        Enum(*_values(AppointmentStatus), name="appointment_status"),
        nullable=False,
        default=AppointmentStatus.PENDING.value,
    )
    decline_reason = mapped_column(Text)
    cancellation_token = mapped_column(String(64), nullable=False)
    version = mapped_column(Integer, nullable=False, default=1)
    live_slot = mapped_column(String(32))
    created_at = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.now,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    updated_at = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.now,
        onupdate=datetime.now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    history: Mapped[List["AppointmentHistory"]] = relationship(
        "AppointmentHistory",
        uselist=True,
        back_populates="appointment",
        cascade="all, delete-orphan",
        order_by="AppointmentHistory.id",
    )

    def to_public_dict(self):
        """Client-facing view, addressed by cancellation token."""
        return {
            "client_name": self.client_name,
            "appointment_date": self.appointment_date.isoformat(),
            "appointment_time": self.appointment_time.strftime("%H:%M"),
            "service_type": self.service_type,
            "status": self.status,
            "decline_reason": self.decline_reason,
            "cancellation_token": self.cancellation_token,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }

    def to_dict(self):
        """Staff view."""
        return {
            "id": self.id,
            "client_name": self.client_name,
            "client_email": self.client_email,
            "client_phone": self.client_phone,
            "appointment_date": self.appointment_date.isoformat(),
            "appointment_time": self.appointment_time.strftime("%H:%M"),
            "service_type": self.service_type,
            "notes": self.notes,
            "status": self.status,
            "decline_reason": self.decline_reason,
            "cancellation_token": self.cancellation_token,
            "version": self.version,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
        }


class WeeklyScheduleEntry(Base):
    __tablename__ = "weekly_schedule"
    __table_args__ = (Index("uq_schedule_day", "day_of_week", unique=True),)

    id = mapped_column(Integer, primary_key=True)
    # 0=Sunday ... 6=Saturday
    day_of_week = mapped_column(Integer, nullable=False)
    is_working_day = mapped_column(Boolean, nullable=False, default=False)
    start_time = mapped_column(Time)
    end_time = mapped_column(Time)
    updated_at = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.now,
        onupdate=datetime.now,
        server_default=text("CURRENT_TIMESTAMP"),
    )

    def to_dict(self):
        return {
            "day_of_week": self.day_of_week,
            "is_working_day": bool(self.is_working_day),
            "start_time": self.start_time.strftime("%H:%M") if self.start_time else None,
            "end_time": self.end_time.strftime("%H:%M") if self.end_time else None,
        }


class BlockedDate(Base):
    __tablename__ = "blocked_dates"
    __table_args__ = (Index("idx_blocked_date", "blocked_date", "deleted_at"),)

    id = mapped_column(Integer, primary_key=True)
    blocked_date = mapped_column(Date, nullable=False)
    reason = mapped_column(String(255))
    created_at = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.now,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    deleted_at = mapped_column(DateTime)

    def to_dict(self):
        return {
            "id": self.id,
            "blocked_date": self.blocked_date.isoformat(),
            "reason": self.reason,
        }


class AppointmentHistory(Base):
    __tablename__ = "appointment_history"
    __table_args__ = (
        ForeignKeyConstraint(
            ["appointment_id"],
            ["appointments.id"],
            ondelete="CASCADE",
            name="fk_history_appointment",
        ),
        Index("idx_history_appointment", "appointment_id"),
        Index("idx_history_changed_at", "changed_at"),
    )

    id = mapped_column(Integer, primary_key=True)
    appointment_id = mapped_column(Integer, nullable=False)
    old_status = mapped_column(String(50))
    new_status = mapped_column(String(50), nullable=False)
    changed_by = mapped_column(
        Enum(*_values(ChangedBy), name="history_changed_by"), nullable=False
    )
    changed_at = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.now,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    notes = mapped_column(Text)

    appointment: Mapped["Appointment"] = relationship(
        "Appointment", back_populates="history"
    )

    def to_dict(self):
        return {
            "id": self.id,
            "appointment_id": self.appointment_id,
            "old_status": self.old_status,
            "new_status": self.new_status,
            "changed_by": self.changed_by,
            "changed_at": self.changed_at.isoformat() if self.changed_at else None,
            "notes": self.notes,
        }


class NotificationTask(Base):
    __tablename__ = "notification_queue"
    __table_args__ = (
        Index("idx_notification_status", "status"),
        Index("idx_notification_created", "created_at"),
        Index("idx_notification_next_attempt", "next_attempt_at"),
        Index("idx_notification_type", "type"),
    )

    id = mapped_column(Integer, primary_key=True)
    type = mapped_column(String(100), nullable=False)
    recipient = mapped_column(String(255), nullable=False)
    payload = mapped_column(JSON, nullable=False)
    status = mapped_column(
        Enum(*_values(NotificationStatus), name="notification_status"),
        nullable=False,
        default=NotificationStatus.PENDING.value,
    )
    attempts = mapped_column(Integer, nullable=False, default=0)
    error = mapped_column(Text)
    next_attempt_at = mapped_column(DateTime)
    created_at = mapped_column(
        DateTime,
        nullable=False,
        default=datetime.now,
        server_default=text("CURRENT_TIMESTAMP"),
    )
    sent_at = mapped_column(DateTime)

    def to_dict(self):
        return {
            "id": self.id,
            "type": self.type,
            "recipient": self.recipient,
            "status": self.status,
            "attempts": self.attempts,
            "error": self.error,
            "next_attempt_at": (
                self.next_attempt_at.isoformat() if self.next_attempt_at else None
            ),
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "sent_at": self.sent_at.isoformat() if self.sent_at else None,
        }
