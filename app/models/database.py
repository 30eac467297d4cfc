"""
Database Models

SQLAlchemy ORM models for the staff booking system.

Staff and services are referenced from appointments by stable id; the
display name is copied onto the appointment for presentation only.
"""

import uuid
from datetime import date, datetime
from enum import Enum
from typing import Optional

from sqlalchemy import (
    Date, DateTime, ForeignKey, Index, Integer, String, Text, Uuid,
    Enum as SQLEnum, text
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


class Base(DeclarativeBase):
    """Base class for all database models."""
    pass


class TimestampMixin:
    """Mixin that adds created_at and updated_at timestamp columns."""

    created_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )


class StaffStatus(str, Enum):
    """Staff availability status."""
    AVAILABLE = "Available"
    ON_LEAVE = "On Leave"


class AppointmentStatus(str, Enum):
    """Appointment status enumeration."""
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELLED = "Cancelled"
    NO_SHOW = "No-Show"
    WAITING = "Waiting"


# Statuses that consume a staff member's daily capacity
LOAD_STATUSES = frozenset({
    AppointmentStatus.WAITING,
    AppointmentStatus.SCHEDULED,
    AppointmentStatus.COMPLETED,
})

SERVICE_DURATIONS = (15, 30, 60)


class Service(Base, TimestampMixin):
    """
    Service model.

    A bookable offering owned by an administrator.
    """

    __tablename__ = "services"
    __table_args__ = (
        Index("idx_service_owner_name", "owner_id", "name"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    duration: Mapped[int] = mapped_column(Integer, nullable=False)

    def __repr__(self) -> str:
        return f"<Service(id={self.id}, name='{self.name}', duration={self.duration})>"


class Staff(Base, TimestampMixin):
    """
    Staff model.

    A service provider with a daily booking ceiling. ``service_type`` names
    the service this staff member can perform.
    """

    __tablename__ = "staff"
    __table_args__ = (
        Index("idx_staff_owner_name", "owner_id", "name"),
        Index("idx_staff_owner_type", "owner_id", "service_type"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    name: Mapped[str] = mapped_column(String(100), nullable=False)
    service_type: Mapped[str] = mapped_column(String(100), nullable=False)
    daily_capacity: Mapped[int] = mapped_column(Integer, default=5, nullable=False)
    status: Mapped[StaffStatus] = mapped_column(
        SQLEnum(StaffStatus),
        default=StaffStatus.AVAILABLE,
        nullable=False
    )

    @property
    def is_available(self) -> bool:
        """Whether the staff member is not on leave."""
        return self.status == StaffStatus.AVAILABLE

    def __repr__(self) -> str:
        return (
            f"<Staff(id={self.id}, name='{self.name}', "
            f"service_type='{self.service_type}', capacity={self.daily_capacity})>"
        )


class Appointment(Base, TimestampMixin):
    """
    Appointment model.

    One booking request and its resolved state. A waiting appointment has
    no staff and a positive queue position; every other status carries
    the staff that holds (or held) the slot.
    """

    __tablename__ = "appointments"
    __table_args__ = (
        Index("idx_appointment_staff_day", "staff_id", "day", "status"),
        Index("idx_appointment_queue", "owner_id", "service_id", "status", "queue_position"),
        Index("idx_appointment_owner_day", "owner_id", "day"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    customer_name: Mapped[str] = mapped_column(String(255), nullable=False)
    service_id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        ForeignKey("services.id", ondelete="CASCADE"),
        nullable=False
    )
    service_name: Mapped[str] = mapped_column(String(100), nullable=False)
    staff_id: Mapped[Optional[uuid.UUID]] = mapped_column(
        Uuid,
        ForeignKey("staff.id", ondelete="SET NULL"),
        nullable=True
    )
    staff_name: Mapped[Optional[str]] = mapped_column(String(100), nullable=True)
    day: Mapped[date] = mapped_column(Date, nullable=False)
    start_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    end_time: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    status: Mapped[AppointmentStatus] = mapped_column(
        SQLEnum(AppointmentStatus),
        default=AppointmentStatus.WAITING,
        nullable=False
    )
    queue_position: Mapped[int] = mapped_column(Integer, default=0, nullable=False)

    def to_dict(self) -> dict:
        """Convert to dictionary for API responses."""
        return {
            "id": str(self.id),
            "customer_name": self.customer_name,
            "service": self.service_name,
            "staff": self.staff_name,
            "day": self.day.isoformat(),
            "start_time": self.start_time.isoformat(),
            "end_time": self.end_time.isoformat(),
            "status": self.status.value,
            "queue_position": self.queue_position,
        }

    def __repr__(self) -> str:
        return (
            f"<Appointment(id={self.id}, customer='{self.customer_name}', "
            f"staff='{self.staff_name}', start={self.start_time}, "
            f"status={self.status.value})>"
        )


class ActivityLog(Base):
    """
    Activity Log model.

    Append-only trail of booking decisions per administrator.
    """

    __tablename__ = "activity_logs"
    __table_args__ = (
        Index("idx_activity_owner_time", "owner_id", "timestamp"),
    )

    id: Mapped[uuid.UUID] = mapped_column(
        Uuid,
        primary_key=True,
        default=uuid.uuid4
    )
    owner_id: Mapped[uuid.UUID] = mapped_column(Uuid, nullable=False)
    message: Mapped[str] = mapped_column(Text, nullable=False)
    timestamp: Mapped[datetime] = mapped_column(
        DateTime,
        server_default=text("CURRENT_TIMESTAMP"),
        nullable=False
    )

    def __repr__(self) -> str:
        return f"<ActivityLog(id={self.id}, owner_id={self.owner_id}, timestamp={self.timestamp})>"
