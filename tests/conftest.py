"""Shared fixtures for the booking tests."""

import uuid
from datetime import date, datetime
from typing import Optional

import pytest

from app.core.scheduling.engine import AssignmentEngine, AssignmentRequest
from app.core.scheduling.lifecycle import AppointmentLifecycle
from app.core.scheduling.locks import BookingLocks
from app.core.scheduling.store import InMemoryAppointmentStore
from app.models.database import Service, Staff, StaffStatus

DAY = date(2025, 1, 15)


def at(hour: int, minute: int = 0, day: date = DAY) -> datetime:
    return datetime(day.year, day.month, day.day, hour, minute)


def booking(
    customer: str,
    start: str,
    end: str,
    service: str = "Consultation",
    staff: Optional[str] = None,
    day: date = DAY,
) -> AssignmentRequest:
    return AssignmentRequest(
        customer_name=customer,
        service=service,
        staff=staff,
        day=day,
        start_time=start,
        end_time=end,
    )


@pytest.fixture
def owner_id():
    return uuid.uuid4()


@pytest.fixture
def store():
    return InMemoryAppointmentStore()


@pytest.fixture
def locks():
    """In-process locks only."""
    return BookingLocks(use_redis=False, timeout=5, blocking_timeout=1)


@pytest.fixture
def engine(store, locks):
    return AssignmentEngine(store=store, locks=locks)


@pytest.fixture
def lifecycle(engine):
    return AppointmentLifecycle(engine)


@pytest.fixture
def add_service(store, owner_id):
    async def _add(name: str = "Consultation", duration: int = 30) -> Service:
        return await store.create_service(
            Service(id=uuid.uuid4(), owner_id=owner_id, name=name, duration=duration)
        )

    return _add


@pytest.fixture
def add_staff(store, owner_id):
    async def _add(
        name: str,
        service_type: str = "Consultation",
        capacity: int = 5,
        status: StaffStatus = StaffStatus.AVAILABLE,
    ) -> Staff:
        return await store.create_staff(
            Staff(
                id=uuid.uuid4(),
                owner_id=owner_id,
                name=name,
                service_type=service_type,
                daily_capacity=capacity,
                status=status,
            )
        )

    return _add
