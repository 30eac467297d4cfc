"""Tests for staff availability."""

import uuid

import pytest

from app.core.scheduling.availability import AvailabilityEvaluator
from app.core.scheduling.errors import StaffNotFound
from app.models.database import Appointment, AppointmentStatus, StaffStatus
from tests.conftest import DAY, at


async def _add_appointment(store, owner_id, staff, status, day=DAY, hour=9):
    return await store.create_appointment(
        Appointment(
            id=uuid.uuid4(),
            owner_id=owner_id,
            customer_name=f"Customer {uuid.uuid4().hex[:6]}",
            service_id=uuid.uuid4(),
            service_name=staff.service_type,
            staff_id=staff.id,
            staff_name=staff.name,
            day=day,
            start_time=at(hour, day=day),
            end_time=at(hour, 30, day=day),
            status=status,
            queue_position=0,
        )
    )


class TestAvailabilityEvaluator:
    """Test load against daily capacity."""

    @pytest.fixture
    def evaluator(self, store):
        return AvailabilityEvaluator(store)

    @pytest.mark.asyncio
    async def test_load_counts_capacity_statuses(self, evaluator, store, owner_id, add_staff):
        """Test only Waiting, Scheduled and Completed count toward load."""
        alice = await add_staff("Alice", capacity=5)
        for status in AppointmentStatus:
            await _add_appointment(store, owner_id, alice, status)

        load = await evaluator.load(owner_id, "Alice", DAY)

        assert load.current == 3
        assert load.capacity == 5
        assert load.available is True
        assert load.remaining == 2

    @pytest.mark.asyncio
    async def test_load_is_per_day(self, evaluator, store, owner_id, add_staff):
        """Test appointments on other days are ignored."""
        alice = await add_staff("Alice")
        other_day = DAY.replace(day=16)
        await _add_appointment(store, owner_id, alice, AppointmentStatus.SCHEDULED)
        await _add_appointment(store, owner_id, alice, AppointmentStatus.SCHEDULED, day=other_day)

        load = await evaluator.load(owner_id, "Alice", DAY)

        assert load.current == 1

    @pytest.mark.asyncio
    async def test_unavailable_at_capacity(self, evaluator, store, owner_id, add_staff):
        """Test available is false once current reaches capacity."""
        alice = await add_staff("Alice", capacity=2)
        await _add_appointment(store, owner_id, alice, AppointmentStatus.SCHEDULED, hour=9)
        await _add_appointment(store, owner_id, alice, AppointmentStatus.COMPLETED, hour=10)

        load = await evaluator.load(owner_id, "Alice", DAY)

        assert load.current == 2
        assert load.available is False
        assert load.remaining == 0

    @pytest.mark.asyncio
    async def test_unavailable_on_leave(self, evaluator, owner_id, add_staff):
        """Test staff on leave are unavailable regardless of load."""
        await add_staff("Bob", status=StaffStatus.ON_LEAVE)

        load = await evaluator.load(owner_id, "Bob", DAY)

        assert load.current == 0
        assert load.available is False

    @pytest.mark.asyncio
    async def test_unknown_staff(self, evaluator, owner_id):
        """Test StaffNotFound for an unknown name."""
        with pytest.raises(StaffNotFound):
            await evaluator.load(owner_id, "Nobody", DAY)

    @pytest.mark.asyncio
    async def test_staff_scoped_by_owner(self, evaluator, add_staff):
        """Test another owner's staff is not visible."""
        await add_staff("Alice")

        with pytest.raises(StaffNotFound):
            await evaluator.load(uuid.uuid4(), "Alice", DAY)

    @pytest.mark.asyncio
    async def test_eligible_staff_by_name(self, evaluator, store, owner_id, add_staff):
        """Test eligible staff are filtered and sorted by name."""
        carol = await add_staff("Carol", capacity=1)
        await add_staff("Bob")
        await add_staff("Alice")
        await add_staff("Dave", status=StaffStatus.ON_LEAVE)
        await add_staff("Eve", service_type="Massage")
        await _add_appointment(store, owner_id, carol, AppointmentStatus.SCHEDULED)

        eligible = await evaluator.eligible_staff(owner_id, "Consultation", DAY)

        assert [load.staff.name for load in eligible] == ["Alice", "Bob"]

    @pytest.mark.asyncio
    async def test_to_dict(self, evaluator, owner_id, add_staff):
        """Test API representation."""
        await add_staff("Alice", capacity=3)

        data = (await evaluator.load(owner_id, "Alice", DAY)).to_dict()

        assert data["staff"] == "Alice"
        assert data["day"] == "2025-01-15"
        assert data["current"] == 0
        assert data["capacity"] == 3
        assert data["available"] is True
