"""Tests for conflict detection."""

import uuid

import pytest

from app.core.scheduling.conflicts import ConflictDetector
from app.core.scheduling.timewindow import windows_overlap
from app.models.database import Appointment, AppointmentStatus
from tests.conftest import DAY, at


class TestWindowsOverlap:
    """Test half-open window overlap."""

    @pytest.mark.parametrize(
        "a,b,expected",
        [
            ((at(10), at(11)), (at(10, 30), at(11, 30)), True),
            ((at(10), at(11)), (at(10, 15), at(10, 45)), True),
            ((at(10), at(11)), (at(10), at(11)), True),
            ((at(10), at(11)), (at(11), at(12)), False),
            ((at(10), at(11)), (at(9), at(10)), False),
            ((at(10), at(11)), (at(12), at(13)), False),
        ],
    )
    def test_overlap_is_symmetric(self, a, b, expected):
        """Test overlap and its symmetry, including touching boundaries."""
        assert windows_overlap(*a, *b) is expected
        assert windows_overlap(*b, *a) is expected


class TestConflictDetector:
    """Test conflicts against stored appointments."""

    @pytest.fixture
    def detector(self, store):
        return ConflictDetector(store)

    @pytest.fixture
    def staff_id(self):
        return uuid.uuid4()

    @pytest.fixture
    def add(self, store, owner_id, staff_id):
        async def _add(start, end, status=AppointmentStatus.SCHEDULED, customer="Jane"):
            return await store.create_appointment(
                Appointment(
                    id=uuid.uuid4(),
                    owner_id=owner_id,
                    customer_name=customer,
                    service_id=uuid.uuid4(),
                    service_name="Consultation",
                    staff_id=staff_id,
                    staff_name="Alice",
                    day=DAY,
                    start_time=start,
                    end_time=end,
                    status=status,
                    queue_position=0,
                )
            )

        return _add

    @pytest.mark.asyncio
    async def test_overlapping_scheduled(self, detector, add, staff_id):
        """Test a scheduled overlap is reported."""
        existing = await add(at(10), at(10, 30))

        conflict = await detector.find_conflict(staff_id, at(10, 15), at(10, 45))

        assert conflict is not None
        assert conflict.id == existing.id

    @pytest.mark.asyncio
    async def test_back_to_back_is_free(self, detector, add, staff_id):
        """Test touching windows do not conflict."""
        await add(at(10), at(10, 30))

        assert await detector.find_conflict(staff_id, at(10, 30), at(11)) is None
        assert await detector.find_conflict(staff_id, at(9, 30), at(10)) is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "status",
        [
            AppointmentStatus.COMPLETED,
            AppointmentStatus.CANCELLED,
            AppointmentStatus.NO_SHOW,
            AppointmentStatus.WAITING,
        ],
    )
    async def test_only_scheduled_blocks(self, detector, add, staff_id, status):
        """Test non-scheduled appointments never block."""
        await add(at(10), at(10, 30), status=status)

        assert await detector.find_conflict(staff_id, at(10), at(10, 30)) is None

    @pytest.mark.asyncio
    async def test_excluded_appointment_never_conflicts_with_itself(self, detector, add, staff_id):
        """Test exclude_id skips the appointment being re-validated."""
        existing = await add(at(10), at(10, 30))

        conflict = await detector.find_conflict(
            staff_id, at(10), at(10, 30), exclude_id=existing.id
        )

        assert conflict is None

    @pytest.mark.asyncio
    async def test_other_staff_ignored(self, detector, add):
        """Test another staff member's calendar is not consulted."""
        await add(at(10), at(10, 30))

        assert await detector.find_conflict(uuid.uuid4(), at(10), at(10, 30)) is None

    @pytest.mark.asyncio
    async def test_earliest_conflict_returned(self, detector, add, staff_id):
        """Test the earliest colliding appointment is returned."""
        await add(at(11), at(11, 30), customer="Later")
        await add(at(10), at(10, 45), customer="Earlier")

        conflict = await detector.find_conflict(staff_id, at(10, 30), at(11, 15))

        assert conflict.customer_name == "Earlier"
