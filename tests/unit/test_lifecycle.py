"""Tests for the appointment lifecycle."""

import uuid
from datetime import date

import pytest

from app.core.scheduling.engine import OutcomeKind
from app.core.scheduling.errors import (
    AppointmentNotFound,
    InvalidStatusTransition,
    StaffNotFound,
    StaffUnavailable,
)
from app.core.scheduling.state import can_transition, is_terminal_status
from app.models.database import AppointmentStatus
from tests.conftest import DAY, at, booking


class TestTransitions:
    """Test the status transition table."""

    def test_valid_transitions(self):
        assert can_transition(AppointmentStatus.WAITING, AppointmentStatus.CANCELLED)
        assert can_transition(AppointmentStatus.WAITING, AppointmentStatus.SCHEDULED)
        assert can_transition(AppointmentStatus.SCHEDULED, AppointmentStatus.COMPLETED)
        assert can_transition(AppointmentStatus.SCHEDULED, AppointmentStatus.NO_SHOW)

    def test_invalid_transitions(self):
        assert not can_transition(AppointmentStatus.WAITING, AppointmentStatus.COMPLETED)
        assert not can_transition(AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED)
        assert not can_transition(AppointmentStatus.CANCELLED, AppointmentStatus.SCHEDULED)

    def test_terminal_statuses(self):
        assert is_terminal_status(AppointmentStatus.COMPLETED)
        assert is_terminal_status(AppointmentStatus.CANCELLED)
        assert is_terminal_status(AppointmentStatus.NO_SHOW)
        assert not is_terminal_status(AppointmentStatus.SCHEDULED)


class TestAppointmentLifecycle:
    """Test reads and status changes."""

    @pytest.mark.asyncio
    async def test_get_scoped_by_owner(self, engine, lifecycle, owner_id, add_service, add_staff):
        """Test another owner cannot see the appointment."""
        await add_service()
        await add_staff("Alice")
        outcome = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))

        found = await lifecycle.get(owner_id, outcome.appointment.id)
        assert found.customer_name == "Jane"

        with pytest.raises(AppointmentNotFound):
            await lifecycle.get(uuid.uuid4(), outcome.appointment.id)

    @pytest.mark.asyncio
    async def test_unknown_appointment(self, lifecycle, owner_id):
        with pytest.raises(AppointmentNotFound):
            await lifecycle.cancel(owner_id, uuid.uuid4())

    @pytest.mark.asyncio
    async def test_list_filters_and_order(self, engine, lifecycle, owner_id, add_service, add_staff):
        """Test listing by day and status, ordered by start time."""
        await add_service()
        await add_staff("Alice", capacity=2)
        await engine.assign(owner_id, booking("Late", "2:00 PM", "2:30 PM"))
        await engine.assign(owner_id, booking("Early", "9:00 AM", "9:30 AM"))
        await engine.assign(owner_id, booking("Queued", "11:00 AM", "11:30 AM"))
        await engine.assign(
            owner_id, booking("Tomorrow", "8:00 AM", "8:30 AM", day=date(2025, 1, 16))
        )

        today = await lifecycle.list_appointments(owner_id, day=DAY)
        waiting = await lifecycle.list_appointments(owner_id, status=AppointmentStatus.WAITING)

        assert [a.customer_name for a in today] == ["Early", "Queued", "Late"]
        assert [a.customer_name for a in waiting] == ["Queued"]

    @pytest.mark.asyncio
    async def test_complete_waiting_is_rejected(self, engine, lifecycle, owner_id, add_service):
        """Test a waiting appointment cannot be completed."""
        await add_service()
        outcome = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))

        with pytest.raises(InvalidStatusTransition) as exc_info:
            await lifecycle.complete(owner_id, outcome.appointment.id)

        assert exc_info.value.status_code == 409
        assert exc_info.value.to_dict()["current"] == "Waiting"

    @pytest.mark.asyncio
    async def test_terminal_status_is_final(self, engine, lifecycle, owner_id, add_service, add_staff):
        """Test a completed appointment cannot be cancelled."""
        await add_service()
        await add_staff("Alice")
        outcome = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))
        await lifecycle.complete(owner_id, outcome.appointment.id)

        with pytest.raises(InvalidStatusTransition):
            await lifecycle.cancel(owner_id, outcome.appointment.id)

    @pytest.mark.asyncio
    async def test_scheduled_is_not_a_manual_status(self, engine, lifecycle, owner_id, add_service):
        """Test waiting entries are only scheduled through assignment."""
        await add_service()
        outcome = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))

        with pytest.raises(InvalidStatusTransition):
            await lifecycle.change_status(
                owner_id, outcome.appointment.id, AppointmentStatus.SCHEDULED
            )

    @pytest.mark.asyncio
    async def test_cancel_keeps_staff(self, engine, lifecycle, owner_id, add_service, add_staff):
        """Test a cancelled scheduled appointment keeps the staff that held it."""
        await add_service()
        await add_staff("Alice")
        outcome = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))

        change = await lifecycle.cancel(owner_id, outcome.appointment.id)

        assert change.appointment.status == AppointmentStatus.CANCELLED
        assert change.appointment.staff_name == "Alice"
        assert change.promoted is None

    @pytest.mark.asyncio
    async def test_delete_scheduled_promotes(self, engine, lifecycle, owner_id, add_service, add_staff):
        """Test deleting a scheduled appointment fills its slot from the queue."""
        await add_service()
        await add_staff("Alice")
        held = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))
        queued = await engine.assign(owner_id, booking("John", "10:00 AM", "10:30 AM"))

        promoted = await lifecycle.delete(owner_id, held.appointment.id)

        assert promoted.id == queued.appointment.id
        with pytest.raises(AppointmentNotFound):
            await lifecycle.get(owner_id, held.appointment.id)

    @pytest.mark.asyncio
    async def test_status_change_logged(self, engine, store, lifecycle, owner_id, add_service, add_staff):
        await add_service()
        await add_staff("Alice")
        outcome = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))

        await lifecycle.mark_no_show(owner_id, outcome.appointment.id)
        await engine.activity.drain()

        latest = (await store.list_activity(owner_id))[0]
        assert latest.message == 'Appointment for "Jane" marked No-Show'


class TestReschedule:
    """Test moving appointments."""

    @pytest.mark.asyncio
    async def test_same_staff_new_window(self, engine, lifecycle, owner_id, add_service, add_staff):
        """Test moving within the same day skips the capacity check."""
        await add_service()
        await add_staff("Alice", capacity=1)
        outcome = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))

        moved = await lifecycle.reschedule(
            owner_id, outcome.appointment.id, "11:00 AM", "11:30 AM"
        )

        assert moved.kind == OutcomeKind.RESCHEDULED
        assert moved.appointment.start_time == at(11)
        assert moved.appointment.staff_name == "Alice"

    @pytest.mark.asyncio
    async def test_overlapping_own_window_is_allowed(
        self, engine, lifecycle, owner_id, add_service, add_staff
    ):
        """Test the appointment never conflicts with itself."""
        await add_service()
        await add_staff("Alice")
        outcome = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))

        moved = await lifecycle.reschedule(
            owner_id, outcome.appointment.id, "10:15 AM", "10:45 AM"
        )

        assert moved.kind == OutcomeKind.RESCHEDULED

    @pytest.mark.asyncio
    async def test_conflict_leaves_appointment_unchanged(
        self, engine, lifecycle, owner_id, add_service, add_staff
    ):
        """Test moving onto another booking returns a conflict."""
        await add_service()
        await add_staff("Alice")
        await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM", staff="Alice"))
        john = await engine.assign(owner_id, booking("John", "11:00 AM", "11:30 AM", staff="Alice"))

        result = await lifecycle.reschedule(owner_id, john.appointment.id, "10:15 AM", "10:45 AM")

        assert result.kind == OutcomeKind.CONFLICT
        assert result.conflict.customer_name == "Jane"
        assert (await lifecycle.get(owner_id, john.appointment.id)).start_time == at(11)

    @pytest.mark.asyncio
    async def test_move_to_other_staff_promotes_for_old(
        self, engine, lifecycle, owner_id, add_service, add_staff
    ):
        """Test moving away from a staff member offers their slot to the queue."""
        await add_service()
        await add_staff("Alice", capacity=2)
        await add_staff("Bob", capacity=2)
        jane = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))
        await engine.assign(owner_id, booking("John", "10:00 AM", "10:30 AM"))
        jack = await engine.assign(owner_id, booking("Jack", "10:00 AM", "10:30 AM"))
        assert jane.staff_name == "Alice"
        assert jack.kind == OutcomeKind.QUEUED

        moved = await lifecycle.reschedule(
            owner_id, jane.appointment.id, "11:00 AM", "11:30 AM", staff_name="Bob"
        )

        assert moved.appointment.staff_name == "Bob"
        promoted = await lifecycle.get(owner_id, jack.appointment.id)
        assert promoted.status == AppointmentStatus.SCHEDULED
        assert promoted.staff_name == "Alice"

    @pytest.mark.asyncio
    async def test_move_to_full_staff(self, engine, lifecycle, owner_id, add_service, add_staff):
        """Test changing staff checks the target's capacity."""
        await add_service()
        await add_staff("Alice")
        await add_staff("Bob", capacity=1)
        await engine.assign(owner_id, booking("John", "9:00 AM", "9:30 AM", staff="Bob"))
        jane = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM", staff="Alice"))

        with pytest.raises(StaffUnavailable):
            await lifecycle.reschedule(
                owner_id, jane.appointment.id, "11:00 AM", "11:30 AM", staff_name="Bob"
            )

    @pytest.mark.asyncio
    async def test_unknown_target_staff(self, engine, lifecycle, owner_id, add_service, add_staff):
        await add_service()
        await add_staff("Alice")
        jane = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))

        with pytest.raises(StaffNotFound):
            await lifecycle.reschedule(
                owner_id, jane.appointment.id, "11:00 AM", "11:30 AM", staff_name="Zed"
            )

    @pytest.mark.asyncio
    async def test_waiting_gets_staff(self, engine, lifecycle, owner_id, add_service, add_staff):
        """Test naming a staff member schedules a waiting entry and closes its gap."""
        await add_service()
        first = await engine.assign(owner_id, booking("A", "10:00 AM", "10:30 AM"))
        second = await engine.assign(owner_id, booking("B", "10:00 AM", "10:30 AM"))
        await add_staff("Bob")

        moved = await lifecycle.reschedule(
            owner_id, first.appointment.id, "2:00 PM", "2:30 PM", staff_name="Bob"
        )

        assert moved.appointment.status == AppointmentStatus.SCHEDULED
        assert moved.appointment.staff_name == "Bob"
        assert moved.appointment.queue_position == 0
        assert (await lifecycle.get(owner_id, second.appointment.id)).queue_position == 1

    @pytest.mark.asyncio
    async def test_waiting_keeps_place(self, engine, lifecycle, owner_id, add_service):
        """Test a waiting entry without a staff member only changes its window."""
        await add_service()
        await engine.assign(owner_id, booking("A", "10:00 AM", "10:30 AM"))
        second = await engine.assign(owner_id, booking("B", "10:00 AM", "10:30 AM"))

        moved = await lifecycle.reschedule(
            owner_id, second.appointment.id, "3:00 PM", "3:30 PM", day="2025-01-17"
        )

        assert moved.kind == OutcomeKind.RESCHEDULED
        assert moved.appointment.status == AppointmentStatus.WAITING
        assert moved.appointment.queue_position == 2
        assert moved.appointment.day == date(2025, 1, 17)
        assert moved.appointment.start_time == at(15, day=date(2025, 1, 17))

    @pytest.mark.asyncio
    async def test_terminal_cannot_be_rescheduled(
        self, engine, lifecycle, owner_id, add_service, add_staff
    ):
        await add_service()
        await add_staff("Alice")
        jane = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))
        await lifecycle.cancel(owner_id, jane.appointment.id)

        with pytest.raises(InvalidStatusTransition):
            await lifecycle.reschedule(owner_id, jane.appointment.id, "11:00 AM", "11:30 AM")

    @pytest.mark.asyncio
    async def test_missing_staff_record(self, engine, store, lifecycle, owner_id, add_service, add_staff):
        """Test a scheduled appointment whose staff record is gone is not moved."""
        await add_service()
        alice = await add_staff("Alice")
        jane = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM", staff="Alice"))
        await store.delete_staff(owner_id, alice.id)

        with pytest.raises(StaffNotFound) as exc_info:
            await lifecycle.reschedule(owner_id, jane.appointment.id, "3:00 PM", "3:30 PM")

        assert "Alice" in exc_info.value.message
        assert (await lifecycle.get(owner_id, jane.appointment.id)).start_time == at(10)

    @pytest.mark.asyncio
    async def test_scheduled_without_staff_id(self, engine, store, lifecycle, owner_id, add_service, add_staff):
        """Test a scheduled appointment whose staff link was cleared is not moved."""
        await add_service()
        await add_staff("Alice")
        jane = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))
        await store.update_appointment(jane.appointment.id, {"staff_id": None})

        with pytest.raises(StaffNotFound):
            await lifecycle.reschedule(owner_id, jane.appointment.id, "3:00 PM", "3:30 PM")

    @pytest.mark.asyncio
    async def test_new_day_same_staff_promotes(
        self, engine, lifecycle, owner_id, add_service, add_staff
    ):
        """Test moving to another day frees the old day's capacity for the queue."""
        await add_service()
        await add_staff("Alice", capacity=1)
        jane = await engine.assign(owner_id, booking("Jane", "10:00 AM", "10:30 AM"))
        john = await engine.assign(owner_id, booking("John", "11:00 AM", "11:30 AM"))
        assert john.kind == OutcomeKind.QUEUED

        moved = await lifecycle.reschedule(
            owner_id, jane.appointment.id, "10:00 AM", "10:30 AM", day="2025-01-16"
        )

        assert moved.appointment.day == date(2025, 1, 16)
        assert moved.appointment.staff_name == "Alice"
        promoted = await lifecycle.get(owner_id, john.appointment.id)
        assert promoted.status == AppointmentStatus.SCHEDULED
        assert promoted.staff_name == "Alice"
        assert promoted.queue_position == 0
