"""
Appointment lifecycle.

Status changes, reschedules and deletion of existing appointments. Every
change that frees a staff slot or leaves a queue goes through the
QueueManager so queues stay contiguous and waiting entries get promoted.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Optional, Union

from app.core.scheduling.engine import AssignmentEngine, AssignmentOutcome, OutcomeKind
from app.core.scheduling.errors import (
    AppointmentNotFound,
    InvalidStatusTransition,
    StaffNotFound,
    StaffUnavailable,
)
from app.core.scheduling.locks import service_lock_key
from app.core.scheduling.state import can_transition, holds_slot, is_terminal_status
from app.core.scheduling.store import AppointmentFilter
from app.core.scheduling.timewindow import TimeInput, day_of, parse_window
from app.models.database import Appointment, AppointmentStatus, Staff

logger = logging.getLogger(__name__)


@dataclass
class StatusChange:
    """Result of a status transition."""

    appointment: Appointment
    promoted: Optional[Appointment] = None

    def to_dict(self) -> dict:
        result = {"appointment": self.appointment.to_dict()}
        if self.promoted is not None:
            result["promoted"] = self.promoted.to_dict()
        return result


class AppointmentLifecycle:
    """Transitions and edits on existing appointments."""

    def __init__(self, engine: AssignmentEngine):
        self._engine = engine
        self._store = engine.store
        self._queue = engine.queue
        self._allocator = engine.allocator
        self._locks = engine.locks
        self._activity = engine.activity

    async def get(self, owner_id: uuid.UUID, appointment_id: uuid.UUID) -> Appointment:
        """Fetch an appointment within the owner's scope.

        Raises:
            AppointmentNotFound: Unknown id or owned by someone else
        """
        appointment = await self._store.find_appointment(
            AppointmentFilter(owner_id=owner_id, appointment_id=appointment_id)
        )
        if appointment is None:
            raise AppointmentNotFound(appointment_id)
        return appointment

    async def list_appointments(
        self,
        owner_id: uuid.UUID,
        day: Optional[date] = None,
        status: Optional[AppointmentStatus] = None,
    ) -> list[Appointment]:
        """The owner's appointments ordered by start time."""
        return await self._store.list_appointments(
            AppointmentFilter(
                owner_id=owner_id,
                day=day,
                statuses={status} if status else None,
            )
        )

    async def change_status(
        self,
        owner_id: uuid.UUID,
        appointment_id: uuid.UUID,
        status: AppointmentStatus,
    ) -> StatusChange:
        """Move an appointment to a new status.

        Raises:
            AppointmentNotFound: Unknown appointment
            InvalidStatusTransition: Transition not allowed from current status
        """
        appointment = await self.get(owner_id, appointment_id)
        if not can_transition(appointment.status, status) or status == AppointmentStatus.SCHEDULED:
            # Scheduling happens only through assignment or promotion
            raise InvalidStatusTransition(appointment.status.value, status.value)

        if status == AppointmentStatus.CANCELLED:
            promoted = await self._queue.on_cancelled(appointment)
        else:
            promoted = await self._queue.on_slot_freed(appointment, status)

        updated = await self.get(owner_id, appointment_id)
        logger.info(f"Appointment {appointment_id} marked {status.value}")
        self._activity.log_event(
            owner_id,
            f'Appointment for "{updated.customer_name}" marked {status.value}',
        )
        return StatusChange(appointment=updated, promoted=promoted)

    async def complete(self, owner_id: uuid.UUID, appointment_id: uuid.UUID) -> StatusChange:
        return await self.change_status(owner_id, appointment_id, AppointmentStatus.COMPLETED)

    async def cancel(self, owner_id: uuid.UUID, appointment_id: uuid.UUID) -> StatusChange:
        return await self.change_status(owner_id, appointment_id, AppointmentStatus.CANCELLED)

    async def mark_no_show(self, owner_id: uuid.UUID, appointment_id: uuid.UUID) -> StatusChange:
        return await self.change_status(owner_id, appointment_id, AppointmentStatus.NO_SHOW)

    async def delete(self, owner_id: uuid.UUID, appointment_id: uuid.UUID) -> Optional[Appointment]:
        """Hard-delete an appointment.

        Returns:
            The appointment promoted into the freed slot, if any
        """
        appointment = await self.get(owner_id, appointment_id)
        promoted = await self._queue.on_deleted(appointment)
        logger.info(f"Appointment {appointment_id} deleted")
        self._activity.log_event(
            owner_id, f'Appointment for "{appointment.customer_name}" deleted'
        )
        return promoted

    async def reschedule(
        self,
        owner_id: uuid.UUID,
        appointment_id: uuid.UUID,
        start_raw: TimeInput,
        end_raw: TimeInput,
        day: Optional[Union[str, date, datetime]] = None,
        staff_name: Optional[str] = None,
    ) -> AssignmentOutcome:
        """Move an appointment to a new window and optionally a new staff.

        The new window is checked against the target staff's calendar,
        ignoring the appointment itself. Capacity is only checked when the
        appointment changes staff or day. Naming a staff member for a
        waiting appointment schedules it and removes it from the queue.

        Raises:
            AppointmentNotFound, InvalidStatusTransition, StaffNotFound,
            StaffUnavailable, InvalidTimeFormat, InvalidTimeRange
        """
        appointment = await self.get(owner_id, appointment_id)
        if is_terminal_status(appointment.status):
            raise InvalidStatusTransition(appointment.status.value, "rescheduled")

        new_day = day_of(day) if day else appointment.day
        start, end = parse_window(start_raw, end_raw, new_day)

        async with self._locks.hold(service_lock_key(owner_id, appointment.service_id)):
            current = await self.get(owner_id, appointment_id)
            if is_terminal_status(current.status):
                raise InvalidStatusTransition(current.status.value, "rescheduled")

            target = await self._target_staff(owner_id, current, staff_name)
            if target is None:
                # Waiting entry keeps its place in the queue
                updated = await self._store.update_appointment(
                    current.id, {"day": new_day, "start_time": start, "end_time": end}
                )
                outcome = AssignmentOutcome(
                    kind=OutcomeKind.RESCHEDULED,
                    appointment=updated,
                    queue_position=updated.queue_position,
                )
                self._activity.log_event(owner_id, outcome.activity_message(updated.customer_name))
                return outcome

            prior_staff_id = current.staff_id if holds_slot(current.status) else None
            prior_position = current.queue_position
            prior_day = current.day
            moves = target.id != prior_staff_id or new_day != prior_day

            async def write(staff: Staff) -> Appointment:
                return await self._store.update_appointment(
                    current.id,
                    {
                        "status": AppointmentStatus.SCHEDULED,
                        "staff_id": staff.id,
                        "staff_name": staff.name,
                        "day": new_day,
                        "start_time": start,
                        "end_time": end,
                        "queue_position": 0,
                    },
                )

            claim = await self._allocator.claim(
                target, new_day, start, end, write,
                exclude_id=current.id,
                check_capacity=moves,
            )

            if claim.conflict is not None:
                return AssignmentOutcome(
                    kind=OutcomeKind.CONFLICT,
                    staff_name=target.name,
                    conflict=claim.conflict,
                )
            if claim.unavailable:
                raise StaffUnavailable(
                    target.name,
                    f"{claim.load.current}/{claim.load.capacity} appointments on {new_day}"
                    if target.is_available else target.status.value,
                )

            if prior_position:
                await self._queue.close_gap(owner_id, current.service_id, prior_position)

        promoted = None
        if prior_staff_id is not None and (prior_staff_id != target.id or new_day != prior_day):
            promoted = await self._queue.promote_next(owner_id, current.service_id, prior_staff_id)

        outcome = AssignmentOutcome(
            kind=OutcomeKind.RESCHEDULED,
            appointment=claim.appointment,
            staff_name=target.name,
        )
        logger.info(
            f"Appointment {appointment_id} rescheduled to '{target.name}' "
            f"{start:%Y-%m-%d %H:%M}-{end:%H:%M}"
            + (f", promoted {promoted.id}" if promoted else "")
        )
        self._activity.log_event(owner_id, outcome.activity_message(claim.appointment.customer_name))
        return outcome

    async def _target_staff(
        self,
        owner_id: uuid.UUID,
        appointment: Appointment,
        staff_name: Optional[str],
    ) -> Optional[Staff]:
        if staff_name and staff_name.strip():
            staff = await self._store.find_staff(owner_id, name=staff_name.strip())
            if staff is None:
                raise StaffNotFound(staff_name.strip())
            return staff
        if appointment.staff_id is None and not holds_slot(appointment.status):
            return None

        staff = None
        if appointment.staff_id is not None:
            staff = await self._store.find_staff(owner_id, staff_id=appointment.staff_id)
        if staff is None:
            # Scheduled against a staff record that no longer exists
            raise StaffNotFound(appointment.staff_name or str(appointment.staff_id))
        return staff


# Singleton
_lifecycle: Optional[AppointmentLifecycle] = None


def get_appointment_lifecycle() -> AppointmentLifecycle:
    """Get singleton AppointmentLifecycle bound to the shared engine."""
    global _lifecycle
    if _lifecycle is None:
        from app.core.scheduling.engine import get_assignment_engine

        _lifecycle = AppointmentLifecycle(get_assignment_engine())
    return _lifecycle
