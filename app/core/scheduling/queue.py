"""
Waiting queue management.

Each (owner, service) pair has a FIFO queue of Waiting appointments whose
queue positions are always exactly 1..N. Every change to a queue runs
under that service's lock: new entries, cancellations, deletions and
promotions when a staff slot frees up.
"""

import logging
import uuid
from typing import Optional

from app.core.scheduling.activity import ActivityLog
from app.core.scheduling.allocation import StaffAllocator, StaffClaim
from app.core.scheduling.errors import (
    AppointmentNotFound,
    InvalidStatusTransition,
    StaffNotFound,
    StaffUnavailable,
)
from app.core.scheduling.locks import BookingLocks, service_lock_key
from app.core.scheduling.state import can_transition, holds_slot
from app.core.scheduling.store import AppointmentFilter, AppointmentStore
from app.models.database import Appointment, AppointmentStatus, Staff

logger = logging.getLogger(__name__)

WAITING = frozenset({AppointmentStatus.WAITING})


class QueueManager:
    """Maintains per-service waiting queues and promotes from them."""

    def __init__(
        self,
        store: AppointmentStore,
        allocator: StaffAllocator,
        locks: BookingLocks,
        activity: ActivityLog,
    ):
        self._store = store
        self._allocator = allocator
        self._locks = locks
        self._activity = activity

    # === Positions (caller holds the service lock) ===

    async def next_position(self, owner_id: uuid.UUID, service_id: uuid.UUID) -> int:
        """Position a new waiting entry would take."""
        waiting = await self._store.count_appointments(
            AppointmentFilter(owner_id=owner_id, service_id=service_id, statuses=WAITING)
        )
        return waiting + 1

    async def close_gap(
        self,
        owner_id: uuid.UUID,
        service_id: uuid.UUID,
        position: int,
    ) -> int:
        """Move every waiting entry behind ``position`` up by one.

        Returns:
            Number of entries renumbered
        """
        if position <= 0:
            return 0
        behind = await self._store.list_appointments(
            AppointmentFilter(
                owner_id=owner_id,
                service_id=service_id,
                statuses=WAITING,
                queue_position_above=position,
                order_by="queue_position",
            )
        )
        for entry in behind:
            await self._store.update_appointment(
                entry.id, {"queue_position": entry.queue_position - 1}
            )
        return len(behind)

    # === Queries ===

    async def waiting_queue(
        self,
        owner_id: uuid.UUID,
        service_id: Optional[uuid.UUID] = None,
    ) -> list[Appointment]:
        """Waiting entries ordered by service, then position."""
        return await self._store.list_appointments(
            AppointmentFilter(
                owner_id=owner_id,
                service_id=service_id,
                statuses=WAITING,
                order_by="queue_position",
            )
        )

    # === Events ===

    async def on_cancelled(self, appointment: Appointment) -> Optional[Appointment]:
        """Cancel ``appointment`` and repair its queue.

        A waiting entry leaves the queue and the entries behind it move up.
        A scheduled one frees its staff slot, so the queue is offered it.

        Returns:
            The appointment promoted into the freed slot, if any
        """
        async with self._locks.hold(service_lock_key(appointment.owner_id, appointment.service_id)):
            current = await self._reload(appointment, AppointmentStatus.CANCELLED)
            prior_position = current.queue_position
            freed_staff_id = current.staff_id if holds_slot(current.status) else None

            await self._store.update_appointment(
                current.id,
                {"status": AppointmentStatus.CANCELLED, "queue_position": 0},
            )
            if prior_position:
                await self.close_gap(current.owner_id, current.service_id, prior_position)

            if freed_staff_id is None:
                return None
            return await self._promote(current.owner_id, current.service_id, freed_staff_id)

    async def on_slot_freed(
        self,
        appointment: Appointment,
        status: AppointmentStatus,
    ) -> Optional[Appointment]:
        """Move a scheduled appointment to ``status`` (Completed or No-Show)
        and promote the earliest placeable waiting entry of its service.

        Returns:
            The promoted appointment, or None if nothing could be promoted
        """
        async with self._locks.hold(service_lock_key(appointment.owner_id, appointment.service_id)):
            current = await self._reload(appointment, status)
            await self._store.update_appointment(current.id, {"status": status})
            return await self._promote(current.owner_id, current.service_id, current.staff_id)

    async def on_deleted(self, appointment: Appointment) -> Optional[Appointment]:
        """Hard-delete ``appointment`` and close the gap it leaves."""
        async with self._locks.hold(service_lock_key(appointment.owner_id, appointment.service_id)):
            current = await self._store.delete_appointment(appointment.id)
            if current is None:
                raise AppointmentNotFound(appointment.id)

            if current.queue_position:
                await self.close_gap(current.owner_id, current.service_id, current.queue_position)

            if not holds_slot(current.status):
                return None
            return await self._promote(current.owner_id, current.service_id, current.staff_id)

    async def promote_next(
        self,
        owner_id: uuid.UUID,
        service_id: uuid.UUID,
        freed_staff_id: Optional[uuid.UUID] = None,
    ) -> Optional[Appointment]:
        """Promote the earliest placeable waiting entry of a service.

        An empty queue is a no-op and returns None.
        """
        async with self._locks.hold(service_lock_key(owner_id, service_id)):
            return await self._promote(owner_id, service_id, freed_staff_id)

    async def assign_from_queue(
        self,
        owner_id: uuid.UUID,
        staff_name: str,
    ) -> Optional[Appointment]:
        """Let a staff member pull the earliest waiting entry they can serve.

        Entries that collide with the staff member's calendar, or fall on a
        day they are full, are skipped.

        Raises:
            StaffNotFound: Unknown staff name
            StaffUnavailable: Staff member is on leave
        """
        staff = await self._store.find_staff(owner_id, name=staff_name)
        if staff is None:
            raise StaffNotFound(staff_name)
        if not staff.is_available:
            raise StaffUnavailable(staff.name, staff.status.value)

        service = await self._store.find_service(owner_id, staff.service_type)
        if service is None:
            return None

        async with self._locks.hold(service_lock_key(owner_id, service.id)):
            for candidate in await self.waiting_queue(owner_id, service.id):
                prior_position = candidate.queue_position
                claim = await self._allocator.claim(
                    staff,
                    candidate.day,
                    candidate.start_time,
                    candidate.end_time,
                    self._scheduler_for(candidate),
                )
                if claim.booked:
                    return await self._finish_promotion(
                        candidate, claim, "assigned from queue", prior_position
                    )

        logger.info(f"No eligible waiting appointment for staff '{staff.name}'")
        return None

    # === Internals ===

    async def _reload(
        self,
        appointment: Appointment,
        target: AppointmentStatus,
    ) -> Appointment:
        """Re-read under the lock and re-check the transition."""
        current = await self._store.find_appointment(
            AppointmentFilter(owner_id=appointment.owner_id, appointment_id=appointment.id)
        )
        if current is None:
            raise AppointmentNotFound(appointment.id)
        if not can_transition(current.status, target):
            raise InvalidStatusTransition(current.status.value, target.value)
        return current

    def _scheduler_for(self, candidate: Appointment):
        """Build the write that moves ``candidate`` onto a staff member."""

        async def write(staff: Staff) -> Appointment:
            return await self._store.update_appointment(
                candidate.id,
                {
                    "status": AppointmentStatus.SCHEDULED,
                    "staff_id": staff.id,
                    "staff_name": staff.name,
                    "queue_position": 0,
                },
            )

        return write

    async def _promote(
        self,
        owner_id: uuid.UUID,
        service_id: uuid.UUID,
        freed_staff_id: Optional[uuid.UUID],
    ) -> Optional[Appointment]:
        freed_staff = None
        if freed_staff_id is not None:
            freed_staff = await self._store.find_staff(owner_id, staff_id=freed_staff_id)

        for candidate in await self.waiting_queue(owner_id, service_id):
            # Snapshot: the write below mutates the record in some stores
            prior_position = candidate.queue_position
            write = self._scheduler_for(candidate)
            claim: Optional[StaffClaim] = None

            if freed_staff is not None:
                claim = await self._allocator.claim(
                    freed_staff,
                    candidate.day,
                    candidate.start_time,
                    candidate.end_time,
                    write,
                )
                if not claim.booked:
                    claim = None

            if claim is None:
                claim = await self._allocator.first_fit(
                    owner_id,
                    candidate.service_name,
                    candidate.day,
                    candidate.start_time,
                    candidate.end_time,
                    write,
                    skip_staff_id=freed_staff_id,
                )

            if claim is not None:
                return await self._finish_promotion(
                    candidate, claim, "promoted from queue", prior_position
                )

        logger.debug(f"No eligible waiting appointment for service {service_id}")
        return None

    async def _finish_promotion(
        self,
        candidate: Appointment,
        claim: StaffClaim,
        verb: str,
        position: int,
    ) -> Appointment:
        await self.close_gap(candidate.owner_id, candidate.service_id, position)
        promoted = claim.appointment
        logger.info(
            f"Appointment {promoted.id} {verb} to '{claim.staff.name}' "
            f"(was position {position})"
        )
        self._activity.log_event(
            promoted.owner_id,
            f'Appointment for "{promoted.customer_name}" {verb} to {claim.staff.name}',
        )
        return promoted
