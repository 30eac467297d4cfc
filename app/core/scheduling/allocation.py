"""
Staff allocation.

Claims a staff member for a window: capacity check, conflict check and
the write happen under that staff member's lock, so two requests can
never both see a free slot and both take it.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from typing import Awaitable, Callable, Optional

from app.core.scheduling.availability import AvailabilityEvaluator, StaffLoad
from app.core.scheduling.conflicts import ConflictDetector
from app.core.scheduling.locks import BookingLocks, staff_lock_key
from app.core.scheduling.store import AppointmentStore
from app.models.database import Appointment, Staff, StaffStatus

logger = logging.getLogger(__name__)

# Persists the appointment once a staff member has been secured
StaffWrite = Callable[[Staff], Awaitable[Appointment]]


@dataclass
class StaffClaim:
    """Result of trying to claim one staff member for a window."""

    staff: Staff
    load: StaffLoad
    appointment: Optional[Appointment] = None
    conflict: Optional[Appointment] = None

    @property
    def booked(self) -> bool:
        return self.appointment is not None

    @property
    def unavailable(self) -> bool:
        return not self.booked and self.conflict is None


class StaffAllocator:
    """First-fit staff allocation over the roster."""

    def __init__(
        self,
        store: AppointmentStore,
        availability: AvailabilityEvaluator,
        conflicts: ConflictDetector,
        locks: BookingLocks,
    ):
        self._store = store
        self._availability = availability
        self._conflicts = conflicts
        self._locks = locks

    async def claim(
        self,
        staff: Staff,
        day: date,
        start: datetime,
        end: datetime,
        write: StaffWrite,
        exclude_id: Optional[uuid.UUID] = None,
        check_capacity: bool = True,
    ) -> StaffClaim:
        """Try to book ``staff`` for [start, end) on ``day``.

        Args:
            staff: Staff member to claim
            day: Capacity bucket of the appointment
            start: Window start
            end: Window end
            write: Called with the staff member to persist the booking
            exclude_id: Appointment ignored by the conflict check
            check_capacity: False when the appointment is already counted
                in this staff member's load for ``day``

        Returns:
            StaffClaim with either the written appointment, the
            conflicting appointment, or neither (staff unavailable)
        """
        async with self._locks.hold(staff_lock_key(staff.id)):
            load = await self._availability.load_for(staff, day)

            if not staff.is_available or (check_capacity and not load.available):
                logger.debug(
                    f"Staff '{staff.name}' unavailable on {day}: "
                    f"{load.current}/{load.capacity}, status={staff.status.value}"
                )
                return StaffClaim(staff=staff, load=load)

            conflict = await self._conflicts.find_conflict(staff.id, start, end, exclude_id)
            if conflict is not None:
                return StaffClaim(staff=staff, load=load, conflict=conflict)

            appointment = await write(staff)
            return StaffClaim(staff=staff, load=load, appointment=appointment)

    async def first_fit(
        self,
        owner_id: uuid.UUID,
        service_name: str,
        day: date,
        start: datetime,
        end: datetime,
        write: StaffWrite,
        skip_staff_id: Optional[uuid.UUID] = None,
    ) -> Optional[StaffClaim]:
        """Book the first eligible, conflict-free staff member by name.

        No load balancing: the roster is scanned in name order and the
        first staff member that can take the window wins.
        """
        candidates = await self._store.list_staff(
            owner_id,
            service_type=service_name,
            status=StaffStatus.AVAILABLE,
        )
        for staff in candidates:
            if skip_staff_id is not None and staff.id == skip_staff_id:
                continue
            claim = await self.claim(staff, day, start, end, write)
            if claim.booked:
                return claim
        return None
