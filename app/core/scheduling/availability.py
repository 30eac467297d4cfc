"""
Staff availability.

A staff member's load for a day is the number of their appointments on
that calendar day in a capacity-consuming status (Waiting, Scheduled,
Completed). They are available when not on leave and under capacity.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date
from typing import Optional

from app.core.scheduling.errors import StaffNotFound
from app.core.scheduling.store import AppointmentFilter, AppointmentStore
from app.models.database import LOAD_STATUSES, Staff, StaffStatus

logger = logging.getLogger(__name__)


@dataclass
class StaffLoad:
    """Capacity usage of one staff member on one day."""

    staff: Staff
    day: date
    current: int
    capacity: int
    available: bool

    @property
    def remaining(self) -> int:
        return max(0, self.capacity - self.current)

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        return {
            "staff": self.staff.name,
            "service_type": self.staff.service_type,
            "status": self.staff.status.value,
            "day": self.day.isoformat(),
            "current": self.current,
            "capacity": self.capacity,
            "available": self.available,
        }


class AvailabilityEvaluator:
    """Computes staff load against daily capacity."""

    def __init__(self, store: AppointmentStore):
        self._store = store

    async def load(self, owner_id: uuid.UUID, staff_name: str, day: date) -> StaffLoad:
        """Load for a staff member looked up by name.

        Raises:
            StaffNotFound: If the owner has no staff with that name
        """
        staff = await self._store.find_staff(owner_id, name=staff_name)
        if staff is None:
            raise StaffNotFound(staff_name)
        return await self.load_for(staff, day)

    async def load_for(self, staff: Staff, day: date) -> StaffLoad:
        """Load for an already resolved staff record."""
        current = await self._store.count_appointments(
            AppointmentFilter(staff_id=staff.id, day=day, statuses=LOAD_STATUSES)
        )
        available = staff.status == StaffStatus.AVAILABLE and current < staff.daily_capacity
        return StaffLoad(
            staff=staff,
            day=day,
            current=current,
            capacity=staff.daily_capacity,
            available=available,
        )

    async def eligible_staff(
        self,
        owner_id: uuid.UUID,
        service_name: str,
        day: date,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> list[StaffLoad]:
        """Staff able to take ``service_name`` on ``day``, by name ascending.

        Eligible means matching service type, marked available and under
        capacity.
        """
        candidates = await self._store.list_staff(
            owner_id,
            service_type=service_name,
            status=StaffStatus.AVAILABLE,
        )
        eligible = []
        for staff in candidates:
            if exclude_id is not None and staff.id == exclude_id:
                continue
            load = await self.load_for(staff, day)
            if load.available:
                eligible.append(load)
        logger.debug(
            f"{len(eligible)}/{len(candidates)} staff eligible for "
            f"'{service_name}' on {day}"
        )
        return eligible
