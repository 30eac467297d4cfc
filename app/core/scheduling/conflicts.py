"""
Time conflict detection.

Windows are half-open: [start, end). Two windows overlap iff each starts
before the other ends, so back-to-back appointments never conflict.
Only Scheduled appointments occupy a staff member's calendar.
"""

import uuid
from datetime import datetime
from typing import Optional

from app.core.scheduling.store import AppointmentFilter, AppointmentStore
from app.models.database import Appointment, AppointmentStatus

BLOCKING_STATUSES = frozenset({AppointmentStatus.SCHEDULED})


class ConflictDetector:
    """Finds a scheduled appointment colliding with a proposed window."""

    def __init__(self, store: AppointmentStore):
        self._store = store

    async def find_conflict(
        self,
        staff_id: uuid.UUID,
        start: datetime,
        end: datetime,
        exclude_id: Optional[uuid.UUID] = None,
    ) -> Optional[Appointment]:
        """Return the earliest conflicting appointment, or None.

        Args:
            staff_id: Staff whose calendar is checked
            start: Proposed window start
            end: Proposed window end
            exclude_id: Appointment to ignore (the one being re-validated)
        """
        return await self._store.find_appointment(
            AppointmentFilter(
                staff_id=staff_id,
                statuses=BLOCKING_STATUSES,
                overlaps=(start, end),
                exclude_id=exclude_id,
            )
        )
