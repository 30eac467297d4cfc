"""
Assignment Engine - Main Orchestrator.

Decides the fate of a new appointment request: schedule it with the
requested staff member, reassign it to another eligible one, or put it
in the service's waiting queue.
"""

import logging
import uuid
from dataclasses import dataclass
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

from app.core.scheduling.activity import ActivityLog
from app.core.scheduling.allocation import StaffAllocator
from app.core.scheduling.availability import AvailabilityEvaluator, StaffLoad
from app.core.scheduling.conflicts import ConflictDetector
from app.core.scheduling.errors import ServiceNotFound, StaffInUse, StaffNotFound, ValidationError
from app.core.scheduling.locks import (
    BookingLocks,
    get_booking_locks,
    service_lock_key,
    staff_lock_key,
)
from app.core.scheduling.queue import QueueManager
from app.core.scheduling.store import AppointmentFilter, AppointmentStore, get_store
from app.core.scheduling.timewindow import TimeInput, day_of, parse_window
from app.models.database import Appointment, AppointmentStatus, Service, Staff

logger = logging.getLogger(__name__)


class OutcomeKind(str, Enum):
    """How a request was resolved."""

    ASSIGNED = "assigned"
    REASSIGNED = "reassigned"
    QUEUED = "queued"
    CONFLICT = "conflict"
    RESCHEDULED = "rescheduled"


@dataclass
class AssignmentRequest:
    """A booking request as received from the caller."""

    customer_name: Optional[str]
    service: Optional[str]
    start_time: Optional[TimeInput]
    end_time: Optional[TimeInput]
    staff: Optional[str] = None
    day: Optional[Union[str, date, datetime]] = None

    REQUIRED_FIELDS = ("customer_name", "service", "start_time", "end_time")

    def missing_fields(self) -> list[str]:
        """Every required field that is absent or blank."""
        missing = []
        for name in self.REQUIRED_FIELDS:
            value = getattr(self, name)
            if value is None or (isinstance(value, str) and not value.strip()):
                missing.append(name)
        return missing


@dataclass
class AssignmentOutcome:
    """Result of an assignment or reschedule decision."""

    kind: OutcomeKind
    appointment: Optional[Appointment] = None
    staff_name: Optional[str] = None
    requested_staff: Optional[str] = None
    queue_position: Optional[int] = None
    conflict: Optional[Appointment] = None

    @property
    def is_conflict(self) -> bool:
        return self.kind == OutcomeKind.CONFLICT

    @property
    def message(self) -> str:
        """User-facing summary of the decision."""
        if self.kind == OutcomeKind.ASSIGNED:
            return "Appointment created successfully"
        if self.kind == OutcomeKind.REASSIGNED:
            return (
                f"{self.requested_staff} is not available; "
                f"appointment assigned to {self.staff_name}"
            )
        if self.kind == OutcomeKind.QUEUED:
            return f"Added to waiting queue at position {self.queue_position}"
        if self.kind == OutcomeKind.RESCHEDULED:
            return "Appointment updated successfully"
        return (
            f"{self.staff_name} already has an appointment at this time. "
            f"Choose another time or staff."
        )

    def activity_message(self, customer_name: str) -> str:
        if self.kind == OutcomeKind.QUEUED:
            return (
                f'Appointment for "{customer_name}" added to queue '
                f"(Position: {self.queue_position})"
            )
        if self.kind == OutcomeKind.RESCHEDULED:
            return f'Appointment for "{customer_name}" updated'
        return f'Appointment for "{customer_name}" assigned to {self.staff_name}'

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        result = {"outcome": self.kind.value, "message": self.message}
        if self.appointment is not None:
            result["appointment"] = self.appointment.to_dict()
        if self.staff_name:
            result["staff"] = self.staff_name
        if self.requested_staff:
            result["requested_staff"] = self.requested_staff
        if self.queue_position is not None:
            result["queue_position"] = self.queue_position
        if self.conflict is not None:
            result["conflict"] = {
                "customer_name": self.conflict.customer_name,
                "start_time": self.conflict.start_time.isoformat(),
                "end_time": self.conflict.end_time.isoformat(),
                "time": (
                    f"{self.conflict.start_time:%H:%M} - {self.conflict.end_time:%H:%M}"
                ),
            }
        return result


class AssignmentEngine:
    """
    Orchestrates a booking decision.

    Order of preference:
    1. The requested staff member, if available and conflict-free
       (a conflict is returned to the caller, never queued)
    2. The first eligible, conflict-free staff member by name
    3. The service's waiting queue
    """

    def __init__(
        self,
        store: Optional[AppointmentStore] = None,
        locks: Optional[BookingLocks] = None,
        activity: Optional[ActivityLog] = None,
    ):
        """Initialize engine with optional dependencies.

        Args:
            store: Appointment store (defaults to the configured store)
            locks: Booking locks (defaults to the shared instance)
            activity: Activity log publisher
        """
        self.store = store or get_store()
        self.locks = locks or get_booking_locks()
        self.activity = activity or ActivityLog(self.store)
        self.availability = AvailabilityEvaluator(self.store)
        self.conflicts = ConflictDetector(self.store)
        self.allocator = StaffAllocator(self.store, self.availability, self.conflicts, self.locks)
        self.queue = QueueManager(self.store, self.allocator, self.locks, self.activity)

    async def assign(
        self,
        owner_id: uuid.UUID,
        request: AssignmentRequest,
    ) -> AssignmentOutcome:
        """Resolve a booking request.

        Args:
            owner_id: Administrator that owns the appointment
            request: The booking request

        Returns:
            AssignmentOutcome (assigned, reassigned, queued or conflict)

        Raises:
            ValidationError: Required fields missing
            InvalidTimeFormat / InvalidTimeRange: Bad time window
            ServiceNotFound / StaffNotFound: Unknown service or staff name
            StoreUnavailable: Store or lock backend failure
        """
        missing = request.missing_fields()
        if missing:
            raise ValidationError(missing)

        day = day_of(request.day)
        start, end = parse_window(request.start_time, request.end_time, day)
        customer_name = request.customer_name.strip()

        service = await self.store.find_service(owner_id, request.service.strip())
        if service is None:
            raise ServiceNotFound(request.service.strip())

        async def schedule(staff: Staff) -> Appointment:
            return await self.store.create_appointment(
                self._new_appointment(owner_id, customer_name, service, day, start, end, staff)
            )

        async with self.locks.hold(service_lock_key(owner_id, service.id)):
            outcome: Optional[AssignmentOutcome] = None
            requested: Optional[Staff] = None

            if request.staff and request.staff.strip():
                requested = await self.store.find_staff(owner_id, name=request.staff.strip())
                if requested is None:
                    raise StaffNotFound(request.staff.strip())

                claim = await self.allocator.claim(requested, day, start, end, schedule)
                if claim.conflict is not None:
                    logger.info(
                        f"Conflict for '{requested.name}' at {start:%Y-%m-%d %H:%M}-{end:%H:%M} "
                        f"with appointment {claim.conflict.id}"
                    )
                    return AssignmentOutcome(
                        kind=OutcomeKind.CONFLICT,
                        staff_name=requested.name,
                        conflict=claim.conflict,
                    )
                if claim.booked:
                    outcome = AssignmentOutcome(
                        kind=OutcomeKind.ASSIGNED,
                        appointment=claim.appointment,
                        staff_name=requested.name,
                    )
                else:
                    logger.info(
                        f"Requested staff '{requested.name}' unavailable on {day} "
                        f"({claim.load.current}/{claim.load.capacity}), searching others"
                    )

            if outcome is None:
                claim = await self.allocator.first_fit(
                    owner_id,
                    service.name,
                    day,
                    start,
                    end,
                    schedule,
                    skip_staff_id=requested.id if requested else None,
                )
                if claim is not None:
                    outcome = AssignmentOutcome(
                        kind=OutcomeKind.REASSIGNED if requested else OutcomeKind.ASSIGNED,
                        appointment=claim.appointment,
                        staff_name=claim.staff.name,
                        requested_staff=requested.name if requested else None,
                    )

            if outcome is None:
                position = await self.queue.next_position(owner_id, service.id)
                appointment = await self.store.create_appointment(
                    self._new_appointment(
                        owner_id, customer_name, service, day, start, end, None, position
                    )
                )
                outcome = AssignmentOutcome(
                    kind=OutcomeKind.QUEUED,
                    appointment=appointment,
                    queue_position=position,
                    requested_staff=requested.name if requested else None,
                )

        logger.info(
            f"Appointment {outcome.appointment.id} for '{customer_name}' "
            f"{outcome.kind.value} (staff={outcome.staff_name}, "
            f"position={outcome.queue_position})"
        )
        self.activity.log_event(owner_id, outcome.activity_message(customer_name))
        return outcome

    async def load(self, owner_id: uuid.UUID, staff_name: str, day: date) -> StaffLoad:
        """Current load of a staff member (see AvailabilityEvaluator.load)."""
        return await self.availability.load(owner_id, staff_name, day)

    async def available_staff(
        self,
        owner_id: uuid.UUID,
        service_name: str,
        day: date,
    ) -> list[StaffLoad]:
        """Eligible staff for a service on a day, by name ascending."""
        return await self.availability.eligible_staff(owner_id, service_name, day)

    async def remove_staff(self, owner_id: uuid.UUID, staff_id: uuid.UUID) -> Staff:
        """Delete a staff member who holds no scheduled appointments.

        Runs under the staff lock so no booking can land on them while
        the check and the delete happen.

        Raises:
            StaffNotFound: If the staff member does not exist for this owner
            StaffInUse: If they still have scheduled appointments
        """
        staff = await self.store.find_staff(owner_id, staff_id=staff_id)
        if staff is None:
            raise StaffNotFound(str(staff_id))

        async with self.locks.hold(staff_lock_key(staff.id)):
            scheduled = await self.store.count_appointments(
                AppointmentFilter(
                    owner_id=owner_id,
                    staff_id=staff.id,
                    statuses={AppointmentStatus.SCHEDULED},
                )
            )
            if scheduled:
                raise StaffInUse(staff.name, scheduled)
            if not await self.store.delete_staff(owner_id, staff.id):
                raise StaffNotFound(str(staff_id))

        logger.info(f"Staff '{staff.name}' ({staff.id}) removed for owner {owner_id}")
        return staff

    @staticmethod
    def _new_appointment(
        owner_id: uuid.UUID,
        customer_name: str,
        service: Service,
        day: date,
        start: datetime,
        end: datetime,
        staff: Optional[Staff],
        queue_position: int = 0,
    ) -> Appointment:
        return Appointment(
            id=uuid.uuid4(),
            owner_id=owner_id,
            customer_name=customer_name,
            service_id=service.id,
            service_name=service.name,
            staff_id=staff.id if staff else None,
            staff_name=staff.name if staff else None,
            day=day,
            start_time=start,
            end_time=end,
            status=AppointmentStatus.SCHEDULED if staff else AppointmentStatus.WAITING,
            queue_position=queue_position,
        )


# Singleton
_engine: Optional[AssignmentEngine] = None


def get_assignment_engine() -> AssignmentEngine:
    """Get singleton AssignmentEngine."""
    global _engine
    if _engine is None:
        _engine = AssignmentEngine()
    return _engine
