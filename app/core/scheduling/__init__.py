"""
Scheduling Module

Provides the assignment engine, waiting queues, appointment lifecycle and
the store they run against.

Usage:
    from app.core.scheduling import (
        AssignmentRequest,
        get_assignment_engine,
        get_appointment_lifecycle,
    )

    # Book an appointment
    outcome = await get_assignment_engine().assign(
        owner_id,
        AssignmentRequest(
            customer_name="Jane Doe",
            service="Consultation",
            staff="Alice",
            start_time="10:00 AM",
            end_time="10:30 AM",
        ),
    )
    print(outcome.kind)  # assigned / reassigned / queued / conflict

    # Free the slot again
    await get_appointment_lifecycle().complete(owner_id, outcome.appointment.id)
"""

# Errors
from app.core.scheduling.errors import (
    BookingError,
    ValidationError,
    InvalidTimeFormat,
    InvalidTimeRange,
    StaffNotFound,
    ServiceNotFound,
    AppointmentNotFound,
    StaffUnavailable,
    StaffInUse,
    InvalidStatusTransition,
    StoreUnavailable,
)

# Store
from app.core.scheduling.store import (
    AppointmentFilter,
    AppointmentStore,
    SqlAppointmentStore,
    InMemoryAppointmentStore,
    get_store,
)

# Building blocks

from app.core.scheduling.availability import AvailabilityEvaluator, StaffLoad
from app.core.scheduling.timewindow import parse_time, parse_window, day_of, windows_overlap
from app.core.scheduling.conflicts import ConflictDetector
from app.core.scheduling.locks import BookingLocks, get_booking_locks
from app.core.scheduling.activity import ActivityLog
from app.core.scheduling.queue import QueueManager

# Assignment Engine (main orchestrator)
from app.core.scheduling.engine import (
    AssignmentEngine,
    AssignmentRequest,
    AssignmentOutcome,
    OutcomeKind,
    get_assignment_engine,
)

# Lifecycle
from app.core.scheduling.lifecycle import (
    AppointmentLifecycle,
    StatusChange,
    get_appointment_lifecycle,
)

__all__ = [
    # Errors
    "BookingError",
    "ValidationError",
    "InvalidTimeFormat",
    "InvalidTimeRange",
    "StaffNotFound",
    "ServiceNotFound",
    "AppointmentNotFound",
    "StaffUnavailable",
    "StaffInUse",
    "InvalidStatusTransition",
    "StoreUnavailable",
    # Store
    "AppointmentFilter",
    "AppointmentStore",
    "SqlAppointmentStore",
    "InMemoryAppointmentStore",
    "get_store",
    # Building blocks
    "parse_time",
    "parse_window",
    "day_of",
    "AvailabilityEvaluator",
    "StaffLoad",
    "ConflictDetector",
    "windows_overlap",
    "BookingLocks",
    "get_booking_locks",
    "ActivityLog",
    "QueueManager",
    # Assignment Engine
    "AssignmentEngine",
    "AssignmentRequest",
    "AssignmentOutcome",
    "OutcomeKind",
    "get_assignment_engine",
    # Lifecycle
    "AppointmentLifecycle",
    "StatusChange",
    "get_appointment_lifecycle",
]
