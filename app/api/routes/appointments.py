"""
Appointments API Endpoints.

Booking, queue and lifecycle operations for the owning administrator
named in the X-Owner-ID header. Booking errors are rendered by the
BookingError handler in app.main; conflicts are returned here as 409.
"""

import logging
import uuid
from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from app.api.deps import get_engine, get_lifecycle, get_owner_id
from app.core.scheduling.engine import AssignmentEngine, AssignmentOutcome, AssignmentRequest
from app.core.scheduling.errors import ServiceNotFound
from app.core.scheduling.lifecycle import AppointmentLifecycle
from app.models.database import AppointmentStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


class AppointmentCreateRequest(BaseModel):
    """Booking request.

    Required fields are optional here so that every missing one is
    reported together in a single 400 response.
    """

    customer_name: Optional[str] = Field(
        default=None,
        max_length=255,
        description="Customer the appointment is for",
        examples=["Jane Doe"],
    )
    service: Optional[str] = Field(
        default=None,
        description="Service name",
        examples=["Consultation"],
    )
    staff: Optional[str] = Field(
        default=None,
        description="Preferred staff member (optional)",
        examples=["Alice"],
    )
    day: Optional[str] = Field(
        default=None,
        description="Appointment day (ISO date); defaults to today",
        examples=["2025-01-15"],
    )
    start_time: Optional[str] = Field(
        default=None,
        description="Start: 'H:MM AM/PM', 'H:MM' or ISO-8601 timestamp",
        examples=["10:00 AM"],
    )
    end_time: Optional[str] = Field(
        default=None,
        description="End: same formats as start_time",
        examples=["10:30 AM"],
    )


class RescheduleRequest(BaseModel):
    """New window (and optionally staff) for an existing appointment."""

    start_time: str = Field(..., min_length=1, examples=["11:00 AM"])
    end_time: str = Field(..., min_length=1, examples=["11:30 AM"])
    day: Optional[str] = Field(default=None, description="Keeps the current day when omitted")
    staff: Optional[str] = Field(default=None, description="Move to this staff member")


class QueueAssignRequest(BaseModel):
    """Staff member pulling from the waiting queue."""

    staff: str = Field(..., min_length=1, examples=["Alice"])


class AppointmentResponse(BaseModel):
    """Appointment record."""

    id: str
    customer_name: str
    service: str
    staff: Optional[str] = None
    day: str
    start_time: str
    end_time: str
    status: str
    queue_position: int


class ConflictDetail(BaseModel):
    """The appointment a request collided with."""

    customer_name: str
    start_time: str
    end_time: str
    time: str


class OutcomeResponse(BaseModel):
    """Result of a booking or reschedule."""

    outcome: str = Field(..., description="assigned, reassigned, queued, rescheduled or conflict")
    message: str
    appointment: Optional[AppointmentResponse] = None
    staff: Optional[str] = None
    requested_staff: Optional[str] = None
    queue_position: Optional[int] = None
    conflict: Optional[ConflictDetail] = None


class StatusChangeResponse(BaseModel):
    """Result of a status transition."""

    appointment: AppointmentResponse
    promoted: Optional[AppointmentResponse] = Field(
        default=None,
        description="Waiting appointment promoted into the freed slot",
    )


class DeleteResponse(BaseModel):
    deleted: str
    promoted: Optional[AppointmentResponse] = None


class ErrorResponse(BaseModel):
    """Error response."""

    error: str
    detail: Optional[str] = None


def _outcome_response(outcome: AssignmentOutcome, success_code: int):
    if outcome.is_conflict:
        return JSONResponse(
            status_code=status.HTTP_409_CONFLICT,
            content=outcome.to_dict(),
        )
    return JSONResponse(status_code=success_code, content=outcome.to_dict())


def _parse_status(value: Optional[str]) -> Optional[AppointmentStatus]:
    if value is None:
        return None
    try:
        return AppointmentStatus(value)
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Unknown status '{value}'",
        )


@router.post(
    "",
    response_model=OutcomeResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Book an appointment",
    description=(
        "Assigns the requested staff member, reassigns to another eligible "
        "one, or queues the appointment."
    ),
    responses={
        201: {"description": "Assigned, reassigned or queued"},
        400: {"model": ErrorResponse, "description": "Missing fields or bad time window"},
        404: {"model": ErrorResponse, "description": "Unknown staff or service"},
        409: {"model": OutcomeResponse, "description": "Requested staff is booked at this time"},
        503: {"model": ErrorResponse, "description": "Store unavailable, retry"},
    },
)
async def create_appointment(
    request: AppointmentCreateRequest,
    owner_id: uuid.UUID = Depends(get_owner_id),
    engine: AssignmentEngine = Depends(get_engine),
):
    """Book an appointment."""
    outcome = await engine.assign(
        owner_id,
        AssignmentRequest(
            customer_name=request.customer_name,
            service=request.service,
            staff=request.staff,
            day=request.day,
            start_time=request.start_time,
            end_time=request.end_time,
        ),
    )
    return _outcome_response(outcome, status.HTTP_201_CREATED)


@router.get(
    "",
    response_model=list[AppointmentResponse],
    summary="List appointments",
)
async def list_appointments(
    day: Optional[date] = Query(default=None, description="Only this day"),
    status_filter: Optional[str] = Query(
        default=None,
        alias="status",
        description="Only this status (e.g. Scheduled, Waiting)",
    ),
    owner_id: uuid.UUID = Depends(get_owner_id),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> list[dict]:
    """Appointments ordered by start time."""
    appointments = await lifecycle.list_appointments(
        owner_id, day=day, status=_parse_status(status_filter)
    )
    return [a.to_dict() for a in appointments]


@router.get(
    "/queue",
    response_model=list[AppointmentResponse],
    summary="Waiting queue",
    description="Waiting appointments ordered by service, then queue position.",
)
async def waiting_queue(
    service: Optional[str] = Query(default=None, description="Only this service"),
    owner_id: uuid.UUID = Depends(get_owner_id),
    engine: AssignmentEngine = Depends(get_engine),
) -> list[dict]:
    service_id = None
    if service:
        record = await engine.store.find_service(owner_id, service)
        if record is None:
            raise ServiceNotFound(service)
        service_id = record.id
    waiting = await engine.queue.waiting_queue(owner_id, service_id)
    return [a.to_dict() for a in waiting]


@router.post(
    "/queue/assign",
    response_model=AppointmentResponse,
    summary="Assign from queue",
    description="The named staff member takes the earliest waiting appointment they can serve.",
    responses={
        404: {"model": ErrorResponse, "description": "Unknown staff or nothing eligible"},
        409: {"model": ErrorResponse, "description": "Staff member is on leave"},
    },
)
async def assign_from_queue(
    request: QueueAssignRequest,
    owner_id: uuid.UUID = Depends(get_owner_id),
    engine: AssignmentEngine = Depends(get_engine),
) -> dict:
    appointment = await engine.queue.assign_from_queue(owner_id, request.staff.strip())
    if appointment is None:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="No eligible waiting appointment",
        )
    return appointment.to_dict()


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    summary="Get an appointment",
    responses={404: {"model": ErrorResponse, "description": "Appointment not found"}},
)
async def get_appointment(
    appointment_id: uuid.UUID,
    owner_id: uuid.UUID = Depends(get_owner_id),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> dict:
    appointment = await lifecycle.get(owner_id, appointment_id)
    return appointment.to_dict()


@router.put(
    "/{appointment_id}",
    response_model=OutcomeResponse,
    summary="Reschedule an appointment",
    responses={
        404: {"model": ErrorResponse, "description": "Appointment or staff not found"},
        409: {"description": "Conflict, staff unavailable or appointment already closed"},
    },
)
async def reschedule_appointment(
    appointment_id: uuid.UUID,
    request: RescheduleRequest,
    owner_id: uuid.UUID = Depends(get_owner_id),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
):
    outcome = await lifecycle.reschedule(
        owner_id,
        appointment_id,
        request.start_time,
        request.end_time,
        day=request.day,
        staff_name=request.staff,
    )
    return _outcome_response(outcome, status.HTTP_200_OK)


@router.post(
    "/{appointment_id}/complete",
    response_model=StatusChangeResponse,
    summary="Complete an appointment",
    description="Marks the appointment Completed and promotes the next waiting entry.",
)
async def complete_appointment(
    appointment_id: uuid.UUID,
    owner_id: uuid.UUID = Depends(get_owner_id),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> dict:
    change = await lifecycle.complete(owner_id, appointment_id)
    return change.to_dict()


@router.post(
    "/{appointment_id}/cancel",
    response_model=StatusChangeResponse,
    summary="Cancel an appointment",
    description="Cancels the appointment, closes its queue gap and fills its slot.",
)
async def cancel_appointment(
    appointment_id: uuid.UUID,
    owner_id: uuid.UUID = Depends(get_owner_id),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> dict:
    change = await lifecycle.cancel(owner_id, appointment_id)
    return change.to_dict()


@router.post(
    "/{appointment_id}/no-show",
    response_model=StatusChangeResponse,
    summary="Mark a no-show",
)
async def no_show_appointment(
    appointment_id: uuid.UUID,
    owner_id: uuid.UUID = Depends(get_owner_id),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> dict:
    change = await lifecycle.mark_no_show(owner_id, appointment_id)
    return change.to_dict()


@router.delete(
    "/{appointment_id}",
    response_model=DeleteResponse,
    summary="Delete an appointment",
    description="Removes the appointment for good and renumbers its queue.",
)
async def delete_appointment(
    appointment_id: uuid.UUID,
    owner_id: uuid.UUID = Depends(get_owner_id),
    lifecycle: AppointmentLifecycle = Depends(get_lifecycle),
) -> dict:
    promoted = await lifecycle.delete(owner_id, appointment_id)
    return {
        "deleted": str(appointment_id),
        "promoted": promoted.to_dict() if promoted else None,
    }
