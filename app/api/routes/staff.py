"""
Staff API Endpoints.

Roster management plus load and availability lookups.
"""

import logging
import uuid
from datetime import date
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, status
from pydantic import BaseModel, Field

from app.api.deps import get_booking_store, get_engine, get_owner_id
from app.config import settings
from app.core.scheduling.engine import AssignmentEngine
from app.core.scheduling.store import AppointmentStore
from app.core.scheduling.timewindow import day_of
from app.models.database import Staff, StaffStatus

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/staff", tags=["Staff"])


class StaffCreateRequest(BaseModel):
    """New staff member."""

    name: str = Field(..., min_length=1, max_length=100, examples=["Alice"])
    service_type: str = Field(
        ...,
        min_length=1,
        max_length=100,
        description="Name of the service this staff member provides",
        examples=["Consultation"],
    )
    daily_capacity: Optional[int] = Field(
        default=None,
        gt=0,
        description="Maximum appointments per day (defaults to DEFAULT_DAILY_CAPACITY)",
    )
    status: Literal["Available", "On Leave"] = "Available"


class StaffResponse(BaseModel):
    id: str
    name: str
    service_type: str
    daily_capacity: int
    status: str


class StaffLoadResponse(BaseModel):
    """Capacity usage of a staff member on a day."""

    staff: str
    service_type: str
    status: str
    day: str
    current: int
    capacity: int
    available: bool


def _staff_dict(staff: Staff) -> dict:
    return {
        "id": str(staff.id),
        "name": staff.name,
        "service_type": staff.service_type,
        "daily_capacity": staff.daily_capacity,
        "status": staff.status.value,
    }


@router.post(
    "",
    response_model=StaffResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a staff member",
    responses={409: {"description": "A staff member with this name already exists"}},
)
async def create_staff(
    request: StaffCreateRequest,
    owner_id: uuid.UUID = Depends(get_owner_id),
    store: AppointmentStore = Depends(get_booking_store),
) -> dict:
    name = request.name.strip()
    if await store.find_staff(owner_id, name=name) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Staff '{name}' already exists",
        )

    staff = await store.create_staff(
        Staff(
            id=uuid.uuid4(),
            owner_id=owner_id,
            name=name,
            service_type=request.service_type.strip(),
            daily_capacity=request.daily_capacity or settings.default_daily_capacity,
            status=StaffStatus(request.status),
        )
    )
    logger.info(f"Staff '{staff.name}' created for owner {owner_id}")
    return _staff_dict(staff)


@router.get(
    "",
    response_model=list[StaffResponse],
    summary="List staff",
)
async def list_staff(
    owner_id: uuid.UUID = Depends(get_owner_id),
    store: AppointmentStore = Depends(get_booking_store),
) -> list[dict]:
    return [_staff_dict(s) for s in await store.list_staff(owner_id)]


@router.get(
    "/available",
    response_model=list[StaffLoadResponse],
    summary="Available staff for a service",
    description="Staff providing the service who are not on leave and under capacity, by name.",
)
async def available_staff(
    service: str = Query(..., min_length=1, description="Service name"),
    day: Optional[date] = Query(default=None, description="Defaults to today"),
    owner_id: uuid.UUID = Depends(get_owner_id),
    engine: AssignmentEngine = Depends(get_engine),
) -> list[dict]:
    loads = await engine.available_staff(owner_id, service, day_of(day))
    return [load.to_dict() for load in loads]


@router.get(
    "/{name}/load",
    response_model=StaffLoadResponse,
    summary="Staff load",
    responses={404: {"description": "Staff not found"}},
)
async def staff_load(
    name: str,
    day: Optional[date] = Query(default=None, description="Defaults to today"),
    owner_id: uuid.UUID = Depends(get_owner_id),
    engine: AssignmentEngine = Depends(get_engine),
) -> dict:
    load = await engine.load(owner_id, name, day_of(day))
    return load.to_dict()


@router.delete(
    "/{staff_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    summary="Remove a staff member",
    responses={
        404: {"description": "Staff member not found"},
        409: {"description": "Staff member still has scheduled appointments"},
    },
)
async def delete_staff(
    staff_id: uuid.UUID,
    owner_id: uuid.UUID = Depends(get_owner_id),
    engine: AssignmentEngine = Depends(get_engine),
) -> None:
    await engine.remove_staff(owner_id, staff_id)
