"""Services API Endpoints."""

import logging
import uuid

from fastapi import APIRouter, Depends, HTTPException, status
from pydantic import BaseModel, Field, field_validator

from app.api.deps import get_booking_store, get_owner_id
from app.core.scheduling.store import AppointmentStore
from app.models.database import SERVICE_DURATIONS, Service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/services", tags=["Services"])


class ServiceCreateRequest(BaseModel):
    name: str = Field(..., min_length=1, max_length=100, examples=["Consultation"])
    duration: int = Field(..., description="Length in minutes")

    @field_validator("duration")
    @classmethod
    def check_duration(cls, value: int) -> int:
        if value not in SERVICE_DURATIONS:
            allowed = ", ".join(str(d) for d in SERVICE_DURATIONS)
            raise ValueError(f"duration must be one of {allowed} minutes")
        return value


class ServiceResponse(BaseModel):
    id: str
    name: str
    duration: int


def _service_dict(service: Service) -> dict:
    return {"id": str(service.id), "name": service.name, "duration": service.duration}


@router.post(
    "",
    response_model=ServiceResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Add a service",
    responses={409: {"description": "A service with this name already exists"}},
)
async def create_service(
    request: ServiceCreateRequest,
    owner_id: uuid.UUID = Depends(get_owner_id),
    store: AppointmentStore = Depends(get_booking_store),
) -> dict:
    name = request.name.strip()
    if await store.find_service(owner_id, name) is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail=f"Service '{name}' already exists",
        )

    service = await store.create_service(
        Service(id=uuid.uuid4(), owner_id=owner_id, name=name, duration=request.duration)
    )
    logger.info(f"Service '{service.name}' created for owner {owner_id}")
    return _service_dict(service)


@router.get("", response_model=list[ServiceResponse], summary="List services")
async def list_services(
    owner_id: uuid.UUID = Depends(get_owner_id),
    store: AppointmentStore = Depends(get_booking_store),
) -> list[dict]:
    return [_service_dict(s) for s in await store.list_services(owner_id)]
