"""Activity log API Endpoint."""

import uuid
from datetime import datetime

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from app.api.deps import get_booking_store, get_owner_id
from app.core.scheduling.store import AppointmentStore

router = APIRouter(prefix="/activity", tags=["Activity"])


class ActivityResponse(BaseModel):
    id: str
    message: str
    timestamp: datetime


@router.get(
    "",
    response_model=list[ActivityResponse],
    summary="Recent activity",
    description="Most recent booking activity first.",
)
async def list_activity(
    limit: int = Query(default=50, ge=1, le=500),
    owner_id: uuid.UUID = Depends(get_owner_id),
    store: AppointmentStore = Depends(get_booking_store),
) -> list[dict]:
    entries = await store.list_activity(owner_id, limit=limit)
    return [
        {"id": str(e.id), "message": e.message, "timestamp": e.timestamp}
        for e in entries
    ]
