"""
Shared route dependencies.

Routes resolve the scheduling core through these functions so tests can
swap them with ``app.dependency_overrides``.
"""

import uuid

from fastapi import Header, HTTPException, status

from app.core.scheduling.engine import AssignmentEngine, get_assignment_engine
from app.core.scheduling.lifecycle import AppointmentLifecycle, get_appointment_lifecycle
from app.core.scheduling.store import AppointmentStore, get_store


async def get_owner_id(
    x_owner_id: str = Header(
        ...,
        alias="X-Owner-ID",
        description="Administrator that owns the records",
    ),
) -> uuid.UUID:
    """Owning administrator from the X-Owner-ID header."""
    try:
        return uuid.UUID(x_owner_id.strip())
    except ValueError:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="X-Owner-ID header must be a UUID",
        )


def get_engine() -> AssignmentEngine:
    return get_assignment_engine()


def get_lifecycle() -> AppointmentLifecycle:
    return get_appointment_lifecycle()


def get_booking_store() -> AppointmentStore:
    return get_store()
