"""
Appointment store.

The durable record of appointments, staff, services and activity that
the scheduling core reads and writes. Two implementations:

- SqlAppointmentStore: async SQLAlchemy, one short transaction per call
- InMemoryAppointmentStore: process-local dicts, for development and tests

Select one with STORE_BACKEND (see app.config).
"""

import asyncio
import logging
import uuid
from abc import ABC, abstractmethod
from dataclasses import dataclass
from datetime import date, datetime, timezone
from typing import Any, Awaitable, Callable, Iterable, Optional, TypeVar

from sqlalchemy import delete, func, select
from sqlalchemy.exc import InterfaceError, OperationalError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.scheduling.errors import AppointmentNotFound, StoreUnavailable
from app.core.scheduling.timewindow import windows_overlap
from app.models.database import (
    ActivityLog,
    Appointment,
    AppointmentStatus,
    Service,
    Staff,
    StaffStatus,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _utcnow() -> datetime:
    """Current UTC time as a naive datetime (matches the DateTime columns)."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


@dataclass
class AppointmentFilter:
    """Query parameters for appointment lookups.

    Every field is optional; set fields are combined with AND.
    """

    owner_id: Optional[uuid.UUID] = None
    appointment_id: Optional[uuid.UUID] = None
    staff_id: Optional[uuid.UUID] = None
    service_id: Optional[uuid.UUID] = None
    day: Optional[date] = None
    statuses: Optional[Iterable[AppointmentStatus]] = None
    # Half-open window [start, end) that matching appointments must overlap
    overlaps: Optional[tuple[datetime, datetime]] = None
    exclude_id: Optional[uuid.UUID] = None
    queue_position_above: Optional[int] = None
    order_by: str = "start_time"

    def matches(self, appointment: Appointment) -> bool:
        """Evaluate the filter against a single appointment."""
        if self.owner_id is not None and appointment.owner_id != self.owner_id:
            return False
        if self.appointment_id is not None and appointment.id != self.appointment_id:
            return False
        if self.staff_id is not None and appointment.staff_id != self.staff_id:
            return False
        if self.service_id is not None and appointment.service_id != self.service_id:
            return False
        if self.day is not None and appointment.day != self.day:
            return False
        if self.statuses is not None and appointment.status not in set(self.statuses):
            return False
        if self.overlaps is not None:
            start, end = self.overlaps
            if not windows_overlap(appointment.start_time, appointment.end_time, start, end):
                return False
        if self.exclude_id is not None and appointment.id == self.exclude_id:
            return False
        if (
            self.queue_position_above is not None
            and appointment.queue_position <= self.queue_position_above
        ):
            return False
        return True

    def sort_key(self, appointment: Appointment) -> tuple:
        if self.order_by == "queue_position":
            return (appointment.service_name, appointment.queue_position, appointment.start_time)
        return (appointment.start_time, appointment.created_at or datetime.min)

    def where(self) -> list:
        """Build SQLAlchemy WHERE clauses."""
        clauses = []
        if self.owner_id is not None:
            clauses.append(Appointment.owner_id == self.owner_id)
        if self.appointment_id is not None:
            clauses.append(Appointment.id == self.appointment_id)
        if self.staff_id is not None:
            clauses.append(Appointment.staff_id == self.staff_id)
        if self.service_id is not None:
            clauses.append(Appointment.service_id == self.service_id)
        if self.day is not None:
            clauses.append(Appointment.day == self.day)
        if self.statuses is not None:
            clauses.append(Appointment.status.in_(list(self.statuses)))
        if self.overlaps is not None:
            start, end = self.overlaps
            clauses.append(Appointment.start_time < end)
            clauses.append(Appointment.end_time > start)
        if self.exclude_id is not None:
            clauses.append(Appointment.id != self.exclude_id)
        if self.queue_position_above is not None:
            clauses.append(Appointment.queue_position > self.queue_position_above)
        return clauses

    def order_clauses(self) -> list:
        if self.order_by == "queue_position":
            return [Appointment.service_name, Appointment.queue_position, Appointment.start_time]
        return [Appointment.start_time, Appointment.created_at]


class AppointmentStore(ABC):
    """Persistence interface consumed by the scheduling core."""

    # === Appointments ===

    @abstractmethod
    async def count_appointments(self, query: AppointmentFilter) -> int:
        ...

    @abstractmethod
    async def find_appointment(self, query: AppointmentFilter) -> Optional[Appointment]:
        """Return the first appointment matching ``query`` in its order."""

    @abstractmethod
    async def list_appointments(self, query: AppointmentFilter) -> list[Appointment]:
        ...

    @abstractmethod
    async def create_appointment(self, appointment: Appointment) -> Appointment:
        ...

    @abstractmethod
    async def update_appointment(
        self,
        appointment_id: uuid.UUID,
        patch: dict[str, Any],
    ) -> Appointment:
        ...

    @abstractmethod
    async def delete_appointment(self, appointment_id: uuid.UUID) -> Optional[Appointment]:
        ...

    # === Staff ===

    @abstractmethod
    async def find_staff(
        self,
        owner_id: uuid.UUID,
        name: Optional[str] = None,
        staff_id: Optional[uuid.UUID] = None,
    ) -> Optional[Staff]:
        ...

    @abstractmethod
    async def list_staff(
        self,
        owner_id: uuid.UUID,
        service_type: Optional[str] = None,
        status: Optional[StaffStatus] = None,
    ) -> list[Staff]:
        """List staff ordered by name ascending."""

    @abstractmethod
    async def create_staff(self, staff: Staff) -> Staff:
        ...

    @abstractmethod
    async def delete_staff(self, owner_id: uuid.UUID, staff_id: uuid.UUID) -> bool:
        ...

    # === Services ===

    @abstractmethod
    async def find_service(self, owner_id: uuid.UUID, name: str) -> Optional[Service]:
        ...

    @abstractmethod
    async def list_services(self, owner_id: uuid.UUID) -> list[Service]:
        ...

    @abstractmethod
    async def create_service(self, service: Service) -> Service:
        ...

    # === Activity ===

    @abstractmethod
    async def record_activity(self, owner_id: uuid.UUID, message: str) -> ActivityLog:
        ...

    @abstractmethod
    async def list_activity(self, owner_id: uuid.UUID, limit: int = 50) -> list[ActivityLog]:
        """Most recent entries first."""


class SqlAppointmentStore(AppointmentStore):
    """
    Async SQLAlchemy store.

    Each call runs in its own short transaction. Connection failures and
    calls exceeding ``timeout`` are raised as StoreUnavailable.
    """

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        timeout: Optional[float] = None,
    ):
        self._session_factory = session_factory
        self._timeout = timeout or settings.store_timeout_seconds

    async def _run(self, operation: Callable[[AsyncSession], Awaitable[T]]) -> T:
        async def _execute() -> T:
            async with self._session_factory() as session:
                async with session.begin():
                    return await operation(session)

        try:
            return await asyncio.wait_for(_execute(), timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.error(f"Store operation timed out after {self._timeout}s")
            raise StoreUnavailable() from e
        except (OperationalError, InterfaceError, OSError) as e:
            logger.error(f"Store operation failed: {e}")
            raise StoreUnavailable() from e

    async def count_appointments(self, query: AppointmentFilter) -> int:
        async def op(session: AsyncSession) -> int:
            stmt = select(func.count()).select_from(Appointment).where(*query.where())
            return (await session.execute(stmt)).scalar_one()

        return await self._run(op)

    async def find_appointment(self, query: AppointmentFilter) -> Optional[Appointment]:
        async def op(session: AsyncSession) -> Optional[Appointment]:
            stmt = (
                select(Appointment)
                .where(*query.where())
                .order_by(*query.order_clauses())
                .limit(1)
            )
            return (await session.execute(stmt)).scalars().first()

        return await self._run(op)

    async def list_appointments(self, query: AppointmentFilter) -> list[Appointment]:
        async def op(session: AsyncSession) -> list[Appointment]:
            stmt = select(Appointment).where(*query.where()).order_by(*query.order_clauses())
            return list((await session.execute(stmt)).scalars().all())

        return await self._run(op)

    async def create_appointment(self, appointment: Appointment) -> Appointment:
        async def op(session: AsyncSession) -> Appointment:
            if appointment.id is None:
                appointment.id = uuid.uuid4()
            now = _utcnow()
            appointment.created_at = now
            appointment.updated_at = now
            session.add(appointment)
            await session.flush()
            return appointment

        return await self._run(op)

    async def update_appointment(
        self,
        appointment_id: uuid.UUID,
        patch: dict[str, Any],
    ) -> Appointment:
        async def op(session: AsyncSession) -> Appointment:
            appointment = await session.get(Appointment, appointment_id)
            if appointment is None:
                raise AppointmentNotFound(appointment_id)
            for field_name, value in patch.items():
                setattr(appointment, field_name, value)
            appointment.updated_at = _utcnow()
            await session.flush()
            return appointment

        return await self._run(op)

    async def delete_appointment(self, appointment_id: uuid.UUID) -> Optional[Appointment]:
        async def op(session: AsyncSession) -> Optional[Appointment]:
            appointment = await session.get(Appointment, appointment_id)
            if appointment is not None:
                await session.delete(appointment)
            return appointment

        return await self._run(op)

    async def find_staff(
        self,
        owner_id: uuid.UUID,
        name: Optional[str] = None,
        staff_id: Optional[uuid.UUID] = None,
    ) -> Optional[Staff]:
        async def op(session: AsyncSession) -> Optional[Staff]:
            stmt = select(Staff).where(Staff.owner_id == owner_id)
            if name is not None:
                stmt = stmt.where(Staff.name == name)
            if staff_id is not None:
                stmt = stmt.where(Staff.id == staff_id)
            stmt = stmt.order_by(Staff.name, Staff.created_at).limit(1)
            return (await session.execute(stmt)).scalars().first()

        return await self._run(op)

    async def list_staff(
        self,
        owner_id: uuid.UUID,
        service_type: Optional[str] = None,
        status: Optional[StaffStatus] = None,
    ) -> list[Staff]:
        async def op(session: AsyncSession) -> list[Staff]:
            stmt = select(Staff).where(Staff.owner_id == owner_id)
            if service_type is not None:
                stmt = stmt.where(Staff.service_type == service_type)
            if status is not None:
                stmt = stmt.where(Staff.status == status)
            stmt = stmt.order_by(Staff.name, Staff.id)
            return list((await session.execute(stmt)).scalars().all())

        return await self._run(op)

    async def create_staff(self, staff: Staff) -> Staff:
        async def op(session: AsyncSession) -> Staff:
            now = _utcnow()
            staff.created_at = now
            staff.updated_at = now
            session.add(staff)
            await session.flush()
            return staff

        return await self._run(op)

    async def delete_staff(self, owner_id: uuid.UUID, staff_id: uuid.UUID) -> bool:
        async def op(session: AsyncSession) -> bool:
            result = await session.execute(
                delete(Staff).where(Staff.owner_id == owner_id, Staff.id == staff_id)
            )
            return result.rowcount > 0

        return await self._run(op)

    async def find_service(self, owner_id: uuid.UUID, name: str) -> Optional[Service]:
        async def op(session: AsyncSession) -> Optional[Service]:
            stmt = (
                select(Service)
                .where(Service.owner_id == owner_id, Service.name == name)
                .order_by(Service.created_at)
                .limit(1)
            )
            return (await session.execute(stmt)).scalars().first()

        return await self._run(op)

    async def list_services(self, owner_id: uuid.UUID) -> list[Service]:
        async def op(session: AsyncSession) -> list[Service]:
            stmt = select(Service).where(Service.owner_id == owner_id).order_by(Service.name)
            return list((await session.execute(stmt)).scalars().all())

        return await self._run(op)

    async def create_service(self, service: Service) -> Service:
        async def op(session: AsyncSession) -> Service:
            now = _utcnow()
            service.created_at = now
            service.updated_at = now
            session.add(service)
            await session.flush()
            return service

        return await self._run(op)

    async def record_activity(self, owner_id: uuid.UUID, message: str) -> ActivityLog:
        async def op(session: AsyncSession) -> ActivityLog:
            entry = ActivityLog(owner_id=owner_id, message=message, timestamp=_utcnow())
            session.add(entry)
            await session.flush()
            return entry

        return await self._run(op)

    async def list_activity(self, owner_id: uuid.UUID, limit: int = 50) -> list[ActivityLog]:
        async def op(session: AsyncSession) -> list[ActivityLog]:
            stmt = (
                select(ActivityLog)
                .where(ActivityLog.owner_id == owner_id)
                .order_by(ActivityLog.timestamp.desc())
                .limit(limit)
            )
            return list((await session.execute(stmt)).scalars().all())

        return await self._run(op)


class InMemoryAppointmentStore(AppointmentStore):
    """
    Process-local store.

    Records live in dicts keyed by id. Nothing survives a restart; use it
    for development and tests only.
    """

    def __init__(self):
        self._appointments: dict[uuid.UUID, Appointment] = {}
        self._staff: dict[uuid.UUID, Staff] = {}
        self._services: dict[uuid.UUID, Service] = {}
        self._activity: list[ActivityLog] = []

    def _select(self, query: AppointmentFilter) -> list[Appointment]:
        found = [a for a in self._appointments.values() if query.matches(a)]
        return sorted(found, key=query.sort_key)

    async def count_appointments(self, query: AppointmentFilter) -> int:
        return len(self._select(query))

    async def find_appointment(self, query: AppointmentFilter) -> Optional[Appointment]:
        found = self._select(query)
        return found[0] if found else None

    async def list_appointments(self, query: AppointmentFilter) -> list[Appointment]:
        return self._select(query)

    async def create_appointment(self, appointment: Appointment) -> Appointment:
        if appointment.id is None:
            appointment.id = uuid.uuid4()
        if appointment.queue_position is None:
            appointment.queue_position = 0
        now = _utcnow()
        appointment.created_at = now
        appointment.updated_at = now
        self._appointments[appointment.id] = appointment
        return appointment

    async def update_appointment(
        self,
        appointment_id: uuid.UUID,
        patch: dict[str, Any],
    ) -> Appointment:
        appointment = self._appointments.get(appointment_id)
        if appointment is None:
            raise AppointmentNotFound(appointment_id)
        for field_name, value in patch.items():
            setattr(appointment, field_name, value)
        appointment.updated_at = _utcnow()
        return appointment

    async def delete_appointment(self, appointment_id: uuid.UUID) -> Optional[Appointment]:
        return self._appointments.pop(appointment_id, None)

    async def find_staff(
        self,
        owner_id: uuid.UUID,
        name: Optional[str] = None,
        staff_id: Optional[uuid.UUID] = None,
    ) -> Optional[Staff]:
        for staff in await self.list_staff(owner_id):
            if name is not None and staff.name != name:
                continue
            if staff_id is not None and staff.id != staff_id:
                continue
            return staff
        return None

    async def list_staff(
        self,
        owner_id: uuid.UUID,
        service_type: Optional[str] = None,
        status: Optional[StaffStatus] = None,
    ) -> list[Staff]:
        found = [
            s for s in self._staff.values()
            if s.owner_id == owner_id
            and (service_type is None or s.service_type == service_type)
            and (status is None or s.status == status)
        ]
        return sorted(found, key=lambda s: (s.name, str(s.id)))

    async def create_staff(self, staff: Staff) -> Staff:
        if staff.id is None:
            staff.id = uuid.uuid4()
        if staff.status is None:
            staff.status = StaffStatus.AVAILABLE
        if staff.daily_capacity is None:
            staff.daily_capacity = settings.default_daily_capacity
        staff.created_at = staff.updated_at = _utcnow()
        self._staff[staff.id] = staff
        return staff

    async def delete_staff(self, owner_id: uuid.UUID, staff_id: uuid.UUID) -> bool:
        staff = self._staff.get(staff_id)
        if staff is None or staff.owner_id != owner_id:
            return False
        del self._staff[staff_id]
        return True

    async def find_service(self, owner_id: uuid.UUID, name: str) -> Optional[Service]:
        for service in self._services.values():
            if service.owner_id == owner_id and service.name == name:
                return service
        return None

    async def list_services(self, owner_id: uuid.UUID) -> list[Service]:
        found = [s for s in self._services.values() if s.owner_id == owner_id]
        return sorted(found, key=lambda s: s.name)

    async def create_service(self, service: Service) -> Service:
        if service.id is None:
            service.id = uuid.uuid4()
        service.created_at = service.updated_at = _utcnow()
        self._services[service.id] = service
        return service

    async def record_activity(self, owner_id: uuid.UUID, message: str) -> ActivityLog:
        entry = ActivityLog(
            id=uuid.uuid4(),
            owner_id=owner_id,
            message=message,
            timestamp=_utcnow(),
        )
        self._activity.append(entry)
        return entry

    async def list_activity(self, owner_id: uuid.UUID, limit: int = 50) -> list[ActivityLog]:
        entries = [e for e in reversed(self._activity) if e.owner_id == owner_id]
        return entries[:limit]


# Singleton
_store: Optional[AppointmentStore] = None


def get_store() -> AppointmentStore:
    """Get the configured singleton store."""
    global _store
    if _store is None:
        if settings.store_backend == "memory":
            _store = InMemoryAppointmentStore()
        else:
            from app.infra.database import async_session_factory

            _store = SqlAppointmentStore(async_session_factory)
        logger.info(f"Using {settings.store_backend} appointment store")
    return _store
