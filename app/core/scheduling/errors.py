"""
Booking error taxonomy.

Every error raised on the decision path is a BookingError carrying the
HTTP status it maps to. Conflicts are not errors: they are returned as
an AssignmentOutcome so the caller can show the colliding appointment.
"""

from typing import Optional


class BookingError(Exception):
    """Base class for user-facing booking errors."""

    status_code: int = 400
    error_code: str = "booking_error"
    retryable: bool = False

    def __init__(self, message: str, detail: Optional[dict] = None):
        super().__init__(message)
        self.message = message
        self.detail = detail or {}

    def to_dict(self) -> dict:
        """Convert to dictionary for API response."""
        result = {"error": self.error_code, "detail": self.message}
        result.update(self.detail)
        return result


class ValidationError(BookingError):
    """One or more required fields are missing or malformed."""

    error_code = "validation_error"

    def __init__(self, fields: list[str]):
        self.fields = list(fields)
        super().__init__(
            "Validation failed",
            {"errors": [f"{name} is required" for name in self.fields]},
        )


class InvalidTimeFormat(BookingError):
    """A time value matched none of the accepted formats."""

    error_code = "invalid_time_format"

    def __init__(self, value: object):
        self.value = value
        super().__init__(
            f"Invalid time format: {value!r}",
            {"expected": "'H:MM AM/PM', 'H:MM' or an ISO-8601 timestamp"},
        )


class InvalidTimeRange(BookingError):
    """End time is not after start time."""

    error_code = "invalid_time_range"

    def __init__(self):
        super().__init__("End time must be after start time")


class StaffNotFound(BookingError):
    status_code = 404
    error_code = "staff_not_found"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Staff '{name}' not found")


class ServiceNotFound(BookingError):
    status_code = 404
    error_code = "service_not_found"

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Service '{name}' not found")


class AppointmentNotFound(BookingError):
    status_code = 404
    error_code = "appointment_not_found"

    def __init__(self, appointment_id: object):
        self.appointment_id = appointment_id
        super().__init__(f"Appointment '{appointment_id}' not found")


class StaffUnavailable(BookingError):
    """Staff member is on leave or has no capacity left."""

    status_code = 409
    error_code = "staff_unavailable"

    def __init__(self, name: str, reason: str):
        self.name = name
        super().__init__(f"Staff '{name}' is not available: {reason}")


class StaffInUse(BookingError):
    """Staff member still has scheduled appointments."""

    status_code = 409
    error_code = "staff_in_use"

    def __init__(self, name: str, scheduled: int):
        self.name = name
        super().__init__(
            f"Staff '{name}' still has {scheduled} scheduled appointment(s)",
            {"scheduled": scheduled},
        )


class InvalidStatusTransition(BookingError):
    status_code = 409
    error_code = "invalid_status_transition"

    def __init__(self, current: str, requested: str):
        super().__init__(
            f"Cannot change appointment status from {current} to {requested}",
            {"current": current, "requested": requested},
        )


class StoreUnavailable(BookingError):
    """Transient infrastructure fault. Safe to retry."""

    status_code = 503
    error_code = "store_unavailable"
    retryable = True

    def __init__(self, message: str = "Appointment store unavailable, please retry"):
        super().__init__(message)
