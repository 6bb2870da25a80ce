from fastapi import HTTPException, Request
from fastapi.responses import JSONResponse
from typing import Optional


class LifecycleError(Exception):
    """Base class for appointment lifecycle errors."""


class AppointmentNotFound(LifecycleError):
    def __init__(self, appointment_id: str):
        super().__init__(f"Appointment {appointment_id} not found")
        self.appointment_id = appointment_id


class InvalidTransition(LifecycleError):
    """Attempted transition violates the appointment state machine."""

    def __init__(self, appointment_id: str, current: str, target: str, reason: Optional[str] = None):
        message = f"Cannot move appointment {appointment_id} from {current} to {target}"
        if reason:
            message = f"{message}: {reason}"
        super().__init__(message)
        self.appointment_id = appointment_id
        self.current = current
        self.target = target


class PreconditionStale(LifecycleError):
    """Conditional write rejected because the record changed since it was read."""

    def __init__(self, appointment_id: str, expected: dict):
        super().__init__(f"Appointment {appointment_id} no longer matches {expected}")
        self.appointment_id = appointment_id
        self.expected = expected


class NotificationDeliveryFailed(LifecycleError):
    """Push delivery failed; the gateway falls back to an in-app record."""


class InvalidPushToken(NotificationDeliveryFailed):
    """The push provider rejected the token as unregistered or malformed."""


class FallbackWriteFailed(LifecycleError):
    """The durable in-app notification record could not be written."""


class AvailabilityConflict(LifecycleError):
    """Concurrent writers kept changing a doctor's availability for the day."""

    def __init__(self, doctor_id: str, day):
        super().__init__(f"Availability of doctor {doctor_id} on {day} kept changing, giving up")
        self.doctor_id = doctor_id
        self.day = day


def create_error_response(error_message: str, status_code: int = 400) -> dict:
    """Create a standardized error response"""
    return {
        "success": False,
        "data": None,
        "error": error_message
    }

async def http_exception_handler(request: Request, exc: HTTPException) -> JSONResponse:
    """Custom exception handler for HTTPException"""
    return JSONResponse(
        status_code=exc.status_code,
        content=create_error_response(exc.detail, exc.status_code)
    )

async def lifecycle_exception_handler(request: Request, exc: LifecycleError) -> JSONResponse:
    """Map lifecycle errors that escape a route onto HTTP status codes"""
    if isinstance(exc, AppointmentNotFound):
        status_code = 404
    elif isinstance(exc, AvailabilityConflict):
        status_code = 409
    else:
        status_code = 500
    return JSONResponse(
        status_code=status_code,
        content=create_error_response(str(exc), status_code)
    )
