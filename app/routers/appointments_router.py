from dataclasses import replace
from typing import Callable
from fastapi import APIRouter, Depends, Request
import asyncio
import logging

from ..application.ports.appointments_repo import AppointmentDto
from ..application.services.appointments_service import AppointmentsService, TransitionResult
from ..application.services.event_handlers import StatusChangeHandler
from ..exceptions import InvalidTransition, PreconditionStale
from ..schemas.appointments.appointment import (
    AppointmentResponse,
    CancelAppointmentRequest,
    StatusChangedRequest,
    StatusChangedResponse,
    TransitionResponse,
)
from ..utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/appointments", tags=["Appointments"])


def get_appointments_service(request: Request) -> AppointmentsService:
    return request.app.state.appointments_service


def get_status_change_handler(request: Request) -> StatusChangeHandler:
    return request.app.state.status_change_handler


def _appointment_response(appt: AppointmentDto) -> AppointmentResponse:
    return AppointmentResponse(
        id=appt.id,
        patient_id=appt.patient_id,
        doctor_id=appt.doctor_id,
        patient_name=appt.patient_name,
        doctor_name=appt.doctor_name,
        date_time=appt.date_time,
        appointment_type=appt.appointment_type.value,
        duration_minutes=appt.duration_minutes,
        status=appt.status.value,
        reminder_sent_one_hour=appt.reminder_sent_one_hour,
        reminder_sent_five_minutes=appt.reminder_sent_five_minutes,
        comments=appt.comments,
    )


def _to_response(appt: AppointmentDto, applied: bool) -> TransitionResponse:
    return TransitionResponse(applied=applied, appointment=_appointment_response(appt))


async def _transition(
    service: AppointmentsService,
    appointment_id: str,
    action: Callable[[AppointmentDto], TransitionResult],
) -> TransitionResponse:
    # Services do blocking I/O; AppointmentNotFound propagates to lifecycle_exception_handler
    appt = await asyncio.to_thread(service.get, appointment_id)
    try:
        applied = bool(await asyncio.to_thread(action, appt))
    except (InvalidTransition, PreconditionStale) as e:
        # Lost the race or nothing to do: report the current state, not an error
        logger.info(f"{e}; nothing applied")
        appt = await asyncio.to_thread(service.get, appointment_id)
        applied = False
    return _to_response(appt, applied)


@router.post("/{appointment_id}/confirm", response_model=TransitionResponse)
async def confirm_appointment(appointment_id: str, service: AppointmentsService = Depends(get_appointments_service)):
    return await _transition(service, appointment_id, service.confirm)


@router.post("/{appointment_id}/cancel", response_model=TransitionResponse)
async def cancel_appointment(
    appointment_id: str,
    body: CancelAppointmentRequest,
    service: AppointmentsService = Depends(get_appointments_service),
):
    return await _transition(service, appointment_id, lambda appt: service.cancel(appt, body.actor_id, body.reason))


@router.post("/{appointment_id}/complete", response_model=TransitionResponse)
async def complete_appointment(appointment_id: str, service: AppointmentsService = Depends(get_appointments_service)):
    return await _transition(service, appointment_id, lambda appt: service.complete(appt, utc_now()))


@router.post("/{appointment_id}/auto-cancel", response_model=TransitionResponse)
async def auto_cancel_appointment(appointment_id: str, service: AppointmentsService = Depends(get_appointments_service)):
    return await _transition(service, appointment_id, lambda appt: service.auto_cancel(appt, utc_now()))


@router.post("/{appointment_id}/status-changed", response_model=StatusChangedResponse)
async def appointment_status_changed(
    appointment_id: str,
    body: StatusChangedRequest,
    service: AppointmentsService = Depends(get_appointments_service),
    handler: StatusChangeHandler = Depends(get_status_change_handler),
):
    """Notify for a status write made outside this API (admin tools, data fixes)."""
    after = await asyncio.to_thread(service.get, appointment_id)
    before = replace(after, status=body.previous_status)
    results = await asyncio.to_thread(handler.on_status_changed, before, after, body.actor_id)
    return StatusChangedResponse(notified=sum(1 for r in results if r.ok), appointment=_appointment_response(after))
