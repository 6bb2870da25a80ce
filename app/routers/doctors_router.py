from datetime import date
from fastapi import APIRouter, Depends, HTTPException, Query, Request
import asyncio
import logging

from ..application.services.availability_service import AvailabilityService
from ..core.config import settings
from ..schemas.doctors.availability import AvailabilityResponse, AvailabilityWindowRequest, BookableSlotsResponse
from ..utils import utc_now

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/doctors", tags=["Doctors"])


def get_availability_service(request: Request) -> AvailabilityService:
    return request.app.state.availability_service


@router.put("/{doctor_id}/availability/{day}", response_model=AvailabilityResponse)
async def set_availability(
    doctor_id: str,
    day: date,
    window: AvailabilityWindowRequest,
    service: AvailabilityService = Depends(get_availability_service),
):
    try:
        availability = await asyncio.to_thread(service.set_window, doctor_id, day, window.start_time, window.end_time)
    except ValueError as e:
        raise HTTPException(status_code=422, detail=str(e))
    return AvailabilityResponse(
        doctor_id=availability.doctor_id,
        date=availability.date,
        start_time=availability.start_time,
        end_time=availability.end_time,
        available_slots=availability.available_slots,
    )


@router.get("/{doctor_id}/availability/{day}/slots", response_model=BookableSlotsResponse)
async def get_bookable_slots(
    doctor_id: str,
    day: date,
    duration: int = Query(30, gt=0, le=480),
    service: AvailabilityService = Depends(get_availability_service),
):
    slots = await asyncio.to_thread(
        service.bookable_starts, doctor_id, day, duration, utc_now(), settings.BOOKING_LEAD_TIME_MINUTES
    )
    return BookableSlotsResponse(doctor_id=doctor_id, date=day, duration_minutes=duration, slots=slots)
