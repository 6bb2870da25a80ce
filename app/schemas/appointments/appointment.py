# app/schemas/appointments/appointment.py
from pydantic import BaseModel, Field
from typing import Optional
from datetime import datetime

from ...application.ports.appointments_repo import AppointmentStatus


class CancelAppointmentRequest(BaseModel):
    actor_id: str = Field(min_length=1)
    reason: Optional[str] = Field(default=None, max_length=500)


class AppointmentResponse(BaseModel):
    id: str
    patient_id: str
    doctor_id: str
    patient_name: str
    doctor_name: str
    date_time: datetime
    appointment_type: str
    duration_minutes: int
    status: str
    reminder_sent_one_hour: bool
    reminder_sent_five_minutes: bool
    comments: str


class TransitionResponse(BaseModel):
    applied: bool  # false when the appointment was already in (or past) the target status
    appointment: AppointmentResponse


class StatusChangedRequest(BaseModel):
    # Status the record held before an external writer changed it
    previous_status: AppointmentStatus
    actor_id: Optional[str] = Field(default=None, min_length=1)


class StatusChangedResponse(BaseModel):
    notified: int
    appointment: AppointmentResponse
