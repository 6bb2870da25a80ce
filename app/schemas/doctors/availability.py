# app/schemas/doctors/availability.py
from pydantic import BaseModel, model_validator
from typing import List
from datetime import date, datetime, time


class AvailabilityWindowRequest(BaseModel):
    start_time: time
    end_time: time

    @model_validator(mode="after")
    def _check_order(self):
        if self.end_time <= self.start_time:
            raise ValueError("end_time must be after start_time")
        return self


class AvailabilityResponse(BaseModel):
    doctor_id: str
    date: date
    start_time: time
    end_time: time
    available_slots: List[time]


class BookableSlotsResponse(BaseModel):
    doctor_id: str
    date: date
    duration_minutes: int
    slots: List[datetime]
