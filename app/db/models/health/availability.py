# app/db/models/health/availability.py
import datetime
from typing import Optional
from sqlalchemy import UniqueConstraint
from sqlmodel import SQLModel, Field

class DoctorAvailability(SQLModel, table=True):
    __tablename__ = "doctor_availability"
    __table_args__ = (UniqueConstraint("doctor_id", "date"),)
    id: Optional[int] = Field(default=None, primary_key=True)
    doctor_id: str = Field(foreign_key="users.id", index=True)
    date: datetime.date = Field(index=True)
    start_time: datetime.time
    end_time: datetime.time
    # JSON list of "HH:MM" strings
    available_slots: str = Field(default="[]")
    # Bumped on every write; updates are conditional on the version read
    version: int = Field(default=1)
