# app/db/models/health/appointment.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime
import uuid
from sqlalchemy import DateTime

from ....utils import utc_now

class Appointment(SQLModel, table=True):
    __tablename__ = "appointments"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    patient_id: str = Field(foreign_key="users.id", index=True)
    doctor_id: str = Field(foreign_key="users.id", index=True)
    patient_name: str = Field(default="")
    doctor_name: str = Field(default="")
    date_time: datetime = Field(sa_type=DateTime(timezone=True), index=True)
    appointment_type: str
    duration_minutes: int
    status: str = Field(default="Pending", index=True)
    reminder_sent_one_hour: bool = Field(default=False)
    reminder_sent_five_minutes: bool = Field(default=False)
    comments: str = Field(default="")
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
    updated_at: Optional[datetime] = Field(default=None, sa_type=DateTime(timezone=True))
