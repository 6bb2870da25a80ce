# app/db/models/health/notification.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime
from sqlalchemy import DateTime

from ....utils import utc_now

class Notification(SQLModel, table=True):
    __tablename__ = "notifications"
    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="users.id", index=True)
    type: str
    title: str
    body: str
    read: bool = Field(default=False)
    related_appointment_id: Optional[str] = Field(default=None)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
