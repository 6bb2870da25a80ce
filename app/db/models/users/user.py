# app/db/models/users/user.py
from typing import Optional
from sqlmodel import SQLModel, Field
from datetime import datetime
import uuid
from sqlalchemy import DateTime

from ....utils import utc_now

class User(SQLModel, table=True):
    __tablename__ = "users"
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), primary_key=True)
    name: str = Field(max_length=100)
    role: str = Field(default="patient", max_length=20)
    fcm_token: Optional[str] = Field(default=None, max_length=512)
    created_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
    updated_at: datetime = Field(default_factory=utc_now, sa_type=DateTime(timezone=True))
