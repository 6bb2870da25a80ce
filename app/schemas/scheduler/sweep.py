# app/schemas/scheduler/sweep.py
from pydantic import BaseModel
from typing import Dict, Optional
from datetime import datetime


class PassReportResponse(BaseModel):
    name: str
    scanned: int
    applied: int
    skipped: int
    failed: int
    notified: int = 0
    query_failed: bool


class SweepReportResponse(BaseModel):
    started_at: datetime
    finished_at: Optional[datetime] = None
    applied: int
    failed: int
    notified: int = 0
    passes: Dict[str, PassReportResponse]
