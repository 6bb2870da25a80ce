from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional
from sqlalchemy import update
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from .....db.models import Appointment
from .....utils import as_utc, utc_now
from .....application.ports.appointments_repo import (
    AppointmentsRepository,
    AppointmentDto,
    AppointmentStatus,
    AppointmentType,
)

# Fields the lifecycle core is allowed to write
WRITABLE_FIELDS = frozenset({"status", "comments", "reminder_sent_one_hour", "reminder_sent_five_minutes"})


def _db_value(value: Any) -> Any:
    return value.value if isinstance(value, Enum) else value


class SqlAppointmentsRepository(AppointmentsRepository):
    """One short-lived session per call, so concurrent sweep units never share one."""

    def __init__(self, engine: Engine):
        self.engine = engine

    def _appt_to_dto(self, a: Appointment) -> AppointmentDto:
        return AppointmentDto(
            id=a.id,
            patient_id=a.patient_id,
            doctor_id=a.doctor_id,
            date_time=as_utc(a.date_time),
            appointment_type=AppointmentType.from_value(a.appointment_type),
            status=AppointmentStatus(a.status),
            patient_name=a.patient_name,
            doctor_name=a.doctor_name,
            reminder_sent_one_hour=a.reminder_sent_one_hour,
            reminder_sent_five_minutes=a.reminder_sent_five_minutes,
            comments=a.comments or "",
        )

    def create(self, patient_id: str, doctor_id: str, date_time: datetime, appointment_type: AppointmentType, patient_name: str = "", doctor_name: str = "", status: AppointmentStatus = AppointmentStatus.PENDING) -> AppointmentDto:
        appt = Appointment(
            patient_id=patient_id,
            doctor_id=doctor_id,
            patient_name=patient_name,
            doctor_name=doctor_name,
            date_time=as_utc(date_time),
            appointment_type=appointment_type.value,
            duration_minutes=appointment_type.duration_minutes,
            status=status.value,
        )
        with Session(self.engine) as session:
            session.add(appt)
            session.commit()
            session.refresh(appt)
            return self._appt_to_dto(appt)

    def get_by_id(self, appointment_id: str) -> Optional[AppointmentDto]:
        with Session(self.engine) as session:
            a = session.exec(select(Appointment).where(Appointment.id == appointment_id)).first()
            return self._appt_to_dto(a) if a else None

    def find_in_window(self, status: AppointmentStatus, start: datetime, end: datetime) -> List[AppointmentDto]:
        with Session(self.engine) as session:
            rows = session.exec(
                select(Appointment)
                .where(Appointment.status == status.value)
                .where(Appointment.date_time >= as_utc(start))
                .where(Appointment.date_time <= as_utc(end))
                .order_by(Appointment.date_time)
            ).all()
            return [self._appt_to_dto(r) for r in rows]

    def compare_and_set(self, appointment_id: str, expected: Dict[str, Any], changes: Dict[str, Any]) -> bool:
        unknown = (set(expected) | set(changes)) - WRITABLE_FIELDS
        if unknown:
            raise ValueError(f"Unsupported appointment fields: {sorted(unknown)}")

        stmt = update(Appointment).where(Appointment.id == appointment_id)
        for name, value in expected.items():
            stmt = stmt.where(getattr(Appointment, name) == _db_value(value))
        values = {name: _db_value(value) for name, value in changes.items()}
        values["updated_at"] = utc_now()
        stmt = stmt.values(**values)

        with self.engine.begin() as conn:
            result = conn.execute(stmt)
            return result.rowcount == 1
