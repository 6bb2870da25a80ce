import json
from datetime import date, datetime, time
from typing import List, Optional
from sqlalchemy import delete, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from .....db.models import DoctorAvailability
from .....application.ports.availability_repo import AvailabilityRepository, AvailabilityDto

SLOT_FORMAT = "%H:%M"


def _encode_slots(slots: List[time]) -> str:
    return json.dumps([s.strftime(SLOT_FORMAT) for s in sorted(slots)])


def _decode_slots(raw: str) -> List[time]:
    try:
        values = json.loads(raw or "[]")
    except json.JSONDecodeError:
        return []
    return sorted(datetime.strptime(v, SLOT_FORMAT).time() for v in values)


class SqlAvailabilityRepository(AvailabilityRepository):
    def __init__(self, engine: Engine):
        self.engine = engine

    def _to_dto(self, row: DoctorAvailability) -> AvailabilityDto:
        return AvailabilityDto(
            doctor_id=row.doctor_id,
            date=row.date,
            start_time=row.start_time,
            end_time=row.end_time,
            available_slots=_decode_slots(row.available_slots),
            version=row.version,
        )

    def get(self, doctor_id: str, day: date) -> Optional[AvailabilityDto]:
        with Session(self.engine) as session:
            row = session.exec(
                select(DoctorAvailability)
                .where(DoctorAvailability.doctor_id == doctor_id)
                .where(DoctorAvailability.date == day)
            ).first()
            return self._to_dto(row) if row else None

    def save(self, availability: AvailabilityDto) -> bool:
        """Write only if the stored version is still the one that was read.

        Version 0 means the document did not exist when read. Returns False when
        another writer got there first.
        """
        if availability.version == 0:
            row = DoctorAvailability(
                doctor_id=availability.doctor_id,
                date=availability.date,
                start_time=availability.start_time,
                end_time=availability.end_time,
                available_slots=_encode_slots(availability.available_slots),
                version=1,
            )
            try:
                with Session(self.engine) as session:
                    session.add(row)
                    session.commit()
            except IntegrityError:
                # Unique (doctor_id, date): created concurrently
                return False
            return True

        stmt = (
            update(DoctorAvailability)
            .where(DoctorAvailability.doctor_id == availability.doctor_id)
            .where(DoctorAvailability.date == availability.date)
            .where(DoctorAvailability.version == availability.version)
            .values(
                start_time=availability.start_time,
                end_time=availability.end_time,
                available_slots=_encode_slots(availability.available_slots),
                version=availability.version + 1,
            )
        )
        with self.engine.begin() as conn:
            return conn.execute(stmt).rowcount == 1

    def delete_before(self, day: date) -> int:
        with self.engine.begin() as conn:
            result = conn.execute(delete(DoctorAvailability).where(DoctorAvailability.date < day))
            return result.rowcount
