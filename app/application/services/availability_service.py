from dataclasses import dataclass, replace
from datetime import date, datetime, time, timezone
from typing import Callable, List, Optional
import logging

from ...exceptions import AvailabilityConflict
from ..ports.appointments_repo import AppointmentDto
from ..ports.availability_repo import AvailabilityDto, AvailabilityRepository
from .slots import DEFAULT_GRANULARITY_MINUTES, bookable_start_slots, generate_slots, is_on_boundary, slots_covered

logger = logging.getLogger(__name__)


@dataclass
class AvailabilityService:
    """Doctor working windows as free 15-minute slots.

    Every change is a read-modify-write made conditional on the version that
    was read; a lost race re-reads and re-applies the change.
    """

    repo: AvailabilityRepository
    granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES
    max_attempts: int = 5

    def _window_slots(self, day: date, start: time, end: time) -> List[time]:
        return [s.time() for s in generate_slots(datetime.combine(day, start), datetime.combine(day, end), self.granularity_minutes)]

    def _covered(self, appointment: AppointmentDto) -> List[time]:
        return [s.time() for s in slots_covered(appointment.date_time, appointment.duration_minutes, self.granularity_minutes)]

    def _update(self, doctor_id: str, day: date, change: Callable[[Optional[AvailabilityDto]], Optional[AvailabilityDto]]) -> Optional[AvailabilityDto]:
        """Apply change to the current document until the conditional save wins.

        change returns None when there is nothing to write.
        """
        for attempt in range(1, self.max_attempts + 1):
            updated = change(self.repo.get(doctor_id, day))
            if updated is None:
                return None
            if self.repo.save(updated):
                return replace(updated, version=updated.version + 1)
            logger.info(f"Availability of doctor {doctor_id} on {day} changed concurrently (attempt {attempt}), retrying")
        raise AvailabilityConflict(doctor_id, day)

    def set_window(self, doctor_id: str, day: date, start: time, end: time) -> AvailabilityDto:
        """Define (or redefine) a doctor's working window for one day.

        Slots that were already booked inside the previous window stay unavailable.
        """
        for bound in (start, end):
            if not is_on_boundary(datetime.combine(day, bound), self.granularity_minutes):
                raise ValueError(f"{bound.isoformat()} is not on a {self.granularity_minutes}-minute boundary")

        def change(existing: Optional[AvailabilityDto]) -> AvailabilityDto:
            new_slots = self._window_slots(day, start, end)
            if existing:
                previous = set(self._window_slots(day, existing.start_time, existing.end_time))
                booked = previous - set(existing.available_slots)
                new_slots = [s for s in new_slots if s not in booked]
            return AvailabilityDto(
                doctor_id=doctor_id,
                date=day,
                start_time=start,
                end_time=end,
                available_slots=new_slots,
                version=existing.version if existing else 0,
            )

        availability = self._update(doctor_id, day, change)
        logger.info(f"Availability for doctor {doctor_id} on {day} set to {start}-{end} ({len(availability.available_slots)} free slots)")
        return availability

    def bookable_starts(self, doctor_id: str, day: date, duration_minutes: int, now: datetime, lead_time_minutes: int = 0) -> List[datetime]:
        availability = self.repo.get(doctor_id, day)
        if not availability:
            return []
        # Slot times are UTC wall-clock times, like appointment date_time
        free = [datetime.combine(day, s, tzinfo=timezone.utc) for s in availability.available_slots]
        return bookable_start_slots(free, duration_minutes, now, lead_time_minutes, self.granularity_minutes)

    def reserve(self, appointment: AppointmentDto) -> bool:
        """Consume the slots an appointment occupies. False if any of them is not free."""
        day = appointment.date_time.date()
        needed = self._covered(appointment)

        def change(availability: Optional[AvailabilityDto]) -> Optional[AvailabilityDto]:
            if not availability:
                logger.warning(f"No availability for doctor {appointment.doctor_id} on {day}")
                return None
            free = set(availability.available_slots)
            if not all(s in free for s in needed):
                return None
            return replace(availability, available_slots=sorted(free.difference(needed)))

        return self._update(appointment.doctor_id, day, change) is not None

    def release(self, appointment: AppointmentDto) -> None:
        """Give back the slots of a cancelled appointment that still lie inside the window."""
        day = appointment.date_time.date()
        freed = self._covered(appointment)

        def change(availability: Optional[AvailabilityDto]) -> Optional[AvailabilityDto]:
            if not availability:
                return None
            window = set(self._window_slots(day, availability.start_time, availability.end_time))
            restored = set(availability.available_slots).union(s for s in freed if s in window)
            return replace(availability, available_slots=sorted(restored))

        if self._update(appointment.doctor_id, day, change) is not None:
            logger.info(f"Released {len(freed)} slots of appointment {appointment.id}")

    def purge_before(self, day: date) -> int:
        deleted = self.repo.delete_before(day)
        logger.info(f"Purged {deleted} availability records before {day}")
        return deleted
