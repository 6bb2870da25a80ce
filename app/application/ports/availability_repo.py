from dataclasses import dataclass, field
from datetime import date, time
from typing import List, Optional, Protocol


@dataclass
class AvailabilityDto:
    doctor_id: str
    date: date
    start_time: time
    end_time: time
    available_slots: List[time] = field(default_factory=list)
    version: int = 0  # 0 = not stored yet


class AvailabilityRepository(Protocol):
    def get(self, doctor_id: str, day: date) -> Optional[AvailabilityDto]:
        ...

    def save(self, availability: AvailabilityDto) -> bool:
        """Conditional on availability.version; False if the stored document moved on."""
        ...

    def delete_before(self, day: date) -> int:
        ...
