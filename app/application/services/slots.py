"""Discrete time slots for doctor availability windows.

A working window ``[start, end)`` is cut into instants at a fixed granularity
(15 minutes by default). The same representation is used to decide whether a
slot can still be booked and which slots a booked appointment occupies.
"""
from datetime import datetime, timedelta
from typing import Collection, Iterable, Iterator, List

DEFAULT_GRANULARITY_MINUTES = 15


class SlotRange:
    """Lazy, restartable sequence of instants ``start, start + step, ...`` below ``end``."""

    def __init__(self, start: datetime, end: datetime, granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES):
        if granularity_minutes <= 0:
            raise ValueError("granularity_minutes must be positive")
        self.start = start
        self.end = end
        self.step = timedelta(minutes=granularity_minutes)

    def __iter__(self) -> Iterator[datetime]:
        current = self.start
        while current < self.end:
            yield current
            current += self.step

    def __len__(self) -> int:
        if self.end <= self.start:
            return 0
        return -(-(self.end - self.start) // self.step)

    def __contains__(self, instant: object) -> bool:
        if not isinstance(instant, datetime) or not (self.start <= instant < self.end):
            return False
        return (instant - self.start) % self.step == timedelta(0)

    def __repr__(self) -> str:
        return f"SlotRange({self.start.isoformat()}, {self.end.isoformat()}, step={self.step})"


def generate_slots(start: datetime, end: datetime, granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES) -> SlotRange:
    """Slots of a working window. An empty or inverted window yields nothing."""
    return SlotRange(start, end, granularity_minutes)


def is_bookable(slot: datetime, available_slots: Collection[datetime], now: datetime) -> bool:
    return slot in available_slots and slot > now


def is_on_boundary(instant: datetime, granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES) -> bool:
    if instant.second or instant.microsecond:
        return False
    return (instant.hour * 60 + instant.minute) % granularity_minutes == 0


def slots_covered(start: datetime, duration_minutes: int, granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES) -> List[datetime]:
    """Slots occupied by an appointment starting at ``start``."""
    return list(generate_slots(start, start + timedelta(minutes=duration_minutes), granularity_minutes))


def bookable_start_slots(
    available_slots: Iterable[datetime],
    duration_minutes: int,
    now: datetime,
    lead_time_minutes: int = 0,
    granularity_minutes: int = DEFAULT_GRANULARITY_MINUTES,
) -> List[datetime]:
    """Start slots followed by enough consecutive free slots to fit the duration.

    Starts at or before ``now + lead_time_minutes`` are excluded.
    """
    free = set(available_slots)
    cutoff = now + timedelta(minutes=lead_time_minutes)
    starts = []
    for slot in sorted(free):
        if slot <= cutoff:
            continue
        if all(s in free for s in slots_covered(slot, duration_minutes, granularity_minutes)):
            starts.append(slot)
    return starts
