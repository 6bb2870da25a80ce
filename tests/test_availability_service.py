import threading
from dataclasses import replace
from datetime import date, datetime, time, timezone

import pytest

from app.application.ports.appointments_repo import AppointmentDto, AppointmentStatus, AppointmentType
from app.application.services.availability_service import AvailabilityService
from app.exceptions import AvailabilityConflict

DAY = date(2026, 3, 2)


class FakeAvailabilityRepo:
    """Versioned in-memory store; save only wins against the version it was read at."""

    def __init__(self):
        self.docs = {}
        self.lock = threading.Lock()

    def get(self, doctor_id, day):
        doc = self.docs.get((doctor_id, day))
        return replace(doc, available_slots=list(doc.available_slots)) if doc else None

    def save(self, availability):
        key = (availability.doctor_id, availability.date)
        with self.lock:
            current = self.docs.get(key)
            if (current.version if current else 0) != availability.version:
                return False
            self.docs[key] = replace(availability, available_slots=list(availability.available_slots), version=availability.version + 1)
            return True

    def delete_before(self, day):
        old = [k for k in self.docs if k[1] < day]
        for k in old:
            del self.docs[k]
        return len(old)


def booking(hour, minute=0, appointment_type=AppointmentType.GENERAL_CHECKUP):
    return AppointmentDto(
        id="a1",
        patient_id="p1",
        doctor_id="d1",
        date_time=datetime.combine(DAY, time(hour, minute), tzinfo=timezone.utc),
        appointment_type=appointment_type,
        status=AppointmentStatus.PENDING,
    )


def free_slots(repo):
    return repo.docs[("d1", DAY)].available_slots


def test_set_window_creates_slots():
    repo = FakeAvailabilityRepo()
    svc = AvailabilityService(repo=repo)
    svc.set_window("d1", DAY, time(9), time(10))
    assert free_slots(repo) == [time(9), time(9, 15), time(9, 30), time(9, 45)]


def test_set_window_rejects_off_grid_bounds():
    svc = AvailabilityService(repo=FakeAvailabilityRepo())
    with pytest.raises(ValueError):
        svc.set_window("d1", DAY, time(9, 10), time(10))


def test_reserve_and_release():
    repo = FakeAvailabilityRepo()
    svc = AvailabilityService(repo=repo)
    svc.set_window("d1", DAY, time(9), time(10))
    assert svc.reserve(booking(9, 15))
    assert free_slots(repo) == [time(9), time(9, 45)]
    assert not svc.reserve(booking(9, 30))
    svc.release(booking(9, 15))
    assert free_slots(repo) == [time(9), time(9, 15), time(9, 30), time(9, 45)]


def test_reserve_without_availability():
    svc = AvailabilityService(repo=FakeAvailabilityRepo())
    assert not svc.reserve(booking(9))


def test_redefining_window_keeps_booked_slots_taken():
    repo = FakeAvailabilityRepo()
    svc = AvailabilityService(repo=repo)
    svc.set_window("d1", DAY, time(9), time(10))
    svc.reserve(booking(9, 30, AppointmentType.BLOOD_TEST))
    svc.set_window("d1", DAY, time(9), time(11))
    slots = free_slots(repo)
    assert time(9, 30) not in slots
    assert time(10, 45) in slots
    assert len(slots) == 7


def test_release_outside_window_is_ignored():
    repo = FakeAvailabilityRepo()
    svc = AvailabilityService(repo=repo)
    svc.set_window("d1", DAY, time(9), time(10))
    svc.release(booking(12))
    assert len(free_slots(repo)) == 4


def test_bookable_starts():
    repo = FakeAvailabilityRepo()
    svc = AvailabilityService(repo=repo)
    svc.set_window("d1", DAY, time(9), time(10))
    now = datetime.combine(DAY, time(8), tzinfo=timezone.utc)
    assert svc.bookable_starts("d1", DAY, 60, now) == [datetime.combine(DAY, time(9), tzinfo=timezone.utc)]
    assert svc.bookable_starts("d2", DAY, 30, now) == []


def test_purge_before():
    repo = FakeAvailabilityRepo()
    svc = AvailabilityService(repo=repo)
    svc.set_window("d1", date(2026, 3, 1), time(9), time(10))
    svc.set_window("d1", DAY, time(9), time(10))
    assert svc.purge_before(DAY) == 1
    assert list(repo.docs) == [("d1", DAY)]


class InterleavedRepo(FakeAvailabilityRepo):
    """The first two reads after arming wait for each other, so both writers start from the same version."""

    def __init__(self):
        super().__init__()
        self.armed = False
        self.reads = 0
        self.barrier = threading.Barrier(2, timeout=5)

    def get(self, doctor_id, day):
        doc = super().get(doctor_id, day)
        with self.lock:
            self.reads += 1
            wait = self.armed and self.reads <= 2
        if wait:
            self.barrier.wait()
        return doc


def test_concurrent_releases_both_land():
    repo = InterleavedRepo()
    svc = AvailabilityService(repo=repo)
    svc.set_window("d1", DAY, time(9), time(12))
    first, second = booking(9), replace(booking(11), id="a2")
    assert svc.reserve(first)
    assert svc.reserve(second)
    taken = set(svc._covered(first)) | set(svc._covered(second))
    assert not taken & set(free_slots(repo))

    repo.armed, repo.reads = True, 0
    threads = [threading.Thread(target=svc.release, args=(a,)) for a in (first, second)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert taken <= set(free_slots(repo))
    assert len(free_slots(repo)) == 12


def test_concurrent_reservations_cannot_share_a_slot():
    repo = InterleavedRepo()
    svc = AvailabilityService(repo=repo)
    svc.set_window("d1", DAY, time(9), time(10))
    repo.armed, repo.reads = True, 0
    results = []
    threads = [threading.Thread(target=lambda a=a: results.append(svc.reserve(a))) for a in (booking(9), replace(booking(9), id="a2"))]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert sorted(results) == [False, True]


def test_persistent_write_conflict_raises():
    class AlwaysStaleRepo(FakeAvailabilityRepo):
        def save(self, availability):
            return False

    svc = AvailabilityService(repo=AlwaysStaleRepo(), max_attempts=3)
    with pytest.raises(AvailabilityConflict):
        svc.set_window("d1", DAY, time(9), time(10))


def test_stored_version_advances_per_write():
    repo = FakeAvailabilityRepo()
    svc = AvailabilityService(repo=repo)
    assert svc.set_window("d1", DAY, time(9), time(10)).version == 1
    svc.reserve(booking(9))
    assert repo.docs[("d1", DAY)].version == 2
