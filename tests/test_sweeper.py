import asyncio
import threading
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from app.application.ports.appointments_repo import AppointmentDto, AppointmentStatus, AppointmentType
from app.application.services.appointments_service import AUTO_CANCEL_COMMENT, AppointmentsService
from app.application.services.notification_gateway import NotificationGateway
from app.application.services.sweeper import LifecycleSweeper, SweepWindow, SweepWindows

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


class FakeApptRepo:
    """In-memory store whose compare_and_set is atomic across worker threads."""

    def __init__(self, *appts):
        self.appts = {a.id: replace(a) for a in appts}
        self.lock = threading.Lock()
        self.broken_ids = set()
        self.broken_statuses = set()

    def get_by_id(self, appointment_id):
        a = self.appts.get(appointment_id)
        return replace(a) if a else None

    def find_in_window(self, status, start, end):
        if status in self.broken_statuses:
            raise RuntimeError("store unavailable")
        with self.lock:
            return [replace(a) for a in self.appts.values() if a.status == status and start <= a.date_time <= end]

    def compare_and_set(self, appointment_id, expected, changes):
        if appointment_id in self.broken_ids:
            raise RuntimeError("write failed")
        with self.lock:
            a = self.appts.get(appointment_id)
            if a is None or any(getattr(a, k) != v for k, v in expected.items()):
                return False
            for k, v in changes.items():
                setattr(a, k, v)
            return True


class FakeInbox:
    def __init__(self):
        self.items = []

    def add(self, user_id, type, title, body, related_appointment_id=None):
        self.items.append((user_id, type, related_appointment_id))

    def for_appointment(self, appointment_id):
        return [i for i in self.items if i[2] == appointment_id]


def appt(id, status, offset_minutes, **kwargs):
    return AppointmentDto(
        id=id,
        patient_id=f"patient-{id}",
        doctor_id=f"doctor-{id}",
        date_time=NOW + timedelta(minutes=offset_minutes),
        appointment_type=AppointmentType.DENTAL_CHECKUP,
        status=status,
        **kwargs,
    )


def make_sweeper(*appts):
    repo = FakeApptRepo(*appts)
    inbox = FakeInbox()
    service = AppointmentsService(repo=repo, gateway=NotificationGateway(inbox=inbox))
    return LifecycleSweeper(service=service, repo=repo, max_concurrency=4), repo, inbox


def run(sweeper, now=NOW):
    return asyncio.run(sweeper.run(now))


def test_window_bounds():
    assert SweepWindow(-15, -5).bounds(NOW) == (NOW - timedelta(minutes=15), NOW - timedelta(minutes=5))


def test_one_hour_reminder_sent_exactly_once():
    sweeper, repo, inbox = make_sweeper(appt("a", AppointmentStatus.CONFIRMED, 60))
    report = run(sweeper)
    assert repo.appts["a"].reminder_sent_one_hour is True
    assert inbox.for_appointment("a") == [("patient-a", "reminder", "a")]
    assert report.passes["one_hour_reminder"].applied == 1

    report = run(sweeper, NOW + timedelta(minutes=1))
    assert len(inbox.for_appointment("a")) == 1
    assert report.passes["one_hour_reminder"].skipped == 1


def test_five_minute_reminder_goes_to_both_parties():
    sweeper, repo, inbox = make_sweeper(appt("a", AppointmentStatus.CONFIRMED, 7))
    run(sweeper)
    assert repo.appts["a"].reminder_sent_five_minutes is True
    assert sorted(i[0] for i in inbox.for_appointment("a")) == ["doctor-a", "patient-a"]


def test_unconfirmed_appointment_cancelled_an_hour_before():
    sweeper, repo, inbox = make_sweeper(appt("a", AppointmentStatus.PENDING, 60))
    report = run(sweeper)
    assert repo.appts["a"].status == AppointmentStatus.CANCELLED
    assert AUTO_CANCEL_COMMENT in repo.appts["a"].comments
    assert len(inbox.for_appointment("a")) == 2
    assert report.passes["auto_cancel"].applied == 1


def test_pending_before_deadline_waits_for_next_tick():
    sweeper, repo, inbox = make_sweeper(appt("a", AppointmentStatus.PENDING, 63))
    report = run(sweeper)
    assert repo.appts["a"].status == AppointmentStatus.PENDING
    assert report.passes["auto_cancel"].skipped == 1
    assert inbox.items == []

    run(sweeper, NOW + timedelta(minutes=5))
    assert repo.appts["a"].status == AppointmentStatus.CANCELLED


def test_pending_far_ahead_is_untouched():
    sweeper, repo, inbox = make_sweeper(appt("a", AppointmentStatus.PENDING, 120))
    run(sweeper)
    assert repo.appts["a"].status == AppointmentStatus.PENDING
    assert inbox.items == []


def test_started_appointment_completed_with_one_feedback_request():
    sweeper, repo, inbox = make_sweeper(appt("a", AppointmentStatus.CONFIRMED, -10))
    run(sweeper)
    assert repo.appts["a"].status == AppointmentStatus.COMPLETED
    assert inbox.for_appointment("a") == [("patient-a", "feedback", "a")]

    run(sweeper)
    assert len(inbox.items) == 1


def test_late_tick_still_cancels_pending_past_its_deadline():
    # Not due at the first tick; the next one runs late and the record has
    # already left the nominal [+55m, +65m] window
    sweeper, repo, inbox = make_sweeper(appt("a", AppointmentStatus.PENDING, 60.5))
    report = run(sweeper)
    assert repo.appts["a"].status == AppointmentStatus.PENDING
    assert report.passes["auto_cancel"].skipped == 1

    report = run(sweeper, NOW + timedelta(minutes=6))
    assert repo.appts["a"].status == AppointmentStatus.CANCELLED
    assert report.passes["auto_cancel"].applied == 1
    assert len(inbox.for_appointment("a")) == 2


def test_pending_that_already_started_is_cancelled_not_completed():
    sweeper, repo, inbox = make_sweeper(appt("a", AppointmentStatus.PENDING, -10))
    report = run(sweeper)
    assert repo.appts["a"].status == AppointmentStatus.CANCELLED
    assert report.passes["completion"].scanned == 0
    assert [i[1] for i in inbox.for_appointment("a")] == ["cancellation", "cancellation"]


def test_pending_beyond_catch_up_is_left_alone():
    sweeper, repo, inbox = make_sweeper(appt("a", AppointmentStatus.PENDING, -30))
    run(sweeper)
    assert repo.appts["a"].status == AppointmentStatus.PENDING
    assert inbox.items == []


def test_zero_catch_up_stops_at_start_time():
    sweeper, repo, inbox = make_sweeper(appt("a", AppointmentStatus.PENDING, 50))
    sweeper.windows = SweepWindows(auto_cancel_catch_up_minutes=0)
    run(sweeper)
    assert repo.appts["a"].status == AppointmentStatus.CANCELLED

    sweeper, repo, inbox = make_sweeper(appt("a", AppointmentStatus.PENDING, -1))
    sweeper.windows = SweepWindows(auto_cancel_catch_up_minutes=0)
    run(sweeper)
    assert repo.appts["a"].status == AppointmentStatus.PENDING


def test_immediate_rerun_has_no_effect():
    sweeper, repo, inbox = make_sweeper(
        appt("r", AppointmentStatus.CONFIRMED, 60),
        appt("c", AppointmentStatus.PENDING, 58),
        appt("f", AppointmentStatus.CONFIRMED, -8),
    )
    first = run(sweeper)
    sent = list(inbox.items)
    second = run(sweeper)
    assert first.applied == 3
    assert second.applied == 0
    assert inbox.items == sent


def test_overlapping_runs_apply_each_effect_once():
    sweeper, repo, inbox = make_sweeper(
        appt("r", AppointmentStatus.CONFIRMED, 60),
        appt("c", AppointmentStatus.PENDING, 60),
    )

    async def twice():
        return await asyncio.gather(sweeper.run(NOW), sweeper.run(NOW))

    reports = asyncio.run(twice())
    assert sum(r.applied for r in reports) == 2
    assert len(inbox.for_appointment("r")) == 1
    assert len(inbox.for_appointment("c")) == 2


def test_failure_of_one_record_does_not_affect_others():
    sweeper, repo, inbox = make_sweeper(
        appt("bad", AppointmentStatus.CONFIRMED, -10),
        appt("good", AppointmentStatus.CONFIRMED, -12),
    )
    repo.broken_ids.add("bad")
    report = run(sweeper)
    assert report.passes["completion"].failed == 1
    assert report.passes["completion"].applied == 1
    assert repo.appts["good"].status == AppointmentStatus.COMPLETED
    assert repo.appts["bad"].status == AppointmentStatus.CONFIRMED


def test_failed_query_only_affects_its_pass():
    sweeper, repo, inbox = make_sweeper(
        appt("p", AppointmentStatus.PENDING, 60),
        appt("f", AppointmentStatus.CONFIRMED, -10),
    )
    repo.broken_statuses.add(AppointmentStatus.PENDING)
    report = run(sweeper)
    assert report.passes["auto_cancel"].query_failed is True
    assert repo.appts["p"].status == AppointmentStatus.PENDING
    assert repo.appts["f"].status == AppointmentStatus.COMPLETED


def test_custom_windows():
    sweeper, repo, inbox = make_sweeper(appt("a", AppointmentStatus.CONFIRMED, 30))
    sweeper.windows = SweepWindows(one_hour_reminder=SweepWindow(25, 35))
    run(sweeper)
    assert repo.appts["a"].reminder_sent_one_hour is True


def test_report_as_dict():
    sweeper, _, _ = make_sweeper()
    data = run(sweeper).as_dict()
    assert set(data["passes"]) == {"one_hour_reminder", "five_minute_reminder", "completion", "auto_cancel"}
    assert data["started_at"] == NOW.isoformat()


def test_report_counts_notifications_sent():
    sweeper, repo, inbox = make_sweeper(
        appt("r", AppointmentStatus.CONFIRMED, 60),
        appt("v", AppointmentStatus.CONFIRMED, 7),
        appt("c", AppointmentStatus.PENDING, 58),
    )
    report = run(sweeper)
    assert report.passes["one_hour_reminder"].notified == 1
    assert report.passes["five_minute_reminder"].notified == 2
    assert report.passes["auto_cancel"].notified == 2
    assert report.notified == 5 == len(inbox.items)

    assert run(sweeper).notified == 0
