from datetime import datetime, timedelta, timezone

import pytest

from app.application.ports.appointments_repo import AppointmentDto, AppointmentStatus, AppointmentType
from app.application.services.state_machine import AppointmentStateMachine
from app.exceptions import InvalidTransition

NOW = datetime(2026, 3, 2, 10, 0, tzinfo=timezone.utc)


def appt(status, offset_minutes=0):
    return AppointmentDto(
        id="a1",
        patient_id="p1",
        doctor_id="d1",
        date_time=NOW + timedelta(minutes=offset_minutes),
        appointment_type=AppointmentType.BLOOD_TEST,
        status=status,
    )


@pytest.mark.parametrize("current,target,allowed", [
    (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, True),
    (AppointmentStatus.PENDING, AppointmentStatus.CANCELLED, True),
    (AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED, True),
    (AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED, True),
    (AppointmentStatus.PENDING, AppointmentStatus.COMPLETED, False),
    (AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED, False),
    (AppointmentStatus.CANCELLED, AppointmentStatus.CONFIRMED, False),
])
def test_can_transition(current, target, allowed):
    assert AppointmentStateMachine.can_transition(current, target) is allowed


def test_reapplying_or_moving_backwards_is_noop():
    machine = AppointmentStateMachine()
    assert machine.check(appt(AppointmentStatus.CONFIRMED), AppointmentStatus.CONFIRMED) is False
    assert machine.check(appt(AppointmentStatus.COMPLETED), AppointmentStatus.CONFIRMED) is False


def test_leaving_terminal_state_is_invalid():
    with pytest.raises(InvalidTransition):
        AppointmentStateMachine().check(appt(AppointmentStatus.CANCELLED), AppointmentStatus.CONFIRMED)


def test_complete_timing():
    machine = AppointmentStateMachine(completion_delay_minutes=5)
    confirmed = appt(AppointmentStatus.CONFIRMED, offset_minutes=-5)
    assert machine.completion_due_at(confirmed) == NOW
    assert machine.check_complete(confirmed, NOW) is True
    with pytest.raises(InvalidTransition):
        machine.check_complete(appt(AppointmentStatus.CONFIRMED, offset_minutes=-4), NOW)


def test_complete_ignores_terminal_records():
    machine = AppointmentStateMachine()
    assert machine.check_complete(appt(AppointmentStatus.COMPLETED, -10), NOW) is False
    assert machine.check_complete(appt(AppointmentStatus.CANCELLED, -10), NOW) is False


def test_auto_cancel_deadline():
    machine = AppointmentStateMachine(confirmation_deadline_minutes=60)
    assert machine.check_auto_cancel(appt(AppointmentStatus.PENDING, 60), NOW) is True
    assert machine.check_auto_cancel(appt(AppointmentStatus.PENDING, 55), NOW) is True
    with pytest.raises(InvalidTransition):
        machine.check_auto_cancel(appt(AppointmentStatus.PENDING, 61), NOW)


def test_auto_cancel_only_for_pending():
    machine = AppointmentStateMachine()
    assert machine.check_auto_cancel(appt(AppointmentStatus.CANCELLED, 60), NOW) is False
    with pytest.raises(InvalidTransition):
        machine.check_auto_cancel(appt(AppointmentStatus.CONFIRMED, 60), NOW)
