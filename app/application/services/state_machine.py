"""Appointment status transitions.

    Pending -> Confirmed -> Completed
    Pending -> Cancelled
    Confirmed -> Cancelled

Completed and Cancelled are absorbing. Re-applying a transition to a record
that is already in (or further along the happy path than) the target status
is a no-op, since the sweeper observes the same record on consecutive ticks.
"""
from datetime import datetime, timedelta
from typing import Dict, FrozenSet

from ...exceptions import InvalidTransition
from ..ports.appointments_repo import AppointmentDto, AppointmentStatus

ALLOWED_TRANSITIONS: Dict[AppointmentStatus, FrozenSet[AppointmentStatus]] = {
    AppointmentStatus.PENDING: frozenset({AppointmentStatus.CONFIRMED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.CONFIRMED: frozenset({AppointmentStatus.COMPLETED, AppointmentStatus.CANCELLED}),
    AppointmentStatus.COMPLETED: frozenset(),
    AppointmentStatus.CANCELLED: frozenset(),
}

_PROGRESSION = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED, AppointmentStatus.COMPLETED)


def _is_past(current: AppointmentStatus, target: AppointmentStatus) -> bool:
    if current not in _PROGRESSION or target not in _PROGRESSION:
        return False
    return _PROGRESSION.index(current) > _PROGRESSION.index(target)


class AppointmentStateMachine:
    def __init__(self, completion_delay_minutes: int = 5, confirmation_deadline_minutes: int = 60):
        self.completion_delay = timedelta(minutes=completion_delay_minutes)
        self.confirmation_deadline = timedelta(minutes=confirmation_deadline_minutes)

    @staticmethod
    def can_transition(current: AppointmentStatus, target: AppointmentStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[current]

    def completion_due_at(self, appointment: AppointmentDto) -> datetime:
        return appointment.date_time + self.completion_delay

    def confirmation_deadline_for(self, appointment: AppointmentDto) -> datetime:
        return appointment.date_time - self.confirmation_deadline

    def check(self, appointment: AppointmentDto, target: AppointmentStatus) -> bool:
        """True if the transition should be applied, False if it is a no-op.

        Raises InvalidTransition for a move the state machine does not allow,
        including a time-driven move whose moment has not come yet.
        """
        current = appointment.status
        if current == target or _is_past(current, target):
            return False
        if not self.can_transition(current, target):
            raise InvalidTransition(appointment.id, current.value, target.value)
        return True

    def check_complete(self, appointment: AppointmentDto, now: datetime) -> bool:
        # Time-driven moves never touch a terminal record
        if appointment.status.is_terminal or not self.check(appointment, AppointmentStatus.COMPLETED):
            return False
        due = self.completion_due_at(appointment)
        if now < due:
            raise InvalidTransition(
                appointment.id, appointment.status.value, AppointmentStatus.COMPLETED.value,
                reason=f"not due before {due.isoformat()}",
            )
        return True

    def check_auto_cancel(self, appointment: AppointmentDto, now: datetime) -> bool:
        if appointment.status != AppointmentStatus.PENDING:
            if appointment.status.is_terminal:
                return False
            raise InvalidTransition(
                appointment.id, appointment.status.value, AppointmentStatus.CANCELLED.value,
                reason="only unconfirmed appointments are cancelled automatically",
            )
        deadline = self.confirmation_deadline_for(appointment)
        if now < deadline:
            raise InvalidTransition(
                appointment.id, appointment.status.value, AppointmentStatus.CANCELLED.value,
                reason=f"confirmation deadline {deadline.isoformat()} not reached",
            )
        return True
