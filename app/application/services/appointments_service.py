from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional
import logging

from ...exceptions import AppointmentNotFound, PreconditionStale
from ..ports.appointments_repo import AppointmentDto, AppointmentsRepository, AppointmentStatus
from . import notification_messages as messages
from .availability_service import AvailabilityService
from .notification_gateway import DeliveryResult, NotificationGateway, NotificationRequest
from .state_machine import AppointmentStateMachine

logger = logging.getLogger(__name__)

AUTO_CANCEL_COMMENT = (
    "The appointment was automatically cancelled due to not being confirmed by the doctor "
    "within the allowed time. Please contact the doctor directly to reschedule."
)


@dataclass
class TransitionResult:
    """Truthy when the write was applied; carries the delivery result of each notification sent."""

    applied: bool
    deliveries: List[DeliveryResult] = field(default_factory=list)

    def __bool__(self) -> bool:
        return self.applied

    @property
    def notified(self) -> int:
        return sum(1 for r in self.deliveries if r.ok)


def _append_comment(existing: str, comment: str) -> str:
    return f"{existing}\n{comment}" if existing else comment


@dataclass
class AppointmentsService:
    """Guarded status transitions and the notifications each one triggers.

    Every write is a compare-and-set on the state the decision was made from,
    so a concurrent doctor/patient action or an overlapping sweep turns into a
    PreconditionStale instead of a lost update. Notifications are sent only
    after the write succeeded, which makes each one fire at most once.
    """

    repo: AppointmentsRepository
    gateway: NotificationGateway
    machine: AppointmentStateMachine = field(default_factory=AppointmentStateMachine)
    availability: Optional[AvailabilityService] = None

    def get(self, appointment_id: str) -> AppointmentDto:
        appt = self.repo.get_by_id(appointment_id)
        if not appt:
            raise AppointmentNotFound(appointment_id)
        return appt

    def confirm(self, appt: AppointmentDto) -> TransitionResult:
        if not self.machine.check(appt, AppointmentStatus.CONFIRMED):
            logger.info(f"Appointment {appt.id} already {appt.status.value}, confirm is a no-op")
            return TransitionResult(False)
        self._write(appt, {"status": appt.status}, {"status": AppointmentStatus.CONFIRMED})
        logger.info(f"Appointment {appt.id} confirmed")
        return TransitionResult(True, self._notify(messages.confirmation(appt)))

    def complete(self, appt: AppointmentDto, now: datetime) -> TransitionResult:
        if not self.machine.check_complete(appt, now):
            logger.debug(f"Appointment {appt.id} already {appt.status.value}, complete is a no-op")
            return TransitionResult(False)
        self._write(appt, {"status": AppointmentStatus.CONFIRMED}, {"status": AppointmentStatus.COMPLETED})
        logger.info(f"Appointment {appt.id} completed")
        return TransitionResult(True, self._notify(messages.feedback(appt)))

    def auto_cancel(self, appt: AppointmentDto, now: datetime) -> TransitionResult:
        if not self.machine.check_auto_cancel(appt, now):
            logger.debug(f"Appointment {appt.id} already {appt.status.value}, auto-cancel is a no-op")
            return TransitionResult(False)
        self._write(
            appt,
            {"status": AppointmentStatus.PENDING, "comments": appt.comments},
            {"status": AppointmentStatus.CANCELLED, "comments": _append_comment(appt.comments, AUTO_CANCEL_COMMENT)},
        )
        logger.info(f"Appointment {appt.id} cancelled automatically, not confirmed before the deadline")
        self._release_slots(appt)
        return TransitionResult(True, self._notify(messages.auto_cancellation(appt)))

    def cancel(self, appt: AppointmentDto, actor_id: str, reason: Optional[str] = None) -> TransitionResult:
        if not self.machine.check(appt, AppointmentStatus.CANCELLED):
            logger.info(f"Appointment {appt.id} already {appt.status.value}, cancel is a no-op")
            return TransitionResult(False)
        expected: Dict[str, Any] = {"status": appt.status}
        changes: Dict[str, Any] = {"status": AppointmentStatus.CANCELLED}
        if reason:
            expected["comments"] = appt.comments
            changes["comments"] = _append_comment(appt.comments, reason)
        self._write(appt, expected, changes)
        logger.info(f"Appointment {appt.id} cancelled by {actor_id}")
        self._release_slots(appt)
        return TransitionResult(True, self._notify(messages.cancellation(appt, actor_id)))

    def send_one_hour_reminder(self, appt: AppointmentDto) -> TransitionResult:
        return self._remind(appt, "reminder_sent_one_hour", messages.one_hour_reminder(appt))

    def send_five_minute_reminder(self, appt: AppointmentDto) -> TransitionResult:
        return self._remind(appt, "reminder_sent_five_minutes", messages.five_minute_reminder(appt))

    def _remind(self, appt: AppointmentDto, flag: str, requests: List[NotificationRequest]) -> TransitionResult:
        if appt.status != AppointmentStatus.CONFIRMED or getattr(appt, flag):
            return TransitionResult(False)
        # Claim the flag first: whoever flips it owns the send
        self._write(appt, {"status": AppointmentStatus.CONFIRMED, flag: False}, {flag: True})
        setattr(appt, flag, True)
        return TransitionResult(True, self._notify(requests))

    def _write(self, appt: AppointmentDto, expected: Dict[str, Any], changes: Dict[str, Any]) -> None:
        if not self.repo.compare_and_set(appt.id, expected, changes):
            raise PreconditionStale(appt.id, {k: getattr(v, "value", v) for k, v in expected.items()})
        if "status" in changes:
            appt.status = changes["status"]
        if "comments" in changes:
            appt.comments = changes["comments"]

    def _notify(self, requests: List[NotificationRequest]) -> List[DeliveryResult]:
        results = self.gateway.deliver(requests)
        failed = [r for r in results if not r.ok]
        if failed:
            logger.error(f"{len(failed)} of {len(results)} notifications could not be recorded")
        return results

    def _release_slots(self, appt: AppointmentDto) -> None:
        if self.availability is None:
            return
        try:
            self.availability.release(appt)
        except Exception as e:
            logger.error(f"Could not release slots of appointment {appt.id}: {e}")
