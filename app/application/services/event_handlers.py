from dataclasses import dataclass
from typing import List, Optional
import logging

from ..ports.appointments_repo import AppointmentDto, AppointmentStatus
from . import notification_messages as messages
from .notification_gateway import DeliveryResult, NotificationGateway

logger = logging.getLogger(__name__)

# Same source states AppointmentsService.cancel accepts
_CANCELLABLE = (AppointmentStatus.PENDING, AppointmentStatus.CONFIRMED)


@dataclass
class StatusChangeHandler:
    """Immediate notifications for status writes made outside AppointmentsService.

    AppointmentsService already notifies for the transitions it performs, so
    this handler is only fed by external writers through
    POST /appointments/{id}/status-changed. Feeding it service-made
    transitions would notify twice.
    """

    gateway: NotificationGateway

    def on_status_changed(self, before: Optional[AppointmentDto], after: Optional[AppointmentDto], actor_id: Optional[str] = None) -> List[DeliveryResult]:
        if before is None or after is None or before.status == after.status:
            return []

        if after.status == AppointmentStatus.CONFIRMED:
            logger.info(f"Appointment {after.id} confirmed externally, notifying patient")
            return self.gateway.deliver(messages.confirmation(after))

        if before.status in _CANCELLABLE and after.status == AppointmentStatus.CANCELLED:
            logger.info(f"Appointment {after.id} cancelled externally from {before.status.value}, notifying both parties")
            return self.gateway.deliver(messages.cancellation(after, actor_id or after.patient_id))

        return []
