from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, List, Optional
import logging

from ...exceptions import FallbackWriteFailed, InvalidPushToken, NotificationDeliveryFailed
from ..ports.notification_repo import NotificationRepository
from ..ports.push_provider import PushProvider
from ..ports.user_repo import UserRepository

logger = logging.getLogger(__name__)


class NotificationType(str, Enum):
    CONFIRMATION = "confirmation"
    REMINDER = "reminder"
    CANCELLATION = "cancellation"
    FEEDBACK = "feedback"


class DeliveryResult(str, Enum):
    DELIVERED = "delivered"
    DELIVERED_VIA_FALLBACK = "delivered_via_fallback"
    FAILED = "failed"

    @property
    def ok(self) -> bool:
        return self is not DeliveryResult.FAILED


@dataclass
class NotificationRequest:
    user_id: str
    title: str
    body: str
    type: NotificationType
    related_appointment_id: Optional[str] = None
    token: Optional[str] = None


@dataclass
class NotificationGateway:
    """Push first, in-app record always.

    Every event ends up in the recipient's in-app inbox; push is attempted on
    top of that when a token is known. Nothing raised here reaches the caller.
    """

    inbox: NotificationRepository
    push: Optional[PushProvider] = None
    users: Optional[UserRepository] = None
    max_parallel_sends: int = 4

    def send(self, request: NotificationRequest) -> DeliveryResult:
        token = (request.token or "").strip()
        pushed = False
        if not token:
            logger.info(f"No push token for user {request.user_id}, saving {request.type.value} notification in-app only")
        elif self.push is None:
            logger.info(f"Push provider not configured, saving {request.type.value} notification for user {request.user_id} in-app only")
        else:
            pushed = self._push(request, token)

        try:
            self._write_inbox(request)
        except FallbackWriteFailed as e:
            if pushed:
                # The user already got the push; only the inbox copy is missing
                logger.warning(f"Push delivered but in-app copy failed for user {request.user_id}: {e}")
                return DeliveryResult.DELIVERED
            logger.error(f"Notification for user {request.user_id} lost, fallback write failed: {e}")
            return DeliveryResult.FAILED
        return DeliveryResult.DELIVERED if pushed else DeliveryResult.DELIVERED_VIA_FALLBACK

    def deliver(self, requests: Iterable[NotificationRequest]) -> List[DeliveryResult]:
        """Send independent notifications in parallel, resolving missing tokens from the user store.

        Results are in request order.
        """
        requests = list(requests)
        if len(requests) <= 1:
            return [self._deliver_one(r) for r in requests]
        with ThreadPoolExecutor(max_workers=min(len(requests), self.max_parallel_sends)) as executor:
            return list(executor.map(self._deliver_one, requests))

    def _deliver_one(self, request: NotificationRequest) -> DeliveryResult:
        if request.token is None:
            request.token = self._lookup_token(request.user_id)
        return self.send(request)

    def _push(self, request: NotificationRequest, token: str) -> bool:
        data = {"type": request.type.value}
        if request.related_appointment_id:
            data["relatedAppointmentId"] = request.related_appointment_id
        try:
            message_id = self.push.send(token, request.title, request.body, data)
        except InvalidPushToken as e:
            logger.warning(f"Push token rejected for user {request.user_id}: {e}")
            self._forget_token(request.user_id, token)
            return False
        except NotificationDeliveryFailed as e:
            logger.warning(f"Failed to send push to user {request.user_id}: {e}")
            return False
        except Exception as e:
            logger.warning(f"Unexpected push provider error for user {request.user_id}: {e}")
            return False
        logger.info(f"Push notification {message_id} sent to user {request.user_id}")
        return True

    def _write_inbox(self, request: NotificationRequest) -> None:
        try:
            self.inbox.add(
                user_id=request.user_id,
                type=request.type.value,
                title=request.title,
                body=request.body,
                related_appointment_id=request.related_appointment_id,
            )
        except FallbackWriteFailed:
            raise
        except Exception as e:
            raise FallbackWriteFailed(str(e)) from e

    def _lookup_token(self, user_id: str) -> Optional[str]:
        if self.users is None:
            return None
        try:
            return self.users.get_push_token(user_id)
        except Exception as e:
            logger.warning(f"Could not load push token for user {user_id}: {e}")
            return None

    def _forget_token(self, user_id: str, token: str) -> None:
        if self.users is None:
            return
        try:
            self.users.clear_push_token(user_id, token)
            logger.info(f"Cleared stale push token for user {user_id}")
        except Exception as e:
            logger.warning(f"Could not clear push token for user {user_id}: {e}")
