from typing import List, Optional
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.engine import Engine
from sqlmodel import Session, select
import logging

from .....db.models import Notification
from .....application.ports.notification_repo import NotificationRepository
from .....exceptions import FallbackWriteFailed

logger = logging.getLogger(__name__)


class SqlNotificationRepository(NotificationRepository):
    def __init__(self, engine: Engine):
        self.engine = engine

    def add(self, user_id: str, type: str, title: str, body: str, related_appointment_id: Optional[str] = None) -> None:
        notification = Notification(
            user_id=user_id,
            type=type,
            title=title,
            body=body,
            related_appointment_id=related_appointment_id,
        )
        try:
            with Session(self.engine) as session:
                session.add(notification)
                session.commit()
        except SQLAlchemyError as e:
            logger.error(f"Error creating notification for user {user_id}: {e}")
            raise FallbackWriteFailed(f"Could not store notification for user {user_id}") from e

    def list_for_user(self, user_id: str, limit: int = 50) -> List[Notification]:
        with Session(self.engine) as session:
            return list(session.exec(
                select(Notification)
                .where(Notification.user_id == user_id)
                .order_by(Notification.created_at.desc())
                .limit(limit)
            ).all())
