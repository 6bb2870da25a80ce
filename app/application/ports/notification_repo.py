from typing import Optional, Protocol


class NotificationRepository(Protocol):
    def add(self, user_id: str, type: str, title: str, body: str, related_appointment_id: Optional[str] = None) -> None:
        ...
