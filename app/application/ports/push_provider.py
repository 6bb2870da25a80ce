from typing import Dict, Optional, Protocol


class PushProvider(Protocol):
    def send(self, token: str, title: str, body: str, data: Optional[Dict[str, str]] = None) -> str:
        """Deliver one push message and return the provider message id.

        Raises InvalidPushToken when the token is unregistered or malformed and
        NotificationDeliveryFailed for any other provider failure.
        """
        ...
