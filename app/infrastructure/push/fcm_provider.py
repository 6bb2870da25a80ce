from typing import Dict, Optional
import logging

import firebase_admin
from firebase_admin import credentials, exceptions as fb_exceptions, messaging

from ...application.ports.push_provider import PushProvider
from ...core.config import Settings
from ...exceptions import InvalidPushToken, NotificationDeliveryFailed

logger = logging.getLogger(__name__)

APP_NAME = "lifecycle-push"


def init_firebase_app(settings: Settings) -> Optional["firebase_admin.App"]:
    try:
        return firebase_admin.get_app(APP_NAME)
    except ValueError:
        pass
    if not settings.FIREBASE_CLIENT_EMAIL or not settings.FIREBASE_PRIVATE_KEY or not settings.FIREBASE_PROJECT_ID:
        logger.warning("Firebase credentials are not configured; push delivery disabled")
        return None
    try:
        cred = credentials.Certificate({
            "type": "service_account",
            "project_id": settings.FIREBASE_PROJECT_ID,
            "private_key": settings.FIREBASE_PRIVATE_KEY,
            "client_email": settings.FIREBASE_CLIENT_EMAIL,
            "token_uri": "https://oauth2.googleapis.com/token",
        })
        app = firebase_admin.initialize_app(cred, {
            "projectId": settings.FIREBASE_PROJECT_ID,
            "httpTimeout": settings.PUSH_TIMEOUT_SECONDS,
        }, name=APP_NAME)
        logger.info("Firebase app initialized")
        return app
    except Exception as e:
        logger.error(f"Failed to initialize Firebase app: {e}")
        return None


class FcmPushProvider(PushProvider):
    def __init__(self, app: "firebase_admin.App"):
        self.app = app

    def send(self, token: str, title: str, body: str, data: Optional[Dict[str, str]] = None) -> str:
        message = messaging.Message(
            token=token,
            notification=messaging.Notification(title=title, body=body),
            data=data or None,
        )
        try:
            return messaging.send(message, app=self.app)
        except (messaging.UnregisteredError, messaging.SenderIdMismatchError, fb_exceptions.InvalidArgumentError) as e:
            raise InvalidPushToken(str(e)) from e
        except fb_exceptions.FirebaseError as e:
            raise NotificationDeliveryFailed(str(e)) from e


def build_push_provider(settings: Settings) -> Optional[FcmPushProvider]:
    app = init_firebase_app(settings)
    return FcmPushProvider(app) if app is not None else None
