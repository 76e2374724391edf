# race_notifier_service/app/fcm_client.py
import logging
from typing import Protocol

import firebase_admin
from firebase_admin import messaging, exceptions as firebase_exceptions

from .models import PushMessage

logger = logging.getLogger(__name__)


class PushDeliveryError(Exception):
    """A single push send was rejected or could not reach the transport."""

    pass


class TokenUnregisteredError(PushDeliveryError):
    """The device token is permanently invalid (app uninstalled, token rotated)."""

    pass


class IPushTransport(Protocol):
    def send(self, message: PushMessage) -> str:
        """Sends one message and returns the provider message id. Raises PushDeliveryError."""
        ...

    def validate_token(self, token: str) -> None:
        """Dry-run send to `token`. Raises TokenUnregisteredError if it is no longer registered."""
        ...


def _android_notification_priority(android_priority: str) -> str:
    # AndroidConfig accepts high/normal; AndroidNotification uses its own scale
    return "high" if android_priority == "high" else "default"


def build_fcm_message(message: PushMessage) -> messaging.Message:
    return messaging.Message(
        notification=messaging.Notification(title=message.title, body=message.body),
        data=message.data,
        token=message.token,
        android=messaging.AndroidConfig(
            priority=message.android_priority,
            notification=messaging.AndroidNotification(
                channel_id=message.channel_id,
                priority=_android_notification_priority(message.android_priority),
                default_sound=True,
            ),
        ),
    )


class FcmPushTransport:
    """Firebase Cloud Messaging transport backed by firebase_admin.messaging."""

    def __init__(self, app: firebase_admin.App | None = None):
        self._app = app

    def send(self, message: PushMessage) -> str:
        return self._send(build_fcm_message(message), dry_run=False)

    def validate_token(self, token: str) -> None:
        self._send(messaging.Message(token=token), dry_run=True)

    def _send(self, fcm_message: messaging.Message, dry_run: bool) -> str:
        try:
            return messaging.send(fcm_message, dry_run=dry_run, app=self._app)
        except messaging.UnregisteredError as e:
            raise TokenUnregisteredError(str(e)) from e
        except (firebase_exceptions.FirebaseError, ValueError) as e:
            raise PushDeliveryError(str(e)) from e
