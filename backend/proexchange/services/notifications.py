"""
Notification Dispatcher - fire-and-forget side effects of accepted transitions

The workflow engine emits a Notification after its write is committed.
dispatch() never raises: a transport failure is logged, counted and
reported as False, so it can never be mistaken for a failure of the
transition that produced it.

Transports:
    CeleryNotificationDispatcher   - queues deliver_notification (email)
    CallbackNotificationDispatcher - in-process callable (dev, tests)
"""

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, Dict

from proexchange.config import get_settings
from proexchange.middleware.metrics import record_notification

logger = logging.getLogger(__name__)


class NotificationKind(str, Enum):
    CONNECTION_ACCEPTED = "connection_accepted"
    APPLICATION_STATUS_CHANGED = "application_status_changed"
    BENCH_INVITATION = "bench_invitation"
    CONNECTION_REMINDER = "connection_reminder"


@dataclass
class Notification:
    """
    Outbound message about a state change.

    Attributes:
        kind: What happened
        recipient_profile_id: Profile to notify
        payload: JSON-serializable details for the template
    """

    kind: NotificationKind
    recipient_profile_id: str
    payload: Dict[str, Any] = field(default_factory=dict)

    def to_message(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "recipient_profile_id": self.recipient_profile_id,
            "payload": self.payload,
        }

    @classmethod
    def from_message(cls, message: Dict[str, Any]) -> "Notification":
        return cls(
            kind=NotificationKind(message["kind"]),
            recipient_profile_id=message["recipient_profile_id"],
            payload=dict(message.get("payload") or {}),
        )


class NotificationDispatcher(ABC):
    """Hands notifications to a transport without ever failing the caller."""

    def dispatch(self, notification: Notification) -> bool:
        try:
            self._send(notification)
        except Exception as e:
            logger.warning(
                f"Notification {notification.kind.value} to "
                f"{notification.recipient_profile_id} not dispatched: {e}"
            )
            record_notification(notification.kind.value, delivered=False)
            return False

        record_notification(notification.kind.value, delivered=True)
        return True

    @abstractmethod
    def _send(self, notification: Notification) -> None:
        pass


class CeleryNotificationDispatcher(NotificationDispatcher):
    def _send(self, notification: Notification) -> None:
        # Import here to avoid circular import
        from proexchange.tasks.notifications import deliver_notification

        # retry=False: a dead broker must not stall the request
        deliver_notification.apply_async(args=[notification.to_message()], retry=False)


class CallbackNotificationDispatcher(NotificationDispatcher):
    def __init__(self, callback: Callable[[Notification], Any]):
        self.callback = callback

    def _send(self, notification: Notification) -> None:
        self.callback(notification)


def _log_notification(notification: Notification) -> None:
    logger.info(
        f"Notification {notification.kind.value} -> "
        f"{notification.recipient_profile_id}: {notification.payload}"
    )


@lru_cache
def get_dispatcher() -> NotificationDispatcher:
    settings = get_settings()
    if settings.notification_backend == "log":
        return CallbackNotificationDispatcher(_log_notification)
    return CeleryNotificationDispatcher()
