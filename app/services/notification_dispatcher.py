"""
Notification dispatch.

The engine hands user-visible events to a ``NotificationDispatcher``. Delivery
is best-effort: ``dispatch`` logs a failed send and reports it, it never raises
into the state transition that triggered it.
"""
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from app.core.database import SessionLocal
from app.core.logging import get_logger
from app.models.enums import NotificationType

logger = get_logger(__name__)


@dataclass
class NotificationMessage:
    user_id: str
    type: NotificationType
    title: str
    message: str
    link_url: Optional[str] = None
    link_text: Optional[str] = None


class NotificationDispatcher(ABC):
    @abstractmethod
    def send(self, message: NotificationMessage) -> None:
        """Deliver one message. May raise; callers go through ``dispatch``."""


class DatabaseNotificationDispatcher(NotificationDispatcher):
    """Stores notifications in the ``notifications`` table using its own session."""

    def __init__(self, session_factory=SessionLocal):
        self.session_factory = session_factory

    def send(self, message: NotificationMessage) -> None:
        from app.features.notification.service import NotificationService

        db = self.session_factory()
        try:
            NotificationService.create_notification(db, message)
        finally:
            db.close()


class LoggingNotificationDispatcher(NotificationDispatcher):
    def send(self, message: NotificationMessage) -> None:
        logger.info(
            "Notification",
            extra={"user_id": message.user_id, "type": message.type.value, "title": message.title},
        )


def dispatch(dispatcher: Optional[NotificationDispatcher], message: NotificationMessage) -> bool:
    """Send ``message`` without letting a delivery failure propagate."""
    if dispatcher is None or not message.user_id:
        return False
    try:
        dispatcher.send(message)
        return True
    except Exception:
        logger.warning(
            "Notification delivery failed",
            extra={"user_id": message.user_id, "title": message.title},
            exc_info=True,
        )
        return False


_default_dispatcher: Optional[NotificationDispatcher] = None


def get_notification_dispatcher() -> NotificationDispatcher:
    """FastAPI dependency returning the process-wide dispatcher."""
    global _default_dispatcher
    if _default_dispatcher is None:
        _default_dispatcher = DatabaseNotificationDispatcher()
    return _default_dispatcher
