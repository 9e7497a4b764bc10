from sqlalchemy.orm import Session
from typing import List, Optional
from datetime import datetime

from app.core.exceptions import NotFoundError
from app.core.logging import get_logger
from app.features.notification.model import Notification
from app.utils.clock import utcnow

logger = get_logger(__name__)


class NotificationService:
    @staticmethod
    def create_notification(db: Session, message) -> Notification:
        """Store one in-app notification built from a NotificationMessage."""
        notification = Notification(
            user_id=str(message.user_id),
            type=message.type,
            title=message.title,
            message=message.message,
            link_url=message.link_url,
            link_text=message.link_text,
            is_read=False,
        )
        db.add(notification)
        db.commit()
        db.refresh(notification)
        logger.info(
            "Notification stored",
            extra={"notification_id": notification.id, "user_id": notification.user_id},
        )
        return notification

    @staticmethod
    def get_user_notifications(
        db: Session,
        user_id: str,
        unread_only: bool = False,
        skip: int = 0,
        limit: int = 20,
    ) -> List[Notification]:
        query = db.query(Notification).filter(Notification.user_id == str(user_id))
        if unread_only:
            query = query.filter(Notification.is_read.is_(False))
        return (
            query.order_by(Notification.created_at.desc(), Notification.id.desc())
            .offset(skip)
            .limit(limit)
            .all()
        )

    @staticmethod
    def get_unread_count(db: Session, user_id: str) -> int:
        return (
            db.query(Notification)
            .filter(Notification.user_id == str(user_id), Notification.is_read.is_(False))
            .count()
        )

    @staticmethod
    def mark_as_read(db: Session, notification_id: int, user_id: str, now: Optional[datetime] = None) -> Notification:
        notification = (
            db.query(Notification)
            .filter(Notification.id == notification_id, Notification.user_id == str(user_id))
            .first()
        )
        if not notification:
            raise NotFoundError("Notification not found")
        if not notification.is_read:
            notification.is_read = True
            notification.read_at = now or utcnow()
            db.commit()
            db.refresh(notification)
        return notification
