from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session
from typing import List

from app.core.database import get_db
from app.core.dependencies import Actor, get_current_actor
from app.features.notification.schema import NotificationResponse, UnreadCountResponse
from app.features.notification.service import NotificationService

router = APIRouter()


@router.get("", response_model=List[NotificationResponse])
def get_my_notifications(
    unread_only: bool = False,
    skip: int = 0,
    limit: int = 20,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return NotificationService.get_user_notifications(db, actor.id, unread_only, skip, limit)


@router.get("/unread-count", response_model=UnreadCountResponse)
def get_unread_count(db: Session = Depends(get_db), actor: Actor = Depends(get_current_actor)):
    return {"unread_count": NotificationService.get_unread_count(db, actor.id)}


@router.post("/{notification_id}/read", response_model=NotificationResponse)
def mark_notification_read(
    notification_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_current_actor),
):
    return NotificationService.mark_as_read(db, notification_id, actor.id)
