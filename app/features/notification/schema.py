from pydantic import BaseModel
from typing import Optional
from datetime import datetime

from app.models.enums import NotificationType


class NotificationResponse(BaseModel):
    id: int
    user_id: str
    type: NotificationType
    title: str
    message: str
    link_url: Optional[str] = None
    link_text: Optional[str] = None
    is_read: bool
    read_at: Optional[datetime] = None
    created_at: datetime

    class Config:
        from_attributes = True


class UnreadCountResponse(BaseModel):
    unread_count: int
