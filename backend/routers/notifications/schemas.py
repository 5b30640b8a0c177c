from typing import Optional, List, Any, Dict
from datetime import datetime
from utils.response_helpers import CamelModel


class NotificationResponse(CamelModel):
    id: str
    user_id: str
    title: str
    message: str
    type: str
    data: Dict[str, Any] = {}
    is_read: bool
    created_at: datetime


class NotificationEnvelope(CamelModel):
    success: bool = True
    message: Optional[str] = None
    data: NotificationResponse


class NotificationListResponse(CamelModel):
    success: bool = True
    data: List[NotificationResponse]
    unread_count: int
