from pydantic import BaseModel
from datetime import datetime
from typing import List, Optional

class NotificationResponse(BaseModel):
    id: int
    user_id: int
    task_id: int
    type: str
    is_read: bool
    created_at: Optional[datetime]

    model_config = {"from_attributes": True}

class NotificationListResponse(BaseModel):
    notifications: List[NotificationResponse]
    unread_count: int
