from pydantic import BaseModel
from typing import Optional
from datetime import datetime
from enum import Enum

class NotificationType(str, Enum):
    EXPENSE_SUBMITTED = "expense_submitted"
    EXPENSE_AUTO_APPROVED = "expense_auto_approved"
    APPROVAL_REQUESTED = "approval_requested"
    EXPENSE_ROUTED = "expense_routed"
    EXPENSE_APPROVED = "expense_approved"
    EXPENSE_REJECTED = "expense_rejected"
    TEAM_UPDATE = "team_update"

class NotificationBase(BaseModel):
    user_id: str
    type: NotificationType
    message: str
    read: bool = False
    expense_id: Optional[str] = None

class Notification(NotificationBase):
    id: str
    created_at: datetime
