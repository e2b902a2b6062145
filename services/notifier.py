from typing import Optional
import traceback

from database.operations import create_notification
from models.notification import NotificationType
from logging_config import logger

async def notify(
    user_id: Optional[str],
    message: str,
    notification_type: NotificationType,
    expense_id: Optional[str] = None
) -> Optional[str]:
    """
    Store a notification for user_id.

    Fire-and-forget: a failed write is logged and swallowed so it never fails
    the claim operation that triggered it.
    """
    if not user_id:
        return None
    try:
        notification_id = await create_notification({
            "user_id": user_id,
            "type": notification_type.value,
            "message": message,
            "read": False,
            "expense_id": expense_id
        })
        logger.debug(f"Notification {notification_id} ({notification_type.value}) stored for user {user_id}")
        return notification_id
    except Exception as e:
        logger.warning(f"Failed to store notification for user {user_id}: {str(e)}")
        logger.debug(traceback.format_exc())
        return None
