from fastapi import APIRouter, Depends, HTTPException, status
from typing import Annotated, List

from models.notification import Notification
from models.user import CurrentUser
from database.operations import get_notifications, mark_notifications_read
from routers.auth import get_current_user
from logging_config import logger

router = APIRouter()

# Get notifications for the current user
@router.get("", response_model=List[Notification])
async def get_user_notifications(
    current_user: Annotated[CurrentUser, Depends(get_current_user)]
):
    return await get_notifications(current_user.id)

# Mark all of the current user's notifications as read
@router.put("/read", status_code=status.HTTP_200_OK)
async def mark_notifications_as_read(
    current_user: Annotated[CurrentUser, Depends(get_current_user)]
):
    try:
        updated = await mark_notifications_read(current_user.id)
    except Exception as e:
        logger.error(f"Failed to mark notifications as read for {current_user.id}: {str(e)}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to mark notifications as read"
        )

    return {"message": "Notifications marked as read", "updated": updated}
