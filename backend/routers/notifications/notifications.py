from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func
from config import get_db
from models import Notification
from routers.auth.auth import get_current_user
from utils.response_helpers import safe_model_validate, safe_model_validate_list, notification_to_dict
from .schemas import NotificationResponse, NotificationEnvelope, NotificationListResponse
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/notifications", tags=["Notifications"])

NOTIFICATION_PAGE_SIZE = 50


@router.get("", response_model=NotificationListResponse)
async def list_notifications(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    """Latest notifications for the caller plus the unread total"""
    result = await db.execute(
        select(Notification)
        .where(Notification.user_id == current_user["user_id"])
        .order_by(Notification.created_at.desc())
        .limit(NOTIFICATION_PAGE_SIZE)
    )
    notifications = result.scalars().all()

    unread = await db.execute(
        select(func.count(Notification.id)).where(
            Notification.user_id == current_user["user_id"],
            Notification.is_read == False
        )
    )
    return NotificationListResponse(
        data=safe_model_validate_list(NotificationResponse, [notification_to_dict(n) for n in notifications]),
        unread_count=unread.scalar() or 0
    )


@router.patch("/read-all")
async def mark_all_read(
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        result = await db.execute(
            update(Notification)
            .where(Notification.user_id == current_user["user_id"], Notification.is_read == False)
            .values(is_read=True)
        )
        await db.commit()
        logger.info(f"{result.rowcount} notifications marked read for {current_user['user_id']}")
        return {"success": True, "message": "All notifications marked as read"}
    except Exception as e:
        logger.error(f"Error marking notifications read: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update notifications"
        )


@router.patch("/{notification_id}/read", response_model=NotificationEnvelope)
async def mark_read(
    notification_id: uuid.UUID,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db)
):
    try:
        notification = await db.get(Notification, notification_id)
        if not notification:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="Notification not found"
            )
        if notification.user_id != current_user["user_id"]:
            raise HTTPException(
                status_code=status.HTTP_403_FORBIDDEN,
                detail="You are not authorized to update this notification"
            )

        notification.is_read = True
        await db.commit()
        return NotificationEnvelope(
            message="Notification marked as read",
            data=safe_model_validate(NotificationResponse, notification_to_dict(notification))
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error marking notification {notification_id} read: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update notification"
        )
