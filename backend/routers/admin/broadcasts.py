"""
Admin push notifications: to one user, to a filtered set of users, or to an
FCM topic. Every delivered user push is also stored as an in-app notification.
"""
from fastapi import APIRouter, Depends, HTTPException, status, Query
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, or_
from config import get_db
from dependencies.rbac import require_admin, require_admin_write
from models import User, UserType, Notification
from routers.auth.auth import get_current_user
from utils.notifications import ADMIN_NOTIFICATION
from utils.push import send_to_user, send_to_multiple, send_to_topic
from .schemas import (
    SingleNotificationRequest,
    SingleNotificationData,
    SingleNotificationResponse,
    BroadcastFilter,
    MultipleNotificationRequest,
    BroadcastResult,
    BroadcastResponse,
    PushRecipient,
    PushRecipientListResponse,
    TopicNotificationRequest,
    TopicNotificationResponse,
)
from typing import Any, Dict, List, Optional
import logging
import uuid

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin/notifications", tags=["Admin Notifications"])

RECIPIENT_LIST_LIMIT = 100


def _payload(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": ADMIN_NOTIFICATION, **(data or {})}


async def _recipients(
    db: AsyncSession,
    user_type: Optional[UserType] = None,
    city_id: Optional[uuid.UUID] = None,
    user_ids: Optional[List[uuid.UUID]] = None
) -> List[User]:
    """Active users with a device token matching the filters"""
    query = select(User).where(
        User.is_active == True,
        User.fcm_token.is_not(None),
        User.fcm_token != ""
    )
    if user_ids:
        query = query.where(User.id.in_(user_ids))
    if user_type:
        query = query.where(User.user_type == user_type.value)
    if city_id:
        query = query.where(User.city_id == city_id)
    result = await db.execute(query)
    return list(result.scalars().all())


async def _broadcast(users: List[User], request: BroadcastFilter, db: AsyncSession) -> BroadcastResult:
    data = _payload(request.data)
    outcome = await run_in_threadpool(
        send_to_multiple, [user.fcm_token for user in users], request.title, request.body, data
    )

    db.add_all([
        Notification(
            user_id=user.id,
            title=request.title,
            message=request.body,
            type=ADMIN_NOTIFICATION,
            data=data
        )
        for user in users
    ])
    await db.commit()

    return BroadcastResult(
        total_users=len(users),
        success_count=outcome["success_count"],
        failure_count=outcome["failure_count"],
        notifications_created=len(users),
        errors=outcome["errors"]
    )


@router.post("/send-single", response_model=SingleNotificationResponse)
async def send_single(
    request: SingleNotificationRequest,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_write)
):
    """Admin only: push to one user and store the notification"""
    try:
        result = await db.execute(select(User).where(User.id == request.user_id))
        user = result.scalar_one_or_none()
        if not user:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="User not found"
            )
        if not user.fcm_token:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail="User has no registered device"
            )

        data = _payload(request.data)
        outcome = await run_in_threadpool(send_to_user, user.fcm_token, request.title, request.body, data)
        if not outcome["success"]:
            raise HTTPException(
                status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
                detail=f"Failed to send notification: {outcome.get('error')}"
            )

        notification = Notification(
            user_id=user.id,
            title=request.title,
            message=request.body,
            type=ADMIN_NOTIFICATION,
            data=data
        )
        db.add(notification)
        await db.commit()

        logger.info(f"Admin {current_user['user_id']} pushed a notification to user {user.id}")
        return SingleNotificationResponse(
            message="Notification sent successfully",
            data=SingleNotificationData(
                notification_id=str(notification.id),
                fcm_message_id=outcome.get("message_id")
            )
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error sending notification to {request.user_id}: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send notification"
        )


@router.post("/send-multiple", response_model=BroadcastResponse)
async def send_multiple(
    request: MultipleNotificationRequest,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_write)
):
    """Admin only: push to the listed users, narrowed by user type and city"""
    try:
        users = await _recipients(db, request.user_type, request.city_id, request.user_ids)
        if not users:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No users with a registered device match the filters"
            )

        summary = await _broadcast(users, request, db)
        logger.info(f"Admin push to {summary.total_users} users: {summary.success_count} delivered")
        return BroadcastResponse(
            message=f"Notification sent to {summary.success_count} of {summary.total_users} users",
            data=summary
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error sending notifications: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send notifications"
        )


@router.post("/send-all", response_model=BroadcastResponse)
async def send_all(
    request: BroadcastFilter,
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin_write)
):
    """Admin only: push to every active user with a device, optionally filtered"""
    try:
        users = await _recipients(db, request.user_type, request.city_id)
        if not users:
            raise HTTPException(
                status_code=status.HTTP_404_NOT_FOUND,
                detail="No users with a registered device match the filters"
            )

        summary = await _broadcast(users, request, db)
        logger.info(f"Admin broadcast to {summary.total_users} users: {summary.success_count} delivered")
        return BroadcastResponse(
            message=f"Notification sent to {summary.success_count} of {summary.total_users} users",
            data=summary
        )
    except HTTPException:
        raise
    except Exception as e:
        logger.error(f"Error broadcasting notification: {str(e)}")
        await db.rollback()
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to send notifications"
        )


@router.post("/send-topic", response_model=TopicNotificationResponse)
async def send_topic(
    request: TopicNotificationRequest,
    current_user = Depends(get_current_user),
    _: bool = Depends(require_admin_write)
):
    """Admin only: push to an FCM topic; nothing is stored"""
    outcome = await run_in_threadpool(
        send_to_topic, request.topic, request.title, request.body, _payload(request.data)
    )
    if not outcome["success"]:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to send notification: {outcome.get('error')}"
        )
    return TopicNotificationResponse(
        message="Notification sent to topic",
        data={"topic": request.topic, "messageId": outcome.get("message_id")}
    )


@router.get("/users", response_model=PushRecipientListResponse)
async def list_recipients(
    user_type: Optional[UserType] = Query(None, alias="userType"),
    city_id: Optional[uuid.UUID] = Query(None, alias="cityId"),
    search: Optional[str] = Query(None),
    current_user = Depends(get_current_user),
    db: AsyncSession = Depends(get_db),
    _: bool = Depends(require_admin)
):
    """Admin only: active users a notification could be addressed to"""
    query = select(User).where(User.is_active == True)
    if user_type:
        query = query.where(User.user_type == user_type.value)
    if city_id:
        query = query.where(User.city_id == city_id)
    if search:
        pattern = f"%{search}%"
        query = query.where(or_(
            User.name.ilike(pattern),
            User.phone_number.ilike(pattern),
            User.email.ilike(pattern)
        ))

    result = await db.execute(query.order_by(User.created_at.desc()).limit(RECIPIENT_LIST_LIMIT))
    users = result.scalars().all()
    return PushRecipientListResponse(data=[
        PushRecipient(
            id=str(user.id),
            name=user.name,
            phone_number=user.phone_number,
            email=user.email,
            user_type=user.user_type,
            profile_image=user.profile_image,
            has_fcm_token=bool(user.fcm_token),
            city_id=str(user.city_id) if user.city_id else None
        )
        for user in users
    ])
