import os
import logging
from typing import Any, Dict, Optional
import uuid
from fastapi import BackgroundTasks
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession
from twilio.rest import Client
from models import Notification, User
from utils.push import send_to_user

logger = logging.getLogger(__name__)

# --- Twilio Configuration ---
TWILIO_ACCOUNT_SID = os.getenv("TWILIO_ACCOUNT_SID")
TWILIO_AUTH_TOKEN = os.getenv("TWILIO_AUTH_TOKEN")
TWILIO_PHONE_NUMBER = os.getenv("TWILIO_PHONE_NUMBER")

# --- Notification types ---
NEW_OFFER = "NEW_OFFER"
OFFER_STATUS = "OFFER_STATUS"
OFFER_COMPLETED = "OFFER_COMPLETED"
DEMAND_APPROVED = "DEMAND_APPROVED"
DEMAND_REJECTED = "DEMAND_REJECTED"
NEW_REVIEW = "NEW_REVIEW"
ADMIN_NOTIFICATION = "ADMIN_NOTIFICATION"


def send_sms(to_phone_number: str, body: str) -> Optional[str]:
    """Sends an SMS using Twilio. Returns the message SID, or None on failure."""
    if not all([TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN, TWILIO_PHONE_NUMBER]):
        logger.error("Twilio settings are not fully configured. Cannot send SMS.")
        return None

    try:
        client = Client(TWILIO_ACCOUNT_SID, TWILIO_AUTH_TOKEN)
        message = client.messages.create(
            body=body,
            from_=TWILIO_PHONE_NUMBER,
            to=to_phone_number
        )
        logger.info(f"SMS sent successfully to {to_phone_number}, SID: {message.sid}")
        return message.sid
    except Exception as e:
        logger.error(f"Failed to send SMS to {to_phone_number}: {e}")
        return None


async def notify_user(
    db: AsyncSession,
    user_id: uuid.UUID,
    title: str,
    message: str,
    notification_type: str,
    data: Optional[Dict[str, Any]] = None,
    background_tasks: Optional[BackgroundTasks] = None
) -> Optional[Notification]:
    """
    Store an in-app notification and queue a push to the user's device.

    Runs after the caller's own transaction has committed. Failures are logged
    and rolled back here; they never reach the caller.
    """
    try:
        notification = Notification(
            user_id=user_id,
            title=title,
            message=message,
            type=notification_type,
            data=data or {}
        )
        db.add(notification)
        await db.commit()

        if background_tasks is not None:
            result = await db.execute(select(User.fcm_token).where(User.id == user_id))
            fcm_token = result.scalar_one_or_none()
            if fcm_token:
                background_tasks.add_task(send_to_user, fcm_token, title, message, data)

        logger.info(f"{notification_type} notification stored for user {user_id}")
        return notification
    except Exception as e:
        logger.error(f"Failed to store {notification_type} notification for user {user_id}: {e}")
        await db.rollback()
        return None
