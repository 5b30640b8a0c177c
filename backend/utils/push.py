"""
Firebase Cloud Messaging sender.

The Firebase app is initialised lazily from the FIREBASE_SERVICE_ACCOUNT
JSON on first use. When it is not configured every send is a logged no-op
that reports failure. These functions block, so routes schedule them with
BackgroundTasks.
"""
from firebase_admin import credentials, messaging
from typing import Any, Dict, List, Optional
from config import FIREBASE_SERVICE_ACCOUNT
import firebase_admin
import json
import logging

logger = logging.getLogger(__name__)

FCM_BATCH_SIZE = 500

_firebase_app = None


def get_firebase_app():
    global _firebase_app
    if _firebase_app is None:
        if not FIREBASE_SERVICE_ACCOUNT:
            logger.warning("FIREBASE_SERVICE_ACCOUNT is not set. Push notifications are disabled.")
            return None
        cred = credentials.Certificate(json.loads(FIREBASE_SERVICE_ACCOUNT))
        _firebase_app = firebase_admin.initialize_app(cred)
        logger.info("Firebase app initialized")
    return _firebase_app


def _stringify(data: Optional[Dict[str, Any]]) -> Dict[str, str]:
    # FCM data payloads only carry string values
    return {str(key): str(value) for key, value in (data or {}).items() if value is not None}


def send_to_user(token: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Push to one device token"""
    if not token:
        return {"success": False, "error": "Missing FCM token"}
    try:
        app = get_firebase_app()
        if app is None:
            return {"success": False, "error": "Push notifications not configured"}

        message = messaging.Message(
            notification=messaging.Notification(title=title, body=body),
            data=_stringify(data),
            token=token,
        )
        message_id = messaging.send(message, app=app)
        logger.info(f"Push sent, message id: {message_id}")
        return {"success": True, "message_id": message_id}
    except Exception as e:
        logger.error(f"Failed to send push notification: {e}")
        return {"success": False, "error": str(e)}


def send_to_multiple(tokens: List[str], title: str, body: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Push to many device tokens in batches of FCM_BATCH_SIZE"""
    result = {"success_count": 0, "failure_count": 0, "errors": []}
    tokens = [token for token in tokens if token]
    if not tokens:
        return result

    app = get_firebase_app()
    if app is None:
        result["failure_count"] = len(tokens)
        result["errors"].append("Push notifications not configured")
        return result

    for start in range(0, len(tokens), FCM_BATCH_SIZE):
        batch = tokens[start:start + FCM_BATCH_SIZE]
        try:
            response = messaging.send_each_for_multicast(
                messaging.MulticastMessage(
                    notification=messaging.Notification(title=title, body=body),
                    data=_stringify(data),
                    tokens=batch,
                ),
                app=app,
            )
            result["success_count"] += response.success_count
            result["failure_count"] += response.failure_count
            for index, send_response in enumerate(response.responses):
                if not send_response.success:
                    result["errors"].append(f"{batch[index][:12]}...: {send_response.exception}")
        except Exception as e:
            logger.error(f"Failed to send push batch: {e}")
            result["failure_count"] += len(batch)
            result["errors"].append(str(e))

    logger.info(f"Multicast push finished: {result['success_count']} sent, {result['failure_count']} failed")
    return result


def send_to_topic(topic: str, title: str, body: str, data: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    try:
        app = get_firebase_app()
        if app is None:
            return {"success": False, "error": "Push notifications not configured"}

        message = messaging.Message(
            notification=messaging.Notification(title=title, body=body),
            data=_stringify(data),
            topic=topic,
        )
        message_id = messaging.send(message, app=app)
        logger.info(f"Push sent to topic {topic}, message id: {message_id}")
        return {"success": True, "message_id": message_id}
    except Exception as e:
        logger.error(f"Failed to send push to topic {topic}: {e}")
        return {"success": False, "error": str(e)}
